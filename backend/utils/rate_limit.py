from typing import Dict, Any
from fastapi import Request, Response, HTTPException
import os
import time
import hashlib
import logging

from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter

from backend.utils.security import COOKIE_NAME

logger = logging.getLogger(__name__)

def _caller_key(request: Request) -> str:
    """
    Clé de limitation: jeton (hashé, Bearer ou cookie) puis IP, suffixée du chemin.
    Le jeton n'est jamais stocké en clair dans Redis.
    """
    auth_header = request.headers.get("Authorization", "")
    token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else request.cookies.get(COOKIE_NAME)
    path = request.url.path
    if token:
        h = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{h}:{path}"
    ip = request.client.host if request.client else "local"
    return f"ip:{ip}:{path}"

def _local_hit(request: Request, key: str, times: int, seconds: int) -> None:
    now = time.time()
    store = getattr(request.app.state, "_rl_store", {})
    hits = [t for t in store.get(key, []) if now - t < seconds]
    if len(hits) >= times:
        raise HTTPException(status_code=429, detail="Too Many Requests")
    hits.append(now)
    store[key] = hits
    request.app.state._rl_store = store

def optional_rate_limit(times: int, seconds: int):
    """
    Dépendance FastAPI de limitation de débit (création d'intent, validation de commande).
    - LOCAL_RATE_LIMIT_FALLBACK=1: compteur mémoire (dev)
    - app.state.rate_limit_enabled False: désactivé
    - sinon fastapi-limiter (Redis); une indisponibilité Redis ne bloque pas le paiement
    """
    async def _dep(request: Request, response: Response):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            _local_hit(request, _caller_key(request), times, seconds)
            return

        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return

        async def _identifier(req: Request) -> str:
            return _caller_key(req)

        try:
            await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request, response)
        except HTTPException:
            raise
        except Exception as e:
            logger.warning("rate_limit unavailable: %s", type(e).__name__)
    return _dep

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    limiter_ready = getattr(FastAPILimiter, "redis", None) is not None
    return {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": limiter_ready,
        "backend": "redis" if limiter_ready else None,
    }
