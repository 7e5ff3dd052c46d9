from fastapi import Request, Depends
from typing import Optional, Dict, Any
import logging

import backend.infra.supabase_client as supabase_client
from backend.checkout.errors import AuthError

logger = logging.getLogger(__name__)

COOKIE_NAME = "sb_access"

def _token_from_request(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME)

def get_user_from_token(token: str) -> Dict[str, Any]:
    """
    Résout l'identité via Supabase Auth (get_user).
    Retour: {"id", "email"}; {} si le token est refusé.
    """
    res = supabase_client.get_supabase().auth.get_user(token)
    user = getattr(res, "user", None)
    if not user:
        return {}
    return {"id": getattr(user, "id", None), "email": getattr(user, "email", None)}

def get_current_user(request: Request) -> Dict[str, Any]:
    token = _token_from_request(request)
    if not token:
        raise AuthError()
    try:
        user = get_user_from_token(token)
    except Exception:
        logger.warning("security.get_current_user token rejected")
        raise AuthError("Session expirée, veuillez vous connecter")
    if not user.get("id"):
        raise AuthError("Session expirée, veuillez vous connecter")
    return user

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user
