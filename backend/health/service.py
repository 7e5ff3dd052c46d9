from urllib.parse import urlparse
import socket
from backend.config import SUPABASE_URL
import backend.infra.supabase_client as supabase_client

CHECKOUT_TABLES = ["orders", "enrollments", "families", "classes", "sports", "events"]

def _check_table(client, name: str):
    try:
        res = client.table(name).select("id").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        return {"ok": False, "error": type(e).__name__}

def health_supabase_info():
    """Diagnostic Supabase: résolution DNS puis lecture d'une ligne par table du tunnel."""
    parsed = urlparse(SUPABASE_URL) if SUPABASE_URL else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except OSError:
            dns_ok = False

    info = {
        "hostname": hostname,
        "dns_ok": dns_ok,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    try:
        client = supabase_client.get_service_supabase()
        for t in CHECKOUT_TABLES:
            info["tables"][t] = _check_table(client, t)
        info["connect_ok"] = True
    except Exception as e:
        info["error"] = type(e).__name__
    return info
