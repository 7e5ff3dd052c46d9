from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from backend.health import service as health_service
from backend.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root(request: Request):
    return {"ok": True, "rate_limit": rate_limit_health_info(request)}

@router.get("/supabase")
def health_supabase():
    return JSONResponse(health_service.health_supabase_info())
