from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ticketing.health import service as health_service
from ticketing.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/supabase")
def health_supabase():
    info = health_service.health_supabase_info()
    return JSONResponse(info, status_code=200 if info.get("connect_ok") else 503)

@router.get("/config")
def health_config(request: Request):
    return {**health_service.health_config_info(), "rate_limit": rate_limit_health_info(request)}
