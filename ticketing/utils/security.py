from typing import Any, Dict, Optional
import logging

from fastapi import Request, HTTPException, Depends

from ticketing.infra.supabase_client import get_supabase

logger = logging.getLogger(__name__)

COOKIE_NAME = "sb_access"

def extract_token(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME) or None

def get_user_from_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Normalise la réponse de supabase.auth.get_user(token):
    {"id", "email", "full_name", "metadata"} ou None si le jeton est invalide/expiré.
    """
    try:
        res = get_supabase().auth.get_user(token)
    except Exception as e:
        logger.info("Jeton refusé par Supabase: %s", e)
        return None
    user = getattr(res, "user", None)
    if user is None or not getattr(user, "id", None):
        return None
    metadata = getattr(user, "user_metadata", None) or {}
    return {
        "id": user.id,
        "email": getattr(user, "email", None),
        "full_name": metadata.get("full_name") or metadata.get("name") or "",
        "metadata": metadata,
    }

def get_optional_user(request: Request) -> Optional[Dict[str, Any]]:
    """Identité de l'appelant si un jeton valide est présent, sinon None (checkout invité)."""
    token = extract_token(request)
    if not token:
        return None
    return get_user_from_access_token(token)

def get_current_user(request: Request) -> Dict[str, Any]:
    token = extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Não autenticado")
    user = get_user_from_access_token(token)
    if not user:
        raise HTTPException(status_code=401, detail="Sessão expirada, faça login novamente")
    return user

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user
