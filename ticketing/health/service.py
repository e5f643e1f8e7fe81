from typing import Any, Dict
import logging

from ticketing.config import (
    SUPABASE_URL,
    SUPABASE_SERVICE_KEY,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    RESEND_API_KEY,
)
from ticketing.infra.supabase_client import get_service_supabase

logger = logging.getLogger(__name__)

def health_supabase_info() -> Dict[str, Any]:
    """Configuration + requête minimale sur la table events (service role)."""
    info: Dict[str, Any] = {
        "url_configured": bool(SUPABASE_URL),
        "service_key_configured": bool(SUPABASE_SERVICE_KEY),
        "connect_ok": False,
    }
    try:
        get_service_supabase().table("events").select("id").limit(1).execute()
        info["connect_ok"] = True
    except Exception as e:
        logger.warning("health.supabase échec: %s", e)
        info["error"] = type(e).__name__
    return info

def health_config_info() -> Dict[str, Any]:
    return {
        "stripe_secret_configured": bool(STRIPE_SECRET_KEY),
        "stripe_webhook_secret_configured": bool(STRIPE_WEBHOOK_SECRET),
        "resend_configured": bool(RESEND_API_KEY),
    }
