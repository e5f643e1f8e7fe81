# module ticketing.coupons.repository
from typing import Any, Dict, Optional
import logging

from postgrest.exceptions import APIError

from ticketing.infra.supabase_client import get_service_supabase

logger = logging.getLogger(__name__)

class CouponAlreadyUsed(Exception):
    pass

def get_coupon_by_code(code: str) -> Optional[Dict[str, Any]]:
    """Coupon par code (déjà normalisé en majuscules). Lève en cas d'erreur d'accès."""
    res = (
        get_service_supabase()
        .table("coupons")
        .select("*")
        .eq("code", code)
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None

def get_usage(coupon_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    res = (
        get_service_supabase()
        .table("coupon_usages")
        .select("id, registration_id")
        .eq("coupon_id", coupon_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None

def insert_usage(coupon_id: str, user_id: str, registration_id: str, discount: float) -> Dict[str, Any]:
    """
    Enregistre l'utilisation d'un coupon.
    - contrainte unique (coupon_id, user_id): un doublon lève CouponAlreadyUsed
    """
    try:
        res = (
            get_service_supabase()
            .table("coupon_usages")
            .insert({
                "coupon_id": coupon_id,
                "user_id": user_id,
                "registration_id": registration_id,
                "discount_applied": discount,
            })
            .execute()
        )
    except APIError as e:
        if str(getattr(e, "code", "") or "") == "23505":
            raise CouponAlreadyUsed(coupon_id) from e
        raise
    rows = res.data or []
    return rows[0] if rows else {}

def increment_uses(coupon_id: str) -> bool:
    try:
        get_service_supabase().rpc("increment_coupon_uses", {"coupon_id": coupon_id}).execute()
        return True
    except Exception as e:
        logger.error("increment_coupon_uses coupon=%s a échoué: %s", coupon_id, e)
        return False
