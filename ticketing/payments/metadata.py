"""
Sérialisation/désérialisation des métadonnées Stripe (inscriptions, commandes de photos).
Stripe n'accepte que des chaînes: les structures (partenaire) sont encodées en JSON.
"""
import json
from typing import Any, Dict, Optional

PHOTO_ORDER_TYPE = "photo_order"

# module ticketing.payments.metadata
def build_registration_metadata(
    *,
    registration_id: str,
    event_id: str,
    category_id: str,
    user_id: str,
    shirt_size: str,
    partner: Optional[Dict[str, Any]] = None,
    coupon_id: Optional[str] = None,
) -> Dict[str, str]:
    meta = {
        "registrationId": str(registration_id),
        "eventId": str(event_id),
        "categoryId": str(category_id),
        "userId": str(user_id),
        "shirtSize": shirt_size or "",
    }
    if partner:
        meta["partnerData"] = json.dumps(partner, ensure_ascii=False)
    if coupon_id:
        meta["couponId"] = str(coupon_id)
    return meta

def build_photo_metadata(*, order_id: str, event_id: str, user_id: str, photo_count: int) -> Dict[str, str]:
    return {
        "type": PHOTO_ORDER_TYPE,
        "orderId": str(order_id),
        "eventId": str(event_id),
        "userId": str(user_id),
        "photoCount": str(photo_count),
    }

def event_object(event: Dict[str, Any]) -> Dict[str, Any]:
    """event.data.object (session Checkout ou PaymentIntent selon le type)."""
    data = (event or {}).get("data") or {}
    obj = data.get("object") if isinstance(data, dict) else None
    return obj if isinstance(obj, dict) else {}

def object_metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    meta = (obj or {}).get("metadata")
    return meta if isinstance(meta, dict) else {}

def is_photo_order(obj: Dict[str, Any]) -> bool:
    return object_metadata(obj).get("type") == PHOTO_ORDER_TYPE

def session_customer_email(session: Dict[str, Any]) -> Optional[str]:
    details = session.get("customer_details") or {}
    return session.get("customer_email") or (details.get("email") if isinstance(details, dict) else None)

def payment_intent_id(obj: Dict[str, Any]) -> Optional[str]:
    value = obj.get("payment_intent")
    if isinstance(value, dict):
        return value.get("id")
    return value or None
