"""
Cas d'usage 'coupons': validation d'un code de réduction et enregistrement de son utilisation.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from ticketing.coupons import repository
from ticketing.pricing.fees import round_money
from ticketing.registrations.guards import parse_timestamp

logger = logging.getLogger(__name__)

@dataclass
class CouponCheck:
    valid: bool
    error: Optional[str] = None
    coupon: Optional[Dict[str, Any]] = None
    discount: float = 0.0
    already_used: bool = False
    already_recorded: bool = False

def normalize_code(code: Any) -> str:
    return str(code or "").strip().upper()

def compute_discount(coupon: Dict[str, Any], subtotal: float) -> float:
    """
    - percentage: subtotal * valeur / 100
    - fixed: min(valeur, subtotal)
    """
    value = float(coupon.get("discount_value") or 0)
    if value <= 0 or subtotal <= 0:
        return 0.0
    if coupon.get("discount_type") == "percentage":
        return round_money(min(subtotal * value / 100, subtotal))
    return round_money(min(value, subtotal))

def validate_coupon(
    code: Any,
    event_id: str,
    user_id: Optional[str],
    subtotal: float,
    now: Optional[datetime] = None,
    pending_registration_id: Optional[str] = None,
) -> CouponCheck:
    normalized = normalize_code(code)
    if not normalized:
        return CouponCheck(False, "Cupom inválido")
    try:
        coupon = repository.get_coupon_by_code(normalized)
    except Exception:
        logger.exception("Lecture du coupon %s impossible", normalized)
        return CouponCheck(False, "Erro ao validar cupom")
    if not coupon:
        return CouponCheck(False, "Cupom não encontrado")
    if coupon.get("status") != "active":
        return CouponCheck(False, "Cupom inativo", coupon)

    current = now or datetime.now(timezone.utc)
    valid_from = parse_timestamp(coupon.get("valid_from"))
    valid_until = parse_timestamp(coupon.get("valid_until"))
    if valid_from and current < valid_from:
        return CouponCheck(False, "Cupom ainda não está válido", coupon)
    if valid_until and current > valid_until:
        return CouponCheck(False, "Cupom expirado", coupon)

    if coupon.get("event_id") and str(coupon["event_id"]) != str(event_id):
        return CouponCheck(False, "Cupom não válido para este evento", coupon)

    max_uses = coupon.get("max_uses")
    if max_uses is not None and int(coupon.get("current_uses") or 0) >= int(max_uses):
        return CouponCheck(False, "Cupom esgotado", coupon)

    recorded = False
    if user_id:
        try:
            usage = repository.get_usage(coupon["id"], user_id)
        except Exception:
            logger.exception("Lecture des utilisations du coupon %s impossible", coupon.get("id"))
            return CouponCheck(False, "Erro ao validar cupom", coupon)
        if usage:
            # Reprise de la même tentative en attente: l'utilisation est déjà enregistrée
            if pending_registration_id and str(usage.get("registration_id")) == str(pending_registration_id):
                recorded = True
            else:
                return CouponCheck(False, "Você já usou este cupom", coupon, already_used=True)

    return CouponCheck(
        True,
        coupon=coupon,
        discount=compute_discount(coupon, float(subtotal or 0)),
        already_recorded=recorded,
    )

def apply_coupon(coupon_id: str, user_id: str, registration_id: str, discount: float) -> CouponCheck:
    """
    Enregistre l'utilisation puis incrémente le compteur du coupon.
    La contrainte unique (coupon, utilisateur) tranche entre deux checkouts concurrents.
    """
    try:
        repository.insert_usage(coupon_id, user_id, registration_id, discount)
    except repository.CouponAlreadyUsed:
        logger.info("coupons.duplicate coupon=%s user=%s", coupon_id, user_id)
        return CouponCheck(False, "Você já usou este cupom", already_used=True)
    except Exception:
        logger.exception("Enregistrement de l'utilisation du coupon %s impossible", coupon_id)
        return CouponCheck(False, "Erro ao aplicar cupom")
    repository.increment_uses(coupon_id)
    return CouponCheck(True, discount=discount)
