"""
Cas d'usage 'photos': checkout d'une commande de photos et réconciliation de son paiement.
"""
from typing import Any, Dict, List, Optional
import logging

from ticketing.config import BASE_URL, MAX_PHOTOS_PER_ORDER, PHOTO_SUCCESS_PATH, PHOTO_CANCEL_PATH
from ticketing.notifications.service import send_photo_confirmation_safely
from ticketing.payments import metadata as meta
from ticketing.payments import stripe_client
from ticketing.photos import repository
from ticketing.pricing.fees import amounts_differ, to_cents
from ticketing.pricing.photo_pricing import resolve_photo_price
from ticketing.registrations import repository as registrations_repo
from ticketing.registrations.models import CheckoutError, GENERIC_ERROR, ServiceResponse

logger = logging.getLogger(__name__)

def _photo_ids(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    seen: List[str] = []
    for pid in raw:
        value = str(pid or "").strip()
        if value and value not in seen:
            seen.append(value)
    return seen

def _load_event(event_id: str) -> Dict[str, Any]:
    found = registrations_repo.get_event(event_id)
    if not found.ok:
        raise CheckoutError(GENERIC_ERROR, 500)
    if not found.data:
        raise CheckoutError("Evento não encontrado.", 404)
    if found.data.get("status") != "completed":
        raise CheckoutError("Fotos disponíveis apenas para eventos concluídos.", 400)
    return found.data

def _check_photos(event_id: str, photo_ids: List[str]) -> None:
    photos = repository.get_photos(photo_ids)
    if len(photos) != len(photo_ids):
        raise CheckoutError("Algumas fotos não foram encontradas.", 404)
    if any(str(p.get("event_id")) != str(event_id) for p in photos):
        raise CheckoutError("Fotos não pertencem a este evento.", 400)

def _checkout(payload: Dict[str, Any], user: Optional[Dict[str, Any]]) -> ServiceResponse:
    if not user or not user.get("id"):
        raise CheckoutError("Não autenticado.", 401)
    event_id = str(payload.get("eventId") or "").strip()
    photo_ids = _photo_ids(payload.get("photoIds"))
    if not event_id or not photo_ids or payload.get("totalAmount") is None:
        raise CheckoutError("Dados incompletos.", 400)
    if len(photo_ids) > MAX_PHOTOS_PER_ORDER:
        raise CheckoutError(f"Máximo de {MAX_PHOTOS_PER_ORDER} fotos por pedido.", 400)

    event = _load_event(event_id)
    _check_photos(event_id, photo_ids)

    tiers, packages = repository.get_pricing(event_id)
    price = resolve_photo_price(tiers, packages, len(photo_ids))
    if price.total_price <= 0:
        raise CheckoutError("Preços de fotos não configurados para este evento.", 400)
    if amounts_differ(payload.get("totalAmount"), price.total_price):
        raise CheckoutError("Os valores informados não conferem. Recarregue a página e tente novamente.", 400)
    package_id = (price.package or {}).get("id")
    if payload.get("packageId") and package_id and str(payload["packageId"]) != str(package_id):
        # Le montant fait foi: on garde le forfait résolu côté serveur
        logger.warning("photos.package_mismatch client=%s server=%s", payload.get("packageId"), package_id)

    order = repository.create_photo_order(
        user_id=user["id"],
        event_id=event_id,
        photo_ids=photo_ids,
        total_amount=price.total_price,
        package_id=package_id,
    )
    try:
        session = stripe_client.create_checkout_session(
            amount_cents=to_cents(price.total_price),
            product_name=f"Fotos - {event.get('title') or 'Evento'}",
            description=f"{len(photo_ids)} foto(s)",
            success_url=f"{BASE_URL}{PHOTO_SUCCESS_PATH}",
            cancel_url=f"{BASE_URL}{PHOTO_CANCEL_PATH}?event={event_id}",
            metadata=meta.build_photo_metadata(
                order_id=order["id"], event_id=event_id, user_id=user["id"], photo_count=len(photo_ids),
            ),
            customer_email=user.get("email"),
            payment_intent_metadata={"type": meta.PHOTO_ORDER_TYPE, "orderId": str(order["id"])},
        )
    except Exception:
        logger.exception("Création de la session de paiement photo impossible (order=%s)", order["id"])
        repository.delete_order(order["id"])
        raise CheckoutError("Erro ao criar sessão de pagamento.", 500)
    if not session.get("url"):
        repository.delete_order(order["id"])
        raise CheckoutError("Erro ao criar sessão de pagamento.", 500)

    repository.link_session(order["id"], session["id"])
    logger.info("photos.checkout order=%s photos=%s total=%s", order["id"], len(photo_ids), price.total_price)
    return ServiceResponse(200, {"sessionId": session["id"], "url": session["url"], "orderId": order["id"]})

def create_photo_checkout(payload: Dict[str, Any], user: Optional[Dict[str, Any]]) -> ServiceResponse:
    try:
        return _checkout(payload or {}, user)
    except CheckoutError as e:
        return e.to_response()
    except Exception:
        logger.exception("Erreur create_photo_checkout")
        return ServiceResponse(500, {"error": GENERIC_ERROR})

# --- Réconciliation (appelée par le webhook) ---

def _find_order(session: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    order = repository.get_order_by_session(session.get("id"))
    if order:
        return order
    order_id = meta.object_metadata(session).get("orderId")
    return repository.get_order(order_id) if order_id else None

def reconcile_completed(session: Dict[str, Any]) -> str:
    order = _find_order(session)
    if not order:
        logger.warning("photos.webhook commande introuvable session=%s", session.get("id"))
        return "photo_order_not_found"
    if order.get("payment_status") == "paid":
        return "photo_order_already_paid"
    updated = repository.mark_order_paid(order["id"], meta.payment_intent_id(session))
    if not updated:
        return "photo_order_already_paid"
    event = registrations_repo.get_event(order.get("event_id")).data or {}
    send_photo_confirmation_safely(
        meta.session_customer_email(session),
        {"event_title": event.get("title"), "photo_count": repository.count_items(order["id"])},
    )
    logger.info("photos.paid order=%s", order["id"])
    return "photo_order_paid"

def reconcile_expired(session: Dict[str, Any]) -> str:
    order = _find_order(session)
    if not order:
        return "photo_order_not_found"
    if repository.cancel_order(order["id"]):
        return "photo_order_cancelled"
    return "photo_order_unchanged"
