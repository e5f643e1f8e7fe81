"""
Réconciliation des événements de paiement Stripe (webhook).

Chaque événement peut arriver en double, en retard ou dans le désordre:
- chaque étape relit l'état courant et s'appuie sur des mises à jour conditionnelles
- une inscription confirmed/paid n'est jamais rétrogradée
- billet et email ne partent qu'une fois, après la transition effective vers 'paid'

Une erreur d'infrastructure lève ReconciliationError: la vue répond 500 et Stripe relivre.
"""
from typing import Any, Callable, Dict, Optional
import logging

from ticketing.notifications.service import send_confirmation_safely
from ticketing.payments import metadata as meta
from ticketing.photos import service as photos_service
from ticketing.registrations import repository
from ticketing.registrations.models import PaymentStatus, RegistrationStatus, StoreResult
from ticketing.tickets.service import ensure_ticket

logger = logging.getLogger(__name__)

class ReconciliationError(Exception):
    pass

def _unwrap(result: StoreResult) -> Optional[Dict[str, Any]]:
    if not result.ok:
        raise ReconciliationError(result.error)
    return result.data

def _find_for_session(session: Dict[str, Any], *, accept_replaced: bool = False) -> Optional[Dict[str, Any]]:
    """
    Par identifiant de session, puis par metadata.registrationId (session non liée).
    accept_replaced: un paiement abouti sur une session remplacée par un checkout plus
    récent reste rattaché à l'inscription non payée; une expiration obsolète est ignorée.
    """
    row = _unwrap(repository.get_registration_by_session(session.get("id")))
    if row:
        return row
    registration_id = meta.object_metadata(session).get("registrationId")
    if not registration_id:
        return None
    row = _unwrap(repository.get_registration(registration_id))
    if row and row.get("stripe_session_id") not in (None, session.get("id")):
        if accept_replaced and row.get("payment_status") != PaymentStatus.PAID.value:
            logger.info(
                "payments.webhook session remplacée %s payée pour l'inscription %s (session courante %s)",
                session.get("id"), registration_id, row.get("stripe_session_id"),
            )
            return row
        logger.warning(
            "payments.webhook session %s ne correspond pas à l'inscription %s (%s)",
            session.get("id"), registration_id, row.get("stripe_session_id"),
        )
        return None
    return row

def build_confirmation_data(registration: Dict[str, Any], qr_code: Optional[str], ticket_code: Optional[str]) -> Dict[str, Any]:
    """registration porte event/category (get_registration_with_details)."""
    snapshot = registration.get("registration_data") or {}
    holder = snapshot.get("user") or {}
    event = registration.get("event") or {}
    category = registration.get("category") or {}
    return {
        "participant_name": holder.get("name") or "",
        "event_title": event.get("title") or "",
        "event_date": event.get("event_date") or "",
        "event_location": event.get("location") or "",
        "category_name": category.get("name") or "",
        "shirt_size": registration.get("shirt_size") or "",
        "amount_paid": registration.get("amount_paid"),
        "ticket_code": ticket_code or "",
        "qr_code": qr_code,
        "partner": snapshot.get("partner"),
    }

def recipient_for(registration: Dict[str, Any], fallback: Optional[str] = None) -> Optional[str]:
    holder = (registration.get("registration_data") or {}).get("user") or {}
    return holder.get("email") or fallback

def finalize_confirmed(registration: Dict[str, Any], *, send_email: bool, fallback_email: Optional[str] = None) -> bool:
    """
    Billet (au plus une émission) puis email de confirmation (best-effort).
    Retourne True si un billet a été émis par cet appel.
    """
    details = _unwrap(repository.get_registration_with_details(registration["id"])) or {}
    details.update(registration)
    event = details.get("event") or {}
    qr_code, ticket_code, issued = ensure_ticket(registration, event.get("slug"))
    if send_email:
        send_confirmation_safely(
            recipient_for(registration, fallback_email),
            build_confirmation_data(details, qr_code, ticket_code),
        )
    return issued

def _on_checkout_completed(session: Dict[str, Any]) -> str:
    if meta.is_photo_order(session):
        return photos_service.reconcile_completed(session)
    if session.get("payment_status") not in (None, "paid", "no_payment_required"):
        # Paiement différé (boleto...): la confirmation viendra d'un événement ultérieur
        logger.info("payments.webhook session=%s payment_status=%s", session.get("id"), session.get("payment_status"))
        return "awaiting_payment"

    registration = _find_for_session(session, accept_replaced=True)
    if not registration:
        logger.warning("payments.webhook inscription introuvable session=%s", session.get("id"))
        return "registration_not_found"
    if registration.get("payment_status") == PaymentStatus.PAID.value:
        # Relivraison: seulement compléter un billet manquant
        if not registration.get("qr_code"):
            finalize_confirmed(registration, send_email=False)
        return "already_paid"

    confirmed = repository.confirm_registration(
        registration["id"], meta.payment_intent_id(session), session.get("id"),
    )
    row = _unwrap(confirmed)
    if not confirmed.changed:
        if row and row.get("status") == RegistrationStatus.CANCELLED.value:
            logger.error("payments.webhook paiement reçu pour une inscription annulée id=%s", registration["id"])
            return "registration_cancelled"
        return "already_paid"

    logger.info("payments.confirmed registration=%s", registration["id"])
    finalize_confirmed(row, send_email=True, fallback_email=meta.session_customer_email(session))
    return "registration_confirmed"

def _on_checkout_expired(session: Dict[str, Any]) -> str:
    if meta.is_photo_order(session):
        return photos_service.reconcile_expired(session)
    registration = _find_for_session(session)
    if not registration:
        return "registration_not_found"
    result = repository.update_payment_status(
        registration["id"],
        RegistrationStatus.CANCELLED,
        PaymentStatus.FAILED,
        unless_paid=True,
    )
    _unwrap(result)
    return "registration_cancelled" if result.changed else "unchanged"

def _on_payment_failed(intent: Dict[str, Any]) -> str:
    if meta.is_photo_order(intent):
        return "ignored"
    registration = _unwrap(repository.get_registration_by_payment_intent(intent.get("id")))
    if not registration:
        registration_id = meta.object_metadata(intent).get("registrationId")
        registration = _unwrap(repository.get_registration(registration_id)) if registration_id else None
    if not registration:
        return "registration_not_found"
    result = repository.update_payment_status(
        registration["id"],
        RegistrationStatus.PENDING,
        PaymentStatus.FAILED,
        intent.get("id"),
        unless_paid=True,
    )
    _unwrap(result)
    return "payment_failed" if result.changed else "unchanged"

HANDLERS: Dict[str, Callable[[Dict[str, Any]], str]] = {
    "checkout.session.completed": _on_checkout_completed,
    "checkout.session.async_payment_succeeded": _on_checkout_completed,
    "checkout.session.expired": _on_checkout_expired,
    "payment_intent.payment_failed": _on_payment_failed,
}

def handle_event(event: Dict[str, Any]) -> Dict[str, Any]:
    event_type = (event or {}).get("type") or ""
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("payments.webhook type=%s ignoré", event_type)
        return {"received": True, "action": "ignored"}
    action = handler(meta.event_object(event))
    logger.info("payments.webhook type=%s id=%s action=%s", event_type, event.get("id"), action)
    return {"received": True, "action": action}
