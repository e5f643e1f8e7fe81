"""
Émission du billet d'une inscription confirmée: code lisible + QR code.
- Le code billet est déterministe ({SLUG}-{8 premiers caractères de l'id}), donc rejouable
- Le QR n'est écrit qu'une seule fois (mise à jour conditionnelle qr_code IS NULL)
"""
from typing import Any, Dict, Optional, Tuple
import logging

from ticketing.registrations import repository
from ticketing.utils.qrcode_utils import generate_qr_code

logger = logging.getLogger(__name__)

def build_ticket_code(event_slug: Optional[str], registration_id: str) -> str:
    slug = (event_slug or "").strip().upper() or "EVENT"
    return f"{slug}-{str(registration_id)[:8].upper()}"

def issue_ticket_artifact(ticket_code: str) -> str:
    return generate_qr_code(ticket_code, box_size=10, border=2)

def ensure_ticket(registration: Dict[str, Any], event_slug: Optional[str]) -> Tuple[Optional[str], Optional[str], bool]:
    """
    Garantit qu'une inscription possède son billet, au plus une émission.
    Retour: (qr_code, ticket_code, issued) où issued=True seulement si CET appel a écrit le QR.
    """
    registration_id = registration["id"]
    ticket_code = registration.get("ticket_code") or build_ticket_code(event_slug, registration_id)

    if registration.get("qr_code"):
        if not registration.get("ticket_code"):
            repository.set_ticket_code(registration_id, ticket_code)
        return registration["qr_code"], ticket_code, False

    try:
        qr_code = issue_ticket_artifact(ticket_code)
    except Exception:
        logger.exception("Génération du QR code impossible pour l'inscription %s", registration_id)
        return None, ticket_code, False

    stored = repository.set_ticket_artifact(registration_id, qr_code, ticket_code)
    if stored.changed:
        logger.info("tickets.issued registration=%s code=%s", registration_id, ticket_code)
        return qr_code, ticket_code, True

    # Déjà émis par un appel concurrent: on relit la version stockée
    current = repository.get_registration(registration_id)
    row = current.data or {}
    return row.get("qr_code"), row.get("ticket_code") or ticket_code, False
