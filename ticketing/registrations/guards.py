# module ticketing.registrations.guards
"""
Garde d'éligibilité: refus rapide avant toute écriture.

Ordre des règles (court-circuit au premier refus):
  0) événement publié et ouvert aux inscriptions, catégorie rattachée à l'événement
  1) fenêtre d'inscription (REGISTRATION_NOT_OPEN / REGISTRATION_CLOSED)
  2) doublon: inscription confirmée existante (ALREADY_REGISTERED). Une inscription
     pending n'est pas un doublon: c'est une tentative reprise par le store
     (create_or_reuse_registration), ses places déjà tenues sont créditées en 4) et 5).
     Refuser aussi pending rendrait impossible la reprise d'un checkout orphelin.
  3) duo autorisé par l'événement (PAIR_NOT_ALLOWED)
  4) capacité catégorie (CATEGORY_FULL / INSUFFICIENT_CAPACITY_FOR_PAIR)
  5) capacité événement (EVENT_FULL / INSUFFICIENT_CAPACITY_FOR_PAIR)

La garde lit un instantané: deux requêtes concurrentes peuvent toutes deux passer.
La seule barrière fiable est la réservation atomique du store (reserve_capacity).
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
import logging

from ticketing.config import ZERO_CAPACITY_IS_UNLIMITED
from ticketing.registrations import repository
from ticketing.registrations.models import (
    GuardCode,
    GuardResult,
    RegistrationStatus,
    capacity_units,
)

logger = logging.getLogger(__name__)

VALIDATION_ERROR = "VALIDATION_ERROR"
OPEN_EVENT_STATUSES = ("published", "published_no_registration")

def http_status_for(error_code: Optional[str]) -> int:
    if error_code == GuardCode.ALREADY_REGISTERED.value:
        return 409
    if error_code in (GuardCode.EVENT_NOT_FOUND.value, GuardCode.CATEGORY_NOT_FOUND.value):
        return 404
    if error_code == VALIDATION_ERROR:
        return 500
    return 400

def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Horodatage illisible: %r", value)
            return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)

def is_unlimited(max_participants: Any) -> bool:
    if max_participants is None:
        return True
    if int(max_participants) == 0 and ZERO_CAPACITY_IS_UNLIMITED:
        logger.warning("max_participants=0 interprété comme illimité")
        return True
    return False

def _window_refusal(event: Dict[str, Any], now: datetime) -> Optional[GuardResult]:
    start = parse_timestamp(event.get("registration_start"))
    end = parse_timestamp(event.get("registration_end"))
    if start and now < start:
        return GuardResult.refuse(GuardCode.REGISTRATION_NOT_OPEN, "As inscrições ainda não foram abertas.")
    if end and now > end:
        return GuardResult.refuse(GuardCode.REGISTRATION_CLOSED, "As inscrições para este evento foram encerradas.")
    return None

def _capacity_refusal(
    row: Dict[str, Any],
    units: int,
    held: int,
    full_code: GuardCode,
    full_message: str,
) -> Optional[GuardResult]:
    max_participants = row.get("max_participants")
    if is_unlimited(max_participants):
        return None
    limit = int(max_participants)
    # Les places déjà tenues par une tentative en attente sont réutilisées
    current = max(int(row.get("current_participants") or 0) - held, 0)
    if current >= limit:
        return GuardResult.refuse(full_code, full_message)
    if current + units > limit:
        return GuardResult.refuse(
            GuardCode.INSUFFICIENT_CAPACITY_FOR_PAIR,
            "Não há vagas suficientes para inscrição em dupla.",
        )
    return None

def validate_registration(
    event_id: str,
    category_id: str,
    user_id: str,
    is_pair: bool = False,
    now: Optional[datetime] = None,
) -> GuardResult:
    event_res = repository.get_event(event_id)
    category_res = repository.get_category(category_id)
    if not event_res.ok or not category_res.ok:
        return GuardResult(False, "Erro ao validar inscrição.", VALIDATION_ERROR)

    event = event_res.data
    if not event or event.get("status") not in OPEN_EVENT_STATUSES:
        return GuardResult.refuse(GuardCode.EVENT_NOT_FOUND, "Evento não encontrado.")
    if event.get("status") == "published_no_registration":
        return GuardResult.refuse(GuardCode.REGISTRATION_NOT_ALLOWED, "Este evento não aceita inscrições.")
    category = category_res.data
    if not category or str(category.get("event_id")) != str(event_id):
        return GuardResult.refuse(GuardCode.CATEGORY_NOT_FOUND, "Categoria não encontrada.")

    refusal = _window_refusal(event, _now(now))
    if refusal:
        return refusal

    existing_res = repository.find_active_registration(user_id, event_id, category_id)
    if not existing_res.ok:
        return GuardResult(False, "Erro ao validar inscrição.", VALIDATION_ERROR)
    existing = existing_res.data
    held = 0
    if existing:
        if existing.get("status") == RegistrationStatus.CONFIRMED.value:
            return GuardResult.refuse(GuardCode.ALREADY_REGISTERED, "Você já está inscrito nesta categoria.")
        if existing.get("status") == RegistrationStatus.PENDING.value:
            held = capacity_units(bool(existing.get("is_partner_registration")))

    if is_pair and not event.get("allows_pair_registration"):
        return GuardResult.refuse(GuardCode.PAIR_NOT_ALLOWED, "Este evento não permite inscrição em dupla.")

    units = capacity_units(is_pair)
    refusal = _capacity_refusal(category, units, held, GuardCode.CATEGORY_FULL, "Esta categoria está esgotada.")
    if refusal:
        return refusal
    refusal = _capacity_refusal(event, units, held, GuardCode.EVENT_FULL, "Este evento está esgotado.")
    if refusal:
        return refusal
    return GuardResult.ok()

def is_registration_window_open(event_id: str, now: Optional[datetime] = None) -> Tuple[bool, Optional[str]]:
    """Vérification rapide de la fenêtre seule (pages publiques, pré-contrôles)."""
    event_res = repository.get_event(event_id)
    if not event_res.ok or not event_res.data:
        return False, "Evento não encontrado."
    refusal = _window_refusal(event_res.data, _now(now))
    if refusal:
        return False, refusal.error
    return True, None

def _spots(row: Optional[Dict[str, Any]]) -> Optional[int]:
    if not row:
        return 0
    if is_unlimited(row.get("max_participants")):
        return None
    return max(int(row["max_participants"]) - int(row.get("current_participants") or 0), 0)

def get_available_spots(event_id: str, category_id: Optional[str] = None) -> Dict[str, Optional[int]]:
    """Places restantes (None = illimité) pour l'événement et, si fournie, la catégorie."""
    event_res = repository.get_event(event_id)
    result: Dict[str, Optional[int]] = {"event_spots": _spots(event_res.data if event_res.ok else None)}
    if category_id:
        category_res = repository.get_category(category_id)
        result["category_spots"] = _spots(category_res.data if category_res.ok else None)
    return result
