# module ticketing.registrations.repository
"""
Store des réservations (Supabase, client service role).

Toutes les fonctions retournent un StoreResult et ne lèvent jamais:
- lectures: data = ligne ou None, error si l'accès base a échoué
- écritures: mises à jour conditionnelles (filtres PostgREST) pour que seul
  l'appel qui effectue réellement une transition obtienne changed=True
- capacité: uniquement via les RPC reserve_/release_registration_capacity
  (UPDATE conditionnel côté Postgres, jamais lecture puis écriture ici)
"""
from typing import Any, Dict, Optional
import logging

from postgrest.exceptions import APIError

from ticketing.config import ZERO_CAPACITY_IS_UNLIMITED
from ticketing.infra.supabase_client import get_service_supabase
from ticketing.registrations.models import (
    CAPACITY_CODES,
    PaymentStatus,
    RegistrationData,
    RegistrationStatus,
    StoreResult,
    capacity_units,
)

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

CAPACITY_MESSAGES = {
    "CATEGORY_FULL": "Esta categoria está esgotada.",
    "EVENT_FULL": "Este evento está esgotado.",
    "INSUFFICIENT_CAPACITY_FOR_PAIR": "Não há vagas suficientes para inscrição em dupla.",
}

def _registrations():
    return get_service_supabase().table("registrations")

def _first(res) -> Optional[Dict[str, Any]]:
    rows = getattr(res, "data", None) or []
    return rows[0] if rows else None

def _is_unique_violation(e: Exception) -> bool:
    return isinstance(e, APIError) and str(getattr(e, "code", "") or "") == UNIQUE_VIOLATION

# --- Lectures ---

def get_event(event_id: str) -> StoreResult:
    try:
        res = get_service_supabase().table("events").select("*").eq("id", event_id).limit(1).execute()
        return StoreResult(data=_first(res))
    except Exception as e:
        logger.exception("Erreur get_event id=%s", event_id)
        return StoreResult(error=str(e))

def get_category(category_id: str) -> StoreResult:
    try:
        res = get_service_supabase().table("event_categories").select("*").eq("id", category_id).limit(1).execute()
        return StoreResult(data=_first(res))
    except Exception as e:
        logger.exception("Erreur get_category id=%s", category_id)
        return StoreResult(error=str(e))

def get_registration(registration_id: str) -> StoreResult:
    try:
        res = _registrations().select("*").eq("id", registration_id).limit(1).execute()
        return StoreResult(data=_first(res))
    except Exception as e:
        logger.exception("Erreur get_registration id=%s", registration_id)
        return StoreResult(error=str(e))

def get_registration_by_session(session_id: str) -> StoreResult:
    if not session_id:
        return StoreResult()
    try:
        res = _registrations().select("*").eq("stripe_session_id", session_id).limit(1).execute()
        return StoreResult(data=_first(res))
    except Exception as e:
        logger.exception("Erreur get_registration_by_session session=%s", session_id)
        return StoreResult(error=str(e))

def get_registration_by_payment_intent(payment_intent_id: str) -> StoreResult:
    if not payment_intent_id:
        return StoreResult()
    try:
        res = _registrations().select("*").eq("stripe_payment_intent_id", payment_intent_id).limit(1).execute()
        return StoreResult(data=_first(res))
    except Exception as e:
        logger.exception("Erreur get_registration_by_payment_intent pi=%s", payment_intent_id)
        return StoreResult(error=str(e))

def find_active_registration(user_id: str, event_id: str, category_id: str) -> StoreResult:
    """Inscription non annulée la plus récente pour le triplet (utilisateur, événement, catégorie)."""
    try:
        res = (
            _registrations()
            .select("*")
            .eq("user_id", user_id)
            .eq("event_id", event_id)
            .eq("category_id", category_id)
            .neq("status", RegistrationStatus.CANCELLED.value)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return StoreResult(data=_first(res))
    except Exception as e:
        logger.exception("Erreur find_active_registration user=%s event=%s", user_id, event_id)
        return StoreResult(error=str(e))

def get_registration_with_details(registration_id: str) -> StoreResult:
    """
    Inscription + événement + catégorie (lectures séparées, pas de jointure imbriquée).
    Une lecture en échec est propagée: billet et email ne partent pas sur des données partielles.
    """
    found = get_registration(registration_id)
    if not found.ok or not found.data:
        return found
    row = dict(found.data)
    event = get_event(row.get("event_id"))
    if not event.ok:
        return event
    category = get_category(row.get("category_id"))
    if not category.ok:
        return category
    row["event"] = event.data
    row["category"] = category.data
    return StoreResult(data=row)

# --- Capacité ---

def reserve_capacity(event_id: str, category_id: str, units: int) -> StoreResult:
    """
    Réserve atomiquement `units` places (catégorie puis événement).
    - code = OK | CATEGORY_FULL | EVENT_FULL | INSUFFICIENT_CAPACITY_FOR_PAIR
    - error renseigné dès que la réservation n'a pas eu lieu
    """
    try:
        res = get_service_supabase().rpc(
            "reserve_registration_capacity",
            {
                "p_event_id": event_id,
                "p_category_id": category_id,
                "p_units": units,
                "p_zero_is_unlimited": ZERO_CAPACITY_IS_UNLIMITED,
            },
        ).execute()
    except Exception as e:
        logger.exception("Erreur reserve_capacity event=%s category=%s", event_id, category_id)
        return StoreResult(error=str(e))
    code = res.data if isinstance(res.data, str) else str(res.data or "")
    if code == "OK":
        return StoreResult(changed=True, code="OK")
    if code in CAPACITY_CODES:
        return StoreResult(error=CAPACITY_MESSAGES[code], code=code)
    logger.error("reserve_capacity: réponse inattendue %r", res.data)
    return StoreResult(error="Resposta inesperada da reserva de vagas")

def release_capacity(event_id: str, category_id: str, units: int) -> StoreResult:
    try:
        get_service_supabase().rpc(
            "release_registration_capacity",
            {"p_event_id": event_id, "p_category_id": category_id, "p_units": units},
        ).execute()
        return StoreResult(changed=True)
    except Exception as e:
        # Compteur surestimé: à corriger par un recalcul côté base
        logger.exception("Erreur release_capacity event=%s category=%s units=%s", event_id, category_id, units)
        return StoreResult(error=str(e))

# --- Création / réutilisation ---

def _registration_fields(
    *,
    shirt_size: str,
    amount: float,
    stripe_session_id: Optional[str],
    partner_name: Optional[str],
    partner_data: Optional[Dict[str, Any]],
    user_data: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    snapshot = RegistrationData(user=user_data, partner=partner_data)
    fields: Dict[str, Any] = {
        "shirt_size": shirt_size,
        "amount_paid": amount,
        "partner_name": partner_name or None,
        "is_partner_registration": bool(partner_name),
        "registration_data": snapshot.to_storage() or None,
    }
    if stripe_session_id:
        fields["stripe_session_id"] = stripe_session_id
    return fields

def _reuse_pending(row: Dict[str, Any], fields: Dict[str, Any]) -> StoreResult:
    """
    Remet une tentative en attente à jour (montant, taille, duo, instantané) en pending/pending.
    Le delta de capacité est réservé/libéré si le mode duo change.
    """
    event_id, category_id = row.get("event_id"), row.get("category_id")
    delta = capacity_units(fields["is_partner_registration"]) - capacity_units(bool(row.get("is_partner_registration")))
    if delta > 0:
        reserved = reserve_capacity(event_id, category_id, delta)
        if not reserved.ok:
            return reserved
    values = dict(fields)
    values.update({
        "status": RegistrationStatus.PENDING.value,
        "payment_status": PaymentStatus.PENDING.value,
    })
    try:
        res = (
            _registrations()
            .update(values)
            .eq("id", row["id"])
            .eq("status", RegistrationStatus.PENDING.value)
            .execute()
        )
        updated = _first(res)
    except Exception as e:
        logger.exception("Erreur mise à jour inscription pending id=%s", row.get("id"))
        if delta > 0:
            release_capacity(event_id, category_id, delta)
        return StoreResult(error=str(e))

    if not updated:
        # Confirmée ou annulée entre-temps
        if delta > 0:
            release_capacity(event_id, category_id, delta)
        current = get_registration(row["id"])
        if current.ok and current.data and current.data.get("status") == RegistrationStatus.CONFIRMED.value:
            return StoreResult(data=current.data)
        return StoreResult(error="Estado de inscrição conflitante")

    if delta < 0:
        release_capacity(event_id, category_id, -delta)
    logger.info("registrations.reuse id=%s pair=%s", row.get("id"), fields["is_partner_registration"])
    return StoreResult(data=updated, changed=True)

def _resolve_existing(row: Dict[str, Any], fields: Dict[str, Any]) -> StoreResult:
    status = row.get("status")
    if status == RegistrationStatus.CONFIRMED.value:
        return StoreResult(data=row)
    if status == RegistrationStatus.PENDING.value:
        return _reuse_pending(row, fields)
    logger.error("Inscription id=%s dans un état inattendu: %s", row.get("id"), status)
    return StoreResult(data=row, error="Estado de inscrição conflitante")

def create_or_reuse_registration(
    *,
    user_id: str,
    event_id: str,
    category_id: str,
    shirt_size: str,
    amount: float,
    stripe_session_id: Optional[str] = None,
    partner_name: Optional[str] = None,
    partner_data: Optional[Dict[str, Any]] = None,
    user_data: Optional[Dict[str, Any]] = None,
) -> StoreResult:
    """
    Crée (ou réutilise) l'inscription du triplet utilisateur/événement/catégorie.
    - confirmée: renvoyée telle quelle (changed=False), aucun effet de bord
    - en attente: mise à jour en place et remise à pending/pending
    - absente: réservation atomique des places puis insertion pending/pending;
      échec d'insertion => libération des places (compensation);
      doublon concurrent (23505) => libération puis réutilisation de la ligne gagnante
    - données partenaire: profil partenaire créé/complété (best-effort)
    """
    try:
        fields = _registration_fields(
            shirt_size=shirt_size,
            amount=amount,
            stripe_session_id=stripe_session_id,
            partner_name=partner_name,
            partner_data=partner_data,
            user_data=user_data,
        )
    except ValueError as e:
        return StoreResult(error=f"Dados de inscrição inválidos: {e}")

    if partner_data:
        from ticketing.users import repository as users_repo
        users_repo.upsert_partner_profile(partner_data)

    existing = find_active_registration(user_id, event_id, category_id)
    if not existing.ok:
        return existing
    if existing.data:
        return _resolve_existing(existing.data, fields)

    units = capacity_units(fields["is_partner_registration"])
    reserved = reserve_capacity(event_id, category_id, units)
    if not reserved.ok:
        return reserved

    row = dict(fields)
    row.update({
        "user_id": user_id,
        "event_id": event_id,
        "category_id": category_id,
        "status": RegistrationStatus.PENDING.value,
        "payment_status": PaymentStatus.PENDING.value,
    })
    try:
        res = _registrations().insert(row).execute()
        created = _first(res)
    except Exception as e:
        release_capacity(event_id, category_id, units)
        if _is_unique_violation(e):
            logger.info("registrations.duplicate user=%s event=%s category=%s", user_id, event_id, category_id)
            winner = find_active_registration(user_id, event_id, category_id)
            if winner.ok and winner.data:
                return _resolve_existing(winner.data, fields)
            return StoreResult(error="Inscrição duplicada")
        logger.exception("Erreur insertion inscription user=%s event=%s", user_id, event_id)
        return StoreResult(error=str(e))

    if not created:
        release_capacity(event_id, category_id, units)
        return StoreResult(error="Inscrição não criada")
    logger.info("registrations.created id=%s units=%s", created.get("id"), units)
    return StoreResult(data=created, changed=True)

# --- Transitions ---

def link_payment_session(registration_id: str, session_id: str) -> StoreResult:
    """Associe la session de paiement; refusé si l'inscription n'est plus en attente."""
    try:
        res = (
            _registrations()
            .update({"stripe_session_id": session_id})
            .eq("id", registration_id)
            .eq("status", RegistrationStatus.PENDING.value)
            .execute()
        )
        row = _first(res)
    except Exception as e:
        logger.exception("Erreur link_payment_session id=%s", registration_id)
        return StoreResult(error=str(e))
    if not row:
        return StoreResult(error="Inscrição não está mais pendente")
    return StoreResult(data=row, changed=True)

def confirm_registration(
    registration_id: str,
    payment_intent_id: Optional[str] = None,
    session_id: Optional[str] = None,
) -> StoreResult:
    """
    Transition pending -> confirmed/paid (compare-and-set sur payment_status <> 'paid').
    changed=True uniquement pour l'appel qui a réalisé la transition.
    session_id: session effectivement payée (peut différer de la dernière liée).
    """
    values: Dict[str, Any] = {
        "status": RegistrationStatus.CONFIRMED.value,
        "payment_status": PaymentStatus.PAID.value,
    }
    if payment_intent_id:
        values["stripe_payment_intent_id"] = payment_intent_id
    if session_id:
        values["stripe_session_id"] = session_id
    try:
        res = (
            _registrations()
            .update(values)
            .eq("id", registration_id)
            .neq("payment_status", PaymentStatus.PAID.value)
            .neq("status", RegistrationStatus.CANCELLED.value)
            .execute()
        )
        row = _first(res)
    except Exception as e:
        logger.exception("Erreur confirm_registration id=%s", registration_id)
        return StoreResult(error=str(e))
    if row:
        return StoreResult(data=row, changed=True)
    current = get_registration(registration_id)
    if not current.ok:
        return current
    if not current.data:
        return StoreResult(error="Inscrição não encontrada")
    return StoreResult(data=current.data)

def update_payment_status(
    registration_id: str,
    status: str,
    payment_status: str,
    payment_intent_id: Optional[str] = None,
    *,
    unless_paid: bool = False,
) -> StoreResult:
    """
    Met à jour (status, payment_status) de manière idempotente.
    - déjà dans l'état cible: no-op (changed=False)
    - unless_paid: jamais appliqué sur une inscription payée
    - cancelled est terminal: ses places sont déjà libérées, aucune sortie possible
    - passage à 'cancelled': libère les places réservées
    """
    status = getattr(status, "value", status)
    payment_status = getattr(payment_status, "value", payment_status)
    current = get_registration(registration_id)
    if not current.ok:
        return current
    row = current.data
    if not row:
        return StoreResult(error="Inscrição não encontrada")

    same_state = row.get("status") == status and row.get("payment_status") == payment_status
    if same_state and (not payment_intent_id or row.get("stripe_payment_intent_id") == payment_intent_id):
        return StoreResult(data=row)
    if unless_paid and row.get("payment_status") == PaymentStatus.PAID.value:
        logger.info("registrations.skip_paid id=%s target=%s/%s", registration_id, status, payment_status)
        return StoreResult(data=row)
    if row.get("status") == RegistrationStatus.CANCELLED.value and status != RegistrationStatus.CANCELLED.value:
        logger.info("registrations.skip_cancelled id=%s target=%s/%s", registration_id, status, payment_status)
        return StoreResult(data=row)

    values: Dict[str, Any] = {"status": status, "payment_status": payment_status}
    if payment_intent_id:
        values["stripe_payment_intent_id"] = payment_intent_id
    try:
        query = (
            _registrations()
            .update(values)
            .eq("id", registration_id)
            .eq("status", row.get("status"))
            .eq("payment_status", row.get("payment_status"))
        )
        if unless_paid:
            query = query.neq("payment_status", PaymentStatus.PAID.value)
        updated = _first(query.execute())
    except Exception as e:
        logger.exception("Erreur update_payment_status id=%s", registration_id)
        return StoreResult(error=str(e))

    if not updated:
        # Modifiée concurremment: on renvoie l'état courant sans rejouer
        latest = get_registration(registration_id)
        return StoreResult(data=latest.data, error=latest.error)

    if status == RegistrationStatus.CANCELLED.value and row.get("status") != RegistrationStatus.CANCELLED.value:
        release_capacity(
            row.get("event_id"),
            row.get("category_id"),
            capacity_units(bool(row.get("is_partner_registration"))),
        )
    logger.info(
        "registrations.status id=%s %s/%s -> %s/%s",
        registration_id, row.get("status"), row.get("payment_status"), status, payment_status,
    )
    return StoreResult(data=updated, changed=True)

def set_ticket_artifact(registration_id: str, qr_code: str, ticket_code: str) -> StoreResult:
    """Enregistre QR + code billet seulement si aucun QR n'existe encore."""
    try:
        res = (
            _registrations()
            .update({"qr_code": qr_code, "ticket_code": ticket_code})
            .eq("id", registration_id)
            .is_("qr_code", "null")
            .execute()
        )
        row = _first(res)
    except Exception as e:
        logger.exception("Erreur set_ticket_artifact id=%s", registration_id)
        return StoreResult(error=str(e))
    return StoreResult(data=row, changed=row is not None)

def set_ticket_code(registration_id: str, ticket_code: str) -> StoreResult:
    """Complète le code billet d'une inscription qui a déjà un QR mais pas de code."""
    try:
        res = (
            _registrations()
            .update({"ticket_code": ticket_code})
            .eq("id", registration_id)
            .is_("ticket_code", "null")
            .execute()
        )
        row = _first(res)
    except Exception as e:
        logger.exception("Erreur set_ticket_code id=%s", registration_id)
        return StoreResult(error=str(e))
    return StoreResult(data=row, changed=row is not None)
