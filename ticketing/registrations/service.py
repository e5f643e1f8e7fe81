"""
Cas d'usage 'inscriptions': checkout payant et inscription gratuite.

create_checkout_session (payant):
  1) validation structurelle du corps (tailles, CPF, téléphone, duo)
  2) identité: utilisateur authentifié prioritaire, sinon compte « fantôme » par email
  3) événement publié + catégorie de l'événement, prix recalculé côté serveur (coupon inclus)
  4) garde d'éligibilité (refus rapide)
  5) profil complété (best-effort)
  6) inscription créée/réutilisée (réservation atomique des places)
  7) utilisation du coupon enregistrée
  8) session Stripe créée puis liée à l'inscription

create_free_registration (gratuit): mêmes étapes 1-6 puis confirmation directe,
billet et email; un second appel pour une inscription déjà confirmée ne modifie rien.

Les deux fonctions ne lèvent jamais: elles retournent un ServiceResponse (code HTTP + corps JSON).
"""
from typing import Any, Dict, Optional, Tuple
import logging

from ticketing.config import BASE_URL, CHECKOUT_SUCCESS_PATH, CHECKOUT_CANCEL_PATH
from ticketing.coupons import service as coupons_service
from ticketing.payments import metadata as meta
from ticketing.payments import stripe_client
from ticketing.payments.service import finalize_confirmed
from ticketing.pricing.fees import amounts_differ, compute_service_fee, compute_total, round_money, to_cents
from ticketing.registrations import guards, repository
from ticketing.registrations.models import (
    ALLOWED_SHIRT_SIZES,
    CAPACITY_CODES,
    GENERIC_ERROR,
    VALID_SHIRT_GENDERS,
    CheckoutError,
    GuardCode,
    PaymentStatus,
    RegistrationStatus,
    ServiceResponse,
)
from ticketing.users import repository as users_repo
from ticketing.utils.validators import normalize_email, only_digits, validate_cpf, validate_email, validate_phone

logger = logging.getLogger(__name__)

PRICE_MISMATCH = "Os valores informados não conferem. Recarregue a página e tente novamente."
FREE_EVENT_TYPES = ("free", "solidarity")

# --- Validation du corps ---

def _participant(raw: Any, label: str, shirt_size: Optional[str], check_email: bool = True) -> Dict[str, Any]:
    data = raw if isinstance(raw, dict) else {}
    participant = {
        "name": str(data.get("name") or "").strip(),
        "email": normalize_email(data.get("email")),
        "cpf": str(data.get("cpf") or "").strip(),
        "phone": str(data.get("phone") or "").strip(),
        "shirtSize": str(data.get("shirtSize") or "").strip().upper(),
    }
    if not all(participant.values()):
        raise CheckoutError(f"Dados {label} incompletos.")
    if check_email and not validate_email(participant["email"]):
        raise CheckoutError(f"Email {label} inválido.")
    if not validate_cpf(participant["cpf"]):
        raise CheckoutError(f"CPF {label} inválido.")
    if not validate_phone(participant["phone"]):
        raise CheckoutError(f"Telefone {label} inválido.")
    if participant["shirtSize"] not in ALLOWED_SHIRT_SIZES:
        raise CheckoutError(f"Tamanho de camiseta {label} inválido.")
    if shirt_size and participant["shirtSize"] != shirt_size:
        raise CheckoutError("O tamanho da camiseta do participante não confere.")
    gender = str(data.get("shirtGender") or "").strip().lower()
    if gender:
        if gender not in VALID_SHIRT_GENDERS:
            raise CheckoutError(f"Modelo de camiseta {label} inválido.")
        participant["shirtGender"] = gender
    participant["cpf"] = only_digits(participant["cpf"])
    participant["phone"] = only_digits(participant["phone"])
    return participant

def validate_registration_payload(body: Dict[str, Any], require_prices: bool = True) -> Dict[str, Any]:
    """
    Valide et normalise le corps d'une demande d'inscription:
      {eventId, categoryId, shirtSize, shirtGender?, userName, userEmail, userData,
       partnerName?, partnerData?, subtotal, serviceFee, total, couponCode?}
    Les montants ne sont exigés que pour le checkout payant.
    Lève CheckoutError(400) au premier problème rencontré.
    """
    event_id = str(body.get("eventId") or "").strip()
    category_id = str(body.get("categoryId") or "").strip()
    shirt_size = str(body.get("shirtSize") or "").strip().upper()
    user_name = str(body.get("userName") or "").strip()
    user_email = normalize_email(body.get("userEmail"))
    user_data = body.get("userData")
    if not (event_id and category_id and shirt_size and user_name and user_email) \
            or not isinstance(user_data, dict) or not user_data:
        raise CheckoutError("Dados incompletos para a inscrição.")
    prices: Dict[str, float] = {}
    if require_prices:
        for key in ("subtotal", "serviceFee", "total"):
            value = body.get(key)
            if value is None or isinstance(value, bool):
                raise CheckoutError("Dados incompletos para a inscrição.")
            try:
                prices[key] = float(value)
            except (TypeError, ValueError):
                raise CheckoutError("Valores inválidos.")
    if shirt_size not in ALLOWED_SHIRT_SIZES:
        raise CheckoutError("Tamanho de camiseta inválido.")

    # Le titulaire est identifié par userName/userEmail, userData porte le reste
    participant = _participant(user_data, "do participante", shirt_size, check_email=False)
    participant["name"] = user_name
    participant["email"] = user_email
    shirt_gender = str(body.get("shirtGender") or "").strip().lower()
    if "shirtGender" not in participant and shirt_gender in VALID_SHIRT_GENDERS:
        participant["shirtGender"] = shirt_gender

    partner = None
    partner_name = None
    if body.get("partnerData"):
        # partnerName seul ne fait pas une inscription en dupla
        partner = _participant(body.get("partnerData"), "da dupla", None)
        partner_name = str(body.get("partnerName") or "").strip() or partner["name"]

    return {
        "event_id": event_id,
        "category_id": category_id,
        "shirt_size": shirt_size,
        "participant": participant,
        "partner": partner,
        "partner_name": partner_name,
        "prices": prices,
        "coupon_code": str(body.get("couponCode") or "").strip(),
    }

# --- Étapes partagées ---

def _resolve_holder(form: Dict[str, Any], auth_user: Optional[Dict[str, Any]]) -> Tuple[str, Dict[str, Any]]:
    """(user_id, données titulaire); l'email et le nom du compte authentifié priment sur le corps."""
    participant = dict(form["participant"])
    user_id = (auth_user or {}).get("id")
    if user_id:
        participant["email"] = normalize_email(auth_user.get("email")) or participant["email"]
        participant["name"] = (auth_user.get("full_name") or participant["name"]).strip()
    if not validate_email(participant["email"]):
        raise CheckoutError("Informe um e-mail válido.")
    if user_id:
        return user_id, participant
    holder = users_repo.get_or_create_checkout_user(participant["email"], participant["name"])
    if not holder or not holder.get("id"):
        raise CheckoutError("Não foi possível identificar o participante. Faça login e tente novamente.", 401)
    return holder["id"], participant

def _load_event_and_category(event_id: str, category_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    event_res = repository.get_event(event_id)
    category_res = repository.get_category(category_id)
    if not event_res.ok or not category_res.ok:
        raise CheckoutError(GENERIC_ERROR, 500)
    event = event_res.data
    if not event or event.get("status") != "published":
        raise CheckoutError("Evento não encontrado.", 404, GuardCode.EVENT_NOT_FOUND.value)
    category = category_res.data
    if not category or str(category.get("event_id")) != str(event_id):
        raise CheckoutError("Categoria não encontrada.", 404, GuardCode.CATEGORY_NOT_FOUND.value)
    return event, category

def _check_guard(form: Dict[str, Any], user_id: str) -> None:
    result = guards.validate_registration(
        form["event_id"], form["category_id"], user_id, is_pair=bool(form["partner"]),
    )
    if not result.valid:
        raise CheckoutError(result.error or GENERIC_ERROR, guards.http_status_for(result.error_code), result.error_code)

def _store_registration(form: Dict[str, Any], user_id: str, participant: Dict[str, Any], amount: float) -> Dict[str, Any]:
    partner = form["partner"]
    stored = repository.create_or_reuse_registration(
        user_id=user_id,
        event_id=form["event_id"],
        category_id=form["category_id"],
        shirt_size=form["shirt_size"],
        amount=amount,
        partner_name=form["partner_name"],
        partner_data=partner,
        user_data=participant,
    )
    if not stored.ok:
        if stored.code in CAPACITY_CODES:
            raise CheckoutError(stored.error, 400, stored.code)
        logger.error("Création de l'inscription impossible user=%s: %s", user_id, stored.error)
        raise CheckoutError("Erro ao criar inscrição.", 500)
    return stored.data

def _update_profile(user_id: str, participant: Dict[str, Any]) -> None:
    users_repo.update_profile_contact(
        user_id,
        full_name=participant["name"],
        cpf=participant["cpf"],
        phone=participant["phone"],
        email=participant["email"],
    )

# --- Checkout payant ---

def _server_prices(form: Dict[str, Any], event: Dict[str, Any], category: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    list_price = round_money(category.get("price"))
    coupon = None
    discount = 0.0
    if form["coupon_code"]:
        pending = repository.find_active_registration(user_id, form["event_id"], form["category_id"])
        pending_id = (pending.data or {}).get("id") if pending.ok else None
        check = coupons_service.validate_coupon(
            form["coupon_code"], event["id"], user_id, list_price, pending_registration_id=pending_id,
        )
        if not check.valid:
            if check.already_used:
                raise CheckoutError(check.error, 409, "COUPON_ALREADY_USED")
            raise CheckoutError(check.error or "Cupom inválido", 400, "INVALID_COUPON")
        coupon, discount = check, check.discount
    subtotal = round_money(list_price - discount)
    fee = compute_service_fee(subtotal)
    return {
        "list_price": list_price,
        "discount": discount,
        "subtotal": subtotal,
        "fee": fee,
        "total": compute_total(subtotal, fee),
        "coupon": coupon,
    }

def _checkout(body: Dict[str, Any], auth_user: Optional[Dict[str, Any]]) -> ServiceResponse:
    form = validate_registration_payload(body, require_prices=True)
    user_id, participant = _resolve_holder(form, auth_user)
    event, category = _load_event_and_category(form["event_id"], form["category_id"])

    server = _server_prices(form, event, category, user_id)
    client = form["prices"]
    if (
        amounts_differ(client["subtotal"], server["list_price"])
        or amounts_differ(client["serviceFee"], server["fee"])
        or amounts_differ(client["total"], server["total"])
    ):
        logger.warning(
            "checkout.price_mismatch user=%s client=%s server=%s/%s/%s",
            user_id, client, server["list_price"], server["fee"], server["total"],
        )
        raise CheckoutError(PRICE_MISMATCH, 400)
    if server["total"] <= 0:
        raise CheckoutError("Valor total inválido para pagamento.", 400, "ZERO_TOTAL")

    _check_guard(form, user_id)
    _update_profile(user_id, participant)
    registration = _store_registration(form, user_id, participant, server["total"])
    if registration.get("status") == RegistrationStatus.CONFIRMED.value:
        raise CheckoutError("Você já está inscrito nesta categoria.", 409, GuardCode.ALREADY_REGISTERED.value)

    coupon = server["coupon"]
    if coupon and not coupon.already_recorded:
        applied = coupons_service.apply_coupon(coupon.coupon["id"], user_id, registration["id"], server["discount"])
        if not applied.valid:
            if applied.already_used:
                raise CheckoutError(applied.error, 409, "COUPON_ALREADY_USED")
            raise CheckoutError(applied.error or GENERIC_ERROR, 500)

    partner = form["partner"]
    try:
        session = stripe_client.create_checkout_session(
            amount_cents=to_cents(server["total"]),
            product_name=f"{event.get('title') or 'Evento'} - {category.get('name') or 'Inscrição'}",
            description="Inscrição em dupla" if partner else "Inscrição individual",
            success_url=f"{BASE_URL}{CHECKOUT_SUCCESS_PATH}",
            cancel_url=f"{BASE_URL}{CHECKOUT_CANCEL_PATH}?event={form['event_id']}&category={form['category_id']}",
            metadata=meta.build_registration_metadata(
                registration_id=registration["id"],
                event_id=form["event_id"],
                category_id=form["category_id"],
                user_id=user_id,
                shirt_size=form["shirt_size"],
                partner=partner,
                coupon_id=coupon.coupon["id"] if coupon else None,
            ),
            customer_email=participant["email"],
            payment_intent_metadata={"registrationId": str(registration["id"])},
        )
    except Exception:
        # L'inscription reste en attente: elle sera réutilisée au prochain essai
        logger.exception("Création de la session Stripe impossible (registration=%s)", registration["id"])
        raise CheckoutError("Erro ao criar sessão de pagamento.", 500)
    if not session.get("url"):
        raise CheckoutError("Erro ao criar sessão de pagamento.", 500)

    linked = repository.link_payment_session(registration["id"], session["id"])
    if not linked.ok:
        # Le webhook retrouvera l'inscription via metadata.registrationId
        logger.warning("Session %s non liée à l'inscription %s: %s", session["id"], registration["id"], linked.error)

    logger.info(
        "checkout.session_created registration=%s session=%s total=%s",
        registration["id"], session["id"], server["total"],
    )
    return ServiceResponse(200, {
        "sessionId": session["id"],
        "url": session["url"],
        "registrationId": registration["id"],
    })

def create_checkout_session(body: Dict[str, Any], auth_user: Optional[Dict[str, Any]] = None) -> ServiceResponse:
    try:
        return _checkout(body or {}, auth_user)
    except CheckoutError as e:
        return e.to_response()
    except Exception:
        logger.exception("Erreur create_checkout_session")
        return ServiceResponse(500, {"error": GENERIC_ERROR})

# --- Inscription gratuite ---

def _free(body: Dict[str, Any], auth_user: Optional[Dict[str, Any]]) -> ServiceResponse:
    form = validate_registration_payload(body, require_prices=False)
    user_id, participant = _resolve_holder(form, auth_user)
    event, category = _load_event_and_category(form["event_id"], form["category_id"])
    if event.get("event_type") not in FREE_EVENT_TYPES:
        raise CheckoutError("Este evento não é gratuito.", 400)
    if round_money(category.get("price")) != 0:
        raise CheckoutError("Esta categoria não é gratuita.", 400)

    existing = repository.find_active_registration(user_id, form["event_id"], form["category_id"])
    if not existing.ok:
        raise CheckoutError(GENERIC_ERROR, 500)
    if existing.data and existing.data.get("status") == RegistrationStatus.CONFIRMED.value \
            and existing.data.get("payment_status") == PaymentStatus.PAID.value:
        # Rejeu: succès sans modification ni nouvel email
        return ServiceResponse(200, {"registrationId": existing.data["id"], "success": True})

    _check_guard(form, user_id)
    _update_profile(user_id, participant)
    registration = _store_registration(form, user_id, participant, 0)

    confirmed = repository.update_payment_status(
        registration["id"], RegistrationStatus.CONFIRMED, PaymentStatus.PAID,
    )
    if not confirmed.ok:
        logger.error("Confirmation de l'inscription gratuite %s impossible: %s", registration["id"], confirmed.error)
        raise CheckoutError("Erro ao confirmar inscrição.", 500)

    if confirmed.changed:
        try:
            finalize_confirmed(confirmed.data, send_email=True, fallback_email=participant["email"])
        except Exception:
            # Billet/email rattrapables: l'inscription est confirmée
            logger.exception("Finalisation de l'inscription gratuite %s incomplète", registration["id"])
    logger.info("registrations.free_confirmed id=%s changed=%s", registration["id"], confirmed.changed)
    return ServiceResponse(200, {"registrationId": registration["id"], "success": True})

def create_free_registration(body: Dict[str, Any], auth_user: Optional[Dict[str, Any]] = None) -> ServiceResponse:
    try:
        return _free(body or {}, auth_user)
    except CheckoutError as e:
        return e.to_response()
    except Exception:
        logger.exception("Erreur create_free_registration")
        return ServiceResponse(500, {"error": GENERIC_ERROR})
