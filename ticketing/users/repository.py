"""Couche d’accès aux profils (table profiles) et aux comptes Supabase Auth.
- Résolution du titulaire d'un checkout anonyme: profil existant par email, sinon compte « fantôme »
- Profil partenaire d'une inscription en duo (créé via l'API admin si absent)
Les erreurs non bloquantes sont loggées et transformées en valeurs neutres (None, False).
"""
from typing import Any, Dict, Optional
import logging
import secrets
import string

from ticketing.infra.supabase_client import get_supabase, get_service_supabase
from ticketing.utils.validators import normalize_email, only_digits

logger = logging.getLogger(__name__)

def generate_temp_password() -> str:
    """Mot de passe temporaire d'un compte fantôme (jamais communiqué, réinitialisable)."""
    alphabet = string.ascii_letters + string.digits
    core = "".join(secrets.choice(alphabet) for _ in range(12))
    return f"Tmp!{core}{secrets.randbelow(90) + 10}"

def get_profile_by_email(email: str) -> Optional[Dict[str, Any]]:
    normalized = normalize_email(email)
    if not normalized:
        return None
    try:
        res = (
            get_service_supabase()
            .table("profiles")
            .select("id, email, full_name, cpf, phone")
            .eq("email", normalized)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception as e:
        logger.warning("get_profile_by_email a échoué: %s", e)
        return None

def update_profile_contact(user_id: str, *, full_name: str = "", cpf: str = "", phone: str = "", email: str = "") -> bool:
    """Enregistre nom/CPF/téléphone sur le profil (best-effort, n'interrompt jamais un checkout)."""
    if not user_id:
        return False
    values: Dict[str, Any] = {"id": user_id}
    if full_name:
        values["full_name"] = full_name.strip()
    if cpf:
        values["cpf"] = only_digits(cpf)
    if phone:
        values["phone"] = only_digits(phone)
    if email:
        values["email"] = normalize_email(email)
    try:
        get_service_supabase().table("profiles").upsert(values).execute()
        return True
    except Exception as e:
        logger.warning("update_profile_contact user=%s a échoué: %s", user_id, e)
        return False

def _user_id_from_auth_response(res: Any) -> Optional[str]:
    user = getattr(res, "user", None)
    if user is None and isinstance(res, dict):
        user = res.get("user")
    if user is None:
        return None
    return getattr(user, "id", None) or (user.get("id") if isinstance(user, dict) else None)

def get_or_create_checkout_user(email: str, full_name: str = "") -> Optional[Dict[str, Any]]:
    """
    Résout le titulaire d'un checkout non authentifié.
    - profil existant (email normalisé) => réutilisé
    - sinon création d'un compte via auth.sign_up avec un mot de passe temporaire
    Retour: {"id", "email"} ou None si impossible.
    """
    normalized = normalize_email(email)
    if not normalized:
        return None
    profile = get_profile_by_email(normalized)
    if profile and profile.get("id"):
        return {"id": profile["id"], "email": normalized, "shadow": False}
    try:
        res = get_supabase().auth.sign_up({
            "email": normalized,
            "password": generate_temp_password(),
            "options": {"data": {"full_name": full_name or ""}},
        })
    except Exception:
        logger.exception("Création du compte fantôme impossible pour %s", normalized)
        return None
    user_id = _user_id_from_auth_response(res)
    if not user_id:
        logger.error("auth.sign_up sans utilisateur retourné pour %s", normalized)
        return None
    logger.info("users.shadow_account created user=%s", user_id)
    return {"id": user_id, "email": normalized, "shadow": True}

def upsert_partner_profile(partner: Dict[str, Any]) -> Optional[str]:
    """
    Crée ou complète le profil du partenaire d'un duo.
    - recherche par email normalisé
    - profil existant: CPF/téléphone renseignés seulement si le CPF est vide (jamais écrasé)
    - absent: compte créé via l'API admin (email confirmé) puis CPF/téléphone enregistrés
    Retour: id du profil partenaire, ou None (erreur loggée).
    """
    email = normalize_email(partner.get("email"))
    if not email:
        return None
    name = (partner.get("name") or "").strip()
    cpf = only_digits(partner.get("cpf"))
    phone = only_digits(partner.get("phone"))

    existing = get_profile_by_email(email)
    if existing and existing.get("id"):
        if not existing.get("cpf"):
            update_profile_contact(existing["id"], full_name=existing.get("full_name") or name, cpf=cpf, phone=phone)
        return existing["id"]

    try:
        res = get_service_supabase().auth.admin.create_user({
            "email": email,
            "password": generate_temp_password(),
            "email_confirm": True,
            "user_metadata": {"full_name": name},
        })
    except Exception:
        logger.exception("Création du profil partenaire impossible pour %s", email)
        return None
    user_id = _user_id_from_auth_response(res)
    if not user_id:
        return None
    update_profile_contact(user_id, full_name=name, cpf=cpf, phone=phone, email=email)
    logger.info("users.partner_profile created user=%s", user_id)
    return user_id
