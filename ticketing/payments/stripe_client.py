"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
"""
import json
from typing import Any, Dict, Optional

import stripe
from fastapi import Request

from ticketing.config import (
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    STRIPE_WEBHOOK_TOLERANCE,
    PAYMENT_CURRENCY,
)

class WebhookError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code

# module ticketing.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l’emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - En absence de clé, les appels Stripe échoueront côté SDK (ex: No API key provided).
    """
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe

def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)

def create_checkout_session(
    *,
    amount_cents: int,
    product_name: str,
    description: str,
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, str],
    customer_email: Optional[str] = None,
    payment_intent_metadata: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout (paiement unique, une ligne).
    - amount_cents: montant total en centimes (devise PAYMENT_CURRENCY)
    - metadata: recopiées sur la session (ex: registrationId, eventId...)
    - payment_intent_metadata: recopiées sur le PaymentIntent (pour payment_intent.payment_failed)
    Retour: {"id": "cs_...", "url": "https://checkout.stripe.com/..."}
    """
    require_stripe()
    params: Dict[str, Any] = {
        "mode": "payment",
        "payment_method_types": ["card"],
        "line_items": [{
            "price_data": {
                "currency": PAYMENT_CURRENCY,
                "product_data": {"name": product_name, "description": description or product_name},
                "unit_amount": int(amount_cents),
            },
            "quantity": 1,
        }],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
    }
    if customer_email:
        params["customer_email"] = customer_email
    if payment_intent_metadata:
        params["payment_intent_data"] = {"metadata": payment_intent_metadata}
    session = stripe.checkout.Session.create(**params)
    return {"id": _get(session, "id"), "url": _get(session, "url")}

def verify_and_parse(payload: bytes, sig_header: Optional[str], secret: Optional[str] = None) -> Dict[str, Any]:
    """
    Vérifie la signature (Stripe-Signature) AVANT toute interprétation du corps,
    puis retourne l'événement sous forme de dict JSON brut.
    """
    secret = STRIPE_WEBHOOK_SECRET if secret is None else secret
    if not secret:
        raise WebhookError("STRIPE_WEBHOOK_SECRET manquant", status_code=500)
    if not sig_header:
        raise WebhookError("En-tête Stripe-Signature manquant")
    try:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else str(payload)
    except UnicodeDecodeError as e:
        raise WebhookError("Payload Stripe invalide") from e
    try:
        stripe.WebhookSignature.verify_header(text, sig_header, secret, tolerance=STRIPE_WEBHOOK_TOLERANCE)
    except stripe.SignatureVerificationError as e:
        raise WebhookError("Signature Stripe invalide") from e
    try:
        event = json.loads(text)
    except ValueError as e:
        raise WebhookError("Payload Stripe invalide") from e
    if not isinstance(event, dict) or not event.get("type"):
        raise WebhookError("Payload Stripe invalide")
    return event

async def parse_event(request: Request) -> Dict[str, Any]:
    """
    Lit le body brut + en-tête Stripe-Signature et retourne l'événement vérifié.
    Lève WebhookError (400 signature/payload, 500 configuration).
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    return verify_and_parse(payload, sig_header)
