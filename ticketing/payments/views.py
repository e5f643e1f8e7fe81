import logging

from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ticketing.payments import stripe_client
from ticketing.payments import service as payments_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

# module ticketing.payments.views
@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(request: Request):
    """
    Webhook Stripe: vérifie la signature puis réconcilie l'événement.
    - 200 {"received": true, "action": ...} pour tout événement traité ou ignoré
    - 400 si en-tête/signature/payload invalide
    - 500 si le secret manque ou si le traitement échoue (Stripe relivrera; traitement idempotent)
    """
    try:
        event = await stripe_client.parse_event(request)
    except stripe_client.WebhookError as e:
        logger.warning("payments.webhook rejeté: %s", e)
        raise HTTPException(status_code=e.status_code, detail=str(e))

    try:
        result = await run_in_threadpool(payments_service.handle_event, event)
    except Exception:
        logger.exception("Erreur traitement webhook type=%s id=%s", event.get("type"), event.get("id"))
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    return JSONResponse(result)
