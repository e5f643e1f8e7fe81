import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ticketing.registrations import guards
from ticketing.registrations import service as registrations_service
from ticketing.utils.rate_limit import optional_rate_limit
from ticketing.utils.security import get_optional_user

logger = logging.getLogger(__name__)

checkout_router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])
router = APIRouter(prefix="/api/v1/registrations", tags=["Registrations API"])

async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}

# module ticketing.registrations.views
@checkout_router.post("/create-session", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_checkout_session(request: Request, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    """
    Démarre un checkout payant et retourne la session de paiement hébergée.
    - Entrée JSON: eventId, categoryId, shirtSize, subtotal, serviceFee, total,
      userName, userEmail, userData, shirtGender/partnerName/partnerData/couponCode (optionnels)
    - Identité: Bearer/cookie si présent, sinon compte créé/retrouvé par email
    - Réponses: 200 {sessionId, url, registrationId}; 400/401/404/409 {error, code?}; 500 {error}
    """
    body = await _json_body(request)
    result = await run_in_threadpool(registrations_service.create_checkout_session, body, user)
    return JSONResponse(status_code=result.status_code, content=result.body)

@router.post("/create-free", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_free_registration(request: Request, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    """
    Inscription à un événement gratuit/solidaire: confirmée immédiatement (billet + email).
    - Réponses: 200 {registrationId, success: true}; 400/401/404/409 {error, code?}; 500 {error}
    """
    body = await _json_body(request)
    result = await run_in_threadpool(registrations_service.create_free_registration, body, user)
    return JSONResponse(status_code=result.status_code, content=result.body)

@router.get("/availability")
def availability(event_id: str, category_id: Optional[str] = None):
    """Places restantes (null = illimité) et état de la fenêtre d'inscription."""
    spots = guards.get_available_spots(event_id, category_id)
    is_open, message = guards.is_registration_window_open(event_id)
    return {**spots, "registration_open": is_open, "message": message}
