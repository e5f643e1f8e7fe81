import logging
from typing import Any, Dict

from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ticketing.photos import service as photos_service
from ticketing.utils.rate_limit import optional_rate_limit
from ticketing.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/photos", tags=["Photos API"])

@router.post("/checkout/create-session", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_photo_checkout(request: Request, user: Dict[str, Any] = Depends(require_user)):
    """
    Checkout d'une commande de photos (utilisateur authentifié).
    - Entrée JSON: { "eventId", "photoIds": [...], "totalAmount", "packageId"? }
    - Réponses: 200 {sessionId, url, orderId}; 400/401/404 {error}; 500 {error}
    """
    try:
        body = await request.json()
    except ValueError:
        body = {}
    result = await run_in_threadpool(photos_service.create_photo_checkout, body if isinstance(body, dict) else {}, user)
    return JSONResponse(status_code=result.status_code, content=result.body)
