"""
Gestionnaires d’exceptions.
- HTTPException: corps JSON {"detail": ...} (401/403/429 des dépendances, 400/500 du webhook).
- Exception non gérée: 500 générique, détail uniquement dans les logs.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_json(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception("Erreur non gérée sur %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Erro interno do servidor."})
