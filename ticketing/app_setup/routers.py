"""
Registre central des routers (API v1, health).
- API v1: checkout payant, inscriptions gratuites, webhook paiements, commandes de photos
- Health: health_router
"""
from fastapi import FastAPI

from ticketing.registrations.views import checkout_router, router as registrations_router
from ticketing.payments import views as payments_views
from ticketing.photos import views as photos_views
from ticketing.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    app.include_router(checkout_router)
    app.include_router(registrations_router)
    app.include_router(payments_views.router)
    app.include_router(photos_views.router)
    # Health & monitoring
    app.include_router(health_router)
