"""
Factory d’application pour les entrypoints (ticketing.asgi, tests).
Ordonne les étapes d’initialisation de manière lisible et testable.
"""

from fastapi import FastAPI

from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_security_middleware, register_force_https_middleware
from .exception_handlers import register_exception_handlers
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Construit l’app FastAPI avec le lifespan et enregistre:
      - middlewares de base (CORS, hosts, proxy) et de sécurité (CSRF, en-têtes)
      - gestionnaires d’exceptions
      - tous les routers (API v1, health)
      - redirection HTTPS en dernier pour s’exécuter en premier
    """
    app = FastAPI(title="Ticketing - Inscrições e Pagamentos", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    register_force_https_middleware(app)
    return app
