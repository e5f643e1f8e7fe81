"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn -k uvicorn.workers.UvicornWorker) importe `ticketing.asgi:app`.
- Toute la configuration (routes, middlewares, lifespan) est centralisée dans ticketing.app_setup.factory.
"""

from ticketing.app import app
