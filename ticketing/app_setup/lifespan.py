"""
Démarrage/arrêt de l'application.

Au démarrage:
- signale les secrets manquants (le webhook Stripe répond 500 sans STRIPE_WEBHOOK_SECRET)
- branche FastAPILimiter sur Redis; état exposé dans app.state.rate_limit_enabled

Variables:
  DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1  pas de Redis du tout (tests)
  USE_FAKE_REDIS_FOR_TESTS=1                Redis simulé par fakeredis
  LOCAL_RATE_LIMIT_FALLBACK=1               compteur mémoire si Redis est injoignable
  RATE_LIMIT_REDIS_URL                      redis://127.0.0.1:6379/0 par défaut
"""
import logging
import os
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from ticketing import config

logger = logging.getLogger(__name__)

def _redis_client():
    if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
        from fakeredis import FakeAsyncRedis
        return FakeAsyncRedis(decode_responses=True)
    url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
    return aioredis.from_url(url, encoding="utf-8", decode_responses=True)

def _warn_missing_settings() -> None:
    missing = [
        name
        for name, value in (
            ("SUPABASE_URL", config.SUPABASE_URL),
            ("SUPABASE_SERVICE_KEY", config.SUPABASE_SERVICE_KEY),
            ("STRIPE_SECRET_KEY", config.STRIPE_SECRET_KEY),
            ("STRIPE_WEBHOOK_SECRET", config.STRIPE_WEBHOOK_SECRET),
            ("RESEND_API_KEY", config.RESEND_API_KEY),
        )
        if not value
    ]
    if missing:
        logger.warning("Configuration incomplète, variables absentes: %s", ", ".join(missing))

async def _init_rate_limiter(app: FastAPI) -> bool:
    """Retourne True si FastAPILimiter est initialisé (à fermer à l'arrêt)."""
    try:
        await FastAPILimiter.init(_redis_client())
    except Exception as e:
        fallback = os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1"
        app.state.rate_limit_enabled = fallback
        logger.warning(
            "Redis indisponible (%s): limitation %s",
            e,
            "en mémoire locale" if fallback else "désactivée",
        )
        return False
    app.state.rate_limit_enabled = True
    logger.info("Limitation de débit active (Redis)")
    return True

@asynccontextmanager
async def lifespan(app: FastAPI):
    _warn_missing_settings()
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Limitation de débit non initialisée (DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS)")
        yield
        return

    limiter_ready = await _init_rate_limiter(app)
    yield
    if limiter_ready:
        await FastAPILimiter.close()
