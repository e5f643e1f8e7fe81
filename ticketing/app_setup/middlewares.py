"""
Middlewares transverses de l’application.
- register_basic_middlewares: CORS, TrustedHost et confiance en X-Forwarded-*.
- register_security_middleware: en-têtes de sécurité et protection CSRF des requêtes authentifiées par cookie.
- register_force_https_middleware: force la redirection HTTPS (utile derrière proxy).
Notes:
- Le middleware HTTPS est ajouté en dernier pour s’exécuter en premier.
- Le webhook Stripe est exempté du CSRF (authentifié par signature).
"""
import secrets

from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from ticketing.config import COOKIE_SECURE, CORS_ORIGINS, ALLOWED_HOSTS
from ticketing.utils.security import COOKIE_NAME

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
CSRF_EXEMPT_PATHS = {
    "/api/v1/payments/webhook",
}

def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=ALLOWED_HOSTS + ["*"] if "*" in CORS_ORIGINS else ALLOWED_HOSTS,
    )
    # Fait confiance aux en-têtes X-Forwarded-* (Render, Nginx, etc.)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

def register_security_middleware(app: FastAPI) -> None:
    """
    - CSRF: une requête mutative portant le cookie de session (sans Bearer) doit fournir
      X-CSRF-Token égal au cookie csrf_token.
    - En-têtes: X-Frame-Options, X-Content-Type-Options, Referrer-Policy, HSTS (si secure).
    - Dépose un cookie CSRF si manquant (httponly=False pour que le front lise la valeur).
    """
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        method = request.method.upper()
        path = request.url.path
        uses_cookie_session = bool(request.cookies.get(COOKIE_NAME)) and not request.headers.get(
            "Authorization", ""
        ).startswith("Bearer ")
        csrf_cookie = request.cookies.get(CSRF_COOKIE_NAME)

        if method in ("POST", "PUT", "PATCH", "DELETE") and uses_cookie_session and path not in CSRF_EXEMPT_PATHS:
            header_token = request.headers.get(CSRF_HEADER_NAME, "")
            if not csrf_cookie or not header_token or not secrets.compare_digest(header_token, csrf_cookie):
                return JSONResponse(status_code=403, content={"detail": "CSRF verification failed"})

        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if COOKIE_SECURE:
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")

        if not csrf_cookie:
            response.set_cookie(
                key=CSRF_COOKIE_NAME,
                value=secrets.token_urlsafe(32),
                httponly=False,
                secure=COOKIE_SECURE,
                samesite="Lax",
                max_age=60 * 60,
                path="/",
            )
        return response

def register_force_https_middleware(app: FastAPI) -> None:
    """Redirige HTTP -> HTTPS lorsqu’un proxy indique x-forwarded-proto=http (prod seulement)."""
    @app.middleware("http")
    async def force_https(request: Request, call_next):
        if COOKIE_SECURE and request.headers.get("x-forwarded-proto") == "http":
            url = str(request.url).replace("http://", "https://", 1)
            return RedirectResponse(url, status_code=301)
        return await call_next(request)
