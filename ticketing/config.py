# ticketing.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du moteur d'inscriptions.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, Resend)
- Expose les règles métier paramétrables (frais de service, tolérance de prix, capacité)
- Fournit les URLs de redirection du checkout (succès/annulation)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _env_flag(name: str, default: str = "false") -> bool:
    return _clean_env(os.getenv(name, default)).lower() in ("1", "true", "yes")

def _env_float(name: str, default: str) -> float:
    try:
        return float(_clean_env(os.getenv(name, default)))
    except ValueError:
        return float(default)

# Supabase: URL et clés (anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("NEXT_PUBLIC_SUPABASE_ANON_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Stripe: clé secrète, secret webhook et tolérance d'horodatage de signature (secondes)
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_WEBHOOK_TOLERANCE = int(_env_float("STRIPE_WEBHOOK_TOLERANCE", "300"))
PAYMENT_CURRENCY = _clean_env(os.getenv("PAYMENT_CURRENCY") or "brl").lower()

# Règles de prix
SERVICE_FEE_RATE = _env_float("SERVICE_FEE_RATE", "0.10")
PRICE_TOLERANCE = _env_float("PRICE_TOLERANCE", "0.01")

# max_participants = 0 traité comme « illimité » (comportement historique)
ZERO_CAPACITY_IS_UNLIMITED = _env_flag("ZERO_CAPACITY_IS_UNLIMITED", "true")

# Commandes de photos
MAX_PHOTOS_PER_ORDER = int(_env_float("MAX_PHOTOS_PER_ORDER", "50"))

# Emails transactionnels (Resend)
RESEND_API_KEY = _clean_env(os.getenv("RESEND_API_KEY") or "")
EMAIL_FROM = _clean_env(os.getenv("EMAIL_FROM") or "Inscrições <noreply@example.com>")

# Cookies / CORS / hosts
COOKIE_SECURE = _env_flag("COOKIE_SECURE", "false")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Pages de succès/annulation du checkout (relatives à BASE_URL)
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/confirmacao?session_id={CHECKOUT_SESSION_ID}")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/inscricao")
PHOTO_SUCCESS_PATH = os.getenv("PHOTO_SUCCESS_PATH", "/fotos/confirmacao?session_id={CHECKOUT_SESSION_ID}")
PHOTO_CANCEL_PATH = os.getenv("PHOTO_CANCEL_PATH", "/fotos")

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000").rstrip("/")
