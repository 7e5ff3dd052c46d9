# backend.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe), sécurité cookies, CORS/hosts
- Expose les constantes métier du tunnel de paiement (devise, frais, tolérance, adhésion)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _float_env(name: str, default: float) -> float:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default

def _int_env(name: str, default: int) -> int:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

# Supabase: URL et clés (anon pour l'auth, service pour les écritures du tunnel)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Timeouts: une écriture BD qui traîne doit échouer (fail closed), pas bloquer
DB_TIMEOUT_SECONDS = _int_env("DB_TIMEOUT_SECONDS", 10)

# Cookies / session (le panier vit dans la session signée côté client)
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
SESSION_SECRET_KEY = _clean_env(os.getenv("SESSION_SECRET_KEY") or "replace_me_with_a_long_random_secret")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clé privée et secret de signature des webhooks (jamais loggés)
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# Tunnel de paiement
DEFAULT_CURRENCY = _clean_env(os.getenv("DEFAULT_CURRENCY") or "usd").lower()
ORGANIZATION_ID = _clean_env(os.getenv("ORGANIZATION_ID") or "tampabayheat")
PROCESSING_FEE_RATE = _float_env("PROCESSING_FEE_RATE", 0.03)
AMOUNT_TOLERANCE = _float_env("AMOUNT_TOLERANCE", 0.01)
DEFAULT_MEMBERSHIP_MONTHS = _int_env("DEFAULT_MEMBERSHIP_MONTHS", 12)
