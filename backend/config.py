# backend.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Expose les secrets/URLs de la passerelle de paiement (Razorpay) et de Supabase Storage
- Paramètres de tarification (remise volume, GST) et de stockage des uploads
- HSTS, CORS/hosts
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

# Passerelle de paiement: clés API et secret webhook
# - Le secret webhook retombe sur la clé secrète si non fourni (comportement Razorpay par défaut)
RAZORPAY_KEY_ID = _clean_env(os.getenv("RAZORPAY_KEY_ID") or "")
RAZORPAY_KEY_SECRET = _clean_env(os.getenv("RAZORPAY_KEY_SECRET") or "")
RAZORPAY_WEBHOOK_SECRET = _clean_env(os.getenv("RAZORPAY_WEBHOOK_SECRET") or "") or RAZORPAY_KEY_SECRET
RAZORPAY_API_URL = _clean_env(os.getenv("RAZORPAY_API_URL") or "https://api.razorpay.com/v1").rstrip("/")
GATEWAY_TIMEOUT = float(os.getenv("GATEWAY_TIMEOUT", "15"))

# Une seule devise supportée (montants en paise côté passerelle)
PAYMENT_CURRENCY = _clean_env(os.getenv("PAYMENT_CURRENCY") or "INR").upper()
COMPANY_NAME = os.getenv("COMPANY_NAME", "UDIN Professional Services")
THEME_COLOR = os.getenv("THEME_COLOR", "#8B5CF6")

# Tarification: seuil/taux de remise volume et taux GST (chaînes -> Decimal côté pricing)
BULK_DISCOUNT_THRESHOLD = int(os.getenv("BULK_DISCOUNT_THRESHOLD", "5"))
BULK_DISCOUNT_RATE = _clean_env(os.getenv("BULK_DISCOUNT_RATE") or "0.10")
GST_RATE = _clean_env(os.getenv("GST_RATE") or "0.18")

# Stockage: registre JSON append-only et répertoire des fichiers (upload direct)
RECORDS_DIR = Path(_clean_env(os.getenv("RECORDS_DIR") or "") or BASE_DIR / "data")
UPLOAD_DIR = Path(_clean_env(os.getenv("UPLOAD_DIR") or "") or BASE_DIR / "uploads")
# Refuse tout fichier tant que le paiement associé n'est pas enregistré comme payé
UPLOAD_REQUIRES_PAYMENT = _env_flag("UPLOAD_REQUIRES_PAYMENT", "true")

# Supabase Storage (stratégie presigned): URL + clé service + bucket
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")
SUPABASE_STORAGE_BUCKET = _clean_env(os.getenv("SUPABASE_STORAGE_BUCKET") or "documents")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# HSTS (à activer derrière HTTPS)
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]
