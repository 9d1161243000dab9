# intake_client.config
import os
from dotenv import load_dotenv

"""
Configuration du client de session (lue dans l'environnement / .env du répertoire courant).

- INTAKE_API_URL: base URL du serveur (sans /api)
- INTAKE_UPLOAD_STRATEGY: "direct" (multipart) ou "presigned" (URL signées)
- INTAKE_UPLOAD_CONCURRENCY: transferts presigned simultanés (défaut 3)
- INTAKE_REQUEST_TIMEOUT: timeout HTTP en secondes
- INTAKE_PAYMENT_TIMEOUT: attente max du checkout en secondes (0 = pas de limite)
"""
load_dotenv()


def _clean_env(v: str) -> str:
    return (v or "").strip().strip("'").strip('"').strip("`")


INTAKE_API_URL = _clean_env(os.getenv("INTAKE_API_URL") or "http://127.0.0.1:8000").rstrip("/")
INTAKE_UPLOAD_STRATEGY = _clean_env(os.getenv("INTAKE_UPLOAD_STRATEGY") or "presigned").lower()
INTAKE_UPLOAD_CONCURRENCY = int(os.getenv("INTAKE_UPLOAD_CONCURRENCY", "3"))
INTAKE_REQUEST_TIMEOUT = float(os.getenv("INTAKE_REQUEST_TIMEOUT", "30"))
INTAKE_PAYMENT_TIMEOUT = float(os.getenv("INTAKE_PAYMENT_TIMEOUT", "900")) or None
