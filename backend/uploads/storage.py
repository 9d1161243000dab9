"""
Stockage des fichiers déposés.
- Upload direct: écriture sur le disque du serveur (UPLOAD_DIR), nom unique assaini.
- Presigned: URL d'écriture signée (Supabase Storage), le client envoie les octets lui-même.
"""
import logging
import re
import secrets
import time
import uuid
from pathlib import Path
from typing import Any, Dict

from backend import config
from backend.errors import GatewayError
from backend.infra.supabase_client import get_storage_bucket

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


# module backend.uploads.storage
def safe_name(original_name: str) -> str:
    name = Path(original_name or "file").name
    cleaned = _UNSAFE.sub("_", name).strip("._")
    return cleaned or "file"


def unique_name(original_name: str) -> str:
    """'rapport final.pdf' -> 'rapport_final-1700000000000-123456789.pdf'"""
    p = Path(safe_name(original_name))
    return f"{p.stem}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{p.suffix.lower()}"


def save_local(original_name: str, data: bytes) -> str:
    """Écrit le fichier dans UPLOAD_DIR et retourne le nom stocké."""
    upload_dir = Path(config.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    stored = unique_name(original_name)
    (upload_dir / stored).write_bytes(data)
    return stored


def remove_local(stored_name: str) -> None:
    (Path(config.UPLOAD_DIR) / stored_name).unlink(missing_ok=True)


def object_key(user_id: str, original_name: str) -> str:
    return f"{user_id}/{uuid.uuid4().hex}-{safe_name(original_name)}"


def create_signed_upload(key: str) -> Dict[str, Any]:
    """
    Demande une URL d'écriture signée pour `key` dans le bucket configuré.
    Retour: {"uploadUrl", "token", "key"}; GatewayError si le stockage échoue.
    """
    try:
        signed = get_storage_bucket().create_signed_upload_url(key)
    except Exception as e:
        logger.exception("Erreur create_signed_upload key=%s", key)
        raise GatewayError("Storage service unavailable, please try again") from e
    url = signed.get("signed_url") or signed.get("signedUrl")
    if not url:
        raise GatewayError("Storage service returned no upload URL")
    return {"uploadUrl": url, "token": signed.get("token"), "key": signed.get("path") or key}
