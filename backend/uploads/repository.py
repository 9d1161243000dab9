"""
Accès aux données pour la feature 'uploads' (registres JSON append-only).
- upload-records.json: un UploadRecord par lot déposé (clé: uploadId)
- registered-documents.json: un enregistrement par objet stocké via URL signée (clé: key)
"""
import logging
import secrets
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from backend import config
from backend.infra.record_store import JsonRecordStore, get_store

logger = logging.getLogger(__name__)

STATUS_UPLOADED = "uploaded"
STATUS_PROCESSED = "processed"


# module backend.uploads.repository
def _uploads() -> JsonRecordStore:
    return get_store(config.RECORDS_DIR / "upload-records.json")


def _documents() -> JsonRecordStore:
    return get_store(config.RECORDS_DIR / "registered-documents.json")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_upload_id() -> str:
    return f"upload_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def create_upload_record(
    *,
    user_id: str,
    files: List[Dict[str, Any]],
    strategy: str,
    payment_id: Optional[str] = None,
    customer_info: Optional[Dict[str, Any]] = None,
    pricing_snapshot: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    unique_payment: bool = False,
) -> Tuple[Dict[str, Any], bool]:
    """
    Ajoute un UploadRecord. Retour: (enregistrement, created).
    - unique_payment: refuse un second lot pour le même paymentId (created=False, lot existant retourné)
    """
    record = {
        "uploadId": new_upload_id(),
        "userId": user_id,
        "customerInfo": customer_info or {},
        "pricingSnapshot": pricing_snapshot or {},
        "metadata": metadata or {},
        "paymentId": payment_id,
        "strategy": strategy,
        "files": files,
        "uploadedAt": _now(),
        "status": STATUS_UPLOADED,
    }
    if unique_payment and payment_id:
        stored, created = _uploads().append_if_absent(record, lambda r: r.get("paymentId") == payment_id)
        if not created:
            return stored, False
    else:
        _uploads().append(record)
    logger.info("uploads.record created upload_id=%s files=%s strategy=%s", record["uploadId"], len(files), strategy)
    return record, True


def find_upload_for_payment(payment_id: str) -> Optional[Dict[str, Any]]:
    return _uploads().find(lambda r: r.get("paymentId") == payment_id)


def get_upload(upload_id: str) -> Optional[Dict[str, Any]]:
    return _uploads().find(lambda r: r.get("uploadId") == upload_id)


def list_user_uploads(user_id: str) -> List[Dict[str, Any]]:
    return _uploads().filter(lambda r: r.get("userId") == user_id)


def mark_processed(upload_id: str) -> Optional[Dict[str, Any]]:
    """Seule transition autorisée: uploaded -> processed. Retourne None si absent ou déjà traité."""
    return _uploads().update_first(
        lambda r: r.get("uploadId") == upload_id and r.get("status") == STATUS_UPLOADED,
        {"status": STATUS_PROCESSED, "processedAt": _now()},
    )


def register_document(
    *,
    user_id: str,
    key: str,
    original_name: str,
    size: int,
    content_type: str,
    payment_id: Optional[str] = None,
) -> Tuple[Dict[str, Any], bool]:
    """Idempotent par clé de stockage: un second enregistrement retourne l'existant (created=False)."""
    record = {
        "documentId": f"doc_{uuid.uuid4().hex}",
        "userId": user_id,
        "key": key,
        "originalName": original_name,
        "size": size,
        "contentType": content_type,
        "paymentId": payment_id,
        "registeredAt": _now(),
    }
    return _documents().append_if_absent(record, lambda r: r.get("key") == key)


def find_documents(keys: List[str]) -> Dict[str, Dict[str, Any]]:
    wanted = set(keys)
    return {r["key"]: r for r in _documents().filter(lambda r: r.get("key") in wanted)}
