"""
Cas d'usage 'uploads': dépôt direct (multipart) et dépôt par URL signée (presign -> register -> complete).

Aucun fichier n'est accepté tant que le paiement associé n'est pas enregistré comme payé
(si UPLOAD_REQUIRES_PAYMENT est actif).
Un paiement couvre un seul lot, d'au plus `notes.documents` fichiers quand la commande le déclare.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from backend import config
from backend.errors import PaymentAlreadyUsed, PaymentRequired, ValidationError
from backend.payments.service import is_payment_settled, paid_document_count
from . import repository
from . import storage
from .validation import validate_batch, validate_file

logger = logging.getLogger(__name__)

STRATEGY_DIRECT = "direct"
STRATEGY_PRESIGNED = "presigned"


def require_paid(payment_id: Optional[str]) -> None:
    if config.UPLOAD_REQUIRES_PAYMENT and not is_payment_settled(payment_id):
        logger.warning("uploads refused: payment %s not settled", payment_id)
        raise PaymentRequired()


def require_unused_payment(payment_id: Optional[str], file_count: int) -> None:
    if not config.UPLOAD_REQUIRES_PAYMENT:
        return
    if repository.find_upload_for_payment(payment_id):
        logger.warning("uploads refused: payment %s already used", payment_id)
        raise PaymentAlreadyUsed()
    paid = paid_document_count(payment_id)
    if paid is not None and file_count > paid:
        raise ValidationError(f"{file_count} files exceed the {paid} documents paid for")


def _require_user(user_id: Optional[str]) -> str:
    user_id = (user_id or "").strip()
    if not user_id:
        raise ValidationError("userId is required")
    return user_id


def store_direct_upload(
    *,
    user_id: Optional[str],
    files: List[Tuple[str, bytes, Optional[str]]],
    customer_info: Optional[Dict[str, Any]] = None,
    pricing_snapshot: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Dépôt direct d'un lot: files = [(nom d'origine, octets, content-type), ...].
    - Valide le lot entier avant toute écriture disque
    - Vérifie le paiement via metadata.paymentId
    - Écrit chaque fichier puis un UploadRecord unique
    """
    user_id = _require_user(user_id)
    validate_batch((name, len(data), ctype) for name, data, ctype in files)
    metadata = metadata or {}
    payment_id = metadata.get("paymentId")
    require_paid(payment_id)
    require_unused_payment(payment_id, len(files))

    stored_files = []
    for name, data, ctype in files:
        stored_files.append({
            "originalName": name,
            "storedName": storage.save_local(name, data),
            "size": len(data),
            "contentType": ctype,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
        })
    record, created = repository.create_upload_record(
        user_id=user_id,
        files=stored_files,
        strategy=STRATEGY_DIRECT,
        payment_id=payment_id,
        customer_info=customer_info,
        pricing_snapshot=pricing_snapshot,
        metadata=metadata,
        unique_payment=config.UPLOAD_REQUIRES_PAYMENT,
    )
    if not created:
        for stored in stored_files:
            storage.remove_local(stored["storedName"])
        raise PaymentAlreadyUsed()
    return record


def presign_upload(
    *,
    user_id: Optional[str],
    file_name: str,
    size: int,
    content_type: Optional[str],
    payment_id: Optional[str],
) -> Dict[str, Any]:
    user_id = _require_user(user_id)
    validate_file(file_name, size, content_type)
    require_paid(payment_id)
    require_unused_payment(payment_id, 1)
    signed = storage.create_signed_upload(storage.object_key(user_id, file_name))
    logger.info("uploads.presign user_id=%s key=%s", user_id, signed["key"])
    return signed


def register_document(
    *,
    user_id: Optional[str],
    key: str,
    original_name: str,
    size: int,
    content_type: Optional[str],
    payment_id: Optional[str],
) -> Tuple[Dict[str, Any], bool]:
    """Enregistre un objet déjà transféré; la clé doit appartenir à l'utilisateur (préfixe 'userId/')."""
    user_id = _require_user(user_id)
    if not key or not key.startswith(f"{user_id}/"):
        raise ValidationError("Storage key does not belong to this user")
    validate_file(original_name, size, content_type)
    require_paid(payment_id)
    require_unused_payment(payment_id, 1)
    return repository.register_document(
        user_id=user_id,
        key=key,
        original_name=original_name,
        size=size,
        content_type=content_type or "",
        payment_id=payment_id,
    )


def complete_upload(
    *,
    user_id: Optional[str],
    keys: List[str],
    payment_id: Optional[str],
    customer_info: Optional[Dict[str, Any]] = None,
    pricing_snapshot: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Crée l'UploadRecord d'un lot presigned; toutes les clés doivent être enregistrées."""
    user_id = _require_user(user_id)
    if not keys:
        raise ValidationError("No documents to complete")
    require_paid(payment_id)
    require_unused_payment(payment_id, len(keys))
    documents = repository.find_documents(keys)
    missing = [k for k in keys if k not in documents or documents[k].get("userId") != user_id]
    if missing:
        raise ValidationError(f"Documents not registered: {', '.join(missing)}")

    files = [
        {
            "originalName": documents[k]["originalName"],
            "storedName": k,
            "size": documents[k]["size"],
            "contentType": documents[k]["contentType"],
            "uploadedAt": documents[k]["registeredAt"],
        }
        for k in keys
    ]
    record, created = repository.create_upload_record(
        user_id=user_id,
        files=files,
        strategy=STRATEGY_PRESIGNED,
        payment_id=payment_id,
        customer_info=customer_info,
        pricing_snapshot=pricing_snapshot,
        metadata={**(metadata or {}), "paymentId": payment_id},
        unique_payment=config.UPLOAD_REQUIRES_PAYMENT,
    )
    if not created:
        raise PaymentAlreadyUsed()
    return record


def get_upload_status(upload_id: str) -> Dict[str, Any]:
    record = repository.get_upload(upload_id)
    if record is None:
        raise LookupError(upload_id)
    return record


def list_user_uploads(user_id: str) -> List[Dict[str, Any]]:
    return repository.list_user_uploads(user_id)


def mark_processed(upload_id: str) -> Dict[str, Any]:
    record = repository.mark_processed(upload_id)
    if record is None:
        raise LookupError(upload_id)
    logger.info("uploads.processed upload_id=%s", upload_id)
    return record
