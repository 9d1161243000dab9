import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from backend.errors import IntakeError, ValidationError
from backend.utils.rate_limit import optional_rate_limit
from backend.uploads import service as uploads_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/uploads", tags=["Uploads API"])


class PresignRequest(BaseModel):
    userId: Optional[str] = None
    fileName: str
    size: int
    contentType: Optional[str] = None
    paymentId: Optional[str] = None


class RegisterRequest(BaseModel):
    userId: Optional[str] = None
    key: str
    originalName: str
    size: int
    contentType: Optional[str] = None
    paymentId: Optional[str] = None


class CompleteRequest(BaseModel):
    userId: Optional[str] = None
    keys: List[str] = Field(default_factory=list)
    paymentId: Optional[str] = None
    customerInfo: Dict[str, Any] = Field(default_factory=dict)
    pricingSnapshot: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


def _json_field(name: str, raw: Optional[str]) -> Dict[str, Any]:
    """Champs multipart transmis en chaîne JSON ('{}' si vide)."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        raise ValidationError(f"{name} must be valid JSON")
    if not isinstance(value, dict):
        raise ValidationError(f"{name} must be a JSON object")
    return value


def _public_files(record: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        {"originalName": f.get("originalName"), "size": f.get("size"), "uploadedAt": f.get("uploadedAt")}
        for f in record.get("files") or []
    ]


# module backend.uploads.views
@router.post("/files", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def upload_files(
    files: List[UploadFile] = File(default=[]),
    userId: Optional[str] = Form(default=None),
    customerInfo: Optional[str] = Form(default=None),
    pricingSnapshot: Optional[str] = Form(default=None),
    metadata: Optional[str] = Form(default=None),
):
    """
    Dépôt direct (multipart): files[] + userId + customerInfo/pricingSnapshot/metadata (JSON).
    - Lot validé en entier avant écriture, paiement requis (metadata.paymentId)
    - Réponse: {success, uploadId, files:[{originalName, size, uploadedAt}]}
    """
    try:
        payload = [(f.filename or "file", await f.read(), f.content_type) for f in files]
        # écriture disque et verrou du registre hors de la boucle asyncio
        record = await run_in_threadpool(
            uploads_service.store_direct_upload,
            user_id=userId,
            files=payload,
            customer_info=_json_field("customerInfo", customerInfo),
            pricing_snapshot=_json_field("pricingSnapshot", pricingSnapshot),
            metadata=_json_field("metadata", metadata),
        )
        return {
            "success": True,
            "message": "Files uploaded successfully",
            "uploadId": record["uploadId"],
            "files": _public_files(record),
        }
    except IntakeError:
        raise
    except Exception:
        logger.exception("Erreur upload_files")
        raise HTTPException(status_code=500, detail="Failed to upload files")


@router.post("/presign", dependencies=[Depends(optional_rate_limit(times=60, seconds=60))])
def presign(body: PresignRequest):
    try:
        signed = uploads_service.presign_upload(
            user_id=body.userId,
            file_name=body.fileName,
            size=body.size,
            content_type=body.contentType,
            payment_id=body.paymentId,
        )
        return {"success": True, **signed}
    except IntakeError:
        raise
    except Exception:
        logger.exception("Erreur presign")
        raise HTTPException(status_code=500, detail="Failed to create upload URL")


@router.post("/register")
def register(body: RegisterRequest):
    """Enregistre un objet transféré via URL signée (idempotent par clé)."""
    try:
        document, created = uploads_service.register_document(
            user_id=body.userId,
            key=body.key,
            original_name=body.originalName,
            size=body.size,
            content_type=body.contentType,
            payment_id=body.paymentId,
        )
        return {"success": True, "document": document, "created": created}
    except IntakeError:
        raise
    except Exception:
        logger.exception("Erreur register")
        raise HTTPException(status_code=500, detail="Failed to register document")


@router.post("/complete")
def complete(body: CompleteRequest):
    try:
        record = uploads_service.complete_upload(
            user_id=body.userId,
            keys=body.keys,
            payment_id=body.paymentId,
            customer_info=body.customerInfo,
            pricing_snapshot=body.pricingSnapshot,
            metadata=body.metadata,
        )
        return {"success": True, "uploadId": record["uploadId"], "files": _public_files(record)}
    except IntakeError:
        raise
    except Exception:
        logger.exception("Erreur complete")
        raise HTTPException(status_code=500, detail="Failed to complete upload")


@router.get("/status/{upload_id}")
def upload_status(upload_id: str):
    try:
        record = uploads_service.get_upload_status(upload_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Upload not found")
    return {
        "success": True,
        "upload": {
            "uploadId": record["uploadId"],
            "status": record.get("status"),
            "uploadedAt": record.get("uploadedAt"),
            "files": _public_files(record),
        },
    }


@router.get("/user/{user_id}")
def user_uploads(user_id: str):
    uploads = uploads_service.list_user_uploads(user_id)
    return {
        "success": True,
        "uploads": [
            {
                "uploadId": r["uploadId"],
                "status": r.get("status"),
                "uploadedAt": r.get("uploadedAt"),
                "fileCount": len(r.get("files") or []),
                "pricingSnapshot": r.get("pricingSnapshot") or {},
            }
            for r in uploads
        ],
    }


@router.post("/{upload_id}/processed", include_in_schema=False)
def mark_processed(upload_id: str):
    """Back-office: passe un dépôt de 'uploaded' à 'processed'."""
    try:
        record = uploads_service.mark_processed(upload_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Upload not found or already processed")
    return {"success": True, "uploadId": record["uploadId"], "status": record["status"]}
