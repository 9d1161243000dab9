"""
UploadCoordinator: dépose les fichiers d'une commande payée.

- Le lot est validé en entier avant tout transfert (backend.uploads.validation).
- "direct": un seul POST multipart; progression 0 -> 100.
- "presigned": par fichier presign -> PUT signé -> register, au plus `concurrency` transferts
  simultanés; progression = fichiers terminés / total; puis complete crée l'UploadRecord.
  Les fichiers déjà enregistrés sont conservés et sautés lors d'une nouvelle tentative.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from backend.errors import IntakeError, TransportError, ValidationError
from backend.uploads.validation import validate_batch
from . import config
from .api import ApiService
from .staging import StagedFile

logger = logging.getLogger(__name__)

STRATEGIES = ("direct", "presigned")

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class UploadMetadata:
    user_id: str
    payment_id: Optional[str] = None
    customer_info: Dict[str, Any] = field(default_factory=dict)
    pricing_snapshot: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadResult:
    upload_id: str
    strategy: str
    files: Tuple[Dict[str, Any], ...] = ()


class _Progress:
    """Progression bornée 0-100 et jamais décroissante."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self.value = -1

    def report(self, percent: float) -> None:
        value = max(0, min(100, int(percent)))
        if value <= self.value:
            return
        self.value = value
        if self._callback:
            self._callback(value)


class UploadCoordinator:
    def __init__(self, api: ApiService, *, strategy: Optional[str] = None, concurrency: Optional[int] = None):
        self.strategy = (strategy or config.INTAKE_UPLOAD_STRATEGY).lower()
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown upload strategy: {self.strategy}")
        self.concurrency = max(1, concurrency or config.INTAKE_UPLOAD_CONCURRENCY)
        self._api = api
        # id de fichier -> clé de stockage déjà enregistrée côté serveur
        self.registered: Dict[str, str] = {}

    async def upload(
        self,
        files: Sequence[StagedFile],
        metadata: UploadMetadata,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        validate_batch(f.describe() for f in files)
        if not metadata.user_id:
            raise ValidationError("userId is required")
        progress = _Progress(on_progress)
        if self.strategy == "direct":
            return await self._upload_direct(files, metadata, progress)
        return await self._upload_presigned(files, metadata, progress)

    async def _upload_direct(self, files: Sequence[StagedFile], metadata: UploadMetadata, progress: _Progress) -> UploadResult:
        progress.report(0)
        fields = {
            "userId": metadata.user_id,
            "customerInfo": json.dumps(metadata.customer_info),
            "pricingSnapshot": json.dumps(metadata.pricing_snapshot),
            "metadata": json.dumps({**metadata.extra, "paymentId": metadata.payment_id}),
        }
        data = await self._api.upload_direct([(f.name, f.data, f.content_type) for f in files], fields)
        progress.report(100)
        logger.info("direct upload done upload_id=%s files=%s", data.get("uploadId"), len(files))
        return UploadResult(upload_id=data["uploadId"], strategy="direct", files=tuple(data.get("files") or ()))

    async def _transfer(self, staged: StagedFile, metadata: UploadMetadata, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            signed = await self._api.presign(
                user_id=metadata.user_id,
                file_name=staged.name,
                size=staged.size,
                content_type=staged.content_type,
                payment_id=metadata.payment_id,
            )
            await self._api.put_object(signed["uploadUrl"], staged.data, staged.content_type)
            await self._api.register(
                user_id=metadata.user_id,
                key=signed["key"],
                original_name=staged.name,
                size=staged.size,
                content_type=staged.content_type,
                payment_id=metadata.payment_id,
            )
            self.registered[staged.id] = signed["key"]

    async def _upload_presigned(self, files: Sequence[StagedFile], metadata: UploadMetadata, progress: _Progress) -> UploadResult:
        total = len(files)
        pending = [f for f in files if f.id not in self.registered]
        completed = total - len(pending)
        progress.report(completed * 100 / total)

        semaphore = asyncio.Semaphore(self.concurrency)
        failed: List[str] = []

        async def run(staged: StagedFile) -> None:
            nonlocal completed
            try:
                await self._transfer(staged, metadata, semaphore)
            except IntakeError as e:
                logger.warning("transfer failed file=%s: %s", staged.name, e)
                failed.append(staged.id)
                return
            completed += 1
            progress.report(completed * 100 / total)

        await asyncio.gather(*(run(f) for f in pending))
        if failed:
            raise TransportError(f"{len(failed)} of {total} files failed to upload", failed_files=failed)

        data = await self._api.complete({
            "userId": metadata.user_id,
            "keys": [self.registered[f.id] for f in files],
            "paymentId": metadata.payment_id,
            "customerInfo": metadata.customer_info,
            "pricingSnapshot": metadata.pricing_snapshot,
            "metadata": metadata.extra,
        })
        progress.report(100)
        logger.info("presigned upload done upload_id=%s files=%s", data.get("uploadId"), total)
        return UploadResult(upload_id=data["uploadId"], strategy="presigned", files=tuple(data.get("files") or ()))
