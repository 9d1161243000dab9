"""
Fichiers mis en attente pour une session (mémoire uniquement, vidés à la fin de la session).
Chaque fichier porte sa sélection (type de document, tier) et produit une ligne de commande.
"""
import mimetypes
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from backend.pricing import OrderLineItem, PricingTier


@dataclass(frozen=True)
class StagedFile:
    id: str
    name: str
    content_type: str
    data: bytes = b""
    document_type_id: Optional[str] = None
    tier: str = PricingTier.STANDARD.value

    @property
    def size(self) -> int:
        return len(self.data)

    def describe(self) -> Tuple[str, int, str]:
        return self.name, self.size, self.content_type


class FileStaging:
    def __init__(self):
        self._files: Dict[str, StagedFile] = {}

    def __len__(self) -> int:
        return len(self._files)

    def add(
        self,
        name: str,
        data: bytes,
        content_type: Optional[str] = None,
        *,
        document_type_id: Optional[str] = None,
        tier: str = PricingTier.STANDARD.value,
    ) -> StagedFile:
        staged = StagedFile(
            id=f"file_{uuid.uuid4().hex[:12]}",
            name=name,
            content_type=content_type or mimetypes.guess_type(name)[0] or "application/octet-stream",
            data=data,
            document_type_id=document_type_id,
            tier=tier,
        )
        self._files[staged.id] = staged
        return staged

    def add_path(self, path, **selection) -> StagedFile:
        p = Path(path)
        return self.add(p.name, p.read_bytes(), **selection)

    def get(self, file_id: str) -> StagedFile:
        try:
            return self._files[file_id]
        except KeyError:
            raise KeyError(f"Unknown staged file: {file_id}") from None

    def select(self, file_id: str, *, document_type_id: Optional[str] = None, tier: Optional[str] = None) -> StagedFile:
        current = self.get(file_id)
        updated = replace(
            current,
            document_type_id=document_type_id if document_type_id is not None else current.document_type_id,
            tier=tier if tier is not None else current.tier,
        )
        self._files[file_id] = updated
        return updated

    def remove(self, file_id: str) -> None:
        self.get(file_id)
        del self._files[file_id]

    def clear(self) -> None:
        self._files.clear()

    def files(self) -> List[StagedFile]:
        return list(self._files.values())

    def line_items(self) -> List[OrderLineItem]:
        """Une ligne par fichier ayant un type de document (quantité 1), dans l'ordre d'ajout."""
        return [
            OrderLineItem(
                document_type_id=f.document_type_id,
                tier=f.tier,
                quantity=1,
                file_id=f.id,
                file_name=f.name,
            )
            for f in self._files.values()
            if f.document_type_id
        ]
