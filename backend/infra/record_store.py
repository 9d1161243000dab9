"""
Registre JSON append-only (un fichier = une collection).

- Les écritures sont sérialisées par un verrou par fichier (partagé entre toutes les instances
  pointant sur le même chemin) puis écrites de façon atomique (fichier temporaire + os.replace).
- Lecture tolérante: fichier absent ou illisible -> collection vide (loggé).
- Écriture stricte: un fichier illisible n'est jamais réécrit (CorruptedStoreError), son contenu reste intact.
- Aucune suppression: seules les opérations append/append_if_absent/update_first existent.
"""
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Predicate = Callable[[Record], bool]

class CorruptedStoreError(RuntimeError):
    """Fichier de registre présent mais illisible: toute écriture est refusée."""


_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
        return lock


class JsonRecordStore:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    def _unreadable(self, strict: bool, cause: Optional[Exception] = None) -> List[Record]:
        if strict:
            logger.error("record_store: refusing to write over unreadable file %s", self.path)
            raise CorruptedStoreError(f"Record file is unreadable: {self.path}") from cause
        logger.warning("record_store: unreadable file %s, reading as empty", self.path)
        return []

    def _read(self, strict: bool = False) -> List[Record]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, ValueError) as e:
            return self._unreadable(strict, e)
        if not isinstance(data, list):
            return self._unreadable(strict)
        return data

    def _write(self, records: List[Record]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(records, fh, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def all(self) -> List[Record]:
        with self._lock:
            return self._read()

    def find(self, predicate: Predicate) -> Optional[Record]:
        return next((r for r in self.all() if predicate(r)), None)

    def filter(self, predicate: Predicate) -> List[Record]:
        return [r for r in self.all() if predicate(r)]

    def append(self, record: Record) -> Record:
        with self._lock:
            records = self._read(strict=True)
            records.append(record)
            self._write(records)
        return record

    def append_if_absent(self, record: Record, predicate: Predicate) -> Tuple[Record, bool]:
        """
        Ajoute record sauf si un enregistrement existant satisfait predicate.
        Retour: (enregistrement effectif, created). Lecture + écriture sous le même verrou.
        """
        with self._lock:
            records = self._read(strict=True)
            existing = next((r for r in records if predicate(r)), None)
            if existing is not None:
                return existing, False
            records.append(record)
            self._write(records)
        return record, True

    def update_first(self, predicate: Predicate, changes: Record) -> Optional[Record]:
        with self._lock:
            records = self._read(strict=True)
            for record in records:
                if predicate(record):
                    record.update(changes)
                    self._write(records)
                    return record
        return None


def get_store(path: Path) -> JsonRecordStore:
    return JsonRecordStore(path)
