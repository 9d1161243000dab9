"""
Règles d'un lot de fichiers à déposer (partagées serveur/client).

Un lot invalide est rejeté en entier, avant tout transfert réseau ou écriture disque.
"""
from typing import Iterable, Optional, Tuple

from backend.errors import ValidationError

MAX_FILES = 30
MIN_FILE_SIZE = 1024
MAX_FILE_SIZE = 50 * 1024 * 1024

ALLOWED_CONTENT_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
})

# (nom, taille en octets, content-type)
FileDescriptor = Tuple[str, int, Optional[str]]


def _megabytes(size: int) -> str:
    return f"{size / (1024 * 1024):.0f}MB"


def validate_file(name: str, size: int, content_type: Optional[str]) -> None:
    if (content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(f"File '{name}' has an unsupported type ({content_type or 'unknown'})")
    if size < MIN_FILE_SIZE:
        raise ValidationError(f"File '{name}' is too small (minimum 1KB)")
    if size > MAX_FILE_SIZE:
        raise ValidationError(f"File '{name}' is too large (maximum {_megabytes(MAX_FILE_SIZE)})")


def validate_batch(files: Iterable[FileDescriptor]) -> None:
    """
    Valide un lot complet (fail-fast sur la première violation).
    - lot vide refusé, au plus MAX_FILES fichiers
    - chaque fichier: taille dans [MIN_FILE_SIZE, MAX_FILE_SIZE] et type autorisé
    """
    files = list(files)
    if not files:
        raise ValidationError("No files provided")
    if len(files) > MAX_FILES:
        raise ValidationError(f"Too many files: {len(files)} (maximum {MAX_FILES})")
    for name, size, content_type in files:
        validate_file(name, size, content_type)
