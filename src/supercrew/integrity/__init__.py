"""Checksum helpers and file integrity classification."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Literal, Optional

IntegrityStatus = Literal["clean", "modified", "missing", "corrupted"]
OverallStatus = Literal["clean", "warning", "critical"]

_CHUNK_SIZE = 1024 * 1024


def sha256_file(path: Path) -> str:
    """Return the hex-encoded SHA-256 digest of ``path``.

    Args:
        path: File to hash.

    Returns:
        str: Lowercase hex digest.

    Raises:
        OSError: If the file cannot be read.
    """
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def short_hash(value: str, length: int = 8) -> str:
    """Return the leading ``length`` characters of a digest."""
    return value[:length]


def classify_file(
    path: Path, original_hash: str
) -> tuple[IntegrityStatus, str, Optional[str]]:
    """Classify a tracked file against its recorded hash.

    Args:
        path: Absolute path of the tracked file.
        original_hash: Digest recorded when tracking started.

    Returns:
        tuple[IntegrityStatus, str, Optional[str]]: The status, the current digest
        (empty when unavailable) and an error description for unreadable files.
    """
    if not path.exists():
        return "missing", "", None
    try:
        current = sha256_file(path)
    except OSError as exc:
        return "corrupted", "", str(exc)
    if current != original_hash:
        return "modified", current, None
    return "clean", current, None


def overall_status(modified: int, missing: int, corrupted: int) -> OverallStatus:
    """Aggregate per-file counts into an installation-wide status.

    Any corrupted file is critical; modified or missing files only warn.
    """
    if corrupted > 0:
        return "critical"
    if modified > 0 or missing > 0:
        return "warning"
    return "clean"


__all__ = [
    "IntegrityStatus",
    "OverallStatus",
    "sha256_file",
    "short_hash",
    "classify_file",
    "overall_status",
]
