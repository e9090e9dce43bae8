"""Backup option and archive metadata models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

CompressionMode = Literal["none", "gzip", "bzip2"]

BACKUP_FORMAT_VERSION = "1.0.0"


class BackupOptions(BaseModel):
    """Settings for a backup manager instance.

    Attributes:
        install_dir: Installation directory to snapshot or restore into.
        backup_dir: Directory holding archives and their sidecars.
        backup_name: Filename prefix for new archives.
        compress: Archive compression mode.
        verbose: Log each archived or restored entry.
        dry_run: Report what would happen without touching the filesystem.
        overwrite: Replace existing files on restore.
        include_config: Archive the ``.crew/config`` directory.
        include_logs: Archive log files and ``logs/`` directories.
        description: Free-form label appended to the archive name.
    """

    install_dir: Path
    backup_dir: Path
    backup_name: str = "crew_backup"
    compress: CompressionMode = "gzip"
    verbose: bool = False
    dry_run: bool = False
    overwrite: bool = False
    include_config: bool = True
    include_logs: bool = False
    description: str = ""


class BackupMetadata(BaseModel):
    """Metadata stored inside each archive and in its ``.meta`` sidecar.

    Only the sidecar carries ``size`` and ``checksum``; the embedded copy is
    written before the archive is complete and keeps their empty defaults.
    """

    backup_version: str = BACKUP_FORMAT_VERSION
    created: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    install_dir: str = ""
    components: Dict[str, str] = Field(default_factory=dict)
    framework_version: str = ""
    size: int = 0
    checksum: str = ""
    backup_type: str = "full"
    description: str = ""


@dataclass(slots=True)
class BackupInfo:
    """Summary of an archive on disk."""

    path: Path
    exists: bool = False
    size: int = 0
    created: Optional[datetime] = None
    metadata: Optional[BackupMetadata] = None
    file_count: int = 0
    error: Optional[str] = None

    def to_payload(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""
        return {
            "path": str(self.path),
            "exists": self.exists,
            "size": self.size,
            "created": self.created.isoformat() if self.created else None,
            "metadata": self.metadata.model_dump(mode="json") if self.metadata else None,
            "file_count": self.file_count,
            "error": self.error,
        }


__all__ = [
    "CompressionMode",
    "BACKUP_FORMAT_VERSION",
    "BackupOptions",
    "BackupMetadata",
    "BackupInfo",
]
