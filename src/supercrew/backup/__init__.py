"""Archive backups for SuperCrew installations."""

from .errors import BackupError, BackupVerificationError, UnsafeArchiveError
from .manager import ARCHIVE_SUFFIXES, METADATA_MEMBER, SIDECAR_SUFFIX, BackupManager, sidecar_path
from .models import BackupInfo, BackupMetadata, BackupOptions

__all__ = [
    "BackupManager",
    "BackupOptions",
    "BackupMetadata",
    "BackupInfo",
    "BackupError",
    "BackupVerificationError",
    "UnsafeArchiveError",
    "ARCHIVE_SUFFIXES",
    "METADATA_MEMBER",
    "SIDECAR_SUFFIX",
    "sidecar_path",
]
