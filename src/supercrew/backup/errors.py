"""Backup archive errors."""


class BackupError(Exception):
    """Base exception for backup archive operations."""


class BackupVerificationError(BackupError):
    """Raised when an archive fails its size, checksum, or readability checks."""


class UnsafeArchiveError(BackupError):
    """Raised when an archive member would be written outside the install dir."""
