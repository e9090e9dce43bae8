"""Path and filename safety checks applied before files are installed."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

LOGGER = logging.getLogger(__name__)

DANGEROUS_PATHS: tuple[str, ...] = (
    "/",
    "/bin",
    "/boot",
    "/dev",
    "/etc",
    "/lib",
    "/lib64",
    "/proc",
    "/root",
    "/sbin",
    "/sys",
    "/usr",
    "/var",
)
SUSPICIOUS_PATH_PATTERNS: tuple[str, ...] = ("..", "~", "$", "`", "|", ">", "<", "&", ";", "\\")
SUSPICIOUS_NAME_CHARS: tuple[str, ...] = ("|", ">", "<", "&", ";", "`", "$", "~")


class SecurityValidator:
    """Reject install targets in system locations and filenames with shell metacharacters."""

    def __init__(self, *, home: Path | None = None) -> None:
        self._home = os.path.abspath(os.path.expanduser(str(home or Path.home())))

    def validate_installation_target(self, target: Path | str) -> tuple[bool, list[str]]:
        """Check that a target path is not a system directory and looks benign.

        Paths inside the user's home directory are never treated as system
        directories, even when the home directory itself lives under one.

        Args:
            target: Path a file or directory will be written to.

        Returns:
            tuple[bool, list[str]]: Whether the target is acceptable, and why not.
        """
        clean = os.path.abspath(str(target))
        inside_home = clean == self._home or clean.startswith(self._home + os.sep)

        if not inside_home:
            for dangerous in DANGEROUS_PATHS:
                # The filesystem root only matches exactly.
                if clean == dangerous or clean.startswith(dangerous + os.sep):
                    return False, [
                        f"Installation to system directory '{dangerous}' is not allowed"
                    ]

        for pattern in SUSPICIOUS_PATH_PATTERNS:
            if pattern in clean:
                return False, [f"Path contains suspicious pattern '{pattern}'"]
        return True, []

    def check_permissions(self, path: Path | str) -> tuple[bool, list[str]]:
        """Check that ``path`` (or its nearest existing ancestor) is writable.

        Args:
            path: Directory that will receive files.

        Returns:
            tuple[bool, list[str]]: Whether a test file could be created, and why not.
        """
        candidate = Path(path)
        while not candidate.exists():
            if candidate.parent == candidate:
                return False, [f"No existing ancestor for {path}"]
            candidate = candidate.parent

        directory = candidate if candidate.is_dir() else candidate.parent
        try:
            with tempfile.NamedTemporaryFile(dir=directory, prefix=".crew_write_test"):
                pass
        except OSError as exc:
            LOGGER.debug("Write probe failed in %s: %s", directory, exc)
            return False, [f"No write permission for {directory}"]
        return True, []

    def validate_file_name(self, name: str) -> str | None:
        """Return a reason the relative filename is unsafe, or ``None``."""
        if not name:
            return "empty filename"
        if ".." in name:
            return f"filename {name} contains path traversal '..'"
        if os.path.isabs(name):
            return f"filename {name} must not be an absolute path"
        for char in SUSPICIOUS_NAME_CHARS:
            if char in name:
                return f"filename {name} contains suspicious character '{char}'"
        return None

    def validate_component_files(
        self, files: Iterable[str], source_dir: Path, target_dir: Path
    ) -> tuple[bool, list[str]]:
        """Validate relative file names, their sources, and their targets.

        Args:
            files: Relative file names to install.
            source_dir: Directory the files are copied from.
            target_dir: Directory the files are copied to.

        Returns:
            tuple[bool, list[str]]: Whether every file passed, and the failures.
        """
        errors: list[str] = []
        for name in files:
            reason = self.validate_file_name(name)
            if reason is not None:
                errors.append(reason)
                continue

            source = source_dir / name
            if not source.exists():
                errors.append(f"Cannot access source file {name}")
            elif source.is_dir():
                errors.append(f"Source path {name} is a directory, not a file")

            _, target_errors = self.validate_installation_target(target_dir / name)
            errors.extend(target_errors)
        return not errors, errors


__all__ = ["SecurityValidator", "DANGEROUS_PATHS"]
