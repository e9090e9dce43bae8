"""File operations that keep the metadata inventory and integrity records in sync."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from supercrew.metadata import MetadataStore

LOGGER = logging.getLogger(__name__)

FRAMEWORK_SEPARATOR = "\n\n<!-- FRAMEWORK CONTENT BELOW - DO NOT EDIT MANUALLY -->\n\n"
_COMPONENT_DIRS = frozenset({"agents", "commands", "hooks"})


def component_for_path(relative: str) -> str:
    """Return the component owning an install-relative path."""
    head = relative.split("/", 1)[0]
    if head in _COMPONENT_DIRS:
        return head
    if relative.startswith(".crew/mcp/"):
        return "mcp"
    return "core"


def merge_framework_content(existing: str, framework: str) -> str:
    """Append framework content below the user's own content.

    User content above the separator is preserved; anything already below it is
    replaced, so merging the same framework content twice is a no-op.
    """
    user_part = existing.split(FRAMEWORK_SEPARATOR, 1)[0]
    return user_part + FRAMEWORK_SEPARATOR + framework


class FileManager:
    """Copy and remove managed files for one installation."""

    def __init__(
        self,
        install_dir: Path,
        metadata: MetadataStore | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._install_dir = Path(install_dir)
        self._metadata = metadata or MetadataStore(self._install_dir)
        self._logger = logger or LOGGER

    @property
    def metadata(self) -> MetadataStore:
        """Return the metadata store receiving inventory updates."""
        return self._metadata

    def ensure_directory_with_inventory(self, path: Path) -> None:
        """Create a directory (if needed) and record it in the inventory."""
        path.mkdir(parents=True, exist_ok=True)
        self._metadata.add_to_inventory(path, is_directory=True)

    def copy_file(self, source: Path, target: Path) -> None:
        """Copy bytes and permission bits from ``source`` to ``target``.

        Raises:
            OSError: If the copy fails.
        """
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        shutil.copymode(source, target)

    def copy_file_with_inventory(
        self, source: Path, target: Path, *, mode: int | None = None
    ) -> None:
        """Copy a file and start tracking it for inventory and integrity.

        Args:
            source: Template file.
            target: Install location.
            mode: Permission bits applied after the copy.
        """
        self.copy_file(source, target)
        if mode is not None:
            target.chmod(mode)
        self._track(target)

    def merge_claude_file(self, source: Path, target: Path) -> None:
        """Merge framework content into an existing user-edited file.

        Falls back to a plain copy when ``target`` does not exist.
        """
        if not target.exists():
            self.copy_file_with_inventory(source, target, mode=0o644)
            return
        merged = merge_framework_content(
            target.read_text(encoding="utf-8"), source.read_text(encoding="utf-8")
        )
        target.write_text(merged, encoding="utf-8")
        target.chmod(0o644)
        self._track(target)

    def remove_file_with_inventory(self, path: Path) -> bool:
        """Delete a managed file and forget it.

        Returns:
            bool: True when a file was deleted; missing files return False.
        """
        removed = False
        if path.is_file() or path.is_symlink():
            path.unlink()
            removed = True
        self._metadata.remove_from_inventory(path, is_directory=False)
        self._metadata.remove_file_from_integrity_tracking(path)
        return removed

    def _track(self, target: Path) -> None:
        relative = self._metadata.relative_key(target)
        self._metadata.add_to_inventory(target, is_directory=False)
        self._metadata.add_file_to_integrity_tracking(target, component_for_path(relative))


__all__ = ["FileManager", "FRAMEWORK_SEPARATOR", "component_for_path", "merge_framework_content"]
