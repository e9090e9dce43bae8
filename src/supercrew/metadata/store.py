"""Persistence and reconciliation for the unified installation metadata."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from supercrew.integrity import (
    classify_file,
    overall_status,
    sha256_file,
    short_hash,
)

from .errors import DocumentVersionError, MetadataError, MissingComponentError
from .models import (
    DEFAULT_VERSION,
    ComponentMeta,
    DocumentMeta,
    FeatureMeta,
    FileIntegrityMeta,
    IntegrityMeta,
    InventoryMeta,
    UnifiedMetadata,
)

LOGGER = logging.getLogger(__name__)

STATE_DIRNAME = ".crew"
METADATA_RELATIVE_PATH = Path(STATE_DIRNAME) / "config" / "crew-metadata.json"
CHANGELOG_RELATIVE_PATH = Path(STATE_DIRNAME) / "CHANGELOG.md"

CORE_DOCUMENTS: tuple[str, ...] = (
    "CLAUDE.md",
    "COMMANDS.md",
    "FLAGS.md",
    "MCP.md",
    "MODES.md",
    "ORCHESTRATOR.md",
    "PERSONAS.md",
    "PRINCIPLES.md",
    "RULES.md",
)
SIGNIFICANT_DOCUMENTS = frozenset(CORE_DOCUMENTS)
SIGNIFICANT_SUFFIX = "orchestrator-agent.md"

_LOG_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)
_CHANGELOG_HEADER = (
    "# Changelog\n\nAll notable changes to SuperCrew documents will be documented in this file.\n\n"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _log_stamp() -> str:
    return datetime.now().strftime(_LOG_TIME_FORMAT)


def is_semantic_version(value: str) -> bool:
    """Return True when ``value`` is a MAJOR.MINOR.PATCH version string."""
    return bool(_SEMVER_PATTERN.match(value))


def format_bytes(size: int) -> str:
    """Render a byte count using binary units."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def directory_stats(path: Path) -> tuple[int, int]:
    """Return the recursive byte size and file count below ``path``.

    Raises:
        OSError: If any part of the tree cannot be walked.
    """

    def _raise(exc: OSError) -> None:
        raise exc

    total_size = 0
    file_count = 0
    for current, _dirs, files in os.walk(path, onerror=_raise):
        for name in files:
            total_size += os.lstat(os.path.join(current, name)).st_size
            file_count += 1
    return total_size, file_count


class MetadataStore:
    """Load, mutate, and persist the unified metadata document of an installation.

    Every public mutator performs its own load/modify/save cycle. There is no
    locking; a single writer per installation is assumed.
    """

    def __init__(self, install_dir: Path, *, logger: logging.Logger | None = None) -> None:
        """Initialize the store for an installation directory.

        Args:
            install_dir: Installation directory owning the metadata file.
            logger: Optional logger; defaults to the module logger.
        """
        self._install_dir = Path(install_dir).expanduser()
        self._logger = logger or LOGGER

    @property
    def install_dir(self) -> Path:
        """Return the installation directory."""
        return self._install_dir

    @property
    def metadata_path(self) -> Path:
        """Return the path to the metadata JSON document."""
        return self._install_dir / METADATA_RELATIVE_PATH

    # Core persistence -------------------------------------------------

    def load(self) -> UnifiedMetadata:
        """Load the metadata document, initialising an empty record if absent.

        Returns:
            UnifiedMetadata: Parsed metadata.

        Raises:
            MetadataError: If the stored document cannot be read or parsed.
        """
        path = self.metadata_path
        if not path.exists():
            return self._empty()

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise MetadataError(f"Invalid metadata document at {path}: {exc}") from exc
        except OSError as exc:
            raise MetadataError(f"Unable to read metadata document at {path}: {exc}") from exc

        try:
            return UnifiedMetadata.model_validate(data)
        except ValidationError as exc:
            raise MetadataError(f"Invalid metadata document at {path}: {exc}") from exc

    def save(self, metadata: UnifiedMetadata) -> None:
        """Persist the metadata document through a temporary file and rename.

        Args:
            metadata: Metadata to serialize.

        Raises:
            MetadataError: If the document cannot be written.
        """
        path = self.metadata_path
        payload = json.dumps(metadata.model_dump(mode="json"), indent=2, sort_keys=False)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=".crew-metadata-", suffix=".tmp", dir=str(path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(temp_name, path)
            except BaseException:
                if os.path.exists(temp_name):
                    os.unlink(temp_name)
                raise
        except OSError as exc:
            raise MetadataError(f"Unable to write metadata document at {path}: {exc}") from exc

    def check_installation_exists(self) -> bool:
        """Return True when a metadata document is present on disk."""
        return self.metadata_path.exists()

    def delete(self) -> bool:
        """Remove the metadata document after a full uninstall.

        Returns:
            bool: True if a document was deleted.
        """
        try:
            self.metadata_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise MetadataError(f"Unable to delete {self.metadata_path}: {exc}") from exc
        return True

    # Refresh ----------------------------------------------------------

    def refresh(self) -> UnifiedMetadata:
        """Rescan the installation and reconcile component and document records.

        Known documents keep their version and previous version verbatim; new
        documents start at ``1.0.0``.

        Returns:
            UnifiedMetadata: The refreshed and persisted metadata.
        """
        metadata = self.load()
        now = _utcnow()
        metadata.installation.last_updated = now
        metadata.installation.install_dir = str(self._install_dir)

        self._scan_components(metadata, now)
        self._scan_documents(metadata, now)
        self._update_totals(metadata)

        self.save(metadata)
        self._logger.debug("Refreshed metadata for %s", self._install_dir)
        return metadata

    def _component_paths(self) -> dict[str, Path]:
        return {
            "core": self._install_dir,
            "commands": self._install_dir / "commands",
            "agents": self._install_dir / "agents",
            "hooks": self._install_dir / "hooks",
            "mcp": self._install_dir / STATE_DIRNAME / "mcp",
        }

    def _scan_components(self, metadata: UnifiedMetadata, now: datetime) -> None:
        for name, path in self._component_paths().items():
            meta = metadata.components.get(name) or ComponentMeta()
            meta.updated_at = now
            if not path.exists():
                meta.status = "missing"
                meta.size = 0
                meta.file_count = 0
            else:
                meta.status = "installed"
                try:
                    meta.size, meta.file_count = directory_stats(path)
                except OSError as exc:
                    self._logger.warning("Unable to scan component %s: %s", name, exc)
                    meta.status = "corrupted"
            metadata.components[name] = meta

    def _scan_documents(self, metadata: UnifiedMetadata, now: datetime) -> None:
        for doc in CORE_DOCUMENTS:
            metadata.documents[doc] = self._scan_document(
                self._install_dir / doc, "core", metadata.documents.get(doc), now
            )

        for component in ("agents", "hooks"):
            directory = self._install_dir / component
            if not directory.is_dir():
                continue
            for path in sorted(directory.rglob("*.md")):
                if not path.is_file():
                    continue
                key = self.relative_key(path)
                metadata.documents[key] = self._scan_document(
                    path, component, metadata.documents.get(key), now
                )

    def _scan_document(
        self,
        path: Path,
        component: str,
        existing: DocumentMeta | None,
        now: datetime,
    ) -> DocumentMeta:
        meta = DocumentMeta(component=component, updated_at=now)
        if existing is not None:
            meta.version = existing.version
            meta.previous_version = existing.previous_version
            if existing.version:
                meta.updated_at = existing.updated_at
        else:
            meta.version = DEFAULT_VERSION

        if path.exists():
            meta.status = "present"
            meta.size = path.stat().st_size
            try:
                meta.checksum = sha256_file(path)
            except OSError as exc:
                self._logger.warning("Unable to hash document %s: %s", path, exc)
        else:
            meta.status = "missing"
            meta.size = 0
        return meta

    def _update_totals(self, metadata: UnifiedMetadata) -> None:
        metadata.installation.total_size = sum(c.size for c in metadata.components.values())
        metadata.installation.total_files = sum(
            c.file_count for c in metadata.components.values()
        )

    # Components -------------------------------------------------------

    def get_component_status(self, name: str) -> ComponentMeta:
        """Return the stored record for a component.

        Raises:
            MissingComponentError: If the component has no record.
        """
        metadata = self.load()
        try:
            return metadata.components[name]
        except KeyError as exc:
            raise MissingComponentError(f"Component {name} not found in metadata") from exc

    def get_component_version(self, name: str) -> str | None:
        """Return the recorded version of a component, if any."""
        meta = self.load().components.get(name)
        if meta is None or not meta.version:
            return None
        return meta.version

    def update_component_version(self, name: str, version: str) -> None:
        """Record a new version for a component, shifting the old one to previous."""
        metadata = self.load()
        meta = metadata.components.get(name) or ComponentMeta()
        meta.previous_version = meta.version or None
        meta.version = version
        meta.updated_at = _utcnow()
        metadata.components[name] = meta
        self.save(metadata)

    def record_component_install(
        self,
        name: str,
        version: str,
        *,
        files: Iterable[Path] = (),
        dependencies: Iterable[str] = (),
    ) -> ComponentMeta:
        """Record a successful component install along with its installed files.

        Args:
            name: Component name.
            version: Version that was installed.
            files: Installed target paths, used for size, count and checksum.
            dependencies: Declared component dependencies.

        Returns:
            ComponentMeta: The stored component record.
        """
        metadata = self.load()
        meta = metadata.components.get(name) or ComponentMeta()
        if meta.version and meta.version != version:
            meta.previous_version = meta.version
        meta.version = version
        meta.status = "installed"
        meta.dependencies = list(dependencies)

        size = 0
        count = 0
        digests: list[str] = []
        for path in files:
            if not path.is_file():
                continue
            size += path.stat().st_size
            count += 1
            digests.append(sha256_file(path))
        meta.size = size
        meta.file_count = count
        meta.checksum = short_hash("".join(digests), 16) if digests else None
        meta.updated_at = _utcnow()

        metadata.components[name] = meta
        metadata.installation.last_updated = meta.updated_at
        metadata.installation.install_dir = str(self._install_dir)
        self.save(metadata)
        return meta

    def remove_component(self, name: str) -> None:
        """Drop a component record."""
        metadata = self.load()
        if metadata.components.pop(name, None) is not None:
            self.save(metadata)

    def set_feature_flag(self, name: str, enabled: bool, description: str | None = None) -> None:
        """Set a feature flag value."""
        metadata = self.load()
        metadata.features[name] = FeatureMeta(enabled=enabled, description=description)
        self.save(metadata)

    # Inventory --------------------------------------------------------

    def add_to_inventory(self, path: Path | str, is_directory: bool = False) -> None:
        """Record a file or directory created by the installer."""
        metadata = self.load()
        key = self.relative_key(path)
        inventory = metadata.inventory
        entries = inventory.created_directories if is_directory else inventory.created_files
        if key in entries:
            return
        entries.append(key)
        self._sync_inventory_totals(inventory)
        self.save(metadata)

    def remove_from_inventory(self, path: Path | str, is_directory: bool = False) -> None:
        """Forget a file or directory previously created by the installer."""
        metadata = self.load()
        key = self.relative_key(path)
        inventory = metadata.inventory
        entries = inventory.created_directories if is_directory else inventory.created_files
        if key not in entries:
            return
        entries.remove(key)
        self._sync_inventory_totals(inventory)
        self.save(metadata)

    def get_inventory(self) -> InventoryMeta:
        """Return the inventory of created files and directories."""
        return self.load().inventory

    def _sync_inventory_totals(self, inventory: InventoryMeta) -> None:
        inventory.total_created_files = len(inventory.created_files)
        inventory.total_created_dirs = len(inventory.created_directories)
        inventory.last_updated = _utcnow()

    # Integrity --------------------------------------------------------

    def add_file_to_integrity_tracking(self, path: Path | str, component: str) -> None:
        """Start tracking a file, recording its current hash as the original.

        Raises:
            MetadataError: If the file cannot be hashed.
        """
        metadata = self.load()
        key = self.relative_key(path)
        try:
            digest = sha256_file(self._install_dir / key)
        except OSError as exc:
            raise MetadataError(f"Failed to calculate hash for {key}: {exc}") from exc

        metadata.integrity.file_hashes[key] = FileIntegrityMeta(
            original_hash=digest,
            current_hash=digest,
            status="clean",
            component=component,
            file_path=key,
            modification_log=[f"{_log_stamp()}: File added to integrity tracking"],
        )
        self.save(metadata)

    def remove_file_from_integrity_tracking(self, path: Path | str) -> None:
        """Stop tracking a file."""
        metadata = self.load()
        if metadata.integrity.file_hashes.pop(self.relative_key(path), None) is not None:
            self.save(metadata)

    def check_file_integrity(self) -> IntegrityMeta:
        """Rehash every tracked file and classify it.

        Returns:
            IntegrityMeta: The updated aggregate integrity record.
        """
        metadata = self.load()
        counts = {"clean": 0, "modified": 0, "missing": 0, "corrupted": 0}
        now = _utcnow()

        for key, record in metadata.integrity.file_hashes.items():
            status, current, error = classify_file(self._install_dir / key, record.original_hash)
            record.status = status
            record.last_checked = now
            if status == "missing":
                record.modification_log.append(f"{_log_stamp()}: File not found")
            elif status == "corrupted":
                record.modification_log.append(f"{_log_stamp()}: Cannot read file - {error}")
            else:
                record.current_hash = current
                if status == "modified":
                    record.modification_log.append(
                        f"{_log_stamp()}: Hash mismatch - Original: "
                        f"{short_hash(record.original_hash)}, Current: {short_hash(current)}"
                    )
            counts[status] += 1

        integrity = metadata.integrity
        integrity.last_scan = now
        integrity.total_files = len(integrity.file_hashes)
        integrity.clean_files = counts["clean"]
        integrity.modified_files = counts["modified"]
        integrity.missing_files = counts["missing"]
        integrity.corrupted_files = counts["corrupted"]
        integrity.status = overall_status(
            counts["modified"], counts["missing"], counts["corrupted"]
        )

        self.save(metadata)
        if integrity.status != "clean":
            self._logger.warning(
                "Integrity scan found %d modified, %d missing, %d corrupted file(s)",
                integrity.modified_files,
                integrity.missing_files,
                integrity.corrupted_files,
            )
        return integrity

    def get_integrity_status(self) -> IntegrityMeta:
        """Return the last stored integrity record without rescanning."""
        return self.load().integrity

    def fix_integrity_issues(self) -> list[str]:
        """Drop modified and corrupted files from integrity tracking.

        Returns:
            list[str]: Relative paths that are no longer tracked.
        """
        metadata = self.load()
        dropped = [
            key
            for key, record in metadata.integrity.file_hashes.items()
            if record.status in {"modified", "corrupted"}
        ]
        for key in dropped:
            del metadata.integrity.file_hashes[key]
        if dropped:
            integrity = metadata.integrity
            integrity.total_files = len(integrity.file_hashes)
            integrity.modified_files = 0
            integrity.corrupted_files = 0
            integrity.status = overall_status(0, integrity.missing_files, 0)
            self.save(metadata)
        return dropped

    # Documents --------------------------------------------------------

    def update_document_version(
        self,
        path: Path | str,
        new_version: str,
        *,
        update_changelog: bool = True,
    ) -> DocumentMeta:
        """Assign a new version to a tracked document.

        Significant framework documents also bump their owning component's
        version.

        Args:
            path: Document path, relative to the install dir or absolute within it.
            new_version: Semantic version to assign.
            update_changelog: Prepend an entry to the installation changelog.

        Returns:
            DocumentMeta: The updated document record.

        Raises:
            DocumentVersionError: If the version is invalid, unchanged, or the
                document is not tracked.
        """
        if not is_semantic_version(new_version):
            raise DocumentVersionError(
                f"Invalid version format: {new_version}. Expected semantic version (x.y.z)"
            )

        metadata = self.load()
        key = self.relative_key(path)
        doc = metadata.documents.get(key)
        if doc is None:
            raise DocumentVersionError(
                f"Document {key} is not tracked. Run a metadata refresh first."
            )
        if doc.version == new_version:
            raise DocumentVersionError(f"Document {key} is already at version {new_version}")

        now = _utcnow()
        doc.previous_version = doc.version
        doc.version = new_version
        doc.updated_at = now
        full_path = self._install_dir / key
        if full_path.is_file():
            doc.size = full_path.stat().st_size
            doc.checksum = sha256_file(full_path)

        if self.is_significant_document(key) and doc.component:
            component = metadata.components.get(doc.component) or ComponentMeta()
            component.previous_version = component.version or None
            component.version = new_version
            component.updated_at = now
            metadata.components[doc.component] = component

        metadata.framework.updated_at = now
        self.save(metadata)

        if update_changelog:
            try:
                self._prepend_changelog(key, doc)
            except OSError as exc:
                self._logger.warning("Failed to update changelog: %s", exc)
        return doc

    @staticmethod
    def is_significant_document(key: str) -> bool:
        """Return True when a document update should bump its component version."""
        return key in SIGNIFICANT_DOCUMENTS or key.endswith(SIGNIFICANT_SUFFIX)

    def _prepend_changelog(self, key: str, doc: DocumentMeta) -> None:
        changelog = self._install_dir / CHANGELOG_RELATIVE_PATH
        entry = (
            f"## {doc.version} - {datetime.now().strftime('%Y-%m-%d')}\n\n"
            "### Updated\n"
            f"- {key}: Version updated to {doc.version}\n"
            f"  - Component: {doc.component}\n"
            f"  - Size: {format_bytes(doc.size)}\n"
            f"  - Previous: {doc.previous_version}\n\n"
        )
        existing = (
            changelog.read_text(encoding="utf-8") if changelog.exists() else _CHANGELOG_HEADER
        )
        lines = existing.split("\n")
        if len(lines) >= 3:
            content = "\n".join(lines[:3]) + "\n\n" + entry + "\n".join(lines[3:]).lstrip("\n")
        else:
            content = existing + entry
        changelog.parent.mkdir(parents=True, exist_ok=True)
        changelog.write_text(content, encoding="utf-8")

    # Helpers ----------------------------------------------------------

    def relative_key(self, path: Path | str) -> str:
        """Return the install-relative POSIX key for ``path``.

        Paths outside the installation directory are kept as given.
        """
        candidate = Path(path)
        if not candidate.is_absolute():
            return candidate.as_posix()
        try:
            return candidate.relative_to(self._install_dir).as_posix()
        except ValueError:
            try:
                return candidate.resolve().relative_to(self._install_dir.resolve()).as_posix()
            except ValueError:
                return candidate.as_posix()

    def _empty(self) -> UnifiedMetadata:
        metadata = UnifiedMetadata()
        metadata.installation.install_dir = str(self._install_dir)
        return metadata


__all__ = [
    "MetadataStore",
    "METADATA_RELATIVE_PATH",
    "CHANGELOG_RELATIVE_PATH",
    "CORE_DOCUMENTS",
    "STATE_DIRNAME",
    "directory_stats",
    "format_bytes",
    "is_semantic_version",
]
