"""Lifecycle contract shared by every installable component."""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, ClassVar, Literal, Mapping, Optional

from supercrew.metadata import STATE_DIRNAME, MetadataError, MetadataStore

from .errors import ComponentError, PrerequisiteError
from .files import FileManager
from .models import ComponentMetadata, FilePair
from .security import SecurityValidator
from .settings import SettingsManager
from .versions import compare_versions

LOGGER = logging.getLogger(__name__)

InstallationValidator = Callable[[Path], tuple[bool, list[str]]]
UpdateStrategy = Literal["install", "update", "current", "downgrade"]

DEFAULT_SIZE_ESTIMATE = 1024 * 1024


class Component(ABC):
    """Base class for components installed into an installation directory.

    Subclasses describe themselves through class attributes and override the
    ``_prepare_install``/``_install_file``/``_finish_install`` hooks where the
    default copy behaviour is not enough.

    Attributes:
        installation_validator: Optional post-install check. ``None`` means the
            component offers no validation.
    """

    target_subdir: ClassVar[str] = ""
    source_extensions: ClassVar[tuple[str, ...]] = (".md",)
    exclude_patterns: ClassVar[frozenset[str]] = frozenset()
    executable_extensions: ClassVar[tuple[str, ...]] = (".sh",)
    marker_files: ClassVar[tuple[str, ...]] = ()
    standard_files: ClassVar[tuple[str, ...]] = ()
    dependency_markers: ClassVar[dict[str, str]] = {"core": "CLAUDE.md"}

    def __init__(
        self,
        source_dir: Path | None,
        *,
        logger: logging.Logger | None = None,
        security: SecurityValidator | None = None,
    ) -> None:
        """Initialize the component.

        Args:
            source_dir: Directory holding the component's template files.
            logger: Optional logger; defaults to the module logger.
            security: Validator applied to targets and filenames.
        """
        self._source_dir = Path(source_dir).expanduser() if source_dir else None
        self._logger = logger or LOGGER
        self._security = security or SecurityValidator()
        self.installation_validator: Optional[InstallationValidator] = None

    @property
    @abstractmethod
    def metadata(self) -> ComponentMetadata:
        """Return the static component description."""

    @property
    def name(self) -> str:
        """Return the component name."""
        return self.metadata.name

    @property
    def version(self) -> str:
        """Return the version this component installs."""
        return self.metadata.version

    @property
    def source_dir(self) -> Path | None:
        """Return the template directory."""
        return self._source_dir

    # File discovery ---------------------------------------------------

    def target_dir(self, install_dir: Path) -> Path:
        """Return the directory files are installed into."""
        return Path(install_dir) / self.target_subdir if self.target_subdir else Path(install_dir)

    def discover_files(self) -> list[str]:
        """Return template filenames in the source directory, sorted."""
        if self._source_dir is None or not self._source_dir.is_dir():
            return []
        names = []
        for entry in sorted(self._source_dir.iterdir()):
            if not entry.is_file():
                continue
            if not entry.name.lower().endswith(self.source_extensions):
                continue
            if entry.name in self.exclude_patterns:
                continue
            names.append(entry.name)
        return names

    def get_files_to_install(self, install_dir: Path) -> list[FilePair]:
        """Return ordered source to target pairs."""
        if self._source_dir is None:
            return []
        target_dir = self.target_dir(install_dir)
        return [
            FilePair(self._source_dir / name, target_dir / name) for name in self.discover_files()
        ]

    def file_manager(self, install_dir: Path) -> FileManager:
        """Return a file manager bound to ``install_dir``."""
        store = MetadataStore(Path(install_dir), logger=self._logger)
        return FileManager(Path(install_dir), store, logger=self._logger)

    # Lifecycle --------------------------------------------------------

    def validate_prerequisites(self, install_dir: Path) -> tuple[bool, list[str]]:
        """Check dependencies, the source tree, and the safety of every target.

        Args:
            install_dir: Installation directory.

        Returns:
            tuple[bool, list[str]]: Whether installation may proceed, and why not.
        """
        install_dir = Path(install_dir)
        errors: list[str] = []

        for dependency in self.metadata.dependencies:
            marker = self.dependency_markers.get(dependency)
            if marker and not (install_dir / marker).exists():
                errors.append(
                    f"{dependency.capitalize()} component must be installed before "
                    f"{self.name} component"
                )

        if self._source_dir is None:
            errors.append("Source directory not specified")
        elif not self._source_dir.is_dir():
            errors.append(f"Source directory not found: {self._source_dir}")

        target_dir = self.target_dir(install_dir)
        _, target_errors = self._security.validate_installation_target(target_dir)
        errors.extend(target_errors)
        _, permission_errors = self._security.check_permissions(target_dir)
        errors.extend(permission_errors)

        if self._source_dir is not None and self._source_dir.is_dir():
            _, file_errors = self._security.validate_component_files(
                self.discover_files(), self._source_dir, target_dir
            )
            errors.extend(file_errors)

        return not errors, errors

    def install(self, install_dir: Path, config: Mapping[str, Any] | None = None) -> list[Path]:
        """Copy the component's files into ``install_dir`` and record the version.

        Args:
            install_dir: Installation directory.
            config: Component options.

        Returns:
            list[Path]: Targets that were installed.

        Raises:
            PrerequisiteError: If validation fails; nothing is written.
            ComponentError: If some files could not be copied. Copied files are kept.
        """
        install_dir = Path(install_dir)
        options = dict(config or {})
        self._logger.info("Installing %s component version %s", self.name, self.version)

        ok, reasons = self.validate_prerequisites(install_dir)
        if not ok:
            for reason in reasons:
                self._logger.error("Validation error: %s", reason)
            raise PrerequisiteError(self.name, reasons)

        files = self.file_manager(install_dir)
        files.ensure_directory_with_inventory(self.target_dir(install_dir))
        self._prepare_install(install_dir, files, options)

        pairs = self.get_files_to_install(install_dir)
        installed: list[Path] = []
        for pair in pairs:
            try:
                self._install_file(files, pair, options)
            except (OSError, MetadataError) as exc:
                self._logger.error("Failed to install %s: %s", pair.source.name, exc)
                continue
            installed.append(pair.target)

        if len(installed) != len(pairs):
            raise ComponentError(
                f"only {len(installed)}/{len(pairs)} {self.name} files installed successfully"
            )

        self._finish_install(install_dir, files, options)
        files.metadata.record_component_install(
            self.name,
            self.version,
            files=installed,
            dependencies=self.metadata.dependencies,
        )
        self._register_version(install_dir)
        self._logger.info(
            "%s component installed successfully with %d files", self.name, len(installed)
        )
        return installed

    def update(self, install_dir: Path, config: Mapping[str, Any] | None = None) -> list[Path]:
        """Back up the currently installed files, then reinstall."""
        install_dir = Path(install_dir)
        installed_version = self.get_installed_version(install_dir)
        if installed_version:
            self._logger.info(
                "Updating %s component from version %s to %s",
                self.name,
                installed_version,
                self.version,
            )
            self._backup_existing(install_dir, installed_version)
        return self.install(install_dir, config)

    def uninstall(self, install_dir: Path, config: Mapping[str, Any] | None = None) -> int:
        """Remove the component's standard files, leaving user files in place.

        Returns:
            int: Number of files removed.
        """
        install_dir = Path(install_dir)
        files = self.file_manager(install_dir)
        target_dir = self.target_dir(install_dir)
        removed = 0
        for name in self.standard_files:
            path = target_dir / name
            try:
                if files.remove_file_with_inventory(path):
                    removed += 1
                    self._logger.debug("Removed %s", path)
            except (OSError, MetadataError) as exc:
                self._logger.warning("Failed to remove %s: %s", path, exc)

        if files.metadata.check_installation_exists():
            files.metadata.remove_component(self.name)
        try:
            SettingsManager(install_dir).remove_component_registration(self.name)
        except (ComponentError, OSError) as exc:
            self._logger.warning("Failed to deregister %s: %s", self.name, exc)

        self._logger.info("%s component uninstalled, removed %d files", self.name, removed)
        return removed

    # Queries ----------------------------------------------------------

    def is_installed(self, install_dir: Path) -> bool:
        """Return True when a version is recorded and a marker file exists."""
        install_dir = Path(install_dir)
        if not self.get_installed_version(install_dir):
            return False
        return any((install_dir / marker).exists() for marker in self.marker_files)

    def get_installed_version(self, install_dir: Path) -> str | None:
        """Return the installed version from metadata, falling back to the registry."""
        install_dir = Path(install_dir)
        try:
            version = MetadataStore(install_dir, logger=self._logger).get_component_version(
                self.name
            )
        except MetadataError as exc:
            self._logger.warning("Unable to read metadata for %s: %s", self.name, exc)
            version = None
        if version:
            return version
        try:
            return SettingsManager(install_dir).get_component_version(self.name)
        except ComponentError as exc:
            self._logger.warning("Unable to read installation registry: %s", exc)
            return None

    def get_size_estimate(self) -> int:
        """Return the total byte size of the template files."""
        total = 0
        if self._source_dir is not None:
            for name in self.discover_files():
                try:
                    total += (self._source_dir / name).stat().st_size
                except OSError:
                    continue
        return total or DEFAULT_SIZE_ESTIMATE

    def requires_update(self, install_dir: Path) -> bool:
        """Return True when an older version is installed."""
        installed = self.get_installed_version(install_dir)
        return installed is not None and compare_versions(installed, self.version) < 0

    def get_update_strategy(self, install_dir: Path) -> UpdateStrategy:
        """Describe what an update would do for this component."""
        installed = self.get_installed_version(install_dir)
        if installed is None:
            return "install"
        order = compare_versions(installed, self.version)
        if order < 0:
            return "update"
        if order > 0:
            return "downgrade"
        return "current"

    # Hooks ------------------------------------------------------------

    def _prepare_install(
        self, install_dir: Path, files: FileManager, options: dict[str, Any]
    ) -> None:
        """Run before files are copied."""

    def _install_file(self, files: FileManager, pair: FilePair, options: dict[str, Any]) -> None:
        files.copy_file_with_inventory(pair.source, pair.target, mode=self._mode_for(pair.target))

    def _finish_install(
        self, install_dir: Path, files: FileManager, options: dict[str, Any]
    ) -> None:
        """Run after every file was copied."""

    def _mode_for(self, target: Path) -> int:
        return 0o755 if target.name.endswith(self.executable_extensions) else 0o644

    # Internal helpers -------------------------------------------------

    def _register_version(self, install_dir: Path) -> None:
        try:
            SettingsManager(install_dir).update_component_version(self.name, self.version)
        except (ComponentError, OSError) as exc:
            self._logger.warning(
                "Failed to update installation registry for %s: %s", self.name, exc
            )

    def _backup_existing(self, install_dir: Path, installed_version: str) -> None:
        backup_dir = (
            install_dir / STATE_DIRNAME / "backups" / f"{self.name}-backup-{installed_version}"
        )
        copied = 0
        for pair in self.get_files_to_install(install_dir):
            if not pair.target.is_file():
                continue
            destination = backup_dir / pair.target.relative_to(install_dir)
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(pair.target, destination)
            except OSError as exc:
                self._logger.warning("Failed to back up %s: %s", pair.target, exc)
                continue
            copied += 1
        if copied:
            self._logger.info("Backed up %d existing %s files to %s", copied, self.name, backup_dir)


__all__ = ["Component", "InstallationValidator", "UpdateStrategy", "DEFAULT_SIZE_ESTIMATE"]
