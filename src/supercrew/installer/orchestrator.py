"""Batch installer driving components through their lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from supercrew.backup import BackupError, BackupManager, BackupOptions
from supercrew.backup.models import CompressionMode
from supercrew.components import (
    Component,
    ComponentError,
    ComponentNotFoundError,
    ComponentRegistry,
    SettingsManager,
)
from supercrew.metadata import STATE_DIRNAME, MetadataError

LOGGER = logging.getLogger(__name__)

BACKUP_NAME = "crew_backup"


@dataclass(slots=True)
class InstallationSummary:
    """Outcome of the batches run by an installer."""

    installed: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    uninstalled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    planned: list[str] = field(default_factory=list)
    validation: dict[str, list[str]] = field(default_factory=dict)
    backup_path: Optional[Path] = None
    dry_run: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "installed": list(self.installed),
            "updated": list(self.updated),
            "uninstalled": list(self.uninstalled),
            "failed": list(self.failed),
            "planned": list(self.planned),
            "validation": {name: list(errors) for name, errors in self.validation.items()},
            "backup_path": str(self.backup_path) if self.backup_path else None,
            "dry_run": self.dry_run,
        }


class Installer:
    """Run install, update and uninstall batches over registered components.

    Each batch backs the installation up first (failures only warn), processes
    the named components serially, and keeps going after individual failures.
    """

    def __init__(
        self,
        install_dir: Path,
        registry: ComponentRegistry,
        *,
        dry_run: bool = False,
        compression: CompressionMode = "gzip",
        settings: SettingsManager | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the installer.

        Args:
            install_dir: Installation directory.
            registry: Components available by name.
            dry_run: Log what would happen without touching the filesystem.
            compression: Compression for pre-operation backups.
            settings: Installation registry; defaults to one bound to ``install_dir``.
            logger: Optional logger; defaults to the module logger.
        """
        self._install_dir = Path(install_dir).expanduser()
        self._registry = registry
        self._dry_run = dry_run
        self._compression: CompressionMode = compression
        self._settings = settings or SettingsManager(self._install_dir)
        self._logger = logger or LOGGER
        self._summary = InstallationSummary(dry_run=dry_run)

    @property
    def install_dir(self) -> Path:
        """Return the installation directory."""
        return self._install_dir

    def summary(self) -> InstallationSummary:
        """Return the accumulated outcome of every batch run so far."""
        return self._summary

    # Batches ----------------------------------------------------------

    def install_components(
        self, names: Iterable[str], config: Mapping[str, Any] | None = None
    ) -> bool:
        """Install components in the given order.

        Args:
            names: Component names to install.
            config: Options passed to each component; ``backup`` forces a backup.

        Returns:
            bool: True when no component failed.
        """
        options = dict(config or {})
        failures_before = len(self._summary.failed)

        if not self._dry_run and (self._install_dir.exists() or options.get("backup")):
            self._logger.info("Existing installation detected, creating backup...")
            self._backup("pre-install")

        installed: list[Component] = []
        for name in names:
            component = self._lookup(name)
            if component is None:
                continue
            if self._dry_run:
                self._logger.info("[DRY RUN] Would install %s", name)
                self._summary.planned.append(name)
                continue
            try:
                component.install(self._install_dir, options)
            except (ComponentError, MetadataError, OSError) as exc:
                self._logger.error("Installation failed for %s: %s", name, exc)
                self._summary.failed.append(name)
                continue
            self._record_version(component)
            self._summary.installed.append(name)
            installed.append(component)

        if installed and not self._dry_run:
            self._run_post_install_validation(installed)
        return len(self._summary.failed) == failures_before

    def update_components(
        self, names: Iterable[str], config: Mapping[str, Any] | None = None
    ) -> bool:
        """Update components in the given order.

        Returns:
            bool: True when no component failed.
        """
        options = dict(config or {})
        failures_before = len(self._summary.failed)
        if options.get("backup") and not self._dry_run:
            self._backup("pre-update")

        for name in names:
            component = self._lookup(name)
            if component is None:
                continue
            if self._dry_run:
                self._logger.info("[DRY RUN] Would update %s", name)
                self._summary.planned.append(name)
                continue
            try:
                component.update(self._install_dir, options)
            except (ComponentError, MetadataError, OSError) as exc:
                self._logger.error("Update failed for %s: %s", name, exc)
                self._summary.failed.append(name)
                continue
            self._record_version(component)
            self._summary.updated.append(name)
        return len(self._summary.failed) == failures_before

    def uninstall_components(
        self, names: Iterable[str], config: Mapping[str, Any] | None = None
    ) -> bool:
        """Uninstall components in reverse of the given order.

        Returns:
            bool: True when no component failed.
        """
        options = dict(config or {})
        failures_before = len(self._summary.failed)
        if options.get("backup") and not self._dry_run:
            self._backup("pre-uninstall")

        for name in reversed(list(names)):
            component = self._lookup(name)
            if component is None:
                continue
            if self._dry_run:
                self._logger.info("[DRY RUN] Would uninstall %s", name)
                self._summary.planned.append(name)
                continue
            try:
                component.uninstall(self._install_dir, options)
            except (ComponentError, MetadataError, OSError) as exc:
                self._logger.error("Uninstall failed for %s: %s", name, exc)
                self._summary.failed.append(name)
                continue
            self._summary.uninstalled.append(name)
        return len(self._summary.failed) == failures_before

    def validate_installation(
        self, components: Iterable[Component] | None = None
    ) -> dict[str, list[str]]:
        """Run the optional validator of each component that offers one.

        Returns:
            dict[str, list[str]]: Validation errors keyed by component name; passing
            components map to an empty list.
        """
        targets = list(components) if components is not None else list(self._registry)
        results: dict[str, list[str]] = {}
        for component in targets:
            validator = component.installation_validator
            if validator is None:
                continue
            _, errors = validator(self._install_dir)
            results[component.name] = errors
        return results

    # Internal helpers -------------------------------------------------

    def _lookup(self, name: str) -> Component | None:
        try:
            return self._registry.get(name)
        except ComponentNotFoundError as exc:
            self._logger.error("%s", exc)
            self._summary.failed.append(name)
            return None

    def _record_version(self, component: Component) -> None:
        try:
            self._settings.update_component_version(component.name, component.version)
        except (ComponentError, OSError) as exc:
            self._logger.warning("Failed to update settings for %s: %s", component.name, exc)

    def _backup(self, reason: str) -> None:
        manager = BackupManager(
            BackupOptions(
                install_dir=self._install_dir,
                backup_dir=self._install_dir / STATE_DIRNAME / "backups",
                backup_name=BACKUP_NAME,
                compress=self._compression,
                include_config=True,
                description=reason,
            ),
            logger=self._logger,
        )
        try:
            self._summary.backup_path = manager.create()
        except BackupError as exc:
            self._logger.warning("Failed to create %s backup: %s", reason, exc)
            return
        self._logger.info("Backup created: %s", self._summary.backup_path)

    def _run_post_install_validation(self, components: list[Component]) -> None:
        results = self.validate_installation(components)
        self._summary.validation.update(results)
        for name, errors in results.items():
            if errors:
                self._logger.error("%s: validation failed: %s", name, "; ".join(errors))
            else:
                self._logger.info("%s: valid", name)
        if any(results.values()):
            self._logger.warning("Some components failed validation. Check errors above.")


__all__ = ["Installer", "InstallationSummary", "BACKUP_NAME"]
