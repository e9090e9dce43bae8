"""Shared plumbing for the ``crew`` command line interface."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

from supercrew.backup import BackupInfo
from supercrew.config import ConfigManager, CrewConfig
from supercrew.metadata import STATE_DIRNAME
from supercrew.metadata.store import format_bytes

LOG_FILENAME = "crew.log"
_PACKAGE_LOGGER = "supercrew"
_installed_handlers: list[logging.Handler] = []


def configure_logging(
    level: str,
    *,
    install_dir: Path | None = None,
    max_size_mb: int = 10,
    backup_count: int = 5,
    console_level: str | None = None,
) -> logging.Logger:
    """Attach console and rotating file handlers to the package logger.

    Handlers installed by a previous call are replaced. The file handler is
    only attached once ``<install>/.crew/logs`` exists.

    Args:
        level: Level for the package logger.
        install_dir: Installation whose log directory receives ``crew.log``.
        max_size_mb: Rotation threshold for the log file.
        backup_count: Number of rotated log files to keep.
        console_level: Optional stricter level for console output.

    Returns:
        logging.Logger: The configured package logger.
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    for handler in _installed_handlers:
        logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    resolved_level = logging.getLevelName(level.upper())
    if not isinstance(resolved_level, int):
        resolved_level = logging.WARNING
    logger.setLevel(resolved_level)

    console_handler = RichHandler(
        console=Console(stderr=True), show_path=False, show_time=False, markup=False
    )
    if console_level is not None:
        console_handler.setLevel(console_level.upper())
    logger.addHandler(console_handler)
    _installed_handlers.append(console_handler)

    if install_dir is not None:
        log_dir = install_dir / STATE_DIRNAME / "logs"
        if log_dir.is_dir():
            file_handler = RotatingFileHandler(
                log_dir / LOG_FILENAME,
                maxBytes=max(max_size_mb, 1) * 1024 * 1024,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
            )
            logger.addHandler(file_handler)
            _installed_handlers.append(file_handler)

    return logger


@dataclass(slots=True)
class CLIState:
    """Options shared by every command, resolved against configuration defaults."""

    install_dir_option: Optional[Path] = None
    source_dir_option: Optional[Path] = None
    json_output: bool = False
    quiet: bool = False
    summary_only: bool = False
    dry_run: bool = False
    verbose: bool = False
    explicit_quiet: bool = False
    explicit_summary: bool = False
    config: CrewConfig = field(default_factory=CrewConfig)

    def load(self, manager: ConfigManager | None = None) -> CrewConfig:
        """Load configuration, apply CLI presentation defaults and set up logging.

        Raises:
            ConfigError: If configuration cannot be loaded.
            ValueError: If output flags conflict.
        """
        manager = manager or ConfigManager()
        overrides: dict[str, Any] = {}
        if self.install_dir_option is not None:
            overrides["install.install_dir"] = str(self.install_dir_option)
        if self.source_dir_option is not None:
            overrides["install.source_dir"] = str(self.source_dir_option)
        self.config = manager.load(cli_overrides=overrides)

        if not self.explicit_quiet:
            self.quiet = self.config.cli.quiet_default
        if not self.explicit_summary:
            self.summary_only = self.config.cli.summary_default

        if self.json_output:
            if self.explicit_quiet and self.quiet:
                raise ValueError("--json cannot be combined with --quiet.")
            if self.explicit_summary and self.summary_only:
                raise ValueError("--json cannot be combined with --summary.")
            self.quiet = False
            self.summary_only = False
        if self.quiet and self.summary_only:
            raise ValueError(
                "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
            )

        level = "DEBUG" if self.verbose else self.config.logging.level
        configure_logging(
            level,
            install_dir=self.install_dir,
            max_size_mb=self.config.logging.max_size_mb,
            backup_count=self.config.logging.backup_count,
            console_level="ERROR" if self.json_output or self.quiet else None,
        )
        return self.config

    @property
    def install_dir(self) -> Path:
        """Return the installation directory after CLI overrides."""
        return Path(self.config.install.install_dir).expanduser()

    @property
    def source_dir(self) -> Path | None:
        """Return the template root after CLI overrides, if one is configured."""
        if self.config.install.source_dir:
            return Path(self.config.install.source_dir).expanduser()
        return None

    @property
    def backup_dir(self) -> Path:
        """Return the directory holding archives for the installation."""
        return self.install_dir / STATE_DIRNAME / "backups"


def backup_row(info: BackupInfo) -> list[str]:
    """Return table cells describing an archive."""
    created = info.created.astimezone().strftime("%Y-%m-%d %H:%M:%S") if info.created else "-"
    description = info.metadata.description if info.metadata else ""
    return [info.path.name, created, format_bytes(info.size), str(info.file_count), description]


def summary_metrics(payload: dict[str, Any]) -> dict[str, Any]:
    """Reduce an installer payload to counts for the summary line."""
    metrics = {
        key: len(payload[key])
        for key in ("installed", "updated", "uninstalled", "failed", "planned")
        if payload.get(key)
    }
    if payload.get("dry_run"):
        metrics["dry_run"] = True
    return metrics or {"changes": 0}


__all__ = [
    "CLIState",
    "configure_logging",
    "backup_row",
    "summary_metrics",
    "LOG_FILENAME",
]
