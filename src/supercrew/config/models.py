"""Configuration models describing SuperCrew settings."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CrewBaseModel(BaseModel):
    """Shared configuration for SuperCrew Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class InstallSettings(CrewBaseModel):
    """Where the framework is installed and where its templates come from.

    Attributes:
        install_dir: Installation directory owning every managed file.
        source_dir: Root of the framework template tree (``Core``, ``agents``,
            ``Commands`` and ``hooks`` subdirectories).
    """

    install_dir: str = "~/.claude"
    source_dir: Optional[str] = None


class BackupSettings(CrewBaseModel):
    """Defaults applied when archives are created or pruned.

    Attributes:
        compression: Archive compression mode.
        keep: Number of most recent archives retained by cleanup.
        max_age_days: Archives older than this are pruned (0 disables the age rule).
        include_logs: Whether log files are included in archives.
        include_config: Whether the ``.crew/config`` directory is archived.
        auto_backup: Whether updates and uninstalls snapshot the installation first.
    """

    compression: Literal["none", "gzip", "bzip2"] = "gzip"
    keep: int = 5
    max_age_days: int = 0
    include_logs: bool = False
    include_config: bool = True
    auto_backup: bool = True


class LoggingSettings(CrewBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    max_size_mb: int = 10
    backup_count: int = 5


class CLIOptions(CrewBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
    """

    quiet_default: bool = False
    summary_default: bool = False


class CrewConfig(CrewBaseModel):
    """Top-level configuration struct for SuperCrew.

    Attributes:
        install: Installation location settings.
        backup: Archive defaults.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    install: InstallSettings = Field(default_factory=InstallSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "CrewBaseModel",
    "InstallSettings",
    "BackupSettings",
    "LoggingSettings",
    "CLIOptions",
    "CrewConfig",
]
