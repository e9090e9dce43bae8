"""Installer orchestration for SuperCrew components."""

from .orchestrator import BACKUP_NAME, InstallationSummary, Installer

__all__ = ["Installer", "InstallationSummary", "BACKUP_NAME"]
