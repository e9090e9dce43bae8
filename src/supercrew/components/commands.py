"""Slash command definitions installed under ``commands/crew/``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .base import Component
from .models import ComponentMetadata
from .versions import COMPONENT_VERSIONS

STANDARD_COMMANDS: tuple[str, ...] = (
    "analyze.md",
    "build.md",
    "cleanup.md",
    "design.md",
    "document.md",
    "estimate.md",
    "explain.md",
    "git.md",
    "implement.md",
    "improve.md",
    "index.md",
    "load.md",
    "spawn.md",
    "task.md",
    "test.md",
    "troubleshoot.md",
    "workflow.md",
)


class CommandsComponent(Component):
    """Namespaced slash commands and their helper scripts."""

    metadata = ComponentMetadata(
        name="commands",
        version=COMPONENT_VERSIONS["commands"],
        description="SuperCrew slash command definitions",
        category="commands",
        tags=["commands", "slash"],
        dependencies=["core"],
    )
    target_subdir = "commands/crew"
    source_extensions = (".md", ".sh")
    exclude_patterns = frozenset({"README.md"})
    marker_files = ("commands/crew",)
    standard_files = STANDARD_COMMANDS

    def __init__(self, source_dir: Path | None, **kwargs: Any) -> None:
        super().__init__(source_dir, **kwargs)
        self.installation_validator = self._validate_installation

    def _validate_installation(self, install_dir: Path) -> tuple[bool, list[str]]:
        directory = self.target_dir(install_dir)
        if not directory.is_dir():
            return False, ["Commands directory not found"]
        if not any(directory.glob("*.md")):
            return False, ["No command definitions installed"]
        return True, []


__all__ = ["CommandsComponent", "STANDARD_COMMANDS"]
