"""Persona agent definitions installed under ``agents/``."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .base import Component
from .models import ComponentMetadata
from .versions import COMPONENT_VERSIONS

STANDARD_AGENTS: tuple[str, ...] = (
    "architect-persona.md",
    "frontend-persona.md",
    "backend-persona.md",
    "security-persona.md",
    "performance-persona.md",
    "analyzer-persona.md",
    "qa-persona.md",
    "refactorer-persona.md",
    "devops-persona.md",
    "mentor-persona.md",
    "scribe-persona.md",
    "orchestrator-agent.md",
    "second-opinion-generator.md",
)
ESSENTIAL_PERSONAS: tuple[str, ...] = (
    "architect-persona.md",
    "frontend-persona.md",
    "backend-persona.md",
    "security-persona.md",
)


class AgentsComponent(Component):
    """Persona subagent files and templates."""

    metadata = ComponentMetadata(
        name="agents",
        version=COMPONENT_VERSIONS["agents"],
        description="SuperCrew persona subagent files and templates",
        category="agents",
        tags=["personas", "subagents", "templates"],
        dependencies=["core"],
    )
    target_subdir = "agents"
    marker_files = (
        "agents/architect-persona.md",
        "agents/frontend-persona.md",
        "agents/orchestrator-agent.md",
    )
    standard_files = STANDARD_AGENTS

    def __init__(self, source_dir: Path | None, **kwargs: Any) -> None:
        super().__init__(source_dir, **kwargs)
        self.installation_validator = self._validate_installation

    def list_installed_agents(self, install_dir: Path) -> list[str]:
        """Return the names of installed agent documents, sorted."""
        directory = self.target_dir(install_dir)
        if not directory.is_dir():
            return []
        return sorted(entry.name for entry in directory.glob("*.md") if entry.is_file())

    def get_agent_count(self, install_dir: Path) -> int:
        """Return the number of installed agent documents."""
        return len(self.list_installed_agents(install_dir))

    def _validate_installation(self, install_dir: Path) -> tuple[bool, list[str]]:
        directory = self.target_dir(install_dir)
        if not directory.is_dir():
            return False, ["Agents directory not found"]
        missing = [name for name in ESSENTIAL_PERSONAS if not (directory / name).is_file()]
        if missing:
            return False, [f"Missing essential persona files: {', '.join(missing)}"]
        return True, []


__all__ = ["AgentsComponent", "STANDARD_AGENTS", "ESSENTIAL_PERSONAS"]
