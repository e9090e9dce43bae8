"""Core framework documents installed at the root of the installation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from supercrew.metadata import CORE_DOCUMENTS, STATE_DIRNAME, MetadataError

from .base import Component
from .files import FileManager
from .models import ComponentMetadata, FilePair
from .versions import COMPONENT_VERSIONS

SKELETON_DIRS: tuple[str, ...] = (
    "commands",
    "hooks",
    "agents",
    STATE_DIRNAME,
    f"{STATE_DIRNAME}/backups",
    f"{STATE_DIRNAME}/logs",
    f"{STATE_DIRNAME}/workflows",
    f"{STATE_DIRNAME}/scripts",
    f"{STATE_DIRNAME}/config",
    f"{STATE_DIRNAME}/prompts",
    f"{STATE_DIRNAME}/completions",
)
ORCHESTRATOR_AGENT = "orchestrator-agent.md"
CLAUDE_FILE = "CLAUDE.md"


class CoreComponent(Component):
    """Framework markdown documents plus the installation directory skeleton.

    ``CLAUDE.md`` is merged into an existing user file unless the
    ``claude_overwrite`` or ``claude_skip`` options are set.
    """

    metadata = ComponentMetadata(
        name="core",
        version=COMPONENT_VERSIONS["core"],
        description="Core SuperCrew framework files",
        category="core",
        tags=["essential", "framework"],
    )
    exclude_patterns = frozenset({"README.md", "CHANGELOG.md", "LICENSE.md"})
    marker_files = (CLAUDE_FILE,)
    standard_files = CORE_DOCUMENTS + ("AGENTS_INDEX.md",)

    def __init__(self, source_dir: Path | None, **kwargs: Any) -> None:
        super().__init__(source_dir, **kwargs)
        self.installation_validator = self._validate_installation

    def _prepare_install(
        self, install_dir: Path, files: FileManager, options: dict[str, Any]
    ) -> None:
        for relative in SKELETON_DIRS:
            files.ensure_directory_with_inventory(install_dir / relative)

    def _install_file(self, files: FileManager, pair: FilePair, options: dict[str, Any]) -> None:
        if pair.target.name != CLAUDE_FILE:
            super()._install_file(files, pair, options)
            return
        if options.get("claude_skip"):
            self._logger.info("Skipping %s installation as requested", CLAUDE_FILE)
        elif options.get("claude_overwrite"):
            files.copy_file_with_inventory(pair.source, pair.target, mode=0o644)
        else:
            files.merge_claude_file(pair.source, pair.target)

    def _finish_install(
        self, install_dir: Path, files: FileManager, options: dict[str, Any]
    ) -> None:
        if self._source_dir is None:
            return
        source = self._source_dir.parent / "agents" / ORCHESTRATOR_AGENT
        if not source.is_file():
            self._logger.warning("Orchestrator agent file not found at %s", source)
            return
        target = install_dir / "agents" / ORCHESTRATOR_AGENT
        try:
            files.copy_file_with_inventory(source, target, mode=0o644)
        except (OSError, MetadataError) as exc:
            self._logger.error("Failed to install orchestrator agent: %s", exc)

    def _validate_installation(self, install_dir: Path) -> tuple[bool, list[str]]:
        install_dir = Path(install_dir)
        errors = [
            f"Missing directory: {relative}"
            for relative in SKELETON_DIRS
            if not (install_dir / relative).is_dir()
        ]
        if not (install_dir / CLAUDE_FILE).is_file():
            errors.append(f"Missing {CLAUDE_FILE}")
        return not errors, errors


__all__ = ["CoreComponent", "SKELETON_DIRS"]
