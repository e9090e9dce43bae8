"""Hook scripts installed under ``hooks/``; copied as opaque files."""

from __future__ import annotations

from .base import Component
from .models import ComponentMetadata
from .versions import COMPONENT_VERSIONS

STANDARD_HOOKS: tuple[str, ...] = (
    "backup-before-change.sh",
    "git-auto-commit.sh",
    "lint-on-save.sh",
    "security-scan.sh",
    "test-on-change.sh",
)


class HooksComponent(Component):
    """Event hook scripts. Offers no post-install validation."""

    metadata = ComponentMetadata(
        name="hooks",
        version=COMPONENT_VERSIONS["hooks"],
        description="SuperCrew hook scripts",
        category="hooks",
        tags=["hooks", "automation"],
        dependencies=["core"],
    )
    target_subdir = "hooks"
    source_extensions = (".sh", ".md")
    marker_files = tuple(f"hooks/{name}" for name in STANDARD_HOOKS)
    standard_files = STANDARD_HOOKS


__all__ = ["HooksComponent", "STANDARD_HOOKS"]
