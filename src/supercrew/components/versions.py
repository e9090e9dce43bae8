"""Shipped component versions and version comparison helpers."""

from __future__ import annotations

import re

COMPONENT_VERSIONS: dict[str, str] = {
    "core": "1.0.0",
    "commands": "1.0.0",
    "hooks": "1.0.0",
    "mcp": "1.0.0",
    "agents": "1.0.1",
}

_VERSION_PATTERN = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(value: str) -> tuple[int, int, int]:
    """Parse the numeric MAJOR.MINOR.PATCH prefix of a version string.

    Missing minor or patch parts count as zero; unparsable strings sort lowest.
    """
    match = _VERSION_PATTERN.match(value.strip())
    if match is None:
        return (-1, -1, -1)
    return tuple(int(part) if part else 0 for part in match.groups())  # type: ignore[return-value]


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 as ``left`` is older than, equal to, or newer than ``right``."""
    a, b = parse_version(left), parse_version(right)
    return (a > b) - (a < b)


__all__ = ["COMPONENT_VERSIONS", "parse_version", "compare_versions"]
