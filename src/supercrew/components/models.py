"""Component descriptors."""

from __future__ import annotations

from pathlib import Path
from typing import List, NamedTuple

from pydantic import BaseModel, Field


class ComponentMetadata(BaseModel):
    """Static description of an installable component."""

    name: str
    version: str
    description: str = ""
    category: str = ""
    tags: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)


class FilePair(NamedTuple):
    """A source template file and the install location it is copied to."""

    source: Path
    target: Path


__all__ = ["ComponentMetadata", "FilePair"]
