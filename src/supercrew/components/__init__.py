"""Installable framework components and their lifecycle."""

from .agents import AgentsComponent
from .base import Component, InstallationValidator
from .commands import CommandsComponent
from .core import CoreComponent
from .errors import ComponentError, ComponentNotFoundError, DependencyError, PrerequisiteError
from .files import FileManager
from .hooks import HooksComponent
from .models import ComponentMetadata, FilePair
from .registry import ComponentRegistry, default_registry
from .security import SecurityValidator
from .settings import SettingsManager
from .versions import COMPONENT_VERSIONS

__all__ = [
    "Component",
    "InstallationValidator",
    "CoreComponent",
    "AgentsComponent",
    "CommandsComponent",
    "HooksComponent",
    "ComponentRegistry",
    "default_registry",
    "ComponentMetadata",
    "FilePair",
    "FileManager",
    "SecurityValidator",
    "SettingsManager",
    "ComponentError",
    "ComponentNotFoundError",
    "DependencyError",
    "PrerequisiteError",
    "COMPONENT_VERSIONS",
]
