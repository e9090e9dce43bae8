"""Installation registry recording which components are installed."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict

from pydantic import BaseModel, Field, ValidationError

from supercrew.metadata import STATE_DIRNAME
from supercrew.metadata.models import INSTALLER_VERSION

from .errors import ComponentError

LOGGER = logging.getLogger(__name__)

SETTINGS_RELATIVE_PATH = Path(STATE_DIRNAME) / "config" / "installation.json"


class InstallationInfo(BaseModel):
    """Registry of installed component versions."""

    installer_version: str = INSTALLER_VERSION
    install_dir: str = ""
    installed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    components: Dict[str, str] = Field(default_factory=dict)


class SettingsManager:
    """Persist the component registry beside the unified metadata document."""

    def __init__(self, install_dir: Path) -> None:
        self._install_dir = Path(install_dir).expanduser()

    @property
    def path(self) -> Path:
        """Return the registry file location."""
        return self._install_dir / SETTINGS_RELATIVE_PATH

    def load(self) -> InstallationInfo:
        """Return the stored registry, or an empty one when absent.

        Raises:
            ComponentError: If the registry file cannot be parsed.
        """
        if not self.path.exists():
            return InstallationInfo(install_dir=str(self._install_dir))
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return InstallationInfo.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ComponentError(f"Invalid installation registry at {self.path}: {exc}") from exc

    def save(self, info: InstallationInfo) -> None:
        """Write the registry to disk."""
        info.last_updated = datetime.now(timezone.utc)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(info.model_dump(mode="json"), indent=2), encoding="utf-8"
        )

    def get_installed_components(self) -> dict[str, str]:
        """Return a mapping of component name to installed version."""
        return dict(self.load().components)

    def get_component_version(self, name: str) -> str | None:
        """Return the registered version of a component, if any."""
        return self.load().components.get(name) or None

    def update_component_version(self, name: str, version: str) -> None:
        """Register a component version."""
        info = self.load()
        info.components[name] = version
        self.save(info)

    def remove_component_registration(self, name: str) -> bool:
        """Deregister a component.

        Returns:
            bool: True if the component was registered.
        """
        info = self.load()
        if name not in info.components:
            return False
        del info.components[name]
        self.save(info)
        return True


__all__ = ["SettingsManager", "InstallationInfo", "SETTINGS_RELATIVE_PATH"]
