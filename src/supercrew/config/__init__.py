"""Configuration management for SuperCrew."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import CrewConfig
from .resolver import ENV_PREFIX, parse_env, resolve_with_precedence

DEFAULT_CONFIG_PATH = Path("~/.crew/config.yaml")
_HEADER_LINES = (
    "# SuperCrew configuration file",
    "# Edit with `crew config edit` or `crew config set KEY --value VALUE`.",
    f"# Environment variables named {ENV_PREFIX}SECTION__KEY override these values.",
)


class ConfigManager:
    """Read and write the user configuration file and resolve the effective settings."""

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Bind the manager to a configuration file.

        Args:
            config_path: File to manage; defaults to ``~/.crew/config.yaml``.
            env: Environment to read overrides from; defaults to ``os.environ``.
        """
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = os.environ if env is None else env

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> CrewConfig:
        """Return the effective configuration.

        Args:
            cli_overrides: Dotted-key values taken from command line options.
            include_env: Apply ``CREW__`` environment variables.
            ensure_file: Write a default file first when none exists.
            env_overrides: Environment mapping to read instead of the bound one.

        Raises:
            ConfigError: If the file cannot be parsed or a value is invalid.
        """
        if ensure_file:
            self.ensure_exists()

        environment = None
        if include_env:
            environment = parse_env(self._env if env_overrides is None else env_overrides)

        return resolve_with_precedence(
            defaults=CrewConfig(),
            file_overrides=self._read_file(),
            env_overrides=environment,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return the raw mapping stored on disk."""
        return self._read_file()

    def save(self, config: CrewConfig | Mapping[str, Any]) -> None:
        """Write ``config`` to disk below a header with the update time."""
        data = config.model_dump(mode="python") if isinstance(config, CrewConfig) else dict(config)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        header = "\n".join((*_HEADER_LINES, f"# Last updated: {stamp}"))
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(
            f"{header}\n{yaml.safe_dump(data, sort_keys=False)}", encoding="utf-8"
        )

    def ensure_exists(self) -> Path:
        """Write the default configuration unless a file is already present."""
        if not self._config_path.exists():
            self.save(CrewConfig())
        return self._config_path

    def read_text(self) -> str:
        """Return the configuration file contents, or an empty string."""
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")

    def _read_file(self) -> dict[str, Any]:
        text = self.read_text()
        try:
            raw = yaml.safe_load(text) if text else None
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {self._config_path}: {exc}") from exc
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError(f"{self._config_path} must contain a mapping at the top level.")
        return raw


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "CrewConfig",
    "resolve_with_precedence",
    "parse_env",
    "ConfigError",
]
