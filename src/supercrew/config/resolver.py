"""Layered configuration resolution: defaults < file < environment < CLI."""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from typing import Any

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import CrewConfig

ENV_PREFIX = "CREW__"


def parse_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``CREW__SECTION__KEY`` variables as dotted overrides.

    Values are read as YAML scalars so ``true`` or ``7`` keep their types;
    anything YAML rejects is kept as the raw string.

    Args:
        environ: Environment mapping to scan.

    Returns:
        dict[str, Any]: Overrides keyed like ``backup.keep``.
    """
    overrides: dict[str, Any] = {}
    for key, raw in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in key[len(ENV_PREFIX) :].split("__") if part]
        if not segments:
            continue
        try:
            value: Any = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        overrides[".".join(segments)] = value
    return overrides


def resolve_with_precedence(
    *,
    defaults: CrewConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> CrewConfig:
    """Apply override layers on top of ``defaults`` and validate the result.

    Each layer may use nested mappings, dotted keys (``install.install_dir``)
    or both. Later layers win.

    Raises:
        ConfigError: If a layer is malformed or the merged values are invalid.
    """
    merged = defaults.model_dump(mode="python")
    for source, layer in (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    ):
        if layer is None:
            continue
        if not isinstance(layer, Mapping):
            raise ConfigError(f"{source.capitalize()} overrides must be a mapping.")
        for key, value in layer.items():
            _apply(merged, str(key).split("."), value, source)

    try:
        return CrewConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def _apply(node: dict[str, Any], path: list[str], value: Any, source: str) -> None:
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{source.capitalize()} override {'.'.join(path)} conflicts with a plain value."
            )
        node = child

    leaf = path[-1]
    if isinstance(value, Mapping) and isinstance(node.get(leaf), dict):
        for key, child_value in value.items():
            _apply(node[leaf], str(key).split("."), child_value, source)
    else:
        node[leaf] = deepcopy(value)


__all__ = ["resolve_with_precedence", "parse_env", "ENV_PREFIX"]
