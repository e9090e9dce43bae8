"""Name-to-component lookup with dependency ordering."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator

from .agents import AgentsComponent
from .base import Component
from .commands import CommandsComponent
from .core import CoreComponent
from .errors import ComponentNotFoundError, DependencyError
from .hooks import HooksComponent
from .security import SecurityValidator

SOURCE_SUBDIRS: dict[str, str] = {
    "core": "Core",
    "agents": "agents",
    "commands": "Commands",
    "hooks": "hooks",
}


class ComponentRegistry:
    """Hold the components available to the installer."""

    def __init__(self, components: Iterable[Component] = ()) -> None:
        self._components: dict[str, Component] = {}
        for component in components:
            self.register(component)

    def register(self, component: Component) -> None:
        """Add or replace a component under its name."""
        self._components[component.name] = component

    def get(self, name: str) -> Component:
        """Return the component registered under ``name``.

        Raises:
            ComponentNotFoundError: If no such component is registered.
        """
        try:
            return self._components[name]
        except KeyError as exc:
            raise ComponentNotFoundError(f"Component {name} not found") from exc

    def list_components(self) -> list[str]:
        """Return registered component names in registration order."""
        return list(self._components)

    def __contains__(self, name: object) -> bool:
        return name in self._components

    def __iter__(self) -> Iterator[Component]:
        return iter(self._components.values())

    def resolve_dependencies(self, names: Iterable[str]) -> list[str]:
        """Return ``names`` plus their dependencies, dependencies first.

        Args:
            names: Requested component names.

        Returns:
            list[str]: Topologically ordered names without duplicates.

        Raises:
            ComponentNotFoundError: If a requested or required component is unknown.
            DependencyError: If the dependency graph contains a cycle.
        """
        ordered: list[str] = []
        done: set[str] = set()
        visiting: list[str] = []

        def _visit(name: str) -> None:
            if name in done:
                return
            if name in visiting:
                cycle = " -> ".join([*visiting[visiting.index(name) :], name])
                raise DependencyError(f"Circular dependency detected: {cycle}")
            component = self.get(name)
            visiting.append(name)
            for dependency in component.metadata.dependencies:
                _visit(dependency)
            visiting.pop()
            done.add(name)
            ordered.append(name)

        for name in names:
            _visit(name)
        return ordered


def default_registry(
    source_root: Path | None,
    *,
    logger: logging.Logger | None = None,
    security: SecurityValidator | None = None,
) -> ComponentRegistry:
    """Build a registry of the shipped components reading templates below ``source_root``."""
    root = Path(source_root).expanduser() if source_root else None

    def _source(name: str) -> Path | None:
        return root / SOURCE_SUBDIRS[name] if root is not None else None

    return ComponentRegistry(
        [
            CoreComponent(_source("core"), logger=logger, security=security),
            AgentsComponent(_source("agents"), logger=logger, security=security),
            CommandsComponent(_source("commands"), logger=logger, security=security),
            HooksComponent(_source("hooks"), logger=logger, security=security),
        ]
    )


__all__ = ["ComponentRegistry", "default_registry", "SOURCE_SUBDIRS"]
