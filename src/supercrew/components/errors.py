"""Component lifecycle errors."""


class ComponentError(Exception):
    """Base exception for component lifecycle operations."""


class ComponentNotFoundError(ComponentError):
    """Raised when a component name is not registered."""


class DependencyError(ComponentError):
    """Raised when component dependencies are missing or cyclic."""


class PrerequisiteError(ComponentError):
    """Raised when prerequisite validation fails before any mutation."""

    def __init__(self, component: str, reasons: list[str]) -> None:
        self.component = component
        self.reasons = list(reasons)
        joined = "; ".join(self.reasons) or "unknown reason"
        super().__init__(f"Prerequisites not met for {component}: {joined}")
