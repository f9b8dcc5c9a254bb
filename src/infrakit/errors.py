"""Exceptions raised while describing infrastructure."""
from __future__ import annotations


class ConfigurationError(ValueError):
    """Base class for failures raised when a builder is finalized."""

    def __init__(self, kind: str, name: str, message: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}': {message}")


class MissingPropertyError(ConfigurationError):
    """A required property was never set."""

    def __init__(self, kind: str, name: str, field: str) -> None:
        self.field = field
        super().__init__(kind, name, f"{field} is required")


class UnsafeConfigurationError(ConfigurationError):
    """The configuration is contradictory or unsafe to deploy."""

    def __init__(self, kind: str, name: str, field: str, reason: str) -> None:
        self.field = field
        super().__init__(kind, name, f"{field}: {reason}")


class UnresolvedResourceError(RuntimeError):
    """A live handle was read before its stack created the resource."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(
            f"{kind} '{name}' has not been created yet; add it to a stack "
            "that is built before reading its resource",
        )


class ResourceBindingError(RuntimeError):
    """A live handle was bound more than once."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' is already bound to a construct")
