"""Builder, descriptor and live-handle primitives shared by every resource kind.

A builder accumulates options into a frozen config. Option methods never
mutate: each returns a new builder. ``build()`` validates the config, applies
the documented defaults and returns a :class:`ResourceSpec`. The descriptor carries
the CDK keyword arguments and a :class:`ResourceRef` that stays
``Unresolved`` until a stack instantiates the resource.
"""
from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, ClassVar, Generic, Self, TypeVar

from constructs import Construct

from infrakit.errors import (
    MissingPropertyError,
    ResourceBindingError,
    UnresolvedResourceError,
    UnsafeConfigurationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
C = TypeVar("C", bound="BaseConfig")
S = TypeVar("S")


# === Live handle ===

class Unresolved:
    """Marker state of a handle whose resource has not been created."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "Unresolved"


UNRESOLVED = Unresolved()


@dataclass(frozen=True)
class Resolved(Generic[T]):
    handle: T


class ResourceRef(Generic[T]):
    """Slot for a live CDK construct, bound exactly once."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        self._state: Unresolved | Resolved[T] = UNRESOLVED

    def __repr__(self) -> str:
        return f"ResourceRef({self.kind} {self.name!r}, {self._state!r})"

    @property
    def state(self) -> Unresolved | Resolved[T]:
        return self._state

    @property
    def is_resolved(self) -> bool:
        return isinstance(self._state, Resolved)

    def bind(self, handle: T) -> None:
        if isinstance(self._state, Resolved):
            raise ResourceBindingError(self.kind, self.name)
        self._state = Resolved(handle)

    def get(self) -> T:
        if isinstance(self._state, Resolved):
            return self._state.handle
        raise UnresolvedResourceError(self.kind, self.name)


# === Descriptors ===

def resolve(value: Any) -> Any:
    """Replace descriptors, also inside lists and dicts, with their live handles."""
    if isinstance(value, ResourceSpec):
        return value.resource
    if isinstance(value, (list, tuple)):
        return [resolve(item) for item in value]
    if isinstance(value, dict):
        return {key: resolve(item) for key, item in value.items()}
    return value


def compact(props: Mapping[str, Any]) -> dict[str, Any]:
    """Drop unset (``None``) keyword arguments so the CDK applies its own defaults."""
    return {key: value for key, value in props.items() if value is not None}


@dataclass(frozen=True, kw_only=True, eq=False)
class ResourceSpec(Generic[T]):
    """Finalized descriptor: logical name, construct id and CDK properties."""

    kind: ClassVar[str] = "Resource"
    construct_type: ClassVar[Callable[..., Any]]

    name: str
    construct_id: str
    props: Mapping[str, Any]
    ref: ResourceRef[T] = dataclasses.field(default=None, repr=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        object.__setattr__(self, "props", MappingProxyType(dict(self.props)))
        if self.ref is None:
            object.__setattr__(self, "ref", ResourceRef(self.kind, self.name))

    @property
    def resource(self) -> T:
        return self.ref.get()

    @property
    def is_created(self) -> bool:
        return self.ref.is_resolved

    def instantiate(self, scope: Construct) -> T:
        """Create the construct inside ``scope`` and bind the live handle."""
        logger.debug("Creating %s %r as %s", self.kind, self.name, self.construct_id)
        handle = self.create(scope, resolve(dict(self.props)))
        self.ref.bind(handle)
        self.after_create(scope, handle)
        return handle

    def create(self, scope: Construct, props: dict[str, Any]) -> T:
        return type(self).construct_type(scope, self.construct_id, **props)

    def after_create(self, scope: Construct, handle: T) -> None:
        """Wiring that needs the live handle (grants, targets, rules)."""


# === Builders ===

@dataclass(frozen=True)
class BaseConfig:
    """All fields are ``None`` or ``()`` until explicitly set."""

    construct_id: str | None = None


def merge_configs(first: C, second: C) -> C:
    """Combine two partial configs: last set scalar wins, sequences concatenate."""
    merged: dict[str, Any] = {}
    for f in dataclasses.fields(first):
        left, right = getattr(first, f.name), getattr(second, f.name)
        if isinstance(left, tuple):
            merged[f.name] = left + tuple(right)
        else:
            merged[f.name] = left if right is None else right
    return dataclasses.replace(first, **merged)


class Builder(Generic[C, S]):
    """Immutable fluent builder over a frozen config of type ``C``."""

    kind: ClassVar[str] = "Resource"
    config_type: ClassVar[type[BaseConfig]] = BaseConfig
    defaults: ClassVar[Mapping[str, Any]] = MappingProxyType({})

    def __init__(self, name: str, config: C | None = None) -> None:
        self.name = name
        self.config: C = config if config is not None else self.config_type()  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.config!r})"

    def _replace(self, **changes: Any) -> Self:
        return type(self)(self.name, dataclasses.replace(self.config, **changes))

    def _append(self, field: str, items: Iterable[Any]) -> Self:
        return self._replace(**{field: getattr(self.config, field) + tuple(items)})

    def construct_id(self, construct_id: str) -> Self:
        return self._replace(construct_id=construct_id)

    def merge(self, other: Builder[C, S]) -> Self:
        if type(other) is not type(self):
            raise TypeError(f"cannot merge {other.kind} options into {self.kind} '{self.name}'")
        return type(self)(self.name, merge_configs(self.config, other.config))

    def value(self, field: str) -> Any:
        """Explicit value of ``field`` or, when unset, its documented default."""
        explicit = getattr(self.config, field)
        if explicit is None:
            return self.defaults.get(field)
        return explicit

    def require(self, field: str, label: str | None = None) -> Any:
        explicit = getattr(self.config, field)
        if explicit is None or explicit == ():
            raise MissingPropertyError(self.kind, self.name, label or field)
        return explicit

    def unsafe(self, field: str, reason: str) -> UnsafeConfigurationError:
        return UnsafeConfigurationError(self.kind, self.name, field, reason)

    def build(self) -> S:
        if not self.name:
            raise MissingPropertyError(self.kind, "<unnamed>", "name")
        return self.finalize()

    def finalize(self) -> S:
        raise NotImplementedError

    def spec(self, spec_type: type[S], props: Mapping[str, Any], **extra: Any) -> S:
        return spec_type(
            name=self.name,
            construct_id=self.config.construct_id or self.name,
            props=compact(props),
            **extra,
        )


def built(item: Any) -> Any:
    """Finalize ``item`` if it is still a builder."""
    return item.build() if isinstance(item, Builder) else item
