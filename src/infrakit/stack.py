"""Stacks and apps assembled from resource descriptors."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from aws_cdk import App, Environment, Stack
from constructs import Construct

from infrakit.config import EnvironmentBuilder
from infrakit.core import BaseConfig, Builder, ResourceSpec, built, compact
from infrakit.tags import StandardTags, apply_standard_tags, apply_tags

logger = logging.getLogger(__name__)


# === Stacks ===

@dataclass(frozen=True)
class StackConfig(BaseConfig):
    env: Environment | None = None
    description: str | None = None
    stack_name: str | None = None
    termination_protection: bool | None = None
    tags: tuple[tuple[str, str], ...] = ()
    standard_tags: StandardTags | None = None
    items: tuple[Any, ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class StackSpec(ResourceSpec[Stack]):
    kind = "Stack"
    construct_type = Stack

    items: tuple[Any, ...] = ()
    tags: tuple[tuple[str, str], ...] = ()
    standard_tags: StandardTags | None = None

    def after_create(self, scope: Construct, handle: Stack) -> None:
        for item in self.items:
            item.instantiate(handle)
        if self.standard_tags is not None:
            apply_standard_tags(handle, self.standard_tags)
        apply_tags(handle, dict(self.tags))
        logger.info("Stack %s created with %d item(s)", self.construct_id, len(self.items))


class StackBuilder(Builder[StackConfig, StackSpec]):
    """A ``cdk.Stack`` holding descriptors, grants and subscriptions.

    Items are instantiated in the order they were added, so a grant must
    come after the table and function it wires together.
    """

    kind = "Stack"
    config_type = StackConfig

    def env(self, env: Environment | EnvironmentBuilder) -> StackBuilder:
        return self._replace(env=built(env))

    def description(self, description: str) -> StackBuilder:
        return self._replace(description=description)

    def stack_name(self, stack_name: str) -> StackBuilder:
        return self._replace(stack_name=stack_name)

    def termination_protection(self, enabled: bool = True) -> StackBuilder:
        return self._replace(termination_protection=enabled)

    def tag(self, key: str, value: str) -> StackBuilder:
        return self._append("tags", [(key, value)])

    def standard_tags(self, tags: StandardTags) -> StackBuilder:
        return self._replace(standard_tags=tags)

    def add(self, *items: Any) -> StackBuilder:
        return self._append("items", items)

    def finalize(self) -> StackSpec:
        config = self.config
        return self.spec(StackSpec, {
            "env": config.env,
            "description": config.description,
            "stack_name": config.stack_name,
            "termination_protection": config.termination_protection,
        }, items=tuple(built(item) for item in config.items),
            tags=config.tags, standard_tags=config.standard_tags)


def stack(name: str) -> StackBuilder:
    return StackBuilder(name)


# === Apps ===

@dataclass(frozen=True)
class AppConfig(BaseConfig):
    context: tuple[tuple[str, Any], ...] = ()
    stack_traces: bool | None = None
    outdir: str | None = None
    stacks: tuple[Any, ...] = ()


class AppBuilder(Builder[AppConfig, App]):
    kind = "App"
    config_type = AppConfig

    def __init__(self, name: str = "App", config: AppConfig | None = None) -> None:
        super().__init__(name, config)

    def context(self, key: str, value: Any) -> AppBuilder:
        return self._append("context", [(key, value)])

    def stack_traces(self, enabled: bool = True) -> AppBuilder:
        return self._replace(stack_traces=enabled)

    def outdir(self, path: str) -> AppBuilder:
        return self._replace(outdir=path)

    def add(self, *stacks: StackSpec | StackBuilder) -> AppBuilder:
        return self._append("stacks", stacks)

    def finalize(self) -> App:
        config = self.config
        stacks = [built(item) for item in config.stacks]
        cdk_app = App(**compact({
            "context": dict(config.context) or None,
            "stack_traces": config.stack_traces,
            "outdir": config.outdir,
        }))
        for stack_spec in stacks:
            stack_spec.instantiate(cdk_app)
        return cdk_app


def app() -> AppBuilder:
    return AppBuilder()
