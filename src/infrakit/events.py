"""EventBridge rules."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import aws_events as events
from aws_cdk import aws_events_targets as event_targets
from constructs import Construct

from infrakit.compute import FunctionSpec
from infrakit.core import BaseConfig, Builder, ResourceSpec
from infrakit.errors import MissingPropertyError
from infrakit.messaging import QueueSpec, TopicSpec
from infrakit.workflows import StateMachineSpec

# Descriptor kinds that can be targeted directly, mapped to their target wrapper.
_TARGETS = (
    (FunctionSpec, event_targets.LambdaFunction),
    (QueueSpec, event_targets.SqsQueue),
    (TopicSpec, event_targets.SnsTopic),
    (StateMachineSpec, event_targets.SfnStateMachine),
)


def _rule_target(target: Any) -> events.IRuleTarget:
    for spec_type, wrapper in _TARGETS:
        if isinstance(target, spec_type):
            return wrapper(target.resource)
    return target


@dataclass(frozen=True)
class EventRuleConfig(BaseConfig):
    description: str | None = None
    enabled: bool | None = None
    event_pattern: events.EventPattern | None = None
    schedule: events.Schedule | None = None
    event_bus: Any = None
    targets: tuple[Any, ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class EventRuleSpec(ResourceSpec[events.Rule]):
    kind = "EventRule"
    construct_type = events.Rule

    targets: tuple[Any, ...] = ()

    def after_create(self, scope: Construct, handle: events.Rule) -> None:
        for target in self.targets:
            handle.add_target(_rule_target(target))


class EventRuleBuilder(Builder[EventRuleConfig, EventRuleSpec]):
    """Enabled rule matching an event pattern or firing on a schedule."""

    kind = "EventRule"
    config_type = EventRuleConfig
    defaults = MappingProxyType({"enabled": True})

    def description(self, description: str) -> EventRuleBuilder:
        return self._replace(description=description)

    def enabled(self, enabled: bool = True) -> EventRuleBuilder:
        return self._replace(enabled=enabled)

    def event_pattern(self, pattern: events.EventPattern) -> EventRuleBuilder:
        return self._replace(event_pattern=pattern)

    def schedule(self, schedule: events.Schedule) -> EventRuleBuilder:
        return self._replace(schedule=schedule)

    def event_bus(self, bus: Any) -> EventRuleBuilder:
        return self._replace(event_bus=bus)

    def target(self, *targets: Any) -> EventRuleBuilder:
        """``events.IRuleTarget`` objects or function, queue, topic and state machine descriptors."""
        return self._append("targets", targets)

    def finalize(self) -> EventRuleSpec:
        config = self.config
        if config.event_pattern is None and config.schedule is None:
            raise MissingPropertyError(self.kind, self.name, "event_pattern or schedule")
        if config.schedule is not None and config.event_bus is not None:
            raise self.unsafe("schedule", "scheduled rules run on the default event bus")
        return self.spec(EventRuleSpec, {
            "rule_name": self.name,
            "description": config.description,
            "enabled": self.value("enabled"),
            "event_pattern": config.event_pattern,
            "schedule": config.schedule,
            "event_bus": config.event_bus,
        }, targets=config.targets)


def event_rule(name: str) -> EventRuleBuilder:
    return EventRuleBuilder(name)
