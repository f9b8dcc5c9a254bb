"""Step Functions state machines."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Union

from aws_cdk import Duration
from aws_cdk import aws_iam as iam
from aws_cdk import aws_stepfunctions as sfn
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve

logger = logging.getLogger(__name__)

# A definition is either ready-made or a callable that builds the states in
# the stack that owns the state machine.
Definition = Union[sfn.IChainable, sfn.DefinitionBody, Callable[[Construct], sfn.IChainable]]


@dataclass(frozen=True)
class StateMachineConfig(BaseConfig):
    definition: Any = None
    state_machine_type: sfn.StateMachineType | None = None
    timeout: Duration | None = None
    tracing_enabled: bool | None = None
    logging_level: sfn.LogLevel | None = None
    log_destination: Any = None
    include_execution_data: bool | None = None
    role: iam.IRole | None = None
    comment: str | None = None
    grants: tuple[tuple[str, Any], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class StateMachineSpec(ResourceSpec[sfn.StateMachine]):
    kind = "StateMachine"
    construct_type = sfn.StateMachine

    definition: Any = None
    grants: tuple[tuple[str, Any], ...] = ()

    def create(self, scope: Construct, props: dict[str, Any]) -> sfn.StateMachine:
        definition = self.definition
        if callable(definition):
            definition = definition(scope)
        if not isinstance(definition, sfn.DefinitionBody):
            definition = sfn.DefinitionBody.from_chainable(definition)
        log_options = props.pop("logs", None)
        if log_options is not None:
            props["logs"] = sfn.LogOptions(**log_options)
        return sfn.StateMachine(scope, self.construct_id, definition_body=definition, **props)

    def after_create(self, scope: Construct, handle: sfn.StateMachine) -> None:
        for method, grantee in self.grants:
            getattr(handle, method)(resolve(grantee))


class StateMachineBuilder(Builder[StateMachineConfig, StateMachineSpec]):
    """Standard workflow with X-Ray tracing and full execution logging.

    Logging needs a log group; without one the logging level is ignored.
    """

    kind = "StateMachine"
    config_type = StateMachineConfig
    defaults = MappingProxyType({
        "state_machine_type": sfn.StateMachineType.STANDARD,
        "timeout": Duration.hours(1),
        "tracing_enabled": True,
        "logging_level": sfn.LogLevel.ALL,
        "include_execution_data": True,
    })

    def definition(self, definition: Definition) -> StateMachineBuilder:
        return self._replace(definition=definition)

    def state_machine_type(self, machine_type: sfn.StateMachineType) -> StateMachineBuilder:
        return self._replace(state_machine_type=machine_type)

    def express(self) -> StateMachineBuilder:
        return self._replace(state_machine_type=sfn.StateMachineType.EXPRESS)

    def timeout(self, timeout: Duration) -> StateMachineBuilder:
        return self._replace(timeout=timeout)

    def tracing_enabled(self, enabled: bool = True) -> StateMachineBuilder:
        return self._replace(tracing_enabled=enabled)

    def logging_level(self, level: sfn.LogLevel) -> StateMachineBuilder:
        return self._replace(logging_level=level)

    def log_destination(self, log_group: Any) -> StateMachineBuilder:
        """A ``logs.ILogGroup`` or a log group descriptor."""
        return self._replace(log_destination=log_group)

    def include_execution_data(self, enabled: bool = True) -> StateMachineBuilder:
        return self._replace(include_execution_data=enabled)

    def role(self, role: iam.IRole) -> StateMachineBuilder:
        return self._replace(role=role)

    def comment(self, comment: str) -> StateMachineBuilder:
        return self._replace(comment=comment)

    def grant_start_execution(self, grantee: Any) -> StateMachineBuilder:
        return self._append("grants", [("grant_start_execution", grantee)])

    def grant_read(self, grantee: Any) -> StateMachineBuilder:
        return self._append("grants", [("grant_read", grantee)])

    def finalize(self) -> StateMachineSpec:
        config = self.config
        definition = self.require("definition")

        log_options = None
        if config.log_destination is not None:
            log_options = {
                "destination": config.log_destination,
                "level": self.value("logging_level"),
                "include_execution_data": self.value("include_execution_data"),
            }
        elif config.logging_level is not None:
            logger.info("State machine %s has a logging level but no log destination; logging is skipped", self.name)

        return self.spec(StateMachineSpec, {
            "state_machine_name": self.name,
            "state_machine_type": self.value("state_machine_type"),
            "timeout": self.value("timeout"),
            "tracing_enabled": self.value("tracing_enabled"),
            "logs": log_options,
            "role": config.role,
            "comment": config.comment,
        }, definition=definition, grants=config.grants)


def state_machine(name: str) -> StateMachineBuilder:
    return StateMachineBuilder(name)
