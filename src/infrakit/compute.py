"""Lambda functions with their event sources, permissions and invoke settings."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from aws_cdk import Duration
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as _lambda
from aws_cdk import aws_lambda_event_sources as event_sources
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve
from infrakit.security import PolicyStatementBuilder, arn_of, statements_of


class EventSource:
    """Event source bound to a resource that may still be a descriptor."""

    def __init__(self, factory: Callable[..., _lambda.IEventSource], resource: Any, **options: Any) -> None:
        self.factory = factory
        self.resource = resource
        self.options = options

    def bind(self) -> _lambda.IEventSource:
        return self.factory(resolve(self.resource), **self.options)


def sqs_source(queue: Any, **options: Any) -> EventSource:
    return EventSource(event_sources.SqsEventSource, queue, **options)


def dynamodb_stream_source(
    table: Any,
    starting_position: _lambda.StartingPosition = _lambda.StartingPosition.TRIM_HORIZON,
    **options: Any,
) -> EventSource:
    return EventSource(event_sources.DynamoEventSource, table, starting_position=starting_position, **options)


def kinesis_source(
    stream: Any,
    starting_position: _lambda.StartingPosition = _lambda.StartingPosition.TRIM_HORIZON,
    **options: Any,
) -> EventSource:
    return EventSource(event_sources.KinesisEventSource, stream, starting_position=starting_position, **options)


def sns_source(topic: Any, **options: Any) -> EventSource:
    return EventSource(event_sources.SnsEventSource, topic, **options)


def _mapping_source_arn(source: Any) -> str:
    handle = resolve(source)
    # Tables map through their stream, not the table itself.
    stream_arn = getattr(handle, "table_stream_arn", None)
    return stream_arn if stream_arn is not None else arn_of(handle)


@dataclass(frozen=True)
class FunctionConfig(BaseConfig):
    handler: str | None = None
    runtime: _lambda.Runtime | None = None
    code: _lambda.Code | None = None
    environment: tuple[tuple[str, str], ...] = ()
    timeout: Duration | None = None
    memory_size: int | None = None
    description: str | None = None
    architecture: _lambda.Architecture | None = None
    tracing: _lambda.Tracing | None = None
    reserved_concurrent_executions: int | None = None
    layers: tuple[_lambda.ILayerVersion, ...] = ()
    log_group: Any = None
    role: Any = None
    vpc: Any = None
    vpc_subnets: ec2.SubnetSelection | None = None
    security_groups: tuple[Any, ...] = ()
    event_sources: tuple[EventSource | _lambda.IEventSource, ...] = ()
    event_source_mappings: tuple[tuple[str, Any, dict[str, Any]], ...] = ()
    role_statements: tuple[iam.PolicyStatement | PolicyStatementBuilder, ...] = ()
    managed_policies: tuple[Any, ...] = ()
    permissions: tuple[tuple[str, dict[str, Any]], ...] = ()
    function_url: dict[str, Any] | None = None
    async_invoke: dict[str, Any] | None = None


@dataclass(frozen=True, kw_only=True, eq=False)
class FunctionSpec(ResourceSpec[_lambda.Function]):
    kind = "Function"
    construct_type = _lambda.Function

    event_sources: tuple[EventSource | _lambda.IEventSource, ...] = ()
    event_source_mappings: tuple[tuple[str, Any, dict[str, Any]], ...] = ()
    role_statements: tuple[iam.PolicyStatement | PolicyStatementBuilder, ...] = ()
    managed_policies: tuple[Any, ...] = ()
    permissions: tuple[tuple[str, dict[str, Any]], ...] = ()
    function_url: dict[str, Any] | None = None
    async_invoke: dict[str, Any] | None = None

    def after_create(self, scope: Construct, handle: _lambda.Function) -> None:
        for source in self.event_sources:
            handle.add_event_source(source.bind() if isinstance(source, EventSource) else source)
        for mapping_id, source, options in self.event_source_mappings:
            handle.add_event_source_mapping(
                mapping_id, event_source_arn=_mapping_source_arn(source), **resolve(options),
            )
        for statement in statements_of(self.role_statements):
            handle.add_to_role_policy(statement)
        for policy in self.managed_policies:
            handle.role.add_managed_policy(resolve(policy))
        for permission_id, permission in self.permissions:
            handle.add_permission(permission_id, **resolve(permission))
        if self.function_url is not None:
            handle.add_function_url(**self.function_url)
        if self.async_invoke is not None:
            handle.configure_async_invoke(**resolve(self.async_invoke))


class FunctionBuilder(Builder[FunctionConfig, FunctionSpec]):
    """Lambda function. Handler, runtime and code must all be supplied."""

    kind = "Function"
    config_type = FunctionConfig

    def handler(self, handler: str) -> FunctionBuilder:
        return self._replace(handler=handler)

    def runtime(self, runtime: _lambda.Runtime) -> FunctionBuilder:
        return self._replace(runtime=runtime)

    def code(self, code: _lambda.Code | str) -> FunctionBuilder:
        """A ``_lambda.Code`` or a local directory bundled as an asset."""
        if isinstance(code, str):
            code = _lambda.Code.from_asset(code)
        return self._replace(code=code)

    def environment(self, key: str, value: str) -> FunctionBuilder:
        return self._append("environment", [(key, value)])

    def timeout(self, timeout: Duration) -> FunctionBuilder:
        return self._replace(timeout=timeout)

    def memory_size(self, megabytes: int) -> FunctionBuilder:
        return self._replace(memory_size=megabytes)

    def description(self, description: str) -> FunctionBuilder:
        return self._replace(description=description)

    def architecture(self, architecture: _lambda.Architecture) -> FunctionBuilder:
        return self._replace(architecture=architecture)

    def tracing(self, tracing: _lambda.Tracing) -> FunctionBuilder:
        return self._replace(tracing=tracing)

    def reserved_concurrent_executions(self, count: int) -> FunctionBuilder:
        return self._replace(reserved_concurrent_executions=count)

    def layers(self, *layers: _lambda.ILayerVersion) -> FunctionBuilder:
        return self._append("layers", layers)

    def log_group(self, log_group: Any) -> FunctionBuilder:
        return self._replace(log_group=log_group)

    def role(self, role: Any) -> FunctionBuilder:
        return self._replace(role=role)

    def vpc(self, vpc: Any, subnets: ec2.SubnetSelection | None = None) -> FunctionBuilder:
        return self._replace(vpc=vpc, vpc_subnets=subnets)

    def security_groups(self, *groups: Any) -> FunctionBuilder:
        return self._append("security_groups", groups)

    def event_source(self, source: EventSource | _lambda.IEventSource) -> FunctionBuilder:
        return self._append("event_sources", [source])

    def event_source_mapping(self, mapping_id: str, source: Any, **options: Any) -> FunctionBuilder:
        """Raw event source mapping without the grants an event source adds.

        ``source`` is an ARN or a queue, stream or table descriptor; tables map
        through their stream. Options are ``EventSourceMappingOptions`` fields
        such as ``batch_size`` or ``starting_position``.
        """
        return self._append("event_source_mappings", [(mapping_id, source, options)])

    def role_policy(self, *statements: iam.PolicyStatement | PolicyStatementBuilder) -> FunctionBuilder:
        return self._append("role_statements", statements)

    def managed_policy(self, *policies: Any) -> FunctionBuilder:
        return self._append("managed_policies", policies)

    def permission(self, permission_id: str, principal: iam.IPrincipal, **options: Any) -> FunctionBuilder:
        """Resource-based permission, e.g. ``action='lambda:InvokeFunction'``."""
        return self._append("permissions", [(permission_id, {"principal": principal, **options})])

    def function_url(self, auth_type: _lambda.FunctionUrlAuthType = _lambda.FunctionUrlAuthType.AWS_IAM,
                     **options: Any) -> FunctionBuilder:
        return self._replace(function_url={"auth_type": auth_type, **options})

    def async_invoke(self, **options: Any) -> FunctionBuilder:
        """Retry, event-age and destination settings for asynchronous invokes."""
        return self._replace(async_invoke=options)

    def finalize(self) -> FunctionSpec:
        config = self.config
        handler = self.require("handler")
        runtime = self.require("runtime")
        code = self.require("code")
        mapping_ids = [mapping_id for mapping_id, _, _ in config.event_source_mappings]
        if len(mapping_ids) != len(set(mapping_ids)):
            raise self.unsafe("event_source_mappings", f"duplicate mapping ids in {mapping_ids}")
        return self.spec(FunctionSpec, {
            "function_name": self.name,
            "handler": handler,
            "runtime": runtime,
            "code": code,
            "environment": dict(config.environment) or None,
            "timeout": config.timeout,
            "memory_size": config.memory_size,
            "description": config.description,
            "architecture": config.architecture,
            "tracing": config.tracing,
            "reserved_concurrent_executions": config.reserved_concurrent_executions,
            "layers": list(config.layers) or None,
            "log_group": config.log_group,
            "role": config.role,
            "vpc": config.vpc,
            "vpc_subnets": config.vpc_subnets,
            "security_groups": list(config.security_groups) or None,
        },
            event_sources=config.event_sources,
            event_source_mappings=config.event_source_mappings,
            role_statements=config.role_statements,
            managed_policies=config.managed_policies,
            permissions=config.permissions,
            function_url=config.function_url,
            async_invoke=config.async_invoke,
        )


def lambda_function(name: str) -> FunctionBuilder:
    return FunctionBuilder(name)

