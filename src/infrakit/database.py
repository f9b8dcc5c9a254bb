"""DynamoDB tables and table-to-function grants."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any

from aws_cdk import RemovalPolicy
from aws_cdk import aws_dynamodb as dynamodb
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableConfig(BaseConfig):
    partition_key: dynamodb.Attribute | None = None
    sort_key: dynamodb.Attribute | None = None
    billing_mode: dynamodb.BillingMode | None = None
    read_capacity: int | None = None
    write_capacity: int | None = None
    removal_policy: RemovalPolicy | None = None
    point_in_time_recovery: bool | None = None
    stream: dynamodb.StreamViewType | None = None
    kinesis_stream: Any = None
    time_to_live_attribute: str | None = None
    encryption: dynamodb.TableEncryption | None = None
    encryption_key: Any = None
    import_source: dynamodb.ImportSourceSpecification | None = None
    grants: tuple[tuple[str, Any, tuple[Any, ...]], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class TableSpec(ResourceSpec[dynamodb.Table]):
    kind = "Table"
    construct_type = dynamodb.Table

    grants: tuple[tuple[str, Any, tuple[Any, ...]], ...] = ()

    def after_create(self, scope: Construct, handle: dynamodb.Table) -> None:
        for method, grantee, args in self.grants:
            getattr(handle, method)(resolve(grantee), *args)


class TableBuilder(Builder[TableConfig, TableSpec]):
    """DynamoDB table. Only the partition key is required; everything else
    falls through to the CDK defaults when unset."""

    kind = "Table"
    config_type = TableConfig

    def partition_key(self, name: str, attribute_type: dynamodb.AttributeType) -> TableBuilder:
        return self._replace(partition_key=dynamodb.Attribute(name=name, type=attribute_type))

    def sort_key(self, name: str, attribute_type: dynamodb.AttributeType) -> TableBuilder:
        return self._replace(sort_key=dynamodb.Attribute(name=name, type=attribute_type))

    def billing_mode(self, mode: dynamodb.BillingMode) -> TableBuilder:
        return self._replace(billing_mode=mode)

    def provisioned(self, read_capacity: int, write_capacity: int) -> TableBuilder:
        return self._replace(
            billing_mode=dynamodb.BillingMode.PROVISIONED,
            read_capacity=read_capacity,
            write_capacity=write_capacity,
        )

    def removal_policy(self, policy: RemovalPolicy) -> TableBuilder:
        return self._replace(removal_policy=policy)

    def point_in_time_recovery(self, enabled: bool = True) -> TableBuilder:
        return self._replace(point_in_time_recovery=enabled)

    def stream(self, view_type: dynamodb.StreamViewType) -> TableBuilder:
        return self._replace(stream=view_type)

    def kinesis_stream(self, stream: Any) -> TableBuilder:
        return self._replace(kinesis_stream=stream)

    def time_to_live_attribute(self, attribute: str) -> TableBuilder:
        return self._replace(time_to_live_attribute=attribute)

    def encryption(self, encryption: dynamodb.TableEncryption, key: Any = None) -> TableBuilder:
        return self._replace(encryption=encryption, encryption_key=key)

    def import_source(self, source: dynamodb.ImportSourceSpecification) -> TableBuilder:
        return self._replace(import_source=source)

    # === Grants applied once the table exists ===

    def _grant(self, method: str, grantee: Any, *args: Any) -> TableBuilder:
        return self._append("grants", [(method, grantee, args)])

    def grant_read_data(self, grantee: Any) -> TableBuilder:
        return self._grant("grant_read_data", grantee)

    def grant_write_data(self, grantee: Any) -> TableBuilder:
        return self._grant("grant_write_data", grantee)

    def grant_read_write_data(self, grantee: Any) -> TableBuilder:
        return self._grant("grant_read_write_data", grantee)

    def grant_full_access(self, grantee: Any) -> TableBuilder:
        return self._grant("grant_full_access", grantee)

    def grant_stream_read(self, grantee: Any) -> TableBuilder:
        return self._grant("grant_stream_read", grantee)

    def grant_table_list_streams(self, grantee: Any) -> TableBuilder:
        return self._grant("grant_table_list_streams", grantee)

    def grant(self, grantee: Any, *actions: str) -> TableBuilder:
        return self._grant("grant", grantee, *actions)

    def finalize(self) -> TableSpec:
        config = self.config
        partition_key = self.require("partition_key", "partition key")
        pitr = None
        if config.point_in_time_recovery is not None:
            pitr = dynamodb.PointInTimeRecoverySpecification(
                point_in_time_recovery_enabled=config.point_in_time_recovery,
            )

        return self.spec(TableSpec, {
            "table_name": self.name,
            "partition_key": partition_key,
            "sort_key": config.sort_key,
            "billing_mode": config.billing_mode,
            "read_capacity": config.read_capacity,
            "write_capacity": config.write_capacity,
            "removal_policy": config.removal_policy,
            "point_in_time_recovery_specification": pitr,
            "stream": config.stream,
            "kinesis_stream": config.kinesis_stream,
            "time_to_live_attribute": config.time_to_live_attribute,
            "encryption": config.encryption,
            "encryption_key": config.encryption_key,
            "import_source": config.import_source,
        }, grants=config.grants)


def table(name: str) -> TableBuilder:
    return TableBuilder(name)


# === Grants by construct id ===

class Access(enum.Enum):
    READ = "grant_read_data"
    WRITE = "grant_write_data"
    READ_WRITE = "grant_read_write_data"


@dataclass(frozen=True)
class GrantConfig(BaseConfig):
    table: str | None = None
    function: str | None = None
    access: Access | None = None


@dataclass(frozen=True)
class GrantSpec:
    """Wires table access to a function, both found by construct id in the stack."""

    name: str
    table_construct_id: str
    function_construct_id: str
    access: Access

    def instantiate(self, scope: Construct) -> None:
        table_handle = _find(scope, self.table_construct_id, self.name)
        function_handle = _find(scope, self.function_construct_id, self.name)
        logger.debug("Granting %s on %s to %s", self.access.name, self.table_construct_id, self.function_construct_id)
        getattr(table_handle, self.access.value)(function_handle)


def _find(scope: Construct, construct_id: str, grant_name: str) -> Any:
    child = scope.node.try_find_child(construct_id)
    if child is None:
        raise LookupError(f"Grant '{grant_name}': no construct '{construct_id}' in {scope.node.path}")
    return child


class GrantBuilder(Builder[GrantConfig, GrantSpec]):
    kind = "Grant"
    config_type = GrantConfig

    def table(self, construct_id: str) -> GrantBuilder:
        return self._replace(table=construct_id)

    def function(self, construct_id: str) -> GrantBuilder:
        return self._replace(function=construct_id)

    def access(self, access: Access) -> GrantBuilder:
        return self._replace(access=access)

    def finalize(self) -> GrantSpec:
        return GrantSpec(
            name=self.name,
            table_construct_id=self.require("table", "table construct id"),
            function_construct_id=self.require("function", "function construct id"),
            access=self.require("access"),
        )


def grant(name: str) -> GrantBuilder:
    return GrantBuilder(name)
