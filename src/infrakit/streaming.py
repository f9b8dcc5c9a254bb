"""Kinesis data streams."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import Duration
from aws_cdk import aws_kinesis as kinesis
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve


@dataclass(frozen=True)
class KinesisStreamConfig(BaseConfig):
    shard_count: int | None = None
    retention_period: Duration | None = None
    encryption: kinesis.StreamEncryption | None = None
    encryption_key: Any = None
    stream_mode: kinesis.StreamMode | None = None
    grants: tuple[tuple[str, Any], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class KinesisStreamSpec(ResourceSpec[kinesis.Stream]):
    kind = "KinesisStream"
    construct_type = kinesis.Stream

    grants: tuple[tuple[str, Any], ...] = ()

    def after_create(self, scope: Construct, handle: kinesis.Stream) -> None:
        for method, grantee in self.grants:
            getattr(handle, method)(resolve(grantee))


class KinesisStreamBuilder(Builder[KinesisStreamConfig, KinesisStreamSpec]):
    """Provisioned single-shard stream, encrypted with the AWS managed key
    and retaining records for 24 hours."""

    kind = "KinesisStream"
    config_type = KinesisStreamConfig
    defaults = MappingProxyType({
        "shard_count": 1,
        "retention_period": Duration.hours(24),
        "encryption": kinesis.StreamEncryption.MANAGED,
        "stream_mode": kinesis.StreamMode.PROVISIONED,
    })

    def shard_count(self, count: int) -> KinesisStreamBuilder:
        return self._replace(shard_count=count)

    def retention_period(self, period: Duration) -> KinesisStreamBuilder:
        return self._replace(retention_period=period)

    def encryption(self, encryption: kinesis.StreamEncryption) -> KinesisStreamBuilder:
        return self._replace(encryption=encryption)

    def encryption_key(self, key: Any) -> KinesisStreamBuilder:
        return self._replace(encryption_key=key)

    def stream_mode(self, mode: kinesis.StreamMode) -> KinesisStreamBuilder:
        return self._replace(stream_mode=mode)

    def on_demand(self) -> KinesisStreamBuilder:
        return self._replace(stream_mode=kinesis.StreamMode.ON_DEMAND)

    def grant_read(self, grantee: Any) -> KinesisStreamBuilder:
        return self._append("grants", [("grant_read", grantee)])

    def grant_write(self, grantee: Any) -> KinesisStreamBuilder:
        return self._append("grants", [("grant_write", grantee)])

    def grant_read_write(self, grantee: Any) -> KinesisStreamBuilder:
        return self._append("grants", [("grant_read_write", grantee)])

    def finalize(self) -> KinesisStreamSpec:
        config = self.config
        mode = self.value("stream_mode")
        shard_count = self.value("shard_count")
        if mode == kinesis.StreamMode.ON_DEMAND:
            if config.shard_count is not None:
                raise self.unsafe("shard_count", "on-demand streams scale shards automatically")
            shard_count = None

        encryption = self.value("encryption")
        if config.encryption_key is not None:
            if config.encryption is None:
                encryption = kinesis.StreamEncryption.KMS
            elif config.encryption != kinesis.StreamEncryption.KMS:
                raise self.unsafe("encryption_key", "a customer key requires KMS encryption")

        return self.spec(KinesisStreamSpec, {
            "stream_name": self.name,
            "shard_count": shard_count,
            "retention_period": self.value("retention_period"),
            "encryption": encryption,
            "encryption_key": config.encryption_key,
            "stream_mode": mode,
        }, grants=config.grants)


def kinesis_stream(name: str) -> KinesisStreamBuilder:
    return KinesisStreamBuilder(name)
