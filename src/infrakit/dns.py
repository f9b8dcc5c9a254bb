"""Route 53 hosted zones and alias/address records."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import Duration
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_route53_targets as targets
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve


# === Hosted zones ===

@dataclass(frozen=True)
class HostedZoneConfig(BaseConfig):
    comment: str | None = None
    query_logs_log_group_arn: str | None = None
    vpcs: tuple[Any, ...] = ()


class HostedZoneSpec(ResourceSpec[route53.HostedZone]):
    kind = "HostedZone"
    construct_type = route53.HostedZone


class HostedZoneBuilder(Builder[HostedZoneConfig, HostedZoneSpec]):
    """Public hosted zone, or private when associated with VPCs.

    The logical name is the zone's DNS name.
    """

    kind = "HostedZone"
    config_type = HostedZoneConfig

    def comment(self, comment: str) -> HostedZoneBuilder:
        return self._replace(comment=comment)

    def query_logs_log_group_arn(self, arn: str) -> HostedZoneBuilder:
        return self._replace(query_logs_log_group_arn=arn)

    def vpc(self, *vpcs: Any) -> HostedZoneBuilder:
        return self._append("vpcs", vpcs)

    def finalize(self) -> HostedZoneSpec:
        config = self.config
        return self.spec(HostedZoneSpec, {
            "zone_name": self.name,
            "comment": config.comment,
            "query_logs_log_group_arn": config.query_logs_log_group_arn,
            "vpcs": list(config.vpcs) or None,
        })


def hosted_zone(zone_name: str) -> HostedZoneBuilder:
    return HostedZoneBuilder(zone_name)


# === A records ===

@dataclass(frozen=True)
class ARecordConfig(BaseConfig):
    zone: Any = None
    target: Any = None
    record_name: str | None = None
    ttl: Duration | None = None
    comment: str | None = None
    delete_existing: bool | None = None


class AliasTarget:
    """Alias to a load balancer or distribution, which may still be a descriptor."""

    def __init__(self, resource: Any, target_type: type) -> None:
        self.resource = resource
        self.target_type = target_type

    def record_target(self) -> route53.RecordTarget:
        return route53.RecordTarget.from_alias(self.target_type(resolve(self.resource)))


def alb_target(load_balancer: Any) -> AliasTarget:
    return AliasTarget(load_balancer, targets.LoadBalancerTarget)


def cloudfront_target(distribution: Any) -> AliasTarget:
    return AliasTarget(distribution, targets.CloudFrontTarget)


class ARecordSpec(ResourceSpec[route53.ARecord]):
    kind = "ARecord"
    construct_type = route53.ARecord

    def create(self, scope: Construct, props: dict[str, Any]) -> route53.ARecord:
        target = props["target"]
        if isinstance(target, AliasTarget):
            props["target"] = target.record_target()
        return route53.ARecord(scope, self.construct_id, **props)


class ARecordBuilder(Builder[ARecordConfig, ARecordSpec]):
    kind = "ARecord"
    config_type = ARecordConfig
    defaults = MappingProxyType({"ttl": Duration.minutes(5)})

    def zone(self, zone: Any) -> ARecordBuilder:
        """A ``route53.IHostedZone`` or a hosted zone descriptor."""
        return self._replace(zone=zone)

    def target(self, target: route53.RecordTarget | AliasTarget) -> ARecordBuilder:
        return self._replace(target=target)

    def record_name(self, record_name: str) -> ARecordBuilder:
        return self._replace(record_name=record_name)

    def ttl(self, ttl: Duration) -> ARecordBuilder:
        return self._replace(ttl=ttl)

    def comment(self, comment: str) -> ARecordBuilder:
        return self._replace(comment=comment)

    def delete_existing(self, enabled: bool = True) -> ARecordBuilder:
        return self._replace(delete_existing=enabled)

    def finalize(self) -> ARecordSpec:
        config = self.config
        return self.spec(ARecordSpec, {
            "zone": self.require("zone"),
            "target": self.require("target"),
            "record_name": config.record_name,
            "ttl": self.value("ttl"),
            "comment": config.comment,
            "delete_existing": config.delete_existing,
        })


def a_record(name: str) -> ARecordBuilder:
    return ARecordBuilder(name)
