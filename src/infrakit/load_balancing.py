"""Application and network load balancers, internal by default."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Self

from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_elasticloadbalancingv2 as elbv2

from infrakit.core import BaseConfig, Builder, ResourceSpec


@dataclass(frozen=True)
class LoadBalancerConfig(BaseConfig):
    vpc: Any = None
    vpc_subnets: ec2.SubnetSelection | None = None
    internet_facing: bool | None = None
    deletion_protection: bool | None = None
    cross_zone_enabled: bool | None = None
    security_group: Any = None
    http2_enabled: bool | None = None
    drop_invalid_header_fields: bool | None = None
    idle_timeout: Any = None
    ip_address_type: elbv2.IpAddressType | None = None


class _LoadBalancerBuilder(Builder[LoadBalancerConfig, Any]):
    config_type = LoadBalancerConfig

    def vpc(self, vpc: Any) -> Self:
        return self._replace(vpc=vpc)

    def vpc_subnets(self, selection: ec2.SubnetSelection) -> Self:
        return self._replace(vpc_subnets=selection)

    def internet_facing(self, enabled: bool = True) -> Self:
        return self._replace(internet_facing=enabled)

    def deletion_protection(self, enabled: bool = True) -> Self:
        return self._replace(deletion_protection=enabled)

    def ip_address_type(self, address_type: elbv2.IpAddressType) -> Self:
        return self._replace(ip_address_type=address_type)

    def _common_props(self) -> dict[str, Any]:
        return {
            "load_balancer_name": self.name,
            "vpc": self.require("vpc", "VPC"),
            "vpc_subnets": self.config.vpc_subnets,
            "internet_facing": self.value("internet_facing"),
            "deletion_protection": self.value("deletion_protection"),
            "ip_address_type": self.value("ip_address_type"),
        }


# === Application load balancers ===

class ApplicationLoadBalancerSpec(ResourceSpec[elbv2.ApplicationLoadBalancer]):
    kind = "ApplicationLoadBalancer"
    construct_type = elbv2.ApplicationLoadBalancer


class ApplicationLoadBalancerBuilder(_LoadBalancerBuilder):
    """Internal ALB with HTTP/2 on and invalid header fields dropped."""

    kind = "ApplicationLoadBalancer"
    defaults = MappingProxyType({
        "internet_facing": False,
        "deletion_protection": False,
        "http2_enabled": True,
        "drop_invalid_header_fields": True,
    })

    def security_group(self, security_group: Any) -> ApplicationLoadBalancerBuilder:
        """An ``ec2.ISecurityGroup`` or a security group descriptor."""
        return self._replace(security_group=security_group)

    def http2_enabled(self, enabled: bool = True) -> ApplicationLoadBalancerBuilder:
        return self._replace(http2_enabled=enabled)

    def drop_invalid_header_fields(self, enabled: bool = True) -> ApplicationLoadBalancerBuilder:
        return self._replace(drop_invalid_header_fields=enabled)

    def idle_timeout(self, timeout: Any) -> ApplicationLoadBalancerBuilder:
        return self._replace(idle_timeout=timeout)

    def finalize(self) -> ApplicationLoadBalancerSpec:
        config = self.config
        return self.spec(ApplicationLoadBalancerSpec, {
            **self._common_props(),
            "security_group": config.security_group,
            "http2_enabled": self.value("http2_enabled"),
            "drop_invalid_header_fields": self.value("drop_invalid_header_fields"),
            "idle_timeout": config.idle_timeout,
        })


def application_load_balancer(name: str) -> ApplicationLoadBalancerBuilder:
    return ApplicationLoadBalancerBuilder(name)


# === Network load balancers ===

class NetworkLoadBalancerSpec(ResourceSpec[elbv2.NetworkLoadBalancer]):
    kind = "NetworkLoadBalancer"
    construct_type = elbv2.NetworkLoadBalancer


class NetworkLoadBalancerBuilder(_LoadBalancerBuilder):
    """Internal NLB with cross-zone load balancing over IPv4."""

    kind = "NetworkLoadBalancer"
    defaults = MappingProxyType({
        "internet_facing": False,
        "cross_zone_enabled": True,
        "deletion_protection": False,
        "ip_address_type": elbv2.IpAddressType.IPV4,
    })

    def cross_zone_enabled(self, enabled: bool = True) -> NetworkLoadBalancerBuilder:
        return self._replace(cross_zone_enabled=enabled)

    def finalize(self) -> NetworkLoadBalancerSpec:
        return self.spec(NetworkLoadBalancerSpec, {
            **self._common_props(),
            "cross_zone_enabled": self.value("cross_zone_enabled"),
        })


def network_load_balancer(name: str) -> NetworkLoadBalancerBuilder:
    return NetworkLoadBalancerBuilder(name)
