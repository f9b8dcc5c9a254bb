"""VPCs, security groups, route tables and routes."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import RemovalPolicy
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_logs as logs
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve
from infrakit.errors import MissingPropertyError

DEFAULT_SUBNETS = (
    ec2.SubnetConfiguration(name="Public", subnet_type=ec2.SubnetType.PUBLIC, cidr_mask=24),
    ec2.SubnetConfiguration(name="Private", subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS, cidr_mask=24),
)
ISOLATED_SUBNETS = (
    ec2.SubnetConfiguration(name="Public", subnet_type=ec2.SubnetType.PUBLIC, cidr_mask=24),
    ec2.SubnetConfiguration(name="Private", subnet_type=ec2.SubnetType.PRIVATE_ISOLATED, cidr_mask=24),
)


# === VPCs ===

@dataclass(frozen=True)
class VpcConfig(BaseConfig):
    max_azs: int | None = None
    nat_gateways: int | None = None
    subnets: tuple[ec2.SubnetConfiguration, ...] = ()
    enable_dns_hostnames: bool | None = None
    enable_dns_support: bool | None = None
    cidr: str | None = None
    default_instance_tenancy: ec2.DefaultInstanceTenancy | None = None
    flow_logs: bool | None = None
    flow_log_retention: logs.RetentionDays | None = None
    gateway_endpoints: tuple[tuple[str, ec2.GatewayVpcEndpointAwsService], ...] = ()
    interface_endpoints: tuple[tuple[str, ec2.InterfaceVpcEndpointAwsService, bool], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class VpcSpec(ResourceSpec[ec2.Vpc]):
    kind = "Vpc"
    construct_type = ec2.Vpc

    flow_log_retention: logs.RetentionDays | None = None
    gateway_endpoints: tuple[tuple[str, ec2.GatewayVpcEndpointAwsService], ...] = ()
    interface_endpoints: tuple[tuple[str, ec2.InterfaceVpcEndpointAwsService, bool], ...] = ()

    def after_create(self, scope: Construct, handle: ec2.Vpc) -> None:
        if self.flow_log_retention is not None:
            log_group = logs.LogGroup(
                scope,
                f"{self.construct_id}FlowLogs",
                retention=self.flow_log_retention,
                removal_policy=RemovalPolicy.DESTROY,
            )
            handle.add_flow_log(
                "FlowLog",
                destination=ec2.FlowLogDestination.to_cloud_watch_logs(log_group),
                traffic_type=ec2.FlowLogTrafficType.ALL,
            )
        for endpoint_id, service in self.gateway_endpoints:
            handle.add_gateway_endpoint(endpoint_id, service=service)
        for endpoint_id, service, private_dns in self.interface_endpoints:
            handle.add_interface_endpoint(endpoint_id, service=service, private_dns_enabled=private_dns)


class VpcBuilder(Builder[VpcConfig, VpcSpec]):
    """VPC across two AZs with one NAT gateway, public and private /24
    subnets, DNS on and VPC flow logs kept for a week."""

    kind = "Vpc"
    config_type = VpcConfig
    defaults = MappingProxyType({
        "max_azs": 2,
        "nat_gateways": 1,
        "enable_dns_hostnames": True,
        "enable_dns_support": True,
        "flow_logs": True,
        "flow_log_retention": logs.RetentionDays.ONE_WEEK,
    })

    def max_azs(self, count: int) -> VpcBuilder:
        return self._replace(max_azs=count)

    def nat_gateways(self, count: int) -> VpcBuilder:
        return self._replace(nat_gateways=count)

    def subnet(self, name: str, subnet_type: ec2.SubnetType, cidr_mask: int = 24) -> VpcBuilder:
        return self._append("subnets", [
            ec2.SubnetConfiguration(name=name, subnet_type=subnet_type, cidr_mask=cidr_mask),
        ])

    def enable_dns_hostnames(self, enabled: bool = True) -> VpcBuilder:
        return self._replace(enable_dns_hostnames=enabled)

    def enable_dns_support(self, enabled: bool = True) -> VpcBuilder:
        return self._replace(enable_dns_support=enabled)

    def cidr(self, cidr: str) -> VpcBuilder:
        return self._replace(cidr=cidr)

    def default_instance_tenancy(self, tenancy: ec2.DefaultInstanceTenancy) -> VpcBuilder:
        return self._replace(default_instance_tenancy=tenancy)

    def flow_logs(self, enabled: bool = True, retention: logs.RetentionDays | None = None) -> VpcBuilder:
        return self._replace(flow_logs=enabled, flow_log_retention=retention)

    def gateway_endpoint(self, endpoint_id: str, service: ec2.GatewayVpcEndpointAwsService) -> VpcBuilder:
        return self._append("gateway_endpoints", [(endpoint_id, service)])

    def interface_endpoint(
        self,
        endpoint_id: str,
        service: ec2.InterfaceVpcEndpointAwsService,
        private_dns_enabled: bool = True,
    ) -> VpcBuilder:
        return self._append("interface_endpoints", [(endpoint_id, service, private_dns_enabled)])

    def finalize(self) -> VpcSpec:
        config = self.config
        nat_gateways = self.value("nat_gateways")
        subnets = config.subnets
        if not subnets:
            subnets = ISOLATED_SUBNETS if nat_gateways == 0 else DEFAULT_SUBNETS
        elif nat_gateways == 0 and any(s.subnet_type == ec2.SubnetType.PRIVATE_WITH_EGRESS for s in subnets):
            raise self.unsafe("nat_gateways", "PRIVATE_WITH_EGRESS subnets need at least one NAT gateway")

        return self.spec(VpcSpec, {
            "vpc_name": self.name,
            "max_azs": self.value("max_azs"),
            "nat_gateways": nat_gateways,
            "subnet_configuration": list(subnets),
            "enable_dns_hostnames": self.value("enable_dns_hostnames"),
            "enable_dns_support": self.value("enable_dns_support"),
            "ip_addresses": ec2.IpAddresses.cidr(config.cidr) if config.cidr else None,
            "default_instance_tenancy": config.default_instance_tenancy,
        },
            flow_log_retention=self.value("flow_log_retention") if self.value("flow_logs") else None,
            gateway_endpoints=config.gateway_endpoints,
            interface_endpoints=config.interface_endpoints,
        )


def vpc(name: str) -> VpcBuilder:
    return VpcBuilder(name)


# === Security groups ===

@dataclass(frozen=True)
class SecurityGroupConfig(BaseConfig):
    vpc: Any = None
    description: str | None = None
    allow_all_outbound: bool | None = None
    disable_inline_rules: bool | None = None
    ingress_rules: tuple[tuple[ec2.IPeer, ec2.Port, str | None], ...] = ()
    egress_rules: tuple[tuple[ec2.IPeer, ec2.Port, str | None], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class SecurityGroupSpec(ResourceSpec[ec2.SecurityGroup]):
    kind = "SecurityGroup"
    construct_type = ec2.SecurityGroup

    ingress_rules: tuple[tuple[ec2.IPeer, ec2.Port, str | None], ...] = ()
    egress_rules: tuple[tuple[ec2.IPeer, ec2.Port, str | None], ...] = ()

    def after_create(self, scope: Construct, handle: ec2.SecurityGroup) -> None:
        for peer, port, description in self.ingress_rules:
            handle.add_ingress_rule(resolve(peer), port, description)
        for peer, port, description in self.egress_rules:
            handle.add_egress_rule(resolve(peer), port, description)


class SecurityGroupBuilder(Builder[SecurityGroupConfig, SecurityGroupSpec]):
    """Security group that denies all outbound traffic unless told otherwise."""

    kind = "SecurityGroup"
    config_type = SecurityGroupConfig
    defaults = MappingProxyType({"allow_all_outbound": False})

    def vpc(self, vpc: Any) -> SecurityGroupBuilder:
        """An ``ec2.IVpc`` or a VPC descriptor."""
        return self._replace(vpc=vpc)

    def description(self, description: str) -> SecurityGroupBuilder:
        return self._replace(description=description)

    def allow_all_outbound(self, enabled: bool = True) -> SecurityGroupBuilder:
        return self._replace(allow_all_outbound=enabled)

    def disable_inline_rules(self, disabled: bool = True) -> SecurityGroupBuilder:
        return self._replace(disable_inline_rules=disabled)

    def ingress(self, peer: ec2.IPeer, port: ec2.Port, description: str | None = None) -> SecurityGroupBuilder:
        return self._append("ingress_rules", [(peer, port, description)])

    def egress(self, peer: ec2.IPeer, port: ec2.Port, description: str | None = None) -> SecurityGroupBuilder:
        return self._append("egress_rules", [(peer, port, description)])

    def finalize(self) -> SecurityGroupSpec:
        config = self.config
        return self.spec(SecurityGroupSpec, {
            "security_group_name": self.name,
            "vpc": self.require("vpc", "VPC"),
            "description": config.description,
            "allow_all_outbound": self.value("allow_all_outbound"),
            "disable_inline_rules": config.disable_inline_rules,
        }, ingress_rules=config.ingress_rules, egress_rules=config.egress_rules)


def security_group(name: str) -> SecurityGroupBuilder:
    return SecurityGroupBuilder(name)


# === Route tables and routes ===

@dataclass(frozen=True)
class RouteTableConfig(BaseConfig):
    vpc: Any = None


class RouteTableSpec(ResourceSpec[ec2.CfnRouteTable]):
    kind = "RouteTable"
    construct_type = ec2.CfnRouteTable

    def create(self, scope: Construct, props: dict[str, Any]) -> ec2.CfnRouteTable:
        vpc_handle = props.pop("vpc")
        vpc_id = vpc_handle if isinstance(vpc_handle, str) else vpc_handle.vpc_id
        return ec2.CfnRouteTable(scope, self.construct_id, vpc_id=vpc_id, **props)


class RouteTableBuilder(Builder[RouteTableConfig, RouteTableSpec]):
    kind = "RouteTable"
    config_type = RouteTableConfig

    def vpc(self, vpc: Any) -> RouteTableBuilder:
        """A VPC id, an ``ec2.IVpc`` or a VPC descriptor."""
        return self._replace(vpc=vpc)

    def finalize(self) -> RouteTableSpec:
        return self.spec(RouteTableSpec, {"vpc": self.require("vpc", "VPC")})


def route_table(name: str) -> RouteTableBuilder:
    return RouteTableBuilder(name)


ROUTE_TARGETS = (
    "gateway_id",
    "nat_gateway_id",
    "transit_gateway_id",
    "vpc_peering_connection_id",
    "network_interface_id",
    "egress_only_internet_gateway_id",
    "vpc_endpoint_id",
)


@dataclass(frozen=True)
class RouteConfig(BaseConfig):
    route_table: Any = None
    destination_cidr_block: str | None = None
    destination_ipv6_cidr_block: str | None = None
    target_type: str | None = None
    target_id: str | None = None


class RouteSpec(ResourceSpec[ec2.CfnRoute]):
    kind = "Route"
    construct_type = ec2.CfnRoute

    def create(self, scope: Construct, props: dict[str, Any]) -> ec2.CfnRoute:
        table_handle = props.pop("route_table")
        route_table_id = table_handle if isinstance(table_handle, str) else table_handle.ref
        return ec2.CfnRoute(scope, self.construct_id, route_table_id=route_table_id, **props)


class RouteBuilder(Builder[RouteConfig, RouteSpec]):
    kind = "Route"
    config_type = RouteConfig

    def route_table(self, route_table: Any) -> RouteBuilder:
        """A route table id, a ``CfnRouteTable`` or a route table descriptor."""
        return self._replace(route_table=route_table)

    def destination_cidr_block(self, cidr: str) -> RouteBuilder:
        return self._replace(destination_cidr_block=cidr)

    def destination_ipv6_cidr_block(self, cidr: str) -> RouteBuilder:
        return self._replace(destination_ipv6_cidr_block=cidr)

    def target(self, target_type: str, target_id: str) -> RouteBuilder:
        return self._replace(target_type=target_type, target_id=target_id)

    def gateway(self, gateway_id: str) -> RouteBuilder:
        return self.target("gateway_id", gateway_id)

    def nat_gateway(self, nat_gateway_id: str) -> RouteBuilder:
        return self.target("nat_gateway_id", nat_gateway_id)

    def transit_gateway(self, transit_gateway_id: str) -> RouteBuilder:
        return self.target("transit_gateway_id", transit_gateway_id)

    def vpc_peering_connection(self, connection_id: str) -> RouteBuilder:
        return self.target("vpc_peering_connection_id", connection_id)

    def finalize(self) -> RouteSpec:
        config = self.config
        route_table_ref = self.require("route_table", "route table")
        if config.destination_cidr_block is None and config.destination_ipv6_cidr_block is None:
            raise MissingPropertyError(
                self.kind, self.name, "destination_cidr_block or destination_ipv6_cidr_block",
            )
        if config.target_type is None:
            raise MissingPropertyError(self.kind, self.name, "target")
        if config.target_type not in ROUTE_TARGETS:
            raise self.unsafe("target", f"unknown target type {config.target_type!r}; expected one of {ROUTE_TARGETS}")

        return self.spec(RouteSpec, {
            "route_table": route_table_ref,
            "destination_cidr_block": config.destination_cidr_block,
            "destination_ipv6_cidr_block": config.destination_ipv6_cidr_block,
            config.target_type: config.target_id,
        })


def route(name: str) -> RouteBuilder:
    return RouteBuilder(name)
