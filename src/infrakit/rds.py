"""RDS database instances."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import Duration, RemovalPolicy
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_rds as rds
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve

logger = logging.getLogger(__name__)


def postgres_engine(version: rds.PostgresEngineVersion = rds.PostgresEngineVersion.VER_15) -> rds.IInstanceEngine:
    return rds.DatabaseInstanceEngine.postgres(version=version)


def mysql_engine(version: rds.MysqlEngineVersion = rds.MysqlEngineVersion.VER_8_0) -> rds.IInstanceEngine:
    return rds.DatabaseInstanceEngine.mysql(version=version)


@dataclass(frozen=True)
class DatabaseInstanceConfig(BaseConfig):
    engine: rds.IInstanceEngine | None = None
    instance_type: ec2.InstanceType | None = None
    vpc: Any = None
    vpc_subnets: ec2.SubnetSelection | None = None
    security_groups: tuple[Any, ...] = ()
    allocated_storage: int | None = None
    max_allocated_storage: int | None = None
    storage_type: rds.StorageType | None = None
    storage_encrypted: bool | None = None
    storage_encryption_key: Any = None
    backup_retention: Duration | None = None
    delete_automated_backups: bool | None = None
    removal_policy: RemovalPolicy | None = None
    deletion_protection: bool | None = None
    multi_az: bool | None = None
    publicly_accessible: bool | None = None
    parameter_group: rds.IParameterGroup | None = None
    database_name: str | None = None
    master_username: str | None = None
    credentials: rds.Credentials | None = None
    preferred_backup_window: str | None = None
    preferred_maintenance_window: str | None = None
    monitoring_interval: Duration | None = None
    enable_performance_insights: bool | None = None
    performance_insight_retention: rds.PerformanceInsightRetention | None = None
    auto_minor_version_upgrade: bool | None = None
    iam_authentication: bool | None = None
    cloudwatch_logs_exports: tuple[str, ...] = ()
    connect_grants: tuple[tuple[Any, str | None], ...] = ()
    allowed_peers: tuple[ec2.IPeer, ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class DatabaseInstanceSpec(ResourceSpec[rds.DatabaseInstance]):
    kind = "DatabaseInstance"
    construct_type = rds.DatabaseInstance

    connect_grants: tuple[tuple[Any, str | None], ...] = ()
    allowed_peers: tuple[ec2.IPeer, ...] = ()

    def after_create(self, scope: Construct, handle: rds.DatabaseInstance) -> None:
        for grantee, db_user in self.connect_grants:
            handle.grant_connect(resolve(grantee), db_user)
        for peer in self.allowed_peers:
            handle.connections.allow_default_port_from(resolve(peer))


class DatabaseInstanceBuilder(Builder[DatabaseInstanceConfig, DatabaseInstanceSpec]):
    """Private, encrypted RDS instance with IAM authentication.

    Defaults to a ``t3.micro`` in a single AZ, keeps automated backups for a
    week and turns deletion protection on. Engine and VPC are required.
    """

    kind = "DatabaseInstance"
    config_type = DatabaseInstanceConfig
    defaults = MappingProxyType({
        "instance_type": ec2.InstanceType.of(ec2.InstanceClass.BURSTABLE3, ec2.InstanceSize.MICRO),
        "backup_retention": Duration.days(7),
        "delete_automated_backups": True,
        "multi_az": False,
        "publicly_accessible": False,
        "storage_encrypted": True,
        "deletion_protection": True,
        "auto_minor_version_upgrade": True,
        "iam_authentication": True,
    })

    def engine(self, engine: rds.IInstanceEngine) -> DatabaseInstanceBuilder:
        return self._replace(engine=engine)

    def postgres(
        self, version: rds.PostgresEngineVersion = rds.PostgresEngineVersion.VER_15,
    ) -> DatabaseInstanceBuilder:
        return self.engine(postgres_engine(version))

    def instance_type(self, instance_type: ec2.InstanceType) -> DatabaseInstanceBuilder:
        return self._replace(instance_type=instance_type)

    def vpc(self, vpc: Any, subnets: ec2.SubnetSelection | None = None) -> DatabaseInstanceBuilder:
        """An ``ec2.IVpc`` or a VPC descriptor."""
        return self._replace(vpc=vpc, vpc_subnets=subnets)

    def security_groups(self, *groups: Any) -> DatabaseInstanceBuilder:
        return self._append("security_groups", groups)

    def allocated_storage(self, gigabytes: int) -> DatabaseInstanceBuilder:
        return self._replace(allocated_storage=gigabytes)

    def max_allocated_storage(self, gigabytes: int) -> DatabaseInstanceBuilder:
        return self._replace(max_allocated_storage=gigabytes)

    def storage_type(self, storage_type: rds.StorageType) -> DatabaseInstanceBuilder:
        return self._replace(storage_type=storage_type)

    def storage_encrypted(self, encrypted: bool = True) -> DatabaseInstanceBuilder:
        return self._replace(storage_encrypted=encrypted)

    def storage_encryption_key(self, key: Any) -> DatabaseInstanceBuilder:
        return self._replace(storage_encryption_key=key)

    def backup_retention_days(self, days: int) -> DatabaseInstanceBuilder:
        return self._replace(backup_retention=Duration.days(days))

    def delete_automated_backups(self, delete: bool = True) -> DatabaseInstanceBuilder:
        return self._replace(delete_automated_backups=delete)

    def removal_policy(self, policy: RemovalPolicy) -> DatabaseInstanceBuilder:
        return self._replace(removal_policy=policy)

    def deletion_protection(self, enabled: bool = True) -> DatabaseInstanceBuilder:
        return self._replace(deletion_protection=enabled)

    def multi_az(self, enabled: bool = True) -> DatabaseInstanceBuilder:
        return self._replace(multi_az=enabled)

    def publicly_accessible(self, accessible: bool = True) -> DatabaseInstanceBuilder:
        return self._replace(publicly_accessible=accessible)

    def parameter_group(self, group: rds.IParameterGroup) -> DatabaseInstanceBuilder:
        return self._replace(parameter_group=group)

    def database_name(self, name: str) -> DatabaseInstanceBuilder:
        return self._replace(database_name=name)

    def master_username(self, username: str) -> DatabaseInstanceBuilder:
        """Admin user whose password is generated into Secrets Manager."""
        return self._replace(master_username=username)

    def credentials(self, credentials: rds.Credentials) -> DatabaseInstanceBuilder:
        return self._replace(credentials=credentials)

    def preferred_backup_window(self, window: str) -> DatabaseInstanceBuilder:
        return self._replace(preferred_backup_window=window)

    def preferred_maintenance_window(self, window: str) -> DatabaseInstanceBuilder:
        return self._replace(preferred_maintenance_window=window)

    def monitoring_interval(self, interval: Duration) -> DatabaseInstanceBuilder:
        return self._replace(monitoring_interval=interval)

    def performance_insights(
        self,
        enabled: bool = True,
        retention: rds.PerformanceInsightRetention | None = None,
    ) -> DatabaseInstanceBuilder:
        return self._replace(enable_performance_insights=enabled, performance_insight_retention=retention)

    def auto_minor_version_upgrade(self, enabled: bool = True) -> DatabaseInstanceBuilder:
        return self._replace(auto_minor_version_upgrade=enabled)

    def iam_authentication(self, enabled: bool = True) -> DatabaseInstanceBuilder:
        return self._replace(iam_authentication=enabled)

    def cloudwatch_logs_exports(self, *log_types: str) -> DatabaseInstanceBuilder:
        return self._append("cloudwatch_logs_exports", log_types)

    def grant_connect(self, grantee: Any, db_user: str | None = None) -> DatabaseInstanceBuilder:
        return self._append("connect_grants", [(grantee, db_user)])

    def allow_from(self, *peers: ec2.IPeer) -> DatabaseInstanceBuilder:
        """Open the engine's default port to ``peers``."""
        return self._append("allowed_peers", peers)

    def finalize(self) -> DatabaseInstanceSpec:
        config = self.config
        vpc = self.require("vpc", "VPC")
        engine = self.require("engine")

        encrypted = self.value("storage_encrypted")
        if config.storage_encryption_key is not None and not encrypted:
            raise self.unsafe("storage_encryption_key", "a customer key requires storage_encrypted")
        if config.credentials is not None and config.master_username is not None:
            raise self.unsafe("credentials", "set either credentials or master_username, not both")
        if (
            config.allocated_storage is not None
            and config.max_allocated_storage is not None
            and config.max_allocated_storage < config.allocated_storage
        ):
            raise self.unsafe("max_allocated_storage", "must not be below allocated_storage")
        if config.performance_insight_retention is not None and config.enable_performance_insights is False:
            raise self.unsafe("performance_insight_retention", "requires performance insights")
        if self.value("publicly_accessible"):
            logger.warning("Database instance %s is publicly accessible", self.name)

        credentials = config.credentials
        if config.master_username is not None:
            credentials = rds.Credentials.from_generated_secret(config.master_username)

        return self.spec(DatabaseInstanceSpec, {
            "instance_identifier": self.name,
            "engine": engine,
            "instance_type": self.value("instance_type"),
            "vpc": vpc,
            "vpc_subnets": config.vpc_subnets,
            "security_groups": list(config.security_groups) or None,
            "allocated_storage": config.allocated_storage,
            "max_allocated_storage": config.max_allocated_storage,
            "storage_type": config.storage_type,
            "storage_encrypted": encrypted,
            "storage_encryption_key": config.storage_encryption_key,
            "backup_retention": self.value("backup_retention"),
            "delete_automated_backups": self.value("delete_automated_backups"),
            "removal_policy": config.removal_policy,
            "deletion_protection": self.value("deletion_protection"),
            "multi_az": self.value("multi_az"),
            "publicly_accessible": self.value("publicly_accessible"),
            "parameter_group": config.parameter_group,
            "database_name": config.database_name,
            "credentials": credentials,
            "preferred_backup_window": config.preferred_backup_window,
            "preferred_maintenance_window": config.preferred_maintenance_window,
            "monitoring_interval": config.monitoring_interval,
            "enable_performance_insights": config.enable_performance_insights,
            "performance_insight_retention": config.performance_insight_retention,
            "auto_minor_version_upgrade": self.value("auto_minor_version_upgrade"),
            "iam_authentication": self.value("iam_authentication"),
            "cloudwatch_logs_exports": list(config.cloudwatch_logs_exports) or None,
        }, connect_grants=config.connect_grants, allowed_peers=config.allowed_peers)


def database_instance(name: str) -> DatabaseInstanceBuilder:
    return DatabaseInstanceBuilder(name)
