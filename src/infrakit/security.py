"""IAM policy statements, managed policies, KMS keys and secrets."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import RemovalPolicy
from aws_cdk import aws_iam as iam
from aws_cdk import aws_kms as kms
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve

logger = logging.getLogger(__name__)

WILDCARD = "*"


# === Policy statements ===

@dataclass(frozen=True)
class PolicyStatementConfig(BaseConfig):
    actions: tuple[str, ...] = ()
    resources: tuple[Any, ...] = ()
    principals: tuple[iam.IPrincipal, ...] = ()
    effect: iam.Effect | None = None
    sid: str | None = None
    conditions: tuple[tuple[str, Any], ...] = ()


class PolicyStatementBuilder(Builder[PolicyStatementConfig, iam.PolicyStatement]):
    """Builds an ``iam.PolicyStatement`` and refuses full-wildcard grants.

    A statement whose actions and resources are both ``"*"`` is rejected. A
    wildcard on only one side is allowed but logged as a warning.
    """

    kind = "PolicyStatement"
    config_type = PolicyStatementConfig
    defaults = MappingProxyType({"effect": iam.Effect.ALLOW})

    def __init__(self, name: str = "PolicyStatement", config: PolicyStatementConfig | None = None) -> None:
        super().__init__(name, config)

    def actions(self, *actions: str) -> PolicyStatementBuilder:
        return self._append("actions", actions)

    def resources(self, *resources: Any) -> PolicyStatementBuilder:
        """Resource ARNs; descriptors resolve to their ``*_arn`` attribute at build time."""
        return self._append("resources", resources)

    def principals(self, *principals: iam.IPrincipal) -> PolicyStatementBuilder:
        return self._append("principals", principals)

    def effect(self, effect: iam.Effect) -> PolicyStatementBuilder:
        return self._replace(effect=effect)

    def deny(self) -> PolicyStatementBuilder:
        return self._replace(effect=iam.Effect.DENY)

    def sid(self, sid: str) -> PolicyStatementBuilder:
        return self._replace(sid=sid)

    def condition(self, operator: str, value: Any) -> PolicyStatementBuilder:
        return self._append("conditions", [(operator, value)])

    def build(self) -> iam.PolicyStatement:
        return self.finalize()

    def finalize(self) -> iam.PolicyStatement:
        config = self.config
        label = config.sid or self.name
        wildcard_actions = WILDCARD in config.actions
        wildcard_resources = WILDCARD in config.resources

        if wildcard_actions and wildcard_resources:
            raise self.unsafe(
                "actions/resources",
                "wildcard actions on wildcard resources grant full account access",
            )
        if wildcard_actions:
            logger.warning("Policy statement %s allows all actions ('*')", label)
        if wildcard_resources:
            logger.warning("Policy statement %s applies to all resources ('*')", label)

        props: dict[str, Any] = {
            "actions": list(config.actions),
            "resources": [arn_of(resource) for resource in config.resources],
            "effect": self.value("effect"),
        }
        if config.principals:
            props["principals"] = list(config.principals)
        if config.sid:
            props["sid"] = config.sid
        if config.conditions:
            props["conditions"] = dict(config.conditions)
        return iam.PolicyStatement(**props)


def arn_of(resource: Any) -> str:
    handle = resolve(resource)
    if isinstance(handle, str):
        return handle
    for attribute in ("bucket_arn", "table_arn", "queue_arn", "topic_arn", "stream_arn",
                      "function_arn", "state_machine_arn", "key_arn", "secret_arn"):
        arn = getattr(handle, attribute, None)
        if arn is not None:
            return arn
    raise TypeError(f"cannot derive an ARN from {handle!r}")


def policy_statement(sid: str | None = None) -> PolicyStatementBuilder:
    builder = PolicyStatementBuilder()
    return builder.sid(sid) if sid else builder


# === Managed policies ===

@dataclass(frozen=True)
class ManagedPolicyConfig(BaseConfig):
    description: str | None = None
    path: str | None = None
    statements: tuple[iam.PolicyStatement | PolicyStatementBuilder, ...] = ()
    roles: tuple[Any, ...] = ()
    groups: tuple[iam.IGroup, ...] = ()
    users: tuple[iam.IUser, ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class ManagedPolicySpec(ResourceSpec[iam.ManagedPolicy]):
    kind = "ManagedPolicy"
    construct_type = iam.ManagedPolicy

    statements: tuple[iam.PolicyStatement | PolicyStatementBuilder, ...] = ()

    def after_create(self, scope: Construct, handle: iam.ManagedPolicy) -> None:
        if self.statements:
            handle.add_statements(*statements_of(self.statements))


class ManagedPolicyBuilder(Builder[ManagedPolicyConfig, ManagedPolicySpec]):
    kind = "ManagedPolicy"
    config_type = ManagedPolicyConfig

    def description(self, description: str) -> ManagedPolicyBuilder:
        return self._replace(description=description)

    def path(self, path: str) -> ManagedPolicyBuilder:
        return self._replace(path=path)

    def statements(self, *statements: iam.PolicyStatement | PolicyStatementBuilder) -> ManagedPolicyBuilder:
        return self._append("statements", statements)

    def attach_to_roles(self, *roles: Any) -> ManagedPolicyBuilder:
        return self._append("roles", roles)

    def attach_to_groups(self, *groups: iam.IGroup) -> ManagedPolicyBuilder:
        return self._append("groups", groups)

    def attach_to_users(self, *users: iam.IUser) -> ManagedPolicyBuilder:
        return self._append("users", users)

    def finalize(self) -> ManagedPolicySpec:
        config = self.config
        return self.spec(ManagedPolicySpec, {
            "managed_policy_name": self.name,
            "description": config.description,
            "path": config.path,
            "roles": list(config.roles) or None,
            "groups": list(config.groups) or None,
            "users": list(config.users) or None,
        }, statements=config.statements)


def managed_policy(name: str) -> ManagedPolicyBuilder:
    return ManagedPolicyBuilder(name)


# === KMS keys ===

@dataclass(frozen=True)
class KmsKeyConfig(BaseConfig):
    description: str | None = None
    alias: str | None = None
    enable_key_rotation: bool | None = None
    removal_policy: RemovalPolicy | None = None
    enabled: bool | None = None
    key_spec: kms.KeySpec | None = None
    key_usage: kms.KeyUsage | None = None
    pending_window: Any = None
    policy: iam.PolicyDocument | None = None
    admins: tuple[iam.IPrincipal, ...] = ()


class KmsKeySpec(ResourceSpec[kms.Key]):
    kind = "KmsKey"
    construct_type = kms.Key


class KmsKeyBuilder(Builder[KmsKeyConfig, KmsKeySpec]):
    kind = "KmsKey"
    config_type = KmsKeyConfig
    defaults = MappingProxyType({
        "enable_key_rotation": True,
        "removal_policy": RemovalPolicy.RETAIN,
        "enabled": True,
        "key_spec": kms.KeySpec.SYMMETRIC_DEFAULT,
        "key_usage": kms.KeyUsage.ENCRYPT_DECRYPT,
    })

    def description(self, description: str) -> KmsKeyBuilder:
        return self._replace(description=description)

    def alias(self, alias: str) -> KmsKeyBuilder:
        return self._replace(alias=alias)

    def key_rotation(self, enabled: bool = True) -> KmsKeyBuilder:
        return self._replace(enable_key_rotation=enabled)

    def removal_policy(self, policy: RemovalPolicy) -> KmsKeyBuilder:
        return self._replace(removal_policy=policy)

    def enabled(self, enabled: bool = True) -> KmsKeyBuilder:
        return self._replace(enabled=enabled)

    def key_spec(self, spec: kms.KeySpec) -> KmsKeyBuilder:
        return self._replace(key_spec=spec)

    def key_usage(self, usage: kms.KeyUsage) -> KmsKeyBuilder:
        return self._replace(key_usage=usage)

    def pending_window(self, window: Any) -> KmsKeyBuilder:
        return self._replace(pending_window=window)

    def policy(self, policy: iam.PolicyDocument) -> KmsKeyBuilder:
        return self._replace(policy=policy)

    def admins(self, *principals: iam.IPrincipal) -> KmsKeyBuilder:
        return self._append("admins", principals)

    def finalize(self) -> KmsKeySpec:
        config = self.config
        key_spec = self.value("key_spec")
        rotation = self.value("enable_key_rotation")
        if key_spec != kms.KeySpec.SYMMETRIC_DEFAULT:
            # KMS only rotates symmetric encryption keys.
            if config.enable_key_rotation:
                raise self.unsafe("enable_key_rotation", "rotation requires a SYMMETRIC_DEFAULT key")
            rotation = None

        return self.spec(KmsKeySpec, {
            "description": config.description,
            "alias": config.alias,
            "enable_key_rotation": rotation,
            "removal_policy": self.value("removal_policy"),
            "enabled": self.value("enabled"),
            "key_spec": key_spec,
            "key_usage": self.value("key_usage"),
            "pending_window": config.pending_window,
            "policy": config.policy,
            "admins": list(config.admins) or None,
        })


def kms_key(name: str) -> KmsKeyBuilder:
    return KmsKeyBuilder(name)


# === Secrets ===

@dataclass(frozen=True)
class SecretConfig(BaseConfig):
    description: str | None = None
    encryption_key: Any = None
    removal_policy: RemovalPolicy | None = None
    secret_string_value: Any = None
    generate_secret_string: secretsmanager.SecretStringGenerator | None = None
    replica_regions: tuple[str, ...] = ()
    readers: tuple[Any, ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class SecretSpec(ResourceSpec[secretsmanager.Secret]):
    kind = "Secret"
    construct_type = secretsmanager.Secret

    readers: tuple[Any, ...] = ()

    def after_create(self, scope: Construct, handle: secretsmanager.Secret) -> None:
        for reader in self.readers:
            handle.grant_read(resolve(reader))


class SecretBuilder(Builder[SecretConfig, SecretSpec]):
    kind = "Secret"
    config_type = SecretConfig
    defaults = MappingProxyType({"removal_policy": RemovalPolicy.RETAIN})

    def description(self, description: str) -> SecretBuilder:
        return self._replace(description=description)

    def encryption_key(self, key: Any) -> SecretBuilder:
        return self._replace(encryption_key=key)

    def removal_policy(self, policy: RemovalPolicy) -> SecretBuilder:
        return self._replace(removal_policy=policy)

    def secret_string_value(self, value: Any) -> SecretBuilder:
        return self._replace(secret_string_value=value)

    def generate_secret_string(self, generator: secretsmanager.SecretStringGenerator) -> SecretBuilder:
        return self._replace(generate_secret_string=generator)

    def replica_regions(self, *regions: str) -> SecretBuilder:
        return self._append("replica_regions", regions)

    def grant_read(self, *grantees: Any) -> SecretBuilder:
        return self._append("readers", grantees)

    def finalize(self) -> SecretSpec:
        config = self.config
        if config.secret_string_value is not None and config.generate_secret_string is not None:
            raise self.unsafe(
                "secret_string_value",
                "an explicit value cannot be combined with generate_secret_string",
            )
        replicas = [secretsmanager.ReplicaRegion(region=r) for r in config.replica_regions]
        return self.spec(SecretSpec, {
            "secret_name": self.name,
            "description": config.description,
            "encryption_key": config.encryption_key,
            "removal_policy": self.value("removal_policy"),
            "secret_string_value": config.secret_string_value,
            "generate_secret_string": config.generate_secret_string,
            "replica_regions": replicas or None,
        }, readers=config.readers)


def secret(name: str) -> SecretBuilder:
    return SecretBuilder(name)


def statements_of(items: Iterable[iam.PolicyStatement | PolicyStatementBuilder]) -> list[iam.PolicyStatement]:
    return [s.build() if isinstance(s, PolicyStatementBuilder) else s for s in items]
