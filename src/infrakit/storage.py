"""S3 buckets with secure defaults, plus CORS, lifecycle and bucket policy helpers."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import Duration, RemovalPolicy
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3 as s3
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, built, compact, resolve
from infrakit.security import PolicyStatementBuilder, statements_of

_KMS_ENCRYPTIONS = (s3.BucketEncryption.KMS, s3.BucketEncryption.DSSE)


# === CORS rules ===

@dataclass(frozen=True)
class CorsRuleConfig(BaseConfig):
    allowed_methods: tuple[s3.HttpMethods, ...] = ()
    allowed_origins: tuple[str, ...] = ()
    allowed_headers: tuple[str, ...] = ()
    exposed_headers: tuple[str, ...] = ()
    max_age: int | None = None


class CorsRuleBuilder(Builder[CorsRuleConfig, s3.CorsRule]):
    kind = "CorsRule"
    config_type = CorsRuleConfig

    def allowed_methods(self, *methods: s3.HttpMethods) -> CorsRuleBuilder:
        return self._append("allowed_methods", methods)

    def allowed_origins(self, *origins: str) -> CorsRuleBuilder:
        return self._append("allowed_origins", origins)

    def allowed_headers(self, *headers: str) -> CorsRuleBuilder:
        return self._append("allowed_headers", headers)

    def exposed_headers(self, *headers: str) -> CorsRuleBuilder:
        return self._append("exposed_headers", headers)

    def max_age(self, seconds: int) -> CorsRuleBuilder:
        return self._replace(max_age=seconds)

    def finalize(self) -> s3.CorsRule:
        config = self.config
        methods = self.require("allowed_methods")
        origins = self.require("allowed_origins")
        return s3.CorsRule(**compact({
            "id": config.construct_id,
            "allowed_methods": list(methods),
            "allowed_origins": list(origins),
            "allowed_headers": list(config.allowed_headers) or None,
            "exposed_headers": list(config.exposed_headers) or None,
            "max_age": config.max_age,
        }))


def cors_rule(rule_id: str | None = None) -> CorsRuleBuilder:
    builder = CorsRuleBuilder("CorsRule")
    return builder.construct_id(rule_id) if rule_id else builder


# === Lifecycle rules ===

@dataclass(frozen=True)
class LifecycleRuleConfig(BaseConfig):
    enabled: bool | None = None
    prefix: str | None = None
    expiration: Duration | None = None
    transitions: tuple[s3.Transition, ...] = ()
    noncurrent_version_expiration: Duration | None = None
    noncurrent_version_transitions: tuple[s3.NoncurrentVersionTransition, ...] = ()
    abort_incomplete_multipart_upload_after: Duration | None = None
    expired_object_delete_marker: bool | None = None
    tag_filters: tuple[tuple[str, str], ...] = ()


class LifecycleRuleBuilder(Builder[LifecycleRuleConfig, s3.LifecycleRule]):
    kind = "LifecycleRule"
    config_type = LifecycleRuleConfig
    defaults = MappingProxyType({"enabled": True})

    def enabled(self, enabled: bool = True) -> LifecycleRuleBuilder:
        return self._replace(enabled=enabled)

    def prefix(self, prefix: str) -> LifecycleRuleBuilder:
        return self._replace(prefix=prefix)

    def expiration(self, after: Duration) -> LifecycleRuleBuilder:
        return self._replace(expiration=after)

    def transition(self, storage_class: s3.StorageClass, after: Duration) -> LifecycleRuleBuilder:
        return self._append("transitions", [
            s3.Transition(storage_class=storage_class, transition_after=after),
        ])

    def noncurrent_version_expiration(self, after: Duration) -> LifecycleRuleBuilder:
        return self._replace(noncurrent_version_expiration=after)

    def noncurrent_version_transition(self, storage_class: s3.StorageClass, after: Duration) -> LifecycleRuleBuilder:
        return self._append("noncurrent_version_transitions", [
            s3.NoncurrentVersionTransition(storage_class=storage_class, transition_after=after),
        ])

    def abort_incomplete_multipart_upload_after(self, after: Duration) -> LifecycleRuleBuilder:
        return self._replace(abort_incomplete_multipart_upload_after=after)

    def expired_object_delete_marker(self, enabled: bool = True) -> LifecycleRuleBuilder:
        return self._replace(expired_object_delete_marker=enabled)

    def tag_filter(self, key: str, value: str) -> LifecycleRuleBuilder:
        return self._append("tag_filters", [(key, value)])

    def finalize(self) -> s3.LifecycleRule:
        config = self.config
        return s3.LifecycleRule(**compact({
            "id": config.construct_id,
            "enabled": self.value("enabled"),
            "prefix": config.prefix,
            "expiration": config.expiration,
            "transitions": list(config.transitions) or None,
            "noncurrent_version_expiration": config.noncurrent_version_expiration,
            "noncurrent_version_transitions": list(config.noncurrent_version_transitions) or None,
            "abort_incomplete_multipart_upload_after": config.abort_incomplete_multipart_upload_after,
            "expired_object_delete_marker": config.expired_object_delete_marker,
            "tag_filters": dict(config.tag_filters) or None,
        }))


def lifecycle_rule(rule_id: str | None = None) -> LifecycleRuleBuilder:
    builder = LifecycleRuleBuilder("LifecycleRule")
    return builder.construct_id(rule_id) if rule_id else builder


def transition_to_glacier(days: int, rule_id: str = "TransitionToGlacier") -> LifecycleRuleBuilder:
    return lifecycle_rule(rule_id).transition(s3.StorageClass.GLACIER, Duration.days(days))


def expire_after(days: int, rule_id: str = "ExpireObjects") -> LifecycleRuleBuilder:
    return lifecycle_rule(rule_id).expiration(Duration.days(days))


def delete_noncurrent_versions(days: int, rule_id: str = "DeleteNoncurrentVersions") -> LifecycleRuleBuilder:
    return lifecycle_rule(rule_id).noncurrent_version_expiration(Duration.days(days))


# === Buckets ===

@dataclass(frozen=True)
class BucketConfig(BaseConfig):
    block_public_access: s3.BlockPublicAccess | None = None
    encryption: s3.BucketEncryption | None = None
    encryption_key: Any = None
    enforce_ssl: bool | None = None
    versioned: bool | None = None
    removal_policy: RemovalPolicy | None = None
    auto_delete_objects: bool | None = None
    server_access_logs_bucket: Any = None
    server_access_logs_prefix: str | None = None
    website_index_document: str | None = None
    website_error_document: str | None = None
    event_bridge_enabled: bool | None = None
    lifecycle_rules: tuple[s3.LifecycleRule | LifecycleRuleBuilder, ...] = ()
    cors: tuple[s3.CorsRule | CorsRuleBuilder, ...] = ()
    metrics: tuple[s3.BucketMetrics, ...] = ()
    grants: tuple[tuple[str, Any, tuple[Any, ...]], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class BucketSpec(ResourceSpec[s3.Bucket]):
    kind = "Bucket"
    construct_type = s3.Bucket

    grants: tuple[tuple[str, Any, tuple[Any, ...]], ...] = ()

    def after_create(self, scope: Construct, handle: s3.Bucket) -> None:
        for method, grantee, args in self.grants:
            getattr(handle, method)(resolve(grantee), *args)


class BucketBuilder(Builder[BucketConfig, BucketSpec]):
    """S3 bucket that blocks public access, encrypts at rest and requires TLS.

    Versioning is off unless requested. Supplying a customer key switches
    encryption to KMS.
    """

    kind = "Bucket"
    config_type = BucketConfig
    defaults = MappingProxyType({
        "block_public_access": s3.BlockPublicAccess.BLOCK_ALL,
        "encryption": s3.BucketEncryption.KMS_MANAGED,
        "enforce_ssl": True,
        "versioned": False,
    })

    def block_public_access(self, setting: s3.BlockPublicAccess) -> BucketBuilder:
        return self._replace(block_public_access=setting)

    def encryption(self, encryption: s3.BucketEncryption) -> BucketBuilder:
        return self._replace(encryption=encryption)

    def encryption_key(self, key: Any) -> BucketBuilder:
        """A ``kms.IKey`` or a KMS key descriptor."""
        return self._replace(encryption_key=key)

    def enforce_ssl(self, enabled: bool = True) -> BucketBuilder:
        return self._replace(enforce_ssl=enabled)

    def versioned(self, enabled: bool = True) -> BucketBuilder:
        return self._replace(versioned=enabled)

    def removal_policy(self, policy: RemovalPolicy) -> BucketBuilder:
        return self._replace(removal_policy=policy)

    def auto_delete_objects(self, enabled: bool = True) -> BucketBuilder:
        return self._replace(auto_delete_objects=enabled)

    def server_access_logs(self, bucket: Any, prefix: str | None = None) -> BucketBuilder:
        return self._replace(server_access_logs_bucket=bucket, server_access_logs_prefix=prefix)

    def website(self, index_document: str, error_document: str | None = None) -> BucketBuilder:
        return self._replace(website_index_document=index_document, website_error_document=error_document)

    def event_bridge_enabled(self, enabled: bool = True) -> BucketBuilder:
        return self._replace(event_bridge_enabled=enabled)

    def lifecycle_rules(self, *rules: s3.LifecycleRule | LifecycleRuleBuilder) -> BucketBuilder:
        return self._append("lifecycle_rules", rules)

    def cors(self, *rules: s3.CorsRule | CorsRuleBuilder) -> BucketBuilder:
        return self._append("cors", rules)

    def metrics(self, metric_id: str, prefix: str | None = None) -> BucketBuilder:
        return self._append("metrics", [s3.BucketMetrics(**compact({"id": metric_id, "prefix": prefix}))])

    def grant_read(self, grantee: Any, objects_key_pattern: str = "*") -> BucketBuilder:
        return self._append("grants", [("grant_read", grantee, (objects_key_pattern,))])

    def grant_write(self, grantee: Any, objects_key_pattern: str = "*") -> BucketBuilder:
        return self._append("grants", [("grant_write", grantee, (objects_key_pattern,))])

    def grant_read_write(self, grantee: Any, objects_key_pattern: str = "*") -> BucketBuilder:
        return self._append("grants", [("grant_read_write", grantee, (objects_key_pattern,))])

    def grant_put(self, grantee: Any, objects_key_pattern: str = "*") -> BucketBuilder:
        return self._append("grants", [("grant_put", grantee, (objects_key_pattern,))])

    def grant_delete(self, grantee: Any, objects_key_pattern: str = "*") -> BucketBuilder:
        return self._append("grants", [("grant_delete", grantee, (objects_key_pattern,))])

    def finalize(self) -> BucketSpec:
        config = self.config
        encryption = self.value("encryption")
        if config.encryption_key is not None:
            if config.encryption is None:
                encryption = s3.BucketEncryption.KMS
            elif config.encryption not in _KMS_ENCRYPTIONS:
                raise self.unsafe("encryption_key", "a customer key requires KMS or DSSE encryption")
        if config.auto_delete_objects and config.removal_policy != RemovalPolicy.DESTROY:
            raise self.unsafe("auto_delete_objects", "requires removal_policy DESTROY")

        return self.spec(BucketSpec, {
            "bucket_name": self.name,
            "block_public_access": self.value("block_public_access"),
            "encryption": encryption,
            "encryption_key": config.encryption_key,
            "enforce_ssl": self.value("enforce_ssl"),
            "versioned": self.value("versioned"),
            "removal_policy": config.removal_policy,
            "auto_delete_objects": config.auto_delete_objects,
            "server_access_logs_bucket": config.server_access_logs_bucket,
            "server_access_logs_prefix": config.server_access_logs_prefix,
            "website_index_document": config.website_index_document,
            "website_error_document": config.website_error_document,
            "event_bridge_enabled": config.event_bridge_enabled,
            "lifecycle_rules": [built(rule) for rule in config.lifecycle_rules] or None,
            "cors": [built(rule) for rule in config.cors] or None,
            "metrics": list(config.metrics) or None,
        }, grants=config.grants)


def bucket(name: str) -> BucketBuilder:
    return BucketBuilder(name)


# === Bucket policies ===

@dataclass(frozen=True)
class BucketPolicyConfig(BaseConfig):
    bucket: Any = None
    statements: tuple[iam.PolicyStatement | PolicyStatementBuilder, ...] = ()
    removal_policy: RemovalPolicy | None = None


@dataclass(frozen=True, kw_only=True, eq=False)
class BucketPolicySpec(ResourceSpec[s3.BucketPolicy]):
    kind = "BucketPolicy"
    construct_type = s3.BucketPolicy

    statements: tuple[iam.PolicyStatement | PolicyStatementBuilder, ...] = ()

    def after_create(self, scope: Construct, handle: s3.BucketPolicy) -> None:
        if self.statements:
            handle.document.add_statements(*statements_of(self.statements))


class BucketPolicyBuilder(Builder[BucketPolicyConfig, BucketPolicySpec]):
    kind = "BucketPolicy"
    config_type = BucketPolicyConfig

    def bucket(self, bucket: Any) -> BucketPolicyBuilder:
        return self._replace(bucket=bucket)

    def statements(self, *statements: iam.PolicyStatement | PolicyStatementBuilder) -> BucketPolicyBuilder:
        return self._append("statements", statements)

    def removal_policy(self, policy: RemovalPolicy) -> BucketPolicyBuilder:
        return self._replace(removal_policy=policy)

    def finalize(self) -> BucketPolicySpec:
        return self.spec(BucketPolicySpec, {
            "bucket": self.require("bucket"),
            "removal_policy": self.config.removal_policy,
        }, statements=self.config.statements)


def bucket_policy(name: str) -> BucketPolicyBuilder:
    return BucketPolicyBuilder(name)
