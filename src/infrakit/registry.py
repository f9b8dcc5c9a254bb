"""ECR repositories and image lifecycle rules."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import Duration, RemovalPolicy
from aws_cdk import aws_ecr as ecr
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve


def delete_untagged_after(days: int) -> ecr.LifecycleRule:
    return ecr.LifecycleRule(
        description=f"Delete untagged images after {days} days",
        tag_status=ecr.TagStatus.UNTAGGED,
        max_image_age=Duration.days(days),
    )


def keep_last_images(count: int) -> ecr.LifecycleRule:
    return ecr.LifecycleRule(
        description=f"Keep the last {count} images",
        tag_status=ecr.TagStatus.ANY,
        max_image_count=count,
    )


def delete_tagged_after(prefix: str, days: int) -> ecr.LifecycleRule:
    return ecr.LifecycleRule(
        description=f"Delete {prefix}* images after {days} days",
        tag_status=ecr.TagStatus.TAGGED,
        tag_prefix_list=[prefix],
        max_image_age=Duration.days(days),
    )


def _matches_any_tag(rule: ecr.LifecycleRule) -> bool:
    # Unset status means ANY unless a prefix list is given.
    if rule.tag_status is None:
        return not rule.tag_prefix_list
    return rule.tag_status == ecr.TagStatus.ANY


@dataclass(frozen=True)
class RepositoryConfig(BaseConfig):
    image_scan_on_push: bool | None = None
    image_tag_mutability: ecr.TagMutability | None = None
    removal_policy: RemovalPolicy | None = None
    empty_on_delete: bool | None = None
    encryption: ecr.RepositoryEncryption | None = None
    encryption_key: Any = None
    lifecycle_rules: tuple[ecr.LifecycleRule, ...] = ()
    grants: tuple[tuple[str, Any], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class RepositorySpec(ResourceSpec[ecr.Repository]):
    kind = "Repository"
    construct_type = ecr.Repository

    grants: tuple[tuple[str, Any], ...] = ()

    def after_create(self, scope: Construct, handle: ecr.Repository) -> None:
        for method, grantee in self.grants:
            getattr(handle, method)(resolve(grantee))


class RepositoryBuilder(Builder[RepositoryConfig, RepositorySpec]):
    """Image repository that scans on push and is retained on stack deletion."""

    kind = "Repository"
    config_type = RepositoryConfig
    defaults = MappingProxyType({
        "image_scan_on_push": True,
        "image_tag_mutability": ecr.TagMutability.MUTABLE,
        "removal_policy": RemovalPolicy.RETAIN,
        "empty_on_delete": False,
    })

    def image_scan_on_push(self, enabled: bool = True) -> RepositoryBuilder:
        return self._replace(image_scan_on_push=enabled)

    def image_tag_mutability(self, mutability: ecr.TagMutability) -> RepositoryBuilder:
        return self._replace(image_tag_mutability=mutability)

    def immutable_tags(self) -> RepositoryBuilder:
        return self.image_tag_mutability(ecr.TagMutability.IMMUTABLE)

    def removal_policy(self, policy: RemovalPolicy) -> RepositoryBuilder:
        return self._replace(removal_policy=policy)

    def empty_on_delete(self, enabled: bool = True) -> RepositoryBuilder:
        return self._replace(empty_on_delete=enabled)

    def encryption(self, encryption: ecr.RepositoryEncryption, key: Any = None) -> RepositoryBuilder:
        return self._replace(encryption=encryption, encryption_key=key)

    def encryption_key(self, key: Any) -> RepositoryBuilder:
        """Customer-managed key; implies KMS encryption."""
        return self._replace(encryption_key=key)

    def lifecycle_rules(self, *rules: ecr.LifecycleRule) -> RepositoryBuilder:
        return self._append("lifecycle_rules", rules)

    def grant_pull(self, grantee: Any) -> RepositoryBuilder:
        return self._append("grants", [("grant_pull", grantee)])

    def grant_pull_push(self, grantee: Any) -> RepositoryBuilder:
        return self._append("grants", [("grant_pull_push", grantee)])

    def finalize(self) -> RepositorySpec:
        config = self.config
        removal_policy = self.value("removal_policy")
        if self.value("empty_on_delete") and removal_policy != RemovalPolicy.DESTROY:
            raise self.unsafe("empty_on_delete", "emptying on delete requires RemovalPolicy.DESTROY")

        encryption = config.encryption
        if config.encryption_key is not None:
            if encryption is not None and encryption.value != ecr.RepositoryEncryption.KMS.value:
                raise self.unsafe("encryption_key", f"a customer key requires KMS encryption, not {encryption.value}")
            encryption = ecr.RepositoryEncryption.KMS

        any_rules = [rule for rule in config.lifecycle_rules if _matches_any_tag(rule)]
        if len(any_rules) > 1:
            raise self.unsafe("lifecycle_rules", "only one rule may match every tag status")

        return self.spec(RepositorySpec, {
            "repository_name": self.name,
            "image_scan_on_push": self.value("image_scan_on_push"),
            "image_tag_mutability": self.value("image_tag_mutability"),
            "removal_policy": removal_policy,
            "empty_on_delete": self.value("empty_on_delete"),
            "encryption": encryption,
            "encryption_key": config.encryption_key,
            "lifecycle_rules": list(config.lifecycle_rules) or None,
        }, grants=config.grants)


def repository(name: str) -> RepositoryBuilder:
    return RepositoryBuilder(name)
