"""Tagging helpers applied to any construct scope."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from aws_cdk import Tags
from constructs import IConstruct

logger = logging.getLogger(__name__)

MANAGED_BY = "infrakit"


@dataclass(frozen=True)
class StandardTags:
    project: str
    environment: str
    owner: str | None = None
    cost_center: str | None = None

    def as_dict(self, created_by: str | None = None) -> dict[str, str]:
        tags = {
            "Project": self.project,
            "Environment": self.environment,
            "Owner": self.owner,
            "CostCenter": self.cost_center,
            "ManagedBy": MANAGED_BY,
            "CreatedBy": created_by or MANAGED_BY,
        }
        return {key: value for key, value in tags.items() if value is not None}


def apply_standard_tags(scope: IConstruct, tags: StandardTags, created_by: str | None = None) -> None:
    apply_tags(scope, tags.as_dict(created_by))


def apply_tags(scope: IConstruct, tags: Mapping[str, str]) -> None:
    """Tag ``scope`` and everything beneath it."""
    for key, value in tags.items():
        logger.debug("Tagging %s with %s=%s", scope.node.path, key, value)
        Tags.of(scope).add(key, value)


def remove_tags(scope: IConstruct, keys: Iterable[str]) -> None:
    for key in keys:
        Tags.of(scope).remove(key)
