"""Deployment environment from the process environment or a ``.env`` file."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from aws_cdk import Environment
from dotenv import load_dotenv

from infrakit.core import BaseConfig, Builder

logger = logging.getLogger(__name__)


def load_environment(dotenv_path: str = ".env") -> Environment:
    """Read the target account and region.

    ``AWS_ACCOUNT_ID`` and ``AWS_REGION`` take precedence over the
    ``CDK_DEFAULT_*`` variables set by the CDK CLI. Missing values stay unset,
    which leaves stacks environment-agnostic.
    """
    load_dotenv(dotenv_path)
    account = os.environ.get("AWS_ACCOUNT_ID") or os.environ.get("CDK_DEFAULT_ACCOUNT")
    region = os.environ.get("AWS_REGION") or os.environ.get("CDK_DEFAULT_REGION")
    if account is None or region is None:
        logger.info("No complete account/region configured; synthesizing environment-agnostic stacks")
    return Environment(account=account, region=region)


@dataclass(frozen=True)
class EnvironmentConfig(BaseConfig):
    account: str | None = None
    region: str | None = None


class EnvironmentBuilder(Builder[EnvironmentConfig, Environment]):
    kind = "Environment"
    config_type = EnvironmentConfig

    def __init__(self, name: str = "Environment", config: EnvironmentConfig | None = None) -> None:
        super().__init__(name, config)

    def account(self, account: str) -> EnvironmentBuilder:
        return self._replace(account=account)

    def region(self, region: str) -> EnvironmentBuilder:
        return self._replace(region=region)

    def finalize(self) -> Environment:
        return Environment(account=self.config.account, region=self.config.region)


def environment() -> EnvironmentBuilder:
    return EnvironmentBuilder()
