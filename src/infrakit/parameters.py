"""SSM Parameter Store string parameters."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import aws_ssm as ssm
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve


@dataclass(frozen=True)
class StringParameterConfig(BaseConfig):
    string_value: str | None = None
    description: str | None = None
    tier: ssm.ParameterTier | None = None
    allowed_pattern: str | None = None
    data_type: ssm.ParameterDataType | None = None
    simple_name: bool | None = None
    readers: tuple[Any, ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class StringParameterSpec(ResourceSpec[ssm.StringParameter]):
    kind = "StringParameter"
    construct_type = ssm.StringParameter

    readers: tuple[Any, ...] = ()

    def after_create(self, scope: Construct, handle: ssm.StringParameter) -> None:
        for reader in self.readers:
            handle.grant_read(resolve(reader))


class StringParameterBuilder(Builder[StringParameterConfig, StringParameterSpec]):
    kind = "StringParameter"
    config_type = StringParameterConfig
    defaults = MappingProxyType({"tier": ssm.ParameterTier.STANDARD})

    def string_value(self, value: str) -> StringParameterBuilder:
        return self._replace(string_value=value)

    def description(self, description: str) -> StringParameterBuilder:
        return self._replace(description=description)

    def tier(self, tier: ssm.ParameterTier) -> StringParameterBuilder:
        return self._replace(tier=tier)

    def allowed_pattern(self, pattern: str) -> StringParameterBuilder:
        return self._replace(allowed_pattern=pattern)

    def data_type(self, data_type: ssm.ParameterDataType) -> StringParameterBuilder:
        return self._replace(data_type=data_type)

    def simple_name(self, simple: bool = True) -> StringParameterBuilder:
        return self._replace(simple_name=simple)

    def grant_read(self, *grantees: Any) -> StringParameterBuilder:
        return self._append("readers", grantees)

    def finalize(self) -> StringParameterSpec:
        config = self.config
        return self.spec(StringParameterSpec, {
            "parameter_name": self.name,
            "string_value": self.require("string_value", "value"),
            "description": config.description,
            "tier": self.value("tier"),
            "allowed_pattern": config.allowed_pattern,
            "data_type": config.data_type,
            "simple_name": config.simple_name,
        }, readers=config.readers)


def string_parameter(name: str) -> StringParameterBuilder:
    return StringParameterBuilder(name)
