"""ACM certificates validated through DNS."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import aws_certificatemanager as acm
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec


@dataclass(frozen=True)
class CertificateConfig(BaseConfig):
    domain_name: str | None = None
    subject_alternative_names: tuple[str, ...] = ()
    validation: acm.CertificateValidation | None = None
    validation_zone: Any = None
    key_algorithm: acm.KeyAlgorithm | None = None
    certificate_name: str | None = None
    transparency_logging_enabled: bool | None = None


class CertificateSpec(ResourceSpec[acm.Certificate]):
    kind = "Certificate"
    construct_type = acm.Certificate

    def create(self, scope: Construct, props: dict[str, Any]) -> acm.Certificate:
        # The validation zone is only known once the hosted zone exists.
        zone = props.pop("validation_zone", None)
        if "validation" not in props:
            props["validation"] = acm.CertificateValidation.from_dns(zone)
        return acm.Certificate(scope, self.construct_id, **props)


class CertificateBuilder(Builder[CertificateConfig, CertificateSpec]):
    """Certificate for ``domain_name``, DNS-validated with an RSA 2048 key."""

    kind = "Certificate"
    config_type = CertificateConfig
    defaults = MappingProxyType({"key_algorithm": acm.KeyAlgorithm.RSA_2048})

    def domain_name(self, domain_name: str) -> CertificateBuilder:
        return self._replace(domain_name=domain_name)

    def subject_alternative_names(self, *names: str) -> CertificateBuilder:
        return self._append("subject_alternative_names", names)

    def validation(self, validation: acm.CertificateValidation) -> CertificateBuilder:
        return self._replace(validation=validation)

    def validate_in_zone(self, zone: Any) -> CertificateBuilder:
        """DNS validation with records written into ``zone`` (zone or zone descriptor)."""
        return self._replace(validation_zone=zone)

    def key_algorithm(self, algorithm: acm.KeyAlgorithm) -> CertificateBuilder:
        return self._replace(key_algorithm=algorithm)

    def certificate_name(self, certificate_name: str) -> CertificateBuilder:
        return self._replace(certificate_name=certificate_name)

    def transparency_logging(self, enabled: bool = True) -> CertificateBuilder:
        return self._replace(transparency_logging_enabled=enabled)

    def finalize(self) -> CertificateSpec:
        config = self.config
        if config.validation is not None and config.validation_zone is not None:
            raise self.unsafe("validation", "choose either an explicit validation or a validation zone")
        return self.spec(CertificateSpec, {
            "domain_name": self.require("domain_name", "domain name"),
            "subject_alternative_names": list(config.subject_alternative_names) or None,
            "validation": config.validation,
            "validation_zone": config.validation_zone,
            "key_algorithm": self.value("key_algorithm"),
            "certificate_name": config.certificate_name,
            "transparency_logging_enabled": config.transparency_logging_enabled,
        })


def certificate(name: str) -> CertificateBuilder:
    return CertificateBuilder(name)
