"""CloudFront distributions."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, compact, resolve


@dataclass(frozen=True)
class Behavior:
    """Cache behavior whose origin may be a bucket descriptor until the stack is built."""

    origin: Any
    viewer_protocol_policy: cloudfront.ViewerProtocolPolicy = cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS
    cache_policy: cloudfront.ICachePolicy | None = None
    origin_request_policy: cloudfront.IOriginRequestPolicy | None = None
    allowed_methods: cloudfront.AllowedMethods | None = None
    compress: bool = True

    def to_options(self) -> cloudfront.BehaviorOptions:
        origin = resolve(self.origin)
        if hasattr(origin, "bucket_arn"):
            # Any IBucket, including imported ones.
            origin = origins.S3BucketOrigin.with_origin_access_control(origin)
        return cloudfront.BehaviorOptions(**compact({
            "origin": origin,
            "viewer_protocol_policy": self.viewer_protocol_policy,
            "cache_policy": self.cache_policy,
            "origin_request_policy": self.origin_request_policy,
            "allowed_methods": self.allowed_methods,
            "compress": self.compress,
        }))


def s3_behavior(bucket: Any, **overrides: Any) -> Behavior:
    """Behavior serving a private bucket through origin access control."""
    settings = {
        "cache_policy": cloudfront.CachePolicy.CACHING_OPTIMIZED,
        "origin_request_policy": cloudfront.OriginRequestPolicy.CORS_S3_ORIGIN,
        **overrides,
    }
    return Behavior(origin=bucket, **settings)


def http_behavior(domain_name: str, origin_path: str | None = None, **overrides: Any) -> Behavior:
    """Behavior in front of an HTTP(S) origin such as an API or load balancer."""
    settings = {
        "cache_policy": cloudfront.CachePolicy.CACHING_OPTIMIZED,
        "origin_request_policy": cloudfront.OriginRequestPolicy.ALL_VIEWER,
        **overrides,
    }
    origin = origins.HttpOrigin(domain_name, **compact({"origin_path": origin_path}))
    return Behavior(origin=origin, **settings)


@dataclass(frozen=True)
class DistributionConfig(BaseConfig):
    default_behavior: Behavior | cloudfront.BehaviorOptions | None = None
    additional_behaviors: tuple[tuple[str, Behavior | cloudfront.BehaviorOptions], ...] = ()
    domain_names: tuple[str, ...] = ()
    certificate: Any = None
    default_root_object: str | None = None
    comment: str | None = None
    enabled: bool | None = None
    http_version: cloudfront.HttpVersion | None = None
    minimum_protocol_version: cloudfront.SecurityPolicyProtocol | None = None
    price_class: cloudfront.PriceClass | None = None
    enable_ipv6: bool | None = None
    enable_logging: bool | None = None
    log_bucket: Any = None
    log_file_prefix: str | None = None
    log_includes_cookies: bool | None = None
    geo_restriction: cloudfront.GeoRestriction | None = None
    web_acl_id: str | None = None
    error_responses: tuple[cloudfront.ErrorResponse, ...] = ()


class DistributionSpec(ResourceSpec[cloudfront.Distribution]):
    kind = "Distribution"
    construct_type = cloudfront.Distribution

    def create(self, scope: Construct, props: dict[str, Any]) -> cloudfront.Distribution:
        props["default_behavior"] = _options(props["default_behavior"])
        if "additional_behaviors" in props:
            props["additional_behaviors"] = {
                path: _options(behavior) for path, behavior in props["additional_behaviors"].items()
            }
        return cloudfront.Distribution(scope, self.construct_id, **props)


def _options(behavior: Behavior | cloudfront.BehaviorOptions) -> cloudfront.BehaviorOptions:
    return behavior.to_options() if isinstance(behavior, Behavior) else behavior


class DistributionBuilder(Builder[DistributionConfig, DistributionSpec]):
    """Distribution serving HTTP/2 and HTTP/3 over IPv4 and IPv6, TLS 1.2 or
    newer, from the cheapest price class."""

    kind = "Distribution"
    config_type = DistributionConfig
    defaults = MappingProxyType({
        "enabled": True,
        "http_version": cloudfront.HttpVersion.HTTP2_AND_3,
        "minimum_protocol_version": cloudfront.SecurityPolicyProtocol.TLS_V1_2_2021,
        "price_class": cloudfront.PriceClass.PRICE_CLASS_100,
        "enable_ipv6": True,
    })

    def default_behavior(self, behavior: Behavior | cloudfront.BehaviorOptions) -> DistributionBuilder:
        return self._replace(default_behavior=behavior)

    def additional_behavior(self, path_pattern: str, behavior: Behavior | cloudfront.BehaviorOptions) -> DistributionBuilder:
        return self._append("additional_behaviors", [(path_pattern, behavior)])

    def domain_name(self, *domain_names: str) -> DistributionBuilder:
        return self._append("domain_names", domain_names)

    def certificate(self, certificate: Any) -> DistributionBuilder:
        """An ``acm.ICertificate`` or a certificate descriptor (in us-east-1)."""
        return self._replace(certificate=certificate)

    def default_root_object(self, root_object: str) -> DistributionBuilder:
        return self._replace(default_root_object=root_object)

    def comment(self, comment: str) -> DistributionBuilder:
        return self._replace(comment=comment)

    def enabled(self, enabled: bool = True) -> DistributionBuilder:
        return self._replace(enabled=enabled)

    def http_version(self, version: cloudfront.HttpVersion) -> DistributionBuilder:
        return self._replace(http_version=version)

    def minimum_protocol_version(self, version: cloudfront.SecurityPolicyProtocol) -> DistributionBuilder:
        return self._replace(minimum_protocol_version=version)

    def price_class(self, price_class: cloudfront.PriceClass) -> DistributionBuilder:
        return self._replace(price_class=price_class)

    def enable_ipv6(self, enabled: bool = True) -> DistributionBuilder:
        return self._replace(enable_ipv6=enabled)

    def logging(self, bucket: Any = None, prefix: str | None = None, include_cookies: bool | None = None) -> DistributionBuilder:
        return self._replace(
            enable_logging=True,
            log_bucket=bucket,
            log_file_prefix=prefix,
            log_includes_cookies=include_cookies,
        )

    def geo_restriction(self, restriction: cloudfront.GeoRestriction) -> DistributionBuilder:
        return self._replace(geo_restriction=restriction)

    def web_acl_id(self, web_acl_id: str) -> DistributionBuilder:
        return self._replace(web_acl_id=web_acl_id)

    def error_response(self, response: cloudfront.ErrorResponse) -> DistributionBuilder:
        return self._append("error_responses", [response])

    def finalize(self) -> DistributionSpec:
        config = self.config
        default_behavior = self.require("default_behavior", "default behavior")
        if config.domain_names and config.certificate is None:
            raise self.unsafe("domain_names", "custom domain names need a certificate")

        return self.spec(DistributionSpec, {
            "default_behavior": default_behavior,
            "additional_behaviors": dict(config.additional_behaviors) or None,
            "domain_names": list(config.domain_names) or None,
            "certificate": config.certificate,
            "default_root_object": config.default_root_object,
            "comment": config.comment,
            "enabled": self.value("enabled"),
            "http_version": self.value("http_version"),
            "minimum_protocol_version": self.value("minimum_protocol_version"),
            "price_class": self.value("price_class"),
            "enable_ipv6": self.value("enable_ipv6"),
            "enable_logging": config.enable_logging,
            "log_bucket": config.log_bucket,
            "log_file_prefix": config.log_file_prefix,
            "log_includes_cookies": config.log_includes_cookies,
            "geo_restriction": config.geo_restriction,
            "web_acl_id": config.web_acl_id,
            "error_responses": list(config.error_responses) or None,
        })


def distribution(name: str) -> DistributionBuilder:
    return DistributionBuilder(name)
