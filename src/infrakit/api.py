"""API Gateway REST APIs and HTTP APIs."""
from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import Duration, Size
from aws_cdk import aws_apigateway as apigw
from aws_cdk import aws_apigatewayv2 as apigwv2
from aws_cdk import aws_apigatewayv2_integrations as apigwv2_integrations
from aws_cdk import aws_iam as iam
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, resolve


def _is_function(target: Any) -> bool:
    return hasattr(target, "function_arn")


def _route_id(*parts: str) -> str:
    return "".join(word.capitalize() for part in parts for word in re.split(r"[^A-Za-z0-9]+", part) if word)


# === REST APIs ===

@dataclass(frozen=True)
class RestApiConfig(BaseConfig):
    description: str | None = None
    handler: Any = None
    proxy: bool | None = None
    endpoint_types: tuple[apigw.EndpointType, ...] = ()
    deploy: bool | None = None
    deploy_options: apigw.StageOptions | None = None
    cloud_watch_role: bool | None = None
    policy: iam.PolicyDocument | None = None
    default_cors_preflight_options: apigw.CorsOptions | None = None
    default_integration: apigw.Integration | None = None
    default_method_options: apigw.MethodOptions | None = None
    binary_media_types: tuple[str, ...] = ()
    min_compression_size: Size | None = None
    api_key_source_type: apigw.ApiKeySourceType | None = None
    disable_execute_api_endpoint: bool | None = None
    methods: tuple[tuple[str, str, Any, dict[str, Any]], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class RestApiSpec(ResourceSpec[apigw.RestApi]):
    kind = "RestApi"
    construct_type = apigw.RestApi

    methods: tuple[tuple[str, str, Any, dict[str, Any]], ...] = ()

    def create(self, scope: Construct, props: dict[str, Any]) -> apigw.RestApi:
        if "handler" in props:
            return apigw.LambdaRestApi(scope, self.construct_id, **props)
        return apigw.RestApi(scope, self.construct_id, **props)

    def after_create(self, scope: Construct, handle: apigw.RestApi) -> None:
        for http_method, path, target, options in self.methods:
            integration = resolve(target)
            if _is_function(integration):
                integration = apigw.LambdaIntegration(integration)
            handle.root.resource_for_path(path).add_method(http_method, integration, **resolve(options))


class RestApiBuilder(Builder[RestApiConfig, RestApiSpec]):
    """Regional REST API, deployed to a stage, with a CloudWatch logging role.

    With a ``handler`` the API becomes a ``LambdaRestApi`` that proxies every
    path to the function unless ``proxy=False``.
    """

    kind = "RestApi"
    config_type = RestApiConfig
    defaults = MappingProxyType({
        "endpoint_types": (apigw.EndpointType.REGIONAL,),
        "deploy": True,
        "cloud_watch_role": True,
        "proxy": True,
    })

    def description(self, description: str) -> RestApiBuilder:
        return self._replace(description=description)

    def handler(self, function: Any, proxy: bool = True) -> RestApiBuilder:
        """A function or function descriptor serving the API."""
        return self._replace(handler=function, proxy=proxy)

    def endpoint_types(self, *types: apigw.EndpointType) -> RestApiBuilder:
        return self._append("endpoint_types", types)

    def deploy(self, enabled: bool = True) -> RestApiBuilder:
        return self._replace(deploy=enabled)

    def deploy_options(self, options: apigw.StageOptions) -> RestApiBuilder:
        return self._replace(deploy_options=options)

    def cloud_watch_role(self, enabled: bool = True) -> RestApiBuilder:
        return self._replace(cloud_watch_role=enabled)

    def policy(self, policy: iam.PolicyDocument) -> RestApiBuilder:
        return self._replace(policy=policy)

    def cors(self, options: apigw.CorsOptions) -> RestApiBuilder:
        return self._replace(default_cors_preflight_options=options)

    def default_integration(self, integration: apigw.Integration) -> RestApiBuilder:
        return self._replace(default_integration=integration)

    def default_method_options(self, options: apigw.MethodOptions) -> RestApiBuilder:
        return self._replace(default_method_options=options)

    def binary_media_types(self, *media_types: str) -> RestApiBuilder:
        return self._append("binary_media_types", media_types)

    def min_compression_size(self, size: Size) -> RestApiBuilder:
        return self._replace(min_compression_size=size)

    def api_key_source_type(self, source: apigw.ApiKeySourceType) -> RestApiBuilder:
        return self._replace(api_key_source_type=source)

    def disable_execute_api_endpoint(self, disabled: bool = True) -> RestApiBuilder:
        return self._replace(disable_execute_api_endpoint=disabled)

    def method(self, http_method: str, path: str, target: Any, **options: Any) -> RestApiBuilder:
        """Add ``http_method`` on ``path``; ``target`` is an integration or a function (descriptor)."""
        return self._append("methods", [(http_method.upper(), path, target, options)])

    def finalize(self) -> RestApiSpec:
        config = self.config
        proxied = config.handler is not None and self.value("proxy")
        if config.handler is not None and config.default_integration is not None:
            raise self.unsafe("default_integration", "a handler already integrates every method")
        if proxied and config.methods:
            raise self.unsafe("methods", "a proxy handler serves every path; use handler(fn, proxy=False)")
        for _, path, _, _ in config.methods:
            if not path.startswith("/"):
                raise self.unsafe("methods", f"path {path!r} must start with '/'")
        if not self.value("deploy") and config.deploy_options is not None:
            raise self.unsafe("deploy_options", "stage options need deploy enabled")

        props = {
            "rest_api_name": self.name,
            "description": config.description,
            "endpoint_types": list(config.endpoint_types or self.value("endpoint_types")),
            "deploy": self.value("deploy"),
            "deploy_options": config.deploy_options,
            "cloud_watch_role": self.value("cloud_watch_role"),
            "policy": config.policy,
            "default_cors_preflight_options": config.default_cors_preflight_options,
            "default_integration": config.default_integration,
            "default_method_options": config.default_method_options,
            "binary_media_types": list(config.binary_media_types) or None,
            "min_compression_size": config.min_compression_size,
            "api_key_source_type": config.api_key_source_type,
            "disable_execute_api_endpoint": config.disable_execute_api_endpoint,
        }
        if config.handler is not None:
            props["handler"] = config.handler
            props["proxy"] = self.value("proxy")
        return self.spec(RestApiSpec, props, methods=config.methods)


def rest_api(name: str) -> RestApiBuilder:
    return RestApiBuilder(name)


def rest_cors(*origins: str, headers: tuple[str, ...] = ("Content-Type", "Authorization")) -> apigw.CorsOptions:
    """Preflight settings for ``origins``, every origin when none are given."""
    return apigw.CorsOptions(
        allow_origins=list(origins) or apigw.Cors.ALL_ORIGINS,
        allow_methods=apigw.Cors.ALL_METHODS,
        allow_headers=list(headers),
    )


# === HTTP APIs ===

@dataclass(frozen=True)
class HttpApiConfig(BaseConfig):
    description: str | None = None
    cors_preflight: apigwv2.CorsPreflightOptions | None = None
    create_default_stage: bool | None = None
    disable_execute_api_endpoint: bool | None = None
    default_integration: apigwv2.HttpRouteIntegration | None = None
    routes: tuple[tuple[str, tuple[apigwv2.HttpMethod, ...], Any], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class HttpApiSpec(ResourceSpec[apigwv2.HttpApi]):
    kind = "HttpApi"
    construct_type = apigwv2.HttpApi

    routes: tuple[tuple[str, tuple[apigwv2.HttpMethod, ...], Any], ...] = ()

    def after_create(self, scope: Construct, handle: apigwv2.HttpApi) -> None:
        for path, methods, target in self.routes:
            integration = resolve(target)
            if _is_function(integration):
                integration_id = _route_id(self.construct_id, *(m.value for m in methods), path, "Integration")
                integration = apigwv2_integrations.HttpLambdaIntegration(integration_id, integration)
            handle.add_routes(path=path, methods=list(methods), integration=integration)


class HttpApiBuilder(Builder[HttpApiConfig, HttpApiSpec]):
    """HTTP API with an auto-deployed default stage and CORS off until configured."""

    kind = "HttpApi"
    config_type = HttpApiConfig
    defaults = MappingProxyType({"create_default_stage": True})

    def description(self, description: str) -> HttpApiBuilder:
        return self._replace(description=description)

    def cors(self, options: apigwv2.CorsPreflightOptions) -> HttpApiBuilder:
        return self._replace(cors_preflight=options)

    def create_default_stage(self, enabled: bool = True) -> HttpApiBuilder:
        return self._replace(create_default_stage=enabled)

    def disable_execute_api_endpoint(self, disabled: bool = True) -> HttpApiBuilder:
        return self._replace(disable_execute_api_endpoint=disabled)

    def default_integration(self, integration: apigwv2.HttpRouteIntegration) -> HttpApiBuilder:
        return self._replace(default_integration=integration)

    def route(self, path: str, target: Any, *methods: apigwv2.HttpMethod) -> HttpApiBuilder:
        """Route ``path`` to an integration or a function (descriptor); ``ANY`` when no methods are given."""
        return self._append("routes", [(path, methods or (apigwv2.HttpMethod.ANY,), target)])

    def finalize(self) -> HttpApiSpec:
        config = self.config
        seen: set[tuple[str, str]] = set()
        for path, methods, _ in config.routes:
            if not path.startswith("/"):
                raise self.unsafe("routes", f"path {path!r} must start with '/'")
            for method in methods:
                if (path, method.value) in seen:
                    raise self.unsafe("routes", f"{method.value} {path} is routed twice")
                seen.add((path, method.value))

        cors = config.cors_preflight
        if cors is not None and cors.allow_credentials and "*" in (cors.allow_origins or []):
            raise self.unsafe("cors_preflight", "credentials cannot be allowed for every origin")

        return self.spec(HttpApiSpec, {
            "api_name": self.name,
            "description": config.description,
            "cors_preflight": cors,
            "create_default_stage": self.value("create_default_stage"),
            "disable_execute_api_endpoint": config.disable_execute_api_endpoint,
            "default_integration": config.default_integration,
        }, routes=config.routes)


def http_api(name: str) -> HttpApiBuilder:
    return HttpApiBuilder(name)


def http_cors(
    *origins: str,
    methods: tuple[apigwv2.CorsHttpMethod, ...] = (apigwv2.CorsHttpMethod.ANY,),
    headers: tuple[str, ...] = ("*",),
) -> apigwv2.CorsPreflightOptions:
    """Preflight settings cached for an hour.

    Credentials are allowed only for an explicit origin list; with no origins
    every origin is allowed without credentials.
    """
    return apigwv2.CorsPreflightOptions(
        allow_origins=list(origins) or ["*"],
        allow_methods=list(methods),
        allow_headers=list(headers),
        allow_credentials=bool(origins),
        max_age=Duration.hours(1),
    )
