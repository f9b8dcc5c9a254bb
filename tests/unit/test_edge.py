"""Tests for load balancers, DNS, certificates and CloudFront distributions."""
from __future__ import annotations

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_s3 as s3

from infrakit.cdn import Behavior, distribution, http_behavior, s3_behavior
from infrakit.certificates import certificate
from infrakit.dns import a_record, alb_target, hosted_zone
from infrakit.errors import UnsafeConfigurationError
from infrakit.load_balancing import application_load_balancer, network_load_balancer
from infrakit.network import vpc
from infrakit.storage import bucket


class TestLoadBalancers:
    """Test internal-by-default load balancers."""

    def test_application_load_balancer(self, stack: cdk.Stack) -> None:
        network = vpc("main").build()
        network.instantiate(stack)
        application_load_balancer("web").vpc(network).build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::ElasticLoadBalancingV2::LoadBalancer", {
            "Name": "web",
            "Scheme": "internal",
            "Type": "application",
            "LoadBalancerAttributes": assertions.Match.array_with([
                {"Key": "routing.http.drop_invalid_header_fields.enabled", "Value": "true"},
            ]),
        })

    def test_network_load_balancer(self, stack: cdk.Stack) -> None:
        network = vpc("main").build()
        network.instantiate(stack)
        network_load_balancer("edge").vpc(network).internet_facing().build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::ElasticLoadBalancingV2::LoadBalancer", {
            "Name": "edge",
            "Scheme": "internet-facing",
            "Type": "network",
            "LoadBalancerAttributes": assertions.Match.array_with([
                {"Key": "load_balancing.cross_zone.enabled", "Value": "true"},
            ]),
        })


class TestDns:
    """Test hosted zones and A records."""

    def test_record_in_descriptor_zone(self, stack: cdk.Stack) -> None:
        zone = hosted_zone("example.com").comment("Public zone").build()
        record = (
            a_record("www")
            .zone(zone)
            .record_name("www")
            .target(route53.RecordTarget.from_ip_addresses("192.0.2.10"))
            .build()
        )
        zone.instantiate(stack)
        record.instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::Route53::HostedZone", {
            "Name": "example.com.",
            "HostedZoneConfig": {"Comment": "Public zone"},
        })
        template.has_resource_properties("AWS::Route53::RecordSet", {
            "Name": "www.example.com.",
            "Type": "A",
            "TTL": "300",
            "ResourceRecords": ["192.0.2.10"],
        })

    def test_alias_to_load_balancer_descriptor(self, stack: cdk.Stack) -> None:
        network = vpc("main").build()
        balancer = application_load_balancer("web").vpc(network).internet_facing().build()
        zone = hosted_zone("example.com").build()
        record = a_record("apex").zone(zone).target(alb_target(balancer)).build()
        for spec in (network, balancer, zone, record):
            spec.instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::Route53::RecordSet", {
            "Type": "A",
            "AliasTarget": assertions.Match.object_like({
                "DNSName": assertions.Match.any_value(),
            }),
        })


class TestCertificate:
    """Test DNS-validated certificates."""

    def test_validated_in_descriptor_zone(self, stack: cdk.Stack) -> None:
        zone = hosted_zone("example.com").build()
        cert = (
            certificate("site")
            .domain_name("example.com")
            .subject_alternative_names("www.example.com")
            .validate_in_zone(zone)
            .build()
        )
        zone.instantiate(stack)
        cert.instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::CertificateManager::Certificate", {
            "DomainName": "example.com",
            "SubjectAlternativeNames": ["www.example.com"],
            "ValidationMethod": "DNS",
            "KeyAlgorithm": "RSA_2048",
        })

    def test_zone_and_explicit_validation_rejected(self) -> None:
        with pytest.raises(UnsafeConfigurationError):
            (
                certificate("site")
                .domain_name("example.com")
                .validation(acm.CertificateValidation.from_email())
                .validate_in_zone("zone")
                .build()
            )


class TestDistribution:
    """Test CloudFront distributions."""

    def test_private_bucket_origin(self, stack: cdk.Stack) -> None:
        site = bucket("site-assets").build()
        cdn = (
            distribution("site")
            .default_behavior(s3_behavior(site))
            .additional_behavior("/api/*", http_behavior("api.example.com", origin_path="/prod"))
            .default_root_object("index.html")
            .build()
        )
        site.instantiate(stack)
        cdn.instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::CloudFront::Distribution", {
            "DistributionConfig": {
                "Enabled": True,
                "HttpVersion": "http2and3",
                "IPV6Enabled": True,
                "PriceClass": "PriceClass_100",
                "DefaultRootObject": "index.html",
                "DefaultCacheBehavior": {"ViewerProtocolPolicy": "redirect-to-https", "Compress": True},
                "CacheBehaviors": [assertions.Match.object_like({"PathPattern": "/api/*"})],
            },
        })
        template.resource_count_is("AWS::CloudFront::OriginAccessControl", 1)

    def test_imported_bucket_origin(self, stack: cdk.Stack) -> None:
        existing = s3.Bucket.from_bucket_name(stack, "ExistingSite", "existing-site")
        distribution("site").default_behavior(s3_behavior(existing)).build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.resource_count_is("AWS::CloudFront::OriginAccessControl", 1)
        template.has_resource_properties("AWS::CloudFront::Distribution", {
            "DistributionConfig": {
                "Origins": [assertions.Match.object_like({
                    "S3OriginConfig": assertions.Match.any_value(),
                    "OriginAccessControlId": assertions.Match.any_value(),
                })],
            },
        })

    def test_domain_names_need_certificate(self) -> None:
        with pytest.raises(UnsafeConfigurationError, match="certificate"):
            distribution("site").default_behavior(Behavior(origin="origin")).domain_name("example.com").build()

    def test_behavior_options_pass_through(self) -> None:
        options = cloudfront.BehaviorOptions(origin=origins.HttpOrigin("example.com"))
        spec = distribution("site").default_behavior(options).build()
        assert spec.props["default_behavior"] is options
