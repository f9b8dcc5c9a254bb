"""Tests for ECR repositories."""
from __future__ import annotations

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest
from aws_cdk import RemovalPolicy
from aws_cdk import aws_ecr as ecr
from aws_cdk import aws_iam as iam
from aws_cdk import aws_kms as kms

from infrakit.errors import UnsafeConfigurationError
from infrakit.registry import delete_tagged_after, delete_untagged_after, keep_last_images, repository


class TestRepository:
    """Test the repository builder."""

    def test_defaults_synthesized(self, stack: cdk.Stack) -> None:
        repository("lambda-b3-container").build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource("AWS::ECR::Repository", {
            "Properties": assertions.Match.object_like({
                "RepositoryName": "lambda-b3-container",
                "ImageScanningConfiguration": {"ScanOnPush": True},
                "ImageTagMutability": "MUTABLE",
            }),
            "DeletionPolicy": "Retain",
        })

    def test_lifecycle_rules_synthesized(self, stack: cdk.Stack) -> None:
        (
            repository("lambda-b3-container")
            .lifecycle_rules(delete_untagged_after(7), delete_tagged_after("dev-", 30), keep_last_images(10))
            .build()
            .instantiate(stack)
        )

        assertions.Template.from_stack(stack).has_resource_properties("AWS::ECR::Repository", {
            "LifecyclePolicy": {
                "LifecyclePolicyText": assertions.Match.string_like_regexp("imageCountMoreThan"),
            },
        })

    def test_lifecycle_rules_keep_call_order(self) -> None:
        spec = repository("images").lifecycle_rules(keep_last_images(10)).lifecycle_rules(delete_untagged_after(1)).build()
        assert [rule.tag_status for rule in spec.props["lifecycle_rules"]] == [ecr.TagStatus.ANY, ecr.TagStatus.UNTAGGED]

    def test_disposable_repository(self) -> None:
        spec = repository("scratch").removal_policy(RemovalPolicy.DESTROY).empty_on_delete().build()
        assert spec.props["removal_policy"] == RemovalPolicy.DESTROY
        assert spec.props["empty_on_delete"] is True

    def test_empty_on_delete_needs_destroy(self) -> None:
        with pytest.raises(UnsafeConfigurationError) as excinfo:
            repository("images").empty_on_delete().build()
        assert excinfo.value.field == "empty_on_delete"

    def test_customer_key_implies_kms(self, stack: cdk.Stack) -> None:
        key = kms.Key(stack, "ImagesKey")
        spec = repository("images").encryption_key(key).build()
        assert spec.props["encryption"].value == "KMS"

        spec.instantiate(stack)
        assertions.Template.from_stack(stack).has_resource_properties("AWS::ECR::Repository", {
            "EncryptionConfiguration": {"EncryptionType": "KMS", "KmsKey": assertions.Match.any_value()},
        })

    def test_customer_key_with_aes_rejected(self) -> None:
        with pytest.raises(UnsafeConfigurationError) as excinfo:
            repository("images").encryption(ecr.RepositoryEncryption.AES_256, key="key").build()
        assert excinfo.value.field == "encryption_key"

    def test_single_any_tag_rule(self) -> None:
        with pytest.raises(UnsafeConfigurationError, match="every tag status"):
            repository("images").lifecycle_rules(keep_last_images(5), ecr.LifecycleRule(max_image_count=10)).build()

    def test_grant_pull(self, stack: cdk.Stack) -> None:
        role = iam.Role(stack, "Puller", assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"))
        repository("images").grant_pull(role).build().instantiate(stack)

        assertions.Template.from_stack(stack).has_resource_properties("AWS::IAM::Policy", {
            "PolicyDocument": {
                "Statement": assertions.Match.array_with([
                    assertions.Match.object_like({
                        "Action": assertions.Match.array_with(["ecr:BatchGetImage"]),
                    }),
                ]),
            },
        })
