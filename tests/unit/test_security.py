"""Tests for policy statements, managed policies, KMS keys and secrets."""
from __future__ import annotations

import logging

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest
from aws_cdk import SecretValue
from aws_cdk import aws_iam as iam
from aws_cdk import aws_kms as kms
from aws_cdk import aws_secretsmanager as secretsmanager

from infrakit.errors import UnsafeConfigurationError
from infrakit.security import kms_key, managed_policy, policy_statement, secret
from infrakit.storage import bucket


class TestWildcardPolicy:
    """Wildcard actions and resources are never combined."""

    def test_wildcard_action_and_resource_rejected(self) -> None:
        with pytest.raises(UnsafeConfigurationError) as exc_info:
            policy_statement().actions("*").resources("*").build()
        assert exc_info.value.field == "actions/resources"

    def test_wildcard_action_only_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="infrakit.security"):
            statement = policy_statement("Admin").actions("*").resources("arn:aws:s3:::assets").build()

        assert isinstance(statement, iam.PolicyStatement)
        assert "allows all actions" in caplog.text
        assert "Admin" in caplog.text

    def test_wildcard_resource_only_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="infrakit.security"):
            policy_statement().actions("logs:PutLogEvents").resources("*").build()

        assert "applies to all resources" in caplog.text

    def test_no_wildcard_is_silent(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="infrakit.security"):
            statement = policy_statement().actions("s3:GetObject").resources("arn:aws:s3:::assets/*").build()

        assert caplog.records == []
        assert statement.resources == ["arn:aws:s3:::assets/*"]

    def test_deny_and_conditions(self) -> None:
        statement = (
            policy_statement("DenyInsecure")
            .deny()
            .actions("s3:*")
            .resources("arn:aws:s3:::assets")
            .condition("Bool", {"aws:SecureTransport": "false"})
            .build()
        )
        assert statement.effect == iam.Effect.DENY
        assert statement.sid == "DenyInsecure"

    def test_descriptor_resource_needs_created_resource(self, stack: cdk.Stack) -> None:
        assets = bucket("assets").build()
        assets.instantiate(stack)

        statement = policy_statement().actions("s3:GetObject").resources(assets).build()

        assert statement.resources == [assets.resource.bucket_arn]


class TestManagedPolicy:
    """Test managed policy synthesis."""

    def test_statements_rendered(self, stack: cdk.Stack) -> None:
        managed_policy("ReadAssets").description("Read the asset bucket").statements(
            policy_statement("Read").actions("s3:GetObject").resources("arn:aws:s3:::assets/*"),
        ).build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::IAM::ManagedPolicy", {
            "ManagedPolicyName": "ReadAssets",
            "Description": "Read the asset bucket",
            "PolicyDocument": {
                "Statement": [{
                    "Sid": "Read",
                    "Action": "s3:GetObject",
                    "Effect": "Allow",
                    "Resource": "arn:aws:s3:::assets/*",
                }],
            },
        })


class TestKmsKey:
    """Test KMS key defaults and validation."""

    def test_secure_defaults_synthesized(self, stack: cdk.Stack) -> None:
        kms_key("data").alias("alias/data").build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource("AWS::KMS::Key", {
            "Properties": {"EnableKeyRotation": True},
            "DeletionPolicy": "Retain",
        })
        template.has_resource_properties("AWS::KMS::Alias", {"AliasName": "alias/data"})

    def test_asymmetric_key_drops_rotation(self) -> None:
        spec = kms_key("signing").key_spec(kms.KeySpec.RSA_2048).key_usage(kms.KeyUsage.SIGN_VERIFY).build()
        assert "enable_key_rotation" not in spec.props

    def test_asymmetric_key_with_rotation_rejected(self) -> None:
        with pytest.raises(UnsafeConfigurationError, match="SYMMETRIC_DEFAULT"):
            kms_key("signing").key_spec(kms.KeySpec.RSA_2048).key_rotation().build()


class TestSecret:
    """Test secrets."""

    def test_value_and_generator_rejected(self) -> None:
        with pytest.raises(UnsafeConfigurationError):
            (
                secret("db")
                .secret_string_value(SecretValue.unsafe_plain_text("hunter2"))
                .generate_secret_string(secretsmanager.SecretStringGenerator(exclude_punctuation=True))
                .build()
            )

    def test_replicas_in_call_order(self) -> None:
        spec = secret("db").replica_regions("eu-west-1").replica_regions("eu-central-1").build()
        assert [replica.region for replica in spec.props["replica_regions"]] == ["eu-west-1", "eu-central-1"]

    def test_retained_by_default(self, stack: cdk.Stack) -> None:
        secret("db").build().instantiate(stack)

        assertions.Template.from_stack(stack).has_resource("AWS::SecretsManager::Secret", {
            "Properties": {"Name": "db"},
            "DeletionPolicy": "Retain",
        })
