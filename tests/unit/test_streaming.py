"""Tests for Kinesis data streams."""
from __future__ import annotations

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest
from aws_cdk import aws_iam as iam
from aws_cdk import aws_kinesis as kinesis
from aws_cdk import aws_kms as kms

from infrakit.errors import UnsafeConfigurationError
from infrakit.security import kms_key
from infrakit.streaming import kinesis_stream


class TestKinesisStream:
    """Test the stream builder."""

    def test_defaults_synthesized(self, stack: cdk.Stack) -> None:
        role = iam.Role(stack, "Consumer", assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"))
        kinesis_stream("clickstream").grant_read(role).build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::Kinesis::Stream", {
            "Name": "clickstream",
            "ShardCount": 1,
            "RetentionPeriodHours": 24,
            "StreamEncryption": {"EncryptionType": "KMS", "KeyId": "alias/aws/kinesis"},
        })
        template.has_resource_properties("AWS::IAM::Policy", {
            "PolicyDocument": {
                "Statement": assertions.Match.array_with([
                    assertions.Match.object_like({
                        "Action": assertions.Match.array_with(["kinesis:GetRecords"]),
                    }),
                ]),
            },
        })

    def test_on_demand_omits_shard_count(self) -> None:
        spec = kinesis_stream("clickstream").on_demand().build()
        assert spec.props["stream_mode"] == kinesis.StreamMode.ON_DEMAND
        assert "shard_count" not in spec.props

    def test_on_demand_with_shards_rejected(self) -> None:
        with pytest.raises(UnsafeConfigurationError, match="on-demand"):
            kinesis_stream("clickstream").shard_count(2).on_demand().build()

    def test_customer_key_switches_to_kms(self, stack: cdk.Stack) -> None:
        key = kms.Key(stack, "StreamKey")
        spec = kinesis_stream("clickstream").encryption_key(key).build()
        assert spec.props["encryption"] == kinesis.StreamEncryption.KMS

    def test_key_descriptor_resolved(self, stack: cdk.Stack) -> None:
        key = kms_key("stream-key").build()
        stream = kinesis_stream("clickstream").encryption_key(key).build()
        key.instantiate(stack)
        stream.instantiate(stack)

        assertions.Template.from_stack(stack).has_resource_properties("AWS::Kinesis::Stream", {
            "StreamEncryption": {
                "EncryptionType": "KMS",
                "KeyId": {"Fn::GetAtt": [assertions.Match.any_value(), "Arn"]},
            },
        })
