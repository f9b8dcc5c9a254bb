"""Tests for DynamoDB tables and construct-id grants."""
from __future__ import annotations

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as _lambda

from infrakit.database import Access, grant, table


class TestTable:
    """Test the table builder."""

    def test_partition_key_only_example(self) -> None:
        """A table with only a partition key leaves every other field to the CDK."""
        spec = table("items").partition_key("id", dynamodb.AttributeType.STRING).build()

        assert set(spec.props) == {"table_name", "partition_key"}
        assert spec.props["partition_key"].name == "id"
        assert spec.props["partition_key"].type == dynamodb.AttributeType.STRING
        assert "sort_key" not in spec.props
        assert "stream" not in spec.props
        assert "billing_mode" not in spec.props

    def test_workflow_table_synthesized(self, stack: cdk.Stack) -> None:
        (
            table("WorkflowStateTable")
            .partition_key("pk", dynamodb.AttributeType.STRING)
            .sort_key("sk", dynamodb.AttributeType.STRING)
            .billing_mode(dynamodb.BillingMode.PAY_PER_REQUEST)
            .stream(dynamodb.StreamViewType.NEW_AND_OLD_IMAGES)
            .point_in_time_recovery()
            .build()
            .instantiate(stack)
        )

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::DynamoDB::Table", {
            "TableName": "WorkflowStateTable",
            "BillingMode": "PAY_PER_REQUEST",
            "KeySchema": [
                {"AttributeName": "pk", "KeyType": "HASH"},
                {"AttributeName": "sk", "KeyType": "RANGE"},
            ],
            "StreamSpecification": {"StreamViewType": "NEW_AND_OLD_IMAGES"},
            "PointInTimeRecoverySpecification": {"PointInTimeRecoveryEnabled": True},
        })

    def test_grants_resolve_after_creation(self, stack: cdk.Stack) -> None:
        role = iam.Role(stack, "Worker", assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"))
        table("items").partition_key("id", dynamodb.AttributeType.STRING).grant_read_data(role).build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::IAM::Policy", {
            "PolicyDocument": {
                "Statement": assertions.Match.array_with([
                    assertions.Match.object_like({
                        "Action": assertions.Match.array_with(["dynamodb:GetItem"]),
                    }),
                ]),
            },
        })


class TestGrant:
    """Test table-to-function grants resolved by construct id."""

    def test_grant_wires_table_and_function(self, stack: cdk.Stack, inline_code: _lambda.Code) -> None:
        dynamodb.Table(stack, "Items", partition_key=dynamodb.Attribute(name="id", type=dynamodb.AttributeType.STRING))
        _lambda.Function(stack, "Worker", handler="index.handler", runtime=_lambda.Runtime.PYTHON_3_12, code=inline_code)

        spec = grant("WorkerItems").table("Items").function("Worker").access(Access.WRITE).build()
        spec.instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::IAM::Policy", {
            "PolicyDocument": {
                "Statement": assertions.Match.array_with([
                    assertions.Match.object_like({
                        "Action": assertions.Match.array_with(["dynamodb:PutItem"]),
                    }),
                ]),
            },
        })

    def test_grant_missing_construct(self, stack: cdk.Stack) -> None:
        spec = grant("WorkerItems").table("Items").function("Worker").access(Access.READ).build()
        with pytest.raises(LookupError, match="no construct 'Items'"):
            spec.instantiate(stack)

    def test_access_maps_to_grant_methods(self) -> None:
        assert Access.READ.value == "grant_read_data"
        assert Access.READ_WRITE.value == "grant_read_write_data"
