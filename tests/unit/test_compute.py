"""Tests for Lambda functions and their wiring."""
from __future__ import annotations

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest
from aws_cdk import Duration
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as _lambda

from infrakit.compute import lambda_function, sqs_source
from infrakit.database import table
from infrakit.errors import MissingPropertyError, UnsafeConfigurationError
from infrakit.messaging import queue
from infrakit.security import policy_statement
from infrakit.streaming import kinesis_stream


def worker(code: _lambda.Code):
    return (
        lambda_function("orchestra-task-a")
        .construct_id("TaskA")
        .handler("worker.handler")
        .runtime(_lambda.Runtime.PYTHON_3_12)
        .code(code)
    )


class TestFunction:
    """Test the function builder."""

    def test_function_synthesized(self, stack: cdk.Stack, inline_code: _lambda.Code) -> None:
        (
            worker(inline_code)
            .environment("TASK_NAME", "A")
            .environment("TABLE_NAME", "WorkflowStateTable")
            .timeout(Duration.seconds(30))
            .memory_size(256)
            .build()
            .instantiate(stack)
        )

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::Lambda::Function", {
            "FunctionName": "orchestra-task-a",
            "Handler": "worker.handler",
            "Runtime": "python3.12",
            "Timeout": 30,
            "MemorySize": 256,
            "Environment": {"Variables": {"TASK_NAME": "A", "TABLE_NAME": "WorkflowStateTable"}},
        })

    def test_environment_keeps_call_order(self, inline_code: _lambda.Code) -> None:
        spec = worker(inline_code).environment("B", "2").environment("A", "1").build()
        assert list(spec.props["environment"]) == ["B", "A"]

    @pytest.mark.parametrize("missing", ["handler", "runtime", "code"])
    def test_required_fields(self, missing: str, inline_code: _lambda.Code) -> None:
        values = {"handler": "worker.handler", "runtime": _lambda.Runtime.PYTHON_3_12, "code": inline_code}
        builder = lambda_function("partial")
        for field, value in values.items():
            if field != missing:
                builder = getattr(builder, field)(value)

        with pytest.raises(MissingPropertyError) as excinfo:
            builder.build()
        assert excinfo.value.field == missing

    def test_sqs_source_on_descriptor_queue(self, stack: cdk.Stack, inline_code: _lambda.Code) -> None:
        tasks = queue("orchestra-tasks").build()
        function = worker(inline_code).event_source(sqs_source(tasks, batch_size=5)).build()
        tasks.instantiate(stack)
        function.instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::Lambda::EventSourceMapping", {
            "BatchSize": 5,
            "EventSourceArn": {"Fn::GetAtt": [assertions.Match.any_value(), "Arn"]},
        })

    def test_role_statements_and_permissions(self, stack: cdk.Stack, inline_code: _lambda.Code) -> None:
        (
            worker(inline_code)
            .role_policy(
                policy_statement("ReadParameters")
                .actions("ssm:GetParameter")
                .resources("arn:aws:ssm:us-east-1:123456789012:parameter/orchestra/*")
            )
            .permission("AllowEvents", iam.ServicePrincipal("events.amazonaws.com"), action="lambda:InvokeFunction")
            .build()
            .instantiate(stack)
        )

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::IAM::Policy", {
            "PolicyDocument": {
                "Statement": assertions.Match.array_with([
                    assertions.Match.object_like({"Sid": "ReadParameters", "Action": "ssm:GetParameter"}),
                ]),
            },
        })
        template.has_resource_properties("AWS::Lambda::Permission", {
            "Action": "lambda:InvokeFunction",
            "Principal": "events.amazonaws.com",
        })

    def test_function_url_defaults_to_iam_auth(self, stack: cdk.Stack, inline_code: _lambda.Code) -> None:
        worker(inline_code).function_url().build().instantiate(stack)
        assertions.Template.from_stack(stack).has_resource_properties("AWS::Lambda::Url", {"AuthType": "AWS_IAM"})

    def test_async_invoke_settings(self, stack: cdk.Stack, inline_code: _lambda.Code) -> None:
        worker(inline_code).async_invoke(retry_attempts=0).build().instantiate(stack)
        assertions.Template.from_stack(stack).has_resource_properties("AWS::Lambda::EventInvokeConfig", {
            "MaximumRetryAttempts": 0,
        })


class TestEventSourceMapping:
    """Test raw event source mappings."""

    def test_stream_descriptor_mapping(self, stack: cdk.Stack, inline_code: _lambda.Code) -> None:
        clicks = kinesis_stream("clickstream").build()
        function = (
            worker(inline_code)
            .event_source_mapping(
                "ClickMapping",
                clicks,
                starting_position=_lambda.StartingPosition.LATEST,
                batch_size=50,
                parallelization_factor=2,
            )
            .build()
        )
        clicks.instantiate(stack)
        function.instantiate(stack)

        assertions.Template.from_stack(stack).has_resource_properties("AWS::Lambda::EventSourceMapping", {
            "EventSourceArn": {"Fn::GetAtt": [assertions.Match.any_value(), "Arn"]},
            "StartingPosition": "LATEST",
            "BatchSize": 50,
            "ParallelizationFactor": 2,
        })

    def test_table_maps_through_its_stream(self, stack: cdk.Stack, inline_code: _lambda.Code) -> None:
        state = (
            table("WorkflowStateTable")
            .partition_key("pk", dynamodb.AttributeType.STRING)
            .stream(dynamodb.StreamViewType.NEW_AND_OLD_IMAGES)
            .build()
        )
        function = (
            worker(inline_code)
            .event_source_mapping("StateChanges", state, starting_position=_lambda.StartingPosition.TRIM_HORIZON)
            .build()
        )
        state.instantiate(stack)
        function.instantiate(stack)

        assertions.Template.from_stack(stack).has_resource_properties("AWS::Lambda::EventSourceMapping", {
            "EventSourceArn": {"Fn::GetAtt": [assertions.Match.any_value(), "StreamArn"]},
            "StartingPosition": "TRIM_HORIZON",
        })

    def test_arn_mapping_keeps_call_order(self, inline_code: _lambda.Code) -> None:
        spec = (
            worker(inline_code)
            .event_source_mapping("First", "arn:aws:sqs:us-east-1:123456789012:first")
            .event_source_mapping("Second", "arn:aws:sqs:us-east-1:123456789012:second", enabled=False)
            .build()
        )
        assert [mapping_id for mapping_id, _, _ in spec.event_source_mappings] == ["First", "Second"]
        assert spec.event_source_mappings[1][2] == {"enabled": False}

    def test_duplicate_mapping_ids_rejected(self, inline_code: _lambda.Code) -> None:
        with pytest.raises(UnsafeConfigurationError, match="duplicate mapping ids"):
            (
                worker(inline_code)
                .event_source_mapping("Tasks", "arn:aws:sqs:us-east-1:123456789012:a")
                .event_source_mapping("Tasks", "arn:aws:sqs:us-east-1:123456789012:b")
                .build()
            )
