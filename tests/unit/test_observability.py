"""Tests for state machines, log groups, trails, alarms and dashboards."""
from __future__ import annotations

import logging

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest
from aws_cdk import Duration
from aws_cdk import aws_cloudwatch as cloudwatch
from aws_cdk import aws_stepfunctions as sfn

from infrakit.errors import MissingPropertyError, UnsafeConfigurationError
from infrakit.messaging import queue
from infrakit.observability import alarm, dashboard, log_group, trail
from infrakit.workflows import state_machine


def single_state(scope) -> sfn.IChainable:
    return sfn.Pass(scope, "Start")


class TestStateMachine:
    """Test the state machine builder."""

    def test_logged_and_traced(self, stack: cdk.Stack) -> None:
        logs = log_group("/aws/vendedlogs/states/orchestra-workflow").construct_id("WorkflowLogs").build()
        machine = state_machine("orchestra-workflow").definition(single_state).log_destination(logs).build()
        logs.instantiate(stack)
        machine.instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::StepFunctions::StateMachine", {
            "StateMachineName": "orchestra-workflow",
            "StateMachineType": "STANDARD",
            "TracingConfiguration": {"Enabled": True},
            "LoggingConfiguration": {"Level": "ALL", "IncludeExecutionData": True},
        })

    def test_logging_skipped_without_destination(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="infrakit.workflows"):
            spec = state_machine("quiet").definition(single_state).logging_level(sfn.LogLevel.ERROR).build()

        assert "logs" not in spec.props
        assert "no log destination" in caplog.text

    def test_express_workflow(self, stack: cdk.Stack) -> None:
        state_machine("fast").express().definition(single_state).build().instantiate(stack)
        assertions.Template.from_stack(stack).has_resource_properties("AWS::StepFunctions::StateMachine", {
            "StateMachineType": "EXPRESS",
        })

    def test_definition_built_in_owning_stack(self, stack: cdk.Stack) -> None:
        built_in = []

        def definition(scope):
            built_in.append(scope)
            return sfn.Succeed(scope, "Done")

        state_machine("done").definition(definition).build().instantiate(stack)
        assert built_in == [stack]

    def test_definition_required(self) -> None:
        with pytest.raises(MissingPropertyError, match="definition is required"):
            state_machine("empty").build()


class TestLogGroupAndTrail:
    """Test log retention and audit trails."""

    def test_log_group_defaults(self, stack: cdk.Stack) -> None:
        log_group("/orchestra/app").build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource("AWS::Logs::LogGroup", {
            "Properties": {"LogGroupName": "/orchestra/app", "RetentionInDays": 7},
            "DeletionPolicy": "Delete",
        })

    def test_trail_defaults(self, stack: cdk.Stack) -> None:
        trail("audit").build().instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::CloudTrail::Trail", {
            "TrailName": "audit",
            "IsMultiRegionTrail": True,
            "IncludeGlobalServiceEvents": True,
            "EnableLogFileValidation": True,
        })
        template.has_resource_properties("AWS::Logs::LogGroup", {"RetentionInDays": 30})

    def test_trail_without_cloudwatch_logs(self) -> None:
        spec = trail("audit").send_to_cloud_watch_logs(False).build()
        assert spec.props["send_to_cloud_watch_logs"] is False
        assert "cloud_watch_logs_retention" not in spec.props


class TestAlarm:
    """Test alarms built from names or from live metrics."""

    def test_named_metric(self, stack: cdk.Stack) -> None:
        (
            alarm("orchestra-dead-letters")
            .metric_namespace("AWS/SQS")
            .metric_name("ApproximateNumberOfMessagesVisible")
            .dimension("QueueName", "orchestra-tasks-dlq")
            .statistic("Maximum")
            .build()
            .instantiate(stack)
        )

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::CloudWatch::Alarm", {
            "AlarmName": "orchestra-dead-letters",
            "Namespace": "AWS/SQS",
            "MetricName": "ApproximateNumberOfMessagesVisible",
            "Dimensions": [{"Name": "QueueName", "Value": "orchestra-tasks-dlq"}],
            "Statistic": "Maximum",
            "Period": 300,
            "Threshold": 1,
            "EvaluationPeriods": 1,
            "ComparisonOperator": "GreaterThanOrEqualToThreshold",
            "TreatMissingData": "notBreaching",
        })

    def test_lazy_metric_from_descriptor(self, stack: cdk.Stack) -> None:
        tasks_queue = queue("orchestra-tasks").build()
        backlog = alarm("backlog").metric(
            lambda: tasks_queue.resource.metric_approximate_number_of_messages_visible()
        ).threshold(100).build()
        tasks_queue.instantiate(stack)
        backlog.instantiate(stack)

        assertions.Template.from_stack(stack).has_resource_properties("AWS::CloudWatch::Alarm", {
            "MetricName": "ApproximateNumberOfMessagesVisible",
            "Threshold": 100,
        })

    def test_metric_and_name_conflict(self) -> None:
        metric = cloudwatch.Metric(namespace="Custom", metric_name="Errors")
        with pytest.raises(UnsafeConfigurationError):
            alarm("conflict").metric(metric).metric_name("Errors").build()

    @pytest.mark.parametrize("shape", [
        lambda b: b.statistic("Sum"),
        lambda b: b.period(Duration.minutes(1)),
        lambda b: b.dimension("QueueName", "orchestra-tasks"),
    ])
    def test_ready_metric_rejects_metric_options(self, shape) -> None:
        metric = cloudwatch.Metric(namespace="Custom", metric_name="Errors")
        with pytest.raises(UnsafeConfigurationError, match="ready metric"):
            shape(alarm("errors").metric(metric)).build()

    def test_namespace_checked_before_name(self) -> None:
        with pytest.raises(MissingPropertyError) as excinfo:
            alarm("bare").build()
        assert excinfo.value.field == "metric_namespace"

        with pytest.raises(MissingPropertyError) as excinfo:
            alarm("bare").metric_namespace("Custom").build()
        assert excinfo.value.field == "metric_name"


class TestDashboard:
    """Test dashboards and their rows."""

    def test_rows_added_in_order(self, stack: cdk.Stack) -> None:
        tasks_queue = queue("orchestra-tasks").build()
        board = (
            dashboard("orchestra")
            .row(cloudwatch.TextWidget(markdown="# Orchestra", width=24))
            .lazy_row(lambda: [cloudwatch.GraphWidget(
                title="Backlog",
                left=[tasks_queue.resource.metric_approximate_number_of_messages_visible()],
            )])
            .build()
        )
        assert len(board.rows) == 2

        tasks_queue.instantiate(stack)
        board.instantiate(stack)

        template = assertions.Template.from_stack(stack)
        template.has_resource_properties("AWS::CloudWatch::Dashboard", {"DashboardName": "orchestra"})
