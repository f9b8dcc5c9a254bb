"""Sample serverless workflow assembled only from infrakit builders.

Three stacks:
  * Payload: payload bucket and the task queue with its dead-letter queue
  * Orchestration: workflow state table, task functions and the state machine
  * Monitoring: dashboard and alarms over the orchestration resources
"""
from __future__ import annotations

from pathlib import Path

from aws_cdk import App, Duration, Environment
from aws_cdk import aws_cloudwatch as cw
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_events as events
from aws_cdk import aws_lambda as _lambda
from aws_cdk import aws_stepfunctions as sfn
from aws_cdk import aws_stepfunctions_tasks as tasks
from constructs import Construct

from infrakit.compute import FunctionSpec, dynamodb_stream_source, lambda_function, sqs_source
from infrakit.database import Access, grant, table
from infrakit.events import event_rule
from infrakit.messaging import queue
from infrakit.observability import alarm, dashboard, log_group
from infrakit.parameters import string_parameter
from infrakit.security import managed_policy, policy_statement
from infrakit.stack import StackSpec, app, stack
from infrakit.storage import bucket, delete_noncurrent_versions, expire_after
from infrakit.tags import StandardTags
from infrakit.workflows import state_machine

HANDLERS_DIR = str(Path(__file__).resolve().parent / "handlers")
TABLE_NAME = "WorkflowStateTable"
TASKS = ("A", "B1", "B2", "C")


def _task_function(task: str, logs_policy) -> FunctionSpec:
    return (
        lambda_function(f"orchestra-task-{task.lower()}")
        .construct_id(f"Task{task}")
        .handler("worker.handler")
        .runtime(_lambda.Runtime.PYTHON_3_12)
        .code(HANDLERS_DIR)
        .timeout(Duration.seconds(30))
        .memory_size(256)
        .tracing(_lambda.Tracing.ACTIVE)
        .environment("TASK_NAME", task)
        .environment("TABLE_NAME", TABLE_NAME)
        .managed_policy(logs_policy)
        .build()
    )


def build_stacks(env: Environment | None = None, tags: StandardTags | None = None) -> list[StackSpec]:
    tags = tags or StandardTags(project="orchestra", environment="dev")

    # === Payload ===
    payload_bucket = (
        bucket("orchestra-payloads")
        .construct_id("PayloadBucket")
        .versioned()
        .lifecycle_rules(expire_after(30), delete_noncurrent_versions(7))
        .build()
    )
    dead_letters = queue("orchestra-tasks-dlq").construct_id("TaskDeadLetterQueue").build()
    task_queue = (
        queue("orchestra-tasks")
        .construct_id("TaskQueue")
        .visibility_timeout(Duration.seconds(60))
        .dead_letter_queue(dead_letters, max_receive_count=3)
        .build()
    )
    payload = (
        stack("PayloadStack")
        .description("Ingress and payload plumbing resources")
        .standard_tags(tags)
        .add(payload_bucket, dead_letters, task_queue)
    )

    # === Orchestration ===
    logs_policy = (
        managed_policy("BasicLambdaLogs")
        .statements(
            policy_statement("WriteLogs")
            .actions("logs:CreateLogGroup", "logs:CreateLogStream", "logs:PutLogEvents")
            .resources("*"),
            policy_statement("WriteTraces")
            .actions("xray:PutTraceSegments", "xray:PutTelemetryRecords")
            .resources("*"),
        )
        .build()
    )
    state_table = (
        table(TABLE_NAME)
        .partition_key("pk", dynamodb.AttributeType.STRING)
        .sort_key("sk", dynamodb.AttributeType.STRING)
        .billing_mode(dynamodb.BillingMode.PAY_PER_REQUEST)
        .stream(dynamodb.StreamViewType.NEW_AND_OLD_IMAGES)
        .point_in_time_recovery()
        .build()
    )
    functions = {task: _task_function(task, logs_policy) for task in TASKS}
    dispatcher = (
        lambda_function("orchestra-dispatcher")
        .construct_id("Dispatcher")
        .handler("worker.handler")
        .runtime(_lambda.Runtime.PYTHON_3_12)
        .code(HANDLERS_DIR)
        .environment("TASK_NAME", "dispatch")
        .environment("TABLE_NAME", TABLE_NAME)
        .event_source(sqs_source(task_queue, batch_size=10))
        .event_source(dynamodb_stream_source(state_table, batch_size=100))
        .managed_policy(logs_policy)
        .build()
    )
    workflow_logs = log_group("/aws/vendedlogs/states/orchestra-workflow").construct_id("WorkflowLogs").build()

    def definition(scope: Construct) -> sfn.IChainable:
        invoke = {
            task: tasks.LambdaInvoke(
                scope, f"Invoke {task}", lambda_function=functions[task].resource, output_path="$.Payload",
            )
            for task in TASKS
        }
        parallel_b = sfn.Parallel(scope, "Parallel B")
        parallel_b.branch(invoke["B1"])
        parallel_b.branch(invoke["B2"])
        return invoke["A"].next(parallel_b).next(invoke["C"])

    workflow = (
        state_machine("orchestra-workflow")
        .construct_id("WorkflowStateMachine")
        .definition(definition)
        .timeout(Duration.minutes(5))
        .log_destination(workflow_logs)
        .build()
    )
    nightly = (
        event_rule("orchestra-nightly")
        .construct_id("NightlyRun")
        .description("Starts the workflow every night")
        .schedule(events.Schedule.cron(minute="0", hour="2"))
        .target(workflow)
        .build()
    )
    orchestration = (
        stack("OrchestrationStack")
        .description("Task functions and the workflow state machine")
        .standard_tags(tags)
        .add(logs_policy, state_table, *functions.values(), dispatcher)
        .add(*(
            grant(f"Task{task}StateAccess").table(TABLE_NAME).function(f"Task{task}").access(Access.READ_WRITE)
            for task in TASKS
        ))
        .add(
            grant("DispatcherStateAccess").table(TABLE_NAME).function("Dispatcher").access(Access.READ),
            workflow_logs,
            workflow,
            nightly,
            string_parameter("/orchestra/table-name").construct_id("TableNameParameter").string_value(TABLE_NAME),
        )
    )

    # === Monitoring ===
    def function_row(spec: FunctionSpec) -> list[cw.IWidget]:
        fn = spec.resource
        return [
            cw.GraphWidget(
                title=f"{spec.name} - Invocations/Errors",
                left=[fn.metric_invocations()],
                right=[fn.metric_errors()],
            ),
            cw.GraphWidget(
                title=f"{spec.name} - Duration p95",
                left=[fn.metric_duration(statistic="p95")],
            ),
        ]

    board = dashboard("orchestra").construct_id("OrchestraDashboard")
    for spec in (*functions.values(), dispatcher):
        board = board.lazy_row(lambda spec=spec: function_row(spec))
    board = board.lazy_row(lambda: [
        cw.GraphWidget(
            title="State machine - Executions",
            left=[workflow.resource.metric_started()],
            right=[workflow.resource.metric_succeeded(), workflow.resource.metric_failed()],
        ),
        cw.GraphWidget(
            title="DynamoDB - Throttles/Errors",
            left=[
                state_table.resource.metric("ReadThrottleEvents"),
                state_table.resource.metric("WriteThrottleEvents"),
            ],
            right=[state_table.resource.metric_user_errors()],
        ),
    ])

    monitoring = (
        stack("MonitoringStack")
        .description("Dashboard and alarms for the workflow")
        .standard_tags(tags)
        .add(
            board,
            alarm("orchestra-workflow-failures")
            .construct_id("WorkflowFailures")
            .description("Workflow executions are failing")
            .metric(lambda: workflow.resource.metric_failed()),
            alarm("orchestra-dead-letters")
            .construct_id("DeadLetters")
            .description("Tasks are landing in the dead-letter queue")
            .metric_namespace("AWS/SQS")
            .metric_name("ApproximateNumberOfMessagesVisible")
            .dimension("QueueName", dead_letters.name)
            .statistic("Maximum"),
        )
    )

    if env is not None:
        payload, orchestration, monitoring = (builder.env(env) for builder in (payload, orchestration, monitoring))
    return [payload.build(), orchestration.build(), monitoring.build()]


def build_workflow_app(env: Environment | None = None, tags: StandardTags | None = None) -> App:
    """Instantiate the sample stacks into a synthesizable ``cdk.App``."""
    return app().add(*build_stacks(env, tags)).build()
