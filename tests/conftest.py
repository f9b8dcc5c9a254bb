from __future__ import annotations

import os
from collections.abc import Generator
from unittest.mock import MagicMock, patch

import aws_cdk as cdk
import pytest
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_lambda as _lambda

INLINE_HANDLER = "def handler(event, context):\n    return event\n"


@pytest.fixture(autouse=True)
def mock_environment() -> Generator[None]:
    """Mock environment variables for all tests."""
    with patch.dict(os.environ, {
        'AWS_ACCOUNT_ID': '123456789012',
        'AWS_REGION': 'us-east-1',
    }):
        # Set by the CDK CLI; never inherited by the tests.
        os.environ.pop('CDK_DEFAULT_ACCOUNT', None)
        os.environ.pop('CDK_DEFAULT_REGION', None)
        yield


@pytest.fixture
def stack() -> cdk.Stack:
    """Empty stack to instantiate descriptors into."""
    app = cdk.App()
    return cdk.Stack(app, "TestStack", env=cdk.Environment(account="123456789012", region="us-east-1"))


@pytest.fixture
def existing_vpc(stack: cdk.Stack) -> ec2.Vpc:
    return ec2.Vpc(stack, "ExistingVpc", max_azs=2)


@pytest.fixture
def inline_code() -> _lambda.Code:
    return _lambda.Code.from_inline(INLINE_HANDLER)


@pytest.fixture
def mock_lambda_context() -> MagicMock:
    """Mock AWS Lambda context object."""
    context = MagicMock()
    context.function_name = "orchestra-task-a"
    context.function_version = "1"
    context.invoked_function_arn = "arn:aws:lambda:us-east-1:123456789012:function:orchestra-task-a"
    context.memory_limit_in_mb = "256"
    context.aws_request_id = "test-request-id"
    context.log_group_name = "/aws/lambda/orchestra-task-a"
    return context
