"""Fluent, immutable builders for AWS CDK resources with secure defaults."""
from infrakit.api import http_api, http_cors, rest_api, rest_cors
from infrakit.auth import user_pool, user_pool_client
from infrakit.cdn import Behavior, distribution, http_behavior, s3_behavior
from infrakit.certificates import certificate
from infrakit.compute import (
    dynamodb_stream_source,
    kinesis_source,
    lambda_function,
    sns_source,
    sqs_source,
)
from infrakit.config import environment, load_environment
from infrakit.core import Builder, ResourceRef, ResourceSpec
from infrakit.database import Access, grant, table
from infrakit.dns import a_record, alb_target, cloudfront_target, hosted_zone
from infrakit.errors import (
    ConfigurationError,
    MissingPropertyError,
    ResourceBindingError,
    UnresolvedResourceError,
    UnsafeConfigurationError,
)
from infrakit.events import event_rule
from infrakit.load_balancing import application_load_balancer, network_load_balancer
from infrakit.messaging import queue, subscription, topic
from infrakit.network import route, route_table, security_group, vpc
from infrakit.observability import alarm, dashboard, log_group, trail
from infrakit.parameters import string_parameter
from infrakit.rds import database_instance, mysql_engine, postgres_engine
from infrakit.registry import delete_tagged_after, delete_untagged_after, keep_last_images, repository
from infrakit.security import kms_key, managed_policy, policy_statement, secret
from infrakit.stack import app, stack
from infrakit.storage import (
    bucket,
    bucket_policy,
    cors_rule,
    delete_noncurrent_versions,
    expire_after,
    lifecycle_rule,
    transition_to_glacier,
)
from infrakit.streaming import kinesis_stream
from infrakit.tags import StandardTags, apply_standard_tags, apply_tags, remove_tags
from infrakit.workflows import state_machine

__version__ = "0.1.0"
