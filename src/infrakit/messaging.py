"""SQS queues, SNS topics and topic subscriptions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from aws_cdk import Duration, RemovalPolicy
from aws_cdk import aws_sns as sns
from aws_cdk import aws_sns_subscriptions as subscriptions
from aws_cdk import aws_sqs as sqs
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, compact, resolve
from infrakit.errors import MissingPropertyError

FIFO_SUFFIX = ".fifo"


# === Queues ===

@dataclass(frozen=True)
class QueueConfig(BaseConfig):
    visibility_timeout: Duration | None = None
    retention_period: Duration | None = None
    delivery_delay: Duration | None = None
    receive_message_wait_time: Duration | None = None
    fifo: bool | None = None
    content_based_deduplication: bool | None = None
    dead_letter_queue: Any = None
    max_receive_count: int | None = None
    encryption: sqs.QueueEncryption | None = None
    encryption_master_key: Any = None
    enforce_ssl: bool | None = None
    removal_policy: RemovalPolicy | None = None
    grants: tuple[tuple[str, Any], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class QueueSpec(ResourceSpec[sqs.Queue]):
    kind = "Queue"
    construct_type = sqs.Queue

    grants: tuple[tuple[str, Any], ...] = ()

    def create(self, scope: Construct, props: dict[str, Any]) -> sqs.Queue:
        dead_letter = props.pop("dead_letter_queue", None)
        if dead_letter is not None:
            props["dead_letter_queue"] = sqs.DeadLetterQueue(
                queue=dead_letter["queue"],
                max_receive_count=dead_letter["max_receive_count"],
            )
        return sqs.Queue(scope, self.construct_id, **props)

    def after_create(self, scope: Construct, handle: sqs.Queue) -> None:
        for method, grantee in self.grants:
            getattr(handle, method)(resolve(grantee))


class QueueBuilder(Builder[QueueConfig, QueueSpec]):
    kind = "Queue"
    config_type = QueueConfig

    def visibility_timeout(self, timeout: Duration) -> QueueBuilder:
        return self._replace(visibility_timeout=timeout)

    def retention_period(self, period: Duration) -> QueueBuilder:
        return self._replace(retention_period=period)

    def delivery_delay(self, delay: Duration) -> QueueBuilder:
        return self._replace(delivery_delay=delay)

    def receive_message_wait_time(self, wait: Duration) -> QueueBuilder:
        return self._replace(receive_message_wait_time=wait)

    def fifo(self, enabled: bool = True) -> QueueBuilder:
        return self._replace(fifo=enabled)

    def content_based_deduplication(self, enabled: bool = True) -> QueueBuilder:
        return self._replace(content_based_deduplication=enabled)

    def dead_letter_queue(self, queue: Any, max_receive_count: int) -> QueueBuilder:
        """Redrive to ``queue`` (an ``sqs.IQueue`` or a queue descriptor)."""
        return self._replace(dead_letter_queue=queue, max_receive_count=max_receive_count)

    def encryption(self, encryption: sqs.QueueEncryption, master_key: Any = None) -> QueueBuilder:
        return self._replace(encryption=encryption, encryption_master_key=master_key)

    def enforce_ssl(self, enabled: bool = True) -> QueueBuilder:
        return self._replace(enforce_ssl=enabled)

    def removal_policy(self, policy: RemovalPolicy) -> QueueBuilder:
        return self._replace(removal_policy=policy)

    def grant_send_messages(self, grantee: Any) -> QueueBuilder:
        return self._append("grants", [("grant_send_messages", grantee)])

    def grant_consume_messages(self, grantee: Any) -> QueueBuilder:
        return self._append("grants", [("grant_consume_messages", grantee)])

    def finalize(self) -> QueueSpec:
        config = self.config
        if config.fifo and not self.name.endswith(FIFO_SUFFIX):
            raise self.unsafe("fifo", f"FIFO queue names must end with '{FIFO_SUFFIX}'")
        if config.content_based_deduplication and not config.fifo:
            raise self.unsafe("content_based_deduplication", "only FIFO queues deduplicate by content")

        dead_letter = None
        if config.dead_letter_queue is not None or config.max_receive_count is not None:
            if config.dead_letter_queue is None:
                raise MissingPropertyError(self.kind, self.name, "dead_letter_queue")
            if config.max_receive_count is None:
                raise MissingPropertyError(self.kind, self.name, "max_receive_count")
            if config.max_receive_count < 1:
                raise self.unsafe("max_receive_count", "must be at least 1")
            dead_letter = {"queue": config.dead_letter_queue, "max_receive_count": config.max_receive_count}

        return self.spec(QueueSpec, {
            "queue_name": self.name,
            "visibility_timeout": config.visibility_timeout,
            "retention_period": config.retention_period,
            "delivery_delay": config.delivery_delay,
            "receive_message_wait_time": config.receive_message_wait_time,
            "fifo": config.fifo,
            "content_based_deduplication": config.content_based_deduplication,
            "dead_letter_queue": dead_letter,
            "encryption": config.encryption,
            "encryption_master_key": config.encryption_master_key,
            "enforce_ssl": config.enforce_ssl,
            "removal_policy": config.removal_policy,
        }, grants=config.grants)


def queue(name: str) -> QueueBuilder:
    return QueueBuilder(name)


# === Topics ===

@dataclass(frozen=True)
class TopicConfig(BaseConfig):
    display_name: str | None = None
    fifo: bool | None = None
    content_based_deduplication: bool | None = None
    enforce_ssl: bool | None = None
    master_key: Any = None
    grants: tuple[tuple[str, Any], ...] = ()


@dataclass(frozen=True, kw_only=True, eq=False)
class TopicSpec(ResourceSpec[sns.Topic]):
    kind = "Topic"
    construct_type = sns.Topic

    grants: tuple[tuple[str, Any], ...] = ()

    def after_create(self, scope: Construct, handle: sns.Topic) -> None:
        for method, grantee in self.grants:
            getattr(handle, method)(resolve(grantee))


class TopicBuilder(Builder[TopicConfig, TopicSpec]):
    kind = "Topic"
    config_type = TopicConfig

    def display_name(self, display_name: str) -> TopicBuilder:
        return self._replace(display_name=display_name)

    def fifo(self, enabled: bool = True) -> TopicBuilder:
        return self._replace(fifo=enabled)

    def content_based_deduplication(self, enabled: bool = True) -> TopicBuilder:
        return self._replace(content_based_deduplication=enabled)

    def enforce_ssl(self, enabled: bool = True) -> TopicBuilder:
        return self._replace(enforce_ssl=enabled)

    def master_key(self, key: Any) -> TopicBuilder:
        return self._replace(master_key=key)

    def grant_publish(self, grantee: Any) -> TopicBuilder:
        return self._append("grants", [("grant_publish", grantee)])

    def finalize(self) -> TopicSpec:
        config = self.config
        if config.content_based_deduplication and not config.fifo:
            raise self.unsafe("content_based_deduplication", "only FIFO topics deduplicate by content")
        return self.spec(TopicSpec, {
            "topic_name": self.name,
            "display_name": config.display_name,
            "fifo": config.fifo,
            "content_based_deduplication": config.content_based_deduplication,
            "enforce_ssl": config.enforce_ssl,
            "master_key": config.master_key,
        }, grants=config.grants)


def topic(name: str) -> TopicBuilder:
    return TopicBuilder(name)


# === Subscriptions ===

@dataclass(frozen=True)
class SubscriptionConfig(BaseConfig):
    topic: Any = None
    endpoint_type: str | None = None
    endpoint: Any = None
    raw_message_delivery: bool | None = None
    filter_policy: Any = None
    dead_letter_queue: Any = None


@dataclass(frozen=True)
class SubscriptionSpec:
    """Attaches an endpoint to a topic when its stack is built."""

    name: str
    topic: Any
    endpoint_type: str
    endpoint: Any
    options: dict[str, Any]

    def instantiate(self, scope: Construct) -> sns.Subscription:
        topic_handle = resolve(self.topic)
        endpoint = resolve(self.endpoint)
        options = resolve(self.options)
        if self.endpoint_type == "queue":
            subscription = subscriptions.SqsSubscription(endpoint, **options)
        elif self.endpoint_type == "function":
            options.pop("raw_message_delivery", None)
            subscription = subscriptions.LambdaSubscription(endpoint, **options)
        elif self.endpoint_type == "email":
            options.pop("raw_message_delivery", None)
            subscription = subscriptions.EmailSubscription(endpoint, **options)
        else:
            subscription = subscriptions.UrlSubscription(endpoint, **options)
        return topic_handle.add_subscription(subscription)


class SubscriptionBuilder(Builder[SubscriptionConfig, SubscriptionSpec]):
    kind = "Subscription"
    config_type = SubscriptionConfig

    def topic(self, topic: Any) -> SubscriptionBuilder:
        return self._replace(topic=topic)

    def queue(self, queue: Any) -> SubscriptionBuilder:
        return self._replace(endpoint_type="queue", endpoint=queue)

    def function(self, function: Any) -> SubscriptionBuilder:
        return self._replace(endpoint_type="function", endpoint=function)

    def email(self, address: str) -> SubscriptionBuilder:
        return self._replace(endpoint_type="email", endpoint=address)

    def url(self, url: str) -> SubscriptionBuilder:
        return self._replace(endpoint_type="url", endpoint=url)

    def raw_message_delivery(self, enabled: bool = True) -> SubscriptionBuilder:
        return self._replace(raw_message_delivery=enabled)

    def filter_policy(self, policy: dict[str, sns.SubscriptionFilter]) -> SubscriptionBuilder:
        return self._replace(filter_policy=policy)

    def dead_letter_queue(self, queue: Any) -> SubscriptionBuilder:
        return self._replace(dead_letter_queue=queue)

    def finalize(self) -> SubscriptionSpec:
        config = self.config
        topic_ref = self.require("topic")
        self.require("endpoint")
        options = compact({
            "raw_message_delivery": config.raw_message_delivery,
            "filter_policy": config.filter_policy,
            "dead_letter_queue": config.dead_letter_queue,
        })
        return SubscriptionSpec(
            name=self.name,
            topic=topic_ref,
            endpoint_type=config.endpoint_type,
            endpoint=config.endpoint,
            options=options,
        )


def subscription(name: str) -> SubscriptionBuilder:
    return SubscriptionBuilder(name)
