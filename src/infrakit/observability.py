"""Log groups, CloudTrail trails, CloudWatch alarms and dashboards."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import Duration, RemovalPolicy
from aws_cdk import aws_cloudtrail as cloudtrail
from aws_cdk import aws_cloudwatch as cloudwatch
from aws_cdk import aws_logs as logs
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec, compact
from infrakit.errors import MissingPropertyError


# === Log groups ===

@dataclass(frozen=True)
class LogGroupConfig(BaseConfig):
    retention: logs.RetentionDays | None = None
    removal_policy: RemovalPolicy | None = None
    encryption_key: Any = None
    log_group_class: logs.LogGroupClass | None = None


class LogGroupSpec(ResourceSpec[logs.LogGroup]):
    kind = "LogGroup"
    construct_type = logs.LogGroup


class LogGroupBuilder(Builder[LogGroupConfig, LogGroupSpec]):
    kind = "LogGroup"
    config_type = LogGroupConfig
    defaults = MappingProxyType({
        "retention": logs.RetentionDays.ONE_WEEK,
        "removal_policy": RemovalPolicy.DESTROY,
    })

    def retention(self, retention: logs.RetentionDays) -> LogGroupBuilder:
        return self._replace(retention=retention)

    def removal_policy(self, policy: RemovalPolicy) -> LogGroupBuilder:
        return self._replace(removal_policy=policy)

    def encryption_key(self, key: Any) -> LogGroupBuilder:
        return self._replace(encryption_key=key)

    def log_group_class(self, log_group_class: logs.LogGroupClass) -> LogGroupBuilder:
        return self._replace(log_group_class=log_group_class)

    def finalize(self) -> LogGroupSpec:
        config = self.config
        return self.spec(LogGroupSpec, {
            "log_group_name": self.name,
            "retention": self.value("retention"),
            "removal_policy": self.value("removal_policy"),
            "encryption_key": config.encryption_key,
            "log_group_class": config.log_group_class,
        })


def log_group(name: str) -> LogGroupBuilder:
    return LogGroupBuilder(name)


# === Audit trails ===

@dataclass(frozen=True)
class TrailConfig(BaseConfig):
    is_multi_region_trail: bool | None = None
    include_global_service_events: bool | None = None
    enable_file_validation: bool | None = None
    management_events: cloudtrail.ReadWriteType | None = None
    send_to_cloud_watch_logs: bool | None = None
    cloud_watch_logs_retention: logs.RetentionDays | None = None
    bucket: Any = None
    s3_key_prefix: str | None = None
    encryption_key: Any = None
    is_organization_trail: bool | None = None


class TrailSpec(ResourceSpec[cloudtrail.Trail]):
    kind = "Trail"
    construct_type = cloudtrail.Trail


class TrailBuilder(Builder[TrailConfig, TrailSpec]):
    """Multi-region trail with log file validation and every management event,
    also delivered to CloudWatch Logs for a month."""

    kind = "Trail"
    config_type = TrailConfig
    defaults = MappingProxyType({
        "is_multi_region_trail": True,
        "include_global_service_events": True,
        "enable_file_validation": True,
        "management_events": cloudtrail.ReadWriteType.ALL,
        "send_to_cloud_watch_logs": True,
        "cloud_watch_logs_retention": logs.RetentionDays.ONE_MONTH,
    })

    def multi_region(self, enabled: bool = True) -> TrailBuilder:
        return self._replace(is_multi_region_trail=enabled)

    def include_global_service_events(self, enabled: bool = True) -> TrailBuilder:
        return self._replace(include_global_service_events=enabled)

    def enable_file_validation(self, enabled: bool = True) -> TrailBuilder:
        return self._replace(enable_file_validation=enabled)

    def management_events(self, read_write_type: cloudtrail.ReadWriteType) -> TrailBuilder:
        return self._replace(management_events=read_write_type)

    def send_to_cloud_watch_logs(self, enabled: bool = True, retention: logs.RetentionDays | None = None) -> TrailBuilder:
        return self._replace(send_to_cloud_watch_logs=enabled, cloud_watch_logs_retention=retention)

    def bucket(self, bucket: Any, key_prefix: str | None = None) -> TrailBuilder:
        return self._replace(bucket=bucket, s3_key_prefix=key_prefix)

    def encryption_key(self, key: Any) -> TrailBuilder:
        return self._replace(encryption_key=key)

    def organization_trail(self, enabled: bool = True) -> TrailBuilder:
        return self._replace(is_organization_trail=enabled)

    def finalize(self) -> TrailSpec:
        config = self.config
        send_to_logs = self.value("send_to_cloud_watch_logs")
        return self.spec(TrailSpec, {
            "trail_name": self.name,
            "is_multi_region_trail": self.value("is_multi_region_trail"),
            "include_global_service_events": self.value("include_global_service_events"),
            "enable_file_validation": self.value("enable_file_validation"),
            "management_events": self.value("management_events"),
            "send_to_cloud_watch_logs": send_to_logs,
            "cloud_watch_logs_retention": self.value("cloud_watch_logs_retention") if send_to_logs else None,
            "bucket": config.bucket,
            "s3_key_prefix": config.s3_key_prefix,
            "encryption_key": config.encryption_key,
            "is_organization_trail": config.is_organization_trail,
        })


def trail(name: str) -> TrailBuilder:
    return TrailBuilder(name)


# === Alarms ===

@dataclass(frozen=True)
class AlarmConfig(BaseConfig):
    description: str | None = None
    metric: Any = None
    metric_namespace: str | None = None
    metric_name: str | None = None
    dimensions: tuple[tuple[str, str], ...] = ()
    statistic: str | None = None
    period: Duration | None = None
    threshold: float | None = None
    evaluation_periods: int | None = None
    datapoints_to_alarm: int | None = None
    comparison_operator: cloudwatch.ComparisonOperator | None = None
    treat_missing_data: cloudwatch.TreatMissingData | None = None
    actions_enabled: bool | None = None


class AlarmSpec(ResourceSpec[cloudwatch.Alarm]):
    kind = "Alarm"
    construct_type = cloudwatch.Alarm

    def create(self, scope: Construct, props: dict[str, Any]) -> cloudwatch.Alarm:
        if callable(props["metric"]):
            props["metric"] = props["metric"]()
        return cloudwatch.Alarm(scope, self.construct_id, **props)


class AlarmBuilder(Builder[AlarmConfig, AlarmSpec]):
    """Alarm on either a ready metric or a namespace/metric name pair.

    Defaults to firing at or above a threshold of 1 over one 5-minute period,
    treating missing data as not breaching.
    """

    kind = "Alarm"
    config_type = AlarmConfig
    defaults = MappingProxyType({
        "statistic": "Average",
        "period": Duration.minutes(5),
        "threshold": 1.0,
        "evaluation_periods": 1,
        "comparison_operator": cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
        "treat_missing_data": cloudwatch.TreatMissingData.NOT_BREACHING,
        "actions_enabled": True,
    })

    def description(self, description: str) -> AlarmBuilder:
        return self._replace(description=description)

    def metric(self, metric: Any) -> AlarmBuilder:
        """A metric, or a no-argument callable returning one once resources exist."""
        return self._replace(metric=metric)

    def metric_namespace(self, namespace: str) -> AlarmBuilder:
        return self._replace(metric_namespace=namespace)

    def metric_name(self, metric_name: str) -> AlarmBuilder:
        return self._replace(metric_name=metric_name)

    def dimension(self, name: str, value: str) -> AlarmBuilder:
        return self._append("dimensions", [(name, value)])

    def statistic(self, statistic: str) -> AlarmBuilder:
        return self._replace(statistic=statistic)

    def period(self, period: Duration) -> AlarmBuilder:
        return self._replace(period=period)

    def threshold(self, threshold: float) -> AlarmBuilder:
        return self._replace(threshold=threshold)

    def evaluation_periods(self, periods: int) -> AlarmBuilder:
        return self._replace(evaluation_periods=periods)

    def datapoints_to_alarm(self, datapoints: int) -> AlarmBuilder:
        return self._replace(datapoints_to_alarm=datapoints)

    def comparison_operator(self, operator: cloudwatch.ComparisonOperator) -> AlarmBuilder:
        return self._replace(comparison_operator=operator)

    def treat_missing_data(self, treatment: cloudwatch.TreatMissingData) -> AlarmBuilder:
        return self._replace(treat_missing_data=treatment)

    def actions_enabled(self, enabled: bool = True) -> AlarmBuilder:
        return self._replace(actions_enabled=enabled)

    def finalize(self) -> AlarmSpec:
        config = self.config
        named = config.metric_namespace is not None or config.metric_name is not None
        if config.metric is not None and named:
            raise self.unsafe("metric", "set either a metric or a namespace and metric name, not both")
        shaped = config.statistic is not None or config.period is not None or bool(config.dimensions)
        if config.metric is not None and shaped:
            raise self.unsafe(
                "metric", "a ready metric ignores statistic, period and dimensions; set them on the metric",
            )

        metric = config.metric
        if metric is None:
            if config.metric_namespace is None:
                raise MissingPropertyError(self.kind, self.name, "metric_namespace")
            if config.metric_name is None:
                raise MissingPropertyError(self.kind, self.name, "metric_name")
            metric = cloudwatch.Metric(**compact({
                "namespace": config.metric_namespace,
                "metric_name": config.metric_name,
                "statistic": self.value("statistic"),
                "period": self.value("period"),
                "dimensions_map": dict(config.dimensions) or None,
            }))

        return self.spec(AlarmSpec, {
            "alarm_name": self.name,
            "alarm_description": config.description,
            "metric": metric,
            "threshold": self.value("threshold"),
            "evaluation_periods": self.value("evaluation_periods"),
            "datapoints_to_alarm": config.datapoints_to_alarm,
            "comparison_operator": self.value("comparison_operator"),
            "treat_missing_data": self.value("treat_missing_data"),
            "actions_enabled": self.value("actions_enabled"),
        })


def alarm(name: str) -> AlarmBuilder:
    return AlarmBuilder(name)


# === Dashboards ===

@dataclass(frozen=True)
class DashboardConfig(BaseConfig):
    rows: tuple[Any, ...] = ()
    default_interval: Duration | None = None
    period_override: cloudwatch.PeriodOverride | None = None


@dataclass(frozen=True, kw_only=True, eq=False)
class DashboardSpec(ResourceSpec[cloudwatch.Dashboard]):
    kind = "Dashboard"
    construct_type = cloudwatch.Dashboard

    rows: tuple[Any, ...] = ()

    def after_create(self, scope: Construct, handle: cloudwatch.Dashboard) -> None:
        for row in self.rows:
            widgets = row() if callable(row) else row
            handle.add_widgets(*widgets)


class DashboardBuilder(Builder[DashboardConfig, DashboardSpec]):
    kind = "Dashboard"
    config_type = DashboardConfig
    defaults = MappingProxyType({"default_interval": Duration.minutes(5)})

    def row(self, *widgets: cloudwatch.IWidget) -> DashboardBuilder:
        return self._append("rows", [widgets])

    def lazy_row(self, factory: Any) -> DashboardBuilder:
        """Row built once the dashboard's stack exists, e.g. from live metrics."""
        return self._append("rows", [factory])

    def default_interval(self, interval: Duration) -> DashboardBuilder:
        return self._replace(default_interval=interval)

    def period_override(self, override: cloudwatch.PeriodOverride) -> DashboardBuilder:
        return self._replace(period_override=override)

    def finalize(self) -> DashboardSpec:
        config = self.config
        return self.spec(DashboardSpec, {
            "dashboard_name": self.name,
            "default_interval": self.value("default_interval"),
            "period_override": config.period_override,
        }, rows=config.rows)


def dashboard(name: str) -> DashboardBuilder:
    return DashboardBuilder(name)
