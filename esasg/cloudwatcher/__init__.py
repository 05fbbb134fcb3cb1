"""Cloudwatcher - aggregates node stats into CloudWatch metrics."""

from .aggregation import KNOWN_HEAP_POOLS, MetricDatum, MetricSpec, aggregate
from .app import CloudWatcher, CloudwatcherApp, build_metric_data, group_by_role
from .collector import NodeStatsCollector

__all__ = [
    "KNOWN_HEAP_POOLS",
    "MetricDatum",
    "MetricSpec",
    "aggregate",
    "CloudWatcher",
    "CloudwatcherApp",
    "build_metric_data",
    "group_by_role",
    "NodeStatsCollector",
]
