"""Cloudwatcher agent: publishes cluster-wide node metrics to CloudWatch."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from prometheus_client import CollectorRegistry

from ..clients.aws import AWSClients, call_aws
from ..clients.elasticsearch import ElasticsearchClient
from ..concurrency import CancelToken
from ..data.models import NodeStats
from ..errors import InconsistentNodes
from ..server.config import Config
from ..server.instrumentation import CloudwatcherMetrics
from ..server.workers import PeriodicWorker
from .aggregation import MetricDatum, aggregate
from .collector import NodeStatsCollector

logger = logging.getLogger(__name__)

PUT_METRIC_DATA_LIMIT = 20


def group_by_role(nodes: Sequence[NodeStats]) -> Dict[str, List[NodeStats]]:
    """Group nodes under "all", "coordinate" (no roles) and each of their roles."""
    groups: Dict[str, List[NodeStats]] = defaultdict(list)
    for n in nodes:
        groups["all"].append(n)
        if not n.roles:
            groups["coordinate"].append(n)
        for role in n.roles:
            groups[role].append(n)
    return dict(groups)


def build_metric_data(
    cluster_name: str,
    nodes: Sequence[NodeStats],
    timestamp: Optional[datetime] = None,
) -> List[MetricDatum]:
    timestamp = timestamp or datetime.now(timezone.utc)
    data: List[MetricDatum] = []
    for role, members in sorted(group_by_role(nodes).items()):
        dimensions = [("ClusterName", cluster_name), ("Role", role)]
        data.extend(aggregate(members, dimensions, timestamp))
    return data


class CloudWatcher:
    source = "cloudwatch"

    def __init__(
        self,
        collector: NodeStatsCollector,
        cloudwatch: Any,
        namespace: str,
        metrics: Optional[CloudwatcherMetrics] = None,
    ):
        self.collector = collector
        self.cloudwatch = cloudwatch
        self.namespace = namespace
        self.metrics = metrics or CloudwatcherMetrics()

    def tick(self, token: Optional[CancelToken] = None) -> int:
        try:
            cluster_name, nodes = self.collector.collect(token)
        except InconsistentNodes:
            self.metrics.inconsistent_nodes.inc()
            raise
        self.metrics.nodes_observed.set(len(nodes))
        data = build_metric_data(cluster_name, nodes)
        logger.info(f"[cloudwatcher] pushing {len(data)} metrics for {len(nodes)} nodes")
        self.push(data, token)
        return len(data)

    def push(self, data: Sequence[MetricDatum], token: Optional[CancelToken] = None) -> None:
        for i in range(0, len(data), PUT_METRIC_DATA_LIMIT):
            if token is not None:
                token.raise_if_cancelled()
            batch = data[i:i + PUT_METRIC_DATA_LIMIT]
            call_aws(
                self.source,
                "error putting metric data",
                self.cloudwatch.put_metric_data,
                Namespace=self.namespace,
                MetricData=[d.to_cloudwatch() for d in batch],
            )
            self.metrics.metrics_pushed.inc(len(batch))


class CloudwatcherApp:
    name = "cloudwatcher"

    def __init__(
        self,
        config: Config,
        es: ElasticsearchClient,
        aws: AWSClients,
        registry: Optional[CollectorRegistry] = None,
    ):
        config.validate(self.name)
        self.config = config.cloudwatcher
        self.metrics = CloudwatcherMetrics(registry)
        self.cloudwatcher = CloudWatcher(
            NodeStatsCollector(es, aws.ec2),
            aws.cloudwatch,
            self.config.namespace,
            metrics=self.metrics,
        )

    def workers(self, token: CancelToken) -> List[threading.Thread]:
        return [
            PeriodicWorker(
                "cloudwatcher",
                self.cloudwatcher.tick,
                self.config.interval,
                token,
                metrics=self.metrics,
                timeout=self.config.interval,
            ),
        ]
