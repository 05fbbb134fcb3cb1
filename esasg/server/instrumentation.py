"""Prometheus metrics for each agent.

Every metrics class registers on the registry it is given, so tests and
multiple agents in one process never collide on the global registry.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

NAMESPACE = "esasg"


class LoopMetrics:
    """Metrics common to every periodic loop."""

    def __init__(self, subsystem: str, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.loops = Counter(
            "loops", "Loop iterations started.",
            namespace=NAMESPACE, subsystem=subsystem, registry=self.registry,
        )
        self.loop_failures = Counter(
            "loop_failures", "Loop iterations that ended with an error.",
            namespace=NAMESPACE, subsystem=subsystem, registry=self.registry,
        )
        self.skipped_ticks = Counter(
            "skipped_ticks", "Ticks dropped because the previous iteration was still running.",
            namespace=NAMESPACE, subsystem=subsystem, registry=self.registry,
        )
        self.loop_duration = Histogram(
            "loop_duration_seconds", "Duration of loop iterations.",
            namespace=NAMESPACE, subsystem=subsystem, registry=self.registry,
        )


class DrainerMetrics(LoopMetrics):
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        super().__init__("drainer", registry)
        kw = dict(namespace=NAMESPACE, subsystem="drainer", registry=self.registry)
        self.messages_received = Counter("messages_received", "Queue messages received.", **kw)
        self.messages_acked = Counter("messages_acked", "Queue messages acknowledged after draining.", **kw)
        self.messages_abandoned = Counter("messages_abandoned", "Queue messages left for redelivery.", **kw)
        self.messages_dead = Counter("messages_dead", "Undecodable queue messages dropped.", **kw)
        self.spot_interruptions = Counter("spot_interruptions", "Spot interruption warnings handled.", **kw)
        self.termination_actions = Counter("termination_actions", "Termination lifecycle actions handled.", **kw)
        self.heartbeats = Counter("lifecycle_heartbeats", "Lifecycle action heartbeats sent.", **kw)
        self.nodes_pruned = Counter("nodes_pruned", "Departed nodes removed from the exclusion list.", **kw)
        self.in_progress = Gauge("messages_in_progress", "Messages currently being processed.", **kw)


class ThrottlerMetrics(LoopMetrics):
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        super().__init__("throttler", registry)
        self.scaling_enabled = Gauge(
            "autoscaling_enabled", "1 if scaling processes of the group are resumed, 0 if suspended.",
            ["group"], namespace=NAMESPACE, subsystem="throttler", registry=self.registry,
        )
        self.cluster_good = Gauge(
            "cluster_good", "1 if the last observation allowed scaling.",
            namespace=NAMESPACE, subsystem="throttler", registry=self.registry,
        )


class CloudwatcherMetrics(LoopMetrics):
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        super().__init__("cloudwatcher", registry)
        kw = dict(namespace=NAMESPACE, subsystem="cloudwatcher", registry=self.registry)
        self.metrics_pushed = Counter("metrics_pushed", "Metric data points pushed to CloudWatch.", **kw)
        self.nodes_observed = Gauge("nodes_observed", "Nodes in the last aggregation pass.", **kw)
        self.inconsistent_nodes = Counter(
            "inconsistent_nodes", "Collection passes failed because node stats and instance did not match.", **kw
        )


class SnapshooterMetrics(LoopMetrics):
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        super().__init__("snapshooter", registry)
        kw = dict(namespace=NAMESPACE, subsystem="snapshooter", registry=self.registry)
        self.snapshots_created = Counter("snapshots_created", "Snapshots created.", **kw)
        self.snapshots_deleted = Counter("snapshots_deleted", "Snapshots deleted by retention.", **kw)
        self.snapshots_kept = Gauge("snapshots_kept", "Snapshots kept by the last retention pass.", **kw)
