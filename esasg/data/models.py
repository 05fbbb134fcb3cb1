"""Data models shared by the agents.

All models are read-only snapshots assembled from one or more API
responses. Node names double as EC2 instance IDs: every Elasticsearch
node is named after the instance it runs on.
"""

from __future__ import annotations

import bisect
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import InconsistentNodes, InvalidLifecycleAction
from .events import CloudWatchEvent, LifecycleActionDetail
from .settings import ShardAllocationExcludeSettings

TERMINATING_TRANSITION = "autoscaling:EC2_INSTANCE_TERMINATING"


# =============================================================================
# Cluster state (drainer)
# =============================================================================


def parse_shard_nodes(node: Optional[str]) -> List[str]:
    """Return the node(s) a ``_cat/shards`` row occupies.

    A relocating shard's node column reads ``"src -> 10.0.0.2 id dst"``;
    the shard counts against both ends until relocation finishes.
    """
    if not node:
        return []
    parts = node.split()
    if len(parts) == 1:
        return parts
    if len(parts) == 5:
        return [parts[0], parts[4]]
    return [parts[0]]


@dataclass
class ClusterState:
    """Nodes, per-node shard counts and transient exclusions of a cluster."""

    nodes: List[str] = field(default_factory=list)  # sorted
    shards: Dict[str, int] = field(default_factory=dict)  # keys are a subset of nodes
    exclusions: ShardAllocationExcludeSettings = field(default_factory=ShardAllocationExcludeSettings)

    @classmethod
    def from_responses(
        cls,
        nodes_info: Dict[str, Any],
        shard_rows: Iterable[Dict[str, Any]],
        settings: Dict[str, Any],
    ) -> "ClusterState":
        nodes = sorted(n["name"] for n in (nodes_info.get("nodes") or {}).values() if n.get("name"))
        known = set(nodes)
        counts: Counter = Counter()
        for row in shard_rows:
            for node in parse_shard_nodes(row.get("node")):
                if node in known:
                    counts[node] += 1
        exclusions = ShardAllocationExcludeSettings.from_settings((settings or {}).get("transient"))
        return cls(nodes=nodes, shards=dict(counts), exclusions=exclusions)

    def has_node(self, name: str) -> bool:
        i = bisect.bisect_left(self.nodes, name)
        return i < len(self.nodes) and self.nodes[i] == name

    def shards_on(self, name: str) -> int:
        return self.shards.get(name, 0)

    def diff_nodes(self, other: "ClusterState") -> Tuple[List[str], List[str]]:
        """Return (added, removed) node names going from this state to ``other``."""
        mine, theirs = set(self.nodes), set(other.nodes)
        return sorted(theirs - mine), sorted(mine - theirs)


# =============================================================================
# Node stats (cloudwatcher)
# =============================================================================


@dataclass(frozen=True)
class EC2Instance:
    """The parts of an EC2 instance description worth caching."""

    id: str
    vcpus: int

    @classmethod
    def from_description(cls, instance: Dict[str, Any]) -> "EC2Instance":
        cpu = instance.get("CpuOptions") or {}
        return cls(
            id=instance["InstanceId"],
            vcpus=int(cpu.get("CoreCount", 0)) * int(cpu.get("ThreadsPerCore", 1)),
        )


@dataclass
class HeapStats:
    max_bytes: Optional[int] = None
    used_bytes: Optional[int] = None


def _get(data: Dict[str, Any], *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _is_excluded(sample: Dict[str, Any], settings: ShardAllocationExcludeSettings) -> bool:
    if settings.has_name(sample.get("name", "")):
        return True
    if sample.get("ip") and settings.has_ip(str(sample["ip"])):
        return True
    if sample.get("host") and settings.has_host(str(sample["host"])):
        return True
    for key, value in (sample.get("attributes") or {}).items():
        if settings.has_attr(key, str(value)):
            return True
    return False


@dataclass
class NodeStats:
    """Resource usage of one Elasticsearch node."""

    name: str
    roles: List[str] = field(default_factory=list)  # sorted
    excluded_from_allocation: bool = False
    vcpus: Optional[int] = None
    load_1m: Optional[float] = None
    load_5m: Optional[float] = None
    load_15m: Optional[float] = None
    heap: HeapStats = field(default_factory=HeapStats)
    heap_pools: Dict[str, HeapStats] = field(default_factory=dict)
    fs_total_bytes: Optional[int] = None
    fs_available_bytes: Optional[int] = None

    @classmethod
    def from_responses(
        cls,
        sample: Dict[str, Any],
        instance: EC2Instance,
        transient: ShardAllocationExcludeSettings,
        persistent: ShardAllocationExcludeSettings,
    ) -> "NodeStats":
        """Join a ``_nodes/stats`` entry with its EC2 instance and the exclusions.

        Raises:
            InconsistentNodes: If the stats and instance describe different nodes.
        """
        name = sample.get("name", "")
        if name != instance.id:
            raise InconsistentNodes(name, instance.id)

        load = _get(sample, "os", "cpu", "load_average") or {}
        pools = _get(sample, "jvm", "mem", "pools") or {}
        return cls(
            name=name,
            roles=sorted(sample.get("roles") or []),
            excluded_from_allocation=_is_excluded(sample, transient) or _is_excluded(sample, persistent),
            vcpus=instance.vcpus,
            load_1m=load.get("1m"),
            load_5m=load.get("5m"),
            load_15m=load.get("15m"),
            heap=HeapStats(
                max_bytes=_get(sample, "jvm", "mem", "heap_max_in_bytes"),
                used_bytes=_get(sample, "jvm", "mem", "heap_used_in_bytes"),
            ),
            heap_pools={
                pool: HeapStats(max_bytes=v.get("max_in_bytes"), used_bytes=v.get("used_in_bytes"))
                for pool, v in pools.items()
            },
            fs_total_bytes=_get(sample, "fs", "total", "total_in_bytes"),
            fs_available_bytes=_get(sample, "fs", "total", "available_in_bytes"),
        )

    def has_role(self, role: str) -> bool:
        """True if the node has ``role``.

        ``"all"`` matches every node and ``"coordinate"`` matches nodes with
        no explicit roles (coordinating-only nodes).
        """
        if role == "all":
            return True
        if role == "coordinate":
            return not self.roles
        i = bisect.bisect_left(self.roles, role)
        return i < len(self.roles) and self.roles[i] == role


# =============================================================================
# Throttler inputs
# =============================================================================


class HealthStatus(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


@dataclass(frozen=True)
class ElasticsearchState:
    status: str
    relocating_shards: bool = False
    recovering_from_store: bool = False

    @classmethod
    def from_responses(cls, health: Dict[str, Any], recovery: Dict[str, Any]) -> "ElasticsearchState":
        recovering = any(
            str(shard.get("type", "")).lower() == "store"
            for index in (recovery or {}).values()
            if isinstance(index, dict)
            for shard in index.get("shards", [])
        )
        return cls(
            status=str(health.get("status", "")).lower(),
            relocating_shards=int(health.get("relocating_shards") or 0) > 0,
            recovering_from_store=recovering,
        )

    @property
    def good(self) -> bool:
        return (
            self.status != HealthStatus.RED.value
            and not self.relocating_shards
            and not self.recovering_from_store
        )


@dataclass(frozen=True)
class ECSServiceState:
    name: str
    num_deployments: int

    @property
    def good(self) -> bool:
        # More than one deployment means a rollout is in progress.
        return self.num_deployments <= 1


# =============================================================================
# Lifecycle actions (drainer)
# =============================================================================


@dataclass
class LifecycleAction:
    """A pending termination lifecycle action of an auto scaling group."""

    group: str
    hook_name: str
    token: str
    instance_id: str
    transition: str
    start: datetime
    heartbeat_count: int = 0

    @classmethod
    def from_event(cls, event: CloudWatchEvent) -> "LifecycleAction":
        detail = event.detail
        if not isinstance(detail, LifecycleActionDetail):
            raise InvalidLifecycleAction(f"event {event.id} is not a lifecycle action: {event.detail_type!r}")
        if detail.lifecycle_transition != TERMINATING_TRANSITION:
            raise InvalidLifecycleAction(
                f"event {event.id} has transition {detail.lifecycle_transition!r}, want {TERMINATING_TRANSITION!r}"
            )
        return cls(
            group=detail.auto_scaling_group_name,
            hook_name=detail.lifecycle_hook_name,
            token=detail.lifecycle_action_token,
            instance_id=detail.ec2_instance_id,
            transition=detail.lifecycle_transition,
            start=event.time or datetime.now(timezone.utc),
        )
