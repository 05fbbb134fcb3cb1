"""Data layer - cluster models, exclusion settings and event decoding."""

from .events import (
    CloudWatchEvent,
    LifecycleActionDetail,
    SpotInterruptionDetail,
    register_detail_type,
)
from .models import (
    ClusterState,
    EC2Instance,
    ECSServiceState,
    ElasticsearchState,
    HeapStats,
    LifecycleAction,
    NodeStats,
)
from .settings import SHARD_ALLOC_EXCLUDE_SETTING, ShardAllocationExcludeSettings

__all__ = [
    "CloudWatchEvent",
    "LifecycleActionDetail",
    "SpotInterruptionDetail",
    "register_detail_type",
    "ClusterState",
    "EC2Instance",
    "ECSServiceState",
    "ElasticsearchState",
    "HeapStats",
    "LifecycleAction",
    "NodeStats",
    "SHARD_ALLOC_EXCLUDE_SETTING",
    "ShardAllocationExcludeSettings",
]
