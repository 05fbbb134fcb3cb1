"""Collects per-node stats joined with EC2 instance data."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..clients.aws import call_aws
from ..clients.elasticsearch import ElasticsearchClient
from ..concurrency import CancelToken, TaskGroup
from ..data.models import EC2Instance, NodeStats
from ..data.settings import SHARD_ALLOC_EXCLUDE_SETTING, ShardAllocationExcludeSettings
from ..errors import InconsistentNodes

logger = logging.getLogger(__name__)


class NodeStatsCollector:
    """Builds ``NodeStats`` for every node of the cluster.

    EC2 instance descriptions are cached by instance ID; entries for
    instances no longer in the cluster are evicted after each pass.
    """

    source = "ec2"

    def __init__(self, es: ElasticsearchClient, ec2: Any):
        self.es = es
        self.ec2 = ec2
        self._instances: Dict[str, EC2Instance] = {}
        self._lock = threading.Lock()

    def collect(self, token: Optional[CancelToken] = None) -> Tuple[str, List[NodeStats]]:
        """Return the cluster name and stats of every node.

        Raises:
            InconsistentNodes: If a node has no matching EC2 instance.
            TransientRemoteError: If any API call failed.
        """
        with TaskGroup(token, max_workers=3, name="node-stats") as group:
            stats = group.spawn(self.es.nodes_stats, metrics=("os", "jvm", "fs"), token=group.token)
            settings = group.spawn(
                self.es.get_cluster_settings,
                filter_path=[f"*.{SHARD_ALLOC_EXCLUDE_SETTING}.*"],
                token=group.token,
            )
            health = group.spawn(self.es.cluster_health, token=group.token)

        samples = list((stats.result().get("nodes") or {}).values())
        settings_resp = settings.result() or {}
        transient = ShardAllocationExcludeSettings.from_settings(settings_resp.get("transient"))
        persistent = ShardAllocationExcludeSettings.from_settings(settings_resp.get("persistent"))

        names = [s.get("name", "") for s in samples]
        instances = self.describe_instances(names)

        nodes: List[NodeStats] = []
        for sample, name in zip(samples, names):
            instance = instances.get(name)
            if instance is None:
                raise InconsistentNodes(name, "")
            nodes.append(NodeStats.from_responses(sample, instance, transient, persistent))
        self._evict(names)
        return health.result().get("cluster_name", ""), nodes

    def describe_instances(self, instance_ids: Iterable[str]) -> Dict[str, EC2Instance]:
        ids = list(instance_ids)
        with self._lock:
            found = {i: self._instances[i] for i in ids if i in self._instances}
        missing = [i for i in ids if i not in found]
        if missing:
            logger.debug(f"[cloudwatcher] describing instances: {','.join(missing)}")
            paginator = self.ec2.get_paginator("describe_instances")
            pages = call_aws(self.source, "error describing instances", lambda: list(paginator.paginate(InstanceIds=missing)))
            described = [
                EC2Instance.from_description(i)
                for page in pages
                for r in page.get("Reservations", [])
                for i in r.get("Instances", [])
            ]
            with self._lock:
                for inst in described:
                    self._instances[inst.id] = inst
                    found[inst.id] = inst
        return found

    def _evict(self, current: Iterable[str]) -> None:
        keep = set(current)
        with self._lock:
            for instance_id in [i for i in self._instances if i not in keep]:
                del self._instances[instance_id]
