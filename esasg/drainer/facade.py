"""Cluster facade used by the drainer.

Reads are assembled from three concurrent requests; writes to the shard
allocation exclusion list are read-modify-write and therefore serialised
behind a single writer slot.
"""

from __future__ import annotations

import bisect
import logging
from typing import Iterable, List, Optional

from ..clients.elasticsearch import ElasticsearchClient
from ..concurrency import CancelToken, ReadWriteLock, TaskGroup
from ..data.models import ClusterState
from ..data.settings import SHARD_ALLOC_EXCLUDE_SETTING, ShardAllocationExcludeSettings

logger = logging.getLogger(__name__)

EXCLUDE_FILTER_PATH = f"*.{SHARD_ALLOC_EXCLUDE_SETTING}.*"


class ElasticsearchFacade:
    """Drain and undrain nodes by name; observe nodes and shard placement."""

    def __init__(self, client: ElasticsearchClient):
        self.client = client
        self._lock = ReadWriteLock()

    def get_state(self, token: Optional[CancelToken] = None) -> ClusterState:
        """Read nodes, shards and transient exclusions concurrently.

        Raises:
            TransientRemoteError: The earliest of the three read failures.
        """
        with self._lock.read():
            with TaskGroup(token, max_workers=3, name="cluster-state") as group:
                nodes = group.spawn(self.client.nodes_info, token=group.token)
                shards = group.spawn(self.client.cat_shards, token=group.token)
                settings = group.spawn(
                    self.client.get_cluster_settings,
                    filter_path=[EXCLUDE_FILTER_PATH],
                    token=group.token,
                )
        return ClusterState.from_responses(nodes.result(), shards.result(), settings.result())

    def drain_nodes(self, names: Iterable[str], token: Optional[CancelToken] = None) -> bool:
        """Add ``names`` to the transient exclusion list.

        Returns:
            True if the setting was written, False if every name was
            already excluded.
        """
        names = list(names)
        with self._lock.write():
            excluded = self._transient_names(token)
            added: List[str] = []
            for name in names:
                i = bisect.bisect_left(excluded, name)
                if i < len(excluded) and excluded[i] == name:
                    continue
                excluded.insert(i, name)
                added.append(name)
            if not added:
                logger.debug(f"[facade] nodes already drained: {','.join(names)}")
                return False
            self._put_transient_names(excluded, token)
        logger.info(f"[facade] drained nodes: {','.join(added)}")
        return True

    def undrain_nodes(self, names: Iterable[str], token: Optional[CancelToken] = None) -> bool:
        """Remove ``names`` from the transient exclusion list.

        Returns:
            True if the setting was written, False if none of the names
            was excluded.
        """
        names = list(names)
        with self._lock.write():
            excluded = self._transient_names(token)
            removed: List[str] = []
            for name in names:
                i = bisect.bisect_left(excluded, name)
                if i < len(excluded) and excluded[i] == name:
                    del excluded[i]
                    removed.append(name)
            if not removed:
                logger.debug(f"[facade] nodes not drained: {','.join(names)}")
                return False
            self._put_transient_names(excluded, token)
        logger.info(f"[facade] undrained nodes: {','.join(removed)}")
        return True

    def _transient_names(self, token: Optional[CancelToken]) -> List[str]:
        settings = self.client.get_cluster_settings(filter_path=[EXCLUDE_FILTER_PATH], token=token)
        exclusions = ShardAllocationExcludeSettings.from_settings((settings or {}).get("transient"))
        return list(exclusions.name or [])

    def _put_transient_names(self, names: List[str], token: Optional[CancelToken]) -> None:
        # ip, host and attributes are left out of the write; only the name list is managed.
        exclusions = ShardAllocationExcludeSettings(name=names)
        self.client.put_cluster_settings({"transient": exclusions.to_map()}, token=token)
