"""Snapshot repository access.

Snapshots are named after the UTC second they were taken, so listing a
repository yields the timestamps the retention engine works on.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..clients.elasticsearch import ElasticsearchClient
from ..concurrency import CancelToken
from ..errors import WrongRepositoryType

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "snapshooter-%Y-%m-%dt%H-%M-%S"


def snapshot_name(t: datetime) -> str:
    return t.astimezone(timezone.utc).strftime(SNAPSHOT_FORMAT)


def parse_snapshot_name(name: str) -> Optional[datetime]:
    """Timestamp encoded in ``name``, or None if it is not one of ours."""
    try:
        t = datetime.strptime(name, SNAPSHOT_FORMAT)
    except ValueError:
        return None
    return t.replace(tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class SnapshotRepository(ABC):
    """A single Elasticsearch snapshot repository."""

    def __init__(
        self,
        client: ElasticsearchClient,
        name: str,
        repo_type: str,
        settings: Optional[Dict[str, Any]] = None,
        snapshot_timeout: Optional[float] = None,
        clock=_now,
    ):
        self.client = client
        self.name = name
        self.repo_type = repo_type
        self.settings = dict(settings or {})
        self.snapshot_timeout = snapshot_timeout
        self.clock = clock

    @abstractmethod
    def ensure(self, token: Optional[CancelToken] = None) -> None:
        """Create the repository if it is missing.

        Settings of an existing repository are not checked.

        Raises:
            WrongRepositoryType: The repository exists with another type.
        """

    @abstractmethod
    def create_snapshot(self, token: Optional[CancelToken] = None) -> datetime:
        """Take a snapshot and return the time it is named after."""

    @abstractmethod
    def delete_snapshot(self, t: datetime, token: Optional[CancelToken] = None) -> None:
        ...

    def list_snapshots(self, token: Optional[CancelToken] = None) -> List[datetime]:
        """Timestamps of the snapshots in the repository, oldest first.

        Snapshots whose names do not parse are ignored.
        """
        times = []
        for snap in self.client.get_snapshots(self.name, token=token):
            t = parse_snapshot_name(snap.get("snapshot", ""))
            if t is None:
                logger.debug(f"[snapshooter] ignoring snapshot {snap.get('snapshot')!r}")
                continue
            times.append(t)
        return sorted(times)


class ElasticsearchSnapshotRepository(SnapshotRepository):
    def ensure(self, token: Optional[CancelToken] = None) -> None:
        existing = self.client.get_repository(self.name, token=token)
        if existing is None:
            logger.info(f"[snapshooter] creating repository {self.name} (type={self.repo_type})")
            self.client.create_repository(self.name, self.repo_type, self.settings, token=token)
            return
        actual = existing.get("type", "")
        if actual != self.repo_type:
            raise WrongRepositoryType(self.name, self.repo_type, actual)

    def create_snapshot(self, token: Optional[CancelToken] = None) -> datetime:
        t = self.clock()
        self.client.create_snapshot(
            self.name, snapshot_name(t), wait_for_completion=True, timeout=self.snapshot_timeout, token=token
        )
        return t

    def delete_snapshot(self, t: datetime, token: Optional[CancelToken] = None) -> None:
        self.client.delete_snapshot(self.name, snapshot_name(t), token=token)


class DryRunSnapshotRepository(SnapshotRepository):
    """Lists the real repository but never changes it."""

    def ensure(self, token: Optional[CancelToken] = None) -> None:
        logger.info(f"[snapshooter] dry run: not ensuring repository {self.name}")

    def create_snapshot(self, token: Optional[CancelToken] = None) -> datetime:
        t = self.clock()
        logger.info(f"[snapshooter] dry run: not creating snapshot {snapshot_name(t)}")
        return t

    def delete_snapshot(self, t: datetime, token: Optional[CancelToken] = None) -> None:
        logger.info(f"[snapshooter] dry run: not deleting snapshot {snapshot_name(t)}")
