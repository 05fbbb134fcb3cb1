"""Snapshooter agent: takes snapshots on a schedule and prunes old ones."""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from prometheus_client import CollectorRegistry

from ..clients.aws import AWSClients
from ..clients.elasticsearch import ElasticsearchClient
from ..concurrency import CancelToken
from ..errors import FatalError, WrongRepositoryType
from ..retention import RetentionConfig, delete
from ..server.config import Config
from ..server.instrumentation import SnapshooterMetrics
from ..server.workers import PeriodicWorker
from .repository import DryRunSnapshotRepository, ElasticsearchSnapshotRepository, SnapshotRepository, snapshot_name

logger = logging.getLogger(__name__)


class Snapshooter:
    def __init__(
        self,
        repository: SnapshotRepository,
        retention: RetentionConfig,
        *,
        delete_old: bool = False,
        metrics: Optional[SnapshooterMetrics] = None,
    ):
        self.repository = repository
        self.retention = retention
        self.delete_old = delete_old
        self.metrics = metrics or SnapshooterMetrics()
        self._ensured = False

    def ensure_repository(self, token: Optional[CancelToken] = None) -> None:
        if self._ensured or not self.repository.repo_type:
            return
        try:
            self.repository.ensure(token)
        except WrongRepositoryType as exc:
            raise FatalError(str(exc)) from exc
        self._ensured = True

    def tick(self, token: Optional[CancelToken] = None) -> None:
        """Take one snapshot, then delete what retention no longer keeps."""
        self.ensure_repository(token)

        logger.info("[snapshooter] creating snapshot")
        t = self.repository.create_snapshot(token)
        self.metrics.snapshots_created.inc()
        logger.debug(f"[snapshooter] created snapshot {snapshot_name(t)}")

        snapshots = self.repository.list_snapshots(token)
        if not self.delete_old:
            self.metrics.snapshots_kept.set(len(snapshots))
            return

        doomed = delete(self.retention, snapshots)
        for s in doomed:
            if token is not None:
                token.raise_if_cancelled()
            logger.info(f"[snapshooter] deleting snapshot {snapshot_name(s)}")
            self.repository.delete_snapshot(s, token)
            self.metrics.snapshots_deleted.inc()
        self.metrics.snapshots_kept.set(len(snapshots) - len(doomed))


class SnapshooterApp:
    name = "snapshooter"

    def __init__(
        self,
        config: Config,
        es: ElasticsearchClient,
        aws: Optional[AWSClients] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        config.validate(self.name)
        self.config = config.snapshooter
        self.metrics = SnapshooterMetrics(registry)
        self.retention = RetentionConfig(
            hourly=self.config.hourly,
            daily=self.config.daily,
            weekly=self.config.weekly,
            monthly=self.config.monthly,
            yearly=self.config.yearly,
        )
        repo_cls = DryRunSnapshotRepository if self.config.dry_run else ElasticsearchSnapshotRepository
        repository = repo_cls(
            es,
            self.config.repository.name,
            self.config.repository.type,
            self.config.repository.settings,
            snapshot_timeout=self.config.snapshot_timeout,
        )
        self.snapshooter = Snapshooter(
            repository, self.retention, delete_old=self.config.delete, metrics=self.metrics
        )

    def workers(self, token: CancelToken) -> List[threading.Thread]:
        return [
            PeriodicWorker(
                "snapshooter",
                self.snapshooter.tick,
                self.retention.min_interval().total_seconds(),
                token,
                metrics=self.metrics,
            ),
        ]
