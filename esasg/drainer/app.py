"""Drainer agent: drains nodes ahead of termination and prunes departed ones."""

from __future__ import annotations

import threading
from typing import List, Optional

from prometheus_client import CollectorRegistry

from ..clients.aws import AWSClients
from ..clients.elasticsearch import ElasticsearchClient
from ..concurrency import CancelToken
from ..server.config import Config
from ..server.instrumentation import DrainerMetrics
from ..server.workers import PeriodicWorker, QueueConsumerWorker
from .coordinator import DrainCoordinator
from .facade import ElasticsearchFacade
from .lifecycle import LifecycleActionPostponer
from .queue import SQSQueue


class DrainerApp:
    name = "drainer"

    def __init__(
        self,
        config: Config,
        es: ElasticsearchClient,
        aws: AWSClients,
        registry: Optional[CollectorRegistry] = None,
    ):
        config.validate(self.name)
        self.config = config.drainer
        self.metrics = DrainerMetrics(registry)
        self.facade = ElasticsearchFacade(es)
        self.queue = SQSQueue(aws.sqs, self.config.queue_url, visibility_timeout=self.config.visibility_timeout)
        self.coordinator = DrainCoordinator(
            self.facade,
            LifecycleActionPostponer(aws.autoscaling, max_heartbeat_interval=self.config.max_heartbeat_interval),
            self.queue,
            poll_interval=self.config.poll_interval,
            visibility_timeout=self.config.visibility_timeout,
            metrics=self.metrics,
        )

    def workers(self, token: CancelToken) -> List[threading.Thread]:
        return [
            QueueConsumerWorker(
                self.queue.receive,
                self.coordinator.handle,
                token,
                max_workers=self.config.max_workers,
                name="drainer-queue",
            ),
            PeriodicWorker(
                "drainer-prune",
                self.coordinator.prune_departed,
                self.config.prune_interval,
                token,
                metrics=self.metrics,
                timeout=self.config.prune_interval,
            ),
        ]
