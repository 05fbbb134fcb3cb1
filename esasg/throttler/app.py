"""Throttler agent: pauses auto scaling while the cluster is unstable."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Sequence

from prometheus_client import CollectorRegistry

from ..clients.aws import AWSClients
from ..clients.elasticsearch import ElasticsearchClient
from ..concurrency import CancelToken
from ..errors import AgentError
from ..server.config import Config
from ..server.instrumentation import ThrottlerMetrics
from ..server.workers import PeriodicWorker
from .enabler import AutoScalingGroupEnabler
from .state import ECSServiceStateGetter, ElasticsearchStateGetter

logger = logging.getLogger(__name__)


class Throttler:
    """Recomputes whether scaling is safe on every tick and applies it."""

    def __init__(
        self,
        es_state: ElasticsearchStateGetter,
        enablers: Dict[str, AutoScalingGroupEnabler],
        *,
        ecs_state: Optional[ECSServiceStateGetter] = None,
        ecs_services: Sequence[str] = (),
        metrics: Optional[ThrottlerMetrics] = None,
    ):
        self.es_state = es_state
        self.enablers = enablers
        self.ecs_state = ecs_state
        self.ecs_services = list(ecs_services)
        self.metrics = metrics or ThrottlerMetrics()
        for group, enabler in self.enablers.items():
            self.metrics.scaling_enabled.labels(group=group).set(int(enabler.enabled))

    def is_good(self, token: Optional[CancelToken] = None) -> bool:
        state = self.es_state.get(token)
        if not state.good:
            logger.info(
                f"[throttler] cluster not stable: status={state.status} "
                f"relocating={state.relocating_shards} recovering_from_store={state.recovering_from_store}"
            )
            return False
        if self.ecs_state is not None and self.ecs_services:
            for svc in self.ecs_state.get(self.ecs_services, token):
                if not svc.good:
                    logger.info(f"[throttler] service {svc.name} is rolling out ({svc.num_deployments} deployments)")
                    return False
        return True

    def tick(self, token: Optional[CancelToken] = None) -> bool:
        """Run one decision. Returns the decision.

        Raises:
            TransientRemoteError: A read failed, or toggling a group failed
                (after every group was attempted).
        """
        good = self.is_good(token)
        self.metrics.cluster_good.set(int(good))

        first_error: Optional[AgentError] = None
        for group, enabler in self.enablers.items():
            try:
                if good:
                    enabler.enable()
                else:
                    enabler.disable()
            except AgentError as exc:
                logger.error(f"[throttler] group={group}: {exc}")
                first_error = first_error or exc
            self.metrics.scaling_enabled.labels(group=group).set(int(enabler.enabled))
        if first_error is not None:
            raise first_error
        return good


class ThrottlerApp:
    name = "throttler"

    def __init__(
        self,
        config: Config,
        es: ElasticsearchClient,
        aws: AWSClients,
        registry: Optional[CollectorRegistry] = None,
    ):
        config.validate(self.name)
        self.config = config.throttler
        self.metrics = ThrottlerMetrics(registry)
        enablers = {
            group: AutoScalingGroupEnabler(
                aws.autoscaling,
                group,
                processes=self.config.scaling_processes,
                dry_run=self.config.dry_run,
            )
            for group in self.config.groups
        }
        ecs_state = None
        if self.config.ecs_cluster and self.config.ecs_services:
            ecs_state = ECSServiceStateGetter(aws.ecs, self.config.ecs_cluster)
        self.throttler = Throttler(
            ElasticsearchStateGetter(es),
            enablers,
            ecs_state=ecs_state,
            ecs_services=self.config.ecs_services,
            metrics=self.metrics,
        )

    def workers(self, token: CancelToken) -> List[threading.Thread]:
        return [
            PeriodicWorker(
                "throttler",
                self.throttler.tick,
                self.config.interval,
                token,
                metrics=self.metrics,
                timeout=self.config.interval,
            ),
        ]
