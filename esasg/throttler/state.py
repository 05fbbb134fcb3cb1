"""Observers for the throttler's scaling decision."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from ..clients.aws import call_aws
from ..clients.elasticsearch import ElasticsearchClient
from ..concurrency import CancelToken, TaskGroup
from ..data.models import ECSServiceState, ElasticsearchState

logger = logging.getLogger(__name__)

ECS_DESCRIBE_LIMIT = 10


class ElasticsearchStateGetter:
    """Reads cluster health and active recoveries concurrently."""

    def __init__(self, client: ElasticsearchClient):
        self.client = client

    def get(self, token: Optional[CancelToken] = None) -> ElasticsearchState:
        with TaskGroup(token, max_workers=2, name="es-state") as group:
            health = group.spawn(self.client.cluster_health, token=group.token)
            recovery = group.spawn(
                self.client.indices_recovery, active_only=True, detailed=False, token=group.token
            )
        state = ElasticsearchState.from_responses(health.result(), recovery.result())
        logger.debug(
            f"[throttler] status={state.status} relocating={state.relocating_shards} "
            f"recovering_from_store={state.recovering_from_store}"
        )
        return state


class ECSServiceStateGetter:
    """Counts deployments of ECS services; more than one means a rollout."""

    source = "ecs"

    def __init__(self, ecs: Any, cluster: str):
        self.ecs = ecs
        self.cluster = cluster

    def get(self, services: Sequence[str], token: Optional[CancelToken] = None) -> List[ECSServiceState]:
        states: List[ECSServiceState] = []
        services = list(services)
        for i in range(0, len(services), ECS_DESCRIBE_LIMIT):
            if token is not None:
                token.raise_if_cancelled()
            resp = call_aws(
                self.source,
                "error describing services",
                self.ecs.describe_services,
                cluster=self.cluster,
                services=services[i:i + ECS_DESCRIBE_LIMIT],
            )
            for svc in resp.get("services", []):
                states.append(ECSServiceState(
                    name=svc.get("serviceName", ""),
                    num_deployments=len(svc.get("deployments", [])),
                ))
        return states
