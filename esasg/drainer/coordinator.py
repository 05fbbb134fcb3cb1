"""Per-message drain state machine.

Each queue message moves through::

    RECEIVED -> DRAINING -> WAITING -> DONE
        |                      |
        v                      v
      DEAD                 ABANDONED

DEAD messages cannot be decoded and are acknowledged so they are not
redelivered. ABANDONED messages are left on the queue for redelivery; the
drain is idempotent so replaying it is safe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..concurrency import CancelToken, TaskGroup
from ..data.events import CloudWatchEvent, SpotInterruptionDetail
from ..data.models import LifecycleAction
from ..errors import AgentError, Cancelled, StateConflict, TransientRemoteError, ValidationError
from ..server.instrumentation import DrainerMetrics
from .facade import ElasticsearchFacade
from .lifecycle import LifecycleActionPostponer
from .queue import QueueMessage, SQSQueue

logger = logging.getLogger(__name__)


class DrainState(str, Enum):
    RECEIVED = "RECEIVED"
    DRAINING = "DRAINING"
    WAITING = "WAITING"  # shards still on the node; heartbeating the hook
    DONE = "DONE"
    ABANDONED = "ABANDONED"  # left for redelivery
    DEAD = "DEAD"  # undecodable; acknowledged and dropped


@dataclass
class DrainOutcome:
    """What happened to one message."""

    message_id: str
    state: DrainState = DrainState.RECEIVED
    instance_id: Optional[str] = None
    error: Optional[str] = None
    history: List[DrainState] = field(default_factory=lambda: [DrainState.RECEIVED])

    def transition(self, state: DrainState) -> None:
        self.state = state
        self.history.append(state)


class DrainCoordinator:
    """Drains nodes named by termination and spot interruption events."""

    def __init__(
        self,
        facade: ElasticsearchFacade,
        postponer: LifecycleActionPostponer,
        queue: SQSQueue,
        *,
        poll_interval: float = 10.0,
        visibility_timeout: int = 300,
        metrics: Optional[DrainerMetrics] = None,
    ):
        self.facade = facade
        self.postponer = postponer
        self.queue = queue
        self.poll_interval = poll_interval
        self.visibility_timeout = visibility_timeout
        self.metrics = metrics or DrainerMetrics()

    def handle(self, message: QueueMessage, token: CancelToken) -> DrainOutcome:
        """Run one message through the state machine."""
        outcome = DrainOutcome(message_id=message.message_id)
        self.metrics.messages_received.inc()
        self.metrics.in_progress.inc()
        try:
            self._handle(message, token, outcome)
        finally:
            self.metrics.in_progress.dec()
        return outcome

    def _handle(self, message: QueueMessage, token: CancelToken, outcome: DrainOutcome) -> None:
        try:
            event = CloudWatchEvent.from_json(message.body)
            if isinstance(event.detail, SpotInterruptionDetail):
                action = None
                outcome.instance_id = event.detail.instance_id
            else:
                action = LifecycleAction.from_event(event)
                outcome.instance_id = action.instance_id
        except ValidationError as exc:
            self._dead(message, outcome, exc)
            return

        try:
            outcome.transition(DrainState.DRAINING)
            self.facade.drain_nodes([outcome.instance_id], token=token)

            if action is None:
                self.metrics.spot_interruptions.inc()
                logger.info(f"[drainer] spot interruption instance={outcome.instance_id}: drain issued")
            else:
                self.metrics.termination_actions.inc()
                outcome.transition(DrainState.WAITING)
                self._wait_for_drain(message, action, token)
                self._complete(action)
        except (StateConflict, TransientRemoteError, Cancelled) as exc:
            self._abandon(outcome, exc)
            return

        outcome.transition(DrainState.DONE)
        self._ack(message, outcome)

    def _wait_for_drain(self, message: QueueMessage, action: LifecycleAction, token: CancelToken) -> None:
        """Heartbeat the hook until the node holds no shards or leaves the cluster."""
        # Cover the gap before the first heartbeat.
        self.queue.extend_visibility(message, self.visibility_timeout)

        def extend(a: LifecycleAction) -> None:
            self.metrics.heartbeats.inc()
            self.queue.extend_visibility(message, self.visibility_timeout)

        def wait_then_stop(group: TaskGroup) -> None:
            self._poll_until_empty(action.instance_id, group.token)
            group.cancel("node drained")

        with TaskGroup(token, max_workers=2, name=f"drain-{action.instance_id}") as group:
            group.spawn(self.postponer.postpone, action, group.token, on_heartbeat=extend)
            group.spawn(wait_then_stop, group)

    def _poll_until_empty(self, instance_id: str, token: CancelToken) -> None:
        while True:
            state = self.facade.get_state(token=token)
            if not state.has_node(instance_id):
                logger.info(f"[drainer] instance={instance_id} left the cluster")
                return
            shards = state.shards_on(instance_id)
            if shards == 0:
                logger.info(f"[drainer] instance={instance_id} has no shards")
                return
            logger.info(f"[drainer] instance={instance_id} waiting for {shards} shards to move")
            if token.wait(self.poll_interval):
                raise Cancelled(token.reason or "cancelled")

    def _complete(self, action: LifecycleAction) -> None:
        try:
            self.postponer.complete(action)
        except TransientRemoteError as exc:
            # The hook proceeds by itself once its heartbeat timeout passes.
            logger.warning(f"[drainer] instance={action.instance_id} lifecycle completion failed: {exc}")

    def _ack(self, message: QueueMessage, outcome: DrainOutcome) -> None:
        try:
            self.queue.delete(message)
        except TransientRemoteError as exc:
            outcome.error = str(exc)
            logger.warning(f"[drainer] message={message.message_id} acknowledgement failed: {exc}")
            return
        self.metrics.messages_acked.inc()

    def _dead(self, message: QueueMessage, outcome: DrainOutcome, exc: Exception) -> None:
        outcome.transition(DrainState.DEAD)
        outcome.error = str(exc)
        self.metrics.messages_dead.inc()
        logger.error(f"[drainer] message={message.message_id} dropped: {exc}")
        try:
            self.queue.delete(message)
        except TransientRemoteError as delete_exc:
            logger.warning(f"[drainer] message={message.message_id} delete failed: {delete_exc}")

    def _abandon(self, outcome: DrainOutcome, exc: AgentError) -> None:
        outcome.transition(DrainState.ABANDONED)
        outcome.error = str(exc)
        self.metrics.messages_abandoned.inc()
        logger.error(f"[drainer] message={outcome.message_id} instance={outcome.instance_id} abandoned: {exc}")

    def prune_departed(self, token: Optional[CancelToken] = None) -> List[str]:
        """Undrain excluded names that are no longer cluster nodes."""
        state = self.facade.get_state(token=token)
        departed = [name for name in (state.exclusions.name or []) if not state.has_node(name)]
        if departed and self.facade.undrain_nodes(departed, token=token):
            self.metrics.nodes_pruned.inc(len(departed))
            logger.info(f"[drainer] pruned departed nodes: {','.join(departed)}")
        return departed
