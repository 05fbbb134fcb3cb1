"""Tests for the drain state machine."""

from unittest.mock import MagicMock

import pytest

from esasg.concurrency import CancelToken
from esasg.data.models import ClusterState
from esasg.data.settings import ShardAllocationExcludeSettings
from esasg.drainer.coordinator import DrainCoordinator, DrainState
from esasg.drainer.queue import QueueMessage
from esasg.errors import LifecycleActionTimeout, TransientRemoteError
from esasg.server.instrumentation import DrainerMetrics


def message(body):
    return QueueMessage(message_id="m-1", receipt_handle="rh-1", body=body)


def state(nodes, shards=None, excluded=None):
    return ClusterState(
        nodes=sorted(nodes),
        shards=shards or {},
        exclusions=ShardAllocationExcludeSettings(name=excluded),
    )


@pytest.fixture
def facade():
    f = MagicMock()
    f.get_state.return_value = state(["i-1234567890abcdef0"])
    return f


@pytest.fixture
def postponer():
    p = MagicMock()
    # Heartbeat until the coordinator stops the wait.
    p.postpone.side_effect = lambda action, token, on_heartbeat=None: token.wait(5)
    return p


@pytest.fixture
def queue():
    return MagicMock()


@pytest.fixture
def coordinator(facade, postponer, queue):
    return DrainCoordinator(facade, postponer, queue, poll_interval=0.01, metrics=DrainerMetrics())


class TestSpotInterruption:
    def test_drain_and_ack(self, coordinator, facade, postponer, queue, spot_event):
        outcome = coordinator.handle(message(spot_event), CancelToken())

        assert outcome.state == DrainState.DONE
        assert outcome.history == [DrainState.RECEIVED, DrainState.DRAINING, DrainState.DONE]
        assert outcome.instance_id == "i-0b662ef9931388ba0"
        facade.drain_nodes.assert_called_once()
        assert facade.drain_nodes.call_args.args[0] == ["i-0b662ef9931388ba0"]
        postponer.postpone.assert_not_called()
        queue.delete.assert_called_once()


class TestTermination:
    def test_waits_for_shards_then_completes(self, coordinator, facade, postponer, queue, terminate_event):
        node = "i-1234567890abcdef0"
        facade.get_state.side_effect = [
            state([node], shards={node: 3}),
            state([node], shards={node: 1}),
            state([node]),
        ]

        outcome = coordinator.handle(message(terminate_event), CancelToken())

        assert outcome.state == DrainState.DONE
        assert DrainState.WAITING in outcome.history
        assert facade.get_state.call_count == 3
        postponer.complete.assert_called_once()
        assert postponer.complete.call_args.args[0].instance_id == node
        queue.delete.assert_called_once()

    def test_node_left_cluster(self, coordinator, facade, postponer, queue, terminate_event):
        facade.get_state.return_value = state(["i-other"], shards={"i-other": 5})

        outcome = coordinator.handle(message(terminate_event), CancelToken())

        assert outcome.state == DrainState.DONE
        postponer.complete.assert_called_once()

    def test_heartbeat_extends_visibility(self, facade, queue, terminate_event):
        node = "i-1234567890abcdef0"
        facade.get_state.side_effect = [state([node], shards={node: 1}), state([node])]
        postponer = MagicMock()

        def postpone(action, token, on_heartbeat=None):
            on_heartbeat(action)
            token.wait(5)

        postponer.postpone.side_effect = postpone
        coordinator = DrainCoordinator(facade, postponer, queue, poll_interval=0.05, visibility_timeout=120)

        coordinator.handle(message(terminate_event), CancelToken())

        # Once on entering WAITING and once per heartbeat.
        assert queue.extend_visibility.call_count == 2
        assert all(c.args[1] == 120 for c in queue.extend_visibility.call_args_list)

    def test_visibility_extended_before_first_poll(self, facade, postponer, queue, terminate_event):
        node = "i-1234567890abcdef0"
        calls = []
        queue.extend_visibility.side_effect = lambda m, seconds: calls.append(("extend", seconds))

        def get_state(token=None):
            calls.append(("poll", None))
            return state([node])

        facade.get_state.side_effect = get_state
        coordinator = DrainCoordinator(facade, postponer, queue, poll_interval=0.01, visibility_timeout=300)

        outcome = coordinator.handle(message(terminate_event), CancelToken())

        assert outcome.state == DrainState.DONE
        assert calls[0] == ("extend", 300)
        assert ("poll", None) in calls

    def test_visibility_failure_abandons(self, coordinator, facade, queue, terminate_event):
        queue.extend_visibility.side_effect = TransientRemoteError("sqs", "error extending message visibility")

        outcome = coordinator.handle(message(terminate_event), CancelToken())

        assert outcome.state == DrainState.ABANDONED
        facade.get_state.assert_not_called()
        queue.delete.assert_not_called()

    def test_completion_failure_still_acks(self, coordinator, postponer, queue, terminate_event):
        postponer.complete.side_effect = TransientRemoteError("autoscaling", "error completing lifecycle action")

        outcome = coordinator.handle(message(terminate_event), CancelToken())

        assert outcome.state == DrainState.DONE
        queue.delete.assert_called_once()

    def test_lifecycle_timeout_abandons(self, coordinator, facade, postponer, queue, terminate_event):
        node = "i-1234567890abcdef0"
        facade.get_state.return_value = state([node], shards={node: 4})
        postponer.postpone.side_effect = LifecycleActionTimeout("expired")

        outcome = coordinator.handle(message(terminate_event), CancelToken())

        assert outcome.state == DrainState.ABANDONED
        assert "expired" in outcome.error
        queue.delete.assert_not_called()
        postponer.complete.assert_not_called()

    def test_cancelled_abandons(self, coordinator, facade, queue, terminate_event):
        node = "i-1234567890abcdef0"
        facade.get_state.return_value = state([node], shards={node: 4})
        token = CancelToken.with_timeout(0.2)

        outcome = coordinator.handle(message(terminate_event), token)

        assert outcome.state == DrainState.ABANDONED
        queue.delete.assert_not_called()


class TestFailures:
    def test_undecodable_message_is_dead(self, coordinator, facade, queue):
        outcome = coordinator.handle(message("not json"), CancelToken())

        assert outcome.state == DrainState.DEAD
        facade.drain_nodes.assert_not_called()
        queue.delete.assert_called_once()

    def test_launch_action_is_dead(self, coordinator, facade, queue, launch_event):
        outcome = coordinator.handle(message(launch_event), CancelToken())

        assert outcome.state == DrainState.DEAD
        facade.drain_nodes.assert_not_called()

    def test_drain_failure_abandons(self, coordinator, facade, queue, spot_event):
        facade.drain_nodes.side_effect = TransientRemoteError("elasticsearch", "error putting cluster settings")

        outcome = coordinator.handle(message(spot_event), CancelToken())

        assert outcome.state == DrainState.ABANDONED
        assert outcome.history[-2:] == [DrainState.DRAINING, DrainState.ABANDONED]
        queue.delete.assert_not_called()

    def test_ack_failure_is_recorded(self, coordinator, queue, spot_event):
        queue.delete.side_effect = TransientRemoteError("sqs", "error deleting message")

        outcome = coordinator.handle(message(spot_event), CancelToken())

        assert outcome.state == DrainState.DONE
        assert "deleting" in outcome.error


class TestPruneDeparted:
    def test_undrains_departed(self, coordinator, facade):
        facade.get_state.return_value = state(["i-a"], excluded=["i-a", "i-gone"])
        facade.undrain_nodes.return_value = True

        assert coordinator.prune_departed() == ["i-gone"]
        facade.undrain_nodes.assert_called_once()
        assert facade.undrain_nodes.call_args.args[0] == ["i-gone"]

    def test_nothing_to_prune(self, coordinator, facade):
        facade.get_state.return_value = state(["i-a"], excluded=["i-a"])

        assert coordinator.prune_departed() == []
        facade.undrain_nodes.assert_not_called()
