"""Tests for data models."""

import json

import pytest

from esasg.data.events import CloudWatchEvent
from esasg.data.models import (
    ClusterState,
    EC2Instance,
    ECSServiceState,
    ElasticsearchState,
    LifecycleAction,
    NodeStats,
    parse_shard_nodes,
)
from esasg.data.settings import ShardAllocationExcludeSettings
from esasg.errors import InconsistentNodes, InvalidLifecycleAction


class TestParseShardNodes:
    def test_started(self):
        assert parse_shard_nodes("i-a") == ["i-a"]

    def test_relocating(self):
        assert parse_shard_nodes("i-a -> 10.0.0.2 Xq1zR4 i-b") == ["i-a", "i-b"]

    def test_unassigned(self):
        assert parse_shard_nodes(None) == []
        assert parse_shard_nodes("") == []


class TestClusterState:
    def test_from_responses(self, nested_settings):
        nodes_info = {"nodes": {"x1": {"name": "i-b"}, "x2": {"name": "i-a"}}}
        rows = [
            {"index": "logs", "shard": "0", "prirep": "p", "state": "STARTED", "node": "i-a"},
            {"index": "logs", "shard": "0", "prirep": "r", "state": "RELOCATING", "node": "i-a -> 10.0.0.2 Xq i-b"},
            {"index": "logs", "shard": "1", "prirep": "r", "state": "UNASSIGNED", "node": None},
            {"index": "logs", "shard": "2", "prirep": "p", "state": "STARTED", "node": "i-gone"},
        ]
        state = ClusterState.from_responses(nodes_info, rows, nested_settings)

        assert state.nodes == ["i-a", "i-b"]
        assert state.shards_on("i-a") == 2
        assert state.shards_on("i-b") == 1
        assert state.shards_on("i-gone") == 0
        assert state.exclusions.name == ["i-a", "i-b"]

    def test_has_node(self):
        state = ClusterState(nodes=["i-a", "i-c"])

        assert state.has_node("i-a")
        assert state.has_node("i-c")
        assert not state.has_node("i-b")
        assert not ClusterState().has_node("i-a")

    def test_diff_nodes(self):
        before = ClusterState(nodes=["i-a", "i-b"])
        after = ClusterState(nodes=["i-b", "i-c"])

        assert before.diff_nodes(after) == (["i-c"], ["i-a"])


class TestNodeStats:
    def test_from_responses(self, node_stats_sample):
        transient = ShardAllocationExcludeSettings()
        persistent = ShardAllocationExcludeSettings(attr={"zone": ["us-east-2a"]})
        n = NodeStats.from_responses(node_stats_sample, EC2Instance("i-a", 4), transient, persistent)

        assert n.name == "i-a"
        assert n.roles == ["data", "ingest", "master"]
        assert n.excluded_from_allocation is True
        assert n.vcpus == 4
        assert n.load_1m == 1.5
        assert n.heap.max_bytes == 1024
        assert n.heap_pools["old"].used_bytes == 300
        assert n.fs_total_bytes == 1000
        assert n.fs_available_bytes == 250

    def test_not_excluded(self, node_stats_sample):
        empty = ShardAllocationExcludeSettings()
        n = NodeStats.from_responses(node_stats_sample, EC2Instance("i-a", 2), empty, empty)

        assert n.excluded_from_allocation is False

    def test_inconsistent_nodes(self, node_stats_sample):
        empty = ShardAllocationExcludeSettings()

        with pytest.raises(InconsistentNodes):
            NodeStats.from_responses(node_stats_sample, EC2Instance("i-b", 2), empty, empty)

    def test_has_role(self):
        data = NodeStats(name="i-a", roles=["data", "master"])
        coordinating = NodeStats(name="i-b")

        assert data.has_role("all")
        assert data.has_role("data")
        assert not data.has_role("ingest")
        assert not data.has_role("coordinate")
        assert coordinating.has_role("all")
        assert coordinating.has_role("coordinate")


class TestEC2Instance:
    def test_vcpus(self):
        inst = EC2Instance.from_description({
            "InstanceId": "i-a",
            "CpuOptions": {"CoreCount": 2, "ThreadsPerCore": 2},
        })

        assert inst == EC2Instance("i-a", 4)


class TestElasticsearchState:
    def test_green_is_good(self):
        state = ElasticsearchState.from_responses({"status": "green", "relocating_shards": 0}, {})

        assert state.good

    def test_yellow_is_good(self):
        assert ElasticsearchState.from_responses({"status": "yellow"}, {}).good

    def test_red_is_bad(self):
        assert not ElasticsearchState.from_responses({"status": "red"}, {}).good

    def test_relocating_is_bad(self):
        state = ElasticsearchState.from_responses({"status": "green", "relocating_shards": 2}, {})

        assert state.relocating_shards
        assert not state.good

    def test_store_recovery_is_bad(self):
        recovery = {
            "logs": {"shards": [{"type": "PEER"}, {"type": "STORE"}]},
        }
        state = ElasticsearchState.from_responses({"status": "green"}, recovery)

        assert state.recovering_from_store
        assert not state.good

    def test_peer_recovery_is_good(self):
        recovery = {"logs": {"shards": [{"type": "PEER"}]}}

        assert ElasticsearchState.from_responses({"status": "green"}, recovery).good


class TestECSServiceState:
    def test_rollout(self):
        assert ECSServiceState("api", 1).good
        assert not ECSServiceState("api", 2).good


class TestLifecycleAction:
    def test_from_event(self, terminate_event, event_time):
        action = LifecycleAction.from_event(CloudWatchEvent.from_json(terminate_event))

        assert action.group == "es-data"
        assert action.hook_name == "drain"
        assert action.instance_id == "i-1234567890abcdef0"
        assert action.token == "87654321-4321-4321-4321-210987654321"
        assert action.start == event_time
        assert action.heartbeat_count == 0

    def test_launch_rejected(self, launch_event):
        with pytest.raises(InvalidLifecycleAction):
            LifecycleAction.from_event(CloudWatchEvent.from_json(launch_event))

    def test_spot_rejected(self, spot_event):
        with pytest.raises(InvalidLifecycleAction):
            LifecycleAction.from_event(CloudWatchEvent.from_json(spot_event))

    def test_wrong_transition(self, terminate_event):
        data = json.loads(terminate_event)
        data["detail"]["LifecycleTransition"] = "autoscaling:EC2_INSTANCE_LAUNCHING"

        with pytest.raises(InvalidLifecycleAction):
            LifecycleAction.from_event(CloudWatchEvent.from_json(data))
