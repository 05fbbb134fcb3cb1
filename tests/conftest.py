"""Pytest configuration and shared fixtures."""

import json
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from esasg.data.settings import SHARD_ALLOC_EXCLUDE_SETTING

EXCLUDE_NAME = f"{SHARD_ALLOC_EXCLUDE_SETTING}._name"


class FakeElasticsearch:
    """In-memory stand-in for ElasticsearchClient's cluster-settings calls."""

    def __init__(self, excluded=None, nodes=(), shards=()):
        self.transient = {}
        if excluded is not None:
            self.transient[EXCLUDE_NAME] = excluded
        self.nodes = list(nodes)
        self.shards = list(shards)
        self.puts = []

    def get_cluster_settings(self, filter_path=None, token=None):
        if not self.transient:
            return {}
        return {"transient": dict(self.transient)}

    def put_cluster_settings(self, body, token=None):
        self.puts.append(json.dumps(body, sort_keys=True))
        for key, value in body.get("transient", {}).items():
            if value is None:
                self.transient.pop(key, None)
            else:
                self.transient[key] = value
        return {"acknowledged": True}

    def nodes_info(self, token=None):
        return {"nodes": {f"id-{n}": {"name": n} for n in self.nodes}}

    def cat_shards(self, token=None):
        return list(self.shards)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class SteppingToken:
    """Token whose waits advance a fake clock instead of sleeping."""

    def __init__(self, clock, cancel_after=None):
        self.clock = clock
        self.cancel_after = cancel_after
        self.waits = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        self.clock.now += timeout or 0
        return self.cancel_after is not None and len(self.waits) > self.cancel_after


@pytest.fixture
def fake_es():
    return FakeElasticsearch


@pytest.fixture
def fake_clock():
    return FakeClock(1000.0)


@pytest.fixture
def stepping_token():
    return SteppingToken


@pytest.fixture
def autoscaling():
    client = MagicMock()
    client.describe_lifecycle_hooks.return_value = {
        "LifecycleHooks": [{"HeartbeatTimeout": 60, "GlobalTimeout": 100}],
    }
    return client


@pytest.fixture
def event_time():
    return datetime(2019, 5, 5, 5, 26, 13, tzinfo=timezone.utc)


@pytest.fixture
def terminate_event():
    """Auto scaling termination lifecycle action as delivered through SQS."""
    return json.dumps({
        "version": "0",
        "id": "468fc3ae-b4f0-4c95-9e5d-a0d4f0e3d1a1",
        "detail-type": "EC2 Instance-terminate Lifecycle Action",
        "source": "aws.autoscaling",
        "account": "123456789012",
        "time": "2019-05-05T05:26:13Z",
        "region": "us-east-2",
        "resources": [
            "arn:aws:autoscaling:us-east-2:123456789012:autoScalingGroup:42fe:autoScalingGroupName/es-data",
        ],
        "detail": {
            "LifecycleActionToken": "87654321-4321-4321-4321-210987654321",
            "AutoScalingGroupName": "es-data",
            "LifecycleHookName": "drain",
            "EC2InstanceId": "i-1234567890abcdef0",
            "LifecycleTransition": "autoscaling:EC2_INSTANCE_TERMINATING",
            "NotificationMetadata": "",
        },
    })


@pytest.fixture
def launch_event(terminate_event):
    data = json.loads(terminate_event)
    data["detail-type"] = "EC2 Instance-launch Lifecycle Action"
    data["detail"]["LifecycleTransition"] = "autoscaling:EC2_INSTANCE_LAUNCHING"
    return json.dumps(data)


@pytest.fixture
def spot_event():
    """EC2 spot interruption warning."""
    return json.dumps({
        "version": "0",
        "id": "1e5527d7-bb36-4607-3370-4164db56a40e",
        "detail-type": "EC2 Spot Instance Interruption Warning",
        "source": "aws.ec2",
        "account": "123456789012",
        "time": "2019-05-05T05:26:13Z",
        "region": "us-east-1",
        "resources": ["arn:aws:ec2:us-east-1b:instance/i-0b662ef9931388ba0"],
        "detail": {
            "instance-id": "i-0b662ef9931388ba0",
            "instance-action": "terminate",
        },
    })


@pytest.fixture
def nested_settings():
    """GET /_cluster/settings response in the nested form."""
    return {
        "persistent": {},
        "transient": {
            "cluster": {
                "routing": {
                    "allocation": {
                        "exclude": {
                            "_name": "i-b,i-a",
                            "_ip": "10.0.0.2",
                            "zone": "us-east-2a,us-east-2b",
                        }
                    }
                }
            }
        },
    }


@pytest.fixture
def node_stats_sample():
    """One entry of GET /_nodes/stats/os,jvm,fs."""
    return {
        "name": "i-a",
        "host": "10.0.0.1",
        "ip": "10.0.0.1:9300",
        "roles": ["master", "data", "ingest"],
        "attributes": {"zone": "us-east-2a"},
        "os": {"cpu": {"percent": 12, "load_average": {"1m": 1.5, "5m": 1.0, "15m": 0.5}}},
        "jvm": {
            "mem": {
                "heap_used_in_bytes": 512,
                "heap_max_in_bytes": 1024,
                "pools": {
                    "young": {"used_in_bytes": 10, "max_in_bytes": 0},
                    "old": {"used_in_bytes": 300, "max_in_bytes": 800},
                },
            }
        },
        "fs": {"total": {"total_in_bytes": 1000, "available_in_bytes": 250}},
    }
