"""Tests for the throttler."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from esasg.errors import FatalError, TransientRemoteError
from esasg.server.instrumentation import ThrottlerMetrics
from esasg.throttler.app import Throttler
from esasg.throttler.enabler import AutoScalingGroupEnabler
from esasg.throttler.state import ECSServiceStateGetter, ElasticsearchStateGetter


def es_client(status="green", relocating=0, recovery=None):
    es = MagicMock()
    es.cluster_health.return_value = {"cluster_name": "logs", "status": status, "relocating_shards": relocating}
    es.indices_recovery.return_value = recovery or {}
    return es


def throttler(es, autoscaling, groups=("es-data", "es-master"), **kwargs):
    enablers = {g: AutoScalingGroupEnabler(autoscaling, g, enabled=True) for g in groups}
    return Throttler(ElasticsearchStateGetter(es), enablers, metrics=ThrottlerMetrics(), **kwargs)


class TestThrottler:
    def test_red_suspends_every_group(self):
        autoscaling = MagicMock()
        t = throttler(es_client(status="red", relocating=1), autoscaling)

        assert t.tick() is False

        assert autoscaling.suspend_processes.call_count == 2
        groups = {c.kwargs["AutoScalingGroupName"] for c in autoscaling.suspend_processes.call_args_list}
        assert groups == {"es-data", "es-master"}
        autoscaling.resume_processes.assert_not_called()

    def test_steady_bad_state_calls_api_once(self):
        autoscaling = MagicMock()
        t = throttler(es_client(status="green", relocating=2), autoscaling, groups=("es-data",))

        for _ in range(5):
            t.tick()

        autoscaling.suspend_processes.assert_called_once_with(
            AutoScalingGroupName="es-data", ScalingProcesses=["AlarmNotification"]
        )

    def test_recovery_resumes(self):
        autoscaling = MagicMock()
        es = es_client(status="red")
        t = throttler(es, autoscaling, groups=("es-data",))
        t.tick()

        es.cluster_health.return_value = {"status": "yellow", "relocating_shards": 0}
        assert t.tick() is True

        autoscaling.resume_processes.assert_called_once()

    def test_good_state_with_enabled_group_is_quiet(self):
        autoscaling = MagicMock()
        t = throttler(es_client(), autoscaling)

        assert t.tick() is True
        autoscaling.suspend_processes.assert_not_called()
        autoscaling.resume_processes.assert_not_called()

    def test_read_failure_leaves_groups_alone(self):
        autoscaling = MagicMock()
        es = es_client()
        es.cluster_health.side_effect = TransientRemoteError("elasticsearch", "error getting cluster health")
        t = throttler(es, autoscaling)

        with pytest.raises(TransientRemoteError):
            t.tick()
        autoscaling.suspend_processes.assert_not_called()

    def test_one_group_failure_does_not_block_others(self):
        autoscaling = MagicMock()
        def suspend(AutoScalingGroupName, ScalingProcesses):
            if AutoScalingGroupName == "es-data":
                raise ClientError({"Error": {"Code": "Throttling", "Message": "slow down"}}, "SuspendProcesses")

        autoscaling.suspend_processes.side_effect = suspend
        t = throttler(es_client(status="red"), autoscaling)

        with pytest.raises(TransientRemoteError):
            t.tick()
        assert autoscaling.suspend_processes.call_count == 2
        assert t.enablers["es-master"].enabled is False
        assert t.enablers["es-data"].enabled is True

    def test_ecs_rollout_suspends(self):
        autoscaling = MagicMock()
        ecs = MagicMock()
        ecs.describe_services.return_value = {
            "services": [
                {"serviceName": "indexer", "deployments": [{"id": "a"}, {"id": "b"}]},
            ]
        }
        t = throttler(
            es_client(),
            autoscaling,
            groups=("es-data",),
            ecs_state=ECSServiceStateGetter(ecs, "workers"),
            ecs_services=["indexer"],
        )

        assert t.tick() is False
        autoscaling.suspend_processes.assert_called_once()


class TestAutoScalingGroupEnabler:
    def test_reads_initial_state(self):
        autoscaling = MagicMock()
        autoscaling.describe_auto_scaling_groups.return_value = {
            "AutoScalingGroups": [{
                "AutoScalingGroupName": "es-data",
                "SuspendedProcesses": [{"ProcessName": "AlarmNotification"}],
            }]
        }
        enabler = AutoScalingGroupEnabler(autoscaling, "es-data")

        assert enabler.enabled is False
        assert enabler.disable() is False
        autoscaling.suspend_processes.assert_not_called()

    def test_missing_group(self):
        autoscaling = MagicMock()
        autoscaling.describe_auto_scaling_groups.return_value = {"AutoScalingGroups": []}

        with pytest.raises(FatalError):
            AutoScalingGroupEnabler(autoscaling, "es-data")

    def test_dry_run(self):
        autoscaling = MagicMock()
        enabler = AutoScalingGroupEnabler(autoscaling, "es-data", dry_run=True, enabled=True)

        assert enabler.disable() is True
        assert enabler.enabled is False
        assert enabler.enable() is True
        autoscaling.suspend_processes.assert_not_called()
        autoscaling.resume_processes.assert_not_called()


class TestECSServiceStateGetter:
    def test_batches(self):
        ecs = MagicMock()
        ecs.describe_services.return_value = {"services": []}
        services = [f"svc-{i}" for i in range(23)]

        ECSServiceStateGetter(ecs, "workers").get(services)

        sizes = [len(c.kwargs["services"]) for c in ecs.describe_services.call_args_list]
        assert sizes == [10, 10, 3]
