"""Tests for CloudWatch event decoding."""

import json

import pytest

from esasg.data.events import (
    EC2_SOURCE,
    SPOT_INTERRUPTION,
    CloudWatchEvent,
    LifecycleActionDetail,
    SpotInterruptionDetail,
    register_detail_type,
    unregister_detail_type,
)
from esasg.errors import DetailTypeAlreadyRegistered, InvalidCloudWatchEvent


class TestCloudWatchEvent:
    def test_decode_spot_interruption(self, spot_event):
        event = CloudWatchEvent.from_json(spot_event)

        assert event.source == "aws.ec2"
        assert event.detail_type == "EC2 Spot Instance Interruption Warning"
        assert isinstance(event.detail, SpotInterruptionDetail)
        assert event.detail.instance_id == "i-0b662ef9931388ba0"
        assert event.detail.instance_action == "terminate"
        assert event.time.year == 2019
        assert event.time.utcoffset().total_seconds() == 0

    def test_decode_lifecycle_action(self, terminate_event):
        event = CloudWatchEvent.from_json(terminate_event.encode("utf-8"))

        assert isinstance(event.detail, LifecycleActionDetail)
        assert event.detail.ec2_instance_id == "i-1234567890abcdef0"
        assert event.detail.auto_scaling_group_name == "es-data"
        assert event.detail.lifecycle_hook_name == "drain"
        assert event.resources[0].startswith("arn:aws:autoscaling")

    def test_decode_launch_action(self, launch_event):
        event = CloudWatchEvent.from_json(launch_event)

        assert isinstance(event.detail, LifecycleActionDetail)
        assert event.detail.lifecycle_transition == "autoscaling:EC2_INSTANCE_LAUNCHING"

    def test_unknown_detail_type_stays_a_dict(self):
        event = CloudWatchEvent.from_json({
            "source": "aws.s3",
            "detail-type": "Object Created",
            "detail": {"bucket": {"name": "b"}},
        })

        assert event.detail == {"bucket": {"name": "b"}}
        assert event.time is None

    def test_invalid_json(self):
        with pytest.raises(InvalidCloudWatchEvent):
            CloudWatchEvent.from_json("{not json")

    def test_not_an_object(self):
        with pytest.raises(InvalidCloudWatchEvent):
            CloudWatchEvent.from_json("[1, 2]")

    def test_missing_detail_type(self):
        with pytest.raises(InvalidCloudWatchEvent):
            CloudWatchEvent.from_json({"source": "aws.ec2", "detail": {}})

    def test_missing_detail_field(self, spot_event):
        data = json.loads(spot_event)
        del data["detail"]["instance-id"]

        with pytest.raises(InvalidCloudWatchEvent):
            CloudWatchEvent.from_json(data)

    def test_bad_time(self, spot_event):
        data = json.loads(spot_event)
        data["time"] = "yesterday"

        with pytest.raises(InvalidCloudWatchEvent):
            CloudWatchEvent.from_json(data)


class TestRegistry:
    def test_duplicate_registration(self):
        with pytest.raises(DetailTypeAlreadyRegistered):
            register_detail_type(EC2_SOURCE, SPOT_INTERRUPTION, SpotInterruptionDetail.from_dict)

    def test_register_and_unregister(self):
        register_detail_type("test.source", "Thing Happened", lambda d: ("thing", d["n"]))
        try:
            event = CloudWatchEvent.from_json({
                "source": "test.source",
                "detail-type": "Thing Happened",
                "detail": {"n": 3},
            })
            assert event.detail == ("thing", 3)
        finally:
            unregister_detail_type("test.source", "Thing Happened")

        event = CloudWatchEvent.from_json({
            "source": "test.source",
            "detail-type": "Thing Happened",
            "detail": {"n": 3},
        })
        assert event.detail == {"n": 3}
