"""CloudWatch event decoding.

Events arrive as JSON envelopes whose ``detail`` object has a shape
determined by the ``(source, detail-type)`` pair. Known pairs are
registered once, at import time, with a factory that builds a typed detail
record; unknown pairs keep ``detail`` as a plain dict.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from ..errors import DetailTypeAlreadyRegistered, InvalidCloudWatchEvent

DetailFactory = Callable[[Dict[str, Any]], Any]

_registry: Dict[str, DetailFactory] = {}
_registry_lock = threading.Lock()


def _key(source: str, detail_type: str) -> str:
    return f"{source}:{detail_type}"


def register_detail_type(source: str, detail_type: str, factory: DetailFactory) -> None:
    """Register the detail factory for a (source, detail-type) pair.

    Raises:
        DetailTypeAlreadyRegistered: If the pair already has a factory.
    """
    key = _key(source, detail_type)
    with _registry_lock:
        if key in _registry:
            raise DetailTypeAlreadyRegistered(f"detail type already registered: {key}")
        _registry[key] = factory


def unregister_detail_type(source: str, detail_type: str) -> None:
    with _registry_lock:
        _registry.pop(_key(source, detail_type), None)


def _lookup(source: str, detail_type: str) -> Optional[DetailFactory]:
    with _registry_lock:
        return _registry.get(_key(source, detail_type))


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidCloudWatchEvent(f"invalid event time {value!r}") from exc


@dataclass
class CloudWatchEvent:
    """A CloudWatch (EventBridge) event envelope."""

    source: str
    detail_type: str
    version: str = ""
    id: str = ""
    account: str = ""
    time: Optional[datetime] = None
    region: str = ""
    resources: List[str] = field(default_factory=list)
    detail: Any = None

    @classmethod
    def from_json(cls, data: Union[str, bytes, Dict[str, Any]]) -> "CloudWatchEvent":
        """Decode an event envelope and its registered detail shape.

        Raises:
            InvalidCloudWatchEvent: If the JSON is malformed or lacks
                ``source`` or ``detail-type``.
        """
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except ValueError as exc:
                raise InvalidCloudWatchEvent(f"invalid event JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise InvalidCloudWatchEvent("event is not a JSON object")

        source = data.get("source") or ""
        detail_type = data.get("detail-type") or ""
        if not source or not detail_type:
            raise InvalidCloudWatchEvent("event is missing source or detail-type")

        raw_detail = data.get("detail") or {}
        factory = _lookup(source, detail_type)
        if factory is None:
            detail: Any = raw_detail
        else:
            try:
                detail = factory(raw_detail)
            except (KeyError, TypeError, ValueError) as exc:
                raise InvalidCloudWatchEvent(f"invalid {detail_type!r} detail: {exc}") from exc

        return cls(
            source=source,
            detail_type=detail_type,
            version=data.get("version", ""),
            id=data.get("id", ""),
            account=data.get("account", ""),
            time=_parse_time(data.get("time")),
            region=data.get("region", ""),
            resources=list(data.get("resources") or []),
            detail=detail,
        )


# =============================================================================
# Detail shapes
# =============================================================================


@dataclass
class LifecycleActionDetail:
    """Detail of an auto scaling lifecycle action event."""

    lifecycle_action_token: str
    auto_scaling_group_name: str
    lifecycle_hook_name: str
    ec2_instance_id: str
    lifecycle_transition: str
    notification_metadata: str = ""

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LifecycleActionDetail":
        return cls(
            lifecycle_action_token=d["LifecycleActionToken"],
            auto_scaling_group_name=d["AutoScalingGroupName"],
            lifecycle_hook_name=d["LifecycleHookName"],
            ec2_instance_id=d["EC2InstanceId"],
            lifecycle_transition=d["LifecycleTransition"],
            notification_metadata=d.get("NotificationMetadata") or "",
        )


@dataclass
class SpotInterruptionDetail:
    """Detail of an EC2 spot instance interruption warning."""

    instance_id: str
    instance_action: str = ""

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SpotInterruptionDetail":
        return cls(instance_id=d["instance-id"], instance_action=d.get("instance-action", ""))


AUTOSCALING_SOURCE = "aws.autoscaling"
EC2_SOURCE = "aws.ec2"
TERMINATE_ACTION = "EC2 Instance-terminate Lifecycle Action"
LAUNCH_ACTION = "EC2 Instance-launch Lifecycle Action"
SPOT_INTERRUPTION = "EC2 Spot Instance Interruption Warning"

register_detail_type(AUTOSCALING_SOURCE, TERMINATE_ACTION, LifecycleActionDetail.from_dict)
register_detail_type(AUTOSCALING_SOURCE, LAUNCH_ACTION, LifecycleActionDetail.from_dict)
register_detail_type(EC2_SOURCE, SPOT_INTERRUPTION, SpotInterruptionDetail.from_dict)
