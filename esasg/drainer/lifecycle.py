"""Lifecycle hook heartbeats and completion."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from ..clients.aws import call_aws, error_code, error_message
from ..concurrency import CancelToken
from ..data.models import LifecycleAction
from ..errors import LifecycleActionTimeout, TransientRemoteError

logger = logging.getLogger(__name__)

NO_ACTIVE_ACTION = "No active Lifecycle Action found with token"
DEFAULT_HEARTBEAT_TIMEOUT = 3600
DEFAULT_GLOBAL_TIMEOUT = 172800

CONTINUE = "CONTINUE"
ABANDON = "ABANDON"


def _expired(exc: TransientRemoteError) -> bool:
    return error_code(exc) == "ValidationError" and error_message(exc).startswith(NO_ACTIVE_ACTION)


class LifecycleActionPostponer:
    """Keeps a lifecycle action alive while its instance drains.

    Heartbeats are sent halfway to the hook's heartbeat timeout, never
    further apart than ``max_heartbeat_interval``, until the token is
    cancelled or the hook's global timeout passes.
    """

    source = "autoscaling"

    def __init__(
        self,
        autoscaling: Any,
        max_heartbeat_interval: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.autoscaling = autoscaling
        self.max_heartbeat_interval = max_heartbeat_interval
        self._clock = clock
        self._hooks: Dict[str, Dict[str, Any]] = {}
        self._hooks_lock = threading.Lock()

    def describe_hook(self, group: str, hook_name: str) -> Dict[str, Any]:
        """Describe a lifecycle hook, cached per (group, hook)."""
        key = f"{group}:{hook_name}"
        with self._hooks_lock:
            hook = self._hooks.get(key)
        if hook is not None:
            return hook

        resp = call_aws(
            self.source,
            "error describing lifecycle hook",
            self.autoscaling.describe_lifecycle_hooks,
            AutoScalingGroupName=group,
            LifecycleHookNames=[hook_name],
        )
        hooks = resp.get("LifecycleHooks", [])
        if len(hooks) != 1:
            raise TransientRemoteError(
                self.source, f"expected 1 lifecycle hook named {hook_name!r} in {group!r}, got {len(hooks)}"
            )
        with self._hooks_lock:
            self._hooks[key] = hooks[0]
        return hooks[0]

    def postpone(
        self,
        action: LifecycleAction,
        token: CancelToken,
        on_heartbeat: Optional[Callable[[LifecycleAction], None]] = None,
    ) -> None:
        """Heartbeat ``action`` until ``token`` is cancelled.

        Returns normally on cancellation.

        Raises:
            LifecycleActionTimeout: The hook expired or its global timeout passed.
            TransientRemoteError: A heartbeat failed for another reason.
        """
        hook = self.describe_hook(action.group, action.hook_name)
        heartbeat_timeout = float(hook.get("HeartbeatTimeout") or DEFAULT_HEARTBEAT_TIMEOUT)
        global_timeout = float(hook.get("GlobalTimeout") or DEFAULT_GLOBAL_TIMEOUT)

        start = action.start.timestamp()
        global_deadline = start + global_timeout
        expires_at = start + heartbeat_timeout

        while True:
            now = self._clock()
            if now >= global_deadline:
                raise LifecycleActionTimeout(
                    f"lifecycle action for {action.instance_id} passed its global timeout"
                )
            wait = (expires_at - now) / 2
            if self.max_heartbeat_interval is not None:
                wait = min(wait, self.max_heartbeat_interval)
            wait = max(0.0, min(wait, global_deadline - now))

            if token.wait(wait):
                return
            if self._clock() >= global_deadline:
                continue

            self.heartbeat(action)
            expires_at = self._clock() + heartbeat_timeout
            if on_heartbeat is not None:
                on_heartbeat(action)

    def heartbeat(self, action: LifecycleAction) -> None:
        try:
            call_aws(
                self.source,
                "error recording lifecycle action heartbeat",
                self.autoscaling.record_lifecycle_action_heartbeat,
                **self._action_params(action),
            )
        except TransientRemoteError as exc:
            if _expired(exc):
                raise LifecycleActionTimeout(f"lifecycle action for {action.instance_id} expired") from exc
            raise
        action.heartbeat_count += 1
        logger.debug(
            f"[lifecycle] heartbeat instance={action.instance_id} group={action.group} "
            f"count={action.heartbeat_count}"
        )

    def complete(self, action: LifecycleAction, result: str = CONTINUE) -> None:
        """Signal the auto scaling group to proceed with the transition."""
        try:
            call_aws(
                self.source,
                "error completing lifecycle action",
                self.autoscaling.complete_lifecycle_action,
                LifecycleActionResult=result,
                **self._action_params(action),
            )
        except TransientRemoteError as exc:
            if _expired(exc):
                raise LifecycleActionTimeout(f"lifecycle action for {action.instance_id} expired") from exc
            raise
        logger.info(f"[lifecycle] completed instance={action.instance_id} group={action.group} result={result}")

    @staticmethod
    def _action_params(action: LifecycleAction) -> Dict[str, str]:
        params = {
            "AutoScalingGroupName": action.group,
            "LifecycleHookName": action.hook_name,
        }
        if action.instance_id:
            params["InstanceId"] = action.instance_id
        if action.token:
            params["LifecycleActionToken"] = action.token
        return params
