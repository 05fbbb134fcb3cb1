"""Suspends and resumes scaling processes of an auto scaling group."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from ..clients.aws import call_aws
from ..errors import FatalError

logger = logging.getLogger(__name__)

DEFAULT_PROCESSES = ("AlarmNotification",)


class AutoScalingGroupEnabler:
    """Two-state switch over a group's scaling processes.

    The API is only called on a transition, so repeated ``enable()`` or
    ``disable()`` calls are free. In dry-run mode the transition is logged
    and tracked but the API is never called.
    """

    source = "autoscaling"

    def __init__(
        self,
        autoscaling: Any,
        group: str,
        processes: Sequence[str] = DEFAULT_PROCESSES,
        dry_run: bool = False,
        enabled: Optional[bool] = None,
    ):
        self.autoscaling = autoscaling
        self.group = group
        self.processes = list(processes)
        self.dry_run = dry_run
        self._enabled = self._read_enabled() if enabled is None else enabled

    def _read_enabled(self) -> bool:
        resp = call_aws(
            self.source,
            "error describing auto scaling group",
            self.autoscaling.describe_auto_scaling_groups,
            AutoScalingGroupNames=[self.group],
        )
        groups = resp.get("AutoScalingGroups", [])
        if len(groups) != 1 or groups[0].get("AutoScalingGroupName") != self.group:
            raise FatalError(f"auto scaling group {self.group!r} not found")
        suspended = {p.get("ProcessName") for p in groups[0].get("SuspendedProcesses", [])}
        return not any(p in suspended for p in self.processes)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> bool:
        """Resume scaling. Returns True if this was a transition."""
        if self._enabled:
            return False
        logger.info(f"[throttler] enabling autoscaling group={self.group} dry_run={self.dry_run}")
        if not self.dry_run:
            call_aws(
                self.source,
                "error resuming processes",
                self.autoscaling.resume_processes,
                AutoScalingGroupName=self.group,
                ScalingProcesses=self.processes,
            )
        self._enabled = True
        return True

    def disable(self) -> bool:
        """Suspend scaling. Returns True if this was a transition."""
        if not self._enabled:
            return False
        logger.info(f"[throttler] disabling autoscaling group={self.group} dry_run={self.dry_run}")
        if not self.dry_run:
            call_aws(
                self.source,
                "error suspending processes",
                self.autoscaling.suspend_processes,
                AutoScalingGroupName=self.group,
                ScalingProcesses=self.processes,
            )
        self._enabled = False
        return True
