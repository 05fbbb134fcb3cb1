"""Error taxonomy shared by all agents.

Leaf clients raise ``TransientRemoteError`` tagged with a short cause; the
control loops decide whether an error ends the iteration, the message, or
the process.
"""

from typing import Optional


class AgentError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(AgentError):
    """Inputs violate a precondition. Never retried."""


class InconsistentNodes(ValidationError):
    """Node stats and instance description refer to different nodes."""

    def __init__(self, stats_name: str, instance_id: str):
        self.stats_name = stats_name
        self.instance_id = instance_id
        super().__init__(
            f"inconsistent nodes: stats for {stats_name!r}, instance {instance_id!r}"
        )


class InvalidCloudWatchEvent(ValidationError):
    """A CloudWatch event envelope could not be decoded."""


class InvalidLifecycleAction(ValidationError):
    """A CloudWatch event is not a termination lifecycle action."""


class DetailTypeAlreadyRegistered(ValidationError):
    """A (source, detail-type) pair was registered twice."""


class ConfigError(ValidationError):
    """Configuration is missing a required value or holds an invalid one."""


class TransientRemoteError(AgentError):
    """A remote API call failed: network error, timeout, or error status."""

    def __init__(
        self,
        source: str,
        message: str,
        cause: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ):
        self.source = source
        self.cause = cause
        self.status_code = status_code
        super().__init__(f"[{source}] {message}")


class StateConflict(AgentError):
    """Observed state contradicts an assumption. Terminal for the message."""


class LifecycleActionTimeout(StateConflict):
    """The lifecycle action expired before the node finished draining."""


class WrongRepositoryType(StateConflict):
    """A snapshot repository exists with a different type than configured."""

    def __init__(self, name: str, expected: str, actual: str):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"snapshot repository {name!r} has type {actual!r}, expected {expected!r}"
        )


class FatalError(AgentError):
    """Unrecoverable setup failure. The process exits."""


class Cancelled(AgentError):
    """The operation's cancellation token fired before it finished."""
