"""AWS client factory and error wrapping.

Clients are created from one ``boto3`` session with botocore's "standard"
retry mode, which retries throttling and transient errors with jittered
exponential backoff below the agents.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import FatalError, TransientRemoteError

logger = logging.getLogger(__name__)


class AWSClients:
    """Lazily creates and caches one boto3 client per service."""

    def __init__(
        self,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        max_retries: int = 5,
    ):
        try:
            self._session = boto3.session.Session(region_name=region, profile_name=profile)
        except BotoCoreError as exc:
            raise FatalError(f"cannot create AWS session: {exc}") from exc
        self._config = BotoConfig(retries={"max_attempts": max_retries, "mode": "standard"})
        self._clients: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def client(self, service: str) -> Any:
        with self._lock:
            if service not in self._clients:
                try:
                    self._clients[service] = self._session.client(service, config=self._config)
                except BotoCoreError as exc:
                    raise FatalError(f"cannot create {service} client: {exc}") from exc
            return self._clients[service]

    @property
    def autoscaling(self) -> Any:
        return self.client("autoscaling")

    @property
    def sqs(self) -> Any:
        return self.client("sqs")

    @property
    def ec2(self) -> Any:
        return self.client("ec2")

    @property
    def cloudwatch(self) -> Any:
        return self.client("cloudwatch")

    @property
    def ecs(self) -> Any:
        return self.client("ecs")


def error_code(exc: BaseException) -> str:
    """Return the AWS error code carried by ``exc`` or its cause, if any."""
    cause = getattr(exc, "cause", exc)
    if isinstance(cause, ClientError):
        return cause.response.get("Error", {}).get("Code", "")
    return ""


def error_message(exc: BaseException) -> str:
    cause = getattr(exc, "cause", exc)
    if isinstance(cause, ClientError):
        return cause.response.get("Error", {}).get("Message", "")
    return str(cause)


def call_aws(source: str, cause: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
    """Invoke a boto3 operation, wrapping failures in TransientRemoteError."""
    try:
        return fn(**kwargs)
    except ClientError as exc:
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        raise TransientRemoteError(
            source,
            f"{cause}: {error_code(exc)}: {error_message(exc)}",
            exc,
            status_code=status,
        )
    except BotoCoreError as exc:
        raise TransientRemoteError(source, f"{cause}: {exc}", exc)
