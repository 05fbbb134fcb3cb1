"""SQS queue adapter for CloudWatch event delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..clients.aws import call_aws
from ..concurrency import CancelToken

logger = logging.getLogger(__name__)

MAX_MESSAGES = 10
MAX_WAIT_SECONDS = 20


@dataclass
class QueueMessage:
    message_id: str
    receipt_handle: str
    body: str


class SQSQueue:
    """Long-polls a queue and manages message visibility."""

    source = "sqs"

    def __init__(
        self,
        sqs: Any,
        queue_url: str,
        wait_seconds: int = MAX_WAIT_SECONDS,
        visibility_timeout: Optional[int] = None,
    ):
        self.sqs = sqs
        self.queue_url = queue_url
        self.wait_seconds = wait_seconds
        # None keeps the queue default.
        self.visibility_timeout = visibility_timeout

    def receive(self, token: Optional[CancelToken] = None) -> List[QueueMessage]:
        wait = self.wait_seconds
        if token is not None:
            token.raise_if_cancelled()
            remaining = token.remaining()
            if remaining is not None:
                wait = max(0, min(wait, int(remaining)))
        kwargs: Dict[str, Any] = dict(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=MAX_MESSAGES,
            WaitTimeSeconds=wait,
        )
        if self.visibility_timeout is not None:
            kwargs["VisibilityTimeout"] = int(self.visibility_timeout)
        resp = call_aws(self.source, "error receiving messages", self.sqs.receive_message, **kwargs)
        return [
            QueueMessage(
                message_id=m["MessageId"],
                receipt_handle=m["ReceiptHandle"],
                body=m.get("Body", ""),
            )
            for m in resp.get("Messages", [])
        ]

    def delete(self, message: QueueMessage) -> None:
        call_aws(
            self.source,
            "error deleting message",
            self.sqs.delete_message,
            QueueUrl=self.queue_url,
            ReceiptHandle=message.receipt_handle,
        )
        logger.debug(f"[sqs] deleted message {message.message_id}")

    def extend_visibility(self, message: QueueMessage, seconds: int) -> None:
        call_aws(
            self.source,
            "error extending message visibility",
            self.sqs.change_message_visibility,
            QueueUrl=self.queue_url,
            ReceiptHandle=message.receipt_handle,
            VisibilityTimeout=int(seconds),
        )
