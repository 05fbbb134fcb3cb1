"""Tests for the SQS queue adapter."""

from unittest.mock import MagicMock

import pytest

from esasg.concurrency import CancelToken
from esasg.drainer.queue import QueueMessage, SQSQueue
from esasg.errors import Cancelled

URL = "https://sqs.us-east-2.amazonaws.com/123456789012/drain"


class TestSQSQueue:
    def test_receive(self):
        sqs = MagicMock()
        sqs.receive_message.return_value = {
            "Messages": [{"MessageId": "m-1", "ReceiptHandle": "rh-1", "Body": "{}"}],
        }

        messages = SQSQueue(sqs, URL).receive()

        assert messages == [QueueMessage("m-1", "rh-1", "{}")]
        sqs.receive_message.assert_called_once_with(QueueUrl=URL, MaxNumberOfMessages=10, WaitTimeSeconds=20)

    def test_receive_sets_visibility_timeout(self):
        sqs = MagicMock()
        sqs.receive_message.return_value = {}

        SQSQueue(sqs, URL, visibility_timeout=300).receive()

        assert sqs.receive_message.call_args.kwargs["VisibilityTimeout"] == 300

    def test_receive_empty(self):
        sqs = MagicMock()
        sqs.receive_message.return_value = {}

        assert SQSQueue(sqs, URL).receive() == []

    def test_receive_wait_bounded_by_token(self):
        sqs = MagicMock()
        sqs.receive_message.return_value = {}

        SQSQueue(sqs, URL).receive(CancelToken.with_timeout(5))

        assert sqs.receive_message.call_args.kwargs["WaitTimeSeconds"] <= 5

    def test_receive_cancelled(self):
        token = CancelToken()
        token.cancel()
        sqs = MagicMock()

        with pytest.raises(Cancelled):
            SQSQueue(sqs, URL).receive(token)
        sqs.receive_message.assert_not_called()

    def test_delete_and_extend(self):
        sqs = MagicMock()
        queue = SQSQueue(sqs, URL)
        message = QueueMessage("m-1", "rh-1", "{}")

        queue.extend_visibility(message, 300)
        queue.delete(message)

        sqs.change_message_visibility.assert_called_once_with(QueueUrl=URL, ReceiptHandle="rh-1", VisibilityTimeout=300)
        sqs.delete_message.assert_called_once_with(QueueUrl=URL, ReceiptHandle="rh-1")
