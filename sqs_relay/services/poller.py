"""
Long-polling reader for the relay queue.

One poll() = one ReceiveMessage call. An empty list is the normal result
of a long poll that timed out; only service/transport errors raise.
"""

from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from ..common.exceptions import QueuePollError
from ..common.logging import logger
from ..domain.models import QueueMessage

RECEIVE_COUNT_ATTRIBUTE = "ApproximateReceiveCount"


class Poller:
    def __init__(
        self,
        sqs,
        queue_url: str,
        batch_size: int = 10,
        wait_seconds: int = 20,
        visibility_timeout: int = 60,
    ):
        self.sqs = sqs
        self.queue_url = queue_url
        self.wait_seconds = wait_seconds
        # SQS accepts 1..10
        self.batch_size = max(1, min(10, batch_size))
        # must exceed local processing + HTTP round-trip, or messages come back twice
        self.visibility_timeout = visibility_timeout

    def poll(self) -> List[QueueMessage]:
        logger.debug({"poller": "receive", "queue": self.queue_url})
        try:
            resp = self.sqs.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=self.batch_size,
                WaitTimeSeconds=self.wait_seconds,
                VisibilityTimeout=self.visibility_timeout,
                MessageAttributeNames=["All"],
                MessageSystemAttributeNames=[RECEIVE_COUNT_ATTRIBUTE],
                # older SQS-compatible servers only read the deprecated name
                AttributeNames=[RECEIVE_COUNT_ATTRIBUTE],
            )
        except (BotoCoreError, ClientError) as e:
            raise QueuePollError(str(e)) from e

        raw_messages = resp.get("Messages", [])
        if not raw_messages:
            logger.debug({"poller": "empty"})
            return []

        messages = []
        for raw in raw_messages:
            msg = QueueMessage.from_sqs(raw)
            if msg is None:
                logger.debug({"poller": "missing_receipt_handle", "message_id": raw.get("MessageId")})
                continue
            messages.append(msg)

        logger.info({"poller": "received", "count": len(messages)})
        return messages
