"""
Delivery engine: send one message to the local endpoint and decide its fate.

    outcome              receive count   action
    2xx                  any             delete
    404                  any             delete (endpoint missing, retry can't help)
    other 4xx            1               leave -> one redelivery after visibility timeout
    other 4xx            >= 2            delete (rejected twice)
    5xx / other status   any             leave
    no response          any             leave

"Leave" means doing nothing: SQS makes the message visible again when the
visibility timeout expires. The queue's redrive policy caps retries, not us.
"""

import threading
from typing import Iterable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..common.exceptions import AckDeleteError, DeliveryHttpError, DeliveryTransportError
from ..common.logging import logger
from ..common.logging_utils import shorten_body, webhook_summary
from ..domain.models import (
    AckAction,
    DeliveryOutcome,
    DeliveryReport,
    OutcomeKind,
    QueueMessage,
)
from .metrics_service import MetricsService
from .request_builder import DEFAULT_SIGNATURE_HEADERS, build_request

RESPONSE_PREVIEW_CHARS = 200


def classify(status: int) -> DeliveryOutcome:
    if 200 <= status <= 299:
        return DeliveryOutcome(OutcomeKind.SUCCESS, status)
    if 400 <= status <= 499:
        return DeliveryOutcome(OutcomeKind.CLIENT_ERROR, status)
    # 5xx, and anything unexpected (1xx/3xx), is retried
    return DeliveryOutcome(OutcomeKind.SERVER_ERROR, status)


def decide(outcome: DeliveryOutcome, receive_count: int) -> AckAction:
    """Pure: (outcome, receive count) -> action. No I/O."""
    if outcome.kind is OutcomeKind.SUCCESS:
        return AckAction.ACKNOWLEDGE
    if outcome.kind is OutcomeKind.CLIENT_ERROR:
        if outcome.status == 404:
            return AckAction.ACKNOWLEDGE
        return AckAction.LEAVE if receive_count <= 1 else AckAction.ACKNOWLEDGE
    return AckAction.LEAVE


class DeliveryEngine:
    def __init__(
        self,
        sqs,
        queue_url: str,
        http_client,
        local_url: str,
        signature_headers: Iterable[str] = DEFAULT_SIGNATURE_HEADERS,
        metrics: Optional[MetricsService] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.sqs = sqs
        self.queue_url = queue_url
        self.http = http_client
        self.local_url = local_url
        self.signature_headers = tuple(signature_headers)
        self.metrics = metrics or MetricsService()
        self.stop_event = stop_event or threading.Event()

    def send(self, message: QueueMessage) -> DeliveryOutcome:
        request = build_request(message, self.local_url, self.signature_headers)

        logger.info(
            {
                "relay": "forward",
                "message_id": message.message_id,
                "summary": webhook_summary(request.body),
                "ip": request.source_ip,
                "attempt": message.receive_count,
            }
        )
        for name, value in request.headers.items():
            logger.debug({"relay": "header", "name": name, "value": value})

        try:
            status, body = self.http.send(request)
        except DeliveryTransportError as e:
            logger.error(
                {
                    "relay": "network_error",
                    "message_id": message.message_id,
                    "attempt": message.receive_count,
                    "err": str(e),
                }
            )
            return DeliveryOutcome.network_failure()

        preview = shorten_body(body.decode("utf-8", errors="replace"), RESPONSE_PREVIEW_CHARS)
        outcome = classify(status)
        if outcome.kind is OutcomeKind.SUCCESS:
            logger.info(
                {
                    "relay": "response",
                    "message_id": message.message_id,
                    "status": status,
                    "attempt": message.receive_count,
                }
            )
            if preview:
                logger.debug({"relay": "response_body", "message_id": message.message_id, "body": preview})
        else:
            err = DeliveryHttpError(status, preview or "")
            logger.warning(
                {
                    "relay": "response",
                    "message_id": message.message_id,
                    "status": err.status,
                    "attempt": message.receive_count,
                    "err": str(err),
                }
            )
            if err.preview:
                logger.debug({"relay": "error_body", "message_id": message.message_id, "body": err.preview})
        return outcome

    def acknowledge(self, message: QueueMessage) -> bool:
        """DeleteMessage; failures are logged (message will be redelivered), never raised."""
        try:
            self.sqs.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle)
        except (BotoCoreError, ClientError) as e:
            err = AckDeleteError(message.message_id, str(e))
            logger.error({"relay": "delete_failed", "message_id": err.message_id, "reason": err.reason})
            self.metrics.incr("relay_delete_error")
            return False
        logger.debug({"relay": "deleted", "message_id": message.message_id})
        return True

    def process(self, message: QueueMessage) -> DeliveryReport:
        if self.stop_event.is_set():
            logger.info({"relay": "skipped_shutdown", "message_id": message.message_id})
            return DeliveryReport(message.message_id, None, AckAction.LEAVE)

        outcome = self.send(message)
        action = decide(outcome, message.receive_count)

        deleted = False
        if action is AckAction.ACKNOWLEDGE:
            if outcome.kind is not OutcomeKind.SUCCESS:
                logger.warning(
                    {
                        "relay": "dropping",
                        "message_id": message.message_id,
                        "status": outcome.status,
                        "attempt": message.receive_count,
                    }
                )
            deleted = self.acknowledge(message)
        else:
            logger.warning(
                {
                    "relay": "will_retry",
                    "message_id": message.message_id,
                    "outcome": outcome.kind.value,
                    "status": outcome.status,
                    "attempt": message.receive_count,
                }
            )

        self.metrics.incr(
            "relay_delivery",
            outcome=outcome.kind.value,
            status=outcome.status,
            action=action.value,
        )
        return DeliveryReport(message.message_id, outcome, action, deleted)
