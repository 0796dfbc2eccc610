"""
Relay worker: poll SQS, forward each message to LOCAL_URL, ack or leave.

    QUEUE_URL=https://sqs.eu-central-1.amazonaws.com/123/webhooks sqs-relay
    LOG_LEVEL=DEBUG for per-header output, Ctrl-C to stop.
"""

import signal
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..adapters.http_client import LocalEndpointClient
from ..common.aws import resolve_queue_url, sqs_client
from ..common.config import Settings
from ..common.exceptions import ConfigurationError, QueuePollError
from ..common.logging import configure_logging, logger
from ..domain.models import AckAction, DeliveryReport, QueueMessage
from ..services.delivery_service import DeliveryEngine
from ..services.metrics_service import MetricsService
from ..services.poller import Poller


class RelayWorker:
    def __init__(
        self,
        poller: Poller,
        engine: DeliveryEngine,
        max_workers: int = 1,
        poll_backoff: float = 2.0,
        stop_event: Optional[threading.Event] = None,
        metrics: Optional[MetricsService] = None,
    ):
        self.poller = poller
        self.engine = engine
        self.max_workers = max(1, max_workers)
        self.poll_backoff = poll_backoff
        self.stop_event = stop_event or engine.stop_event
        self.metrics = metrics or engine.metrics
        self._executor: Optional[ThreadPoolExecutor] = None

    def _process_one(self, message: QueueMessage) -> DeliveryReport:
        try:
            return self.engine.process(message)
        except Exception as e:
            # one bad message must not stop the batch; it stays in the queue
            logger.exception({"relay": "process_failed", "message_id": message.message_id, "err": str(e)})
            return DeliveryReport(message.message_id, None, AckAction.LEAVE)

    def process_batch(self, messages: List[QueueMessage]) -> List[DeliveryReport]:
        if self.max_workers == 1 or len(messages) <= 1:
            return [self._process_one(m) for m in messages]

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="relay")
        return list(self._executor.map(self._process_one, messages))

    def run_once(self) -> List[DeliveryReport]:
        try:
            messages = self.poller.poll()
        except QueuePollError as e:
            logger.error({"relay": "poll_error", "err": str(e), "retry_in": self.poll_backoff})
            self.metrics.incr("relay_poll_error")
            # wait() returns early on shutdown
            self.stop_event.wait(self.poll_backoff)
            return []

        if not messages:
            return []
        return self.process_batch(messages)

    def run(self) -> None:
        logger.debug({"relay": "loop_start"})
        try:
            while not self.stop_event.is_set():
                self.run_once()
        finally:
            self.shutdown()

    def stop(self) -> None:
        self.stop_event.set()

    def shutdown(self) -> None:
        if self._executor is not None:
            # in-flight sends finish; queued ones are dropped and stay in SQS
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None
        logger.info({"relay": "stopped", "totals": self.metrics.snapshot()})


def install_signal_handlers(worker: RelayWorker) -> None:
    def _handle(signum, frame):
        logger.info({"relay": "signal", "signal": signal.Signals(signum).name})
        worker.stop()
        # interrupt the blocking long poll / HTTP call in the main thread
        raise KeyboardInterrupt

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def build_worker(settings: Settings) -> RelayWorker:
    sqs = sqs_client()
    queue_url = resolve_queue_url(settings.queue_url, sqs)
    stop_event = threading.Event()
    metrics = MetricsService()

    poller = Poller(
        sqs,
        queue_url,
        batch_size=settings.batch_size,
        wait_seconds=settings.wait_seconds,
        visibility_timeout=settings.visibility_timeout,
    )
    engine = DeliveryEngine(
        sqs,
        queue_url,
        LocalEndpointClient(timeout=settings.http_timeout),
        settings.local_url,
        signature_headers=settings.signature_headers,
        metrics=metrics,
        stop_event=stop_event,
    )
    return RelayWorker(
        poller,
        engine,
        max_workers=settings.max_workers,
        poll_backoff=settings.poll_backoff,
        stop_event=stop_event,
        metrics=metrics,
    )


def main() -> int:
    try:
        settings = Settings()
        configure_logging(settings.log_level)
        worker = build_worker(settings)
    except ConfigurationError as e:
        configure_logging()
        logger.error({"relay": "config_error", "err": str(e)})
        return 1

    logger.info(
        {
            "relay": "starting",
            "queue": worker.poller.queue_url,
            "local": settings.local_url,
            "batch_size": worker.poller.batch_size,
            "visibility_timeout": worker.poller.visibility_timeout,
            "max_workers": worker.max_workers,
        }
    )
    install_signal_handlers(worker)
    try:
        worker.run()
    except KeyboardInterrupt:
        logger.info({"relay": "shutdown"})
    finally:
        worker.engine.http.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
