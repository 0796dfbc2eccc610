import signal
import threading

import pytest

from sqs_relay.common.config import Settings
from sqs_relay.common.exceptions import ConfigurationError, QueuePollError
from sqs_relay.domain.models import AckAction
from sqs_relay.scripts import relay_worker
from sqs_relay.scripts.relay_worker import RelayWorker, build_worker
from sqs_relay.services.delivery_service import DeliveryEngine
from sqs_relay.services.poller import Poller


class DummyPoller:
    def __init__(self, *batches):
        self.batches = list(batches)
        self.queue_url = "q"
        self.batch_size = 10
        self.visibility_timeout = 60

    def poll(self):
        item = self.batches.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _engine(fake_http, recording_sqs, *statuses):
    return DeliveryEngine(recording_sqs(), "q", fake_http(*statuses), "http://127.0.0.1:3000/webhook")


def test_run_once_processes_batch(make_message, fake_http, recording_sqs):
    engine = _engine(fake_http, recording_sqs, 200)
    batch = [make_message(message_id="a", receipt="rh-a"), make_message(message_id="b", receipt="rh-b")]
    worker = RelayWorker(DummyPoller(batch), engine)

    reports = worker.run_once()

    assert [r.message_id for r in reports] == ["a", "b"]
    assert engine.sqs.deleted == ["rh-a", "rh-b"]


def test_run_once_with_thread_pool(make_message, fake_http, recording_sqs):
    engine = _engine(fake_http, recording_sqs, 200)
    batch = [make_message(message_id=str(i), receipt=f"rh-{i}") for i in range(5)]
    worker = RelayWorker(DummyPoller(batch), engine, max_workers=3)

    reports = worker.run_once()
    worker.shutdown()

    assert len(reports) == 5
    assert sorted(engine.sqs.deleted) == sorted(f"rh-{i}" for i in range(5))


def test_poll_error_backs_off_and_continues(fake_http, recording_sqs, monkeypatch):
    engine = _engine(fake_http, recording_sqs, 200)
    worker = RelayWorker(DummyPoller(QueuePollError("throttled")), engine, poll_backoff=2.0)

    waits = []
    monkeypatch.setattr(worker.stop_event, "wait", lambda timeout: waits.append(timeout))

    assert worker.run_once() == []
    assert waits == [2.0]
    assert worker.metrics.snapshot()["relay_poll_error"] == 1


def test_unexpected_error_leaves_message_and_continues(make_message, fake_http, recording_sqs):
    engine = _engine(fake_http, recording_sqs, 200)
    calls = []

    def flaky_process(message):
        calls.append(message.message_id)
        if message.message_id == "bad":
            raise RuntimeError("boom")
        return DeliveryEngine.process(engine, message)

    engine.process = flaky_process
    batch = [make_message(message_id="bad", receipt="rh-bad"), make_message(message_id="ok", receipt="rh-ok")]
    reports = RelayWorker(DummyPoller(batch), engine).run_once()

    assert calls == ["bad", "ok"]
    assert reports[0].action is AckAction.LEAVE
    assert engine.sqs.deleted == ["rh-ok"]


def test_run_stops_when_event_set(make_message, fake_http, recording_sqs):
    engine = _engine(fake_http, recording_sqs, 200)
    stop = threading.Event()
    engine.stop_event = stop

    class StoppingPoller(DummyPoller):
        def poll(self):
            stop.set()
            return [make_message()]

    worker = RelayWorker(StoppingPoller(), engine, stop_event=stop)
    worker.run()

    # the message polled after stop was requested is not sent
    assert engine.http.requests == []
    assert engine.sqs.deleted == []


def test_build_worker_wires_settings(monkeypatch):
    monkeypatch.setenv("QUEUE_URL", "https://sqs.eu-central-1.amazonaws.com/1/relay")
    monkeypatch.setenv("RELAY_BATCH_SIZE", "5")
    monkeypatch.setenv("RELAY_VISIBILITY_TIMEOUT", "90")
    monkeypatch.setenv("RELAY_MAX_WORKERS", "4")
    monkeypatch.setattr(relay_worker, "sqs_client", lambda: object())

    worker = build_worker(Settings())

    assert isinstance(worker.poller, Poller)
    assert worker.poller.queue_url == "https://sqs.eu-central-1.amazonaws.com/1/relay"
    assert worker.poller.batch_size == 5
    assert worker.poller.visibility_timeout == 90
    assert worker.max_workers == 4
    assert worker.engine.local_url == "http://127.0.0.1:3000/webhook"
    assert worker.engine.stop_event is worker.stop_event


def test_build_worker_requires_queue(monkeypatch):
    monkeypatch.setattr(relay_worker, "sqs_client", lambda: object())
    with pytest.raises(ConfigurationError):
        build_worker(Settings())


def test_main_returns_1_without_queue(monkeypatch):
    monkeypatch.setattr(relay_worker, "sqs_client", lambda: object())
    assert relay_worker.main() == 1


def test_main_returns_1_on_bad_number(monkeypatch):
    monkeypatch.setenv("QUEUE_URL", "https://sqs.eu-central-1.amazonaws.com/1/relay")
    monkeypatch.setenv("RELAY_BATCH_SIZE", "abc")
    monkeypatch.setattr(relay_worker, "sqs_client", lambda: object())
    assert relay_worker.main() == 1


# ============================
#  SHUTDOWN
# ============================

@pytest.fixture()
def captured_handlers(monkeypatch):
    """signal.signal stand-in: keeps handlers instead of installing them in the test process."""
    handlers = {}
    monkeypatch.setattr(relay_worker.signal, "signal", lambda signum, handler: handlers.__setitem__(signum, handler))
    return handlers


def test_signal_handler_sets_stop_and_interrupts(captured_handlers, fake_http, recording_sqs):
    worker = RelayWorker(DummyPoller(), _engine(fake_http, recording_sqs, 200))

    relay_worker.install_signal_handlers(worker)

    assert set(captured_handlers) == {signal.SIGINT, signal.SIGTERM}
    for signum in (signal.SIGTERM, signal.SIGINT):
        worker.stop_event.clear()
        with pytest.raises(KeyboardInterrupt):
            captured_handlers[signum](signum, None)
        assert worker.stop_event.is_set()


def test_interrupt_during_send_leaves_batch_unacked(captured_handlers, make_message, fake_http, recording_sqs):
    engine = _engine(fake_http, recording_sqs, 200)
    batch = [make_message(message_id="a", receipt="rh-a"), make_message(message_id="b", receipt="rh-b")]
    worker = RelayWorker(DummyPoller(batch), engine)
    relay_worker.install_signal_handlers(worker)

    sent = []

    class InterruptedHttp:
        def send(self, request):
            sent.append(request)
            # SIGTERM arrives while the POST is blocked
            captured_handlers[signal.SIGTERM](signal.SIGTERM, None)

    engine.http = InterruptedHttp()

    with pytest.raises(KeyboardInterrupt):
        worker.run()

    assert len(sent) == 1
    assert engine.sqs.deleted == []
    assert worker.stop_event.is_set()


def test_main_closes_http_client_on_interrupt(captured_handlers, monkeypatch, fake_http, recording_sqs):
    closed = []

    class ClosingHttp(fake_http):
        def close(self):
            closed.append(True)

    engine = DeliveryEngine(recording_sqs(), "q", ClosingHttp(200), "http://127.0.0.1:3000/webhook")
    worker = RelayWorker(DummyPoller(KeyboardInterrupt()), engine)
    monkeypatch.setattr(relay_worker, "build_worker", lambda settings: worker)

    assert relay_worker.main() == 0
    assert closed == [True]
    assert signal.SIGTERM in captured_handlers
