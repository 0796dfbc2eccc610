import pytest
import boto3
from moto import mock_aws

from sqs_relay.domain.models import QueueMessage

# ============================
#  ENV (AWS + RELAY)
# ============================

@pytest.fixture(autouse=True)
def env_setup(monkeypatch):
    # AWS fake env
    monkeypatch.setenv("AWS_REGION", "eu-central-1")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-central-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.delenv("AWS_PROFILE", raising=False)

    # Tests must never talk to LocalStack on http://localhost:4566
    for var in (
        "AWS_ENDPOINT_URL",
        "AWS_ENDPOINT_URL_SQS",
        "SQS_ENDPOINT",
        "LOCALSTACK_ENDPOINT",
        "LOCALSTACK_HOSTNAME",
    ):
        monkeypatch.delenv(var, raising=False)

    # relay env from a developer's .env must not leak into tests
    for var in (
        "QUEUE_URL",
        "LOCAL_URL",
        "RELAY_BATCH_SIZE",
        "RELAY_WAIT_SECONDS",
        "RELAY_VISIBILITY_TIMEOUT",
        "RELAY_HTTP_TIMEOUT",
        "RELAY_POLL_BACKOFF",
        "RELAY_MAX_WORKERS",
        "RELAY_SIGNATURE_HEADERS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


# ============================
#  AWS STACK (Moto: SQS)
# ============================

@pytest.fixture()
def sqs_stack():
    """
    In-memory SQS (Moto) with one relay queue.
    """
    with mock_aws():
        sqs = boto3.client("sqs", region_name="eu-central-1")
        queue = sqs.create_queue(QueueName="webhook-relay")
        yield {"sqs": sqs, "queue_url": queue["QueueUrl"]}


# ============================
#  FAKES
# ============================

class FakeHttp:
    """
    Stand-in for LocalEndpointClient: returns queued responses
    (int status or an exception instance) and records each request.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or [200]
        self.requests = []

    def send(self, request):
        self.requests.append(request)
        result = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(result, Exception):
            raise result
        return result, b'{"ok":true}'

    def close(self):
        pass


class RecordingSQS:
    """Wraps a real (Moto) client, or stands alone, and counts delete_message calls."""

    def __init__(self, inner=None, delete_error=None):
        self.inner = inner
        self.delete_error = delete_error
        self.deleted = []

    def delete_message(self, QueueUrl, ReceiptHandle):
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(ReceiptHandle)
        if self.inner is not None:
            return self.inner.delete_message(QueueUrl=QueueUrl, ReceiptHandle=ReceiptHandle)
        return {}

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.fixture()
def fake_http():
    return FakeHttp


@pytest.fixture()
def recording_sqs():
    return RecordingSQS


@pytest.fixture()
def make_message():
    def _make(body="{}", attributes=None, receive_count=1, message_id="m-1", receipt="rh-1"):
        return QueueMessage(
            message_id=message_id,
            body=body,
            receipt_handle=receipt,
            attributes=dict(attributes or {}),
            receive_count=receive_count,
        )

    return _make
