# sqs_relay/common/aws.py
import os
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ConfigurationError


def _region():
    return os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "eu-central-1"

def _cfg():
    return Config(
        retries={"max_attempts": int(os.getenv("AWS_MAX_ATTEMPTS", "3")), "mode": "standard"}
    )

def _endpoint_for(service: str) -> str | None:
    # 1) per-service endpoint (highest priority), e.g. SQS_ENDPOINT
    per_service = os.getenv(f"{service.upper()}_ENDPOINT") or os.getenv("LOCALSTACK_ENDPOINT")
    if per_service:
        return per_service

    # 2) global override
    global_ep = os.getenv("AWS_ENDPOINT_URL")
    if global_ep:
        return global_ep

    # 3) SAM/LocalStack usually inject LOCALSTACK_HOSTNAME into the container
    host = os.getenv("LOCALSTACK_HOSTNAME")
    if host:
        return f"http://{host}:4566"

    # no endpoint => boto3 talks to real AWS
    return None

def sqs_client():
    ep = _endpoint_for("sqs")
    kwargs = {"region_name": _region(), "config": _cfg()}
    if ep:
        kwargs["endpoint_url"] = ep
    return boto3.client("sqs", **kwargs)

def resolve_queue_url(value: str, client=None) -> str:
    """
    Accepts either a full queue URL or a bare queue name.
    Names are resolved with GetQueueUrl (handy with LocalStack).
    """
    if not value:
        raise ConfigurationError("missing QUEUE_URL")
    if value.startswith(("http://", "https://")):
        return value

    try:
        sqs = client or sqs_client()
        return sqs.get_queue_url(QueueName=value)["QueueUrl"]
    except (BotoCoreError, ClientError) as e:
        raise ConfigurationError(f"cannot resolve queue {value!r}: {e}") from e
