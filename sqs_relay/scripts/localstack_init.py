#!/usr/bin/env python3
"""Create the relay queue on LocalStack and (optionally) enqueue a signed sample webhook."""
import base64
import hashlib
import hmac
import json
import os
import sys

from botocore.exceptions import ClientError

from ..common.aws import sqs_client

QUEUE_NAME = os.getenv("RELAY_QUEUE_NAME", "webhook-relay")
AWS_ENDPOINT = os.getenv("AWS_ENDPOINT_URL", "http://localhost:4566")
REGION = os.getenv("AWS_DEFAULT_REGION", "eu-central-1")


def ensure_queue(sqs, name):
    try:
        resp = sqs.get_queue_url(QueueName=name)
        print(f"[init] queue exists: {name} -> {resp['QueueUrl']}")
        return resp["QueueUrl"]
    except ClientError:
        resp = sqs.create_queue(QueueName=name)
        print(f"[init] queue created: {name} -> {resp['QueueUrl']}")
        return resp["QueueUrl"]


def sample_message(secret: str, payload: dict | None = None) -> dict:
    """
    Message shaped like the API Gateway -> SQS template output:
    base64 body, BodyIsBase64 flag and the GitHub signature over the raw bytes.
    """
    raw = json.dumps(payload or {"action": "opened", "id": "sample-0001"}).encode("utf-8")
    signature = "sha256=" + hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()

    def attr(value):
        return {"DataType": "String", "StringValue": value}

    return {
        "MessageBody": base64.b64encode(raw).decode("ascii"),
        "MessageAttributes": {
            "BodyIsBase64": attr("true"),
            "X-Hub-Signature-256": attr(signature),
            "X-GitHub-Event": attr("pull_request"),
            "Content-Type": attr("application/json"),
            "SourceIp": attr("127.0.0.1"),
        },
    }


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    os.environ.setdefault("AWS_ENDPOINT_URL", AWS_ENDPOINT)
    os.environ.setdefault("AWS_DEFAULT_REGION", REGION)

    sqs = sqs_client()
    queue_url = ensure_queue(sqs, QUEUE_NAME)

    if "--send-sample" in argv:
        msg = sample_message(os.getenv("WEBHOOK_SECRET", "dev-secret"))
        sqs.send_message(QueueUrl=queue_url, **msg)
        print("[init] sample webhook enqueued")

    print("\n[init] export these env vars in your shell:")
    print(f"export AWS_ENDPOINT_URL={os.environ['AWS_ENDPOINT_URL']}")
    print(f"export AWS_DEFAULT_REGION={os.environ['AWS_DEFAULT_REGION']}")
    print(f"export QUEUE_URL={queue_url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
