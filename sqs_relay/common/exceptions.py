"""Relay exception hierarchy."""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for all relay errors."""


class ConfigurationError(RelayError):
    """Startup configuration is missing or unusable."""


class QueuePollError(RelayError):
    """ReceiveMessage failed; the caller backs off and polls again."""


class BodyDecodeError(RelayError):
    """Body flagged as base64 could not be decoded."""


class HeaderConstructionError(RelayError):
    """A single attribute cannot be sent as an HTTP header."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Header {name!r} skipped: {reason}")


class DeliveryTransportError(RelayError):
    """No HTTP response from the local endpoint (refused, timeout, reset)."""


class DeliveryHttpError(RelayError):
    """The local endpoint answered with a non-2xx status."""

    def __init__(self, status: int, preview: str = "") -> None:
        self.status = status
        self.preview = preview
        super().__init__(f"Local endpoint returned {status}")


class AckDeleteError(RelayError):
    """DeleteMessage failed; the message stays in the queue."""

    def __init__(self, message_id: str, reason: str) -> None:
        self.message_id = message_id
        self.reason = reason
        super().__init__(f"Failed to delete message {message_id}: {reason}")
