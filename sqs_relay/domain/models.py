from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Union


@dataclass
class QueueMessage:
    message_id: str
    body: Union[str, bytes]
    receipt_handle: str
    attributes: Dict[str, str] = field(default_factory=dict)
    receive_count: int = 1

    def get_attribute(self, name: str) -> Optional[str]:
        """Case-insensitive attribute lookup."""
        wanted = name.lower()
        for key, value in self.attributes.items():
            if key.lower() == wanted:
                return value
        return None

    @classmethod
    def from_sqs(cls, raw: dict) -> Optional["QueueMessage"]:
        """
        Builds a QueueMessage from one entry of ReceiveMessage["Messages"].
        Returns None when the entry has no receipt handle (it cannot be acked).
        """
        receipt = raw.get("ReceiptHandle")
        if not receipt:
            return None

        attributes = {}
        for name, value in (raw.get("MessageAttributes") or {}).items():
            string_value = (value or {}).get("StringValue")
            if string_value is not None:
                attributes[name] = string_value

        try:
            receive_count = int((raw.get("Attributes") or {}).get("ApproximateReceiveCount", 1))
        except (TypeError, ValueError):
            receive_count = 1

        return cls(
            message_id=raw.get("MessageId") or "unknown",
            body=raw.get("Body") or "",
            receipt_handle=receipt,
            attributes=attributes,
            receive_count=receive_count,
        )


@dataclass
class OutboundRequest:
    url: str
    headers: Dict[str, str]
    body: bytes
    source_ip: Optional[str] = None


class OutcomeKind(Enum):
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    NETWORK_FAILURE = "network_failure"


@dataclass(frozen=True)
class DeliveryOutcome:
    kind: OutcomeKind
    status: Optional[int] = None

    @classmethod
    def network_failure(cls) -> "DeliveryOutcome":
        return cls(OutcomeKind.NETWORK_FAILURE)


class AckAction(Enum):
    ACKNOWLEDGE = "acknowledge"
    LEAVE = "leave"


@dataclass
class DeliveryReport:
    message_id: str
    outcome: Optional[DeliveryOutcome]
    action: AckAction
    deleted: bool = False
