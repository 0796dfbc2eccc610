"""
QueueMessage -> OutboundRequest.

The body has to reach the local endpoint byte-for-byte as the webhook
provider sent it, since signature headers (X-Hub-Signature-256 etc.) are
HMACs over those exact bytes. The upstream API Gateway template stores the
original bytes as base64 and marks it with BodyIsBase64=true.
"""

import base64
import binascii
import re
from typing import Dict, Iterable, Union

from ..common.exceptions import BodyDecodeError, HeaderConstructionError
from ..common.logging import logger
from ..domain.models import OutboundRequest, QueueMessage
from .ip_extraction import FORWARDED_FOR, compose_forwarded_for, find_source_ip

BASE64_FLAG_ATTRIBUTE = "BodyIsBase64"
DEFAULT_CONTENT_TYPE = "application/json"
DEFAULT_SIGNATURE_HEADERS = ("x-hub-signature-256",)

# RFC 9110 token
_HEADER_NAME_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
# visible ASCII / tab, no leading whitespace (requests rejects it)
_HEADER_VALUE_RE = re.compile(r"([\x21-\x7e][\t\x20-\x7e]*)?")


def _to_bytes(body: Union[str, bytes]) -> bytes:
    return body if isinstance(body, bytes) else body.encode("utf-8")


def _b64decode(body: Union[str, bytes]) -> bytes:
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise BodyDecodeError(str(e)) from e


def decode_body(message: QueueMessage) -> bytes:
    flag = message.get_attribute(BASE64_FLAG_ATTRIBUTE)
    is_b64 = flag is not None and flag.strip().lower() == "true"

    if not is_b64:
        return _to_bytes(message.body)

    try:
        raw = _b64decode(message.body)
    except BodyDecodeError as e:
        logger.warning(
            {
                "builder": "base64_decode_failed",
                "message_id": message.message_id,
                "err": str(e),
                "fallback": "utf8",
            }
        )
        return _to_bytes(message.body)

    logger.debug({"builder": "base64_decoded", "message_id": message.message_id, "bytes": len(raw)})
    return raw


def _check_header(name: str, value: str) -> None:
    if not _HEADER_NAME_RE.fullmatch(name):
        raise HeaderConstructionError(name, "invalid header name")
    if not isinstance(value, str) or not _HEADER_VALUE_RE.fullmatch(value):
        raise HeaderConstructionError(name, "invalid header value")


def build_headers(
    attributes: Dict[str, str],
    signature_headers: Iterable[str] = DEFAULT_SIGNATURE_HEADERS,
    message_id: str = "unknown",
) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for name, value in attributes.items():
        key = name.lower()
        try:
            _check_header(key, value)
        except HeaderConstructionError as e:
            logger.warning({"builder": "header_skipped", "message_id": message_id, "err": str(e)})
            continue
        headers[key] = value

    if "content-type" not in headers:
        headers["content-type"] = DEFAULT_CONTENT_TYPE

    wanted = [h.lower() for h in signature_headers]
    if wanted and not any(h in headers for h in wanted):
        # the local endpoint decides whether to reject
        logger.warning(
            {
                "builder": "signature_missing",
                "message_id": message_id,
                "expected": wanted,
            }
        )
    return headers


def build_request(
    message: QueueMessage,
    url: str,
    signature_headers: Iterable[str] = DEFAULT_SIGNATURE_HEADERS,
) -> OutboundRequest:
    body = decode_body(message)
    headers = build_headers(message.attributes, signature_headers, message.message_id)

    source_ip = find_source_ip(message.attributes, body)
    if source_ip:
        try:
            value = compose_forwarded_for(headers.get(FORWARDED_FOR), source_ip)
            _check_header(FORWARDED_FOR, value)
        except HeaderConstructionError as e:
            logger.warning({"builder": "header_skipped", "message_id": message.message_id, "err": str(e)})
        else:
            headers[FORWARDED_FOR] = value
            logger.debug({"builder": "forwarded_for", "message_id": message.message_id, "value": value})

    return OutboundRequest(url=url, headers=headers, body=body, source_ip=source_ip)
