"""
Best-effort client IP lookup for the x-forwarded-for header.

Two sources, in order: message attributes (by normalized name), then the
JSON body probed along BODY_IP_PATHS. First match wins.
"""

import ipaddress
import json
from typing import Any, Dict, Iterable, Optional

from ..common.logging import logger

# attribute names after lowercasing and dropping "-", "_", "." and spaces
ATTRIBUTE_IP_NAMES = frozenset(
    {
        "sourceip",
        "clientip",
        "originatingip",
        "remoteaddr",
        "realip",
        "xrealip",
    }
)

# dotted entries are nested lookups
BODY_IP_PATHS = (
    "sourceIp",
    "source_ip",
    "clientIp",
    "client_ip",
    "originatingIp",
    "originating_ip",
    "remoteAddr",
    "remote_addr",
    "requestContext.identity.sourceIp",
    "headers.x-forwarded-for",
    "headers.x-real-ip",
    "requestInfo.remoteIp",
    "request.ip",
    "ip",
)

FORWARDED_FOR = "x-forwarded-for"


def normalize_attribute_name(name: str) -> str:
    return "".join(c for c in name.lower() if c not in "-_. ")


def is_ip_shaped(value: Any) -> bool:
    """True for "1.2.3.4", "::1" or a forwarded chain like "1.2.3.4, 10.0.0.1"."""
    if not isinstance(value, str) or not value.strip():
        return False
    for part in value.split(","):
        try:
            ipaddress.ip_address(part.strip())
        except ValueError:
            return False
    return True


def ip_from_attributes(attributes: Dict[str, str]) -> Optional[str]:
    for name, value in attributes.items():
        if normalize_attribute_name(name) in ATTRIBUTE_IP_NAMES and value:
            logger.debug({"ip": "from_attribute", "attribute": name, "value": value})
            return value
    return None


def _lookup(doc: Any, path: str) -> Any:
    current = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def ip_from_json(raw: bytes, paths: Iterable[str] = BODY_IP_PATHS) -> Optional[str]:
    try:
        doc = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(doc, dict):
        return None

    for path in paths:
        value = _lookup(doc, path)
        if is_ip_shaped(value):
            logger.debug({"ip": "from_body", "path": path, "value": value})
            return value
    return None


def find_source_ip(attributes: Dict[str, str], raw: bytes) -> Optional[str]:
    return ip_from_attributes(attributes) or ip_from_json(raw)


def compose_forwarded_for(existing: Optional[str], ip: str) -> str:
    if existing:
        return f"{existing}, {ip}"
    return ip
