"""
Relay configuration read from environment variables.
Exposes the Settings dataclass as the single source of truth.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv, find_dotenv

from .exceptions import ConfigurationError

# Load variables from .env (if the file exists).
load_dotenv(find_dotenv())

DEFAULT_LOCAL_URL = "http://127.0.0.1:3000/webhook"


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    return _env_number(name, default, int)


def _env_float(name: str, default: float) -> float:
    return _env_number(name, default, float)


def _env_list(name: str, default: str) -> tuple:
    raw = os.getenv(name, default)
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass
class Settings:
    """
    Settings for one relay process.

    Fields are grouped logically (queue, local endpoint, receive parameters,
    logging). Each instance re-reads the environment, so tests can change env
    vars and build a fresh Settings().
    """

    # Queue (URL or bare queue name)
    queue_url: str = field(default_factory=lambda: os.getenv("QUEUE_URL", ""))

    # Local endpoint
    local_url: str = field(default_factory=lambda: os.getenv("LOCAL_URL", DEFAULT_LOCAL_URL))
    http_timeout: float = field(default_factory=lambda: _env_float("RELAY_HTTP_TIMEOUT", 20.0))

    # Receive parameters
    batch_size: int = field(default_factory=lambda: _env_int("RELAY_BATCH_SIZE", 10))
    wait_seconds: int = field(default_factory=lambda: _env_int("RELAY_WAIT_SECONDS", 20))
    visibility_timeout: int = field(default_factory=lambda: _env_int("RELAY_VISIBILITY_TIMEOUT", 60))
    poll_backoff: float = field(default_factory=lambda: _env_float("RELAY_POLL_BACKOFF", 2.0))

    # 1 = sequential delivery within a batch
    max_workers: int = field(default_factory=lambda: _env_int("RELAY_MAX_WORKERS", 1))

    # headers whose absence only produces a warning
    signature_headers: tuple = field(
        default_factory=lambda: _env_list("RELAY_SIGNATURE_HEADERS", "x-hub-signature-256")
    )

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
