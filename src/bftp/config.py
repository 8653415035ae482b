from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .constants import (
    DEFAULT_BASE_DIR,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_MS,
    MAX_PORT,
)

logger = logging.getLogger(__name__)


def parse_positive_int(
    raw: Optional[str | int], default: int, what: str, maximum: Optional[int] = None
) -> int:
    """Parse ``raw`` as a positive integer, falling back to ``default``.

    A missing value silently uses the default; an unparsable, non-positive
    or above-``maximum`` one logs a warning first. Never raises.
    """
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("%s must be a positive integer (got %r); using %d", what, raw, default)
        return default
    if value < 1:
        logger.warning("%s must be a positive integer (got %r); using %d", what, raw, default)
        return default
    if maximum is not None and value > maximum:
        logger.warning("%s must be at most %d (got %r); using %d", what, maximum, raw, default)
        return default
    return value


@dataclass(frozen=True, slots=True)
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    base_dir: str = DEFAULT_BASE_DIR

    @classmethod
    def from_raw(
        cls,
        port: Optional[str | int] = None,
        timeout_ms: Optional[str | int] = None,
        host: str = DEFAULT_HOST,
        base_dir: str = DEFAULT_BASE_DIR,
    ) -> "ServerConfig":
        return cls(
            host=host,
            port=parse_positive_int(port, DEFAULT_PORT, "Port number", maximum=MAX_PORT),
            timeout_ms=parse_positive_int(timeout_ms, DEFAULT_TIMEOUT_MS, "Timeout (ms)"),
            base_dir=base_dir,
        )


@dataclass(frozen=True, slots=True)
class ClientConfig:
    host: str = "localhost"
    port: int = DEFAULT_PORT
    timeout_ms: int = DEFAULT_TIMEOUT_MS
