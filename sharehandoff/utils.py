"""Utility helpers shared across modules."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from uuid import uuid4


def unix_now() -> int:
    """Current time as whole Unix seconds."""
    return int(time.time())


def isoformat_utc(timestamp: int | float) -> str:
    """Render Unix seconds as an ISO string with a trailing Z."""
    return datetime.fromtimestamp(timestamp, tz=UTC).isoformat().replace("+00:00", "Z")


def short_id() -> str:
    """Short random token used to keep staged file names apart."""
    return uuid4().hex[:8]


def truncate(value: str, limit: int = 80) -> str:
    """Shorten long payloads for log lines."""
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."
