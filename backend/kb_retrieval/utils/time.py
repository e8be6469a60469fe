"""Time helpers."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def elapsed_ms(start: float) -> float:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - start) * 1000.0


def iso_from_epoch(seconds: float) -> str:
    """Render an epoch timestamp as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
