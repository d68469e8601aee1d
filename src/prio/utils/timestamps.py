"""Tolerant timestamp parsing used for recency and staleness checks."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

_SECONDS_PER_HOUR = 60 * 60
_SECONDS_PER_DAY = 24 * _SECONDS_PER_HOUR


def _utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def as_iso(timestamp: datetime) -> str:
    """Serialise a timestamp to a timezone-aware ISO 8601 string."""
    return _utc(timestamp).isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    """Return a UTC datetime for ``value`` or ``None`` when it cannot be parsed.

    Naive values are interpreted as UTC and a trailing ``Z`` designator is
    accepted. Nothing here raises: callers treat ``None`` as "no signal".
    """
    if isinstance(value, datetime):
        return _utc(value)
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    return _utc(parsed)


def _elapsed_seconds(value: Any, now: datetime | None) -> float | None:
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    reference = _utc(now) if now is not None else datetime.now(timezone.utc)
    return max(0.0, (reference - parsed).total_seconds())


def age_in_days(value: Any, now: datetime | None = None) -> int | None:
    """Whole days elapsed since ``value`` (floored), or ``None`` when unknown."""
    elapsed = _elapsed_seconds(value, now)
    if elapsed is None:
        return None
    return int(math.floor(elapsed / _SECONDS_PER_DAY))


def age_in_hours(value: Any, now: datetime | None = None) -> float | None:
    """Fractional hours elapsed since ``value``, or ``None`` when unknown."""
    elapsed = _elapsed_seconds(value, now)
    if elapsed is None:
        return None
    return elapsed / _SECONDS_PER_HOUR
