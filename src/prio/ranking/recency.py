"""Step-decayed recency weighting for reflections."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ..config import RankingSettings
from ..utils.timestamps import age_in_days


def recency_weight(
    created_at: Any,
    now: datetime | None = None,
    *,
    settings: RankingSettings | None = None,
) -> float | None:
    """Weight a reflection by age: 1.0 up to 7 days, 0.5 up to 14, then 0.25.

    Returns ``None`` when ``created_at`` cannot be parsed.
    """
    settings = settings or RankingSettings()
    days = age_in_days(created_at, now)
    if days is None:
        return None
    for limit_days, weight in settings.recency_steps:
        if days <= limit_days:
            return weight
    return settings.recency_floor
