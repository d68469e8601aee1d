"""Small helpers shared across the engine."""

from .timestamps import age_in_days, age_in_hours, as_iso, parse_timestamp

__all__ = ["age_in_days", "age_in_hours", "as_iso", "parse_timestamp"]
