"""Configuration defaults and typed settings for the prioritization engine."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .errors import ConfigError

DEFAULT_CONFIG_NAME = "prio.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "insertion": {
        "start_sentinel": "000",
        "id_width": 3,
        "min_hours": None,
        "max_hours": None,
    },
    "ranking": {
        "boost_threshold": 0.7,
        "penalty_threshold": 0.3,
        "confidence_delta": 0.3,
        "fallback_confidence": 0.5,
        "recency_steps": [[7, 1.0], [14, 0.5]],
        "recency_floor": 0.25,
        "stale_warning_hours": 24,
        "stale_limit_days": 7,
        "max_reason_length": 200,
    },
    "context": {
        "tokens_per_task": 50,
        "summary_overhead_tokens": 100,
        "max_listed_documents": 10,
        "representative_task_count": 3,
    },
    "evaluation": {
        "min_confidence": 0.7,
        "min_included_tasks": 10,
        "max_corrections_length": 100,
        "movement_ratio": 0.3,
        "movement_positions": 5,
    },
    "paths": {
        "db_path": "data/prio.sqlite",
    },
}


def _merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def default_config() -> Dict[str, Any]:
    """Return a deep copy of the default configuration mapping."""
    return copy.deepcopy(DEFAULT_CONFIG)


def load_config(path: Path | str | None = None) -> Dict[str, Any]:
    """Load YAML overrides from ``path`` merged over the defaults."""
    config = default_config()
    if path is None:
        return config
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}") from error
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return _merge(config, data)


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Configuration section '{name}' must be a mapping.")
    return value


@dataclass(frozen=True, slots=True)
class InsertionSettings:
    """Knobs for bridging-task insertion."""

    start_sentinel: str = "000"
    id_width: int = 3
    min_hours: float | None = None
    max_hours: float | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "InsertionSettings":
        section = _section(config, "insertion")
        defaults = cls()
        return cls(
            start_sentinel=str(section.get("start_sentinel", defaults.start_sentinel)),
            id_width=int(section.get("id_width", defaults.id_width)),
            min_hours=section.get("min_hours", defaults.min_hours),
            max_hours=section.get("max_hours", defaults.max_hours),
        )


@dataclass(frozen=True, slots=True)
class RankingSettings:
    """Thresholds driving reflection-based re-ranking."""

    boost_threshold: float = 0.7
    penalty_threshold: float = 0.3
    confidence_delta: float = 0.3
    fallback_confidence: float = 0.5
    recency_steps: tuple[tuple[int, float], ...] = ((7, 1.0), (14, 0.5))
    recency_floor: float = 0.25
    stale_warning_hours: float = 24
    stale_limit_days: float = 7
    max_reason_length: int = 200

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RankingSettings":
        section = _section(config, "ranking")
        defaults = cls()
        raw_steps = section.get("recency_steps")
        if raw_steps is None:
            steps = defaults.recency_steps
        else:
            try:
                steps = tuple(sorted((int(days), float(weight)) for days, weight in raw_steps))
            except (TypeError, ValueError) as error:
                raise ConfigError("ranking.recency_steps must be a list of [days, weight] pairs.") from error
        return cls(
            boost_threshold=float(section.get("boost_threshold", defaults.boost_threshold)),
            penalty_threshold=float(section.get("penalty_threshold", defaults.penalty_threshold)),
            confidence_delta=float(section.get("confidence_delta", defaults.confidence_delta)),
            fallback_confidence=float(section.get("fallback_confidence", defaults.fallback_confidence)),
            recency_steps=steps,
            recency_floor=float(section.get("recency_floor", defaults.recency_floor)),
            stale_warning_hours=float(section.get("stale_warning_hours", defaults.stale_warning_hours)),
            stale_limit_days=float(section.get("stale_limit_days", defaults.stale_limit_days)),
            max_reason_length=int(section.get("max_reason_length", defaults.max_reason_length)),
        )


@dataclass(frozen=True, slots=True)
class ContextSettings:
    """Token heuristics and formatting limits for incremental context."""

    tokens_per_task: int = 50
    summary_overhead_tokens: int = 100
    max_listed_documents: int = 10
    representative_task_count: int = 3

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ContextSettings":
        section = _section(config, "context")
        defaults = cls()
        return cls(
            tokens_per_task=int(section.get("tokens_per_task", defaults.tokens_per_task)),
            summary_overhead_tokens=int(
                section.get("summary_overhead_tokens", defaults.summary_overhead_tokens)
            ),
            max_listed_documents=int(section.get("max_listed_documents", defaults.max_listed_documents)),
            representative_task_count=int(
                section.get("representative_task_count", defaults.representative_task_count)
            ),
        )


@dataclass(frozen=True, slots=True)
class EvaluationSettings:
    """Thresholds deciding whether a planner result needs a self-check."""

    min_confidence: float = 0.7
    min_included_tasks: int = 10
    max_corrections_length: int = 100
    movement_ratio: float = 0.3
    movement_positions: int = 5

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "EvaluationSettings":
        section = _section(config, "evaluation")
        defaults = cls()
        return cls(
            min_confidence=float(section.get("min_confidence", defaults.min_confidence)),
            min_included_tasks=int(section.get("min_included_tasks", defaults.min_included_tasks)),
            max_corrections_length=int(
                section.get("max_corrections_length", defaults.max_corrections_length)
            ),
            movement_ratio=float(section.get("movement_ratio", defaults.movement_ratio)),
            movement_positions=int(section.get("movement_positions", defaults.movement_positions)),
        )


@dataclass(frozen=True, slots=True)
class Settings:
    """Aggregated engine settings."""

    insertion: InsertionSettings = field(default_factory=InsertionSettings)
    ranking: RankingSettings = field(default_factory=RankingSettings)
    context: ContextSettings = field(default_factory=ContextSettings)
    evaluation: EvaluationSettings = field(default_factory=EvaluationSettings)
    db_path: Path = Path("data/prio.sqlite")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Settings":
        paths = _section(config, "paths")
        db_path = paths.get("db_path") or "data/prio.sqlite"
        return cls(
            insertion=InsertionSettings.from_config(config),
            ranking=RankingSettings.from_config(config),
            context=ContextSettings.from_config(config),
            evaluation=EvaluationSettings.from_config(config),
            db_path=Path(db_path),
        )
