"""Re-rank a baseline plan from active reflections without re-planning.

Each active reflection nudges every task's baseline confidence by the
recency-weighted similarity between their embeddings: strong matches above
the boost threshold raise confidence, weak matches below the penalty
threshold lower it. Tasks are then stably re-sorted by adjusted confidence.
Demotion only ever changes rank; tasks are removed solely when the caller
names them as excluded upstream.
"""

from __future__ import annotations

import logging
import math
import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..config import RankingSettings
from ..errors import BaselineMissingError, BaselineStaleError
from ..memory.schema import (
    AdjustedPlan,
    AdjustmentDiff,
    AdjustmentMetadata,
    BaselinePlan,
    FilteredTask,
    MovedTask,
    Reflection,
    ReflectionUsage,
)
from ..utils.timestamps import age_in_hours, as_iso
from .recency import recency_weight
from .similarity import SimilarityFn, cosine_similarity

__all__ = ["ReflectionRankingAdjuster", "adjust"]

LOGGER = logging.getLogger(__name__)

_SNIPPET_LIMIT = 96
_WHITESPACE_RE = re.compile(r"\s+")
_QUOTES_RE = re.compile(r"[\"']")
FALLBACK_REASON = "Shifted by other reprioritized tasks"


@dataclass(slots=True)
class _WeightedReflection:
    reflection: Reflection
    weight: Optional[float]

    @property
    def multiplier(self) -> float:
        # Unknown age carries no recency signal, so the similarity is used as-is.
        return 1.0 if self.weight is None else self.weight


@dataclass(slots=True)
class _TaskScore:
    task_id: str
    baseline_rank: int
    adjusted: float
    boost_delta: float = 0.0
    boost_reason: str | None = None
    penalty_delta: float = 0.0
    penalty_reason: str | None = None


class ReflectionRankingAdjuster:
    """Compute adjusted plans from a stored baseline and active reflections."""

    def __init__(
        self,
        similarity: SimilarityFn = cosine_similarity,
        *,
        settings: RankingSettings | None = None,
    ) -> None:
        self._similarity = similarity
        self._settings = settings or RankingSettings()

    @property
    def settings(self) -> RankingSettings:
        return self._settings

    def adjust(
        self,
        baseline_plan: BaselinePlan | None,
        active_reflections: Sequence[Reflection],
        task_embeddings: Mapping[str, Sequence[float]],
        *,
        excluded: Mapping[str, str] | None = None,
        now: datetime | None = None,
    ) -> AdjustedPlan:
        """Return ``baseline_plan`` re-ranked by ``active_reflections``.

        Raises ``BaselineMissingError`` without a baseline and
        ``BaselineStaleError`` when the baseline exceeds the staleness limit.
        """
        started = time.perf_counter()
        if baseline_plan is None:
            raise BaselineMissingError()
        now = now or datetime.now(timezone.utc)
        warnings = self._staleness_warnings(baseline_plan, now)

        usable = [
            reflection
            for reflection in active_reflections
            if reflection.is_active and reflection.text.strip()
        ]
        excluded = dict(excluded or {})
        retained = [task_id for task_id in baseline_plan.ordered_task_ids if task_id not in excluded]
        filtered = [
            FilteredTask(task_id=task_id, reason=self._truncate(reason or "Excluded upstream"))
            for task_id, reason in excluded.items()
            if task_id in baseline_plan.ordered_task_ids
        ]
        confidence_scores = {
            task_id: score
            for task_id, score in baseline_plan.confidence_scores.items()
            if task_id not in excluded
        }
        if not usable:
            return AdjustedPlan(
                ordered_task_ids=retained,
                confidence_scores=confidence_scores,
                diff=AdjustmentDiff(filtered=filtered),
                adjustment_metadata=AdjustmentMetadata(
                    tasks_filtered=len(filtered),
                    duration_ms=self._elapsed_ms(started),
                    warnings=warnings,
                ),
            )

        weighted = [
            _WeightedReflection(reflection, recency_weight(reflection.created_at, now, settings=self._settings))
            for reflection in usable
        ]
        scores = [
            self._score_task(task_id, rank, baseline_plan, weighted, task_embeddings)
            for rank, task_id in enumerate(retained, start=1)
        ]
        scores.sort(key=lambda score: (-score.adjusted, score.baseline_rank))

        moved: list[MovedTask] = []
        for rank, score in enumerate(scores, start=1):
            if rank == score.baseline_rank:
                continue
            if rank < score.baseline_rank:
                reason = score.boost_reason
            else:
                reason = score.penalty_reason
            moved.append(
                MovedTask(
                    task_id=score.task_id,
                    from_rank=score.baseline_rank,
                    to_rank=rank,
                    reason=reason or FALLBACK_REASON,
                )
            )
        confidence_scores.update({score.task_id: round(score.adjusted, 3) for score in scores})

        duration_ms = self._elapsed_ms(started)
        LOGGER.info(
            "context_adjustment_completed reflections=%d tasks_moved=%d tasks_filtered=%d duration_ms=%.1f",
            len(weighted),
            len(moved),
            len(filtered),
            duration_ms,
        )
        return AdjustedPlan(
            ordered_task_ids=[score.task_id for score in scores],
            confidence_scores=confidence_scores,
            diff=AdjustmentDiff(moved=moved, filtered=filtered),
            adjustment_metadata=AdjustmentMetadata(
                reflections=[self._usage(entry) for entry in weighted],
                tasks_moved=len(moved),
                tasks_filtered=len(filtered),
                duration_ms=duration_ms,
                warnings=warnings,
            ),
        )

    def _staleness_warnings(self, baseline_plan: BaselinePlan, now: datetime) -> list[str]:
        age_hours = age_in_hours(baseline_plan.created_at, now)
        if age_hours is None:
            return []
        if age_hours > self._settings.stale_limit_days * 24:
            raise BaselineStaleError(age_hours, self._settings.stale_limit_days)
        if age_hours > self._settings.stale_warning_hours:
            return [
                f"Baseline plan older than {self._settings.stale_warning_hours:g} hours. "
                "Consider running a fresh analysis soon."
            ]
        return []

    def _score_task(
        self,
        task_id: str,
        baseline_rank: int,
        baseline_plan: BaselinePlan,
        reflections: Sequence[_WeightedReflection],
        task_embeddings: Mapping[str, Sequence[float]],
    ) -> _TaskScore:
        settings = self._settings
        base = baseline_plan.confidence_scores.get(task_id, settings.fallback_confidence)
        score = _TaskScore(task_id=task_id, baseline_rank=baseline_rank, adjusted=base)
        embedding = task_embeddings.get(task_id)
        if embedding is not None and len(embedding) > 0:
            for entry in reflections:
                vector = entry.reflection.embedding
                if len(vector) != len(embedding):
                    continue
                similarity = self._similarity(embedding, vector)
                if not math.isfinite(similarity):
                    continue
                scaled = similarity * entry.multiplier
                if scaled > settings.boost_threshold:
                    delta = (min(1.0, scaled) - settings.boost_threshold) * settings.confidence_delta
                    score.adjusted += delta
                    if delta > score.boost_delta:
                        score.boost_delta = delta
                        score.boost_reason = self._context_reason(entry.reflection.text, "boosted")
                elif scaled < settings.penalty_threshold:
                    delta = (settings.penalty_threshold - max(0.0, scaled)) * settings.confidence_delta
                    score.adjusted -= delta
                    if delta > score.penalty_delta:
                        score.penalty_delta = delta
                        score.penalty_reason = self._context_reason(entry.reflection.text, "demoted")
        score.adjusted = min(1.0, max(0.0, score.adjusted))
        return score

    def _context_reason(self, reflection_text: str, direction: str) -> str:
        compact = _QUOTES_RE.sub("", _WHITESPACE_RE.sub(" ", reflection_text).strip())
        if compact:
            if len(compact) > _SNIPPET_LIMIT:
                compact = f"{compact[: _SNIPPET_LIMIT - 1]}…"
            label = f"'{compact}' context"
        else:
            label = "active reflection context"
        verb = "Matches" if direction == "boosted" else "Contradicts"
        return self._truncate(f"{verb} {label}")

    def _truncate(self, text: str) -> str:
        limit = self._settings.max_reason_length
        trimmed = text.strip()
        if len(trimmed) <= limit:
            return trimmed
        return f"{trimmed[: limit - 1]}…"

    @staticmethod
    def _usage(entry: _WeightedReflection) -> ReflectionUsage:
        created_at = entry.reflection.created_at
        return ReflectionUsage(
            id=entry.reflection.id,
            text=entry.reflection.text,
            recency_weight=None if entry.weight is None else round(entry.weight, 3),
            created_at=as_iso(created_at) if isinstance(created_at, datetime) else str(created_at),
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round(max(0.0, (time.perf_counter() - started) * 1000), 3)


def adjust(
    baseline_plan: BaselinePlan | None,
    active_reflections: Sequence[Reflection],
    task_embeddings: Mapping[str, Sequence[float]],
    *,
    similarity: SimilarityFn = cosine_similarity,
    settings: RankingSettings | None = None,
    excluded: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> AdjustedPlan:
    """Functional wrapper around :class:`ReflectionRankingAdjuster`."""
    adjuster = ReflectionRankingAdjuster(similarity, settings=settings)
    return adjuster.adjust(
        baseline_plan, active_reflections, task_embeddings, excluded=excluded, now=now
    )
