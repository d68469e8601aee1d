"""Session-level orchestration over the prioritization modules and storage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from .config import Settings
from .context import build_incremental_context
from .errors import BaselineMissingError
from .memory.schema import (
    AdjustedPlan,
    BaselinePlan,
    BridgingTaskInput,
    Gap,
    IncrementalContext,
    Reflection,
    TaskSummary,
)
from .memory.store import MemoryStore
from .planning import (
    GapDetectionResult,
    InsertionResult,
    PlannerResult,
    detect_gaps,
    insert_bridging_tasks,
    needs_evaluation,
)
from .ranking import ReflectionRankingAdjuster, SimilarityFn, cosine_similarity

LOGGER = logging.getLogger(__name__)

__all__ = ["BaselineRecord", "PrioritizationService"]


@dataclass(slots=True)
class BaselineRecord:
    """Stored baseline plus whether the planner should self-check its result."""

    baseline: BaselinePlan
    needs_evaluation: bool


class PrioritizationService:
    """Wire storage and the pure planning functions together per session.

    The service performs no locking: callers keep at most one in-flight
    mutation per session.
    """

    def __init__(
        self,
        store: MemoryStore,
        settings: Settings | None = None,
        similarity: SimilarityFn = cosine_similarity,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self._adjuster = ReflectionRankingAdjuster(similarity, settings=self.settings.ranking)

    # Graph maintenance ---------------------------------------------------------------
    def insert_bridging_tasks(
        self,
        session_id: str,
        gap: Gap | Mapping[str, Any],
        tasks: Sequence[BridgingTaskInput | Mapping[str, Any]],
    ) -> InsertionResult:
        """Insert ``tasks`` into the stored plan; persists only on success."""
        current = self.store.get_tasks(session_id)
        result = insert_bridging_tasks(gap, tasks, current, settings=self.settings.insertion)
        if result.success and result.inserted_ids and result.updated_plan is not None:
            self.store.save_tasks(session_id, result.updated_plan)
        return result

    def detect_gaps(self, session_id: str, *, max_gaps: int = 3) -> GapDetectionResult:
        return detect_gaps(self.store.get_tasks(session_id), max_gaps=max_gaps)

    # Baseline lifecycle --------------------------------------------------------------
    def record_baseline(
        self,
        session_id: str,
        result: PlannerResult,
        *,
        document_ids: Sequence[str] = (),
        created_at: datetime | str | None = None,
    ) -> BaselineRecord:
        """Persist a planner result as the session baseline.

        Movement is judged against the previously stored baseline, so the
        evaluation decision is taken before it is replaced.
        """
        evaluate = needs_evaluation(
            result, self.store.get_baseline(session_id), settings=self.settings.evaluation
        )
        if evaluate:
            LOGGER.info("Planner result for session %s warrants a self-check", session_id)
        baseline = result.to_baseline(created_at=created_at)
        self.store.save_baseline(session_id, baseline, document_ids=document_ids)
        return BaselineRecord(baseline=baseline, needs_evaluation=evaluate)

    def adjust_priorities(
        self,
        session_id: str,
        task_embeddings: Mapping[str, Sequence[float]],
        *,
        excluded: Optional[Mapping[str, str]] = None,
        now: datetime | None = None,
    ) -> AdjustedPlan:
        """Re-rank the stored baseline with the session's active reflections."""
        baseline = self.store.get_baseline(session_id)
        if baseline is None:
            raise BaselineMissingError()
        reflections = self.store.reflections.list_reflections(session_id, active_only=True)
        adjusted = self._adjuster.adjust(
            baseline, reflections, task_embeddings, excluded=excluded, now=now
        )
        self.store.save_adjusted(session_id, adjusted)
        return adjusted

    def add_reflection(self, session_id: str, reflection: Reflection) -> None:
        self.store.reflections.add_reflection(session_id, reflection)

    def toggle_reflection(self, session_id: str, reflection_id: str, active: bool) -> Reflection:
        """Flip a reflection on or off; raises ``KeyError`` for unknown ids."""
        updated = self.store.reflections.set_active(session_id, reflection_id, active)
        if updated is None:
            raise KeyError(f"Unknown reflection {reflection_id!r} for session {session_id!r}")
        LOGGER.debug("Reflection %s set active=%s", reflection_id, active)
        return updated

    # Planner context -----------------------------------------------------------------
    def build_context(
        self,
        session_id: str,
        tasks: Iterable[TaskSummary | Mapping[str, Any]],
        *,
        now: datetime | None = None,
    ) -> IncrementalContext:
        """Partition ``tasks`` against the documents covered by the stored baseline."""
        baseline = self.store.get_baseline(session_id)
        document_ids = self.store.get_baseline_document_ids(session_id)
        return build_incremental_context(
            tasks,
            document_ids,
            baseline.created_at if baseline is not None else None,
            settings=self.settings.context,
            now=now,
        )
