"""Structured planner output consumed by the engine."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from ..memory.schema import BaselinePlan, RecordModel, utc_now


class IncludedTask(RecordModel):
    """Task the planner kept, with its inclusion rationale."""

    task_id: str
    inclusion_reason: str = ""
    alignment_score: Optional[float] = None


class ExcludedTask(RecordModel):
    """Task the planner dropped, with its exclusion rationale."""

    task_id: str
    exclusion_reason: str = ""


class PlannerResult(RecordModel):
    """Result returned by the external planner for one planning pass."""

    ordered_task_ids: List[str]
    included_tasks: List[IncludedTask] = Field(default_factory=list)
    excluded_tasks: List[ExcludedTask] = Field(default_factory=list)
    confidence_scores: Dict[str, float] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    corrections_made: Optional[str] = None

    def to_baseline(self, created_at: datetime | str | None = None) -> BaselinePlan:
        """Freeze this result into a baseline plan for later re-ranking."""
        ordered = set(self.ordered_task_ids)
        scores = {task_id: score for task_id, score in self.confidence_scores.items() if task_id in ordered}
        return BaselinePlan(
            ordered_task_ids=list(self.ordered_task_ids),
            confidence_scores=scores,
            created_at=created_at or utc_now(),
        )
