"""Heuristic deciding whether a planner result deserves a self-check pass."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ..config import EvaluationSettings
from .schemas import PlannerResult

__all__ = ["has_major_movement", "needs_evaluation"]


def _ordered_ids(plan: Any) -> list[str]:
    if plan is None:
        return []
    if isinstance(plan, Mapping):
        value = plan.get("ordered_task_ids")
    elif isinstance(plan, Sequence) and not isinstance(plan, str):
        value = plan
    else:
        value = getattr(plan, "ordered_task_ids", None)
    if not value:
        return []
    return [task_id for task_id in value if isinstance(task_id, str)]


def has_major_movement(
    result: PlannerResult,
    previous_plan: Any,
    *,
    settings: EvaluationSettings | None = None,
) -> bool:
    """Return True when too many shared tasks jumped far from their previous rank."""
    settings = settings or EvaluationSettings()
    previous_ids = _ordered_ids(previous_plan)
    current_ids = _ordered_ids(result)
    if not previous_ids or not current_ids:
        return False

    previous_positions = {task_id: rank for rank, task_id in enumerate(previous_ids, start=1)}
    common = 0
    major_moves = 0
    for rank, task_id in enumerate(current_ids, start=1):
        previous_rank = previous_positions.get(task_id)
        if previous_rank is None:
            continue
        common += 1
        if abs(previous_rank - rank) > settings.movement_positions:
            major_moves += 1
    if common == 0:
        return False
    return major_moves / common > settings.movement_ratio


def needs_evaluation(
    result: PlannerResult,
    previous_plan: Any = None,
    *,
    settings: EvaluationSettings | None = None,
) -> bool:
    """Return True when any low-certainty signal warrants a second planner pass.

    A very high overall confidence does not excuse a short inclusion list,
    long corrections, or heavy movement against ``previous_plan``.
    """
    settings = settings or EvaluationSettings()
    if result.confidence < settings.min_confidence:
        return True
    if len(result.included_tasks) < settings.min_included_tasks:
        return True
    if len(result.corrections_made or "") > settings.max_corrections_length:
        return True
    if previous_plan is not None and has_major_movement(result, previous_plan, settings=settings):
        return True
    return False
