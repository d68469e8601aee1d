from __future__ import annotations

import pytest
from pydantic import ValidationError

from prio.config import EvaluationSettings
from prio.planning import PlannerResult, has_major_movement, needs_evaluation

TASK_IDS = [f"t{index}" for index in range(10)]


def _result(
    *,
    confidence: float = 0.9,
    included: int = 10,
    corrections: str = "",
    ordered: list[str] | None = None,
) -> PlannerResult:
    return PlannerResult(
        ordered_task_ids=ordered or list(TASK_IDS),
        included_tasks=[
            {"task_id": f"t{index}", "inclusion_reason": "Aligned with outcome", "alignment_score": 8}
            for index in range(included)
        ],
        confidence_scores={task_id: 0.8 for task_id in TASK_IDS},
        confidence=confidence,
        corrections_made=corrections,
    )


def test_confident_complete_result_skips_evaluation() -> None:
    assert needs_evaluation(_result()) is False
    assert needs_evaluation(_result(), {"ordered_task_ids": TASK_IDS}) is False


def test_low_confidence_alone_triggers_evaluation() -> None:
    assert needs_evaluation(_result(confidence=0.65)) is True


def test_short_inclusion_list_triggers_evaluation() -> None:
    assert needs_evaluation(_result(included=6)) is True


def test_high_confidence_does_not_override_short_list() -> None:
    assert needs_evaluation(_result(confidence=0.95, included=6)) is True


def test_long_corrections_trigger_evaluation() -> None:
    assert needs_evaluation(_result(corrections="x" * 101)) is True
    assert needs_evaluation(_result(corrections="x" * 100)) is False


def test_full_reversal_is_major_movement() -> None:
    result = _result()
    previous = list(reversed(TASK_IDS))

    assert has_major_movement(result, previous) is True
    assert needs_evaluation(result, previous) is True


def test_small_shuffle_is_not_major_movement() -> None:
    shuffled = ["t1", "t0", "t3", "t2", "t4", "t5", "t6", "t7", "t9", "t8"]

    assert has_major_movement(_result(ordered=shuffled), {"ordered_task_ids": TASK_IDS}) is False


def test_movement_counts_only_shared_tasks() -> None:
    previous = ["t0", "x1", "x2", "x3", "x4", "x5", "x6"]

    assert has_major_movement(_result(), previous) is False


def test_thresholds_follow_settings() -> None:
    settings = EvaluationSettings(min_confidence=0.5, min_included_tasks=5)

    assert needs_evaluation(_result(confidence=0.6, included=6), settings=settings) is False


def test_to_baseline_keeps_ordered_scores_only() -> None:
    result = _result(ordered=["t0", "t1"])

    baseline = result.to_baseline(created_at="2025-06-30T12:00:00+00:00")

    assert baseline.ordered_task_ids == ["t0", "t1"]
    assert set(baseline.confidence_scores) == {"t0", "t1"}
    assert baseline.created_at == "2025-06-30T12:00:00+00:00"


def test_confidence_must_be_a_probability() -> None:
    with pytest.raises(ValidationError):
        _result(confidence=1.5)
