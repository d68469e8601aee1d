from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from prio.errors import BaselineMissingError, BaselineStaleError
from prio.memory.schema import BaselinePlan, Reflection, dump_record
from prio.ranking import ReflectionRankingAdjuster, adjust

NOW = datetime(2025, 6, 30, 12, 0, tzinfo=timezone.utc)

EMBEDDINGS = {
    "api": [0.0, 1.0],
    "docs": [0.0, 1.0],
    "billing": [1.0, 0.0],
}


def _baseline(created_at=NOW - timedelta(hours=1)) -> BaselinePlan:
    return BaselinePlan(
        ordered_task_ids=["api", "docs", "billing"],
        confidence_scores={"api": 0.9, "docs": 0.8, "billing": 0.7},
        created_at=created_at,
    )


def _reflection(**overrides) -> Reflection:
    payload = {
        "id": "r1",
        "text": "Focus on revenue: billing work first",
        "embedding": [1.0, 0.0],
        "created_at": NOW - timedelta(days=1),
    }
    payload.update(overrides)
    return Reflection(**payload)


def test_no_active_reflections_returns_baseline() -> None:
    baseline = _baseline()

    adjusted = adjust(baseline, [], EMBEDDINGS, now=NOW)
    inactive = adjust(baseline, [_reflection(is_active=False)], EMBEDDINGS, now=NOW)

    for result in (adjusted, inactive):
        assert result.ordered_task_ids == baseline.ordered_task_ids
        assert result.confidence_scores == baseline.confidence_scores
        assert result.diff.moved == []
        assert result.diff.filtered == []


def test_reflection_boosts_similar_and_demotes_dissimilar_tasks() -> None:
    adjusted = adjust(_baseline(), [_reflection()], EMBEDDINGS, now=NOW)

    assert adjusted.ordered_task_ids == ["api", "billing", "docs"]
    assert adjusted.confidence_scores == {"api": 0.81, "docs": 0.71, "billing": 0.79}

    moves = {move.task_id: move for move in adjusted.diff.moved}
    assert set(moves) == {"billing", "docs"}
    assert (moves["billing"].from_rank, moves["billing"].to_rank) == (3, 2)
    assert moves["billing"].direction == "boosted"
    assert moves["billing"].reason.startswith("Matches 'Focus on revenue: billing work first' context")
    assert (moves["docs"].from_rank, moves["docs"].to_rank) == (2, 3)
    assert moves["docs"].reason.startswith("Contradicts")

    metadata = adjusted.adjustment_metadata
    assert metadata.tasks_moved == 2
    assert metadata.reflections[0].recency_weight == 1.0
    assert metadata.warnings == []


def test_ordering_uses_unrounded_scores() -> None:
    baseline = BaselinePlan(
        ordered_task_ids=["a", "b"],
        confidence_scores={"a": 0.7, "b": 0.6101},
        created_at=NOW - timedelta(hours=1),
    )

    adjusted = adjust(baseline, [_reflection()], {"b": [1.0, 0.0]}, now=NOW)

    assert adjusted.ordered_task_ids == ["b", "a"]
    assert adjusted.confidence_scores == {"a": 0.7, "b": 0.7}


def test_demotion_never_hides_tasks() -> None:
    adjusted = adjust(_baseline(), [_reflection()], EMBEDDINGS, now=NOW)

    assert sorted(adjusted.ordered_task_ids) == sorted(_baseline().ordered_task_ids)
    assert adjusted.diff.filtered == []


def test_adjustment_is_idempotent() -> None:
    adjuster = ReflectionRankingAdjuster()
    first = adjuster.adjust(_baseline(), [_reflection()], EMBEDDINGS, now=NOW)
    second = adjuster.adjust(_baseline(), [_reflection()], EMBEDDINGS, now=NOW)

    assert first.ordered_task_ids == second.ordered_task_ids
    assert dump_record(first.diff) == dump_record(second.diff)
    assert first.confidence_scores == second.confidence_scores


def test_old_reflections_have_less_influence() -> None:
    stale = _reflection(created_at=NOW - timedelta(days=30))

    adjusted = adjust(_baseline(), [stale], EMBEDDINGS, now=NOW)

    # 1.0 similarity scaled by 0.25 falls below the penalty threshold.
    assert adjusted.confidence_scores["billing"] < 0.7
    assert adjusted.adjustment_metadata.reflections[0].recency_weight == 0.25


def test_unparsable_reflection_timestamp_uses_full_weight() -> None:
    adjusted = adjust(_baseline(), [_reflection(created_at="yesterday-ish")], EMBEDDINGS, now=NOW)

    assert adjusted.confidence_scores["billing"] == pytest.approx(0.79)
    assert adjusted.adjustment_metadata.reflections[0].recency_weight is None


def test_tasks_without_embeddings_keep_their_score() -> None:
    adjusted = adjust(_baseline(), [_reflection()], {"billing": [1.0, 0.0]}, now=NOW)

    assert adjusted.confidence_scores["api"] == 0.9
    assert adjusted.confidence_scores["docs"] == 0.8
    assert adjusted.ordered_task_ids == ["api", "docs", "billing"]


def test_missing_baseline_requires_full_analysis() -> None:
    with pytest.raises(BaselineMissingError, match="run full analysis first"):
        adjust(None, [_reflection()], EMBEDDINGS, now=NOW)


def test_baseline_older_than_limit_is_rejected() -> None:
    with pytest.raises(BaselineStaleError):
        adjust(_baseline(created_at=NOW - timedelta(days=8)), [_reflection()], EMBEDDINGS, now=NOW)


def test_day_old_baseline_adds_warning() -> None:
    adjusted = adjust(_baseline(created_at=NOW - timedelta(hours=30)), [_reflection()], EMBEDDINGS, now=NOW)

    assert adjusted.adjustment_metadata.warnings
    assert "24 hours" in adjusted.adjustment_metadata.warnings[0]


def test_upstream_exclusions_are_reported_as_filtered() -> None:
    adjusted = adjust(_baseline(), [], EMBEDDINGS, excluded={"docs": "Out of scope"}, now=NOW)

    assert adjusted.ordered_task_ids == ["api", "billing"]
    assert [entry.task_id for entry in adjusted.diff.filtered] == ["docs"]
    assert adjusted.diff.filtered[0].reason == "Out of scope"
    assert "docs" not in adjusted.confidence_scores


def test_moved_tasks_serialise_with_wire_names() -> None:
    adjusted = adjust(_baseline(), [_reflection()], EMBEDDINGS, now=NOW)

    payload = dump_record(adjusted)
    move = payload["diff"]["moved"][0]
    assert {"task_id", "from", "to", "reason"} <= set(move)
