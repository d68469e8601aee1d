from __future__ import annotations

from datetime import datetime, timezone

from prio.memory.schema import (
    AdjustedPlan,
    AdjustmentDiff,
    BaselinePlan,
    MovedTask,
    Reflection,
    Task,
)
from prio.memory.store import MemoryStore


def test_tasks_roundtrip_in_order(tmp_path) -> None:
    with MemoryStore(tmp_path / "prio.sqlite") as store:
        tasks = [
            Task(id="002", text="Design flow", estimated_hours=4, depends_on=["001"], document_id="doc-1"),
            Task(id="001", text="Research", estimated_hours=2, created_at=datetime(2025, 1, 1, tzinfo=timezone.utc)),
        ]
        store.save_tasks("session-1", tasks)

        loaded = store.get_tasks("session-1")
        assert [task.id for task in loaded] == ["002", "001"]
        assert loaded[0].depends_on == ["001"]
        assert loaded[0].document_id == "doc-1"
        assert loaded[1].created_at == "2025-01-01T00:00:00+00:00"
        assert store.get_tasks("other-session") == []

        store.save_tasks("session-1", tasks[:1])
        assert [task.id for task in store.get_tasks("session-1")] == ["002"]


def test_baseline_and_adjusted_roundtrip(tmp_path) -> None:
    with MemoryStore(tmp_path / "prio.sqlite") as store:
        assert store.get_baseline("session-1") is None
        assert store.get_baseline_document_ids("session-1") == []

        baseline = BaselinePlan(
            ordered_task_ids=["a", "b"],
            confidence_scores={"a": 0.9, "b": 0.4},
            created_at="2025-06-30T12:00:00+00:00",
        )
        store.save_baseline("session-1", baseline, document_ids=["doc-1", "doc-1", "doc-2"])

        loaded = store.get_baseline("session-1")
        assert loaded == baseline
        assert store.get_baseline_document_ids("session-1") == ["doc-1", "doc-2"]

        adjusted = AdjustedPlan(
            ordered_task_ids=["b", "a"],
            confidence_scores={"a": 0.6, "b": 0.7},
            diff=AdjustmentDiff(
                moved=[MovedTask(task_id="b", from_rank=2, to_rank=1, reason="Matches 'ship' context")]
            ),
        )
        store.save_adjusted("session-1", adjusted)
        assert store.get_adjusted("session-1") == adjusted
        assert store.get_adjusted("session-2") is None


def test_reflections_toggle_without_deleting(tmp_path) -> None:
    with MemoryStore(tmp_path / "prio.sqlite") as store:
        store.reflections.add_reflection(
            "session-1",
            Reflection(id="r1", text="Focus on billing", embedding=[1.0, 0.0], created_at="2025-06-01T00:00:00+00:00"),
        )
        store.reflections.add_reflection(
            "session-1",
            Reflection(id="r2", text="Skip docs", embedding=[0.0, 1.0], created_at="2025-06-02T00:00:00+00:00"),
        )

        updated = store.reflections.set_active("session-1", "r1", False)
        assert updated is not None
        assert updated.is_active is False
        assert store.reflections.set_active("session-1", "missing", True) is None

        active = store.reflections.list_reflections("session-1", active_only=True)
        everything = store.reflections.list_reflections("session-1")
        assert [reflection.id for reflection in active] == ["r2"]
        assert [reflection.id for reflection in everything] == ["r1", "r2"]
        assert everything[0].embedding == [1.0, 0.0]
        assert store.reflections.list_reflections("session-2") == []


def test_store_from_config_uses_db_path(tmp_path) -> None:
    db_path = tmp_path / "nested" / "prio.sqlite"
    with MemoryStore.from_config({"paths": {"db_path": str(db_path)}}) as store:
        assert store.db_path == db_path.resolve()
    assert db_path.exists()
