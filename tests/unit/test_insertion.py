from __future__ import annotations

import pytest

from prio.config import InsertionSettings
from prio.memory.schema import Gap, Task
from prio.planning import insert_bridging_tasks


def _by_id(tasks: list[Task]) -> dict[str, Task]:
    return {task.id: task for task in tasks}


def test_inserts_chain_between_predecessor_and_successor(sample_plan) -> None:
    result = insert_bridging_tasks(
        {"predecessor_id": "002", "successor_id": "005"},
        [
            {"text": "Build frontend", "estimated_hours": 80},
            {"text": "Build backend", "estimated_hours": 60},
        ],
        sample_plan,
    )

    assert result.success
    assert result.inserted_ids == ["003", "004"]
    assert result.updated_plan is not None
    assert len(result.updated_plan) == len(sample_plan) + 2
    tasks = _by_id(result.updated_plan)
    assert tasks["003"].depends_on == ["002"]
    assert tasks["004"].depends_on == ["003"]
    assert tasks["005"].depends_on == ["004"]
    assert tasks["002"].depends_on == ["001"]
    assert tasks["001"].depends_on == []
    assert [task.id for task in result.updated_plan] == ["001", "002", "003", "004", "005"]


def test_successor_dependency_on_predecessor_is_rewired(sample_plan) -> None:
    plan = [task.model_copy(deep=True) for task in sample_plan]
    plan[2].depends_on = ["002", "001"]

    result = insert_bridging_tasks(
        Gap(predecessor_id="002", successor_id="005"),
        [{"text": "Build prototype", "estimated_hours": 12}],
        plan,
    )

    assert result.success
    assert _by_id(result.updated_plan)["005"].depends_on == ["003", "001"]


def test_input_plan_is_not_mutated_on_success(sample_plan) -> None:
    before = [task.model_dump() for task in sample_plan]

    insert_bridging_tasks(
        {"predecessor_id": "002", "successor_id": "005"},
        [{"text": "Build frontend", "estimated_hours": 80}],
        sample_plan,
    )

    assert [task.model_dump() for task in sample_plan] == before


def test_cycle_is_rejected_and_plan_left_untouched() -> None:
    plan = [
        Task(id="001", text="Ship release", estimated_hours=2, depends_on=["003"]),
        Task(id="003", text="Write release notes", estimated_hours=3),
    ]
    before = [task.model_dump() for task in plan]

    result = insert_bridging_tasks(
        {"predecessor_id": "001", "successor_id": "003"},
        [{"text": "Collect feedback", "estimated_hours": 5}],
        plan,
    )

    assert not result.success
    assert result.error_kind == "cycle"
    assert "circular dependency" in (result.error or "")
    assert result.updated_plan is None
    assert set(result.cycle_path) >= {"001", "002", "003"}
    assert [task.model_dump() for task in plan] == before


@pytest.mark.parametrize(
    ("candidate", "field_name"),
    [
        ({"text": "", "estimated_hours": 4}, "text"),
        ({"text": "   ", "estimated_hours": 4}, "text"),
        ({"text": "Build API", "estimated_hours": 0}, "estimated_hours"),
        ({"text": "Build API", "estimated_hours": -3}, "estimated_hours"),
        ({"text": "Build API", "estimated_hours": "soon"}, "estimated_hours"),
    ],
)
def test_invalid_bridging_task_reports_field(sample_plan, candidate, field_name) -> None:
    result = insert_bridging_tasks(
        {"predecessor_id": "002", "successor_id": "005"}, [candidate], sample_plan
    )

    assert not result.success
    assert result.error_kind == "validation"
    assert result.error_field == field_name
    assert result.updated_plan is None


def test_hour_bounds_come_from_settings(sample_plan) -> None:
    settings = InsertionSettings(min_hours=8, max_hours=160)

    too_small = insert_bridging_tasks(
        {"predecessor_id": "002", "successor_id": "005"},
        [{"text": "Build API", "estimated_hours": 2}],
        sample_plan,
        settings=settings,
    )
    within = insert_bridging_tasks(
        {"predecessor_id": "002", "successor_id": "005"},
        [{"text": "Build API", "estimated_hours": 40}],
        sample_plan,
        settings=settings,
    )

    assert not too_small.success
    assert "at least 8" in (too_small.error or "")
    assert within.success


@pytest.mark.parametrize(
    ("gap", "side"),
    [
        ({"predecessor_id": "404", "successor_id": "005"}, "predecessor"),
        ({"predecessor_id": "002", "successor_id": "404"}, "successor"),
    ],
)
def test_missing_reference_names_the_side(sample_plan, gap, side) -> None:
    result = insert_bridging_tasks(gap, [{"text": "Build API", "estimated_hours": 4}], sample_plan)

    assert not result.success
    assert result.error_kind == "reference"
    assert result.error_field == side
    assert "404" in (result.error or "")


def test_start_sentinel_allocates_ids_before_successor() -> None:
    plan = [
        Task(id="005", text="Design landing page", estimated_hours=6),
        Task(id="006", text="Build landing page", estimated_hours=10, depends_on=["005"]),
    ]

    result = insert_bridging_tasks(
        {"predecessor_id": "000", "successor_id": "005"},
        [
            {"text": "Interview customers", "estimated_hours": 6},
            {"text": "Summarise interview notes", "estimated_hours": 2},
        ],
        plan,
    )

    assert result.success
    assert result.inserted_ids == ["003", "004"]
    tasks = _by_id(result.updated_plan)
    assert tasks["003"].depends_on == []
    assert tasks["004"].depends_on == ["003"]
    assert tasks["005"].depends_on == ["004"]
    assert [task.id for task in result.updated_plan][:2] == ["003", "004"]


def test_colliding_id_is_rejected_without_mutation() -> None:
    plan = [
        Task(id="001", text="Plan sprint", estimated_hours=1),
        Task(id="002", text="Review backlog", estimated_hours=1),
        Task(id="004", text="Run retro", estimated_hours=1, depends_on=["001"]),
    ]
    before = [task.model_dump() for task in plan]

    result = insert_bridging_tasks(
        {"predecessor_id": "001", "successor_id": "004"},
        [
            {"text": "Groom stories", "estimated_hours": 2},
            {"text": "Estimate stories", "estimated_hours": 2},
        ],
        plan,
    )

    assert not result.success
    assert result.error_kind == "reference"
    assert result.error_field == "predecessor"
    assert "002" in (result.error or "")
    assert result.updated_plan is None
    assert result.inserted_ids == []
    assert [task.model_dump() for task in plan] == before


def test_start_sentinel_rejects_colliding_id() -> None:
    plan = [
        Task(id="002", text="Interview customers", estimated_hours=4),
        Task(id="003", text="Design landing page", estimated_hours=6, depends_on=["002"]),
    ]

    result = insert_bridging_tasks(
        {"predecessor_id": "000", "successor_id": "003"},
        [{"text": "Draft interview script", "estimated_hours": 2}],
        plan,
    )

    assert not result.success
    assert result.error_kind == "reference"
    assert result.error_field == "successor"
    assert "002" in (result.error or "")


def test_cycle_through_a_long_chain_is_reported() -> None:
    ids = [str(2 * index).zfill(5) for index in range(1, 1501)]
    plan = [
        Task(id=task_id, text=f"Step {task_id}", estimated_hours=1, depends_on=ids[position + 1 : position + 2])
        for position, task_id in enumerate(ids)
    ]

    result = insert_bridging_tasks(
        {"predecessor_id": ids[0], "successor_id": ids[-1]},
        [{"text": "Close the loop", "estimated_hours": 1}],
        plan,
        settings=InsertionSettings(id_width=5),
    )

    assert not result.success
    assert result.error_kind == "cycle"
    assert "circular dependency" in (result.error or "")
    assert len(result.cycle_path) == len(ids) + 2
    assert result.cycle_path[0] == result.cycle_path[-1]


def test_empty_bridging_list_is_a_no_op(sample_plan) -> None:
    result = insert_bridging_tasks({"predecessor_id": "002", "successor_id": "005"}, [], sample_plan)

    assert result.success
    assert result.inserted_ids == []
    assert [task.model_dump() for task in result.updated_plan] == [task.model_dump() for task in sample_plan]
