"""Dependency-graph maintenance: cycle detection and bridging-task insertion.

Tasks form a directed graph through their ``depends_on`` lists. Every
mutation here is staged on deep copies of the incoming plan and only
returned once the staged graph has been verified acyclic, so callers never
observe a partially applied insertion.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..config import InsertionSettings
from ..errors import (
    CircularDependencyError,
    TaskInsertionError,
    TaskReferenceError,
    TaskValidationError,
)
from ..memory.schema import BridgingTaskInput, Gap, Task

__all__ = [
    "InsertionResult",
    "detect_cycle",
    "find_cycle_path",
    "insert_bridging_tasks",
    "topological_order",
]

LOGGER = logging.getLogger(__name__)

_CYCLE_LABEL_LIMIT = 50


@dataclass(slots=True)
class InsertionResult:
    """Outcome of a bridging-task insertion."""

    success: bool
    inserted_ids: list[str] = field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None
    error_field: str | None = None
    updated_plan: list[Task] | None = None
    cycle_path: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, error: TaskInsertionError) -> "InsertionResult":
        return cls(
            success=False,
            error=str(error),
            error_kind=error.kind,
            error_field=getattr(error, "field", None) or getattr(error, "side", None),
            cycle_path=list(getattr(error, "cycle_path", []) or []),
        )


def _build_graph(tasks: Sequence[Task]) -> tuple[dict[str, list[str]], dict[str, int]]:
    """Return prerequisite -> dependents adjacency and in-degrees for ``tasks``.

    Dependencies naming ids outside ``tasks`` are ignored.
    """
    dependents: dict[str, list[str]] = {task.id: [] for task in tasks}
    in_degree: dict[str, int] = {task.id: 0 for task in tasks}
    for task in tasks:
        for dependency in task.depends_on:
            if dependency in dependents:
                dependents[dependency].append(task.id)
                in_degree[task.id] += 1
    return dependents, in_degree


def topological_order(tasks: Sequence[Task]) -> list[str]:
    """Kahn elimination order; shorter than ``tasks`` when a cycle exists."""
    dependents, in_degree = _build_graph(tasks)
    queue = deque(task_id for task_id, degree in in_degree.items() if degree == 0)
    order: list[str] = []
    while queue:
        task_id = queue.popleft()
        order.append(task_id)
        for dependent in dependents[task_id]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)
    return order


def detect_cycle(tasks: Sequence[Task]) -> bool:
    """Return True when the ``depends_on`` graph of ``tasks`` contains a cycle."""
    if not tasks:
        return False
    return len(topological_order(tasks)) != len(tasks)


def find_cycle_path(tasks: Sequence[Task]) -> list[str]:
    """Return one dependency cycle (first id repeated at the end), or ``[]``.

    Iterative depth-first search with temporary/permanent marks, so long
    dependency chains do not hit the interpreter recursion limit.
    """
    graph: dict[str, list[str]] = {task.id: [] for task in tasks}
    for task in tasks:
        graph[task.id].extend(dep for dep in task.depends_on if dep in graph)

    state: dict[str, str] = {}
    for root in graph:
        if state.get(root) == "permanent":
            continue
        path: list[str] = [root]
        stack: list[Iterator[str]] = [iter(graph[root])]
        state[root] = "temporary"
        while stack:
            neighbour = next(stack[-1], None)
            if neighbour is None:
                stack.pop()
                state[path.pop()] = "permanent"
                continue
            marker = state.get(neighbour)
            if marker == "temporary":
                return path[path.index(neighbour):] + [neighbour]
            if marker is None:
                state[neighbour] = "temporary"
                path.append(neighbour)
                stack.append(iter(graph[neighbour]))
    return []


def _read_field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _validate_bridging_task(item: Any, index: int, settings: InsertionSettings) -> BridgingTaskInput:
    text = _read_field(item, "text")
    if not isinstance(text, str) or not text.strip():
        raise TaskValidationError(
            f"Bridging task {index + 1}: text cannot be empty", field="text", index=index
        )

    hours = _read_field(item, "estimated_hours")
    if isinstance(hours, bool) or not isinstance(hours, (int, float)) or not math.isfinite(hours):
        raise TaskValidationError(
            f"Bridging task {index + 1}: estimated_hours must be a number",
            field="estimated_hours",
            index=index,
        )
    if hours <= 0:
        raise TaskValidationError(
            f"Bridging task {index + 1}: estimated_hours must be positive",
            field="estimated_hours",
            index=index,
        )
    if settings.min_hours is not None and hours < settings.min_hours:
        raise TaskValidationError(
            f"Bridging task {index + 1}: estimated_hours must be at least {settings.min_hours:g}",
            field="estimated_hours",
            index=index,
        )
    if settings.max_hours is not None and hours > settings.max_hours:
        raise TaskValidationError(
            f"Bridging task {index + 1}: estimated_hours must be at most {settings.max_hours:g}",
            field="estimated_hours",
            index=index,
        )
    return BridgingTaskInput(text=text, estimated_hours=hours)


def _sequence_number(task_id: str, side: str) -> int:
    try:
        return int(task_id, 10)
    except ValueError as error:
        raise TaskReferenceError(
            f"{side} task {task_id} does not carry a sequence id", side=side, task_id=task_id
        ) from error


def _claim_id(number: int, width: int, existing: set[str], *, side: str) -> str:
    new_id = str(number).zfill(width)
    if new_id in existing:
        raise TaskReferenceError(
            f"Cannot allocate id {new_id} next to the {side} task: it already names a task in the plan",
            side=side,
            task_id=new_id,
        )
    return new_id


def _allocate_ids(
    gap: Gap,
    count: int,
    existing: set[str],
    settings: InsertionSettings,
) -> list[str]:
    """Allocate ``count`` consecutive sequence ids next to the gap, in insertion order.

    Raises ``TaskReferenceError`` naming the first allocated id that already
    exists, since the id space between the gap ends has no room.
    """
    width = settings.id_width
    ids: list[str] = []
    if gap.predecessor_id == settings.start_sentinel:
        candidate = _sequence_number(gap.successor_id, "successor") - 1
        while len(ids) < count:
            if candidate < 1:
                raise TaskReferenceError(
                    f"No room for {count} task(s) before successor task {gap.successor_id}",
                    side="successor",
                    task_id=gap.successor_id,
                )
            ids.append(_claim_id(candidate, width, existing, side="successor"))
            candidate -= 1
        ids.reverse()
        return ids

    candidate = _sequence_number(gap.predecessor_id, "predecessor") + 1
    while len(ids) < count:
        ids.append(_claim_id(candidate, width, existing, side="predecessor"))
        candidate += 1
    return ids


def _describe_cycle(cycle: Sequence[str], tasks: Sequence[Task]) -> str:
    texts = {task.id: task.text for task in tasks}
    labels: list[str] = []
    for task_id in cycle:
        text = (texts.get(task_id) or "").strip()
        if not text:
            labels.append(f"Task {task_id}")
            continue
        if len(text) > _CYCLE_LABEL_LIMIT:
            text = f"{text[:_CYCLE_LABEL_LIMIT - 3]}..."
        labels.append(f'"{text}"')
    return " -> ".join(labels)


def _stage_insertion(
    gap: Gap,
    bridging: Sequence[BridgingTaskInput],
    current_plan: Sequence[Task],
    settings: InsertionSettings,
) -> tuple[list[Task], list[str]]:
    at_start = gap.predecessor_id == settings.start_sentinel
    index_by_id = {task.id: position for position, task in enumerate(current_plan)}
    if not at_start and gap.predecessor_id not in index_by_id:
        raise TaskReferenceError(
            f"predecessor task {gap.predecessor_id} not found in plan",
            side="predecessor",
            task_id=gap.predecessor_id,
        )
    if gap.successor_id not in index_by_id:
        raise TaskReferenceError(
            f"successor task {gap.successor_id} not found in plan",
            side="successor",
            task_id=gap.successor_id,
        )

    new_ids = _allocate_ids(gap, len(bridging), set(index_by_id), settings)
    new_tasks: list[Task] = []
    for position, (task_input, new_id) in enumerate(zip(bridging, new_ids)):
        if position == 0:
            depends_on = [] if at_start else [gap.predecessor_id]
        else:
            depends_on = [new_ids[position - 1]]
        new_tasks.append(
            Task(
                id=new_id,
                text=task_input.text,
                estimated_hours=task_input.estimated_hours,
                depends_on=depends_on,
            )
        )

    staged = [task.model_copy(deep=True) for task in current_plan]
    insertion_index = 0 if at_start else index_by_id[gap.predecessor_id] + 1
    staged[insertion_index:insertion_index] = new_tasks

    last_id = new_ids[-1]
    successor = next(task for task in staged if task.id == gap.successor_id)
    dependencies = list(successor.depends_on)
    if at_start:
        if last_id not in dependencies:
            dependencies.insert(0, last_id)
    elif gap.predecessor_id in dependencies:
        dependencies[dependencies.index(gap.predecessor_id)] = last_id
    else:
        dependencies.append(last_id)
    successor.depends_on = list(dict.fromkeys(dependencies))

    if detect_cycle(staged):
        cycle = find_cycle_path(staged)
        message = "Cannot insert tasks - would create circular dependency chain."
        if cycle:
            message = f"{message} Detected cycle: {_describe_cycle(cycle, staged)}"
        raise CircularDependencyError(message, cycle_path=cycle)

    return staged, new_ids


def insert_bridging_tasks(
    gap: Gap | Mapping[str, Any],
    bridging_tasks: Sequence[BridgingTaskInput | Mapping[str, Any]],
    current_plan: Sequence[Task],
    *,
    settings: InsertionSettings | None = None,
) -> InsertionResult:
    """Splice ``bridging_tasks`` between the gap's predecessor and successor.

    Creates the chain ``predecessor -> new[0] -> ... -> new[-1] -> successor``
    and rewires the successor's dependency on the predecessor to the last new
    task. ``current_plan`` is never modified: on success the result carries a
    new plan, on failure ``updated_plan`` is ``None`` and ``error`` explains
    the rejection.
    """
    settings = settings or InsertionSettings()
    if not isinstance(gap, Gap):
        gap = Gap.model_validate(gap)

    if not bridging_tasks:
        return InsertionResult(
            success=True,
            updated_plan=[task.model_copy(deep=True) for task in current_plan],
        )

    try:
        validated = [
            _validate_bridging_task(item, index, settings) for index, item in enumerate(bridging_tasks)
        ]
        updated_plan, inserted_ids = _stage_insertion(gap, validated, current_plan, settings)
    except TaskInsertionError as error:
        LOGGER.debug(
            "Rejected bridging insertion %s -> %s (%s): %s",
            gap.predecessor_id,
            gap.successor_id,
            error.kind,
            error,
        )
        return InsertionResult.failure(error)

    LOGGER.info(
        "Inserted %d bridging task(s) between %s and %s",
        len(inserted_ids),
        gap.predecessor_id,
        gap.successor_id,
    )
    return InsertionResult(success=True, inserted_ids=inserted_ids, updated_plan=updated_plan)
