"""Split a task corpus into an already-summarised baseline and new tasks."""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ..config import ContextSettings
from ..memory.schema import BaselineSummary, IncrementalContext, PromptContext, TaskSummary
from ..utils.timestamps import age_in_hours, as_iso

LOGGER = logging.getLogger(__name__)

__all__ = [
    "build_incremental_context",
    "build_incremental_prompt_context",
    "format_baseline_summary",
    "format_new_tasks",
]

NO_BASELINE_TEXT = "No previous baseline."
NO_NEW_TASKS_TEXT = "No new tasks to analyze."
BASELINE_NOTE = (
    "NOTE: Baseline tasks have already been analyzed and prioritized. "
    "Focus on integrating NEW tasks below with the existing baseline."
)


def _coerce_tasks(tasks: Iterable[TaskSummary | Mapping[str, Any]]) -> List[TaskSummary]:
    return [task if isinstance(task, TaskSummary) else TaskSummary.model_validate(task) for task in tasks]


def _created_at_text(value: datetime | str | None) -> Optional[str]:
    if isinstance(value, datetime):
        return as_iso(value)
    return value


def _summarise_baseline(
    baseline_tasks: Sequence[TaskSummary],
    baseline_document_ids: Sequence[str],
    baseline_created_at: datetime | str | None,
    settings: ContextSettings,
    now: datetime | None,
) -> BaselineSummary:
    unique_ids = list(dict.fromkeys(task.document_id for task in baseline_tasks if task.document_id))
    document_ids = unique_ids or list(baseline_document_ids)
    return BaselineSummary(
        document_ids=document_ids,
        document_count=len(document_ids),
        task_count=len(baseline_tasks),
        top_task_ids=[task.task_id for task in baseline_tasks[: settings.representative_task_count]],
        created_at=_created_at_text(baseline_created_at),
        age_hours=age_in_hours(baseline_created_at, now),
    )


def build_incremental_context(
    all_tasks: Iterable[TaskSummary | Mapping[str, Any]],
    baseline_document_ids: Optional[Sequence[str]] = None,
    baseline_created_at: datetime | str | None = None,
    *,
    settings: ContextSettings | None = None,
    now: datetime | None = None,
) -> IncrementalContext:
    """Partition ``all_tasks`` into baseline and new subsets.

    A task belongs to the baseline only when its ``document_id`` is one of
    ``baseline_document_ids``; tasks without a document id are always new.
    Without remembered document ids or a baseline timestamp the call is a
    first run and every task is new.
    """
    settings = settings or ContextSettings()
    tasks = _coerce_tasks(all_tasks)
    document_ids = list(baseline_document_ids or [])

    if not document_ids or baseline_created_at is None:
        return IncrementalContext(is_first_run=True, new_tasks=list(tasks), all_tasks=tasks)

    known = set(document_ids)
    baseline_tasks: List[TaskSummary] = []
    new_tasks: List[TaskSummary] = []
    for task in tasks:
        if task.document_id and task.document_id in known:
            baseline_tasks.append(task)
        else:
            new_tasks.append(task)

    savings = max(
        0, len(baseline_tasks) * settings.tokens_per_task - settings.summary_overhead_tokens
    )
    LOGGER.debug(
        "Incremental context: %d baseline task(s), %d new task(s), ~%d tokens saved",
        len(baseline_tasks),
        len(new_tasks),
        savings,
    )
    return IncrementalContext(
        is_first_run=False,
        baseline=_summarise_baseline(baseline_tasks, document_ids, baseline_created_at, settings, now),
        new_tasks=new_tasks,
        all_tasks=tasks,
        token_savings_estimate=savings,
    )


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _age_text(age_hours: Optional[float]) -> str:
    if age_hours is None:
        return ""
    if age_hours < 1:
        return " (less than 1 hour ago)"
    # Half-up rounding keeps "2.5 hours" rendering as 3.
    return f" ({int(math.floor(age_hours + 0.5))} hours ago)"


def format_baseline_summary(
    baseline: Optional[BaselineSummary], *, settings: ContextSettings | None = None
) -> str:
    """Render ``baseline`` as a short block for the planner prompt."""
    if baseline is None:
        return NO_BASELINE_TEXT
    settings = settings or ContextSettings()
    limit = settings.max_listed_documents

    lines = [
        f"BASELINE CONTEXT (previously analyzed{_age_text(baseline.age_hours)}):",
        f"- {_plural(baseline.document_count, 'document')} with {_plural(baseline.task_count, 'task')}",
    ]
    document_ids = baseline.document_ids
    if document_ids:
        listed = ", ".join(document_ids[:limit])
        if len(document_ids) > limit:
            listed += f", ... ({len(document_ids) - limit} more)"
        lines.append(f"- Document IDs: {listed}")
    if baseline.top_task_ids:
        lines.append(f"- Top task IDs from baseline: {', '.join(baseline.top_task_ids)}")
    lines.append("")
    lines.append(BASELINE_NOTE)
    return "\n".join(lines)


def format_new_tasks(new_tasks: Sequence[TaskSummary]) -> str:
    """Render ``new_tasks`` as one compact JSON object per line."""
    if not new_tasks:
        return NO_NEW_TASKS_TEXT
    return "\n".join(
        json.dumps(
            {
                "id": task.task_id,
                "text": task.task_text,
                "document_id": task.document_id,
                "source": task.source,
                "lnoCategory": task.lno_category,
            },
            ensure_ascii=False,
        )
        for task in new_tasks
    )


def build_incremental_prompt_context(
    context: IncrementalContext, *, settings: ContextSettings | None = None
) -> PromptContext:
    """Bundle the formatted baseline and new-task blocks with their counts."""
    return PromptContext(
        baseline_summary=format_baseline_summary(context.baseline, settings=settings),
        new_tasks_text=format_new_tasks(context.new_tasks),
        task_count=len(context.all_tasks),
        new_task_count=len(context.new_tasks),
    )
