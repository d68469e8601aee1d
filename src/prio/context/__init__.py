"""Incremental planner context built from previously analysed documents."""

from .incremental import (
    build_incremental_context,
    build_incremental_prompt_context,
    format_baseline_summary,
    format_new_tasks,
)

__all__ = [
    "build_incremental_context",
    "build_incremental_prompt_context",
    "format_baseline_summary",
    "format_new_tasks",
]
