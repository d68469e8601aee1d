"""Typed records exchanged between the planner, the engine, and storage."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False, populate_by_name=True)


class Task(RecordModel):
    """Work item inside a plan; ``depends_on`` lists prerequisite task ids."""

    id: str
    text: str
    estimated_hours: float = Field(gt=0)
    depends_on: List[str] = Field(default_factory=list)
    document_id: Optional[str] = None
    created_at: Optional[datetime | str] = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text cannot be empty")
        return value

    @field_validator("depends_on")
    @classmethod
    def _dedupe_dependencies(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


class BridgingTaskInput(RecordModel):
    """Candidate task proposed to fill a gap; validated by the graph mutator."""

    text: str
    estimated_hours: float


class Gap(RecordModel):
    """Predecessor/successor pair that bridging tasks are inserted between."""

    predecessor_id: str
    successor_id: str


class Reflection(RecordModel):
    """Short, user-toggleable context note with a precomputed embedding."""

    id: str
    text: str
    created_at: datetime | str = Field(default_factory=utc_now)
    embedding: List[float] = Field(default_factory=list)
    is_active: bool = True


class BaselinePlan(RecordModel):
    """Ordered plan produced by the last full planning pass."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    ordered_task_ids: List[str]
    confidence_scores: Dict[str, float] = Field(default_factory=dict)
    created_at: Optional[datetime | str] = Field(default_factory=utc_now)

    @field_validator("ordered_task_ids")
    @classmethod
    def _unique_ids(cls, value: List[str]) -> List[str]:
        seen: set[str] = set()
        duplicates: list[str] = []
        for task_id in value:
            if task_id in seen:
                duplicates.append(task_id)
            seen.add(task_id)
        if duplicates:
            raise ValueError(f"ordered_task_ids must be unique (duplicates: {', '.join(duplicates)})")
        return value

    @field_validator("confidence_scores")
    @classmethod
    def _scores_in_range(cls, value: Dict[str, float]) -> Dict[str, float]:
        for task_id, score in value.items():
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"confidence for {task_id} must be within [0, 1]")
        return value


class MovedTask(RecordModel):
    """Rank change recorded in an adjustment diff (1-indexed ranks)."""

    task_id: str
    from_rank: int = Field(
        validation_alias=AliasChoices("from_rank", "from"), serialization_alias="from"
    )
    to_rank: int = Field(validation_alias=AliasChoices("to_rank", "to"), serialization_alias="to")
    reason: str

    @property
    def direction(self) -> Literal["boosted", "demoted"]:
        return "boosted" if self.to_rank < self.from_rank else "demoted"


class FilteredTask(RecordModel):
    """Task removed from an adjusted plan by an upstream exclusion."""

    task_id: str
    reason: str


class AdjustmentDiff(RecordModel):
    moved: List[MovedTask] = Field(default_factory=list)
    filtered: List[FilteredTask] = Field(default_factory=list)


class ReflectionUsage(RecordModel):
    """Reflection that contributed to an adjustment, with its derived weight."""

    id: str
    text: str
    recency_weight: Optional[float] = None
    created_at: Optional[str] = None


class AdjustmentMetadata(RecordModel):
    reflections: List[ReflectionUsage] = Field(default_factory=list)
    tasks_moved: int = 0
    tasks_filtered: int = 0
    duration_ms: float = 0.0
    warnings: List[str] = Field(default_factory=list)


class AdjustedPlan(RecordModel):
    """Baseline plan re-ranked by active reflections."""

    ordered_task_ids: List[str]
    confidence_scores: Dict[str, float] = Field(default_factory=dict)
    diff: AdjustmentDiff = Field(default_factory=AdjustmentDiff)
    adjustment_metadata: AdjustmentMetadata = Field(default_factory=AdjustmentMetadata)


class TaskSummary(RecordModel):
    """Minimal task projection used when building planner prompts."""

    task_id: str
    task_text: str
    document_id: Optional[str] = None
    source: Optional[str] = None
    lno_category: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("lno_category", "lnoCategory")
    )


class BaselineSummary(RecordModel):
    """Compact description of the previously analysed task corpus."""

    document_ids: List[str] = Field(default_factory=list)
    document_count: int = 0
    task_count: int = 0
    top_task_ids: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    age_hours: Optional[float] = None


class IncrementalContext(RecordModel):
    """Partition of a task corpus into baseline and newly seen tasks."""

    is_first_run: bool
    baseline: Optional[BaselineSummary] = None
    new_tasks: List[TaskSummary] = Field(default_factory=list)
    all_tasks: List[TaskSummary] = Field(default_factory=list)
    token_savings_estimate: int = 0


class PromptContext(RecordModel):
    """Formatted prompt fragments derived from an incremental context."""

    baseline_summary: str
    new_tasks_text: str
    task_count: int
    new_task_count: int


def dump_record(record: BaseModel) -> Dict[str, Any]:
    """Serialise a record to JSON-compatible primitives using wire aliases."""
    return record.model_dump(mode="json", by_alias=True)
