"""Error taxonomy shared by the prioritization engine."""

from __future__ import annotations

from typing import Sequence

__all__ = [
    "BaselineMissingError",
    "BaselineStaleError",
    "CircularDependencyError",
    "ConfigError",
    "GapDetectionError",
    "PreconditionError",
    "PrioError",
    "TaskInsertionError",
    "TaskReferenceError",
    "TaskValidationError",
]


class PrioError(RuntimeError):
    """Base error raised by the prioritization engine."""


class ConfigError(PrioError):
    """Raised when a configuration document cannot be used."""


class TaskInsertionError(PrioError):
    """Base error for rejected bridging-task insertions."""

    kind = "insertion"


class TaskValidationError(TaskInsertionError):
    """Raised when a bridging task carries an invalid field value."""

    kind = "validation"

    def __init__(self, message: str, *, field: str, index: int | None = None) -> None:
        super().__init__(message)
        self.field = field
        self.index = index


class TaskReferenceError(TaskInsertionError):
    """Raised when a gap references a task that is missing from the plan."""

    kind = "reference"

    def __init__(self, message: str, *, side: str, task_id: str) -> None:
        super().__init__(message)
        self.side = side
        self.task_id = task_id


class CircularDependencyError(TaskInsertionError):
    """Raised when an insertion would close a dependency cycle."""

    kind = "cycle"

    def __init__(self, message: str, *, cycle_path: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.cycle_path = list(cycle_path)


class PreconditionError(PrioError):
    """Raised when system state does not allow an operation to run."""


class BaselineMissingError(PreconditionError):
    """Raised when no baseline plan exists for re-ranking."""

    def __init__(self, message: str = "No baseline plan found; run full analysis first.") -> None:
        super().__init__(message)


class BaselineStaleError(PreconditionError):
    """Raised when the baseline plan is too old to adjust."""

    def __init__(self, age_hours: float, limit_days: float) -> None:
        super().__init__(
            f"Baseline plan too old ({age_hours:.0f} hours, limit {limit_days:g} days); run full analysis."
        )
        self.age_hours = age_hours
        self.limit_days = limit_days


class GapDetectionError(PrioError):
    """Raised when gap detection cannot analyse the supplied tasks."""
