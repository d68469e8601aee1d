"""Task-graph maintenance and planner-result heuristics."""

from .evaluation import has_major_movement, needs_evaluation
from .gaps import DetectedGap, GapDetectionResult, detect_gaps
from .insertion import InsertionResult, detect_cycle, find_cycle_path, insert_bridging_tasks
from .schemas import ExcludedTask, IncludedTask, PlannerResult

__all__ = [
    "DetectedGap",
    "ExcludedTask",
    "GapDetectionResult",
    "IncludedTask",
    "InsertionResult",
    "PlannerResult",
    "detect_cycle",
    "detect_gaps",
    "find_cycle_path",
    "has_major_movement",
    "insert_bridging_tasks",
    "needs_evaluation",
]
