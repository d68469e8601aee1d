"""Detect likely missing steps between consecutive tasks of an ordered plan."""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta

from ..errors import GapDetectionError
from ..memory.schema import Gap, Task
from ..utils.timestamps import parse_timestamp

__all__ = [
    "DetectedGap",
    "GapDetectionResult",
    "GapIndicators",
    "detect_gaps",
    "extract_skill_tags",
    "infer_workflow_stage",
]

LOGGER = logging.getLogger(__name__)

WORKFLOW_STAGES: tuple[str, ...] = ("research", "design", "plan", "build", "test", "deploy", "launch")

WORKFLOW_KEYWORDS: dict[str, tuple[str, ...]] = {
    "research": ("research", "analysis", "investigate", "discovery", "interview"),
    "design": ("design", "mockup", "wireframe", "prototype", "ux", "ui"),
    "plan": ("plan", "roadmap", "spec", "backlog", "groom", "architecture"),
    "build": ("build", "implement", "develop", "code", "create", "engineer", "integrate"),
    "test": ("test", "qa", "validate", "verify", "quality", "bug", "regression"),
    "deploy": ("deploy", "release", "ship", "rollout", "publish", "handoff", "handover"),
    "launch": ("launch", "go live", "golive", "announce", "marketing push"),
}

SKILL_KEYWORDS: dict[str, tuple[str, ...]] = {
    "design": ("design", "ux", "ui", "prototype", "wireframe", "figma"),
    "frontend": ("frontend", "react", "next", "typescript", "javascript", "ui component"),
    "backend": ("backend", "api", "database", "server", "postgres", "node"),
    "data": ("analytics", "data", "metrics", "sql", "dashboard"),
    "marketing": ("launch", "campaign", "marketing", "go-to-market", "growth", "seo"),
    "qa": ("test", "qa", "quality", "bugs", "regression", "verify"),
    "devops": ("deploy", "pipeline", "infrastructure", "devops", "ci", "cd", "kubernetes"),
    "research": ("research", "interview", "discovery", "analysis"),
    "product": ("plan", "strategy", "roadmap", "prioritize"),
}

TIME_GAP_THRESHOLD = timedelta(days=7)
MIN_INDICATORS = 2
STAGE_JUMP = 2


@dataclass(slots=True)
class GapIndicators:
    time_gap: bool = False
    action_type_jump: bool = False
    no_dependency: bool = False
    skill_jump: bool = False

    @property
    def count(self) -> int:
        return sum((self.time_gap, self.action_type_jump, self.no_dependency, self.skill_jump))


@dataclass(slots=True)
class DetectedGap:
    """Consecutive task pair that probably needs bridging work."""

    predecessor_id: str
    successor_id: str
    indicators: GapIndicators
    confidence: float

    def to_gap(self) -> Gap:
        return Gap(predecessor_id=self.predecessor_id, successor_id=self.successor_id)


@dataclass(slots=True)
class GapDetectionResult:
    gaps: list[DetectedGap] = field(default_factory=list)
    pairs_analyzed: int = 0
    skipped_for_cycles: list[tuple[str, str]] = field(default_factory=list)


def _keyword_pattern(keywords: Sequence[str]) -> re.Pattern[str]:
    # Keywords must start a word so "ui" does not match inside "build".
    return re.compile(r"(?<![a-z])(?:" + "|".join(re.escape(keyword) for keyword in keywords) + ")")


_STAGE_PATTERNS = {stage: _keyword_pattern(WORKFLOW_KEYWORDS[stage]) for stage in WORKFLOW_STAGES}
_SKILL_PATTERNS = {skill: _keyword_pattern(keywords) for skill, keywords in SKILL_KEYWORDS.items()}


def infer_workflow_stage(text: str) -> str | None:
    """Return the first workflow stage whose keywords appear in ``text``."""
    lowered = (text or "").lower()
    for stage in WORKFLOW_STAGES:
        if _STAGE_PATTERNS[stage].search(lowered):
            return stage
    return None


def extract_skill_tags(text: str) -> set[str]:
    lowered = (text or "").lower()
    return {skill for skill, pattern in _SKILL_PATTERNS.items() if pattern.search(lowered)}


def _confidence(indicator_count: int) -> float:
    if indicator_count < MIN_INDICATORS:
        return 0.0
    if indicator_count == 2:
        return 0.6
    if indicator_count == 3:
        return 0.75
    return min(1.0, 0.75 + 0.25 * (indicator_count - 3))


def _depends_transitively(start: str, target: str, graph: dict[str, list[str]]) -> bool:
    """True when ``start`` reaches ``target`` by following ``depends_on`` edges."""
    queue = deque([start])
    visited = {start}
    while queue:
        current = queue.popleft()
        if current == target:
            return True
        for dependency in graph.get(current, ()):
            if dependency not in visited:
                visited.add(dependency)
                queue.append(dependency)
    return False


def _indicators(predecessor: Task, successor: Task) -> GapIndicators:
    indicators = GapIndicators()

    predecessor_created = parse_timestamp(predecessor.created_at)
    successor_created = parse_timestamp(successor.created_at)
    if predecessor_created is not None and successor_created is not None:
        indicators.time_gap = successor_created - predecessor_created > TIME_GAP_THRESHOLD

    predecessor_stage = infer_workflow_stage(predecessor.text)
    successor_stage = infer_workflow_stage(successor.text)
    if predecessor_stage is not None and successor_stage is not None:
        distance = abs(WORKFLOW_STAGES.index(successor_stage) - WORKFLOW_STAGES.index(predecessor_stage))
        indicators.action_type_jump = distance >= STAGE_JUMP

    indicators.no_dependency = predecessor.id not in successor.depends_on

    predecessor_skills = extract_skill_tags(predecessor.text)
    successor_skills = extract_skill_tags(successor.text)
    if predecessor_skills and successor_skills:
        indicators.skill_jump = predecessor_skills.isdisjoint(successor_skills)
    return indicators


def detect_gaps(tasks: Sequence[Task], *, max_gaps: int = 3) -> GapDetectionResult:
    """Score each consecutive pair of ``tasks`` and return the strongest gaps."""
    if len(tasks) < 2:
        raise GapDetectionError("At least two tasks are required to detect gaps")

    graph = {task.id: list(task.depends_on) for task in tasks}
    result = GapDetectionResult(pairs_analyzed=len(tasks) - 1)
    for predecessor, successor in zip(tasks, tasks[1:]):
        indicators = _indicators(predecessor, successor)
        if indicators.count < MIN_INDICATORS:
            LOGGER.debug(
                "No gap between %s and %s (%d indicator(s))",
                predecessor.id,
                successor.id,
                indicators.count,
            )
            continue
        if _depends_transitively(predecessor.id, successor.id, graph):
            LOGGER.debug("Skipping gap %s -> %s: bridging would close a cycle", predecessor.id, successor.id)
            result.skipped_for_cycles.append((predecessor.id, successor.id))
            continue
        result.gaps.append(
            DetectedGap(
                predecessor_id=predecessor.id,
                successor_id=successor.id,
                indicators=indicators,
                confidence=_confidence(indicators.count),
            )
        )

    result.gaps.sort(key=lambda gap: (gap.confidence, gap.indicators.count), reverse=True)
    result.gaps = result.gaps[: max(0, max_gaps)]
    LOGGER.info("Gap analysis found %d gap(s) across %d pair(s)", len(result.gaps), result.pairs_analyzed)
    return result
