from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from prio.memory.schema import Task  # noqa: E402


@pytest.fixture()
def sample_plan() -> list[Task]:
    """Three-task plan with a gap between ``002`` and ``005``."""

    return [
        Task(id="001", text="Research onboarding drop-off", estimated_hours=8),
        Task(id="002", text="Design onboarding flow", estimated_hours=16, depends_on=["001"]),
        Task(id="005", text="Launch onboarding experiment", estimated_hours=4),
    ]


@pytest.fixture()
def write_document(tmp_path: Path) -> Callable[[str, Any], Path]:
    """Write a JSON payload under ``tmp_path`` and return its path."""

    def _write(name: str, payload: Any) -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write
