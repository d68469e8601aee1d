"""Durable storage for task collections, baseline plans and adjusted plans."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import sqlite3
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence

from ..utils.timestamps import as_iso
from .reflections import ReflectionStore
from .schema import AdjustedPlan, BaselinePlan, Task, dump_record, utc_now

DEFAULT_DB_PATH = Path("data/prio.sqlite")
LOGGER = logging.getLogger(__name__)


def _timestamp_text(value: datetime | str | None) -> Optional[str]:
    if isinstance(value, datetime):
        return as_iso(value)
    return value


def _dump_json(data: Any, *, default: Any) -> str:
    """Convert JSON-like payloads into a persisted string."""
    if data is None:
        return json.dumps(default)
    if isinstance(data, (set, tuple)):
        return json.dumps(list(data))
    return json.dumps(data)


def _load_json(value: Optional[str], *, default: Any) -> Any:
    """Decode JSON columns while falling back to the provided default."""
    if not value:
        return default
    data = json.loads(value)
    if data is None:
        return default
    return data


class MemoryStore:
    """SQLite-backed persistence keyed by an opaque session identifier.

    Each save replaces the session's previous record wholesale; callers
    serialise writes per session.
    """

    @staticmethod
    def _is_writable(path: Path) -> bool:
        parent = path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        if path.exists():
            return os.access(path, os.W_OK)
        return os.access(parent, os.W_OK)

    @staticmethod
    def _fallback_db_path(source: Path) -> Path:
        digest = hashlib.sha1(source.as_posix().encode("utf-8")).hexdigest()[:12]
        fallback_dir = Path(tempfile.gettempdir()) / "prio-engine" / "db" / digest
        fallback_dir.mkdir(parents=True, exist_ok=True)
        return fallback_dir / source.name

    @classmethod
    def _resolve_db_path(cls, requested: Path) -> Path:
        resolved = requested.resolve()
        if cls._is_writable(resolved):
            return resolved
        fallback = cls._fallback_db_path(resolved)
        if not fallback.exists():
            if resolved.exists() and os.access(resolved, os.R_OK):
                try:
                    shutil.copy2(resolved, fallback)
                except OSError:
                    fallback.touch(exist_ok=True)
            else:
                fallback.touch(exist_ok=True)
        if not cls._is_writable(fallback):
            raise OSError(f"Unable to locate writable database path (attempted {requested})")
        return fallback

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        requested_path = Path(db_path)
        self.db_path = self._resolve_db_path(requested_path)
        if self.db_path != requested_path.resolve():
            LOGGER.warning(
                "Database path %s is not writable; using fallback %s",
                requested_path,
                self.db_path,
            )
        self._conn: Optional[sqlite3.Connection] = self._open_connection()
        self._bootstrap()
        self.reflections = ReflectionStore(self._conn)

    def close(self) -> None:
        if getattr(self, "_conn", None) is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def __enter__(self) -> "MemoryStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.db_path))
        connection.row_factory = sqlite3.Row
        return connection

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "MemoryStore":
        paths = config.get("paths") or {}
        db_path = paths.get("db_path")
        if db_path:
            return cls(Path(db_path))
        return cls(DEFAULT_DB_PATH)

    def _bootstrap(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                session_id TEXT NOT NULL,
                id TEXT NOT NULL,
                position INTEGER NOT NULL,
                text TEXT NOT NULL,
                estimated_hours REAL NOT NULL,
                depends_on TEXT NOT NULL,
                document_id TEXT,
                created_at TEXT,
                PRIMARY KEY (session_id, id)
            );
            CREATE INDEX IF NOT EXISTS idx_tasks_session_position
                ON tasks(session_id, position);

            CREATE TABLE IF NOT EXISTS baselines (
                session_id TEXT PRIMARY KEY,
                ordered_task_ids TEXT NOT NULL,
                confidence_scores TEXT NOT NULL,
                document_ids TEXT NOT NULL,
                created_at TEXT
            );

            CREATE TABLE IF NOT EXISTS adjusted_plans (
                session_id TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS reflections (
                session_id TEXT NOT NULL,
                id TEXT NOT NULL,
                text TEXT NOT NULL,
                embedding TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT,
                PRIMARY KEY (session_id, id)
            );
            CREATE INDEX IF NOT EXISTS idx_reflections_session_active
                ON reflections(session_id, is_active);
            """
        )
        self._conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    # Task operations -----------------------------------------------------------------
    def save_tasks(self, session_id: str, tasks: Iterable[Task]) -> None:
        """Replace the session's task collection, preserving list order."""
        records = list(tasks)
        with self._transaction():
            self._conn.execute("DELETE FROM tasks WHERE session_id = ?", (session_id,))
            self._conn.executemany(
                """
                INSERT INTO tasks (
                    session_id, id, position, text, estimated_hours, depends_on,
                    document_id, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        session_id,
                        task.id,
                        position,
                        task.text,
                        task.estimated_hours,
                        _dump_json(task.depends_on, default=[]),
                        task.document_id,
                        _timestamp_text(task.created_at),
                    )
                    for position, task in enumerate(records)
                ],
            )

    def get_tasks(self, session_id: str) -> List[Task]:
        cursor = self._conn.execute(
            "SELECT * FROM tasks WHERE session_id = ? ORDER BY position ASC", (session_id,)
        )
        return [self._row_to_task(row) for row in cursor.fetchall()]

    # Baseline operations -------------------------------------------------------------
    def save_baseline(
        self,
        session_id: str,
        plan: BaselinePlan,
        *,
        document_ids: Sequence[str] = (),
    ) -> None:
        """Store ``plan`` as the session baseline along with the documents it covered."""
        with self._transaction():
            self._conn.execute(
                """
                INSERT INTO baselines (
                    session_id, ordered_task_ids, confidence_scores, document_ids, created_at
                )
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET
                    ordered_task_ids = excluded.ordered_task_ids,
                    confidence_scores = excluded.confidence_scores,
                    document_ids = excluded.document_ids,
                    created_at = excluded.created_at
                """,
                (
                    session_id,
                    _dump_json(plan.ordered_task_ids, default=[]),
                    _dump_json(plan.confidence_scores, default={}),
                    _dump_json(list(dict.fromkeys(document_ids)), default=[]),
                    _timestamp_text(plan.created_at),
                ),
            )

    def get_baseline(self, session_id: str) -> Optional[BaselinePlan]:
        row = self._baseline_row(session_id)
        if not row:
            return None
        return BaselinePlan(
            ordered_task_ids=_load_json(row["ordered_task_ids"], default=[]),
            confidence_scores=_load_json(row["confidence_scores"], default={}),
            created_at=row["created_at"],
        )

    def get_baseline_document_ids(self, session_id: str) -> List[str]:
        row = self._baseline_row(session_id)
        if not row:
            return []
        return list(_load_json(row["document_ids"], default=[]))

    def _baseline_row(self, session_id: str) -> Optional[sqlite3.Row]:
        cursor = self._conn.execute("SELECT * FROM baselines WHERE session_id = ?", (session_id,))
        return cursor.fetchone()

    # Adjusted plan operations --------------------------------------------------------
    def save_adjusted(self, session_id: str, plan: AdjustedPlan) -> None:
        with self._transaction():
            self._conn.execute(
                """
                INSERT INTO adjusted_plans (session_id, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (session_id, json.dumps(dump_record(plan)), as_iso(utc_now())),
            )

    def get_adjusted(self, session_id: str) -> Optional[AdjustedPlan]:
        cursor = self._conn.execute(
            "SELECT payload FROM adjusted_plans WHERE session_id = ?", (session_id,)
        )
        row = cursor.fetchone()
        if not row:
            return None
        return AdjustedPlan.model_validate(_load_json(row["payload"], default={}))

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            text=row["text"],
            estimated_hours=row["estimated_hours"],
            depends_on=_load_json(row["depends_on"], default=[]),
            document_id=row["document_id"],
            created_at=row["created_at"],
        )
