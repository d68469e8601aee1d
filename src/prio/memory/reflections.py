"""Reflection storage: append-only rows toggled between active and inactive."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any, List, Optional

from ..utils.timestamps import as_iso
from .schema import Reflection


def _timestamp_text(value: datetime | str | None) -> Optional[str]:
    if isinstance(value, datetime):
        return as_iso(value)
    return value


def _load_embedding(value: Optional[str]) -> List[float]:
    """Decode the embedding column, returning an empty vector by default."""
    if not value:
        return []
    data = json.loads(value)
    if isinstance(data, list):
        return [float(item) for item in data]
    return []


class ReflectionStore:
    """Manages user reflections persisted in SQLite.

    Reflections are never deleted: toggling flips ``is_active`` so the
    history of what shaped an adjustment stays available.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection

    def add_reflection(self, session_id: str, reflection: Reflection) -> None:
        record = reflection.model_copy()
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO reflections (session_id, id, text, embedding, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id, id) DO UPDATE SET
                    text = excluded.text,
                    embedding = excluded.embedding,
                    is_active = excluded.is_active,
                    created_at = excluded.created_at
                """,
                (
                    session_id,
                    record.id,
                    record.text,
                    json.dumps(list(record.embedding)),
                    int(record.is_active),
                    _timestamp_text(record.created_at),
                ),
            )

    def get_reflection(self, session_id: str, reflection_id: str) -> Optional[Reflection]:
        cursor = self._conn.execute(
            "SELECT * FROM reflections WHERE session_id = ? AND id = ?",
            (session_id, reflection_id),
        )
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_reflection(row)

    def set_active(self, session_id: str, reflection_id: str, active: bool) -> Optional[Reflection]:
        """Flip a reflection's active flag; returns ``None`` when it does not exist."""
        with self._conn:
            cursor = self._conn.execute(
                "UPDATE reflections SET is_active = ? WHERE session_id = ? AND id = ?",
                (int(active), session_id, reflection_id),
            )
        if cursor.rowcount == 0:
            return None
        return self.get_reflection(session_id, reflection_id)

    def list_reflections(self, session_id: str, *, active_only: bool = False) -> List[Reflection]:
        query = "SELECT * FROM reflections WHERE session_id = ?"
        params: list[Any] = [session_id]
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY created_at ASC, rowid ASC"
        cursor = self._conn.execute(query, params)
        return [self._row_to_reflection(row) for row in cursor.fetchall()]

    def _row_to_reflection(self, row: sqlite3.Row) -> Reflection:
        return Reflection(
            id=row["id"],
            text=row["text"],
            embedding=_load_embedding(row["embedding"]),
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
        )
