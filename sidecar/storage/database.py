"""SQLite database for settings and workflow runs."""

from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

import platformdirs

from api.workflow_models import WorkflowRunSnapshot


def _now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


_SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS workflow_runs (
    id TEXT PRIMARY KEY,
    state TEXT NOT NULL,
    round_number INTEGER NOT NULL DEFAULT 1,
    parent_run_id TEXT,
    snapshot TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_workflow_runs_state ON workflow_runs(state);
CREATE INDEX IF NOT EXISTS idx_workflow_runs_parent ON workflow_runs(parent_run_id);
"""


def _get_db_path() -> str:
    """Return the database path: $CARDIOBRIEF_DB_PATH or the OS data dir."""
    override = os.getenv("CARDIOBRIEF_DB_PATH")
    if override:
        return override
    data_dir = platformdirs.user_data_dir("CardioBrief")
    os.makedirs(data_dir, exist_ok=True)
    return os.path.join(data_dir, "cardiobrief.db")


class Database:
    """SQLite-backed storage for settings and workflow run snapshots."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or _get_db_path()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        try:
            conn.executescript(_SCHEMA)
            conn.commit()
        finally:
            conn.close()

    # --- Settings ---

    def get_setting(self, key: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def set_setting(self, key: str, value: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, _now()),
            )
            conn.commit()
        finally:
            conn.close()

    def get_all_settings(self) -> dict[str, str]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT key, value FROM settings").fetchall()
            return {row["key"]: row["value"] for row in rows}
        finally:
            conn.close()

    def delete_setting(self, key: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()

    # --- Workflow runs ---

    def save_run(self, snapshot: WorkflowRunSnapshot) -> None:
        """Insert or replace the stored snapshot for a run."""
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO workflow_runs (id, state, round_number, parent_run_id, snapshot, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       state = excluded.state,
                       snapshot = excluded.snapshot,
                       updated_at = excluded.updated_at""",
                (
                    snapshot.id,
                    snapshot.state.value,
                    snapshot.round_number,
                    snapshot.parent_run_id,
                    snapshot.model_dump_json(by_alias=True),
                    snapshot.created_at.isoformat(),
                    snapshot.updated_at.isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get_run(self, run_id: str) -> WorkflowRunSnapshot | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT snapshot FROM workflow_runs WHERE id = ?", (run_id,)
            ).fetchone()
            if not row:
                return None
            return WorkflowRunSnapshot.model_validate_json(row["snapshot"])
        finally:
            conn.close()

    def list_runs(
        self,
        offset: int = 0,
        limit: int = 20,
        state: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        conn = self._get_conn()
        try:
            where_clause = ""
            params: list[Any] = []
            if state:
                where_clause = " WHERE state = ?"
                params.append(state)

            count_row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM workflow_runs{where_clause}",
                params,
            ).fetchone()
            total = count_row["cnt"]

            rows = conn.execute(
                f"""SELECT id, state, round_number, parent_run_id, created_at, updated_at
                    FROM workflow_runs{where_clause}
                    ORDER BY created_at DESC
                    LIMIT ? OFFSET ?""",
                params + [limit, offset],
            ).fetchall()

            return [dict(row) for row in rows], total
        finally:
            conn.close()

    def delete_run(self, run_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM workflow_runs WHERE id = ?", (run_id,)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


_db_instance: Database | None = None


def get_db() -> Database:
    """Return the module-level Database singleton."""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database()
    return _db_instance
