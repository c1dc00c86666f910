"""SQLite single-slot project store."""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config.exceptions import DatabaseError
from models.project import ProjectState

logger = logging.getLogger(__name__)

PROJECT_SLOT = "current_project"

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS projects (
    slot TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    title TEXT DEFAULT '',
    chapter_count INTEGER DEFAULT 0,
    saved_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


class ProjectDatabase:
    """Opaque save/load of the one active project, keyed by a fixed slot."""

    def __init__(self, db_path: str | Path, slot: str = PROJECT_SLOT):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.slot = slot
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _init_db(self):
        try:
            with self._get_conn() as conn:
                conn.executescript(_CREATE_TABLES_SQL)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to initialize project store: {e}", {"path": str(self.db_path)}) from e

    def save(self, state: ProjectState) -> None:
        payload = json.dumps(state.to_dict(), ensure_ascii=False)
        saved_at = datetime.now(timezone.utc).isoformat()
        try:
            with self._get_conn() as conn:
                conn.execute(
                    "INSERT INTO projects (slot, payload, title, chapter_count, saved_at) "
                    "VALUES (?, ?, ?, ?, ?) "
                    "ON CONFLICT(slot) DO UPDATE SET payload = excluded.payload, "
                    "title = excluded.title, chapter_count = excluded.chapter_count, "
                    "saved_at = excluded.saved_at",
                    (self.slot, payload, state.metadata.title, len(state.chapters), saved_at),
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to save project: {e}", {"slot": self.slot}) from e
        logger.debug("Project saved: slot=%s, chapters=%d", self.slot, len(state.chapters))

    def load(self) -> Optional[ProjectState]:
        try:
            with self._get_conn() as conn:
                row = conn.execute(
                    "SELECT payload FROM projects WHERE slot = ?", (self.slot,)
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to load project: {e}", {"slot": self.slot}) from e
        if row is None:
            return None
        try:
            data = json.loads(row["payload"])
        except json.JSONDecodeError as e:
            logger.warning("Stored project payload is corrupt, ignoring: %s", e)
            return None
        return ProjectState.from_dict(data)

    def saved_at(self) -> Optional[str]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT saved_at FROM projects WHERE slot = ?", (self.slot,)
            ).fetchone()
        return row["saved_at"] if row else None

    def clear(self) -> None:
        try:
            with self._get_conn() as conn:
                conn.execute("DELETE FROM projects WHERE slot = ?", (self.slot,))
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to clear project: {e}", {"slot": self.slot}) from e
        logger.info("Project slot cleared: %s", self.slot)
