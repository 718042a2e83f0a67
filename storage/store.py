import logging
import os
import sqlite3

from core.errors import PersistenceFailure
from core.serialization import session_from_json, session_to_json
from core.types import SessionData

logger = logging.getLogger(__name__)


class SessionStore:
    """SQLite-backed snapshot store. One row per session, replaced on every save."""

    def __init__(self, db_path: str = "~/.lince/sessions.db"):
        if db_path != ":memory:":
            db_path = os.path.expanduser(db_path)
            parent = os.path.dirname(db_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
        self.conn = sqlite3.connect(db_path)
        self._init_db()
        logger.info("Session store opened db_path=%s", db_path)

    def _init_db(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                activity_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                status TEXT NOT NULL,
                start_time INTEGER NOT NULL,
                end_time INTEGER,
                document TEXT NOT NULL,
                saved_seq INTEGER NOT NULL
            )
        """)
        self.conn.commit()
        row = self.conn.execute("SELECT COALESCE(MAX(saved_seq), 0) FROM sessions").fetchone()
        self._seq = row[0]

    def save(self, session: SessionData) -> None:
        try:
            self._write(session)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not save session {session.id}: {e}") from e

    def _write(self, session: SessionData) -> None:
        self._seq += 1
        self.conn.execute(
            """INSERT OR REPLACE INTO sessions
               (id, activity_id, user_id, status, start_time, end_time, document, saved_seq)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                session.id,
                session.activity_id,
                session.user_id,
                session.status.value,
                session.start_time,
                session.end_time,
                session_to_json(session),
                self._seq,
            ),
        )
        self.conn.commit()

    def get(self, session_id: str) -> SessionData | None:
        row = self.conn.execute("SELECT document FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return session_from_json(row[0]) if row else None

    def load_all(self, limit: int | None = None) -> list[SessionData]:
        """Most recently saved first."""
        query = "SELECT document FROM sessions ORDER BY saved_seq DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        return [session_from_json(row[0]) for row in self.conn.execute(query, params).fetchall()]

    def clear(self) -> None:
        try:
            self.conn.execute("DELETE FROM sessions")
            self.conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not clear sessions: {e}") from e

    def close(self) -> None:
        self.conn.close()
