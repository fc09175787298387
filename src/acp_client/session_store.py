"""SQLite store for saved chat transcripts."""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Sequence, Tuple, Union

import aiosqlite

from .exceptions import SessionNotFoundError
from .models.session import SessionEntry, SessionMetadata, SessionSummary, now_ms

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Lightweight SQLite store for session transcripts.

    One row per session holds its metadata; transcript entries are stored
    in order in a separate table and replaced wholesale on each save.
    """

    def __init__(self, sessions_dir: Union[str, Path]):
        self.db_path = Path(sessions_dir) / "sessions.db"
        self._initialized = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize database schema (idempotent)."""
        async with self._lock:
            if self._initialized:
                return

            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS sessions (
                        name TEXT PRIMARY KEY,
                        model TEXT,
                        workspace TEXT,
                        created_at INTEGER NOT NULL,
                        last_updated INTEGER NOT NULL
                    )
                """)

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS entries (
                        session_name TEXT NOT NULL,
                        seq INTEGER NOT NULL,
                        direction TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        ts INTEGER NOT NULL,
                        PRIMARY KEY (session_name, seq)
                    )
                """)

                await db.execute("""
                    CREATE INDEX IF NOT EXISTS idx_sessions_last_updated
                    ON sessions(last_updated)
                """)

                await db.commit()
                logger.info(f"SessionStore initialized at {self.db_path}")
                self._initialized = True

    async def save(
        self,
        name: str,
        entries: Sequence[SessionEntry],
        metadata: SessionMetadata,
    ) -> Path:
        """
        Save a transcript under a name, replacing any earlier version.

        created_at is kept from the first save of the session.

        Returns:
            Path of the database file
        """
        await self.initialize()
        now = now_ms()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT created_at FROM sessions WHERE name = ?", (name,)
            )
            row = await cursor.fetchone()
            created_at = row[0] if row else (metadata.created_at or now)

            await db.execute(
                """
                INSERT INTO sessions (name, model, workspace, created_at, last_updated)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    model = excluded.model,
                    workspace = excluded.workspace,
                    last_updated = excluded.last_updated
                """,
                (name, metadata.model, metadata.workspace, created_at, now),
            )
            await db.execute("DELETE FROM entries WHERE session_name = ?", (name,))
            await db.executemany(
                """
                INSERT INTO entries (session_name, seq, direction, payload, ts)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (name, seq, entry.direction, json.dumps(entry.message), entry.ts)
                    for seq, entry in enumerate(entries)
                ],
            )
            await db.commit()

        logger.info(f"Saved session {name} ({len(entries)} message(s))")
        return self.db_path

    async def load(self, name: str) -> Tuple[List[SessionEntry], SessionMetadata]:
        """
        Load a saved transcript.

        Raises:
            SessionNotFoundError: If no session has this name
        """
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT model, workspace, created_at, last_updated FROM sessions WHERE name = ?",
                (name,),
            )
            row = await cursor.fetchone()
            if row is None:
                raise SessionNotFoundError(name)

            metadata = SessionMetadata(
                model=row[0], workspace=row[1], created_at=row[2], last_updated=row[3]
            )

            cursor = await db.execute(
                "SELECT direction, payload, ts FROM entries WHERE session_name = ? ORDER BY seq",
                (name,),
            )
            entries = [
                SessionEntry(**{direction: json.loads(payload)}, ts=ts)
                for direction, payload, ts in await cursor.fetchall()
            ]

        return entries, metadata

    async def list_sessions(self) -> List[SessionSummary]:
        """All saved sessions, most recently updated first."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("""
                SELECT s.name, s.model, s.workspace, s.created_at, s.last_updated,
                       (SELECT COUNT(*) FROM entries e WHERE e.session_name = s.name)
                FROM sessions s
                ORDER BY s.last_updated DESC
            """)
            rows = await cursor.fetchall()

        return [
            SessionSummary(
                name=row[0],
                metadata=SessionMetadata(
                    model=row[1], workspace=row[2], created_at=row[3], last_updated=row[4]
                ),
                message_count=row[5],
            )
            for row in rows
        ]

    async def delete(self, name: str) -> bool:
        """Delete a session. Returns False if it did not exist."""
        await self.initialize()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM entries WHERE session_name = ?", (name,))
            cursor = await db.execute("DELETE FROM sessions WHERE name = ?", (name,))
            await db.commit()
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted session {name}")
        return deleted
