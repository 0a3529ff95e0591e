"""Shareable storage of finished conversions.

A conversion submitted with its source playlist URL is saved under a short
hash of that URL so it can be fetched again (e.g. by a share link) until
it expires.

Backends:
  - ``SqlitePlaylistStore`` — aiosqlite, survives restarts
  - ``MemoryPlaylistStore`` — dict, development / fallback
``PlaylistStore`` fronts the configured backend and falls back to memory
when the durable backend fails.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import aiosqlite

logger = logging.getLogger(__name__)


def generate_playlist_id(source_url: str) -> str:
    """First 12 hex chars of the MD5 of the source URL."""
    return hashlib.md5(source_url.encode("utf-8")).hexdigest()[:12]


class PlaylistBackend(Protocol):
    name: str

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def save(self, playlist_id: str, record: dict) -> None: ...

    async def get(self, playlist_id: str) -> Optional[dict]: ...

    async def count(self) -> int: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class MemoryPlaylistStore:
    name = "memory"

    def __init__(self, ttl: float, *, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._records: Dict[str, Tuple[float, dict]] = {}

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        self._records.clear()

    async def save(self, playlist_id: str, record: dict) -> None:
        self._records[playlist_id] = (self._clock() + self.ttl, record)

    async def get(self, playlist_id: str) -> Optional[dict]:
        entry = self._records.get(playlist_id)
        if entry is None:
            return None
        expires_at, record = entry
        if self._clock() >= expires_at:
            del self._records[playlist_id]
            return None
        return record

    async def count(self) -> int:
        now = self._clock()
        return sum(1 for exp, _ in self._records.values() if exp > now)


# ---------------------------------------------------------------------------
# SQLite backend
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS shared_playlists (
    playlist_id TEXT    PRIMARY KEY,
    source_url  TEXT    NOT NULL,
    payload     TEXT    NOT NULL,                  -- JSON record
    created_at  TEXT    NOT NULL DEFAULT (datetime('now')),
    expires_at  REAL    NOT NULL                   -- unix timestamp
);

CREATE INDEX IF NOT EXISTS idx_shared_playlists_expires
    ON shared_playlists(expires_at);
"""


class SqlitePlaylistStore:
    name = "sqlite"

    def __init__(
        self,
        db_path: Path | str,
        ttl: float,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = str(db_path)
        self.ttl = ttl
        self._clock = clock
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        """Open (or create) the database and ensure the schema exists."""
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.executescript(_SCHEMA_SQL)
        await self._db.commit()

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Playlist store not initialised — call open() first.")
        return self._db

    async def save(self, playlist_id: str, record: dict) -> None:
        db = self._conn()
        await db.execute(
            """
            INSERT INTO shared_playlists (playlist_id, source_url, payload, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(playlist_id)
            DO UPDATE SET source_url = excluded.source_url,
                          payload    = excluded.payload,
                          created_at = datetime('now'),
                          expires_at = excluded.expires_at
            """,
            (playlist_id, record.get("sourceUrl", ""), json.dumps(record), self._clock() + self.ttl),
        )
        await db.commit()

    async def get(self, playlist_id: str) -> Optional[dict]:
        db = self._conn()
        cursor = await db.execute(
            "SELECT payload, expires_at FROM shared_playlists WHERE playlist_id = ?",
            (playlist_id,),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        if self._clock() >= row[1]:
            await db.execute("DELETE FROM shared_playlists WHERE playlist_id = ?", (playlist_id,))
            await db.commit()
            return None
        return json.loads(row[0])

    async def count(self) -> int:
        cursor = await self._conn().execute(
            "SELECT COUNT(*) FROM shared_playlists WHERE expires_at > ?", (self._clock(),)
        )
        row = await cursor.fetchone()
        return row[0]


# ---------------------------------------------------------------------------
# Front
# ---------------------------------------------------------------------------

class PlaylistStore:
    """Configured backend plus an in-memory safety net."""

    def __init__(self, backend: PlaylistBackend, fallback: MemoryPlaylistStore):
        self.backend = backend
        self.fallback = fallback

    async def open(self) -> None:
        await self.backend.open()
        logger.info("Shared playlist storage: %s", self.backend.name)

    async def close(self) -> None:
        await self.backend.close()
        if self.fallback is not self.backend:
            await self.fallback.close()

    async def save(self, playlist_id: str, bundle: dict, source_url: str) -> dict:
        """Store *bundle* with source URL and creation time; return the record."""
        record: Dict[str, Any] = {
            **bundle,
            "sourceUrl": source_url,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.backend.save(playlist_id, record)
            logger.info("Saved playlist %s to %s", playlist_id, self.backend.name)
        except (aiosqlite.Error, RuntimeError):
            logger.exception("Error saving playlist %s; keeping it in memory", playlist_id)
            await self.fallback.save(playlist_id, record)
        return record

    async def get(self, playlist_id: str) -> Optional[dict]:
        try:
            record = await self.backend.get(playlist_id)
        except (aiosqlite.Error, RuntimeError):
            logger.exception("Error retrieving playlist %s", playlist_id)
            record = None
        if record is None and self.fallback is not self.backend:
            record = await self.fallback.get(playlist_id)
        return record

    async def stats(self) -> dict:
        return {"backend": self.backend.name, "keys": await self.backend.count()}
