# SQLite persistence for songs, revisions, API usage, and voice generations.
# One connection per process guarded by a threading.Lock; every public method
# is async and runs its blocking query in the default executor.

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS songs (
    id TEXT PRIMARY KEY,
    genre TEXT NOT NULL,
    vibe TEXT NOT NULL,
    theme TEXT NOT NULL,
    lyrics_json TEXT NOT NULL,
    metadata_json TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS revisions (
    id TEXT PRIMARY KEY,
    song_id TEXT NOT NULL,
    revision_type TEXT NOT NULL,
    instruction TEXT NOT NULL,
    old_lyrics TEXT NOT NULL,
    new_lyrics TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (song_id) REFERENCES songs(id)
);

CREATE TABLE IF NOT EXISTS api_usage (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id TEXT NOT NULL,
    endpoint TEXT NOT NULL,
    timestamp REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS voice_generations (
    id TEXT PRIMARY KEY,
    song_id TEXT,
    voice_style TEXT NOT NULL,
    voice_preset TEXT NOT NULL,
    voice_url TEXT,
    duration REAL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_songs_created_at ON songs(created_at);
CREATE INDEX IF NOT EXISTS idx_revisions_song_id ON revisions(song_id);
CREATE INDEX IF NOT EXISTS idx_api_usage_client_endpoint ON api_usage(client_id, endpoint);
CREATE INDEX IF NOT EXISTS idx_api_usage_timestamp ON api_usage(timestamp);
CREATE INDEX IF NOT EXISTS idx_voice_generations_song_id ON voice_generations(song_id);
"""


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def resolve_database_path(url: str) -> str:
    """Strip an optional `file:` prefix; `:memory:` passes through."""
    return url[len("file:") :] if url.startswith("file:") else url


@dataclass
class SongRecord:
    id: str
    genre: str
    vibe: str
    theme: str
    lyrics: dict[str, str]
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class RevisionRecord:
    id: str
    song_id: str
    revision_type: str
    instruction: str
    old_lyrics: dict[str, str]
    new_lyrics: dict[str, str]
    created_at: datetime


@dataclass
class VoiceGenerationRecord:
    id: str
    voice_style: str
    voice_preset: str
    song_id: str | None = None
    voice_url: str | None = None
    duration: float | None = None
    created_at: datetime | None = None


class SongStore:
    """Async facade over a single SQLite database file.

    Also satisfies the rate limiter's UsageStore protocol through the
    api_usage table.
    """

    def __init__(self, database_url: str) -> None:
        self._path = resolve_database_path(database_url)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the database and create tables. Async wrapper around sqlite3."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._connect_sync)

    def _connect_sync(self) -> None:
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.executescript(_SCHEMA)
        conn.commit()
        self._conn = conn
        logger.info("song_store_connected", path=self._path)

    async def disconnect(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run `fn(conn)` under the lock in the default executor."""

        def _locked() -> T:
            with self._lock:
                if self._conn is None:
                    raise RuntimeError("SongStore is not connected")
                return fn(self._conn)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _locked)

    # ── Songs ────────────────────────────────────────────────────────────────

    async def create_song(
        self,
        genre: str,
        vibe: str,
        theme: str,
        lyrics: dict[str, str],
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Insert a song and return its new id."""
        song_id = str(uuid.uuid4())
        now = _now_iso()

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO songs (id, genre, vibe, theme, lyrics_json, metadata_json,"
                " created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    song_id,
                    genre,
                    vibe,
                    theme,
                    json.dumps(lyrics),
                    json.dumps(metadata) if metadata is not None else None,
                    now,
                    now,
                ),
            )
            conn.commit()

        await self._run(_insert)
        return song_id

    async def get_song(self, song_id: str) -> SongRecord | None:
        def _select(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute("SELECT * FROM songs WHERE id = ?", (song_id,)).fetchone()

        row = await self._run(_select)
        if row is None:
            return None
        return SongRecord(
            id=row["id"],
            genre=row["genre"],
            vibe=row["vibe"],
            theme=row["theme"],
            lyrics=_loads(row["lyrics_json"], {}, song_id=song_id, column="lyrics_json"),
            metadata=_loads(row["metadata_json"], {}, song_id=song_id, column="metadata_json"),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def update_song(
        self,
        song_id: str,
        *,
        genre: str | None = None,
        vibe: str | None = None,
        theme: str | None = None,
        lyrics: dict[str, str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Update the given columns; a call with nothing to change is a no-op."""
        updates: dict[str, Any] = {}
        if genre is not None:
            updates["genre"] = genre
        if vibe is not None:
            updates["vibe"] = vibe
        if theme is not None:
            updates["theme"] = theme
        if lyrics is not None:
            updates["lyrics_json"] = json.dumps(lyrics)
        if metadata is not None:
            updates["metadata_json"] = json.dumps(metadata)
        if not updates:
            return
        updates["updated_at"] = _now_iso()

        # Column names come from the fixed keys above, never from input.
        assignments = ", ".join(f"{column} = ?" for column in updates)

        def _update(conn: sqlite3.Connection) -> None:
            conn.execute(
                f"UPDATE songs SET {assignments} WHERE id = ?",  # noqa: S608
                (*updates.values(), song_id),
            )
            conn.commit()

        await self._run(_update)

    async def delete_song(self, song_id: str) -> None:
        """Delete a song and its revisions."""

        def _delete(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM revisions WHERE song_id = ?", (song_id,))
            conn.execute("DELETE FROM songs WHERE id = ?", (song_id,))
            conn.commit()

        await self._run(_delete)

    # ── Revisions ────────────────────────────────────────────────────────────

    async def create_revision(
        self,
        song_id: str,
        revision_type: str,
        instruction: str,
        old_lyrics: dict[str, str],
        new_lyrics: dict[str, str],
        revision_id: str | None = None,
    ) -> str:
        """Insert a revision row. Pass `revision_id` to control the stored id."""
        rev_id = revision_id or str(uuid.uuid4())
        now = _now_iso()

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO revisions (id, song_id, revision_type, instruction,"
                " old_lyrics, new_lyrics, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    rev_id,
                    song_id,
                    revision_type,
                    instruction,
                    json.dumps(old_lyrics),
                    json.dumps(new_lyrics),
                    now,
                ),
            )
            conn.commit()

        await self._run(_insert)
        return rev_id

    async def get_song_revisions(self, song_id: str) -> list[RevisionRecord]:
        """Revisions for a song, newest first."""

        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                "SELECT * FROM revisions WHERE song_id = ? ORDER BY created_at DESC, rowid DESC",
                (song_id,),
            ).fetchall()

        return [_revision_from_row(row) for row in await self._run(_select)]

    async def get_revision(self, revision_id: str) -> RevisionRecord | None:
        def _select(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute("SELECT * FROM revisions WHERE id = ?", (revision_id,)).fetchone()

        row = await self._run(_select)
        return _revision_from_row(row) if row is not None else None

    # ── API usage (rate limiting) ────────────────────────────────────────────

    async def record_usage(self, client: str, endpoint: str, timestamp: float | None = None) -> None:
        ts = timestamp if timestamp is not None else time.time()

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO api_usage (client_id, endpoint, timestamp) VALUES (?, ?, ?)",
                (client, endpoint, ts),
            )
            conn.commit()

        await self._run(_insert)

    async def count_usage(self, client: str, endpoint: str, since: float) -> int:
        def _count(conn: sqlite3.Connection) -> int:
            row = conn.execute(
                "SELECT COUNT(*) FROM api_usage WHERE client_id = ? AND endpoint = ? AND timestamp > ?",
                (client, endpoint, since),
            ).fetchone()
            return int(row[0]) if row else 0

        return await self._run(_count)

    async def cleanup_usage(self, older_than: float) -> int:
        """Delete usage records older than the cutoff. Returns rows removed."""

        def _delete(conn: sqlite3.Connection) -> int:
            cursor = conn.execute("DELETE FROM api_usage WHERE timestamp < ?", (older_than,))
            conn.commit()
            return cursor.rowcount

        return await self._run(_delete)

    async def usage_stats(self, timeframe_seconds: int = 86400) -> dict[str, int]:
        """Request counts per endpoint over the trailing timeframe."""
        since = time.time() - timeframe_seconds

        def _select(conn: sqlite3.Connection) -> dict[str, int]:
            rows = conn.execute(
                "SELECT endpoint, COUNT(*) AS count FROM api_usage WHERE timestamp > ? GROUP BY endpoint",
                (since,),
            ).fetchall()
            return {row["endpoint"]: row["count"] for row in rows}

        return await self._run(_select)

    async def total_songs(self) -> int:
        return await self._run(lambda conn: int(conn.execute("SELECT COUNT(*) FROM songs").fetchone()[0]))

    async def total_revisions(self) -> int:
        return await self._run(
            lambda conn: int(conn.execute("SELECT COUNT(*) FROM revisions").fetchone()[0])
        )

    # ── Voice generations ────────────────────────────────────────────────────

    async def create_voice_generation(
        self,
        voice_style: str,
        voice_preset: str,
        song_id: str | None = None,
        voice_url: str | None = None,
        duration: float | None = None,
    ) -> str:
        generation_id = str(uuid.uuid4())
        now = _now_iso()

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO voice_generations (id, song_id, voice_style, voice_preset,"
                " voice_url, duration, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (generation_id, song_id, voice_style, voice_preset, voice_url, duration, now),
            )
            conn.commit()

        await self._run(_insert)
        return generation_id

    async def get_voice_generation(self, generation_id: str) -> VoiceGenerationRecord | None:
        def _select(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute(
                "SELECT * FROM voice_generations WHERE id = ?", (generation_id,)
            ).fetchone()

        row = await self._run(_select)
        if row is None:
            return None
        return VoiceGenerationRecord(
            id=row["id"],
            voice_style=row["voice_style"],
            voice_preset=row["voice_preset"],
            song_id=row["song_id"],
            voice_url=row["voice_url"],
            duration=row["duration"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # ── Health ───────────────────────────────────────────────────────────────

    async def health_check(self) -> bool:
        """True if a trivial query succeeds."""
        try:
            await self._run(lambda conn: conn.execute("SELECT 1").fetchone())
        except (sqlite3.Error, RuntimeError):
            logger.exception("song_store_health_check_failed")
            return False
        return True


def _loads(raw: str | None, default: Any, **context: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("song_store_corrupt_json", **context)
        return default


def _revision_from_row(row: sqlite3.Row) -> RevisionRecord:
    return RevisionRecord(
        id=row["id"],
        song_id=row["song_id"],
        revision_type=row["revision_type"],
        instruction=row["instruction"],
        old_lyrics=_loads(row["old_lyrics"], {}, revision_id=row["id"]),
        new_lyrics=_loads(row["new_lyrics"], {}, revision_id=row["id"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )
