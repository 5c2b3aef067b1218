"""SQLite-backed registry mapping source identifiers to resolved DAB track ids."""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

from config import settings
from db.migrations import apply_connection_pragmas, ensure_track_registry_table

logger = logging.getLogger(__name__)

# Lookup key type -> indexed column. Values are fixed, never user input.
_LOOKUP_COLUMNS = {
    "spotify": "spotify_id",
    "youtube": "youtube_id",
    "isrc": "isrc",
}

_UPSERT_SQL = """
INSERT INTO track_registry (target_id, isrc, spotify_id, youtube_id, last_updated)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(target_id) DO UPDATE SET
    isrc = COALESCE(NULLIF(track_registry.isrc, ''), excluded.isrc),
    spotify_id = COALESCE(NULLIF(track_registry.spotify_id, ''), excluded.spotify_id),
    youtube_id = COALESCE(NULLIF(track_registry.youtube_id, ''), excluded.youtube_id),
    last_updated = excluded.last_updated
"""


@dataclass
class RegistryEntry:
    target_id: str
    isrc: str = ""
    spotify_id: str = ""
    youtube_id: str = ""
    last_updated: str | None = None


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TrackRegistry:
    """Persistent cache of resolved tracks.

    Each row is keyed by the destination ``target_id`` and accumulates the
    identifiers (ISRC, Spotify id, YouTube id) through which that track has
    been reached. Writes merge per field: an existing non-empty value is
    never replaced, an empty one is filled in.

    Lookup and write failures are logged and reported as a miss or a
    skipped write so resolution can always fall back to a network search.
    """

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = str(db_path or settings.REGISTRY_DB_PATH)
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = self._connect()
        try:
            ensure_track_registry_table(conn)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        apply_connection_pragmas(conn)
        return conn

    def lookup(self, platform: str, key: str) -> str | None:
        """Return the cached target id for ``key`` on ``platform``, or ``None`` on a miss."""
        column = _LOOKUP_COLUMNS.get(str(platform or "").strip().lower())
        value = str(key or "").strip()
        if column is None or not value:
            return None
        if column == "isrc":
            value = value.upper()
        try:
            conn = self._connect()
            try:
                cur = conn.cursor()
                cur.execute(
                    f"SELECT target_id FROM track_registry WHERE {column}=? LIMIT 1",
                    (value,),
                )
                row = cur.fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            logger.warning("[REGISTRY] lookup skipped platform=%s key=%s error=%s", platform, value, exc)
            return None
        if not row:
            return None
        return str(row["target_id"])

    def upsert(self, entry: RegistryEntry) -> bool:
        """Insert or merge ``entry`` in a single statement. Returns False when the write was skipped."""
        target_id = str(entry.target_id or "").strip()
        if not target_id:
            logger.warning("[REGISTRY] upsert skipped: empty target_id")
            return False
        params = (
            target_id,
            str(entry.isrc or "").strip().upper(),
            str(entry.spotify_id or "").strip(),
            str(entry.youtube_id or "").strip(),
            _utc_now(),
        )
        try:
            conn = self._connect()
            try:
                conn.execute(_UPSERT_SQL, params)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            logger.warning("[REGISTRY] upsert skipped target_id=%s error=%s", target_id, exc)
            return False
        logger.debug("[REGISTRY] upsert target_id=%s", target_id)
        return True

    def get(self, target_id: str) -> RegistryEntry | None:
        tid = str(target_id or "").strip()
        if not tid:
            return None
        try:
            conn = self._connect()
            try:
                cur = conn.cursor()
                cur.execute(
                    """
                    SELECT target_id, isrc, spotify_id, youtube_id, last_updated
                    FROM track_registry
                    WHERE target_id=?
                    LIMIT 1
                    """,
                    (tid,),
                )
                row = cur.fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            logger.warning("[REGISTRY] get skipped target_id=%s error=%s", tid, exc)
            return None
        if not row:
            return None
        return RegistryEntry(
            target_id=row["target_id"],
            isrc=row["isrc"] or "",
            spotify_id=row["spotify_id"] or "",
            youtube_id=row["youtube_id"] or "",
            last_updated=row["last_updated"],
        )
