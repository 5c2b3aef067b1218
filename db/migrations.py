"""SQLite migrations for the track registry."""

from __future__ import annotations

import sqlite3


def apply_connection_pragmas(conn: sqlite3.Connection) -> None:
    """Put the connection in WAL mode so readers never wait on an in-flight upsert."""
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA busy_timeout=5000")


def ensure_track_registry_table(conn: sqlite3.Connection) -> None:
    """Ensure the registry table and its lookup indexes exist."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS track_registry (
            target_id TEXT PRIMARY KEY,
            isrc TEXT NOT NULL DEFAULT '',
            spotify_id TEXT NOT NULL DEFAULT '',
            youtube_id TEXT NOT NULL DEFAULT '',
            last_updated TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_track_registry_isrc ON track_registry (isrc)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_track_registry_spotify ON track_registry (spotify_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_track_registry_youtube ON track_registry (youtube_id)")
    conn.commit()
