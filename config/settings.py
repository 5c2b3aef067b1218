"""Application settings constants."""

from __future__ import annotations

import os


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# SQLite file backing the track registry.
REGISTRY_DB_PATH = os.getenv("REGISTRY_DB_PATH", os.path.join(".", "data", "registry.db"))

DAB_API_BASE = os.getenv("DAB_API_BASE", "https://dabmusic.xyz/api").rstrip("/")
QOBUZ_API_BASE = os.getenv("QOBUZ_API_BASE", "https://www.qobuz.com/api.json/0.2").rstrip("/")
QOBUZ_APP_ID = os.getenv("QOBUZ_APP_ID", "")
QOBUZ_USER_AUTH_TOKEN = os.getenv("QOBUZ_USER_AUTH_TOKEN", "")
QOBUZ_SEARCH_LIMIT = _env_int("QOBUZ_SEARCH_LIMIT", 5)

HTTP_TIMEOUT_SECONDS = _env_float("HTTP_TIMEOUT_SECONDS", 30.0)

# DAB allows 15 requests per 10 seconds.
DAB_RATE_PER_SECOND = _env_float("DAB_RATE_PER_SECOND", 1.5)
DAB_BURST = _env_int("DAB_BURST", 1)

# MusicBrainz asks for at most one request per second.
MUSICBRAINZ_RATE_PER_SECOND = _env_float("MUSICBRAINZ_RATE_PER_SECOND", 1.0)
MUSICBRAINZ_BURST = _env_int("MUSICBRAINZ_BURST", 1)
MUSICBRAINZ_MIN_SCORE = _env_int("MUSICBRAINZ_MIN_SCORE", 80)
# Sent as "<app>/<version> ( <contact> )"; MusicBrainz wants a URL or email here.
MUSICBRAINZ_APP_NAME = os.getenv("MUSICBRAINZ_APP_NAME", "trackbridge")
MUSICBRAINZ_APP_VERSION = os.getenv("MUSICBRAINZ_APP_VERSION", "1.0")
MUSICBRAINZ_CONTACT = os.getenv("MUSICBRAINZ_CONTACT", "https://github.com/trackbridge/trackbridge")
ENABLE_ISRC_ENRICHMENT = _env_bool("ENABLE_ISRC_ENRICHMENT", True)

STRICT_THRESHOLD = _env_float("STRICT_THRESHOLD", 0.95)
LENIENT_THRESHOLD = _env_float("LENIENT_THRESHOLD", 0.85)

REGISTRY_WRITER_WORKERS = _env_int("REGISTRY_WRITER_WORKERS", 2)
REGISTRY_WRITER_MAX_PENDING = _env_int("REGISTRY_WRITER_MAX_PENDING", 256)

HOST = os.getenv("TRACKBRIDGE_HOST", "127.0.0.1")
PORT = _env_int("PORT", 8080)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = _env_bool("TRACKBRIDGE_DEBUG")
