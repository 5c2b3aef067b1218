import asyncio
import logging
import threading
import time
from collections import OrderedDict

import musicbrainzngs

from config import settings
from engine.rate_limit import AsyncTokenBucket, RateLimiter
from engine.title_normalization import normalize_isrc


logger = logging.getLogger(__name__)

_DEFAULT_MAX_CACHE_ENTRIES = 1024
_DEFAULT_CACHE_TTL_SECONDS = 6 * 60 * 60
_SEARCH_LIMIT = 5


class _TTLCache:
    def __init__(self, *, max_entries=_DEFAULT_MAX_CACHE_ENTRIES, ttl_seconds=_DEFAULT_CACHE_TTL_SECONDS):
        self.max_entries = int(max_entries)
        self.ttl_seconds = int(ttl_seconds)
        self._lock = threading.Lock()
        self._entries = OrderedDict()

    def get(self, key):
        now = time.time()
        with self._lock:
            value = self._entries.get(key)
            if not value:
                return None
            expires_at, payload = value
            if expires_at < now:
                self._entries.pop(key, None)
                return None
            self._entries.move_to_end(key)
            return payload

    def set(self, key, payload, *, ttl_seconds=None):
        ttl = self.ttl_seconds if ttl_seconds is None else max(1, int(ttl_seconds))
        expires_at = time.time() + ttl
        with self._lock:
            self._entries[key] = (expires_at, payload)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)


_INIT_LOCK = threading.Lock()
_INITIALIZED = False


def _ensure_initialized():
    global _INITIALIZED
    if _INITIALIZED:
        return
    with _INIT_LOCK:
        if _INITIALIZED:
            return
        logging.getLogger("musicbrainzngs").setLevel(logging.WARNING)
        musicbrainzngs.set_useragent(
            settings.MUSICBRAINZ_APP_NAME,
            settings.MUSICBRAINZ_APP_VERSION,
            settings.MUSICBRAINZ_CONTACT,
        )
        # Throughput is governed by the shared AsyncTokenBucket instead.
        musicbrainzngs.set_rate_limit(False)
        _INITIALIZED = True


def build_musicbrainz_limiter():
    return AsyncTokenBucket(
        settings.MUSICBRAINZ_RATE_PER_SECOND,
        settings.MUSICBRAINZ_BURST,
        name="musicbrainz",
    )


class MusicBrainzService:
    """Derives an ISRC for tracks that arrive without one.

    ``resolve_isrc`` takes a token from the limiter it was given before each
    MusicBrainz request. One limiter should be shared by every service
    instance in the process.
    """

    def __init__(self, limiter: RateLimiter, *, min_score=None, attempts=2, base_delay=0.5, debug=None):
        self.limiter = limiter
        self.min_score = settings.MUSICBRAINZ_MIN_SCORE if min_score is None else int(min_score)
        self.attempts = max(1, int(attempts))
        self.base_delay = float(base_delay)
        self._debug = settings.DEBUG if debug is None else bool(debug)
        self._cache = _TTLCache()

    def _debug_log(self, message, *args):
        if self._debug:
            logger.debug(message, *args)

    async def _call_with_retry(self, fn):
        _ensure_initialized()
        last_error = None
        for attempt in range(1, self.attempts + 1):
            await self.limiter.acquire()
            try:
                return await asyncio.to_thread(fn)
            except musicbrainzngs.WebServiceError as exc:
                last_error = exc
                if attempt >= self.attempts:
                    break
                delay = self.base_delay * (2 ** (attempt - 1))
                self._debug_log("[MUSICBRAINZ] retry attempt=%s delay=%.3fs error=%s", attempt, delay, exc)
                await asyncio.sleep(delay)
        raise last_error

    async def search_recordings(self, artist, title, *, limit=_SEARCH_LIMIT):
        return await self._call_with_retry(
            lambda: musicbrainzngs.search_recordings(artist=artist, recording=title, limit=int(limit))
        )

    def _isrc_from_payload(self, payload):
        recordings = (payload or {}).get("recording-list") or []
        if not recordings:
            return ""
        top = recordings[0]
        try:
            score = int(top.get("ext:score") or 0)
        except (TypeError, ValueError):
            score = 0
        if score <= self.min_score:
            self._debug_log("[MUSICBRAINZ] top result below threshold score=%s", score)
            return ""
        for code in top.get("isrc-list") or []:
            isrc = normalize_isrc(code)
            if isrc:
                return isrc
        return ""

    async def resolve_isrc(self, artist, title):
        """Return the ISRC of the top MusicBrainz match, or "" when there is no confident one."""
        artist = str(artist or "").strip()
        title = str(title or "").strip()
        if not artist or not title:
            return ""
        key = f"isrc:{artist.lower()}|{title.lower()}"
        cached = self._cache.get(key)
        if cached is not None:
            self._debug_log("[MUSICBRAINZ] cache hit key=%s", key)
            return cached
        try:
            payload = await self.search_recordings(artist, title)
        except Exception as exc:
            logger.info(f"[MUSICBRAINZ] isrc lookup failed artist={artist!r} title={title!r} error={exc}")
            return ""
        isrc = self._isrc_from_payload(payload)
        logger.info(f"[MUSICBRAINZ] isrc lookup artist={artist!r} title={title!r} isrc={isrc or '-'}")
        self._cache.set(key, isrc)
        return isrc
