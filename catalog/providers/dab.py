"""DAB catalog search, the secondary catalog.

Every outbound call first takes a token from the process-wide DAB limiter.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urljoin

import requests

from catalog.providers.base import (
    CatalogAuthError,
    CatalogSearchError,
    as_float,
    as_id,
    as_int,
    build_session,
)
from config import settings
from engine.models import SearchCandidate
from engine.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

DAB_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def dab_track_to_candidate(track: dict[str, Any]) -> SearchCandidate | None:
    if not isinstance(track, dict):
        return None
    track_id = as_id(track.get("id"))
    if not track_id:
        return None
    quality = track.get("audioQuality") if isinstance(track.get("audioQuality"), dict) else {}
    album_title = track.get("albumTitle")
    return SearchCandidate(
        id=track_id,
        title=str(track.get("title") or "").strip(),
        artist=str(track.get("artist") or "").strip(),
        album=(str(album_title).strip() or None) if album_title else None,
        sampling_rate=as_float(quality.get("maximumSampleRate")),
        bit_depth=as_int(quality.get("maximumBitDepth")),
        is_hi_res=bool(quality.get("isHiRes")),
        source="dab",
    )


class DabCatalog:
    name = "dab"

    def __init__(
        self,
        token: str,
        limiter: RateLimiter,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.token = (token or "").strip()
        self.limiter = limiter
        self.base_url = (base_url or settings.DAB_API_BASE).rstrip("/") + "/"
        self.timeout_seconds = float(timeout_seconds or settings.HTTP_TIMEOUT_SECONDS)
        # 429 is left to the shared limiter rather than retried here.
        self._session = session or build_session()

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": DAB_USER_AGENT,
            "Authorization": f"Bearer {self.token}",
            "Cookie": f"session={self.token}",
            "Accept": "application/json",
            "Referer": "https://dabmusic.xyz/",
            "Origin": "https://dabmusic.xyz",
        }

    def _get_json(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        url = urljoin(self.base_url, endpoint.lstrip("/"))
        try:
            resp = self._session.get(
                url,
                params=params or {},
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise CatalogSearchError(f"dab request failed: {exc}") from exc
        if resp.status_code in (401, 403):
            raise CatalogAuthError(f"dab rejected session ({resp.status_code})")
        if resp.status_code != 200:
            raise CatalogSearchError(f"dab status {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise CatalogSearchError("dab returned invalid JSON") from exc

    def search_sync(self, query: str) -> list[SearchCandidate]:
        payload = self._get_json("search", {"q": query, "type": "track"})
        tracks = payload.get("tracks") if isinstance(payload, dict) else None
        candidates = [c for c in (dab_track_to_candidate(t) for t in tracks or []) if c is not None]
        logger.debug("[SEARCH] dab query=%r results=%s", query, len(candidates))
        return candidates

    def current_user_sync(self) -> str:
        payload = self._get_json("auth/me")
        user = payload.get("user") if isinstance(payload, dict) else None
        if not isinstance(user, dict) or user.get("id") is None:
            raise CatalogAuthError("invalid session")
        return as_id(user.get("id"))

    async def search(self, query: str) -> list[SearchCandidate]:
        await self.limiter.acquire()
        return await asyncio.to_thread(self.search_sync, query)

    async def validate_session(self) -> str:
        """Return the DAB user id for the token, raising CatalogAuthError when it is not accepted."""
        if not self.token:
            raise CatalogAuthError("missing session token")
        await self.limiter.acquire()
        try:
            return await asyncio.to_thread(self.current_user_sync)
        except CatalogSearchError as exc:
            raise CatalogAuthError(str(exc)) from exc
