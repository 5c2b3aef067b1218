"""Qobuz track search, the primary catalog. No engine-side throttling."""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urljoin

import requests

from catalog.providers.base import CatalogSearchError, as_float, as_id, as_int, build_session
from config import settings
from engine.models import SearchCandidate

logger = logging.getLogger(__name__)


def qobuz_item_to_candidate(item: dict[str, Any]) -> SearchCandidate | None:
    if not isinstance(item, dict):
        return None
    track_id = as_id(item.get("id"))
    if not track_id:
        return None
    album = item.get("album") if isinstance(item.get("album"), dict) else {}
    album_artist = album.get("artist") if isinstance(album.get("artist"), dict) else {}
    performer = item.get("performer") if isinstance(item.get("performer"), dict) else {}
    return SearchCandidate(
        id=track_id,
        title=str(item.get("title") or "").strip(),
        artist=str(album_artist.get("name") or performer.get("name") or "").strip(),
        album=(str(album.get("title")).strip() or None) if album.get("title") else None,
        sampling_rate=as_float(album.get("maximum_sampling_rate", item.get("maximum_sampling_rate"))),
        bit_depth=as_int(album.get("maximum_bit_depth", item.get("maximum_bit_depth"))),
        is_hi_res=bool(album.get("hires", item.get("hires"))),
        source="qobuz",
    )


class QobuzCatalog:
    name = "qobuz"

    def __init__(
        self,
        *,
        app_id: str | None = None,
        user_auth_token: str | None = None,
        base_url: str | None = None,
        limit: int | None = None,
        timeout_seconds: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.app_id = (app_id if app_id is not None else settings.QOBUZ_APP_ID).strip()
        self.user_auth_token = (
            user_auth_token if user_auth_token is not None else settings.QOBUZ_USER_AUTH_TOKEN
        ).strip()
        self.base_url = (base_url or settings.QOBUZ_API_BASE).rstrip("/") + "/"
        self.limit = int(limit or settings.QOBUZ_SEARCH_LIMIT)
        self.timeout_seconds = float(timeout_seconds or settings.HTTP_TIMEOUT_SECONDS)
        self._session = session or build_session()

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.user_auth_token)

    def search_sync(self, query: str) -> list[SearchCandidate]:
        if not self.enabled:
            raise CatalogSearchError("qobuz credentials are not configured")
        url = urljoin(self.base_url, "track/search")
        try:
            resp = self._session.get(
                url,
                params={
                    "query": query,
                    "limit": self.limit,
                    "app_id": self.app_id,
                    "user_auth_token": self.user_auth_token,
                },
                headers={
                    "X-App-Id": self.app_id,
                    "X-User-Auth-Token": self.user_auth_token,
                },
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise CatalogSearchError(f"qobuz request failed: {exc}") from exc
        if resp.status_code != 200:
            raise CatalogSearchError(f"qobuz status {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise CatalogSearchError("qobuz returned invalid JSON") from exc
        tracks = payload.get("tracks") if isinstance(payload, dict) else None
        items = (tracks or {}).get("items") or []
        candidates = [c for c in (qobuz_item_to_candidate(item) for item in items) if c is not None]
        logger.debug("[SEARCH] qobuz query=%r results=%s", query, len(candidates))
        return candidates

    async def search(self, query: str) -> list[SearchCandidate]:
        return await asyncio.to_thread(self.search_sync, query)
