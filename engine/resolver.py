"""Resolve a source track to a DAB track id.

The pipeline for one track:

1. Registry lookup by the track's source id. A hit is final.
2. For sources that rarely carry a usable ISRC (YouTube, CSV), ask
   MusicBrainz for one and, if found, look the registry up again by ISRC.
3. With a valid ISRC, search the catalog by ISRC and take the best
   quality hit.
4. Otherwise search by ``"artist title"`` (title stripped of bracketed
   suffixes first, then the raw title) and keep the best Jaro-Winkler
   match above the mode threshold.

Fresh matches are written back to the registry in the background.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Protocol

from db.track_registry import RegistryEntry, TrackRegistry
from engine.models import (
    MatchingMode,
    MatchResult,
    MatchStatus,
    SearchCandidate,
    SourcePlatform,
    TrackDescriptor,
)
from engine.registry_writer import RegistryWriter
from engine.search_scoring import (
    Similarity,
    jaro_winkler_similarity,
    pick_best_quality,
    score_candidates,
)
from engine.title_normalization import build_search_query, clean_search_title, is_valid_isrc, normalize_isrc

logger = logging.getLogger(__name__)

# Sources whose descriptors usually arrive without an ISRC.
_ENRICHABLE_PLATFORMS = frozenset({SourcePlatform.YOUTUBE, SourcePlatform.CSV})

# Source platform -> registry lookup key type.
_REGISTRY_KEYS = {
    SourcePlatform.SPOTIFY: "spotify",
    SourcePlatform.YOUTUBE: "youtube",
}


class SearchClient(Protocol):
    async def search(self, query: str) -> list[SearchCandidate]:
        raise NotImplementedError


class IsrcResolver(Protocol):
    async def resolve_isrc(self, artist: str, title: str) -> str:
        raise NotImplementedError


def registry_entry_for(track: TrackDescriptor, target_id: str) -> RegistryEntry:
    return RegistryEntry(
        target_id=target_id,
        isrc=normalize_isrc(track.isrc) or "",
        spotify_id=track.source_id if track.source_platform is SourcePlatform.SPOTIFY else "",
        youtube_id=track.source_id if track.source_platform is SourcePlatform.YOUTUBE else "",
    )


class MatchResolver:
    def __init__(
        self,
        search_client: SearchClient,
        *,
        registry: TrackRegistry | None = None,
        writer: RegistryWriter | None = None,
        enrichment: IsrcResolver | None = None,
        similarity: Similarity = jaro_winkler_similarity,
    ) -> None:
        self.search_client = search_client
        self.registry = registry
        self.writer = writer
        self.enrichment = enrichment
        self.similarity = similarity

    async def resolve(self, track: TrackDescriptor, mode: MatchingMode | str | None = None) -> MatchResult:
        mode = MatchingMode.parse(mode)

        cached = await self._cache_check(track)
        if cached:
            return self._cached_result(track, cached)

        if self._needs_enrichment(track):
            isrc = await self.enrichment.resolve_isrc(track.artist, track.title)
            if isrc:
                track = dataclasses.replace(track, isrc=isrc)
                cached = await self._lookup("isrc", isrc)
                if cached:
                    # Attach this source id to the row found through the ISRC.
                    self._schedule_upsert(track, cached)
                    return self._cached_result(track, cached)

        isrc = normalize_isrc(track.isrc)
        if track.isrc and not isrc:
            logger.info("[RESOLVER] invalid isrc=%r title=%r, skipping exact search", track.isrc, track.title)
        if isrc:
            if isrc != track.isrc:
                track = dataclasses.replace(track, isrc=isrc)
            results = await self._search(isrc)
            best = pick_best_quality(results)
            if best is not None:
                return self._found(track, best, 1.0, via="isrc")

        return await self._fuzzy_match(track, mode)

    async def _fuzzy_match(self, track: TrackDescriptor, mode: MatchingMode) -> MatchResult:
        clean_title = clean_search_title(track.title)
        query = build_search_query(track.artist, clean_title)
        results = await self._search(query)
        if not results and clean_title != track.title.strip():
            query = build_search_query(track.artist, track.title)
            results = await self._search(query)
        if not results:
            logger.info("[RESOLVER] no results title=%r artist=%r", track.title, track.artist)
            return MatchResult(track=track, status=MatchStatus.NOT_FOUND)

        scored = score_candidates(query, results, mode, similarity=self.similarity)
        if scored is None:
            logger.info(
                "[RESOLVER] no candidate above threshold mode=%s title=%r artist=%r candidates=%s",
                mode.value,
                track.title,
                track.artist,
                len(results),
            )
            return MatchResult(track=track, status=MatchStatus.NOT_FOUND)
        return self._found(track, scored.candidate, scored.score, via="fuzzy")

    def _needs_enrichment(self, track: TrackDescriptor) -> bool:
        return (
            self.enrichment is not None
            and track.source_platform in _ENRICHABLE_PLATFORMS
            and not is_valid_isrc(track.isrc)
            and bool(track.artist and track.title)
        )

    async def _cache_check(self, track: TrackDescriptor) -> str | None:
        key_type = _REGISTRY_KEYS.get(track.source_platform)
        if key_type and track.source_id:
            return await self._lookup(key_type, track.source_id)
        isrc = normalize_isrc(track.isrc)
        if isrc:
            return await self._lookup("isrc", isrc)
        return None

    async def _lookup(self, key_type: str, key: str) -> str | None:
        if self.registry is None:
            return None
        return await asyncio.to_thread(self.registry.lookup, key_type, key)

    async def _search(self, query: str) -> list[SearchCandidate]:
        try:
            return list(await self.search_client.search(query) or [])
        except Exception as exc:
            logger.warning("[RESOLVER] search failed query=%r error=%s", query, exc)
            return []

    def _cached_result(self, track: TrackDescriptor, target_id: str) -> MatchResult:
        logger.info("[RESOLVER] registry hit target_id=%s title=%r", target_id, track.title)
        return MatchResult(track=track, status=MatchStatus.FOUND, target_id=target_id, confidence=1.0)

    def _found(self, track: TrackDescriptor, candidate: SearchCandidate, score: float, *, via: str) -> MatchResult:
        logger.info(
            "[RESOLVER] matched via=%s target_id=%s score=%.4f title=%r",
            via,
            candidate.id,
            score,
            track.title,
        )
        self._schedule_upsert(track, candidate.id)
        return MatchResult(
            track=track,
            status=MatchStatus.FOUND,
            target_id=candidate.id,
            confidence=float(score),
            candidate=candidate,
        )

    def _schedule_upsert(self, track: TrackDescriptor, target_id: str) -> None:
        if self.writer is None or not target_id:
            return
        self.writer.submit(registry_entry_for(track, target_id))
