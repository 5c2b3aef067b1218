import asyncio
import time

from db.track_registry import RegistryEntry, TrackRegistry
from engine.models import MatchStatus, SearchCandidate, SourcePlatform, TrackDescriptor
from engine.rate_limit import AsyncTokenBucket
from engine.registry_writer import RegistryWriter
from engine.resolver import MatchResolver
from catalog.search import CatalogSearchClient


class _MockSearchClient:
    def __init__(self, results=None, error=None):
        self._results = results or {}
        self._error = error
        self.calls = []

    async def search(self, query):
        self.calls.append(query)
        if self._error is not None:
            raise self._error
        return list(self._results.get(query, []))


class _MockEnrichment:
    def __init__(self, isrc=""):
        self.isrc = isrc
        self.calls = []

    async def resolve_isrc(self, artist, title):
        self.calls.append((artist, title))
        return self.isrc


def _candidate(track_id, artist="The Weeknd", title="Blinding Lights", *, rate=44.1, depth=16):
    return SearchCandidate(id=track_id, title=title, artist=artist, sampling_rate=rate, bit_depth=depth)


def _spotify_track(**overrides):
    fields = dict(
        title="Blinding Lights",
        artist="The Weeknd",
        source_platform=SourcePlatform.SPOTIFY,
        source_id="0VjIjW4GlUZAMYd2vXMi3b",
    )
    fields.update(overrides)
    return TrackDescriptor(**fields)


def _stores(tmp_path):
    registry = TrackRegistry(str(tmp_path / "registry.db"))
    writer = RegistryWriter(registry, max_workers=1)
    return registry, writer


def test_registry_hit_returns_found_without_network(tmp_path) -> None:
    registry, writer = _stores(tmp_path)
    registry.upsert(RegistryEntry(target_id="900", spotify_id="0VjIjW4GlUZAMYd2vXMi3b"))
    search = _MockSearchClient()
    enrichment = _MockEnrichment("USUM71921131")
    resolver = MatchResolver(search, registry=registry, writer=writer, enrichment=enrichment)

    result = asyncio.run(resolver.resolve(_spotify_track(), "strict"))

    assert result.status is MatchStatus.FOUND
    assert result.target_id == "900"
    assert result.confidence == 1.0
    assert result.candidate is None
    assert search.calls == []
    assert enrichment.calls == []
    writer.close()


def test_isrc_match_is_exact_regardless_of_similarity(tmp_path) -> None:
    registry, writer = _stores(tmp_path)
    unrelated = _candidate("4242", artist="Someone Else", title="Other Song")
    search = _MockSearchClient({"USUM71921131": [unrelated]})
    resolver = MatchResolver(search, registry=registry, writer=writer)

    result = asyncio.run(resolver.resolve(_spotify_track(isrc="USUM71921131"), "strict"))

    assert result.status is MatchStatus.FOUND
    assert result.target_id == "4242"
    assert result.confidence == 1.0
    assert result.candidate == unrelated
    assert search.calls == ["USUM71921131"]
    writer.close()


def test_isrc_match_picks_best_quality(tmp_path) -> None:
    search = _MockSearchClient(
        {
            "USUM71921131": [
                _candidate("cd", rate=44.1, depth=16),
                _candidate("hires", rate=192.0, depth=24),
                _candidate("mid", rate=96.0, depth=24),
            ]
        }
    )
    resolver = MatchResolver(search)

    result = asyncio.run(resolver.resolve(_spotify_track(isrc="usum71921131"), "lenient"))

    assert result.target_id == "hires"
    assert result.track.isrc == "USUM71921131"


def test_invalid_isrc_skips_exact_search(tmp_path) -> None:
    search = _MockSearchClient({"the weeknd blinding lights": [_candidate("1")]})
    resolver = MatchResolver(search)

    result = asyncio.run(resolver.resolve(_spotify_track(isrc="NOT-AN-ISRC"), "lenient"))

    assert result.status is MatchStatus.FOUND
    assert search.calls == ["the weeknd blinding lights"]


def test_empty_isrc_results_fall_through_to_fuzzy(tmp_path) -> None:
    search = _MockSearchClient({"the weeknd blinding lights": [_candidate("1")]})
    resolver = MatchResolver(search)

    result = asyncio.run(resolver.resolve(_spotify_track(isrc="USUM71921131"), "lenient"))

    assert result.target_id == "1"
    assert search.calls == ["USUM71921131", "the weeknd blinding lights"]


def test_fallback_query_uses_uncleaned_title() -> None:
    hit = _candidate("77", title="Blinding Lights (Remastered)")
    search = _MockSearchClient({"the weeknd blinding lights (remastered)": [hit]})
    resolver = MatchResolver(search)

    result = asyncio.run(resolver.resolve(_spotify_track(title="Blinding Lights (Remastered)"), "lenient"))

    assert search.calls == ["the weeknd blinding lights", "the weeknd blinding lights (remastered)"]
    assert result.status is MatchStatus.FOUND
    assert result.target_id == "77"
    assert result.confidence == 1.0


def test_no_results_on_both_queries_is_not_found() -> None:
    search = _MockSearchClient()
    resolver = MatchResolver(search)

    result = asyncio.run(resolver.resolve(_spotify_track(title="Blinding Lights (Remastered)"), "lenient"))

    assert result.status is MatchStatus.NOT_FOUND
    assert result.target_id is None
    assert len(search.calls) == 2


def test_clean_title_without_suffix_is_searched_once() -> None:
    search = _MockSearchClient()
    resolver = MatchResolver(search)

    asyncio.run(resolver.resolve(_spotify_track(), "lenient"))

    assert search.calls == ["the weeknd blinding lights"]


def test_threshold_boundary_depends_on_mode() -> None:
    search = _MockSearchClient({"the weeknd blinding lights": [_candidate("1")]})

    def _resolve(score, mode):
        resolver = MatchResolver(search, similarity=lambda a, b: score)
        return asyncio.run(resolver.resolve(_spotify_track(), mode))

    lenient = _resolve(0.85, "lenient")
    assert lenient.status is MatchStatus.FOUND
    assert lenient.confidence == 0.85
    assert _resolve(0.85, "strict").status is MatchStatus.NOT_FOUND
    assert _resolve(0.94, "strict").status is MatchStatus.NOT_FOUND
    assert _resolve(0.95, "strict").status is MatchStatus.FOUND


def test_search_errors_degrade_to_not_found() -> None:
    search = _MockSearchClient(error=RuntimeError("network down"))
    resolver = MatchResolver(search)

    result = asyncio.run(resolver.resolve(_spotify_track(isrc="USUM71921131"), "lenient"))

    assert result.status is MatchStatus.NOT_FOUND
    assert search.calls == ["USUM71921131", "the weeknd blinding lights"]


def test_fresh_match_is_written_back_with_source_ids(tmp_path) -> None:
    registry, writer = _stores(tmp_path)
    search = _MockSearchClient({"USUM71921131": [_candidate("555")]})
    resolver = MatchResolver(search, registry=registry, writer=writer)

    asyncio.run(resolver.resolve(_spotify_track(isrc="USUM71921131"), "lenient"))
    writer.flush()

    row = registry.get("555")
    assert row.isrc == "USUM71921131"
    assert row.spotify_id == "0VjIjW4GlUZAMYd2vXMi3b"
    assert row.youtube_id == ""
    writer.close()


def test_re_resolution_is_served_from_registry(tmp_path) -> None:
    registry, writer = _stores(tmp_path)
    search = _MockSearchClient({"the weeknd blinding lights": [_candidate("321")]})
    resolver = MatchResolver(search, registry=registry, writer=writer)
    track = _spotify_track()

    first = asyncio.run(resolver.resolve(track, "lenient"))
    writer.flush()
    calls_after_first = len(search.calls)
    second = asyncio.run(resolver.resolve(track, "lenient"))

    assert first.target_id == second.target_id == "321"
    assert second.candidate is None
    assert second.confidence == 1.0
    assert len(search.calls) == calls_after_first
    writer.close()


def test_enriched_isrc_short_circuits_through_registry(tmp_path) -> None:
    registry, writer = _stores(tmp_path)
    registry.upsert(RegistryEntry(target_id="808", isrc="USUM71921131", spotify_id="sp-1"))
    search = _MockSearchClient()
    enrichment = _MockEnrichment("USUM71921131")
    resolver = MatchResolver(search, registry=registry, writer=writer, enrichment=enrichment)
    track = TrackDescriptor(
        title="Blinding Lights",
        artist="The Weeknd",
        source_platform=SourcePlatform.YOUTUBE,
        source_id="4NRXx6U8ABQ",
    )

    result = asyncio.run(resolver.resolve(track, "strict"))
    writer.flush()

    assert result.status is MatchStatus.FOUND
    assert result.target_id == "808"
    assert result.track.isrc == "USUM71921131"
    assert search.calls == []
    assert enrichment.calls == [("The Weeknd", "Blinding Lights")]
    assert registry.lookup("youtube", "4NRXx6U8ABQ") == "808"
    assert registry.get("808").spotify_id == "sp-1"
    writer.close()


def test_enriched_isrc_drives_exact_search() -> None:
    search = _MockSearchClient({"USUM71921131": [_candidate("9")]})
    resolver = MatchResolver(search, enrichment=_MockEnrichment("USUM71921131"))
    track = TrackDescriptor(title="Blinding Lights", artist="The Weeknd", source_platform=SourcePlatform.CSV)

    result = asyncio.run(resolver.resolve(track, "strict"))

    assert result.target_id == "9"
    assert result.confidence == 1.0
    assert search.calls == ["USUM71921131"]


def test_enrichment_miss_continues_with_fuzzy_search() -> None:
    search = _MockSearchClient({"the weeknd blinding lights": [_candidate("3")]})
    enrichment = _MockEnrichment("")
    resolver = MatchResolver(search, enrichment=enrichment)
    track = TrackDescriptor(
        title="Blinding Lights",
        artist="The Weeknd",
        source_platform=SourcePlatform.YOUTUBE,
        source_id="4NRXx6U8ABQ",
    )

    result = asyncio.run(resolver.resolve(track, "lenient"))

    assert result.target_id == "3"
    assert result.track.isrc is None
    assert len(enrichment.calls) == 1


def test_spotify_tracks_are_not_enriched() -> None:
    enrichment = _MockEnrichment("USUM71921131")
    resolver = MatchResolver(_MockSearchClient(), enrichment=enrichment)

    asyncio.run(resolver.resolve(_spotify_track(), "lenient"))

    assert enrichment.calls == []


def test_csv_rows_with_isrc_check_registry_by_isrc(tmp_path) -> None:
    registry, writer = _stores(tmp_path)
    registry.upsert(RegistryEntry(target_id="12", isrc="GBAYE0601498"))
    search = _MockSearchClient()
    resolver = MatchResolver(search, registry=registry, writer=writer)
    track = TrackDescriptor(title="x", artist="y", source_platform=SourcePlatform.CSV, isrc="GBAYE0601498")

    result = asyncio.run(resolver.resolve(track, "lenient"))

    assert result.target_id == "12"
    assert search.calls == []
    writer.close()


class _EmptyPrimary:
    name = "qobuz"

    async def search(self, query):
        return []


class _LimitedSecondary:
    name = "dab"

    def __init__(self, limiter):
        self.limiter = limiter

    async def search(self, query):
        await self.limiter.acquire()
        return [_candidate("1")]


def test_secondary_rate_limit_is_shared_across_concurrent_resolutions() -> None:
    rate = 20.0
    shared = AsyncTokenBucket(rate, 1)
    resolvers = [
        MatchResolver(CatalogSearchClient(_EmptyPrimary(), _LimitedSecondary(shared))) for _ in range(5)
    ]

    async def _run():
        start = time.monotonic()
        results = await asyncio.gather(*(r.resolve(_spotify_track(), "lenient") for r in resolvers))
        return results, time.monotonic() - start

    results, elapsed = asyncio.run(_run())

    assert all(result.status is MatchStatus.FOUND for result in results)
    assert elapsed >= (len(resolvers) - 1) / rate - 0.02


def test_malformed_isrc_is_enriched_like_a_missing_one() -> None:
    search = _MockSearchClient({"USUM71921131": [_candidate("9")]})
    enrichment = _MockEnrichment("USUM71921131")
    resolver = MatchResolver(search, enrichment=enrichment)
    track = TrackDescriptor(
        title="Blinding Lights",
        artist="The Weeknd",
        isrc="N/A",
        source_platform=SourcePlatform.YOUTUBE,
        source_id="4NRXx6U8ABQ",
    )

    result = asyncio.run(resolver.resolve(track, "strict"))

    assert enrichment.calls == [("The Weeknd", "Blinding Lights")]
    assert search.calls == ["USUM71921131"]
    assert result.status is MatchStatus.FOUND
    assert result.target_id == "9"
    assert result.track.isrc == "USUM71921131"
