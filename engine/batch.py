"""Sequential conversion of a track list with per-track progress events."""

from __future__ import annotations

import inspect
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence, Union

from engine.models import MatchingMode, MatchResult, TrackDescriptor
from engine.resolver import MatchResolver

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], Union[bool, Awaitable[bool]]]


async def _is_cancelled(check: CancelCheck | None) -> bool:
    if check is None:
        return False
    outcome = check()
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return bool(outcome)


def summarize(results: Sequence[MatchResult]) -> dict[str, Any]:
    found = sum(1 for result in results if result.found)
    return {
        "total": len(results),
        "found": found,
        "not_found": len(results) - found,
    }


async def convert_tracks(
    resolver: MatchResolver,
    tracks: Sequence[TrackDescriptor],
    mode: MatchingMode | str | None = None,
    *,
    is_cancelled: CancelCheck | None = None,
    meta: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """Resolve ``tracks`` one at a time, yielding an event as each result is known.

    Events come out in input order. When ``is_cancelled`` reports true
    between two tracks the generator stops quietly, without the final
    ``complete`` event.
    """
    mode = MatchingMode.parse(mode)
    total = len(tracks)
    results: list[MatchResult] = []
    for index, track in enumerate(tracks):
        if await _is_cancelled(is_cancelled):
            logger.info("[BATCH] cancelled after %s/%s tracks", index, total)
            return
        result = await resolver.resolve(track, mode)
        results.append(result)
        yield {
            "status": "processing",
            "index": index + 1,
            "total": total,
            "result": result.to_dict(),
        }

    summary = summarize(results)
    logger.info(
        "[BATCH] complete mode=%s total=%s found=%s not_found=%s",
        mode.value,
        summary["total"],
        summary["found"],
        summary["not_found"],
    )
    yield {
        "status": "complete",
        "matching_mode": mode.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "meta": dict(meta or {}),
        "summary": summary,
        "tracks": [result.to_dict() for result in results],
    }
