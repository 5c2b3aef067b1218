from __future__ import annotations

import logging

from catalog.providers.base import CatalogAdapter
from engine.models import SearchCandidate

logger = logging.getLogger(__name__)


async def execute_search(adapter: CatalogAdapter, query: str) -> list[SearchCandidate]:
    """Run one adapter search; failures are logged and count as zero results."""
    try:
        results = await adapter.search(query)
    except Exception as exc:
        logger.warning("[SEARCH] catalog=%s query=%r failed: %s", adapter.name, query, exc)
        return []
    return list(results or [])


class CatalogSearchClient:
    """Searches the primary catalog and falls back to the secondary one.

    The secondary adapter carries the process-wide rate limiter; the primary
    is not throttled by the engine. ``primary`` may be ``None`` when it is
    not configured, in which case every search goes to the secondary.
    """

    def __init__(self, primary: CatalogAdapter | None, secondary: CatalogAdapter) -> None:
        self.primary = primary
        self.secondary = secondary

    async def search(self, query: str) -> list[SearchCandidate]:
        text = str(query or "").strip()
        if not text:
            return []
        if self.primary is not None and getattr(self.primary, "enabled", True):
            results = await execute_search(self.primary, text)
            if results:
                logger.debug("[SEARCH] primary hit catalog=%s results=%s", self.primary.name, len(results))
                return results
            logger.debug("[SEARCH] primary miss catalog=%s, falling back", self.primary.name)
        return await execute_search(self.secondary, text)
