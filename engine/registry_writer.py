"""Background registry writes that never hold up a resolution."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from config import settings
from db.track_registry import RegistryEntry, TrackRegistry

logger = logging.getLogger(__name__)


class RegistryWriter:
    """Bounded worker pool for fire-and-forget registry upserts.

    ``submit`` returns immediately. When the backlog is full, or after the
    writer has been closed, the write is dropped: the registry only warms
    future lookups, so losing a write costs at most one extra search.
    """

    def __init__(
        self,
        registry: TrackRegistry,
        *,
        max_workers: int | None = None,
        max_pending: int | None = None,
    ) -> None:
        self.registry = registry
        self.max_pending = max(1, int(max_pending or settings.REGISTRY_WRITER_MAX_PENDING))
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers or settings.REGISTRY_WRITER_WORKERS)),
            thread_name_prefix="registry-writer",
        )
        self._lock = threading.Lock()
        self._pending = 0
        self._closed = False
        self._futures: set[Future] = set()

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def submit(self, entry: RegistryEntry) -> Future | None:
        with self._lock:
            if self._closed:
                logger.debug("[REGISTRY] writer closed, dropping target_id=%s", entry.target_id)
                return None
            if self._pending >= self.max_pending:
                logger.warning(
                    "[REGISTRY] writer backlog full pending=%s, dropping target_id=%s",
                    self._pending,
                    entry.target_id,
                )
                return None
            self._pending += 1
            future = self._executor.submit(self._write, entry)
            self._futures.add(future)
        future.add_done_callback(self._on_done)
        return future

    def _write(self, entry: RegistryEntry) -> bool:
        try:
            return self.registry.upsert(entry)
        except Exception:
            logger.exception("[REGISTRY] background upsert failed target_id=%s", entry.target_id)
            return False

    def _on_done(self, future: Future) -> None:
        with self._lock:
            if future in self._futures:
                self._futures.discard(future)
                self._pending -= 1

    def flush(self, timeout: float | None = None) -> None:
        """Block until the writes submitted so far have finished."""
        with self._lock:
            futures = list(self._futures)
        for future in futures:
            try:
                future.result(timeout=timeout)
            except Exception:
                logger.exception("[REGISTRY] background write did not complete")

    def close(self, *, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        logger.info("[REGISTRY] writer closed wait=%s", wait)

    def __enter__(self) -> "RegistryWriter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close(wait=True)
