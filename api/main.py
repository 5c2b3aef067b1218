"""HTTP surface for batch track conversion."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from catalog import CatalogAuthError, CatalogSearchClient, DabCatalog, QobuzCatalog
from config import settings
from db.track_registry import TrackRegistry
from engine.batch import convert_tracks
from engine.models import MatchingMode, TrackDescriptor
from engine.rate_limit import AsyncTokenBucket
from engine.registry_writer import RegistryWriter
from engine.resolver import MatchResolver
from metadata.services.musicbrainz_service import MusicBrainzService, build_musicbrainz_limiter

APP_NAME = "TrackBridge"


class TrackPayload(BaseModel):
    title: str
    artist: str = ""
    album: str | None = None
    isrc: str | None = None
    source_platform: str = "csv"
    source_id: str = ""


class ConversionRequest(BaseModel):
    tracks: list[TrackPayload] = Field(default_factory=list)
    matching_mode: str = MatchingMode.LENIENT.value
    source_name: str | None = None


def _setup_logging():
    root = logging.getLogger("")
    root.setLevel(getattr(logging, settings.LOG_LEVEL, logging.INFO))
    has_stream = any(isinstance(handler, logging.StreamHandler) for handler in root.handlers)
    if not has_stream:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        root.addHandler(stream_handler)


def _sse(payload: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False, separators=(',', ':'))}\n\n".encode("utf-8")


async def startup(app: FastAPI):
    _setup_logging()
    # Shared by every conversion request in this process.
    app.state.dab_limiter = AsyncTokenBucket(settings.DAB_RATE_PER_SECOND, settings.DAB_BURST, name="dab")
    app.state.musicbrainz_limiter = build_musicbrainz_limiter()
    app.state.registry = TrackRegistry(settings.REGISTRY_DB_PATH)
    app.state.writer = RegistryWriter(app.state.registry)
    app.state.qobuz = QobuzCatalog()
    app.state.enrichment = (
        MusicBrainzService(app.state.musicbrainz_limiter) if settings.ENABLE_ISRC_ENRICHMENT else None
    )
    if not app.state.qobuz.enabled:
        logging.warning("Qobuz credentials missing; all searches will use DAB")
    logging.info("Registry DB path: %s", app.state.registry.db_path)


async def shutdown(app: FastAPI):
    writer = getattr(app.state, "writer", None)
    if writer is not None:
        writer.close(wait=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup(app)
    try:
        yield
    finally:
        await shutdown(app)


app = FastAPI(
    title=APP_NAME,
    description="Resolves Spotify, YouTube and CSV tracks to DAB track ids.",
    lifespan=lifespan,
)


def _build_dab_catalog(token: str) -> DabCatalog:
    return DabCatalog(token, app.state.dab_limiter)


def _build_resolver(dab: DabCatalog) -> MatchResolver:
    return MatchResolver(
        CatalogSearchClient(app.state.qobuz, dab),
        registry=app.state.registry,
        writer=app.state.writer,
        enrichment=app.state.enrichment,
    )


@app.get("/api/health")
async def api_health():
    return {"status": "ok"}


@app.post("/api/v1/convert")
async def api_convert(
    payload: ConversionRequest,
    request: Request,
    x_dab_token: str | None = Header(default=None),
):
    token = (x_dab_token or "").strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing X-DAB-Token")
    if not payload.tracks:
        raise HTTPException(status_code=400, detail="No tracks found")
    try:
        tracks = [TrackDescriptor.from_dict(item.model_dump()) for item in payload.tracks]
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    dab = _build_dab_catalog(token)
    try:
        user_id = await dab.validate_session()
    except CatalogAuthError as exc:
        raise HTTPException(status_code=401, detail=f"Auth failed: {exc}") from exc

    resolver = _build_resolver(dab)
    mode = MatchingMode.parse(payload.matching_mode)
    meta = {"user_id": user_id, "source_name": payload.source_name}
    logging.info("Conversion started user_id=%s tracks=%s mode=%s", user_id, len(tracks), mode.value)

    async def stream():
        async for event in convert_tracks(
            resolver,
            tracks,
            mode,
            is_cancelled=request.is_disconnected,
            meta=meta,
        ):
            yield _sse(event)

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/api/v1/registry/{target_id}")
async def api_registry_entry(target_id: str):
    entry = await asyncio.to_thread(app.state.registry.get, target_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Not found")
    return {
        "target_id": entry.target_id,
        "isrc": entry.isrc or None,
        "spotify_id": entry.spotify_id or None,
        "youtube_id": entry.youtube_id or None,
        "last_updated": entry.last_updated,
    }


if __name__ == "__main__":
    import uvicorn

    host = settings.HOST
    port = settings.PORT
    uvicorn.run("api.main:app", host=host, port=port, reload=False)
