"""Value types shared by the resolution pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class SourcePlatform(str, Enum):
    SPOTIFY = "spotify"
    YOUTUBE = "youtube"
    CSV = "csv"


class MatchStatus(str, Enum):
    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"


class MatchingMode(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"

    @classmethod
    def parse(cls, value: "str | MatchingMode | None") -> "MatchingMode":
        """Anything other than ``strict`` is treated as lenient."""
        if isinstance(value, MatchingMode):
            return value
        if str(value or "").strip().lower() == cls.STRICT.value:
            return cls.STRICT
        return cls.LENIENT


@dataclass(frozen=True)
class TrackDescriptor:
    """A track as named on its source platform."""

    title: str
    artist: str
    source_platform: SourcePlatform
    source_id: str = ""
    album: str | None = None
    isrc: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TrackDescriptor":
        platform_raw = str(payload.get("source_platform") or payload.get("type") or "csv").strip().lower()
        try:
            platform = SourcePlatform(platform_raw)
        except ValueError as exc:
            raise ValueError(f"unsupported source_platform: {platform_raw}") from exc
        return cls(
            title=str(payload.get("title") or "").strip(),
            artist=str(payload.get("artist") or "").strip(),
            source_platform=platform,
            source_id=str(payload.get("source_id") or "").strip(),
            album=(str(payload["album"]).strip() or None) if payload.get("album") else None,
            isrc=(str(payload["isrc"]).strip() or None) if payload.get("isrc") else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "isrc": self.isrc,
            "source_platform": self.source_platform.value,
            "source_id": self.source_id,
        }


@dataclass(frozen=True)
class SearchCandidate:
    """Catalog-agnostic search hit, populated by a catalog adapter."""

    id: str
    title: str
    artist: str
    album: str | None = None
    sampling_rate: float = 0.0
    bit_depth: int = 0
    is_hi_res: bool = False
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MatchResult:
    track: TrackDescriptor
    status: MatchStatus
    target_id: str | None = None
    confidence: float = 0.0
    candidate: SearchCandidate | None = None

    @property
    def found(self) -> bool:
        return self.status is MatchStatus.FOUND

    def to_dict(self) -> dict[str, Any]:
        return {
            "track": self.track.to_dict(),
            "match_status": self.status.value,
            "target_id": self.target_id,
            "confidence": round(float(self.confidence), 4),
            "candidate": self.candidate.to_dict() if self.candidate else None,
        }
