from .models import (
    MatchingMode,
    MatchResult,
    MatchStatus,
    SearchCandidate,
    SourcePlatform,
    TrackDescriptor,
)
from .rate_limit import AsyncTokenBucket, UnlimitedRateLimiter
from .registry_writer import RegistryWriter
from .resolver import MatchResolver

__all__ = [
    "AsyncTokenBucket",
    "MatchingMode",
    "MatchResolver",
    "MatchResult",
    "MatchStatus",
    "RegistryWriter",
    "SearchCandidate",
    "SourcePlatform",
    "TrackDescriptor",
    "UnlimitedRateLimiter",
]
