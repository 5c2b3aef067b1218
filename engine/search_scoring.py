from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from rapidfuzz.distance import JaroWinkler

from config import settings
from engine.models import MatchingMode, SearchCandidate
from engine.title_normalization import normalize_match_text

Similarity = Callable[[str, str], float]


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: SearchCandidate
    score: float


def jaro_winkler_similarity(left: str, right: str) -> float:
    return float(JaroWinkler.similarity(left, right))


def threshold_for_mode(mode: MatchingMode | str | None) -> float:
    if MatchingMode.parse(mode) is MatchingMode.STRICT:
        return settings.STRICT_THRESHOLD
    return settings.LENIENT_THRESHOLD


def candidate_match_text(candidate: SearchCandidate) -> str:
    return normalize_match_text(f"{candidate.artist or ''} {candidate.title or ''}")


def score_candidates(
    query: str,
    candidates: Iterable[SearchCandidate],
    mode: MatchingMode | str | None,
    *,
    similarity: Similarity = jaro_winkler_similarity,
) -> ScoredCandidate | None:
    """Return the highest scoring candidate that clears the mode threshold.

    Candidates are compared against the lower-cased ``query`` as
    ``"artist title"``. On equal scores the earlier candidate is kept.
    """
    threshold = threshold_for_mode(mode)
    needle = normalize_match_text(query)
    best: ScoredCandidate | None = None
    for candidate in candidates:
        score = similarity(needle, candidate_match_text(candidate))
        if score < threshold:
            continue
        if best is None or score > best.score:
            best = ScoredCandidate(candidate=candidate, score=score)
    return best


def pick_best_quality(candidates: Sequence[SearchCandidate]) -> SearchCandidate | None:
    """Prefer the highest sampling rate, then the highest bit depth."""
    best = None
    for candidate in candidates:
        if best is None:
            best = candidate
            continue
        if (candidate.sampling_rate, candidate.bit_depth) > (best.sampling_rate, best.bit_depth):
            best = candidate
    return best
