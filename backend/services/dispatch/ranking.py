"""
Ranking policy: order candidates for the offer queue.

Each preference filters (with progressive widening) and sorts; every sort ends
with the provider id compared as a string so equal candidates always come out
in the same order.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .discovery import Candidate
from .exceptions import InvalidRequestError, NoProvidersAvailableError

SORT_NEARBY = "nearby"
SORT_RATING = "rating"
SORT_CHEAPEST = "cheapest"
SORT_MIX = "mix"
SORT_PREFERENCES = (SORT_NEARBY, SORT_RATING, SORT_CHEAPEST, SORT_MIX)

RATING_THRESHOLDS = (4.0, 3.0)
DISTANCE_BANDS_KM = ((1, 5), (0, 8), (0, 12), (0, 15))

FALLBACK_NOTE = "Showing nearest available provider due to limited options."


@dataclass
class RankingResult:
    sort_preference: str
    candidates: List[Candidate] = field(default_factory=list)
    fallback_note: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.fallback_note is not None

    @property
    def provider_ids(self) -> List[int]:
        return [c.provider_id for c in self.candidates]


def _tiebreak(candidate: Candidate) -> str:
    return str(candidate.provider_id)


def _nearest_first(candidate: Candidate):
    return (candidate.distance_km, -candidate.rating, _tiebreak(candidate))


def _best_rated_first(candidate: Candidate):
    return (-candidate.rating, candidate.distance_km, _tiebreak(candidate))


def _cheapest_first(candidate: Candidate):
    return (candidate.price, -candidate.rating, candidate.distance_km, _tiebreak(candidate))


def _best_mix_first(candidate: Candidate):
    return (-candidate.mix_score, candidate.distance_km, _tiebreak(candidate))


def _rank_by_rating(pool: List[Candidate]) -> Tuple[List[Candidate], Optional[str]]:
    for threshold in RATING_THRESHOLDS:
        filtered = [c for c in pool if c.rating >= threshold]
        if filtered:
            return sorted(filtered, key=_best_rated_first), None
    return sorted(pool, key=_nearest_first), FALLBACK_NOTE


def _rank_by_distance(pool: List[Candidate]) -> Tuple[List[Candidate], Optional[str]]:
    for low, high in DISTANCE_BANDS_KM:
        band = [c for c in pool if low <= c.distance_km <= high]
        if band:
            return sorted(band, key=_nearest_first), None
    return sorted(pool, key=_nearest_first), FALLBACK_NOTE


def _rank_by_price(pool: List[Candidate]) -> Tuple[List[Candidate], Optional[str]]:
    return sorted(pool, key=_cheapest_first), None


def _rank_by_mix(pool: List[Candidate]) -> Tuple[List[Candidate], Optional[str]]:
    return sorted(pool, key=_best_mix_first), None


_RANKERS: Dict[str, Callable[[List[Candidate]], Tuple[List[Candidate], Optional[str]]]] = {
    SORT_RATING: _rank_by_rating,
    SORT_NEARBY: _rank_by_distance,
    SORT_CHEAPEST: _rank_by_price,
    SORT_MIX: _rank_by_mix,
}


def rank_candidates(candidates: Iterable[Candidate], sort_preference: str) -> RankingResult:
    """
    Order candidates for one preference mode.

    Args:
        candidates: Output of discover_candidates
        sort_preference: nearby | rating | cheapest | mix

    Returns:
        RankingResult with head = best candidate; fallback_note is set when the
        preferred band was empty and the full set was used instead

    Raises:
        InvalidRequestError: Unknown sort preference
        NoProvidersAvailableError: Empty candidate set
    """
    ranker = _RANKERS.get(sort_preference)
    if ranker is None:
        raise InvalidRequestError(f"Unknown sort preference: {sort_preference}")

    pool = list(candidates)
    if not pool:
        raise NoProvidersAvailableError()

    ordered, note = ranker(pool)
    return RankingResult(sort_preference=sort_preference, candidates=ordered, fallback_note=note)
