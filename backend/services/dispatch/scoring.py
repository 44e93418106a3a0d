"""Pure scoring helpers used by the ranking policy."""

from common.utils import distance_km

RATING_WEIGHT = 0.6
PROXIMITY_WEIGHT = 0.4
PROXIMITY_MAX_SCORE = 5.0
PROXIMITY_DECAY_KM = 3.0  # one point lost every 3 km, zero at 15 km


def proximity_score(distance: float) -> float:
    """Linear 5..0 score for 0..15 km."""
    return max(0.0, PROXIMITY_MAX_SCORE - distance / PROXIMITY_DECAY_KM)


def mix_score(rating: float, distance: float) -> float:
    """Blend of rating and closeness; higher is better."""
    return rating * RATING_WEIGHT + proximity_score(distance) * PROXIMITY_WEIGHT


__all__ = ["distance_km", "proximity_score", "mix_score"]
