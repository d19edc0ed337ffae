"""
Congestion and safety scoring
Pure functions applied to every reading at ingestion time
"""
from .models import CongestionLevel


# Congestion tiers (lower bound inclusive)
MEDIUM_CONGESTION_MIN = 20
HIGH_CONGESTION_MIN = 50

# Safety score weights
MAX_SAFETY_SCORE = 100.0
VEHICLE_PENALTY_DIVISOR = 10.0
ACCIDENT_PENALTY = 5.0


def classify_congestion(vehicle_count: float) -> CongestionLevel:
    """
    Map a vehicle count to a congestion tier

    count < 20        → Low
    20 <= count < 50  → Medium
    count >= 50       → High

    Also accepts a mean count (float), as used by the insight aggregator.
    """
    if vehicle_count < MEDIUM_CONGESTION_MIN:
        return CongestionLevel.LOW
    if vehicle_count < HIGH_CONGESTION_MIN:
        return CongestionLevel.MEDIUM
    return CongestionLevel.HIGH


def compute_safety_score(vehicle_count: int, accident_reports: int = 0) -> float:
    """
    Bounded safety score in [0, 100]

    No accidents → exactly 100, regardless of volume.
    Otherwise: 100 - vehicles/10 - accidents*5, clamped at 0.
    """
    if accident_reports == 0:
        return MAX_SAFETY_SCORE

    score = (
        MAX_SAFETY_SCORE
        - vehicle_count / VEHICLE_PENALTY_DIVISOR
        - accident_reports * ACCIDENT_PENALTY
    )
    return max(0.0, score)
