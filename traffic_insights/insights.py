"""
Planner insight aggregation
Groups readings by location and summarizes each group
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import numpy as np

from .models import PlannerInsight, RawReading
from .scoring import classify_congestion


# Accident reports above this mark a location as a high accident zone
HIGH_ACCIDENT_THRESHOLD = 5

HIGH_ACCIDENT_SUGGESTION = "Install additional traffic signals and speed cameras."
DEFAULT_SUGGESTION = "Optimize signal timings for smoother flow."


def generate_insights(
    readings: Iterable[RawReading],
    high_accident_threshold: int = HIGH_ACCIDENT_THRESHOLD,
    generated_at: Optional[datetime] = None
) -> List[PlannerInsight]:
    """
    One insight per distinct location, in order of first appearance

    - averageCongestion: tier of the mean vehicle count
    - highAccidentZones: [location] if any reading exceeds the accident threshold
    - suggestedImprovements: fixed text picked by the accident flag

    Pure: the caller decides whether to persist the result.
    """
    if generated_at is None:
        generated_at = datetime.now(timezone.utc)

    # dict preserves insertion order, so groups keep first-appearance order
    groups: Dict[str, List[RawReading]] = defaultdict(list)
    for reading in readings:
        groups[reading.location].append(reading)

    insights = []
    for location, group in groups.items():
        mean_count = float(np.mean([r.vehicleCount for r in group]))
        high_accident = any(r.accidentReports > high_accident_threshold for r in group)
        zones = [location] if high_accident else []

        insights.append(PlannerInsight(
            location=location,
            averageCongestion=classify_congestion(mean_count),
            highAccidentZones=zones,
            suggestedImprovements=HIGH_ACCIDENT_SUGGESTION if zones else DEFAULT_SUGGESTION,
            readingCount=len(group),
            generatedAt=generated_at
        ))

    return insights
