"""
Unit tests for planner insight aggregation.
"""
from datetime import datetime, timezone

from traffic_insights.insights import (
    DEFAULT_SUGGESTION,
    HIGH_ACCIDENT_SUGGESTION,
    generate_insights,
)
from traffic_insights.models import CongestionLevel, RawReading


def reading(location, vehicles, accidents=0):
    return RawReading(location=location, vehicleCount=vehicles, accidentReports=accidents)


class TestGenerateInsights:

    def test_single_location_with_accident_hotspot(self):
        """Mean of 10 and 30 is Medium; six accidents flags the zone."""
        insights = generate_insights([reading("A", 10, 0), reading("A", 30, 6)])

        assert len(insights) == 1
        insight = insights[0]
        assert insight.location == "A"
        assert insight.averageCongestion == CongestionLevel.MEDIUM
        assert insight.highAccidentZones == ["A"]
        assert insight.suggestedImprovements == HIGH_ACCIDENT_SUGGESTION
        assert "additional" in insight.suggestedImprovements.lower()
        assert insight.readingCount == 2

    def test_one_insight_per_location(self):
        readings = [
            reading("Main St", 5),
            reading("Elm St", 80, 2),
            reading("Main St", 15),
            reading("Oak Ave", 25),
        ]
        insights = generate_insights(readings)

        assert [i.location for i in insights] == ["Main St", "Elm St", "Oak Ave"]
        by_location = {i.location: i for i in insights}
        assert by_location["Main St"].averageCongestion == CongestionLevel.LOW
        assert by_location["Elm St"].averageCongestion == CongestionLevel.HIGH
        assert by_location["Oak Ave"].averageCongestion == CongestionLevel.MEDIUM

    def test_threshold_is_exclusive(self):
        """Exactly five accidents is not a high accident zone."""
        insight = generate_insights([reading("A", 10, 5)])[0]

        assert insight.highAccidentZones == []
        assert insight.suggestedImprovements == DEFAULT_SUGGESTION

    def test_custom_threshold(self):
        insight = generate_insights([reading("A", 10, 3)], high_accident_threshold=2)[0]
        assert insight.highAccidentZones == ["A"]

    def test_empty_input(self):
        assert generate_insights([]) == []

    def test_generated_at(self):
        when = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
        insight = generate_insights([reading("A", 1)], generated_at=when)[0]
        assert insight.generatedAt == when

    def test_input_is_not_modified(self):
        readings = [reading("A", 10, 7)]
        generate_insights(readings)
        assert readings[0].accidentReports == 7
