"""
Unit tests for congestion classification and safety scoring.
"""
import pytest

from traffic_insights.models import CongestionLevel
from traffic_insights.scoring import classify_congestion, compute_safety_score


class TestClassifyCongestion:
    """Tier boundaries are inclusive on the lower bound."""

    @pytest.mark.parametrize("count", [0, 1, 10, 19])
    def test_low(self, count):
        assert classify_congestion(count) == CongestionLevel.LOW

    @pytest.mark.parametrize("count", [20, 21, 35, 49])
    def test_medium(self, count):
        assert classify_congestion(count) == CongestionLevel.MEDIUM

    @pytest.mark.parametrize("count", [50, 51, 200, 10_000])
    def test_high(self, count):
        assert classify_congestion(count) == CongestionLevel.HIGH

    def test_boundaries(self):
        assert classify_congestion(20) == CongestionLevel.MEDIUM
        assert classify_congestion(50) == CongestionLevel.HIGH

    def test_accepts_mean_counts(self):
        assert classify_congestion(19.5) == CongestionLevel.LOW
        assert classify_congestion(49.99) == CongestionLevel.MEDIUM

    def test_serializes_to_label(self):
        assert classify_congestion(60).value == "High"


class TestComputeSafetyScore:
    """Linear score, clamped to [0, 100]."""

    @pytest.mark.parametrize("count", [0, 10, 500, 100_000])
    def test_no_accidents_is_perfect(self, count):
        assert compute_safety_score(count, 0) == 100

    def test_default_accidents_is_zero(self):
        assert compute_safety_score(300) == 100

    def test_formula(self):
        assert compute_safety_score(100, 1) == 85
        assert compute_safety_score(30, 6) == pytest.approx(67.0)

    def test_never_negative(self):
        assert compute_safety_score(2000, 50) == 0
        for count in range(0, 1500, 97):
            for accidents in range(0, 30, 3):
                assert compute_safety_score(count, accidents) >= 0

    def test_never_above_hundred(self):
        assert compute_safety_score(0, 1) == 95
