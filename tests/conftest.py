"""
Shared fixtures: an in-memory store, stub predictors and a test client.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from traffic_insights.config import Settings
from traffic_insights.exceptions import PredictorError
from traffic_insights.main import create_app
from traffic_insights.models import SignalPlan, SignalTimingResult
from traffic_insights.predictor import LocalPredictor
from traffic_insights.store import TrafficStore


class StubPredictor:
    """Predictor that always answers the same timing and records its calls."""

    def __init__(self, seconds: float = 30.0, plan: SignalPlan = None):
        self.result = SignalTimingResult(seconds=seconds, plan=plan)
        self.calls = []

    async def predict(self, vehicle_count: int) -> SignalTimingResult:
        self.calls.append(vehicle_count)
        return self.result


class FailingPredictor:
    """Predictor that fails like a crashed model process."""

    def __init__(self, error: PredictorError = None):
        self.error = error or PredictorError("Predictor failed with exit status 1", stderr="boom")

    async def predict(self, vehicle_count: int) -> SignalTimingResult:
        raise self.error


def make_store() -> TrafficStore:
    # One shared connection, so every thread sees the same in-memory database
    return TrafficStore("sqlite://", poolclass=StaticPool)


@pytest.fixture
def test_settings():
    return Settings(DATABASE_URL="sqlite://", PREDICTOR_MODE="local", LIVE_TRAFFIC_LIMIT=3)


@pytest.fixture
def store():
    store = make_store()
    store.open()
    yield store
    store.close()


@pytest.fixture
def client(test_settings):
    app = create_app(test_settings, store=make_store(), predictor=LocalPredictor())
    with TestClient(app) as client:
        yield client


@pytest.fixture
def stub_predictor():
    return StubPredictor(seconds=42.0, plan=SignalPlan(green=42.0, yellow=4.0, red=44.0))


@pytest.fixture
def stub_client(test_settings, stub_predictor):
    app = create_app(test_settings, store=make_store(), predictor=stub_predictor)
    with TestClient(app) as client:
        yield client
