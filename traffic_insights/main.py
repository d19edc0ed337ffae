"""
Traffic Insights - Backend Server
FastAPI application for sensor ingestion, status lookups and planner insights

Run the server with:
    uvicorn traffic_insights.main:app --reload
"""
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
import logging

from .config import Settings, settings
from .exceptions import PredictorError, PredictorTimeoutError, StoreError
from .insights import generate_insights
from .models import (
    RawReading, TrafficReading, StoredReading, PlannerInsight,
    IngestResponse, SafetyStatus, TrafficStatus, SignalTimingStatus,
    ClearInsightsResponse
)
from .predictor import SignalTimingPredictor, build_predictor
from .scoring import classify_congestion, compute_safety_score
from .store import TrafficStore

# Setup logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"

router = APIRouter()


# ============================================================================
# DEPENDENCIES (handles live on app.state, set up by create_app)
# ============================================================================

def get_store(request: Request) -> TrafficStore:
    return request.app.state.store


def get_predictor(request: Request) -> SignalTimingPredictor:
    return request.app.state.predictor


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _internal_error() -> HTTPException:
    # Store details stay in the server log
    return HTTPException(status_code=500, detail="Internal server error")


# ============================================================================
# SERVICE
# ============================================================================

@router.get("/")
async def root(app_settings: Settings = Depends(get_settings)):
    """Service banner"""
    return {
        "service": app_settings.PROJECT_NAME,
        "status": "operational",
        "version": app_settings.VERSION
    }


@router.get("/health")
async def health_check(
    store: TrafficStore = Depends(get_store),
    app_settings: Settings = Depends(get_settings)
):
    """Service and store status"""
    store_ok = await run_in_threadpool(store.ping)
    return {
        "status": "healthy" if store_ok else "degraded",
        "version": app_settings.VERSION,
        "store": "connected" if store_ok else "unavailable",
        "predictor": app_settings.PREDICTOR_MODE
    }


# ============================================================================
# INGESTION
# ============================================================================

@router.post("/traffic-data", response_model=IngestResponse, status_code=201)
async def ingest_traffic_data(
    reading: RawReading,
    store: TrafficStore = Depends(get_store),
    predictor: SignalTimingPredictor = Depends(get_predictor)
):
    """
    Ingest one sensor reading

    Pipeline:
    1. Classify congestion and score safety
    2. Ask the predictor for a signal timing
    3. Persist the enriched reading in a single write

    Nothing is stored when the predictor fails.
    """
    try:
        logger.info(
            f"Reading received - {reading.location}: "
            f"vehicles={reading.vehicleCount}, accidents={reading.accidentReports}"
        )

        congestion = classify_congestion(reading.vehicleCount)
        safety_score = compute_safety_score(reading.vehicleCount, reading.accidentReports)
        timing = await predictor.predict(reading.vehicleCount)

        enriched = TrafficReading(
            **reading.model_dump(),
            timestamp=datetime.now(timezone.utc),
            signalTiming=timing.seconds,
            signalPlan=timing.plan,
            congestionLevel=congestion,
            safetyScore=safety_score
        )
        stored = await run_in_threadpool(store.add_reading, enriched)

        logger.info(
            f"Stored reading {stored.id} for {stored.location}: "
            f"congestion={stored.congestionLevel.value}, "
            f"safety={stored.safetyScore:.1f}, timing={stored.signalTiming:.1f}s"
        )

        return IngestResponse(
            location=stored.location,
            timestamp=stored.timestamp,
            signalTiming=stored.signalTiming,
            signalPlan=stored.signalPlan,
            congestionLevel=stored.congestionLevel,
            safetyScore=stored.safetyScore
        )

    except HTTPException:
        raise

    except PredictorTimeoutError as e:
        logger.error(f"Predictor timed out for {reading.location}: {e}")
        raise HTTPException(status_code=504, detail="Signal timing predictor timed out")

    except PredictorError as e:
        logger.error(f"Predictor failed for {reading.location}: {e} stderr={e.stderr!r}")
        raise HTTPException(status_code=502, detail="Signal timing predictor failed")

    except StoreError as e:
        logger.error(f"Error storing reading for {reading.location}: {e}", exc_info=True)
        raise _internal_error()

    except Exception as e:
        logger.error(f"Unexpected error ingesting reading for {reading.location}: {e}", exc_info=True)
        raise _internal_error()


# ============================================================================
# LOOKUPS
# ============================================================================

async def _latest_or_404(store: TrafficStore, location: str) -> StoredReading:
    try:
        reading = await run_in_threadpool(store.latest_reading, location)
    except StoreError as e:
        logger.error(f"Error looking up {location}: {e}", exc_info=True)
        raise _internal_error()
    except Exception as e:
        logger.error(f"Unexpected error looking up {location}: {e}", exc_info=True)
        raise _internal_error()

    if reading is None:
        raise HTTPException(
            status_code=404,
            detail=f"No traffic data found for location '{location}'"
        )
    return reading


@router.get("/traffic-safety/{location}", response_model=SafetyStatus)
async def get_traffic_safety(location: str, store: TrafficStore = Depends(get_store)):
    """Safety score of the most recent reading for a location"""
    reading = await _latest_or_404(store, location)
    return SafetyStatus(
        location=reading.location,
        timestamp=reading.timestamp,
        safetyScore=reading.safetyScore,
        accidentReports=reading.accidentReports
    )


@router.get("/traffic-status/{location}", response_model=TrafficStatus)
async def get_traffic_status(location: str, store: TrafficStore = Depends(get_store)):
    """Congestion of the most recent reading for a location"""
    reading = await _latest_or_404(store, location)
    return TrafficStatus(
        location=reading.location,
        timestamp=reading.timestamp,
        vehicleCount=reading.vehicleCount,
        congestionLevel=reading.congestionLevel
    )


@router.get("/signal-timings/{location}", response_model=SignalTimingStatus)
async def get_signal_timing(location: str, store: TrafficStore = Depends(get_store)):
    """Signal timing of the most recent reading for a location"""
    reading = await _latest_or_404(store, location)
    return SignalTimingStatus(
        location=reading.location,
        timestamp=reading.timestamp,
        signalTiming=reading.signalTiming,
        signalPlan=reading.signalPlan
    )


@router.get("/live-traffic", response_model=List[StoredReading])
async def get_live_traffic(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    store: TrafficStore = Depends(get_store),
    app_settings: Settings = Depends(get_settings)
):
    """Most recent readings across all locations, newest first"""
    try:
        return await run_in_threadpool(
            store.recent_readings,
            limit or app_settings.LIVE_TRAFFIC_LIMIT
        )
    except StoreError as e:
        logger.error(f"Error fetching live traffic: {e}", exc_info=True)
        raise _internal_error()
    except Exception as e:
        logger.error(f"Unexpected error fetching live traffic: {e}", exc_info=True)
        raise _internal_error()


# ============================================================================
# INSIGHTS
# ============================================================================

async def _recompute_insights(store: TrafficStore, app_settings: Settings) -> List[PlannerInsight]:
    """Aggregate every stored reading and upsert one insight per location"""
    readings = await run_in_threadpool(store.all_readings)
    insights = generate_insights(readings, app_settings.HIGH_ACCIDENT_THRESHOLD)
    await run_in_threadpool(store.upsert_insights, insights)
    logger.info(f"Computed insights for {len(insights)} locations from {len(readings)} readings")
    return await run_in_threadpool(store.list_insights)


@router.get("/planner-insights", response_model=List[PlannerInsight])
@router.get("/insights", response_model=List[PlannerInsight])
async def get_insights(
    store: TrafficStore = Depends(get_store),
    app_settings: Settings = Depends(get_settings)
):
    """
    Stored planner insights

    Computed and stored on first access when none exist. Not refreshed
    afterwards; use POST /insights/refresh for that.
    """
    try:
        insights = await run_in_threadpool(store.list_insights)
        if not insights:
            insights = await _recompute_insights(store, app_settings)
        return insights
    except StoreError as e:
        logger.error(f"Error fetching insights: {e}", exc_info=True)
        raise _internal_error()
    except Exception as e:
        logger.error(f"Unexpected error fetching insights: {e}", exc_info=True)
        raise _internal_error()


@router.post("/insights/refresh", response_model=List[PlannerInsight])
async def refresh_insights(
    store: TrafficStore = Depends(get_store),
    app_settings: Settings = Depends(get_settings)
):
    """Recompute insights from the full reading history"""
    try:
        return await _recompute_insights(store, app_settings)
    except StoreError as e:
        logger.error(f"Error refreshing insights: {e}", exc_info=True)
        raise _internal_error()
    except Exception as e:
        logger.error(f"Unexpected error refreshing insights: {e}", exc_info=True)
        raise _internal_error()


@router.delete("/insights", response_model=ClearInsightsResponse)
async def clear_insights(store: TrafficStore = Depends(get_store)):
    """Drop stored insights; the next read recomputes them"""
    try:
        deleted = await run_in_threadpool(store.clear_insights)
        logger.info(f"Cleared {deleted} insights")
        return ClearInsightsResponse(deleted=deleted)
    except StoreError as e:
        logger.error(f"Error clearing insights: {e}", exc_info=True)
        raise _internal_error()
    except Exception as e:
        logger.error(f"Unexpected error clearing insights: {e}", exc_info=True)
        raise _internal_error()


# ============================================================================
# DASHBOARD
# ============================================================================

@router.get("/dashboard", include_in_schema=False)
async def dashboard():
    return FileResponse(STATIC_DIR / "dashboard.html", media_type="text/html")


# ============================================================================
# APPLICATION
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store at startup, close it at shutdown"""
    logger.info(f"Starting {app.state.settings.PROJECT_NAME}...")
    app.state.store.open()

    yield

    logger.info("Shutting down...")
    app.state.store.close()


def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[TrafficStore] = None,
    predictor: Optional[SignalTimingPredictor] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        app_settings: Configuration, defaults to the environment-loaded settings
        store: Store handle, defaults to one built from DATABASE_URL
        predictor: Signal timing predictor, defaults to PREDICTOR_MODE
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        description="Traffic sensor ingestion, safety scoring and planner insights",
        version=app_settings.VERSION,
        lifespan=lifespan
    )

    app.state.settings = app_settings
    app.state.store = store or TrafficStore(app_settings.DATABASE_URL)
    app.state.predictor = predictor or build_predictor(app_settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting Traffic Insights Backend...")
    logger.info("Backend API docs: http://localhost:8000/docs")

    uvicorn.run(
        "traffic_insights.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
