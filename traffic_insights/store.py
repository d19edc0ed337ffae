"""
Persistence for readings and insights

Provides:
- SQLAlchemy tables for the `readings` and `insights` collections
- TrafficStore, an explicitly opened/closed store handle
- Idempotent insight upsert keyed by location
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, create_engine, delete, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .exceptions import StoreError
from .models import CongestionLevel, PlannerInsight, SignalPlan, StoredReading, TrafficReading

logger = logging.getLogger(__name__)

Base = declarative_base()


class ReadingDB(Base):
    __tablename__ = "readings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    location = Column(String, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    vehicle_count = Column(Integer, nullable=False)
    accident_reports = Column(Integer, nullable=False, default=0)
    signal_timing = Column(Float, nullable=False)
    signal_plan = Column(JSON, nullable=True)
    congestion_level = Column(String, nullable=False)
    safety_score = Column(Float, nullable=False)


class InsightDB(Base):
    __tablename__ = "insights"

    # One insight per location
    location = Column(String, primary_key=True)
    average_congestion = Column(String, nullable=False)
    high_accident_zones = Column(JSON, nullable=False, default=list)
    suggested_improvements = Column(String, nullable=False)
    reading_count = Column(Integer, nullable=False, default=0)
    generated_at = Column(DateTime(timezone=True), nullable=True)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _reading_from_row(row: ReadingDB) -> StoredReading:
    return StoredReading(
        id=row.id,
        location=row.location,
        timestamp=_as_utc(row.timestamp),
        vehicleCount=row.vehicle_count,
        accidentReports=row.accident_reports,
        signalTiming=row.signal_timing,
        signalPlan=SignalPlan.model_validate(row.signal_plan) if row.signal_plan else None,
        congestionLevel=CongestionLevel(row.congestion_level),
        safetyScore=row.safety_score,
    )


def _insight_from_row(row: InsightDB) -> PlannerInsight:
    return PlannerInsight(
        location=row.location,
        averageCongestion=CongestionLevel(row.average_congestion),
        highAccidentZones=list(row.high_accident_zones or []),
        suggestedImprovements=row.suggested_improvements,
        readingCount=row.reading_count,
        generatedAt=_as_utc(row.generated_at),
    )


def _insight_to_row(insight: PlannerInsight) -> InsightDB:
    return InsightDB(
        location=insight.location,
        average_congestion=insight.averageCongestion.value,
        high_accident_zones=list(insight.highAccidentZones),
        suggested_improvements=insight.suggestedImprovements,
        reading_count=insight.readingCount,
        generated_at=insight.generatedAt,
    )


class TrafficStore:
    """
    Store handle for readings and insights.

    Call open() once at startup and close() at shutdown. Every method runs
    in its own short transaction; SQLAlchemy failures surface as StoreError.
    """

    def __init__(self, database_url: str, **engine_kwargs):
        self.database_url = database_url
        self._engine_kwargs = engine_kwargs
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> None:
        """Create the engine and the tables if they do not exist."""
        if self._engine is not None:
            return

        kwargs = dict(self._engine_kwargs)
        if self.database_url.startswith("sqlite"):
            # Store calls run in the threadpool
            kwargs.setdefault("connect_args", {"check_same_thread": False})

        try:
            engine = create_engine(self.database_url, pool_pre_ping=True, future=True, **kwargs)
            Base.metadata.create_all(bind=engine)
        except SQLAlchemyError as e:
            logger.error(f"Failed to open store at {self.database_url}: {e}")
            raise StoreError(f"Could not open store: {e}") from e

        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        logger.info(f"Store opened ({engine.url.get_backend_name()})")

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Store closed")

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._session_factory is None:
            raise StoreError("Store is not open")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        """True if the database answers a trivial query."""
        if self._engine is None:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Store health check failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Readings (append-only)
    # ------------------------------------------------------------------

    def add_reading(self, reading: TrafficReading) -> StoredReading:
        row = ReadingDB(
            location=reading.location,
            timestamp=reading.timestamp,
            vehicle_count=reading.vehicleCount,
            accident_reports=reading.accidentReports,
            signal_timing=reading.signalTiming,
            signal_plan=reading.signalPlan.model_dump() if reading.signalPlan else None,
            congestion_level=reading.congestionLevel.value,
            safety_score=reading.safetyScore,
        )
        with self._session() as session:
            session.add(row)
            session.flush()
            return _reading_from_row(row)

    def latest_reading(self, location: str) -> Optional[StoredReading]:
        stmt = (
            select(ReadingDB)
            .where(ReadingDB.location == location)
            .order_by(ReadingDB.timestamp.desc(), ReadingDB.id.desc())
            .limit(1)
        )
        with self._session() as session:
            row = session.execute(stmt).scalar_one_or_none()
            return _reading_from_row(row) if row is not None else None

    def recent_readings(self, limit: int) -> List[StoredReading]:
        """Newest first, across all locations."""
        stmt = (
            select(ReadingDB)
            .order_by(ReadingDB.timestamp.desc(), ReadingDB.id.desc())
            .limit(limit)
        )
        with self._session() as session:
            return [_reading_from_row(row) for row in session.execute(stmt).scalars()]

    def all_readings(self) -> List[StoredReading]:
        """Oldest first."""
        stmt = select(ReadingDB).order_by(ReadingDB.timestamp, ReadingDB.id)
        with self._session() as session:
            return [_reading_from_row(row) for row in session.execute(stmt).scalars()]

    # ------------------------------------------------------------------
    # Insights (recomputable cache keyed by location)
    # ------------------------------------------------------------------

    def list_insights(self) -> List[PlannerInsight]:
        stmt = select(InsightDB).order_by(InsightDB.location)
        with self._session() as session:
            return [_insight_from_row(row) for row in session.execute(stmt).scalars()]

    def upsert_insights(self, insights: Sequence[PlannerInsight]) -> List[PlannerInsight]:
        """
        Insert or replace one insight per location.

        Two concurrent first writers can both try to INSERT the same location;
        the loser gets an IntegrityError and merges again, now as an UPDATE.
        """
        for attempt in range(2):
            try:
                with self._session() as session:
                    for insight in insights:
                        session.merge(_insight_to_row(insight))
                return list(insights)
            except StoreError as e:
                if attempt == 0 and isinstance(e.__cause__, IntegrityError):
                    logger.warning("Concurrent insight write detected, retrying upsert")
                    continue
                raise

    def clear_insights(self) -> int:
        with self._session() as session:
            result = session.execute(delete(InsightDB))
            return result.rowcount or 0
