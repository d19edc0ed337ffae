"""
Data contracts for the Traffic Insights service
Field names are camelCase to match the JSON wire format
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class CongestionLevel(str, Enum):
    """Coarse congestion tier derived from vehicle count"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# ============================================================================
# PREDICTOR OUTPUT (vehicle count → signal timing)
# ============================================================================

class SignalPlan(BaseModel):
    """Structured timing plan, seconds per phase"""
    green: float = Field(ge=0)
    yellow: float = Field(ge=0, default=0)
    red: float = Field(ge=0, default=0)


class SignalTimingResult(BaseModel):
    """
    PREDICTOR OUTPUT CONTRACT
    Every predictor implementation returns this, whatever its transport
    """
    seconds: float = Field(ge=0, description="Recommended green time in seconds")
    plan: Optional[SignalPlan] = None


# ============================================================================
# READINGS (sensor → store)
# ============================================================================

# Largest count a 32-bit INTEGER column holds on every supported database
MAX_SENSOR_COUNT = 2**31 - 1


class RawReading(BaseModel):
    """One submitted traffic observation, as sent by a sensor"""
    location: str = Field(min_length=1, description="Location identifier")
    vehicleCount: int = Field(ge=0, le=MAX_SENSOR_COUNT)
    accidentReports: int = Field(ge=0, le=MAX_SENSOR_COUNT, default=0)


class TrafficReading(RawReading):
    """
    Reading enriched at ingestion time
    Derived fields are computed once from the raw fields of the same record
    """
    timestamp: datetime
    signalTiming: float
    signalPlan: Optional[SignalPlan] = None
    congestionLevel: CongestionLevel
    safetyScore: float = Field(ge=0, le=100)


class StoredReading(TrafficReading):
    """Reading as persisted, with its auto-assigned identifier"""
    id: int


# ============================================================================
# INSIGHTS (readings → planner summary)
# ============================================================================

class PlannerInsight(BaseModel):
    """Per-location summary computed from the reading history"""
    location: str
    averageCongestion: CongestionLevel
    highAccidentZones: List[str] = Field(default_factory=list)
    suggestedImprovements: str
    readingCount: int = 0
    generatedAt: Optional[datetime] = None


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class IngestResponse(BaseModel):
    """Derived fields returned after a reading is stored"""
    location: str
    timestamp: datetime
    signalTiming: float
    signalPlan: Optional[SignalPlan] = None
    congestionLevel: CongestionLevel
    safetyScore: float


class SafetyStatus(BaseModel):
    location: str
    timestamp: datetime
    safetyScore: float
    accidentReports: int


class TrafficStatus(BaseModel):
    location: str
    timestamp: datetime
    vehicleCount: int
    congestionLevel: CongestionLevel


class SignalTimingStatus(BaseModel):
    location: str
    timestamp: datetime
    signalTiming: float
    signalPlan: Optional[SignalPlan] = None


class ClearInsightsResponse(BaseModel):
    deleted: int
