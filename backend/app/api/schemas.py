"""
Pydantic schemas for the prediction and assessment API.

Separated from the route handlers so they are reusable across
the codebase (background workers, tests).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from backend.app.core.config import settings
from backend.app.ml.pattern_analysis import ClimateReading, PatternSummary, Trend


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ReadingIn(BaseModel):
    """One climate station reading. Any measurement may be omitted."""
    recorded_at: datetime = Field(
        ..., description="Observation time (ISO-8601; naive values are UTC)",
        examples=["2024-06-01T06:00:00Z"],
    )
    temperature: Optional[float] = Field(
        default=None, ge=-100.0, le=70.0, allow_inf_nan=False, description="°C", examples=[27.4],
    )
    humidity: Optional[float] = Field(
        default=None, ge=0.0, le=100.0, allow_inf_nan=False, description="%", examples=[78.0],
    )
    pressure: Optional[float] = Field(
        default=None, ge=300.0, le=1200.0, allow_inf_nan=False, description="hPa", examples=[1008.2],
    )
    wind_speed: Optional[float] = Field(
        default=None, ge=0.0, le=150.0, allow_inf_nan=False, description="m/s", examples=[6.5],
    )
    wind_direction: Optional[float] = Field(
        default=None, ge=0.0, le=360.0, allow_inf_nan=False, description="degrees",
    )
    station_id: Optional[str] = None

    def to_reading(self) -> ClimateReading:
        return ClimateReading.from_row(self.model_dump())


def to_readings(readings: List[ReadingIn]) -> List[ClimateReading]:
    """Convert request readings to domain readings, oldest first."""
    return sorted((r.to_reading() for r in readings), key=lambda r: r.recorded_at)


class ReadingsRequest(BaseModel):
    """A window of readings to analyse."""
    readings: List[ReadingIn] = Field(
        default_factory=list,
        description="Climate readings; re-ordered by recorded_at before analysis",
    )


class PatternSummaryModel(BaseModel):
    """Pattern summary as produced by /prediction/patterns."""
    temperature_trend: Trend = Trend.STABLE
    pressure_trend: Trend = Trend.STABLE
    humidity_trend: Trend = Trend.STABLE
    wind_trend: Trend = Trend.STABLE
    anomalies: int = Field(default=0, ge=0)
    volatility: float = Field(default=0.0, ge=0.0, allow_inf_nan=False)

    def to_summary(self) -> PatternSummary:
        return PatternSummary(
            temperature_trend=self.temperature_trend,
            pressure_trend=self.pressure_trend,
            humidity_trend=self.humidity_trend,
            wind_trend=self.wind_trend,
            anomalies=self.anomalies,
            volatility=self.volatility,
        )


class RiskRequest(BaseModel):
    """
    Score one forecast day from either raw readings or a pattern summary.

    Exactly one of `readings` / `patterns` must be supplied.
    """
    readings: Optional[List[ReadingIn]] = None
    patterns: Optional[PatternSummaryModel] = None
    day_offset: int = Field(
        default=1,
        description="Forecast day (1 = tomorrow); values below 1 are rejected",
        examples=[1],
    )


class WeeklyForecastRequest(BaseModel):
    readings: List[ReadingIn] = Field(default_factory=list)
    days: int = Field(default=settings.FORECAST_DAYS, ge=1, le=30)
    start_date: Optional[date] = Field(
        default=None, description="Day 0 of the forecast; defaults to today",
    )


class AssessmentRequest(BaseModel):
    readings: List[ReadingIn] = Field(default_factory=list)
    signal_seed: Optional[int] = Field(
        default=None,
        description="Seed for the placeholder seismic / ocean / historical signals",
    )

    @field_validator("signal_seed")
    @classmethod
    def seed_in_range(cls, v: Optional[int]) -> Optional[int]:
        # numpy RandomState accepts seeds in [0, 2**32)
        if v is not None and not 0 <= v < 2 ** 32:
            raise ValueError("signal_seed must be between 0 and 2**32 - 1")
        return v


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class PatternAnalysisResponse(BaseModel):
    reading_count: int
    patterns: PatternSummaryModel


class HazardRiskOut(BaseModel):
    tsunami_risk: float = Field(..., ge=0.0, le=100.0)
    earthquake_risk: float = Field(..., ge=0.0, le=100.0)
    cyclone_risk: float = Field(..., ge=0.0, le=100.0)
    severe_weather_risk: float = Field(..., ge=0.0, le=100.0)
    overall_risk: float = Field(..., ge=0.0, le=100.0)
    confidence: float = Field(..., ge=0.0, le=100.0)


class RiskResponse(BaseModel):
    """Response for POST /api/v1/prediction/risk."""
    day_offset: int
    risk: HazardRiskOut
    risk_level: str
    primary_threat: str
    recommendations: List[str]
    patterns: PatternSummaryModel


class DailyForecastOut(BaseModel):
    day: int
    date: str
    risk: HazardRiskOut
    risk_level: str
    primary_threat: str
    triggers: List[str]
    recommendations: List[str]
    patterns: PatternSummaryModel


class WeeklyForecastResponse(BaseModel):
    reading_count: int
    patterns: PatternSummaryModel
    peak_day: Optional[int] = None
    days: List[DailyForecastOut]


class ReadingOut(BaseModel):
    recorded_at: datetime
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pressure: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    station_id: Optional[str] = None


class LatestReadingsResponse(BaseModel):
    count: int
    readings: List[ReadingOut]


class RiskFactorOut(BaseModel):
    name: str
    value: float = Field(..., ge=0.0, le=100.0)
    weight: float = Field(..., ge=0.0, le=1.0)
    weighted_value: float
    status: str
    description: str = ""
    last_update: str = ""


class OverallAssessmentOut(BaseModel):
    """Response for the overall (weighted-sum) assessment."""
    level: str
    score: int = Field(..., ge=0, le=100)
    confidence: int = Field(..., ge=30, le=95)
    primary_threats: List[str]
    timeframe: str
    last_assessment: str
    factors: List[RiskFactorOut]


class AssessmentHistoryResponse(BaseModel):
    count: int
    max_size: int
    assessments: List[OverallAssessmentOut]
