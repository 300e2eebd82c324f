"""
hazard_risk.py — Per-hazard risk scoring and the weekly forecast.

Consumes a PatternSummary and a forecast day offset and produces:

    • tsunami / earthquake / cyclone / severe-weather risk   (0–100)
    • overall_risk = max of the four                          (0–100)
    • confidence                                              (30–95)
    • a fixed three-item recommendation list

═══════════════════════════════════════════════════════════════════════════
HAZARD FORMULAS
═══════════════════════════════════════════════════════════════════════════

Every hazard sums additive terms, multiplies by a linear decay and clamps:

    risk = clamp( Σ terms × (1 − (day − 1) × slope), 0, 100 )

    Hazard          Terms                                         slope
    ─────────────   ───────────────────────────────────────────   ─────
    Tsunami         +30 P falling, +20 T rising,                  0.10
                    +20·vol, +min(5·anom, 25)
    Earthquake      +25 P ≠ stable, +15 T ≠ stable,               0.08
                    +min(8·anom, 40), +15·vol
    Cyclone         +35 T rising, +30 P falling,                  0.12
                    +20 H rising, +15 W ≠ stable
    Severe weather  +20 T ≠ stable, +25 P ≠ stable,               0.15
                    +15 H ≠ stable, +20 W ≠ stable, +25·vol

The multiplier goes negative once (day − 1) × slope > 1 (e.g. day 11 for
the tsunami slope); the final clamp pins those days to 0.

═══════════════════════════════════════════════════════════════════════════
AGGREGATION
═══════════════════════════════════════════════════════════════════════════

The per-day forecast uses max-of-four.  The dashboard-wide assessment
uses a separate weighted sum over six risk factors (risk_assessment.py);
the two policies are not interchangeable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from backend.app.ml.pattern_analysis import (
    ClimateReading,
    PatternSummary,
    Trend,
    analyze_patterns,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Constants: Tunable Parameters
# ═══════════════════════════════════════════════════════════════════════════

RISK_FLOOR = 0.0
RISK_CEILING = 100.0

# Linear decay slope per forecast day
TSUNAMI_DECAY = 0.10
EARTHQUAKE_DECAY = 0.08
CYCLONE_DECAY = 0.12
SEVERE_WEATHER_DECAY = 0.15

# Confidence estimator
CONFIDENCE_BASE = 50.0
CONFIDENCE_PER_ANOMALY = 2.0
CONFIDENCE_ANOMALY_CAP = 20.0
CONFIDENCE_PER_TREND = 5.0
CONFIDENCE_VOLATILITY_BONUS = 15.0
CONFIDENCE_VOLATILITY_BAND = (0.1, 0.5)  # exclusive bounds
CONFIDENCE_MIN = 30.0
CONFIDENCE_MAX = 95.0

# Weekly forecast
DEFAULT_FORECAST_DAYS = 7

# Forecast day level thresholds (overall risk > threshold)
FORECAST_LEVEL_CRITICAL = 80.0
FORECAST_LEVEL_HIGH = 60.0
FORECAST_LEVEL_MODERATE = 30.0


class HazardType(str, Enum):
    """Scored hazard categories, in tie-break order."""
    TSUNAMI = "tsunami"
    EARTHQUAKE = "earthquake"
    CYCLONE = "cyclone"
    SEVERE_WEATHER = "severe_weather"


class ForecastRiskLevel(str, Enum):
    """Risk band shown for a single forecast day."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


# Recommendation bands: (exclusive lower bound on overall risk, actions)
RECOMMENDATION_BANDS = [
    (70.0, [
        "Immediate evacuation planning required",
        "Emergency services on high alert",
        "Public warning systems activated",
    ]),
    (50.0, [
        "Enhanced monitoring protocols",
        "Prepare emergency response teams",
        "Issue weather advisories",
    ]),
    (30.0, [
        "Continue surveillance",
        "Review emergency procedures",
        "Monitor weather updates closely",
    ]),
]
BASELINE_RECOMMENDATIONS = [
    "Maintain routine monitoring",
    "Standard precautionary measures",
    "Regular system maintenance",
]

# Precursor signals listed against the day's dominant hazard
HAZARD_TRIGGERS: Dict[HazardType, List[str]] = {
    HazardType.TSUNAMI: [
        "Seismic activity increase",
        "Ocean temperature anomaly",
        "Pressure gradient shift",
    ],
    HazardType.EARTHQUAKE: [
        "Micro-seismic patterns",
        "Tectonic stress buildup",
        "Ground deformation",
    ],
    HazardType.CYCLONE: [
        "Sea surface warming",
        "Wind shear reduction",
        "Atmospheric instability",
    ],
    HazardType.SEVERE_WEATHER: [
        "Pressure system convergence",
        "Temperature gradient",
        "Moisture accumulation",
    ],
}


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class HazardRisk:
    """Per-hazard scores for one forecast day, all in [0, 100]."""
    tsunami_risk: float
    earthquake_risk: float
    cyclone_risk: float
    severe_weather_risk: float
    overall_risk: float
    confidence: float

    @property
    def by_hazard(self) -> Dict[HazardType, float]:
        return {
            HazardType.TSUNAMI: self.tsunami_risk,
            HazardType.EARTHQUAKE: self.earthquake_risk,
            HazardType.CYCLONE: self.cyclone_risk,
            HazardType.SEVERE_WEATHER: self.severe_weather_risk,
        }

    @property
    def primary_threat(self) -> HazardType:
        """Hazard with the highest score; ties go to the earlier hazard."""
        scores = self.by_hazard
        return max(HazardType, key=lambda h: (scores[h], -list(HazardType).index(h)))

    def to_dict(self) -> Dict[str, float]:
        return {
            "tsunami_risk": round(self.tsunami_risk, 2),
            "earthquake_risk": round(self.earthquake_risk, 2),
            "cyclone_risk": round(self.cyclone_risk, 2),
            "severe_weather_risk": round(self.severe_weather_risk, 2),
            "overall_risk": round(self.overall_risk, 2),
            "confidence": round(self.confidence, 2),
        }


@dataclass
class DailyForecast:
    """One day of the weekly forecast."""
    day: int
    date: date
    risk: HazardRisk
    risk_level: ForecastRiskLevel
    primary_threat: HazardType
    triggers: List[str]
    recommendations: List[str]
    patterns: PatternSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day,
            "date": self.date.isoformat(),
            "risk": self.risk.to_dict(),
            "risk_level": self.risk_level.value,
            "primary_threat": self.primary_threat.value,
            "triggers": list(self.triggers),
            "recommendations": list(self.recommendations),
            "patterns": self.patterns.to_dict(),
        }


@dataclass
class WeeklyForecast:
    """Forecast days plus the pattern summary they were derived from."""
    patterns: PatternSummary
    reading_count: int
    days: List[DailyForecast] = field(default_factory=list)

    @property
    def peak_day(self) -> Optional[DailyForecast]:
        if not self.days:
            return None
        return max(self.days, key=lambda d: d.risk.overall_risk)

    def to_dict(self) -> Dict[str, Any]:
        peak = self.peak_day
        return {
            "reading_count": self.reading_count,
            "patterns": self.patterns.to_dict(),
            "peak_day": peak.day if peak else None,
            "days": [d.to_dict() for d in self.days],
        }


# ═══════════════════════════════════════════════════════════════════════════
# Decay & Clamping
# ═══════════════════════════════════════════════════════════════════════════

def clamp_risk(value: float) -> float:
    """Clamp a risk value to [0, 100]."""
    return max(RISK_FLOOR, min(RISK_CEILING, value))


def decay_factor(day_offset: int, slope: float) -> float:
    """
    Linear discount for forecast day `day_offset` (day 1 → 1.0).

    Not clamped: the multiplier is negative once (day − 1) × slope > 1,
    and the hazard functions clamp after applying it.
    """
    if day_offset < 1:
        raise ValueError(f"day_offset must be >= 1, got {day_offset}")
    return 1.0 - (day_offset - 1) * slope


# ═══════════════════════════════════════════════════════════════════════════
# Hazard Risk Functions
# ═══════════════════════════════════════════════════════════════════════════

def tsunami_risk(patterns: PatternSummary, day_offset: int = 1) -> float:
    """Pressure drop, warming, volatility and anomalies; 10 %/day decay."""
    risk = 0.0
    if patterns.pressure_trend is Trend.FALLING:
        risk += 30
    if patterns.temperature_trend is Trend.RISING:
        risk += 20
    risk += patterns.volatility * 20
    risk += min(patterns.anomalies * 5, 25)
    return clamp_risk(risk * decay_factor(day_offset, TSUNAMI_DECAY))


def earthquake_risk(patterns: PatternSummary, day_offset: int = 1) -> float:
    """Any pressure / temperature movement plus anomalies; 8 %/day decay."""
    risk = 0.0
    if patterns.pressure_trend is not Trend.STABLE:
        risk += 25
    if patterns.temperature_trend is not Trend.STABLE:
        risk += 15
    risk += min(patterns.anomalies * 8, 40)
    risk += patterns.volatility * 15
    return clamp_risk(risk * decay_factor(day_offset, EARTHQUAKE_DECAY))


def cyclone_risk(patterns: PatternSummary, day_offset: int = 1) -> float:
    """Warming, falling pressure, moistening and wind change; 12 %/day decay."""
    risk = 0.0
    if patterns.temperature_trend is Trend.RISING:
        risk += 35
    if patterns.pressure_trend is Trend.FALLING:
        risk += 30
    if patterns.humidity_trend is Trend.RISING:
        risk += 20
    if patterns.wind_trend is not Trend.STABLE:
        risk += 15
    return clamp_risk(risk * decay_factor(day_offset, CYCLONE_DECAY))


def severe_weather_risk(patterns: PatternSummary, day_offset: int = 1) -> float:
    """Instability in any variable plus volatility; 15 %/day decay."""
    risk = 0.0
    if patterns.temperature_trend is not Trend.STABLE:
        risk += 20
    if patterns.pressure_trend is not Trend.STABLE:
        risk += 25
    if patterns.humidity_trend is not Trend.STABLE:
        risk += 15
    if patterns.wind_trend is not Trend.STABLE:
        risk += 20
    risk += patterns.volatility * 25
    return clamp_risk(risk * decay_factor(day_offset, SEVERE_WEATHER_DECAY))


# ═══════════════════════════════════════════════════════════════════════════
# Confidence, Aggregation, Recommendations
# ═══════════════════════════════════════════════════════════════════════════

def calculate_confidence(patterns: PatternSummary) -> float:
    """
    Confidence in a pattern-based risk estimate, in [30, 95].

        50 + min(2·anomalies, 20) + 5·(non-stable trends)
           + 15 if 0.1 < volatility < 0.5
    """
    confidence = CONFIDENCE_BASE
    confidence += min(patterns.anomalies * CONFIDENCE_PER_ANOMALY, CONFIDENCE_ANOMALY_CAP)
    confidence += patterns.active_trend_count * CONFIDENCE_PER_TREND

    low, high = CONFIDENCE_VOLATILITY_BAND
    if low < patterns.volatility < high:
        confidence += CONFIDENCE_VOLATILITY_BONUS

    return max(CONFIDENCE_MIN, min(CONFIDENCE_MAX, confidence))


def calculate_risk(patterns: PatternSummary, day_offset: int = 1) -> HazardRisk:
    """Score all four hazards for one day; overall risk is their maximum."""
    tsunami = tsunami_risk(patterns, day_offset)
    earthquake = earthquake_risk(patterns, day_offset)
    cyclone = cyclone_risk(patterns, day_offset)
    severe = severe_weather_risk(patterns, day_offset)

    return HazardRisk(
        tsunami_risk=tsunami,
        earthquake_risk=earthquake,
        cyclone_risk=cyclone,
        severe_weather_risk=severe,
        overall_risk=max(tsunami, earthquake, cyclone, severe),
        confidence=calculate_confidence(patterns),
    )


def generate_recommendations(overall_risk: float) -> List[str]:
    """Fixed three-item action list for the overall-risk band."""
    for lower_bound, actions in RECOMMENDATION_BANDS:
        if overall_risk > lower_bound:
            return list(actions)
    return list(BASELINE_RECOMMENDATIONS)


def classify_forecast_level(overall_risk: float) -> ForecastRiskLevel:
    """Map a day's overall risk to its display band."""
    if overall_risk > FORECAST_LEVEL_CRITICAL:
        return ForecastRiskLevel.CRITICAL
    if overall_risk > FORECAST_LEVEL_HIGH:
        return ForecastRiskLevel.HIGH
    if overall_risk > FORECAST_LEVEL_MODERATE:
        return ForecastRiskLevel.MODERATE
    return ForecastRiskLevel.LOW


# ═══════════════════════════════════════════════════════════════════════════
# Weekly Forecast
# ═══════════════════════════════════════════════════════════════════════════

def forecast_day(
    patterns: PatternSummary,
    day_offset: int,
    start_date: Optional[date] = None,
) -> DailyForecast:
    """Build the forecast entry for a single day offset."""
    start_date = start_date or date.today()
    risk = calculate_risk(patterns, day_offset)
    threat = risk.primary_threat

    return DailyForecast(
        day=day_offset,
        date=start_date + timedelta(days=day_offset),
        risk=risk,
        risk_level=classify_forecast_level(risk.overall_risk),
        primary_threat=threat,
        triggers=list(HAZARD_TRIGGERS[threat]),
        recommendations=generate_recommendations(risk.overall_risk),
        patterns=patterns,
    )


def generate_weekly_forecast(
    readings: Sequence[ClimateReading],
    days: int = DEFAULT_FORECAST_DAYS,
    start_date: Optional[date] = None,
) -> WeeklyForecast:
    """
    Analyse the reading window once and score days 1..`days`.

    Parameters
    ----------
    readings : sequence of ClimateReading
        Lookback window, oldest first.
    days : int
        Forecast horizon in days.
    start_date : date | None
        Day 0 of the forecast; defaults to today.

    Returns
    -------
    WeeklyForecast
    """
    if days < 1:
        raise ValueError(f"days must be >= 1, got {days}")

    patterns = analyze_patterns(readings)
    forecast = WeeklyForecast(patterns=patterns, reading_count=len(readings))
    for day in range(1, days + 1):
        forecast.days.append(forecast_day(patterns, day, start_date))

    peak = forecast.peak_day
    logger.info(
        "Weekly forecast over %d readings: peak day %d at %.1f%%",
        len(readings), peak.day, peak.risk.overall_risk,
        extra={"reading_count": len(readings), "overall_risk": peak.risk.overall_risk},
    )
    return forecast
