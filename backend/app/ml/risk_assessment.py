"""
risk_assessment.py — Dashboard-wide overall risk assessment.

Scores six named risk factors from the reading window and combines them
with a **weighted sum** (unlike the per-day forecast, which takes the max
over four hazards):

    Factor                  Weight   Source
    ─────────────────────   ──────   ─────────────────────────────────
    Atmospheric Pressure     0.25    pressure drop rate + absolute level
    Temperature Anomalies    0.20    2σ anomaly rate + window shift
    Seismic Indicators       0.20    placeholder signals
    Ocean Conditions         0.15    mean temperature vs 26 °C + signal
    Wind Patterns            0.10    peak speed + speed range
    Historical Patterns      0.10    placeholder signals

    score = Σ value_i × weight_i                       ∈ [0, 100]

    score ≥ 75 → critical,  ≥ 55 → high,  ≥ 35 → moderate,  else low

Factor status:  < 40 normal,  < 60 elevated,  < 80 high,  else critical.

The placeholder factors draw from an injected SignalSource; nothing in
this module calls a random generator directly.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from backend.app.ml import signal_source as signals
from backend.app.ml.pattern_analysis import ClimateReading, variable_values
from backend.app.ml.signal_source import SignalSource

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Constants: Tunable Parameters
# ═══════════════════════════════════════════════════════════════════════════

PRESSURE_FACTOR = "Atmospheric Pressure"
TEMPERATURE_FACTOR = "Temperature Anomalies"
SEISMIC_FACTOR = "Seismic Indicators"
OCEAN_FACTOR = "Ocean Conditions"
WIND_FACTOR = "Wind Patterns"
HISTORICAL_FACTOR = "Historical Patterns"

# Factor weights (must sum to 1.0)
FACTOR_WEIGHTS: Dict[str, float] = {
    PRESSURE_FACTOR: 0.25,
    TEMPERATURE_FACTOR: 0.20,
    SEISMIC_FACTOR: 0.20,
    OCEAN_FACTOR: 0.15,
    WIND_FACTOR: 0.10,
    HISTORICAL_FACTOR: 0.10,
}

FACTOR_DESCRIPTIONS: Dict[str, str] = {
    PRESSURE_FACTOR: "Rapid pressure changes indicate potential severe weather or tsunami risk",
    TEMPERATURE_FACTOR: "Unusual temperature patterns can trigger various disaster scenarios",
    SEISMIC_FACTOR: "Ground movement and tectonic activity monitoring",
    OCEAN_FACTOR: "Sea surface temperature and current anomalies",
    WIND_FACTOR: "Atmospheric circulation and wind shear analysis",
    HISTORICAL_FACTOR: "Comparison with past disaster precursor patterns",
}

# Values used when a factor has no data to work from
DEFAULT_PRESSURE_RISK = 20.0
DEFAULT_TEMPERATURE_RISK = 15.0
DEFAULT_OCEAN_RISK = 10.0
DEFAULT_WIND_RISK = 10.0

PRESSURE_LOOKBACK_SAMPLES = 6   # samples (≈ hours) for the drop rate
NORMAL_SEA_TEMPERATURE_C = 26.0

# Overall level thresholds (score ≥ threshold)
LEVEL_CRITICAL = 75.0
LEVEL_HIGH = 55.0
LEVEL_MODERATE = 35.0

# Factor status thresholds (value < threshold)
STATUS_NORMAL_UPPER = 40.0
STATUS_ELEVATED_UPPER = 60.0
STATUS_HIGH_UPPER = 80.0


class FactorStatus(str, Enum):
    NORMAL = "normal"
    ELEVATED = "elevated"
    HIGH = "high"
    CRITICAL = "critical"


class AssessmentLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RiskFactor:
    """One weighted contributor to the overall assessment."""
    name: str
    value: float
    weight: float
    status: FactorStatus
    description: str = ""
    last_update: str = ""

    @property
    def weighted_value(self) -> float:
        return self.value * self.weight

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": round(self.value, 2),
            "weight": self.weight,
            "weighted_value": round(self.weighted_value, 2),
            "status": self.status.value,
            "description": self.description,
            "last_update": self.last_update,
        }


@dataclass
class OverallAssessment:
    """Result of the weighted-sum overall assessment."""
    level: AssessmentLevel
    score: int
    confidence: int
    primary_threats: List[str]
    timeframe: str
    last_assessment: str
    factors: List[RiskFactor] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "score": self.score,
            "confidence": self.confidence,
            "primary_threats": list(self.primary_threats),
            "timeframe": self.timeframe,
            "last_assessment": self.last_assessment,
            "factors": [f.to_dict() for f in self.factors],
        }


# ═══════════════════════════════════════════════════════════════════════════
# Classification
# ═══════════════════════════════════════════════════════════════════════════

def classify_factor_status(value: float) -> FactorStatus:
    if value < STATUS_NORMAL_UPPER:
        return FactorStatus.NORMAL
    if value < STATUS_ELEVATED_UPPER:
        return FactorStatus.ELEVATED
    if value < STATUS_HIGH_UPPER:
        return FactorStatus.HIGH
    return FactorStatus.CRITICAL


def classify_assessment_level(score: float) -> AssessmentLevel:
    if score >= LEVEL_CRITICAL:
        return AssessmentLevel.CRITICAL
    if score >= LEVEL_HIGH:
        return AssessmentLevel.HIGH
    if score >= LEVEL_MODERATE:
        return AssessmentLevel.MODERATE
    return AssessmentLevel.LOW


def make_factor(name: str, value: float, last_update: str = "") -> RiskFactor:
    """Build a RiskFactor with its standard weight, description and status."""
    value = max(0.0, min(100.0, value))
    return RiskFactor(
        name=name,
        value=value,
        weight=FACTOR_WEIGHTS[name],
        status=classify_factor_status(value),
        description=FACTOR_DESCRIPTIONS.get(name, ""),
        last_update=last_update,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Factor Calculators
# ═══════════════════════════════════════════════════════════════════════════

def pressure_factor_risk(readings: Sequence[ClimateReading]) -> float:
    """
    Pressure drop rate over the last 6 samples plus absolute level.

        rate < −8 hPa/h → +70,  < −5 → +50,  < −3 → +30
        level < 970 hPa → +60,  < 980 → +40,  > 1040 → +30
    """
    pressures = variable_values(readings, "pressure")
    if not pressures:
        return DEFAULT_PRESSURE_RISK

    latest = pressures[-1]
    previous = pressures[max(0, len(pressures) - PRESSURE_LOOKBACK_SAMPLES)]
    change_rate = (latest - previous) / PRESSURE_LOOKBACK_SAMPLES

    risk = 0.0
    if change_rate < -8:
        risk += 70
    elif change_rate < -5:
        risk += 50
    elif change_rate < -3:
        risk += 30

    if latest < 970:
        risk += 60
    elif latest < 980:
        risk += 40
    elif latest > 1040:
        risk += 30

    return min(risk, 100.0)


def temperature_factor_risk(readings: Sequence[ClimateReading]) -> float:
    """2σ anomaly rate × 80, plus +25 / +15 for a >5 / >3 °C window shift."""
    temperatures = variable_values(readings, "temperature")
    if not temperatures:
        return DEFAULT_TEMPERATURE_RISK

    series = np.asarray(temperatures, dtype=np.float64)
    deviation = np.abs(series - series.mean())
    anomalies = int(np.count_nonzero(deviation > 2 * series.std()))
    risk = anomalies / series.size * 80

    recent = series[-5:]
    older = series[-10:-5]
    if recent.size > 0 and older.size > 0:
        change = abs(float(recent.mean()) - float(older.mean()))
        if change > 5:
            risk += 25
        elif change > 3:
            risk += 15

    return min(risk, 100.0)


def seismic_factor_risk(source: SignalSource) -> float:
    """Placeholder: base activity + recent activity + tectonic stress."""
    risk = (
        source.sample(signals.SEISMIC_BASE, 40.0)
        + source.sample(signals.SEISMIC_RECENT_ACTIVITY, 30.0)
        + source.sample(signals.SEISMIC_TECTONIC_STRESS, 30.0)
    )
    return min(risk, 100.0)


def ocean_factor_risk(readings: Sequence[ClimateReading], source: SignalSource) -> float:
    """Mean temperature departure from 26 °C plus a current/salinity signal."""
    temperatures = variable_values(readings, "temperature")
    if not temperatures:
        return DEFAULT_OCEAN_RISK

    anomaly = abs(float(np.mean(temperatures)) - NORMAL_SEA_TEMPERATURE_C)
    risk = 0.0
    if anomaly > 3:
        risk += 40
    elif anomaly > 2:
        risk += 25
    elif anomaly > 1:
        risk += 15

    risk += source.sample(signals.OCEAN_CURRENTS, 20.0)
    return min(risk, 100.0)


def wind_factor_risk(readings: Sequence[ClimateReading]) -> float:
    """Peak wind (>25 / >20 / >15 m/s) plus spread (>15 / >10 m/s)."""
    speeds = variable_values(readings, "wind_speed")
    if not speeds:
        return DEFAULT_WIND_RISK

    peak = max(speeds)
    risk = 0.0
    if peak > 25:
        risk += 40
    elif peak > 20:
        risk += 25
    elif peak > 15:
        risk += 15

    spread = peak - min(speeds)
    if spread > 15:
        risk += 20
    elif spread > 10:
        risk += 10

    return min(risk, 100.0)


def historical_factor_risk(source: SignalSource) -> float:
    """Placeholder: seasonal + cyclical + recent-event pattern matching."""
    risk = (
        source.sample(signals.HISTORICAL_SEASONAL, 30.0)
        + source.sample(signals.HISTORICAL_CYCLICAL, 25.0)
        + source.sample(signals.HISTORICAL_RECENT_EVENTS, 20.0)
    )
    return min(risk, 100.0)


def calculate_risk_factors(
    readings: Sequence[ClimateReading],
    source: SignalSource,
    assessed_at: str = "",
) -> List[RiskFactor]:
    """All six factors, in weight order."""
    return [
        make_factor(PRESSURE_FACTOR, pressure_factor_risk(readings), assessed_at),
        make_factor(TEMPERATURE_FACTOR, temperature_factor_risk(readings), assessed_at),
        make_factor(SEISMIC_FACTOR, seismic_factor_risk(source), assessed_at),
        make_factor(OCEAN_FACTOR, ocean_factor_risk(readings, source), assessed_at),
        make_factor(WIND_FACTOR, wind_factor_risk(readings), assessed_at),
        make_factor(HISTORICAL_FACTOR, historical_factor_risk(source), assessed_at),
    ]


# ═══════════════════════════════════════════════════════════════════════════
# Aggregation & Interpretation
# ═══════════════════════════════════════════════════════════════════════════

def aggregate_weighted(factors: Sequence[RiskFactor]) -> float:
    """Weighted sum of factor values, clamped to [0, 100]."""
    score = sum(f.value * f.weight for f in factors)
    return max(0.0, min(100.0, score))


def assessment_confidence(factors: Sequence[RiskFactor], reading_count: int) -> float:
    """
    Confidence in the overall assessment, in [30, 95].

    More data and several agreeing high factors raise it; factors above
    90 (possible sensor faults) lower it.
    """
    confidence = 50.0
    if reading_count > 50:
        confidence += 20
    elif reading_count > 20:
        confidence += 10

    if sum(1 for f in factors if f.value > 50) > 2:
        confidence += 15

    confidence -= 5 * sum(1 for f in factors if f.value > 90)
    return max(30.0, min(95.0, confidence))


def identify_primary_threats(factors: Sequence[RiskFactor]) -> List[str]:
    by_name = {f.name: f.value for f in factors}
    pressure = by_name.get(PRESSURE_FACTOR, 0.0)
    seismic = by_name.get(SEISMIC_FACTOR, 0.0)
    ocean = by_name.get(OCEAN_FACTOR, 0.0)
    wind = by_name.get(WIND_FACTOR, 0.0)

    threats: List[str] = []
    if pressure > 50:
        if pressure > 70:
            threats.append("Tsunami")
        threats.append("Severe Weather")
    if seismic > 50:
        threats.append("Earthquake")
    if ocean > 50 and wind > 40:
        threats.append("Cyclone/Hurricane")

    return threats or ["General Weather"]


def estimate_timeframe(level: AssessmentLevel, factors: Sequence[RiskFactor]) -> str:
    """Expected lead time for the assessed level."""
    if level is AssessmentLevel.CRITICAL:
        max_risk = max((f.value for f in factors), default=0.0)
        return "6-24 hours" if max_risk > 90 else "1-3 days"
    if level is AssessmentLevel.HIGH:
        return "2-7 days"
    if level is AssessmentLevel.MODERATE:
        return "1-2 weeks"
    return "2+ weeks"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def assess_overall_risk(
    readings: Sequence[ClimateReading],
    source: SignalSource,
    assessed_at: Optional[datetime] = None,
) -> OverallAssessment:
    """
    Run the full weighted-sum assessment over a reading window.

    Parameters
    ----------
    readings : sequence of ClimateReading
        Lookback window, oldest first.
    source : SignalSource
        Supplies the placeholder seismic / ocean / historical signals.
    assessed_at : datetime | None
        Assessment timestamp; defaults to now (UTC).
    """
    timestamp = (assessed_at or datetime.now(timezone.utc)).isoformat()
    factors = calculate_risk_factors(readings, source, timestamp)

    score = aggregate_weighted(factors)
    level = classify_assessment_level(score)
    confidence = assessment_confidence(factors, len(readings))

    assessment = OverallAssessment(
        level=level,
        score=_round_half_up(score),
        confidence=_round_half_up(confidence),
        primary_threats=identify_primary_threats(factors),
        timeframe=estimate_timeframe(level, factors),
        last_assessment=timestamp,
        factors=factors,
    )

    logger.info(
        "Overall assessment: %s (score %.1f, confidence %.0f) over %d readings",
        level.value, score, confidence, len(readings),
        extra={"risk_score": score, "level": level.value, "reading_count": len(readings)},
    )
    return assessment
