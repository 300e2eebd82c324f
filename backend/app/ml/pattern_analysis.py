"""
pattern_analysis.py — Climate pattern analysis over a reading window.

Turns a time-ordered sequence of climate readings into a compact
PatternSummary consumed by the hazard risk functions:

    • Trend per variable   (rising / falling / stable)
    • Anomaly count        (samples beyond 2σ of their variable's mean)
    • Volatility           (mean coefficient of variation)

═══════════════════════════════════════════════════════════════════════════
TREND CLASSIFICATION
═══════════════════════════════════════════════════════════════════════════

Two equal moving-average windows over the variable's non-null values:

    recent = last 5 samples
    older  = the 5 samples before those

    change = (mean(recent) − mean(older)) / mean(older)

    change >  +5 %   → rising
    change <  −5 %   → falling
    otherwise        → stable

With fewer than 2 values, an empty older window, or a zero older mean
the trend is "stable".

═══════════════════════════════════════════════════════════════════════════
ANOMALIES & VOLATILITY
═══════════════════════════════════════════════════════════════════════════

For each of temperature, pressure, humidity and wind speed:

    anomalies  += #{ x : |x − μ| > 2σ }        (population σ)
    volatility += σ / |μ|                       (needs ≥ 2 samples, μ ≠ 0)

The volatility sum is divided by the number of monitored variables (4),
so a variable with too little data contributes zero rather than raising
the average of the others.

Everything here is a pure function of its input: no state is retained
between calls, and missing measurements (None, NaN or infinite) are
simply dropped.  Each series is divided by its largest magnitude before
any mean or deviation is taken; all three statistics are scale-free, and
this keeps very large readings from overflowing to inf / NaN.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


# ===================================================================
#  CONSTANTS
# ===================================================================

MONITORED_VARIABLES: List[str] = [
    "temperature",   # °C
    "pressure",      # hPa
    "humidity",      # %
    "wind_speed",    # m/s
]

TREND_WINDOW = 5                  # samples per moving-average window
TREND_CHANGE_THRESHOLD_PCT = 5.0  # % change that counts as a trend
ANOMALY_SIGMA = 2.0               # deviations beyond this many σ are anomalies


# ===================================================================
#  DATA STRUCTURES
# ===================================================================


class Trend(str, Enum):
    """Qualitative direction of a climate variable."""
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    # Store timestamps without an offset are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_measurement(value: Any) -> Optional[float]:
    if value is None:
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


@dataclass(frozen=True)
class ClimateReading:
    """A single station reading as supplied by the climate data provider."""
    recorded_at: datetime
    temperature: Optional[float] = None    # °C
    humidity: Optional[float] = None       # %
    pressure: Optional[float] = None       # hPa
    wind_speed: Optional[float] = None     # m/s
    wind_direction: Optional[float] = None  # degrees, informational only
    station_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ClimateReading":
        """Build a reading from a store row (ISO-8601 timestamps accepted)."""
        return cls(
            recorded_at=_parse_timestamp(row["recorded_at"]),
            temperature=_as_measurement(row.get("temperature")),
            humidity=_as_measurement(row.get("humidity")),
            pressure=_as_measurement(row.get("pressure")),
            wind_speed=_as_measurement(row.get("wind_speed")),
            wind_direction=_as_measurement(row.get("wind_direction")),
            station_id=row.get("station_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recorded_at": self.recorded_at.isoformat(),
            "temperature": self.temperature,
            "humidity": self.humidity,
            "pressure": self.pressure,
            "wind_speed": self.wind_speed,
            "wind_direction": self.wind_direction,
            "station_id": self.station_id,
        }


@dataclass(frozen=True)
class PatternSummary:
    """Derived trend / anomaly / volatility summary of a reading window."""
    temperature_trend: Trend = Trend.STABLE
    pressure_trend: Trend = Trend.STABLE
    humidity_trend: Trend = Trend.STABLE
    wind_trend: Trend = Trend.STABLE
    anomalies: int = 0
    volatility: float = 0.0

    @property
    def trends(self) -> List[Trend]:
        return [
            self.temperature_trend,
            self.pressure_trend,
            self.humidity_trend,
            self.wind_trend,
        ]

    @property
    def active_trend_count(self) -> int:
        """Number of variables whose trend is not stable."""
        return sum(1 for t in self.trends if t is not Trend.STABLE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature_trend": self.temperature_trend.value,
            "pressure_trend": self.pressure_trend.value,
            "humidity_trend": self.humidity_trend.value,
            "wind_trend": self.wind_trend.value,
            "anomalies": self.anomalies,
            "volatility": round(self.volatility, 4),
        }


NEUTRAL_SUMMARY = PatternSummary()


# ===================================================================
#  HELPERS
# ===================================================================


def variable_values(readings: Sequence[ClimateReading], variable: str) -> List[float]:
    """Non-null values of one variable, in reading order."""
    values = []
    for reading in readings:
        value = getattr(reading, variable)
        if value is not None and math.isfinite(value):
            values.append(float(value))
    return values


def _normalised(values: Sequence[float]) -> np.ndarray:
    """Series divided by its largest magnitude (unchanged when all zero)."""
    series = np.asarray(values, dtype=np.float64)
    scale = float(np.max(np.abs(series))) if series.size else 0.0
    if scale > 0.0:
        series = series / scale
    return series


# ===================================================================
#  1. TREND
# ===================================================================


def calculate_trend(
    values: Sequence[float],
    window: int = TREND_WINDOW,
    threshold_pct: float = TREND_CHANGE_THRESHOLD_PCT,
) -> Trend:
    """
    Classify the direction of a series from two moving-average windows.

    Parameters
    ----------
    values : sequence of float
        Chronologically ordered, nulls already removed.
    window : int
        Samples per window (recent = last `window`, older = the
        `window` samples before those).
    threshold_pct : float
        Percentage change required for rising / falling.

    Returns
    -------
    Trend
    """
    if len(values) < 2:
        return Trend.STABLE

    series = _normalised(values)
    recent = series[-window:]
    older = series[-2 * window:-window]

    if older.size == 0:
        return Trend.STABLE

    older_mean = float(older.mean())
    if older_mean == 0.0:
        return Trend.STABLE

    change_pct = (float(recent.mean()) - older_mean) / older_mean * 100.0

    if change_pct > threshold_pct:
        return Trend.RISING
    if change_pct < -threshold_pct:
        return Trend.FALLING
    return Trend.STABLE


# ===================================================================
#  2. ANOMALIES
# ===================================================================


def detect_anomalies(
    readings: Sequence[ClimateReading],
    sigma: float = ANOMALY_SIGMA,
) -> int:
    """Count samples more than `sigma` population std-devs from their mean."""
    anomalies = 0
    for variable in MONITORED_VARIABLES:
        values = variable_values(readings, variable)
        if not values:
            continue
        series = _normalised(values)
        deviation = np.abs(series - series.mean())
        anomalies += int(np.count_nonzero(deviation > sigma * series.std()))
    return anomalies


# ===================================================================
#  3. VOLATILITY
# ===================================================================


def calculate_volatility(readings: Sequence[ClimateReading]) -> float:
    """Mean coefficient of variation across the monitored variables."""
    total = 0.0
    for variable in MONITORED_VARIABLES:
        values = variable_values(readings, variable)
        if len(values) < 2:
            continue
        series = _normalised(values)
        mean = float(series.mean())
        if mean == 0.0:
            continue
        ratio = float(series.std()) / abs(mean)
        if not math.isfinite(ratio):
            logger.warning("Skipping non-finite volatility for %s", variable)
            continue
        total += ratio / len(MONITORED_VARIABLES)
    return total


# ===================================================================
#  4. FULL ANALYSIS
# ===================================================================


def analyze_patterns(readings: Sequence[ClimateReading]) -> PatternSummary:
    """
    Summarise a reading window into trends, anomaly count and volatility.

    Empty input returns the neutral summary (all stable, 0 anomalies,
    0 volatility).
    """
    if not readings:
        return NEUTRAL_SUMMARY

    summary = PatternSummary(
        temperature_trend=calculate_trend(variable_values(readings, "temperature")),
        pressure_trend=calculate_trend(variable_values(readings, "pressure")),
        humidity_trend=calculate_trend(variable_values(readings, "humidity")),
        wind_trend=calculate_trend(variable_values(readings, "wind_speed")),
        anomalies=detect_anomalies(readings),
        volatility=calculate_volatility(readings),
    )

    logger.debug(
        "Patterns over %d readings: %s",
        len(readings), summary.to_dict(),
        extra={"reading_count": len(readings)},
    )
    return summary
