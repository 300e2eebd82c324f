"""
Tests for climate pattern analysis.

Covers:
    • Reading parsing from store rows
    • Moving-average trend classification
    • 2σ anomaly counting
    • Volatility (coefficient of variation)
    • Full pattern summary, including empty and sparse input
    • Very large magnitudes never leaking inf / NaN into risk scores
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from backend.app.ml.hazard_risk import calculate_risk
from backend.app.ml.pattern_analysis import (
    NEUTRAL_SUMMARY,
    ClimateReading,
    PatternSummary,
    Trend,
    analyze_patterns,
    calculate_trend,
    calculate_volatility,
    detect_anomalies,
    variable_values,
)

START = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _readings(**series) -> list:
    """Build hourly readings from per-variable value lists."""
    length = max(len(v) for v in series.values())
    readings = []
    for i in range(length):
        values = {name: (vals[i] if i < len(vals) else None) for name, vals in series.items()}
        readings.append(ClimateReading(recorded_at=START + timedelta(hours=i), **values))
    return readings


# ═══════════════════════════════════════════════════════════════════════════
# Reading parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestClimateReadingFromRow:
    def test_zulu_timestamp(self):
        reading = ClimateReading.from_row({"recorded_at": "2024-06-01T06:00:00Z", "temperature": 27.5})
        assert reading.recorded_at == datetime(2024, 6, 1, 6, tzinfo=timezone.utc)
        assert reading.temperature == 27.5

    def test_naive_timestamp_is_utc(self):
        reading = ClimateReading.from_row({"recorded_at": "2024-06-01T06:00:00"})
        assert reading.recorded_at.tzinfo is not None
        assert reading.recorded_at.utcoffset() == timedelta(0)

    def test_missing_measurements_are_none(self):
        reading = ClimateReading.from_row({"recorded_at": "2024-06-01T06:00:00Z"})
        assert reading.temperature is None
        assert reading.pressure is None
        assert reading.wind_speed is None

    def test_nan_is_missing(self):
        reading = ClimateReading.from_row({"recorded_at": START, "humidity": float("nan")})
        assert reading.humidity is None

    def test_infinity_is_missing(self):
        reading = ClimateReading.from_row({"recorded_at": START, "pressure": float("inf")})
        assert reading.pressure is None

    def test_numeric_strings_are_parsed(self):
        reading = ClimateReading.from_row({"recorded_at": START, "pressure": "1012.5"})
        assert reading.pressure == 1012.5

    def test_missing_timestamp_raises(self):
        with pytest.raises(KeyError):
            ClimateReading.from_row({"temperature": 20.0})

    def test_to_dict(self):
        reading = ClimateReading(recorded_at=START, temperature=21.0, station_id="st-1")
        d = reading.to_dict()
        assert d["recorded_at"] == "2024-06-01T00:00:00+00:00"
        assert d["temperature"] == 21.0
        assert d["station_id"] == "st-1"


class TestVariableValues:
    def test_skips_missing(self):
        readings = _readings(temperature=[20.0, None, 22.0])
        assert variable_values(readings, "temperature") == [20.0, 22.0]

    def test_skips_nan(self):
        readings = [ClimateReading(recorded_at=START, temperature=float("nan"))]
        assert variable_values(readings, "temperature") == []


# ═══════════════════════════════════════════════════════════════════════════
# Trend
# ═══════════════════════════════════════════════════════════════════════════

class TestCalculateTrend:
    def test_empty(self):
        assert calculate_trend([]) is Trend.STABLE

    def test_single_value(self):
        assert calculate_trend([15.0]) is Trend.STABLE

    def test_rising(self):
        """Older mean 10, recent mean 11 → +10 %."""
        assert calculate_trend([10.0] * 5 + [11.0] * 5) is Trend.RISING

    def test_falling(self):
        assert calculate_trend([10.0] * 5 + [9.0] * 5) is Trend.FALLING

    def test_small_change_is_stable(self):
        """+4 % is inside the ±5 % band."""
        assert calculate_trend([10.0] * 5 + [10.4] * 5) is Trend.STABLE

    def test_no_older_window(self):
        """Five values fill only the recent window."""
        assert calculate_trend([1.0, 2.0, 3.0, 4.0, 100.0]) is Trend.STABLE

    def test_partial_older_window(self):
        """Seven values: older = first two (mean 10), recent = last five (mean 12)."""
        assert calculate_trend([10.0, 10.0, 12.0, 12.0, 12.0, 12.0, 12.0]) is Trend.RISING

    def test_only_last_ten_values_count(self):
        series = [1000.0] * 20 + [10.0] * 5 + [11.0] * 5
        assert calculate_trend(series) is Trend.RISING

    def test_zero_older_mean_is_stable(self):
        assert calculate_trend([0.0] * 5 + [5.0] * 5) is Trend.STABLE

    def test_custom_threshold(self):
        series = [10.0] * 5 + [10.4] * 5
        assert calculate_trend(series, threshold_pct=3.0) is Trend.RISING


# ═══════════════════════════════════════════════════════════════════════════
# Anomalies
# ═══════════════════════════════════════════════════════════════════════════

class TestDetectAnomalies:
    def test_empty(self):
        assert detect_anomalies([]) == 0

    def test_constant_series(self):
        assert detect_anomalies(_readings(temperature=[20.0] * 10)) == 0

    def test_single_spike(self):
        """Nine 10s and one 100: μ=19, σ=27, |100−19|=81 > 54."""
        readings = _readings(temperature=[10.0] * 9 + [100.0])
        assert detect_anomalies(readings) == 1

    def test_summed_across_variables(self):
        readings = _readings(
            temperature=[10.0] * 9 + [100.0],
            pressure=[1000.0] * 9 + [1900.0],
        )
        assert detect_anomalies(readings) == 2

    def test_missing_values_ignored(self):
        readings = _readings(temperature=[10.0] * 9 + [100.0], humidity=[None] * 10)
        assert detect_anomalies(readings) == 1

    def test_higher_sigma_finds_fewer(self):
        readings = _readings(temperature=[10.0] * 9 + [100.0])
        assert detect_anomalies(readings, sigma=3.5) == 0


# ═══════════════════════════════════════════════════════════════════════════
# Volatility
# ═══════════════════════════════════════════════════════════════════════════

class TestCalculateVolatility:
    def test_empty(self):
        assert calculate_volatility([]) == 0.0

    def test_constant_series(self):
        readings = _readings(
            temperature=[20.0] * 4, pressure=[1000.0] * 4,
            humidity=[50.0] * 4, wind_speed=[5.0] * 4,
        )
        assert calculate_volatility(readings) == 0.0

    def test_single_variable_divided_by_four(self):
        """[10, 20]: σ/μ = 5/15, averaged over all four variables."""
        readings = _readings(temperature=[10.0, 20.0])
        assert calculate_volatility(readings) == pytest.approx((5.0 / 15.0) / 4)

    def test_single_sample_skipped(self):
        assert calculate_volatility(_readings(temperature=[25.0])) == 0.0

    def test_zero_mean_skipped(self):
        assert calculate_volatility(_readings(temperature=[-1.0, 1.0])) == 0.0

    def test_negative_mean_is_non_negative(self):
        readings = _readings(temperature=[-10.0, -20.0])
        assert calculate_volatility(readings) == pytest.approx((5.0 / 15.0) / 4)


# ═══════════════════════════════════════════════════════════════════════════
# Full analysis
# ═══════════════════════════════════════════════════════════════════════════

class TestAnalyzePatterns:
    def test_empty_is_neutral(self):
        summary = analyze_patterns([])
        assert summary == NEUTRAL_SUMMARY
        assert summary.trends == [Trend.STABLE] * 4
        assert summary.anomalies == 0
        assert summary.volatility == 0.0

    def test_all_missing_is_neutral(self):
        readings = _readings(temperature=[None] * 5)
        assert analyze_patterns(readings) == PatternSummary()

    def test_warming_with_pressure_drop(self):
        readings = _readings(
            temperature=[20.0] * 5 + [25.0] * 5,
            pressure=[1010.0] * 5 + [950.0] * 5,
        )
        summary = analyze_patterns(readings)

        assert summary.temperature_trend is Trend.RISING
        assert summary.pressure_trend is Trend.FALLING
        assert summary.humidity_trend is Trend.STABLE
        assert summary.wind_trend is Trend.STABLE
        assert summary.anomalies == 0
        assert summary.volatility == pytest.approx((2.5 / 22.5 + 30.0 / 980.0) / 4)
        assert summary.active_trend_count == 2

    def test_does_not_retain_state(self):
        rising = _readings(temperature=[20.0] * 5 + [25.0] * 5)
        analyze_patterns(rising)
        assert analyze_patterns([]) == NEUTRAL_SUMMARY

    def test_to_dict(self):
        summary = PatternSummary(
            temperature_trend=Trend.RISING, anomalies=3, volatility=0.123456,
        )
        d = summary.to_dict()
        assert d["temperature_trend"] == "rising"
        assert d["pressure_trend"] == "stable"
        assert d["anomalies"] == 3
        assert d["volatility"] == 0.1235


# ═══════════════════════════════════════════════════════════════════════════
# Extreme magnitudes
# ═══════════════════════════════════════════════════════════════════════════

class TestExtremeMagnitudes:
    def test_huge_constant_series_has_zero_volatility(self):
        readings = _readings(pressure=[1e308] * 3)
        summary = analyze_patterns(readings)
        assert summary.volatility == 0.0
        assert summary.anomalies == 0
        assert summary.pressure_trend is Trend.STABLE

    def test_huge_values_keep_their_variation(self):
        """[1e200, 3e200]: σ/μ = 1e200 / 2e200, averaged over four variables."""
        readings = _readings(temperature=[1e200, 3e200])
        assert calculate_volatility(readings) == pytest.approx(0.5 / 4)

    def test_huge_spike_is_still_an_anomaly(self):
        readings = _readings(temperature=[1e300] * 9 + [1e307])
        assert detect_anomalies(readings) == 1

    def test_huge_series_trend(self):
        assert calculate_trend([1e307] * 5 + [1.5e308] * 5) is Trend.RISING

    def test_constant_huge_series_scores_like_any_constant_series(self):
        huge = calculate_risk(analyze_patterns(_readings(pressure=[1e308] * 3)))
        plain = calculate_risk(analyze_patterns(_readings(pressure=[1000.0] * 3)))
        assert huge == plain

    @pytest.mark.parametrize("seed", range(20))
    def test_random_windows_stay_finite_and_bounded(self, seed):
        rng = np.random.RandomState(seed)
        series = {}
        for variable in ("temperature", "pressure", "humidity", "wind_speed"):
            magnitude = 10.0 ** rng.randint(-300, 308)
            values = (rng.uniform(-1.0, 1.0, size=rng.randint(0, 30)) * magnitude).tolist()
            series[variable] = [None if rng.rand() < 0.2 else v for v in values]
        summary = analyze_patterns(_readings(**series))

        assert math.isfinite(summary.volatility)
        assert summary.volatility >= 0.0
        for day in range(1, 8):
            scores = calculate_risk(summary, day_offset=day).to_dict()
            for name, score in scores.items():
                assert math.isfinite(score), name
                assert 0.0 <= score <= 100.0, name
