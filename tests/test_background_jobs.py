"""
Tests for the periodic re-assessment runner and assessment history.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from backend.app.core.errors import ExternalServiceError
from backend.app.ingestion.climate_provider import ClimateDataProvider, InMemoryClimateProvider
from backend.app.ml.pattern_analysis import ClimateReading
from backend.app.ml.risk_assessment import AssessmentLevel, assess_overall_risk
from backend.app.ml.signal_source import FixedSignalSource
from backend.app.monitoring.background_jobs import AssessmentHistory, ScheduledAssessmentRunner

NOW = datetime(2024, 6, 15, 12, tzinfo=timezone.utc)


def _provider() -> InMemoryClimateProvider:
    readings = [
        ClimateReading(
            recorded_at=NOW - timedelta(hours=10 - i),
            temperature=20.0 if i < 5 else 25.0,
            pressure=1010.0 if i < 5 else 950.0,
        )
        for i in range(10)
    ]
    return InMemoryClimateProvider(readings, clock=lambda: NOW)


class FailingProvider(ClimateDataProvider):
    name = "failing"

    async def get_historical_data(self, days=15):
        raise ExternalServiceError(self.name, "HTTP 503")

    async def get_latest_readings(self, limit=100):
        raise ExternalServiceError(self.name, "HTTP 503")


class SlowProvider(ClimateDataProvider):
    """Records how many fetches overlap."""

    def __init__(self):
        self.active = 0
        self.max_active = 0

    async def get_historical_data(self, days=15):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return ()

    async def get_latest_readings(self, limit=100):
        return ()


# ═══════════════════════════════════════════════════════════════════════════
# History
# ═══════════════════════════════════════════════════════════════════════════

class TestAssessmentHistory:
    def _assessment(self, fraction: float):
        return assess_overall_risk([], FixedSignalSource(fraction))

    def test_newest_first(self):
        history = AssessmentHistory(max_size=3)
        first, second = self._assessment(0.0), self._assessment(1.0)
        history.record(first)
        history.record(second)
        assert history.entries() == [second, first]
        assert history.latest() is second

    def test_bounded(self):
        history = AssessmentHistory(max_size=3)
        for _ in range(5):
            history.record(self._assessment(0.0))
        assert len(history) == 3
        assert history.to_dict()["count"] == 3
        assert history.to_dict()["max_size"] == 3

    def test_empty(self):
        history = AssessmentHistory()
        assert history.latest() is None
        assert history.max_size == 10

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            AssessmentHistory(max_size=0)


# ═══════════════════════════════════════════════════════════════════════════
# Runner
# ═══════════════════════════════════════════════════════════════════════════

class TestScheduledAssessmentRunner:
    def test_run_once(self):
        runner = ScheduledAssessmentRunner(_provider(), FixedSignalSource(0.5), forecast_days=7)
        result = asyncio.run(runner.run_once())

        assert result.success
        assert result.reading_count == 10
        assert result.assessment is not None
        assert len(result.forecast.days) == 7
        assert runner.history.latest() is result.assessment
        assert runner.last_run is result

    def test_run_once_provider_failure(self):
        runner = ScheduledAssessmentRunner(FailingProvider(), FixedSignalSource(0.5))
        result = asyncio.run(runner.run_once())

        assert not result.success
        assert "503" in result.error
        assert len(runner.history) == 0
        assert result.to_dict()["assessment"] is None

    def test_assess_now_records(self):
        runner = ScheduledAssessmentRunner(_provider(), FixedSignalSource(0.5))
        assessment = asyncio.run(runner.assess_now(15))
        assert assessment.level in set(AssessmentLevel)
        assert runner.history.latest() is assessment

    def test_assess_now_propagates_provider_errors(self):
        runner = ScheduledAssessmentRunner(FailingProvider(), FixedSignalSource(0.5))
        with pytest.raises(ExternalServiceError):
            asyncio.run(runner.assess_now())

    def test_fetches_are_serialised(self):
        provider = SlowProvider()
        runner = ScheduledAssessmentRunner(provider, FixedSignalSource(0.5))

        async def run():
            await asyncio.gather(*(runner.fetch_snapshot() for _ in range(4)))

        asyncio.run(run())
        assert provider.max_active == 1

    def test_fetch_latest(self):
        runner = ScheduledAssessmentRunner(_provider(), FixedSignalSource(0.5))
        readings = asyncio.run(runner.fetch_latest(3))
        assert len(readings) == 3
        assert readings[0].recorded_at > readings[-1].recorded_at

    def test_start_stop(self):
        runner = ScheduledAssessmentRunner(
            _provider(), FixedSignalSource(0.5), interval_seconds=0.01,
        )

        async def run():
            await runner.start()
            assert runner.is_running
            await asyncio.sleep(0.05)
            await runner.stop()

        asyncio.run(run())
        assert not runner.is_running
        assert len(runner.history) >= 1

    def test_loop_survives_failures(self):
        runner = ScheduledAssessmentRunner(
            FailingProvider(), FixedSignalSource(0.5), interval_seconds=0.01,
        )

        async def run():
            await runner.start()
            await asyncio.sleep(0.05)
            await runner.stop()

        asyncio.run(run())
        assert runner.last_run is not None
        assert not runner.last_run.success

    def test_run_once_scoring_failure(self):
        # A zero-day horizon makes the weekly forecast raise
        runner = ScheduledAssessmentRunner(_provider(), FixedSignalSource(0.5), forecast_days=0)
        result = asyncio.run(runner.run_once())

        assert not result.success
        assert "days" in result.error
        assert result.reading_count == 10
        assert result.assessment is None
        assert len(runner.history) == 0
        assert runner.last_run is result

    def test_loop_survives_scoring_failures(self):
        runner = ScheduledAssessmentRunner(
            _provider(), FixedSignalSource(0.5), interval_seconds=0.01, forecast_days=0,
        )

        async def run():
            await runner.start()
            await asyncio.sleep(0.05)
            task = runner._scheduler_task
            alive = task is not None and not task.done()
            await runner.stop()
            return alive

        assert asyncio.run(run())
        assert not runner.last_run.success
