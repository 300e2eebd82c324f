"""
Background Jobs for periodic risk re-assessment.

═══════════════════════════════════════════════════════════════════════════
BACKGROUND TASKS
═══════════════════════════════════════════════════════════════════════════

1. PERIODIC OVERALL ASSESSMENT
   - Every ASSESSMENT_INTERVAL_SECONDS (default 5 min) the runner pulls a
     fresh reading snapshot from the climate data provider and runs the
     weighted-sum overall assessment plus the weekly forecast.
   - Provider fetches are serialised with an asyncio.Lock so that the
     scheduler and on-demand API calls never hit the upstream store
     concurrently.  The scoring pipeline itself needs no coordination.

2. ASSESSMENT HISTORY
   - The newest ASSESSMENT_HISTORY_SIZE (default 10) assessments are
     kept, newest first, for the dashboard's history strip.

═══════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from backend.app.core.config import settings
from backend.app.ingestion.climate_provider import (
    ClimateDataProvider,
    ReadingSnapshot,
    get_climate_provider,
)
from backend.app.ml.hazard_risk import WeeklyForecast, generate_weekly_forecast
from backend.app.ml.risk_assessment import OverallAssessment, assess_overall_risk
from backend.app.ml.signal_source import SignalSource, get_signal_source

logger = logging.getLogger(__name__)


class AssessmentHistory:
    """Bounded, newest-first record of overall assessments."""

    def __init__(self, max_size: int = settings.ASSESSMENT_HISTORY_SIZE):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self._entries: Deque[OverallAssessment] = deque(maxlen=max_size)

    @property
    def max_size(self) -> int:
        return self._entries.maxlen or 0

    def record(self, assessment: OverallAssessment) -> None:
        self._entries.appendleft(assessment)

    def latest(self) -> Optional[OverallAssessment]:
        return self._entries[0] if self._entries else None

    def entries(self) -> List[OverallAssessment]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": len(self._entries),
            "max_size": self.max_size,
            "assessments": [a.to_dict() for a in self._entries],
        }


@dataclass
class RunResult:
    """Outcome of one assessment cycle."""
    started_at: str
    reading_count: int = 0
    assessment: Optional[OverallAssessment] = None
    forecast: Optional[WeeklyForecast] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "success": self.success,
            "reading_count": self.reading_count,
            "assessment": self.assessment.to_dict() if self.assessment else None,
            "forecast": self.forecast.to_dict() if self.forecast else None,
            "error": self.error,
        }


class ScheduledAssessmentRunner:
    """
    Re-runs the overall assessment on a fixed interval.

    Usage:
        runner = ScheduledAssessmentRunner(provider, signal_source)
        await runner.start()
        ...
        await runner.stop()
    """

    def __init__(
        self,
        provider: ClimateDataProvider,
        signal_source: SignalSource,
        *,
        interval_seconds: float = settings.ASSESSMENT_INTERVAL_SECONDS,
        lookback_days: int = settings.LOOKBACK_DAYS,
        forecast_days: int = settings.FORECAST_DAYS,
        history: Optional[AssessmentHistory] = None,
    ):
        self.provider = provider
        self.signal_source = signal_source
        self.interval_seconds = interval_seconds
        self.lookback_days = lookback_days
        self.forecast_days = forecast_days
        self.history = history if history is not None else AssessmentHistory()
        self.last_run: Optional[RunResult] = None
        self._fetch_lock = asyncio.Lock()
        self._running = False
        self._scheduler_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def fetch_snapshot(self, days: Optional[int] = None) -> ReadingSnapshot:
        """Fetch a reading snapshot, one provider call at a time."""
        async with self._fetch_lock:
            return await self.provider.get_historical_data(days or self.lookback_days)

    async def fetch_latest(self, limit: int = settings.LATEST_READINGS_LIMIT) -> ReadingSnapshot:
        async with self._fetch_lock:
            return await self.provider.get_latest_readings(limit)

    async def assess_now(self, days: Optional[int] = None) -> OverallAssessment:
        """On-demand overall assessment; recorded in the history."""
        readings = await self.fetch_snapshot(days)
        assessment = assess_overall_risk(readings, self.signal_source)
        self.history.record(assessment)
        return assessment

    async def run_once(self) -> RunResult:
        """Fetch, assess, forecast and record one cycle."""
        result = RunResult(started_at=datetime.now(timezone.utc).isoformat())
        try:
            readings = await self.fetch_snapshot()
        except Exception as e:
            # A failed fetch is retried on the next cycle
            logger.exception("Assessment cycle failed to fetch readings: %s", e)
            result.error = str(e)
            self.last_run = result
            return result

        result.reading_count = len(readings)
        try:
            assessment = assess_overall_risk(readings, self.signal_source)
            result.forecast = generate_weekly_forecast(readings, self.forecast_days)
        except Exception as e:
            logger.exception("Assessment cycle failed to score readings: %s", e)
            result.error = str(e)
            self.last_run = result
            return result

        result.assessment = assessment
        self.history.record(assessment)
        self.last_run = result
        return result

    async def start(self) -> None:
        """Start the scheduler loop."""
        if self._running:
            return
        self._running = True
        self._scheduler_task = asyncio.create_task(self._run_scheduler())
        logger.info(
            "Scheduled assessment runner started (every %ss)", self.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the scheduler loop."""
        self._running = False
        if self._scheduler_task:
            self._scheduler_task.cancel()
            try:
                await self._scheduler_task
            except asyncio.CancelledError:
                pass
            self._scheduler_task = None
        logger.info("Scheduled assessment runner stopped")

    async def _run_scheduler(self) -> None:
        """Main scheduler loop."""
        while self._running:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)


# ═══════════════════════════════════════════════════════════════════════════
# Global Instance
# ═══════════════════════════════════════════════════════════════════════════

_runner: Optional[ScheduledAssessmentRunner] = None


def get_assessment_runner() -> ScheduledAssessmentRunner:
    """Get or create the global assessment runner."""
    global _runner
    if _runner is None:
        _runner = ScheduledAssessmentRunner(get_climate_provider(), get_signal_source())
    return _runner


async def shutdown_assessment_runner() -> None:
    global _runner
    if _runner is not None:
        await _runner.stop()
        _runner = None
