"""
FastAPI routes: dashboard-wide overall risk assessment.

The overall assessment combines six risk factors with a weighted sum
(see ml/risk_assessment.py).  Provider-backed assessments are recorded
in the bounded assessment history shared with the scheduler.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from backend.app.api.schemas import (
    AssessmentHistoryResponse,
    AssessmentRequest,
    OverallAssessmentOut,
    to_readings,
)
from backend.app.core.config import settings
from backend.app.core.errors import NotFoundError
from backend.app.ml.risk_assessment import assess_overall_risk
from backend.app.ml.signal_source import RandomSignalSource, SignalSource, get_signal_source
from backend.app.monitoring.background_jobs import (
    ScheduledAssessmentRunner,
    get_assessment_runner,
)

router = APIRouter(prefix="/api/v1/assessment", tags=["overall-assessment"])


@router.post(
    "/overall",
    response_model=OverallAssessmentOut,
    summary="Overall Assessment from Readings",
    description=(
        "Scores the six weighted risk factors over the supplied readings. "
        "Seismic, ocean-current and historical signals are placeholders; "
        "pass signal_seed for reproducible output."
    ),
)
async def assess_readings(
    req: AssessmentRequest,
    source: SignalSource = Depends(get_signal_source),
):
    if req.signal_seed is not None:
        source = RandomSignalSource(req.signal_seed)
    assessment = assess_overall_risk(to_readings(req.readings), source)
    return assessment.to_dict()


@router.get(
    "/overall",
    response_model=OverallAssessmentOut,
    summary="Overall Assessment from Stored Readings",
)
async def assess_stored_readings(
    lookback_days: int = Query(settings.LOOKBACK_DAYS, ge=1, le=90),
    runner: ScheduledAssessmentRunner = Depends(get_assessment_runner),
):
    assessment = await runner.assess_now(lookback_days)
    return assessment.to_dict()


@router.get(
    "/latest",
    response_model=OverallAssessmentOut,
    summary="Most Recent Recorded Assessment",
)
async def latest_assessment(
    runner: ScheduledAssessmentRunner = Depends(get_assessment_runner),
):
    latest = runner.history.latest()
    if latest is None:
        raise NotFoundError("Assessment", hint="no assessment has been recorded yet")
    return latest.to_dict()


@router.get(
    "/history",
    response_model=AssessmentHistoryResponse,
    summary="Assessment History",
    description="The most recent recorded assessments, newest first.",
)
async def assessment_history(
    runner: ScheduledAssessmentRunner = Depends(get_assessment_runner),
):
    return runner.history.to_dict()


@router.get(
    "/scheduler",
    summary="Scheduler Status",
)
async def scheduler_status(
    runner: ScheduledAssessmentRunner = Depends(get_assessment_runner),
):
    return {
        "enabled": settings.ENABLE_SCHEDULER,
        "running": runner.is_running,
        "interval_seconds": runner.interval_seconds,
        "lookback_days": runner.lookback_days,
        "last_run": runner.last_run.to_dict() if runner.last_run else None,
    }


@router.get(
    "/thresholds",
    summary="Get Scoring Thresholds",
    description="Returns the weights, bands and decay slopes used by the scoring pipeline.",
)
async def get_thresholds():
    """Return the tuning parameters used by both aggregation policies."""
    from backend.app.ml.hazard_risk import (
        BASELINE_RECOMMENDATIONS,
        CONFIDENCE_MAX,
        CONFIDENCE_MIN,
        CYCLONE_DECAY,
        EARTHQUAKE_DECAY,
        FORECAST_LEVEL_CRITICAL,
        FORECAST_LEVEL_HIGH,
        FORECAST_LEVEL_MODERATE,
        RECOMMENDATION_BANDS,
        SEVERE_WEATHER_DECAY,
        TSUNAMI_DECAY,
    )
    from backend.app.ml.risk_assessment import (
        FACTOR_WEIGHTS,
        LEVEL_CRITICAL,
        LEVEL_HIGH,
        LEVEL_MODERATE,
        STATUS_ELEVATED_UPPER,
        STATUS_HIGH_UPPER,
        STATUS_NORMAL_UPPER,
    )

    return {
        "factor_weights": FACTOR_WEIGHTS,
        "assessment_levels": {
            "critical": f">= {LEVEL_CRITICAL}",
            "high": f">= {LEVEL_HIGH}",
            "moderate": f">= {LEVEL_MODERATE}",
            "low": f"< {LEVEL_MODERATE}",
        },
        "factor_status": {
            "normal": f"< {STATUS_NORMAL_UPPER}",
            "elevated": f"< {STATUS_ELEVATED_UPPER}",
            "high": f"< {STATUS_HIGH_UPPER}",
            "critical": f">= {STATUS_HIGH_UPPER}",
        },
        "forecast_levels": {
            "critical": f"> {FORECAST_LEVEL_CRITICAL}",
            "high": f"> {FORECAST_LEVEL_HIGH}",
            "moderate": f"> {FORECAST_LEVEL_MODERATE}",
            "low": f"<= {FORECAST_LEVEL_MODERATE}",
        },
        "decay_per_day": {
            "tsunami": TSUNAMI_DECAY,
            "earthquake": EARTHQUAKE_DECAY,
            "cyclone": CYCLONE_DECAY,
            "severe_weather": SEVERE_WEATHER_DECAY,
            "description": "risk × (1 − (day − 1) × slope), clamped to [0, 100]",
        },
        "confidence_range": [CONFIDENCE_MIN, CONFIDENCE_MAX],
        "recommendations": {
            **{f"> {bound}": actions for bound, actions in RECOMMENDATION_BANDS},
            "otherwise": BASELINE_RECOMMENDATIONS,
        },
    }
