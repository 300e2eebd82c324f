"""
FastAPI routes: pattern analysis, per-day hazard risk and weekly forecast.

Endpoints:
    POST /api/v1/prediction/patterns         → trend / anomaly / volatility summary
    POST /api/v1/prediction/risk             → four hazard scores for one day
    POST /api/v1/prediction/weekly           → forecast from supplied readings
    GET  /api/v1/prediction/weekly           → forecast from the data provider
    GET  /api/v1/prediction/readings/latest  → newest provider readings
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from backend.app.api.schemas import (
    LatestReadingsResponse,
    PatternAnalysisResponse,
    ReadingsRequest,
    RiskRequest,
    RiskResponse,
    WeeklyForecastRequest,
    WeeklyForecastResponse,
    to_readings,
)
from backend.app.core.config import settings
from backend.app.core.errors import ValidationError
from backend.app.ml.hazard_risk import (
    calculate_risk,
    classify_forecast_level,
    generate_recommendations,
    generate_weekly_forecast,
)
from backend.app.ml.pattern_analysis import analyze_patterns
from backend.app.monitoring.background_jobs import (
    ScheduledAssessmentRunner,
    get_assessment_runner,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/prediction", tags=["prediction"])


@router.post(
    "/patterns",
    response_model=PatternAnalysisResponse,
    summary="Analyse Climate Patterns",
    description=(
        "Classifies the temperature, pressure, humidity and wind trends of a "
        "reading window and counts 2σ anomalies and volatility."
    ),
)
async def analyze_reading_patterns(req: ReadingsRequest):
    readings = to_readings(req.readings)
    patterns = analyze_patterns(readings)
    return {"reading_count": len(readings), "patterns": patterns.to_dict()}


@router.post(
    "/risk",
    response_model=RiskResponse,
    summary="Score Hazard Risk for One Day",
)
async def score_hazard_risk(req: RiskRequest):
    """
    Compute tsunami / earthquake / cyclone / severe-weather risk.

    Accepts either raw readings (analysed first) or a pattern summary,
    plus a forecast `day_offset` ≥ 1.  Overall risk is the maximum of
    the four hazards.
    """
    if (req.readings is None) == (req.patterns is None):
        raise ValidationError(
            "Provide exactly one of 'readings' or 'patterns'",
            field="readings",
        )

    if req.patterns is not None:
        patterns = req.patterns.to_summary()
    else:
        patterns = analyze_patterns(to_readings(req.readings))

    risk = calculate_risk(patterns, req.day_offset)
    logger.info(
        "Risk for day %d: overall %.1f",
        req.day_offset, risk.overall_risk,
        extra={"day_offset": req.day_offset, "overall_risk": risk.overall_risk},
    )

    return {
        "day_offset": req.day_offset,
        "risk": risk.to_dict(),
        "risk_level": classify_forecast_level(risk.overall_risk).value,
        "primary_threat": risk.primary_threat.value,
        "recommendations": generate_recommendations(risk.overall_risk),
        "patterns": patterns.to_dict(),
    }


@router.post(
    "/weekly",
    response_model=WeeklyForecastResponse,
    summary="Weekly Forecast from Readings",
)
async def weekly_forecast_from_readings(req: WeeklyForecastRequest):
    forecast = generate_weekly_forecast(
        to_readings(req.readings), req.days, req.start_date,
    )
    return forecast.to_dict()


@router.get(
    "/weekly",
    response_model=WeeklyForecastResponse,
    summary="Weekly Forecast from Stored Readings",
    description="Pulls the lookback window from the climate data provider.",
)
async def weekly_forecast(
    lookback_days: int = Query(settings.LOOKBACK_DAYS, ge=1, le=90),
    days: int = Query(settings.FORECAST_DAYS, ge=1, le=30),
    runner: ScheduledAssessmentRunner = Depends(get_assessment_runner),
):
    readings = await runner.fetch_snapshot(lookback_days)
    return generate_weekly_forecast(readings, days).to_dict()


@router.get(
    "/readings/latest",
    response_model=LatestReadingsResponse,
    summary="Latest Stored Readings",
)
async def latest_readings(
    limit: int = Query(settings.LATEST_READINGS_LIMIT, ge=1, le=1000),
    runner: ScheduledAssessmentRunner = Depends(get_assessment_runner),
):
    readings = await runner.fetch_latest(limit)
    return {"count": len(readings), "readings": [r.to_dict() for r in readings]}
