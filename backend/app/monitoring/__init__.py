"""
Periodic risk monitoring.

This module provides:
- Scheduled re-assessment against the climate data provider
- Bounded history of overall assessments
"""

from .background_jobs import (
    AssessmentHistory,
    RunResult,
    ScheduledAssessmentRunner,
    get_assessment_runner,
)

__all__ = [
    "AssessmentHistory",
    "RunResult",
    "ScheduledAssessmentRunner",
    "get_assessment_runner",
]
