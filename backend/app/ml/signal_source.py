"""
signal_source.py — Injectable source for placeholder risk signals.

Some assessment factors (seismic indicators, historical pattern matching,
ocean currents / salinity) have no real data feed behind them.  Their
values come from a SignalSource so the deterministic parts of the
assessment can be tested without randomness.

    RandomSignalSource  — uniform draws; a STUB, not a seismic or
                          oceanographic model.
    FixedSignalSource   — deterministic values for tests and demos.

Every signal is requested as (name, upper) and must fall in [0, upper].
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

import numpy as np

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Signal names requested by the assessment factors
SEISMIC_BASE = "seismic_base"
SEISMIC_RECENT_ACTIVITY = "seismic_recent_activity"
SEISMIC_TECTONIC_STRESS = "seismic_tectonic_stress"
OCEAN_CURRENTS = "ocean_currents"
HISTORICAL_SEASONAL = "historical_seasonal"
HISTORICAL_CYCLICAL = "historical_cyclical"
HISTORICAL_RECENT_EVENTS = "historical_recent_events"


class SignalSource(Protocol):
    """Anything that can produce a named signal value in [0, upper]."""

    def sample(self, name: str, upper: float) -> float:
        ...


class RandomSignalSource:
    """
    Uniform placeholder signals.

    NOT a model — stands in for seismic / oceanic feeds that do not exist
    yet.  Seed it for reproducible demos.
    """

    is_placeholder = True

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self.rng = np.random.RandomState(seed)

    def sample(self, name: str, upper: float) -> float:
        value = float(self.rng.uniform(0.0, upper))
        logger.debug("Placeholder signal %s = %.2f (upper %.1f)", name, value, upper)
        return value


class FixedSignalSource:
    """
    Deterministic signals: `fraction × upper`, or an explicit override.

    >>> FixedSignalSource(0.5).sample("seismic_base", 40.0)
    20.0
    """

    is_placeholder = False

    def __init__(self, fraction: float = 0.0, overrides: Optional[Dict[str, float]] = None):
        if not 0.0 <= fraction <= 1.0:
            raise ValueError(f"fraction must be in [0, 1], got {fraction}")
        self.fraction = fraction
        self.overrides = dict(overrides or {})

    def sample(self, name: str, upper: float) -> float:
        if name in self.overrides:
            return max(0.0, min(upper, self.overrides[name]))
        return self.fraction * upper


_default_source: Optional[RandomSignalSource] = None


def get_signal_source() -> SignalSource:
    """Process-wide placeholder source, seeded from SIGNAL_SEED."""
    global _default_source
    if _default_source is None:
        _default_source = RandomSignalSource(settings.SIGNAL_SEED)
        logger.warning(
            "Seismic, ocean-current and historical factors use placeholder signals (seed=%s)",
            settings.SIGNAL_SEED,
        )
    return _default_source
