"""
Climate data provider — read-only access to time-ordered station readings.

═══════════════════════════════════════════════════════════════════════════
PROVIDERS
═══════════════════════════════════════════════════════════════════════════

SupabaseClimateProvider
    Queries the hosted `climate_readings` table through its PostgREST
    endpoint:

        GET {SUPABASE_URL}/rest/v1/climate_readings
            ?select=*
            &recorded_at=gte.<now − days>
            &order=recorded_at.asc

    Headers: apikey + Authorization: Bearer <anon key>.

InMemoryClimateProvider
    Holds a fixed list of readings; used for local development, tests
    and when no hosted store is configured.

Every call returns a fresh immutable tuple (an explicit snapshot); the
scoring pipeline never sees shared mutable state.  Fetch failures are
raised as ExternalServiceError for the API layer to turn into a 502.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx

from backend.app.core.config import settings
from backend.app.core.errors import ExternalServiceError
from backend.app.ml.pattern_analysis import ClimateReading

logger = logging.getLogger(__name__)

ReadingSnapshot = Tuple[ClimateReading, ...]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class ClimateDataProvider(ABC):
    """Source of time-ordered climate readings."""

    name = "climate_provider"

    @abstractmethod
    async def get_historical_data(self, days: int = settings.LOOKBACK_DAYS) -> ReadingSnapshot:
        """Readings from the last `days` days, oldest first."""

    @abstractmethod
    async def get_latest_readings(self, limit: int = settings.LATEST_READINGS_LIMIT) -> ReadingSnapshot:
        """The newest `limit` readings, newest first."""

    async def close(self) -> None:
        """Release any held connections."""


# ═══════════════════════════════════════════════════════════════════════════
# In-memory provider
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryClimateProvider(ClimateDataProvider):
    """Serves readings from memory, filtered by a lookback window."""

    name = "in_memory"

    def __init__(
        self,
        readings: Iterable[ClimateReading] = (),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._readings: ReadingSnapshot = tuple(
            sorted(readings, key=lambda r: _as_utc(r.recorded_at))
        )
        self._clock = clock

    async def get_historical_data(self, days: int = settings.LOOKBACK_DAYS) -> ReadingSnapshot:
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")
        cutoff = self._clock() - timedelta(days=days)
        return tuple(r for r in self._readings if _as_utc(r.recorded_at) >= cutoff)

    async def get_latest_readings(self, limit: int = settings.LATEST_READINGS_LIMIT) -> ReadingSnapshot:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        return tuple(reversed(self._readings[-limit:]))


# ═══════════════════════════════════════════════════════════════════════════
# Hosted (PostgREST / Supabase) provider
# ═══════════════════════════════════════════════════════════════════════════

class SupabaseClimateProvider(ClimateDataProvider):
    """
    Read-only client for the hosted climate_readings table.

    Usage:
        provider = SupabaseClimateProvider(url, anon_key)
        readings = await provider.get_historical_data(15)
        await provider.close()
    """

    name = "supabase"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        table: str = settings.CLIMATE_READINGS_TABLE,
        timeout: float = settings.DATA_FETCH_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport
        self._clock = clock
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "apikey": self._api_key,
                    "Authorization": f"Bearer {self._api_key}",
                    "Accept": "application/json",
                },
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _fetch_rows(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        client = await self._get_client()
        try:
            response = await client.get(self.endpoint, params=params)
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                self.name,
                f"HTTP {e.response.status_code}",
                table=self.table,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.name, str(e) or type(e).__name__, table=self.table) from e
        except ValueError as e:
            raise ExternalServiceError(self.name, "response is not valid JSON", table=self.table) from e

        if not isinstance(rows, list):
            raise ExternalServiceError(self.name, "expected a JSON array of rows", table=self.table)
        return rows

    def _parse_rows(self, rows: List[Dict[str, Any]]) -> List[ClimateReading]:
        readings = []
        for row in rows:
            try:
                readings.append(ClimateReading.from_row(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed climate row %s: %s", row.get("id"), e)
        return readings

    async def get_historical_data(self, days: int = settings.LOOKBACK_DAYS) -> ReadingSnapshot:
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")
        since = self._clock() - timedelta(days=days)
        rows = await self._fetch_rows({
            "select": "*",
            "recorded_at": f"gte.{since.isoformat()}",
            "order": "recorded_at.asc",
        })
        readings = self._parse_rows(rows)
        logger.info(
            "Fetched %d readings for the last %d days",
            len(readings), days,
            extra={"reading_count": len(readings), "lookback_days": days},
        )
        return tuple(sorted(readings, key=lambda r: r.recorded_at))

    async def get_latest_readings(self, limit: int = settings.LATEST_READINGS_LIMIT) -> ReadingSnapshot:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        rows = await self._fetch_rows({
            "select": "*",
            "order": "recorded_at.desc",
            "limit": str(limit),
        })
        return tuple(self._parse_rows(rows))


# ═══════════════════════════════════════════════════════════════════════════
# Global Instance
# ═══════════════════════════════════════════════════════════════════════════

_provider: Optional[ClimateDataProvider] = None


def get_climate_provider() -> ClimateDataProvider:
    """Get or create the configured provider (hosted store if configured)."""
    global _provider
    if _provider is None:
        if settings.provider_configured:
            _provider = SupabaseClimateProvider(
                settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY,
            )
            logger.info("Climate provider: supabase (%s)", settings.SUPABASE_URL)
        else:
            _provider = InMemoryClimateProvider()
            logger.warning("SUPABASE_URL not set — using empty in-memory climate provider")
    return _provider


async def close_climate_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.close()
        _provider = None
