"""
Weather aggregation.

Fallback chain for one request:
  cache -> live lookup (locate, lookup, now, hourly, advice) -> degraded default

Only fully live payloads are cached. Degraded payloads carry the error
message of the step that broke the live path. `handle` never raises.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from .advice import fallback_advice
from .cache import CacheStore
from .clients import AdviceService, AmapClient, QWeatherClient
from .errors import Failure
from .schemas import (
    DEGRADED_READING,
    UNKNOWN_CITY,
    CityResolution,
    ResponsePayload,
    WeatherReading,
)

logger = logging.getLogger(__name__)


def _utc_iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class LiveFailure:
    """A weather-critical step failed; `city` is what was known by then."""

    failure: Failure
    city: str = ""


class WeatherAggregator:
    def __init__(
        self,
        amap: AmapClient,
        qweather: QWeatherClient,
        advice: AdviceService,
        cache: CacheStore,
        clock: Callable[[], float] = time.time,
    ):
        self.amap = amap
        self.qweather = qweather
        self.advice = advice
        self.cache = cache
        self.clock = clock

    async def handle(self, city: Optional[str], client_ip: str = "") -> ResponsePayload:
        resolved = (city or "").strip()
        try:
            result = await self._live(resolved, client_ip)
        except Exception as e:
            logger.exception("unexpected error while aggregating weather")
            return self._degraded(resolved, str(e) or e.__class__.__name__)

        if isinstance(result, ResponsePayload):
            return result
        city_seen = result.city or resolved
        logger.warning("degraded payload for %r: %s", city_seen or UNKNOWN_CITY, result.failure.message)
        return self._degraded(city_seen, result.failure.message)

    async def _live(self, resolved: str, client_ip: str) -> Union[ResponsePayload, LiveFailure]:
        # 1) city from IP when none was given
        if not resolved:
            located = await self.amap.locate_ip(client_ip)
            if not located.ok:
                return LiveFailure(located)
            resolved = located.value.city

        # 2) cache, keyed by the resolved city string
        entry = self.cache.get(resolved)
        if entry is not None and self.cache.is_fresh(entry):
            logger.info("cache hit for %r", resolved)
            return entry.payload.model_copy(update={"cached": True}, deep=True)

        # 3) provider location id
        found = await self.qweather.lookup_city(resolved)
        if not found.ok:
            return LiveFailure(found, resolved)
        resolution = CityResolution(city=resolved, location_id=found.value.id, metadata=found.value)

        # 4) current conditions
        current = await self.qweather.now(resolution.location_id)
        if not current.ok:
            return LiveFailure(current, resolved)

        # 5) precipitation probability (non-fatal)
        hourly = await self.qweather.hourly(resolution.location_id)
        precip = hourly.value if hourly.ok else 0.0
        if not hourly.ok:
            logger.info("hourly forecast unavailable for %r: %s", resolved, hourly.message)
        reading = current.value.model_copy(update={"precip_probability": precip})

        # 7) advice, then cache and return
        advice = await self._advice(resolved, reading)
        payload = ResponsePayload(
            city=resolved,
            qweather_location=resolution.metadata,
            weather=reading,
            advice=advice,
            source="qweather",
            timestamp=_utc_iso(self.clock()),
            cached=False,
        )
        self.cache.put(resolved, payload)
        return payload

    async def _advice(self, city: str, reading: WeatherReading) -> List[str]:
        res = await self.advice.advise(city, reading)
        if res.ok:
            return res.value
        logger.info("using fallback advice for %r: %s", city, res.message)
        return fallback_advice(reading)

    def _degraded(self, resolved: str, error: str) -> ResponsePayload:
        # 6) fixed placeholder values, never cached
        return ResponsePayload(
            city=resolved or UNKNOWN_CITY,
            weather=DEGRADED_READING,
            advice=fallback_advice(DEGRADED_READING),
            source="degraded",
            timestamp=_utc_iso(self.clock()),
            cached=False,
            error=error,
        )
