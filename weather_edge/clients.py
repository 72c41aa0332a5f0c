"""
Upstream clients.

Each provider gets a thin httpx wrapper kept apart from the FastAPI layer:
- easier to test in isolation (respx)
- the aggregator only sees Ok/Failure results, never raw exceptions

Endpoints used:
- AMap IP location:       /v3/ip?ip=...&key=KEY
- QWeather city lookup:   /v2/city/lookup?location=...&key=KEY
- QWeather current:       /v7/weather/now?location=ID&key=KEY
- QWeather hourly:        /v7/weather/24h?location=ID&key=KEY
- Chat completions:       POST {endpoint} (OpenAI-compatible body)
"""

from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .advice import normalize_advice, split_completion_text
from .errors import ConfigurationError, Failure, MalformedResponse, Ok, Result, UpstreamUnavailable
from .schemas import IpLocation, LocationMeta, WeatherReading

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def _to_number(value: Any, default: float = 0.0) -> float:
    """
    Coerce a provider value to float.
    Providers send numbers as strings; wind scale may arrive as a range ("3-4"),
    in which case the lower bound is used.
    """
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        match = _NUMBER_RE.search(str(value))
        if not match:
            return default
        number = float(match.group(0))
    return number if math.isfinite(number) else default


async def _get_json(url: str, params: Dict[str, Any], timeout_s: float, context: str) -> Result[Dict[str, Any]]:
    """GET a JSON document, mapping every failure mode onto a Failure."""
    try:
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            r = await client.get(url, params=params)
    except httpx.HTTPError as e:
        logger.debug("%s transport error: %s", context, e)
        return Failure(UpstreamUnavailable(f"{context} failed: {e.__class__.__name__}"))

    if r.status_code != 200:
        logger.debug("%s returned %s", context, r.status_code)
        return Failure(UpstreamUnavailable(f"{context} failed ({r.status_code})", status_code=r.status_code))

    try:
        data = r.json()
    except ValueError:
        return Failure(MalformedResponse(f"{context} returned invalid JSON", status_code=r.status_code))
    if not isinstance(data, dict):
        return Failure(MalformedResponse(f"{context} returned unexpected JSON", status_code=r.status_code))
    return Ok(data)


class AmapClient:
    """AMap (Gaode) IP geolocation."""

    def __init__(self, api_key: Optional[str], timeout_s: float = 8.0,
                 base: str = "https://restapi.amap.com"):
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.base = base

    async def locate_ip(self, ip: str) -> Result[IpLocation]:
        """
        Resolve a client IP to a city. An empty ip lets AMap use the caller's
        address. When the city is blank (e.g. municipalities), the province
        is used instead.
        """
        if not self.api_key:
            return Failure(ConfigurationError("Missing AMAP_API_KEY"))

        res = await _get_json(
            f"{self.base}/v3/ip",
            {"ip": ip, "key": self.api_key},
            self.timeout_s,
            "AMap IP locate",
        )
        if not res.ok:
            return res
        data = res.value
        if data.get("status") != "1":
            return Failure(MalformedResponse("AMap status != 1"))

        # AMap sends [] instead of "" for unknown fields.
        city = data.get("city") if isinstance(data.get("city"), str) else ""
        province = data.get("province") if isinstance(data.get("province"), str) else ""
        adcode = data.get("adcode") if isinstance(data.get("adcode"), str) else ""
        return Ok(IpLocation(city=city or province, province=province, adcode=adcode))


class QWeatherClient:
    """QWeather city lookup plus current and hourly conditions."""

    def __init__(self, api_key: Optional[str], timeout_s: float = 8.0,
                 geo_base: str = "https://geoapi.qweather.com",
                 weather_base: str = "https://devapi.qweather.com"):
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.geo_base = geo_base
        self.weather_base = weather_base

    def _missing_key(self) -> Optional[Failure]:
        if not self.api_key:
            return Failure(ConfigurationError("Missing QWEATHER_API_KEY"))
        return None

    async def lookup_city(self, name: str) -> Result[LocationMeta]:
        """Resolve a city name to the provider's location id (top match)."""
        missing = self._missing_key()
        if missing:
            return missing

        res = await _get_json(
            f"{self.geo_base}/v2/city/lookup",
            {"location": name, "key": self.api_key},
            self.timeout_s,
            "QWeather city lookup",
        )
        if not res.ok:
            return res
        data = res.value
        locations = data.get("location") or []
        if data.get("code") != "200" or not isinstance(locations, list) or not locations:
            return Failure(MalformedResponse("QWeather city not found"))

        best = locations[0]
        if not isinstance(best, dict) or not best.get("id"):
            return Failure(MalformedResponse("QWeather city lookup returned no id"))
        return Ok(LocationMeta(
            id=str(best["id"]),
            name=str(best.get("name") or ""),
            **{k: str(best[k]) for k in ("lat", "lon", "adm1", "adm2") if best.get(k) is not None},
        ))

    async def now(self, location_id: str) -> Result[WeatherReading]:
        """
        Current conditions. The returned reading has precip_probability=0;
        that field comes from the hourly forecast.
        """
        missing = self._missing_key()
        if missing:
            return missing

        res = await _get_json(
            f"{self.weather_base}/v7/weather/now",
            {"location": location_id, "key": self.api_key},
            self.timeout_s,
            "QWeather now",
        )
        if not res.ok:
            return res
        data = res.value
        current = data.get("now")
        if data.get("code") != "200" or not isinstance(current, dict):
            return Failure(MalformedResponse("QWeather now invalid"))

        return Ok(WeatherReading(
            temp=_to_number(current.get("temp")),
            humidity=_to_number(current.get("humidity")),
            wind_scale=_to_number(current.get("windScale")),
        ))

    async def hourly(self, location_id: str) -> Result[float]:
        """Precipitation probability (%) of the first hourly slot."""
        missing = self._missing_key()
        if missing:
            return missing

        res = await _get_json(
            f"{self.weather_base}/v7/weather/24h",
            {"location": location_id, "key": self.api_key},
            self.timeout_s,
            "QWeather hourly",
        )
        if not res.ok:
            return res
        data = res.value
        hours = data.get("hourly") or []
        if data.get("code") != "200" or not isinstance(hours, list) or not hours or not isinstance(hours[0], dict):
            return Failure(MalformedResponse("QWeather hourly invalid"))

        first = hours[0]
        raw = first["precipProb"] if "precipProb" in first else first.get("pop")
        return Ok(_to_number(raw))


@dataclass(frozen=True)
class CompletionReply:
    content: str
    status: int
    latency_ms: int
    raw_sample: str


class CompletionClient:
    """
    OpenAI-compatible chat completions (iFlytek Spark MaaS by default).

    The reply text is read from choices[0].message.content, falling back to
    output.text; anything else is a MalformedResponse.
    """

    def __init__(self, api_key: Optional[str], endpoint: str, model: str = "general",
                 timeout_s: float = 10.0, key_name: str = "AI_SERVERLESS_API_KEY"):
        self.api_key = api_key
        self.endpoint = endpoint
        self.model = model
        self.timeout_s = timeout_s
        self.key_name = key_name

    async def chat(self, messages: List[Dict[str, str]], temperature: Optional[float] = None,
                   max_tokens: Optional[int] = None) -> Result[CompletionReply]:
        if not self.api_key:
            return Failure(ConfigurationError(f"Missing {self.key_name}"))

        body: Dict[str, Any] = {"model": self.model, "messages": messages}
        if temperature is not None:
            body["temperature"] = temperature
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        headers = {"Authorization": f"Bearer {self.api_key}"}

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                r = await client.post(self.endpoint, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.debug("completion transport error: %s", e)
            return Failure(UpstreamUnavailable(f"Completion request failed: {e.__class__.__name__}"))
        latency_ms = int((time.monotonic() - started) * 1000)
        raw_sample = r.text[:200]

        if not r.is_success:
            return Failure(UpstreamUnavailable(
                f"Completion request failed ({r.status_code})",
                status_code=r.status_code,
                raw_sample=raw_sample,
            ))

        try:
            data = r.json()
        except ValueError:
            return Failure(MalformedResponse(
                "Completion returned invalid JSON", status_code=r.status_code, raw_sample=raw_sample,
            ))

        content = self._extract_content(data)
        if content is None:
            return Failure(MalformedResponse(
                "Completion response format unknown", status_code=r.status_code, raw_sample=raw_sample,
            ))

        logger.debug("completion ok in %sms", latency_ms)
        return Ok(CompletionReply(content=content, status=r.status_code,
                                  latency_ms=latency_ms, raw_sample=raw_sample))

    @staticmethod
    def _extract_content(data: Any) -> Optional[str]:
        """
        First non-empty text among the known field paths. A known path holding
        an empty string yields "" (a blank reply), not a format error.
        """
        if not isinstance(data, dict):
            return None
        found: List[str] = []
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                found.append(message["content"])
        output = data.get("output")
        if isinstance(output, dict) and isinstance(output.get("text"), str):
            found.append(output["text"])
        if not found:
            return None
        return next((text for text in found if text), "")


ADVICE_SYSTEM_PROMPT = "请用简洁中文分点输出，总字数≤50，单条≤30；结合温度、降水概率、风力给穿搭与出行建议"


class AdviceService:
    """Localized advice from the completion provider, normalized to the length budget."""

    def __init__(self, completion: CompletionClient):
        self.completion = completion

    @staticmethod
    def build_messages(city: str, reading: WeatherReading) -> List[Dict[str, str]]:
        user = (
            f"城市:{city}; 温度:{reading.temp:g}℃; 湿度:{reading.humidity:g}%; "
            f"降水概率:{reading.precip_probability:g}%; 风力:{reading.wind_scale:g}级; 按规则生成本地化建议"
        )
        return [
            {"role": "system", "content": ADVICE_SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ]

    async def advise(self, city: str, reading: WeatherReading) -> Result[List[str]]:
        res = await self.completion.chat(self.build_messages(city, reading), temperature=0.3, max_tokens=120)
        if not res.ok:
            return res
        items = normalize_advice(split_completion_text(res.value.content))
        if not items:
            return Failure(MalformedResponse("Completion produced no usable advice"))
        return Ok(items)
