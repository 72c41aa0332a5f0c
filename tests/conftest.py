"""Shared test fixtures."""

from __future__ import annotations

from typing import Any, Dict

import httpx
import pytest
import respx

from weather_edge.aggregator import WeatherAggregator
from weather_edge.cache import InMemoryCacheStore
from weather_edge.clients import AdviceService, AmapClient, CompletionClient, QWeatherClient

AMAP_URL = "https://amap.test/v3/ip"
LOOKUP_URL = "https://geo.test/v2/city/lookup"
NOW_URL = "https://weather.test/v7/weather/now"
HOURLY_URL = "https://weather.test/v7/weather/24h"
COMPLETION_URL = "https://llm.test/v1/chat/completions"


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def amap_ok(city: str = "杭州市", province: str = "浙江省") -> Dict[str, Any]:
    return {"status": "1", "info": "OK", "province": province, "city": city, "adcode": "330100"}


def lookup_ok(name: str = "杭州") -> Dict[str, Any]:
    return {
        "code": "200",
        "location": [
            {"id": "101210101", "name": name, "lat": "30.28", "lon": "120.15",
             "adm1": "浙江省", "adm2": "杭州"},
        ],
    }


def now_ok(temp: str = "28", humidity: str = "60", wind: str = "4") -> Dict[str, Any]:
    return {"code": "200", "now": {"temp": temp, "humidity": humidity, "windScale": wind}}


def hourly_ok(pop: str = "40") -> Dict[str, Any]:
    return {"code": "200", "hourly": [{"fxTime": "2026-10-19T12:00+08:00", "pop": pop}]}


def completion_ok(content: str) -> Dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryCacheStore:
    return InMemoryCacheStore(ttl_seconds=3600, clock=clock)


def make_aggregator(cache, clock, amap_key="amap-key", qweather_key="qw-key", ai_key="ai-key") -> WeatherAggregator:
    amap = AmapClient(amap_key, base="https://amap.test")
    qweather = QWeatherClient(qweather_key, geo_base="https://geo.test", weather_base="https://weather.test")
    completion = CompletionClient(ai_key, endpoint=COMPLETION_URL)
    return WeatherAggregator(amap, qweather, AdviceService(completion), cache, clock=clock)


@pytest.fixture
def aggregator(cache, clock) -> WeatherAggregator:
    return make_aggregator(cache, clock)


@pytest.fixture
def upstream():
    """respx router with every provider answering successfully."""
    with respx.mock(assert_all_called=False) as router:
        router.get(url__startswith=AMAP_URL, name="amap").mock(
            return_value=httpx.Response(200, json=amap_ok()))
        router.get(url__startswith=LOOKUP_URL, name="lookup").mock(
            return_value=httpx.Response(200, json=lookup_ok()))
        router.get(url__startswith=NOW_URL, name="now").mock(
            return_value=httpx.Response(200, json=now_ok()))
        router.get(url__startswith=HOURLY_URL, name="hourly").mock(
            return_value=httpx.Response(200, json=hourly_ok()))
        router.post(COMPLETION_URL, name="completion").mock(
            return_value=httpx.Response(200, json=completion_ok("薄外套出行\n午后带伞")))
        yield router
