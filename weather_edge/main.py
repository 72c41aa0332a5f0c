"""
FastAPI entrypoint.

This file focuses on:
- routing
- request/response handling (CORS, client IP, status codes)
- wiring together settings + clients + cache
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from .aggregator import WeatherAggregator
from .cache import InMemoryCacheStore
from .clients import AdviceService, AmapClient, CompletionClient, QWeatherClient
from .generate import GenerationService
from .log_setup import configure_logging
from .schemas import GenerateRequest
from .settings import settings

logger = configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

# Clients and the edge cache are constructed once per process.
cache = InMemoryCacheStore(ttl_seconds=settings.cache_ttl_seconds, max_entries=settings.cache_max_entries)
amap = AmapClient(settings.amap_api_key, timeout_s=settings.upstream_timeout_seconds)
qweather = QWeatherClient(settings.qweather_api_key, timeout_s=settings.upstream_timeout_seconds)
advice_completion = CompletionClient(
    settings.advice_api_key,
    endpoint=settings.completion_endpoint,
    model=settings.completion_model,
    timeout_s=settings.completion_timeout_seconds,
    key_name="AI_SERVERLESS_API_KEY",
)
generate_completion = CompletionClient(
    settings.generate_api_key,
    endpoint=settings.completion_endpoint,
    model=settings.completion_model,
    timeout_s=settings.completion_timeout_seconds,
    key_name="XUNFEI_API_KEY",
)
aggregator = WeatherAggregator(amap, qweather, AdviceService(advice_completion), cache)
generation = GenerationService(generate_completion)


def get_aggregator() -> WeatherAggregator:
    """FastAPI dependency (overridden in tests)."""
    return aggregator


def get_generation_service() -> GenerationService:
    """FastAPI dependency (overridden in tests)."""
    return generation


def cors_headers(origin: Optional[str], methods: str = "GET, OPTIONS") -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


_FORWARDED_FOR_RE = re.compile(r"for=([^;,]+)", re.IGNORECASE)


def client_ip(request: Request) -> str:
    """
    Client address as seen by the edge proxy, checked in this order:
    X-Forwarded-For (first hop), X-Real-IP, CF-Connecting-IP, Forwarded.
    Empty when none is present; AMap then locates the calling address.
    """
    h = request.headers
    xff = h.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    for name in ("x-real-ip", "cf-connecting-ip"):
        value = h.get(name)
        if value:
            return value.strip()
    fwd = h.get("forwarded")
    if fwd:
        m = _FORWARDED_FOR_RE.search(fwd)
        if m:
            return re.sub(r'[\[\]"]', "", m.group(1)).strip()
    return ""


# -------------------------
# UI
# -------------------------

@app.get("/", response_class=HTMLResponse)
async def home(request: Request):
    """App shell: city search + last report."""
    return templates.TemplateResponse(request, "index.html", {"app_name": settings.app_name})


# -------------------------
# Weather API
# -------------------------

@app.get("/api/weather")
async def api_weather(
    request: Request,
    city: Optional[str] = None,
    agg: WeatherAggregator = Depends(get_aggregator),
):
    """
    Weather + advice for ?city= or, when omitted, the caller's IP location.
    Always 200: failures are reported through source="degraded" and `error`.
    """
    payload = await agg.handle(city, client_ip(request))
    return JSONResponse(payload.to_json(), headers=cors_headers(request.headers.get("origin")))


@app.options("/api/weather")
async def api_weather_preflight(request: Request):
    return Response(status_code=204, headers=cors_headers(request.headers.get("origin")))


@app.api_route("/api/weather", methods=["POST", "PUT", "PATCH", "DELETE", "HEAD"])
async def api_weather_not_allowed(request: Request):
    return JSONResponse(
        {"error": "Method Not Allowed"},
        status_code=405,
        headers=cors_headers(request.headers.get("origin")),
    )


# -------------------------
# Generation API
# -------------------------

@app.api_route("/api/generate", methods=["GET", "POST"])
async def api_generate(request: Request, svc: GenerationService = Depends(get_generation_service)):
    """
    Short copy for a keyword.
    POST {"prompt": ...} or GET ?prompt=...; ?debug=1 adds diagnostics.
    """
    prompt: Optional[str] = request.query_params.get("prompt")
    if request.method == "POST":
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            try:
                prompt = GenerateRequest.model_validate(body).prompt or prompt
            except ValidationError:
                logger.info("ignoring malformed /api/generate body")

    debug = request.query_params.get("debug") in ("1", "true") or settings.generate_debug
    status, result = await svc.generate(prompt, debug=debug)
    return JSONResponse(
        result.model_dump(exclude_none=True),
        status_code=status,
        headers=cors_headers("*", "GET, POST, OPTIONS"),
    )


@app.options("/api/generate")
async def api_generate_preflight():
    return Response(status_code=204, headers=cors_headers("*", "GET, POST, OPTIONS"))
