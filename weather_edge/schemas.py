"""
Pydantic schemas.

Defines the JSON contract of the edge endpoints. Field names on the wire
are camelCase (what the browser client reads); Python attributes stay
snake_case and `populate_by_name` lets both spellings in.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class WeatherReading(BaseModel):
    """Current conditions merged with the first hourly forecast slot."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    temp: float = 0
    humidity: float = 0
    precip_probability: float = Field(0, alias="precipProbability")
    wind_scale: float = Field(0, alias="windScale")


# Placeholder used whenever live data cannot be obtained.
DEGRADED_READING = WeatherReading(temp=20, humidity=50, precip_probability=20, wind_scale=3)
UNKNOWN_CITY = "未知城市"


class IpLocation(BaseModel):
    """Result of an IP geolocation lookup."""
    city: str = ""
    province: str = ""
    adcode: str = ""


class LocationMeta(BaseModel):
    """Provider location record returned by the city lookup."""
    id: str
    name: str = ""
    lat: Optional[str] = None
    lon: Optional[str] = None
    adm1: Optional[str] = None
    adm2: Optional[str] = None


class CityResolution(BaseModel):
    """
    Which city a request is about.
    location_id stays None until the provider lookup succeeds.
    """
    model_config = ConfigDict(populate_by_name=True)

    city: str
    location_id: Optional[str] = Field(None, alias="locationId")
    metadata: Optional[LocationMeta] = None


class ResponsePayload(BaseModel):
    """Body of GET /api/weather, on both live and degraded paths."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    city: str
    qweather_location: Optional[LocationMeta] = Field(None, alias="qweatherLocation")
    weather: WeatherReading
    advice: List[str]
    source: Literal["qweather", "degraded"]
    timestamp: str
    cached: bool = False
    error: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        """Wire representation (camelCase, optional fields omitted when unset)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class GenerateRequest(BaseModel):
    prompt: Optional[str] = None


class GenerateMeta(BaseModel):
    """Diagnostics attached to /api/generate responses in debug mode."""
    ok: bool
    status: Optional[int] = None
    latency_ms: Optional[int] = None
    endpoint: str
    input_len: int
    raw_sample: Optional[str] = None


class GenerateResponse(BaseModel):
    content: str
    meta: Optional[GenerateMeta] = None
