"""
Error taxonomy and result values for upstream calls.

Upstream clients do not raise for expected failures (missing key, bad
status, unexpected JSON). They return `Ok` or `Failure` and the caller
branches on the variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class WeatherError(RuntimeError):
    """Base class for failures surfaced to API callers."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        raw_sample: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.raw_sample = raw_sample


class ConfigurationError(WeatherError):
    """A required credential is not configured."""
    pass


class UpstreamUnavailable(WeatherError):
    """Non-2xx status, transport failure or timeout."""
    pass


class MalformedResponse(WeatherError):
    """The provider answered with an unexpected body shape."""
    pass


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    error: WeatherError

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return str(self.error)


Result = Union[Ok[T], Failure]
