"""
Client-side cache proxy.

An httpx transport that sits between a client and the edge service and
keeps a copy of what it has seen, so the last weather report is still
readable offline:

- /api/ requests: network first, stored copy when the network is down,
  else a synthetic 503 {"error": "offline"}
- everything else (the app shell): cache first, fetched and stored on a miss

Usage:
    transport = OfflineCacheTransport(httpx.AsyncHTTPTransport())
    async with httpx.AsyncClient(transport=transport, base_url=...) as client:
        r = await client.get("/api/weather", params={"city": "杭州"})
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

STATIC_CACHE = "static-v1"
DATA_CACHE = "data-v1"

# Stored bodies are already decoded.
_DROP_HEADERS = {"content-encoding", "content-length", "transfer-encoding"}


@dataclass(frozen=True)
class StoredResponse:
    status_code: int
    headers: List[Tuple[str, str]]
    content: bytes
    stored_at: float = field(default_factory=time.time)

    def to_response(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code=self.status_code,
            headers=self.headers,
            content=self.content,
            request=request,
        )


class ResponseStore:
    """Named caches of URL -> last stored response (in memory)."""

    def __init__(self):
        self._caches: Dict[str, Dict[str, StoredResponse]] = {}

    def open(self, name: str) -> Dict[str, StoredResponse]:
        return self._caches.setdefault(name, {})

    def names(self) -> List[str]:
        return list(self._caches)

    def delete(self, name: str) -> bool:
        return self._caches.pop(name, None) is not None

    def put(self, name: str, url: str, stored: StoredResponse) -> None:
        self.open(name)[url] = stored

    def match(self, url: str, name: Optional[str] = None) -> Optional[StoredResponse]:
        """Look a URL up in one cache, or across all of them."""
        if name is not None:
            return self._caches.get(name, {}).get(url)
        for cache in self._caches.values():
            if url in cache:
                return cache[url]
        return None


async def _snapshot(response: httpx.Response) -> StoredResponse:
    try:
        content = await response.aread()
    finally:
        await response.aclose()
    headers = [(k, v) for k, v in response.headers.multi_items() if k.lower() not in _DROP_HEADERS]
    return StoredResponse(status_code=response.status_code, headers=headers, content=content)


class OfflineCacheTransport(httpx.AsyncBaseTransport):
    def __init__(
        self,
        network: httpx.AsyncBaseTransport,
        store: Optional[ResponseStore] = None,
        api_prefix: str = "/api/",
        static_cache: str = STATIC_CACHE,
        data_cache: str = DATA_CACHE,
    ):
        self.network = network
        self.store = store if store is not None else ResponseStore()
        self.api_prefix = api_prefix
        self.static_cache = static_cache
        self.data_cache = data_cache

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        # Only GETs are cacheable.
        if request.method != "GET":
            return await self.network.handle_async_request(request)
        if request.url.path.startswith(self.api_prefix):
            return await self._network_first(request)
        return await self._cache_first(request)

    async def _network_first(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        try:
            response = await self.network.handle_async_request(request)
            stored = await _snapshot(response)
        except httpx.TransportError as e:
            cached = self.store.match(url)
            if cached is not None:
                logger.info("offline, serving stored copy of %s", url)
                return cached.to_response(request)
            logger.info("offline and nothing stored for %s (%s)", url, e.__class__.__name__)
            return httpx.Response(503, json={"error": "offline"}, request=request)
        if 200 <= stored.status_code < 300:
            self.store.put(self.data_cache, url, stored)
        return stored.to_response(request)

    async def _cache_first(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        cached = self.store.match(url)
        if cached is not None:
            return cached.to_response(request)
        try:
            response = await self.network.handle_async_request(request)
            stored = await _snapshot(response)
        except httpx.TransportError:
            return httpx.Response(504, content=b"", request=request)
        if 200 <= stored.status_code < 300:
            self.store.put(self.static_cache, url, stored)
        return stored.to_response(request)

    async def precache(self, urls: Iterable[str]) -> None:
        """Install step: fetch and store the app shell."""
        for url in urls:
            request = httpx.Request("GET", url)
            response = await self.network.handle_async_request(request)
            stored = await _snapshot(response)
            if 200 <= stored.status_code < 300:
                self.store.put(self.static_cache, str(request.url), stored)

    def prune(self) -> List[str]:
        """Activate step: drop caches left over from older versions."""
        keep = {self.static_cache, self.data_cache}
        dropped = [name for name in self.store.names() if name not in keep]
        for name in dropped:
            self.store.delete(name)
        return dropped

    async def aclose(self) -> None:
        await self.network.aclose()
