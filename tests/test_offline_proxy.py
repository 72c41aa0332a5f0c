"""Tests for the client-side offline cache transport."""

from __future__ import annotations

import asyncio

import httpx

from weather_edge.offline_proxy import DATA_CACHE, STATIC_CACHE, OfflineCacheTransport, ResponseStore, StoredResponse

BASE = "https://edge.test"


class FlakyNetwork:
    """MockTransport handler that can be switched offline."""

    def __init__(self):
        self.online = True
        self.calls = []
        self.counter = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        if not self.online:
            raise httpx.ConnectError("network down", request=request)
        self.counter += 1
        if request.url.path.startswith("/api/"):
            return httpx.Response(200, json={"city": request.url.params.get("city", ""), "n": self.counter})
        if request.url.path == "/missing":
            return httpx.Response(404, text="nope")
        return httpx.Response(200, text=f"shell {self.counter}", headers={"content-type": "text/html"})


def _run(network: FlakyNetwork, store: ResponseStore, steps):
    async def go():
        transport = OfflineCacheTransport(httpx.MockTransport(network), store=store)
        async with httpx.AsyncClient(transport=transport, base_url=BASE) as client:
            return await steps(client, transport)
    return asyncio.run(go())


def test_api_network_first_then_offline_replay():
    network, store = FlakyNetwork(), ResponseStore()

    async def steps(client, _):
        first = await client.get("/api/weather", params={"city": "杭州"})
        second = await client.get("/api/weather", params={"city": "杭州"})
        network.online = False
        offline = await client.get("/api/weather", params={"city": "杭州"})
        return first, second, offline

    first, second, offline = _run(network, store, steps)
    assert first.json()["n"] == 1
    # network first: a fresh response even though one is stored
    assert second.json()["n"] == 2
    assert offline.status_code == 200
    assert offline.json() == {"city": "杭州", "n": 2}
    assert store.match(f"{BASE}/api/weather?city=%E6%9D%AD%E5%B7%9E", DATA_CACHE) is not None


def test_api_offline_without_copy_is_503():
    network, store = FlakyNetwork(), ResponseStore()
    network.online = False

    async def steps(client, _):
        return await client.get("/api/weather", params={"city": "上海"})

    r = _run(network, store, steps)
    assert r.status_code == 503
    assert r.json() == {"error": "offline"}


def test_api_copy_is_per_exact_url():
    network, store = FlakyNetwork(), ResponseStore()

    async def steps(client, _):
        await client.get("/api/weather", params={"city": "杭州"})
        network.online = False
        return await client.get("/api/weather", params={"city": "上海"})

    assert _run(network, store, steps).status_code == 503


def test_static_cache_first():
    network, store = FlakyNetwork(), ResponseStore()

    async def steps(client, _):
        first = await client.get("/index.html")
        second = await client.get("/index.html")
        network.online = False
        third = await client.get("/index.html")
        return first, second, third

    first, second, third = _run(network, store, steps)
    assert first.text == second.text == third.text == "shell 1"
    assert len(network.calls) == 1
    assert store.match(f"{BASE}/index.html", STATIC_CACHE) is not None


def test_static_miss_while_offline_is_504():
    network, store = FlakyNetwork(), ResponseStore()
    network.online = False

    async def steps(client, _):
        return await client.get("/main.js")

    r = _run(network, store, steps)
    assert r.status_code == 504
    assert r.content == b""


def test_error_responses_are_not_stored():
    network, store = FlakyNetwork(), ResponseStore()

    async def steps(client, _):
        return await client.get("/missing")

    assert _run(network, store, steps).status_code == 404
    assert store.match(f"{BASE}/missing") is None


def test_non_get_passes_through():
    network, store = FlakyNetwork(), ResponseStore()

    async def steps(client, _):
        return await client.post("/api/generate", json={"prompt": "晴"})

    r = _run(network, store, steps)
    assert r.status_code == 200
    assert store.match(f"{BASE}/api/generate") is None


def test_precache_and_prune():
    network, store = FlakyNetwork(), ResponseStore()
    store.put("static-v0", f"{BASE}/old.js", StoredResponse(status_code=200, headers=[], content=b"{}"))

    async def steps(client, transport):
        await transport.precache([f"{BASE}/", f"{BASE}/index.html"])
        dropped = transport.prune()
        network.online = False
        page = await client.get("/")
        return dropped, page

    dropped, page = _run(network, store, steps)
    assert dropped == ["static-v0"]
    assert sorted(store.names()) == [STATIC_CACHE]
    assert page.status_code == 200
    assert page.text.startswith("shell")


class BrokenBody(httpx.AsyncByteStream):
    """Body that fails mid-read and records whether it was closed."""

    def __init__(self):
        self.closed = False

    async def __aiter__(self):
        yield b'{"city": '
        raise httpx.ReadError("connection reset")

    async def aclose(self) -> None:
        self.closed = True


def test_failed_body_read_closes_response_and_falls_back():
    body = BrokenBody()
    store = ResponseStore()

    async def go():
        transport = OfflineCacheTransport(httpx.MockTransport(lambda request: httpx.Response(200, stream=body)),
                                          store=store)
        async with httpx.AsyncClient(transport=transport, base_url=BASE) as client:
            return await client.get("/api/weather", params={"city": "杭州"})

    r = asyncio.run(go())
    assert body.closed is True
    assert r.status_code == 503
    assert r.json() == {"error": "offline"}
