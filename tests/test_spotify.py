import asyncio
import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest

from moodflow.spotify import (
    AuthError,
    SearchClient,
    SearchError,
    Token,
    TokenCache,
    Track,
    SEARCH_URL,
    TOKEN_URL,
)


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TokenEndpoint:
    def __init__(self, expires_in=3600, status=200):
        self.expires_in = expires_in
        self.status = status
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": "invalid_client"})
        return httpx.Response(
            200,
            json={
                "access_token": f"tok-{len(self.requests)}",
                "token_type": "Bearer",
                "expires_in": self.expires_in,
            },
        )


def _cache(endpoint, clock=None):
    return TokenCache(
        "client-id",
        "client-secret",
        transport=httpx.MockTransport(endpoint),
        clock=clock or Clock(),
    )


def test_token_reused_within_lifetime():
    endpoint = TokenEndpoint(expires_in=3600)
    clock = Clock(1000.0)
    cache = _cache(endpoint, clock)

    first = asyncio.run(cache.get_token())
    clock.now = 1000.0 + 3599
    second = asyncio.run(cache.get_token())

    assert first == second == Token("tok-1", 4600.0)
    assert len(endpoint.requests) == 1


def test_token_refreshed_after_expiry():
    endpoint = TokenEndpoint(expires_in=3600)
    clock = Clock(1000.0)
    cache = _cache(endpoint, clock)

    first = asyncio.run(cache.get_token())
    clock.now = first.expires_at  # not strictly before expiry any more
    second = asyncio.run(cache.get_token())

    assert second.value == "tok-2"
    assert second.expires_at == 4600.0 + 3600
    assert len(endpoint.requests) == 2
    assert cache.token is second


def test_token_request_shape():
    endpoint = TokenEndpoint()
    asyncio.run(_cache(endpoint).get_token())

    request = endpoint.requests[0]
    assert str(request.url) == TOKEN_URL
    assert request.method == "POST"
    expected = base64.b64encode(b"client-id:client-secret").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"
    assert parse_qs(request.content.decode()) == {"grant_type": ["client_credentials"]}


def test_concurrent_misses_each_exchange():
    endpoint = TokenEndpoint()

    async def slow_endpoint(request):
        await asyncio.sleep(0)
        return endpoint(request)

    cache = _cache(slow_endpoint)

    async def race():
        return await asyncio.gather(cache.get_token(), cache.get_token())

    a, b = asyncio.run(race())

    assert len(endpoint.requests) == 2
    assert {a.value, b.value} == {"tok-1", "tok-2"}
    assert cache.token in (a, b)


def test_rejected_credentials_raise_auth_error():
    cache = _cache(TokenEndpoint(status=401))
    with pytest.raises(AuthError):
        asyncio.run(cache.get_token())
    assert cache.token is None


def test_transport_failure_raises_auth_error():
    def unreachable(request):
        raise httpx.ConnectError("no route", request=request)

    with pytest.raises(AuthError):
        asyncio.run(_cache(unreachable).get_token())


def test_malformed_token_body_raises_auth_error():
    cache = _cache(lambda request: httpx.Response(200, json={"token_type": "Bearer"}))
    with pytest.raises(AuthError):
        asyncio.run(cache.get_token())


# ---------------------------------------------------------------- search

ITEMS = [
    {
        "name": "Midnight City",
        "artists": [{"name": "M83"}],
        "external_urls": {"spotify": "https://open.spotify.com/track/1"},
    },
    {
        "name": "Stay",
        "artists": [{"name": "The Kid LAROI"}, {"name": "Justin Bieber"}],
        "external_urls": {"spotify": "https://open.spotify.com/track/2"},
    },
]


class SearchEndpoint:
    def __init__(self, items=None, status=200):
        self.items = items if items is not None else ITEMS
        self.status = status
        self.requests = []

    def __call__(self, request):
        if str(request.url) == TOKEN_URL:
            return httpx.Response(200, json={"access_token": "abc", "expires_in": 3600})
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": {"status": self.status}})
        return httpx.Response(200, json={"tracks": {"items": self.items}})


def _client(endpoint):
    transport = httpx.MockTransport(endpoint)
    tokens = TokenCache("id", "secret", transport=transport)
    return SearchClient(tokens, transport=transport)


def test_search_maps_items_in_order():
    endpoint = SearchEndpoint()
    tracks = asyncio.run(_client(endpoint).search("night drive", 12))

    assert tracks == [
        Track("Midnight City", "M83", "https://open.spotify.com/track/1"),
        Track("Stay", "The Kid LAROI, Justin Bieber", "https://open.spotify.com/track/2"),
    ]


def test_search_request_parameters():
    endpoint = SearchEndpoint()
    asyncio.run(_client(endpoint).search("rainy day acoustic", 8))

    request = endpoint.requests[0]
    assert str(request.url).startswith(SEARCH_URL)
    assert request.headers["Authorization"] == "Bearer abc"
    assert request.url.params["q"] == "rainy day acoustic"
    assert request.url.params["type"] == "track"
    assert request.url.params["limit"] == "8"


def test_search_limit_is_clamped_to_page_size():
    endpoint = SearchEndpoint()
    asyncio.run(_client(endpoint).search("x", 500))
    assert endpoint.requests[0].url.params["limit"] == "50"


def test_search_no_matches_is_empty_not_error():
    assert asyncio.run(_client(SearchEndpoint(items=[])).search("zzzz", 12)) == []


def test_search_backend_failure_raises_search_error():
    with pytest.raises(SearchError):
        asyncio.run(_client(SearchEndpoint(status=502)).search("x", 12))


def test_search_propagates_auth_error():
    def handler(request):
        return httpx.Response(400, json={"error": "invalid_client"})

    with pytest.raises(AuthError):
        asyncio.run(_client(handler).search("x", 12))


def test_track_to_dict():
    t = Track.from_item(ITEMS[1])
    assert json.loads(json.dumps(t.to_dict())) == {
        "title": "Stay",
        "artist": "The Kid LAROI, Justin Bieber",
        "url": "https://open.spotify.com/track/2",
    }


def test_track_tolerates_null_fields():
    t = Track.from_item({"name": None, "artists": [{"name": None}, {"name": "Dua Lipa"}], "external_urls": None})
    assert t == Track("", ", Dua Lipa", "")
