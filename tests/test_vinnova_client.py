"""Vinnova client tests against an in-process mock transport."""

from __future__ import annotations

import httpx
import pytest

from grant_sync.adapters.vinnova import (
    VinnovaApiError,
    VinnovaAuthError,
    VinnovaClient,
    VinnovaClientError,
    VinnovaNetworkError,
    VinnovaRateLimitError,
    VinnovaServerError,
)
from grant_sync.adapters.vinnova.cache import ResponseCache
from grant_sync.adapters.vinnova.client import extract_results
from grant_sync.config import VinnovaConfig
from tests.conftest import FakeClock, RecordingSleep, mock_http_client

BASE_URL = "https://data.vinnova.se/api"


class _Responder:
    """Return queued responses in order, repeating the last one."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return response


def _client(
    responder: _Responder,
    sleep: RecordingSleep,
    *,
    cache: ResponseCache | None = None,
    **kwargs,
) -> VinnovaClient:
    return VinnovaClient(
        BASE_URL,
        "test-key",
        http_client=mock_http_client(responder),
        sleep=sleep,
        cache=cache,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_two_failures_then_success_makes_three_requests(
    recording_sleep: RecordingSleep,
) -> None:
    responder = _Responder(
        httpx.Response(503),
        httpx.Response(502),
        httpx.Response(200, json={"results": [{"Diarienummer": "2024-001"}]}),
    )
    client = _client(responder, recording_sleep)

    payload = await client.get_utlysningar()

    assert payload == {"results": [{"Diarienummer": "2024-001"}]}
    assert len(responder.requests) == 3
    assert recording_sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_four_server_errors_raise_categorized_error(
    recording_sleep: RecordingSleep,
) -> None:
    responder = _Responder(httpx.Response(500))
    client = _client(responder, recording_sleep)

    with pytest.raises(VinnovaServerError) as exc_info:
        await client.get("/utlysningar")

    assert exc_info.value.status_code == 500
    assert len(responder.requests) == 4
    assert recording_sleep.delays == [2.0, 4.0, 8.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_auth_errors_are_not_retried(status: int, recording_sleep: RecordingSleep) -> None:
    responder = _Responder(httpx.Response(status))
    client = _client(responder, recording_sleep)

    with pytest.raises(VinnovaAuthError):
        await client.get("/ansokningar")

    assert len(responder.requests) == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_other_client_errors_are_not_retried(recording_sleep: RecordingSleep) -> None:
    responder = _Responder(httpx.Response(404, json={"message": "not found"}))
    client = _client(responder, recording_sleep)

    with pytest.raises(VinnovaApiError) as exc_info:
        await client.get("/finansieradeaktiviteter")

    assert exc_info.value.status_code == 404
    assert exc_info.value.data == {"message": "not found"}
    assert len(responder.requests) == 1


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after(recording_sleep: RecordingSleep) -> None:
    responder = _Responder(
        httpx.Response(429, headers={"Retry-After": "7"}),
        httpx.Response(429),
        httpx.Response(200, json=[]),
    )
    client = _client(responder, recording_sleep)

    assert await client.get("/utlysningar") == []
    assert recording_sleep.delays == [7.0, 4.0]


@pytest.mark.asyncio
async def test_rate_limit_exhausted(recording_sleep: RecordingSleep) -> None:
    responder = _Responder(httpx.Response(429, headers={"Retry-After": "1"}))
    client = _client(responder, recording_sleep, max_attempts=2)

    with pytest.raises(VinnovaRateLimitError) as exc_info:
        await client.get("/utlysningar")

    assert exc_info.value.retry_after == 1.0
    assert len(responder.requests) == 2


@pytest.mark.asyncio
async def test_network_errors_are_retried_then_categorized(
    recording_sleep: RecordingSleep,
) -> None:
    responder = _Responder(httpx.ConnectError("connection refused"))
    client = _client(responder, recording_sleep)

    with pytest.raises(VinnovaNetworkError):
        await client.get("/utlysningar")

    assert len(responder.requests) == 4


@pytest.mark.asyncio
async def test_timeout_is_a_network_error(recording_sleep: RecordingSleep) -> None:
    responder = _Responder(
        httpx.ReadTimeout("timed out"),
        httpx.Response(200, json={"results": []}),
    )
    client = _client(responder, recording_sleep)

    assert await client.get("/utlysningar") == {"results": []}
    assert recording_sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_non_json_body_is_an_api_error(recording_sleep: RecordingSleep) -> None:
    responder = _Responder(httpx.Response(200, text="<html>maintenance</html>"))
    client = _client(responder, recording_sleep)

    with pytest.raises(VinnovaApiError):
        await client.get("/utlysningar")
    assert len(responder.requests) == 1


@pytest.mark.asyncio
async def test_sends_subscription_key_and_params(recording_sleep: RecordingSleep) -> None:
    responder = _Responder(httpx.Response(200, json=[]))
    client = _client(responder, recording_sleep)

    await client.get("/utlysningar", {"updated_after": "2024-01-01T00:00:00+00:00"})

    request = responder.requests[0]
    assert request.headers["Ocp-Apim-Subscription-Key"] == "test-key"
    assert request.headers["Accept"] == "application/json"
    assert request.url.path == "/api/utlysningar"
    assert request.url.params["updated_after"] == "2024-01-01T00:00:00+00:00"


@pytest.mark.asyncio
async def test_bearer_token_from_provider(recording_sleep: RecordingSleep) -> None:
    class _StaticTokens:
        invalidated = False

        async def get_token(self) -> str:
            return "token-123"

        def invalidate(self) -> None:
            self.invalidated = True

    tokens = _StaticTokens()
    responder = _Responder(httpx.Response(401))
    client = _client(responder, recording_sleep, token_provider=tokens)

    with pytest.raises(VinnovaAuthError):
        await client.get("/utlysningar")

    assert responder.requests[0].headers["Authorization"] == "Bearer token-123"
    assert tokens.invalidated


class TestResponseCache:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(
        self, recording_sleep: RecordingSleep, clock: FakeClock
    ) -> None:
        responder = _Responder(httpx.Response(200, json={"results": [1]}))
        client = _client(responder, recording_sleep, cache=ResponseCache(120, clock=clock))

        first = await client.get("/utlysningar", {"limit": 10})
        clock.advance(119)
        second = await client.get("/utlysningar", {"limit": 10})

        assert first == second
        assert len(responder.requests) == 1

    @pytest.mark.asyncio
    async def test_hits_do_not_extend_ttl(
        self, recording_sleep: RecordingSleep, clock: FakeClock
    ) -> None:
        responder = _Responder(httpx.Response(200, json={"results": [1]}))
        client = _client(responder, recording_sleep, cache=ResponseCache(120, clock=clock))

        await client.get("/utlysningar")
        clock.advance(100)
        await client.get("/utlysningar")
        clock.advance(20)
        await client.get("/utlysningar")

        assert len(responder.requests) == 2

    @pytest.mark.asyncio
    async def test_different_params_are_separate_entries(
        self, recording_sleep: RecordingSleep, clock: FakeClock
    ) -> None:
        responder = _Responder(httpx.Response(200, json=[]))
        client = _client(responder, recording_sleep, cache=ResponseCache(120, clock=clock))

        await client.get("/utlysningar", {"offset": 0})
        await client.get("/utlysningar", {"offset": 100})

        assert len(responder.requests) == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(
        self, recording_sleep: RecordingSleep, clock: FakeClock
    ) -> None:
        responder = _Responder(httpx.Response(404), httpx.Response(200, json=[]))
        client = _client(responder, recording_sleep, cache=ResponseCache(120, clock=clock))

        with pytest.raises(VinnovaApiError):
            await client.get("/utlysningar")
        assert await client.get("/utlysningar") == []

    @pytest.mark.asyncio
    async def test_post_is_never_cached(
        self, recording_sleep: RecordingSleep, clock: FakeClock
    ) -> None:
        responder = _Responder(httpx.Response(200, json={"ok": True}))
        client = _client(responder, recording_sleep, cache=ResponseCache(120, clock=clock))

        await client.post("/utlysningar", json={"q": 1})
        await client.post("/utlysningar", json={"q": 1})

        assert len(responder.requests) == 2


class TestPagination:
    @pytest.mark.asyncio
    async def test_follows_limit_offset_until_short_page(
        self, recording_sleep: RecordingSleep
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            offset = int(request.url.params["offset"])
            items = [{"id": str(i)} for i in range(offset, min(offset + 2, 5))]
            return httpx.Response(200, json={"results": items, "totalRecords": 5})

        client = VinnovaClient(
            BASE_URL, http_client=mock_http_client(handler), sleep=recording_sleep
        )

        records = await client.get_all_pages("/utlysningar", {"updated_after": "x"}, page_size=2)

        assert [record["id"] for record in records] == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_accepts_bare_list_and_stops_on_empty_page(
        self, recording_sleep: RecordingSleep
    ) -> None:
        seen_offsets: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            offset = int(request.url.params["offset"])
            seen_offsets.append(offset)
            return httpx.Response(200, json=[{"id": "a"}, {"id": "b"}] if offset == 0 else [])

        client = VinnovaClient(
            BASE_URL, http_client=mock_http_client(handler), sleep=recording_sleep
        )

        records = await client.get_all_pages("/ansokningar", page_size=2)

        assert len(records) == 2
        assert seen_offsets == [0, 2]

    @pytest.mark.asyncio
    async def test_stops_at_max_pages(self, recording_sleep: RecordingSleep) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"id": request.url.params["offset"]}])

        client = VinnovaClient(
            BASE_URL, http_client=mock_http_client(handler), sleep=recording_sleep
        )

        records = await client.get_all_pages("/utlysningar", page_size=1, max_pages=3)

        assert [record["id"] for record in records] == ["0", "1", "2"]


def test_extract_results_shapes() -> None:
    assert extract_results([1, 2]) == [1, 2]
    assert extract_results({"results": [3], "totalRecords": 1}) == [3]
    assert extract_results({"unexpected": True}) == []
    assert extract_results(None) == []


@pytest.mark.asyncio
async def test_client_property_requires_context() -> None:
    client = VinnovaClient(BASE_URL)
    with pytest.raises(VinnovaClientError, match="not initialized"):
        _ = client.client

    async with client:
        assert client.client is not None
    with pytest.raises(VinnovaClientError):
        _ = client.client


def test_from_config_maps_settings() -> None:
    config = VinnovaConfig(
        api_base_url="https://example.test/api/",
        subscription_key="abc",
        max_attempts=2,
        page_size=50,
    )

    client = VinnovaClient.from_config(config)

    assert client.base_url == "https://example.test/api"
    assert client.subscription_key == "abc"
    assert client.retry_policy.max_attempts == 2
    assert client.page_size == 50
    assert client.token_provider is None
