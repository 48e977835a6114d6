"""Tests for the shared source client machinery."""

import httpx
import pytest
import respx

from devfeed.ingestion.base_client import (
    ClientStats,
    RateLimiter,
    SourceClient,
    clamp_limit,
    parse_iso_timestamp,
)
from devfeed.ingestion.http_client import HTTPClientError
from devfeed.ingestion.schemas import Item, SourceId


class EchoClient(SourceClient):
    """Minimal concrete client over a fake API."""

    base_url = "https://api.example.com/v1/"

    @property
    def source_id(self) -> SourceId:
        return SourceId.DEVTO

    @property
    def display_name(self) -> str:
        return "Echo"

    async def fetch_latest(self, limit: int = 30) -> list[Item]:
        return await self._get_json("things", params={"per_page": clamp_limit(limit)})

    async def fetch_by_id(self, item_id):
        return await self._get_json(f"things/{item_id}")


class TestHelpers:
    @pytest.mark.parametrize(
        "requested,expected",
        [(0, 1), (-5, 1), (1, 1), (30, 30), (100, 100), (101, 100), (1000, 100)],
    )
    def test_clamp_limit(self, requested, expected):
        """Should clamp limits into 1-100."""
        assert clamp_limit(requested) == expected

    def test_parse_iso_timestamp_with_z_suffix(self):
        """Should parse a UTC timestamp ending in Z."""
        assert parse_iso_timestamp("1970-01-01T00:01:00Z") == 60.0

    def test_parse_iso_timestamp_with_offset(self):
        """Should apply the UTC offset."""
        assert parse_iso_timestamp("1970-01-01T01:00:00+01:00") == 0.0


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_burst_up_to_rate(self):
        """Should allow a full burst without waiting."""
        limiter = RateLimiter(rate=5)

        for _ in range(5):
            await limiter.acquire()

        assert limiter._tokens < 1

    @pytest.mark.asyncio
    async def test_waits_when_empty(self, monkeypatch):
        """An empty bucket sleeps for the time one token takes to refill."""
        slept = []

        async def fake_sleep(seconds):
            slept.append(seconds)

        monkeypatch.setattr("devfeed.ingestion.base_client.asyncio.sleep", fake_sleep)
        limiter = RateLimiter(rate=60)
        limiter._tokens = 0.0

        await limiter.acquire()

        assert len(slept) == 1
        assert 0 < slept[0] <= 1.0


class TestSourceClient:
    """Tests for SourceClient request and cache handling."""

    def test_build_url_sorts_params_and_drops_none(self):
        """Should sort params and drop None values."""
        client = EchoClient()

        url = client.build_url("things", {"z": 1, "a": "rust", "skip": None})

        assert url == "https://api.example.com/v1/things?a=rust&z=1"

    def test_build_url_is_order_independent(self):
        """Should build the same URL for reordered params."""
        client = EchoClient()

        assert client.build_url("t", {"a": 1, "b": 2}) == client.build_url("t", {"b": 2, "a": 1})

    def test_name_and_stats(self):
        """Should derive its name from the source and start with zero stats."""
        client = EchoClient()

        assert client.name == "devto_client"
        assert client.stats == ClientStats()

    @pytest.mark.asyncio
    @respx.mock
    async def test_response_cached_within_ttl(self, clock):
        """Should serve a repeat request from cache."""
        route = respx.get("https://api.example.com/v1/things").mock(
            return_value=httpx.Response(200, json=[1, 2, 3])
        )
        client = EchoClient(clock=clock)

        first = await client.fetch_latest(3)
        clock.advance(299)
        second = await client.fetch_latest(3)

        assert first == second == [1, 2, 3]
        assert route.call_count == 1
        assert client.stats.requests == 1
        assert client.stats.cache_hits == 1
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_refetches_after_ttl(self, clock):
        """Should refetch once the entry expires."""
        route = respx.get("https://api.example.com/v1/things").mock(
            return_value=httpx.Response(200, json=[1])
        )
        client = EchoClient(clock=clock)

        await client.fetch_latest()
        clock.advance(300)
        await client.fetch_latest()

        assert route.call_count == 2
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_different_params_are_different_entries(self, clock):
        """Should cache each parameter set separately."""
        route = respx.get("https://api.example.com/v1/things").mock(
            return_value=httpx.Response(200, json=[])
        )
        client = EchoClient(clock=clock)

        await client.fetch_latest(10)
        await client.fetch_latest(20)

        assert route.call_count == 2
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_failures_are_not_cached(self, clock):
        """Should retry the network after a failure."""
        route = respx.get("https://api.example.com/v1/things/1").mock(
            side_effect=[httpx.Response(404), httpx.Response(200, json={"id": 1})]
        )
        client = EchoClient(clock=clock)

        with pytest.raises(HTTPClientError):
            await client.fetch_by_id(1)
        assert await client.fetch_by_id(1) == {"id": 1}

        assert route.call_count == 2
        assert client.stats.errors == 1
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_body_is_not_retryable(self, fast_retry):
        """Should raise a non-retryable error for invalid JSON."""
        route = respx.get("https://api.example.com/v1/things/1").mock(
            return_value=httpx.Response(200, text="<html>oops</html>")
        )
        client = EchoClient(retry_config=fast_retry)

        with pytest.raises(HTTPClientError) as exc_info:
            await client.fetch_by_id(1)

        assert route.call_count == 1
        assert exc_info.value.retryable is False
        assert exc_info.value.status_code == 200
        assert exc_info.value.source == "devto"
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_transform_failure_is_not_retryable(self, clock):
        """Should raise a non-retryable error when normalization fails."""
        respx.get("https://api.example.com/v1/things/1").mock(
            return_value=httpx.Response(200, json={"unexpected": True})
        )
        client = EchoClient(clock=clock)

        with pytest.raises(HTTPClientError) as exc_info:
            await client._get_json("things/1", transform=lambda raw: raw["id"])

        assert exc_info.value.retryable is False
        assert "Unexpected payload" in str(exc_info.value)
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_instances_do_not_share_cache(self, clock):
        """Should keep a separate cache per client."""
        route = respx.get("https://api.example.com/v1/things").mock(
            return_value=httpx.Response(200, json=[])
        )
        first, second = EchoClient(clock=clock), EchoClient(clock=clock)

        await first.fetch_latest()
        await second.fetch_latest()

        assert route.call_count == 2
        await first.aclose()
        await second.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_clear_expired_cache(self, clock):
        """Should remove only expired entries."""
        respx.get("https://api.example.com/v1/things").mock(
            return_value=httpx.Response(200, json=[])
        )
        client = EchoClient(clock=clock)
        await client.fetch_latest()

        assert client.clear_expired_cache() == 0
        clock.advance(300)
        assert client.clear_expired_cache() == 1
        await client.aclose()
