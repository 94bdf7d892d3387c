"""
Tests for the Helius transaction feed client.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from tradelens.core.errors import FeedUnavailableError, RateLimitedError
from tradelens.core.helius_client import MAX_RETRY_AFTER_SECONDS, HeliusClient, _redact, parse_retry_after

from payloads import WALLET, rpc_transaction

BASE_URL = "https://api.helius.xyz/v0"


class MockResponse:
    """Stand-in for an aiohttp response used as an async context manager."""

    def __init__(self, data: Any, status: int = 200, headers: Optional[Dict[str, str]] = None):
        self.data = data
        self.status = status
        self.headers = headers or {}

    async def json(self) -> Any:
        return self.data

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientError(f"HTTP {self.status}")

    async def __aenter__(self) -> "MockResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        pass


class MockSession:
    """Returns canned responses in order and records requests."""

    def __init__(self, *responses: MockResponse):
        self.responses = list(responses)
        self.requests = []

    def request(self, method: str, url: str, **kwargs) -> MockResponse:
        self.requests.append((method, url, kwargs))
        return self.responses.pop(0)


def page(start: int, size: int):
    return [{"signature": f"sig{i}", "timestamp": 1709294400 - i} for i in range(start, start + size)]


@pytest.fixture
def client():
    return HeliusClient(api_key="test-api-key", base_url=BASE_URL, rate_limit_delay=0, max_retries=3)


@pytest.fixture
def no_sleep():
    with patch("tradelens.core.helius_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


class TestEnhancedFetch:
    """Enhanced transactions API pagination."""

    def test_paginates_with_before_signature(self, client):
        mock = AsyncMock(side_effect=[page(0, 100), page(100, 50)])
        with patch.object(client, "_request_json", mock):
            txs = asyncio.run(client.fetch_transactions(WALLET, limit=150))

        assert len(txs) == 150
        first, second = mock.call_args_list
        assert first.args == ("GET", f"{BASE_URL}/addresses/{WALLET}/transactions")
        assert first.kwargs["params"] == {"limit": 100, "api-key": "test-api-key"}
        assert second.kwargs["params"] == {"limit": 50, "before": "sig99", "api-key": "test-api-key"}

    def test_stops_on_empty_page(self, client):
        mock = AsyncMock(side_effect=[page(0, 3), []])
        with patch.object(client, "_request_json", mock):
            txs = asyncio.run(client.fetch_transactions(WALLET, limit=50))

        assert [tx["signature"] for tx in txs] == ["sig0", "sig1", "sig2"]
        assert mock.call_count == 2

    def test_respects_page_limit(self):
        client = HeliusClient(api_key="k", base_url=BASE_URL, rate_limit_delay=0, max_pages=2)
        pages = iter(range(0, 1000, 100))
        mock = AsyncMock(side_effect=lambda *args, **kwargs: page(next(pages), 100))
        with patch.object(client, "_request_json", mock):
            txs = asyncio.run(client.fetch_transactions(WALLET, limit=1000))

        assert len(txs) == 200
        assert mock.call_count == 2

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("HELIUS_API_KEY", raising=False)
        monkeypatch.delenv("SOLANA_RPC_URL", raising=False)
        client = HeliusClient(base_url=BASE_URL)

        with pytest.raises(FeedUnavailableError):
            asyncio.run(client.fetch_transactions(WALLET, limit=10))

    def test_api_key_from_rpc_url(self, monkeypatch):
        monkeypatch.delenv("HELIUS_API_KEY", raising=False)
        monkeypatch.setenv("SOLANA_RPC_URL", "https://mainnet.helius-rpc.com/?api-key=from-url")

        assert HeliusClient().api_key == "from-url"


class TestRetries:
    """Backoff, retry budget and circuit breaker."""

    def test_recovers_after_transient_failures(self, client, no_sleep):
        tx = {"signature": "ok"}
        mock = AsyncMock(side_effect=[RateLimitedError(), aiohttp.ClientError("reset"), [tx]])
        with patch.object(client, "_request_json", mock):
            txs = asyncio.run(client.fetch_transactions(WALLET, limit=1))

        assert txs == [tx]
        assert [c.args[0] for c in no_sleep.await_args_list] == [1, 2]

    def test_honours_retry_after(self, client, no_sleep):
        mock = AsyncMock(side_effect=[RateLimitedError(retry_after=10), [{"signature": "ok"}]])
        with patch.object(client, "_request_json", mock):
            asyncio.run(client.fetch_transactions(WALLET, limit=1))

        no_sleep.assert_awaited_once_with(10)

    def test_timeout_is_retried(self, client, no_sleep):
        mock = AsyncMock(side_effect=[asyncio.TimeoutError(), [{"signature": "ok"}]])
        with patch.object(client, "_request_json", mock):
            txs = asyncio.run(client.fetch_transactions(WALLET, limit=1))

        assert len(txs) == 1

    def test_gives_up_after_max_retries(self, client, no_sleep):
        mock = AsyncMock(side_effect=RateLimitedError("Rate limited by Helius"))
        with patch.object(client, "_request_json", mock):
            with pytest.raises(FeedUnavailableError) as exc_info:
                asyncio.run(client.fetch_transactions(WALLET, limit=10))

        assert exc_info.value.attempts == 3
        assert mock.call_count == 3
        assert no_sleep.await_count == 2

    def test_circuit_breaker_opens(self, no_sleep):
        client = HeliusClient(api_key="k", base_url=BASE_URL, rate_limit_delay=0, max_retries=1)
        mock = AsyncMock(side_effect=aiohttp.ClientError("down"))

        async def run():
            for _ in range(6):
                with pytest.raises(FeedUnavailableError):
                    await client.fetch_transactions(WALLET, limit=10)

        with patch.object(client, "_request_json", mock):
            asyncio.run(run())

        # Sixth call is refused without touching the network
        assert mock.call_count == 5


class TestRpcFetch:
    """getSignaturesForAddress + getTransaction (jsonParsed)."""

    def test_batches_transactions(self, no_sleep):
        client = HeliusClient(
            api_key="k", use_rpc=True, rate_limit_delay=0, batch_size=2, batch_delay=0.5,
        )

        def respond(method, url, json=None, **kwargs):
            if json["method"] == "getSignaturesForAddress":
                return {"jsonrpc": "2.0", "id": 1, "result": [{"signature": f"s{i}"} for i in range(5)]}
            signature = json["params"][0]
            if signature == "s3":
                return {"jsonrpc": "2.0", "id": 1, "result": None}
            return {"jsonrpc": "2.0", "id": 1, "result": rpc_transaction(signature=signature)}

        mock = AsyncMock(side_effect=respond)
        with patch.object(client, "_request_json", mock):
            txs = asyncio.run(client.fetch_transactions(WALLET, limit=5))

        assert [tx["transaction"]["signatures"][0] for tx in txs] == ["s0", "s1", "s2", "s4"]
        assert [c.args[0] for c in no_sleep.await_args_list] == [0.5, 0.5]

        get_tx = mock.call_args_list[1]
        assert get_tx.args == ("POST", client.rpc_url)
        assert get_tx.kwargs["json"]["params"][1] == {
            "encoding": "jsonParsed",
            "maxSupportedTransactionVersion": 0,
        }

    def test_one_failure_fails_the_batch_after_siblings_finish(self, no_sleep):
        client = HeliusClient(api_key="k", use_rpc=True, rate_limit_delay=0, batch_size=3, max_retries=1)
        fetched = []

        def respond(method, url, json=None, **kwargs):
            if json["method"] == "getSignaturesForAddress":
                return {"jsonrpc": "2.0", "id": 1, "result": [{"signature": f"s{i}"} for i in range(3)]}
            signature = json["params"][0]
            fetched.append(signature)
            if signature == "s0":
                raise aiohttp.ClientError("connection reset")
            return {"jsonrpc": "2.0", "id": 1, "result": rpc_transaction(signature=signature)}

        mock = AsyncMock(side_effect=respond)
        with patch.object(client, "_request_json", mock):
            with pytest.raises(FeedUnavailableError):
                asyncio.run(client.fetch_transactions(WALLET, limit=3))

        assert sorted(fetched) == ["s0", "s1", "s2"]

    def test_rpc_error_is_feed_failure(self):
        client = HeliusClient(api_key="k", use_rpc=True, rate_limit_delay=0)
        mock = AsyncMock(return_value={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "busy"}})
        with patch.object(client, "_request_json", mock):
            with pytest.raises(FeedUnavailableError):
                asyncio.run(client.fetch_transactions(WALLET, limit=5))


class TestRequestJson:
    """HTTP status handling."""

    def test_rate_limit_response(self):
        session = MockSession(MockResponse(None, status=429, headers={"Retry-After": "5"}))
        client = HeliusClient(api_key="k", session=session, rate_limit_delay=0)

        with pytest.raises(RateLimitedError) as exc_info:
            asyncio.run(client._request_json("GET", "https://example.test"))

        assert exc_info.value.retry_after == 5.0

    def test_rate_limit_with_http_date_exhausts_retries(self, no_sleep):
        headers = {"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}
        session = MockSession(*(MockResponse(None, status=429, headers=headers) for _ in range(3)))
        client = HeliusClient(api_key="k", base_url=BASE_URL, session=session, rate_limit_delay=0, max_retries=3)

        with pytest.raises(FeedUnavailableError) as exc_info:
            asyncio.run(client.fetch_transactions(WALLET, limit=10))

        assert exc_info.value.attempts == 3
        assert len(session.requests) == 3
        assert all(0 <= c.args[0] <= MAX_RETRY_AFTER_SECONDS for c in no_sleep.await_args_list)

    def test_success_response(self):
        session = MockSession(MockResponse([{"signature": "a"}]))
        client = HeliusClient(api_key="k", session=session, rate_limit_delay=0)

        data = asyncio.run(client._request_json("GET", "https://example.test", params={"limit": 1}))

        assert data == [{"signature": "a"}]
        assert session.requests[0][2]["params"] == {"limit": 1}
        assert client._api_calls_made == 1

    def test_server_error_raises_client_error(self):
        session = MockSession(MockResponse(None, status=503))
        client = HeliusClient(api_key="k", session=session, rate_limit_delay=0)

        with pytest.raises(aiohttp.ClientError):
            asyncio.run(client._request_json("GET", "https://example.test"))

    def test_close_keeps_borrowed_session(self):
        session = MockSession()
        client = HeliusClient(api_key="k", session=session)

        asyncio.run(client.close())

        assert client._session is session


def test_redact_hides_api_key():
    assert _redact("https://x/v0?api-key=secret&limit=5") == "https://x/v0?api-key=REDACTED&limit=5"


class TestParseRetryAfter:

    NOW = datetime(2026, 10, 21, 7, 27, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value,expected", [
        ("5", 5.0),
        ("0.5", 0.5),
        ("-3", 0.0),
        ("3600", MAX_RETRY_AFTER_SECONDS),
        ("Wed, 21 Oct 2026 07:28:00 GMT", 30.0),
        ("Wed, 21 Oct 2026 07:00:00 GMT", 0.0),
        ("soon", None),
        ("", None),
        (None, None),
    ])
    def test_values(self, value, expected):
        assert parse_retry_after(value, now=self.NOW) == expected
