"""
Helius API client: the transaction source feed.

Fetches raw transactions for a wallet either from the Helius enhanced
transactions API (default) or from Solana JSON-RPC ``getTransaction`` with
``jsonParsed`` encoding. Requests are throttled, retried with exponential
backoff on rate limits and transport failures, and guarded by a small circuit
breaker. When the retry budget is spent the client raises
``FeedUnavailableError``; callers decide what to show instead.
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from tradelens.config import TradeLensConfig
from .errors import FeedUnavailableError, RateLimitedError

logger = logging.getLogger(__name__)

# Helius v0 page size; requesting more results in truncation
PAGE_SIZE = 100

# Upper bound on a server-requested Retry-After wait
MAX_RETRY_AFTER_SECONDS = 60.0


def _redact(s: str) -> str:
    """Redact api-key query parameter values to avoid leaking secrets in logs."""
    return re.sub(r"(api-key=)[^&\s]+", r"\1REDACTED", s)


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Seconds to wait according to a Retry-After header.

    Accepts delay-seconds or an HTTP-date; anything else gives None. The
    result is clamped to [0, MAX_RETRY_AFTER_SECONDS].
    """
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparseable Retry-After header: {value!r}")
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - (now or datetime.now(timezone.utc))).total_seconds()
    return min(max(seconds, 0.0), MAX_RETRY_AFTER_SECONDS)


class TransactionSource(ABC):
    """Yields raw transactions for an account."""

    @abstractmethod
    async def fetch_transactions(self, address: str, limit: int) -> List[Dict[str, Any]]:
        """
        Fetch raw transactions touching ``address``.

        Order is undefined; callers sort by timestamp.

        Raises:
            FeedUnavailableError: the source could not produce transactions
        """


class HeliusClient(TransactionSource):
    """Client for Helius enhanced transactions and Helius-hosted RPC."""

    RPC_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={api_key}"

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        use_rpc: bool = False,
        base_url: Optional[str] = None,
        rate_limit_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        max_pages: Optional[int] = None,
    ):
        """
        Initialize the Helius client.

        Args:
            api_key: Helius API key (falls back to config)
            session: Optional aiohttp session (for connection pooling)
            use_rpc: Fetch via getSignaturesForAddress + getTransaction
                (jsonParsed) instead of the enhanced transactions API
            base_url: Enhanced API base URL (falls back to config)
            rate_limit_delay: Minimum seconds between requests
            max_retries: Attempts per request before giving up
            batch_size: Concurrent getTransaction calls per batch
            batch_delay: Seconds to pause between getTransaction batches
            max_pages: Pagination safety limit for the enhanced API
        """
        self.api_key = api_key or TradeLensConfig.get_helius_api_key()
        self.use_rpc = use_rpc
        self.base_url = (base_url or TradeLensConfig.get_helius_base_url()).rstrip("/")
        self.rate_limit_delay = (
            TradeLensConfig.get_rate_limit_delay() if rate_limit_delay is None else rate_limit_delay
        )
        self.max_retries = max_retries or TradeLensConfig.get_max_retries()
        self.batch_size = batch_size or TradeLensConfig.get_fetch_batch_size()
        self.batch_delay = TradeLensConfig.get_fetch_batch_delay() if batch_delay is None else batch_delay
        self.max_pages = max_pages or TradeLensConfig.get_tx_max_pages()

        self.last_request_time = 0.0
        self._throttle_lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(self.batch_size)

        # Circuit breaker
        self._circuit_breaker_failures = 0
        self._circuit_breaker_threshold = 5
        self._circuit_breaker_reset_time: Optional[float] = None

        self._api_calls_made = 0

        # Async session management
        self._session = session
        self._own_session = False

    @property
    def rpc_url(self) -> str:
        return self.RPC_URL_TEMPLATE.format(api_key=self.api_key)

    async def __aenter__(self) -> "HeliusClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._own_session = True
        return self._session

    async def close(self):
        """Close session if we own it."""
        if self._own_session and self._session:
            await self._session.close()
            self._session = None
            self._own_session = False

    # ------------------------------------------------------------------
    # Throttling, retries, circuit breaker
    # ------------------------------------------------------------------

    def _check_circuit_breaker(self) -> bool:
        """Check if circuit breaker should prevent requests."""
        if self._circuit_breaker_reset_time and time.time() > self._circuit_breaker_reset_time:
            self._circuit_breaker_failures = 0
            self._circuit_breaker_reset_time = None

        if self._circuit_breaker_failures >= self._circuit_breaker_threshold:
            return False  # Circuit is open, don't make requests
        return True  # Circuit is closed, allow requests

    def _record_failure(self):
        """Record a failure for circuit breaker."""
        self._circuit_breaker_failures += 1
        if self._circuit_breaker_failures >= self._circuit_breaker_threshold:
            # Open circuit for 60 seconds
            self._circuit_breaker_reset_time = time.time() + 60

    def _record_success(self):
        """Record a success, reset circuit breaker if needed."""
        if self._circuit_breaker_failures > 0:
            self._circuit_breaker_failures = max(0, self._circuit_breaker_failures - 1)

    async def _rate_limit_async(self):
        """Enforce the minimum delay between consecutive requests."""
        async with self._throttle_lock:
            time_since_last = time.monotonic() - self.last_request_time
            if time_since_last < self.rate_limit_delay:
                await asyncio.sleep(self.rate_limit_delay - time_since_last)
            self.last_request_time = time.monotonic()

    async def _retry_with_backoff(self, make_request: Callable[[], Awaitable[Any]], what: str) -> Any:
        """
        Run a request with exponential backoff.

        Args:
            make_request: Zero-argument callable returning a fresh awaitable
            what: Short description for log messages

        Raises:
            FeedUnavailableError: all attempts failed
        """
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                result = await make_request()
                self._record_success()
                return result
            except (RateLimitedError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                if attempt == self.max_retries - 1:
                    break
                backoff_time = 2 ** attempt  # 1s, 2s, 4s
                if isinstance(e, RateLimitedError) and e.retry_after:
                    backoff_time = max(backoff_time, e.retry_after)
                logger.warning(
                    f"[Helius] {what} failed (attempt {attempt + 1}/{self.max_retries}): "
                    f"{_redact(str(e))}; retrying in {backoff_time}s"
                )
                await asyncio.sleep(backoff_time)

        self._record_failure()
        raise FeedUnavailableError(
            f"{what} failed after {self.max_retries} attempts: {_redact(str(last_error))}",
            attempts=self.max_retries,
        )

    async def _request_json(self, method: str, url: str, **kwargs) -> Any:
        """
        Perform one throttled HTTP request and decode the JSON body.

        Raises:
            RateLimitedError: HTTP 429
            aiohttp.ClientError: transport failure or other non-2xx status
        """
        async with self._semaphore:
            await self._rate_limit_async()
            session = await self._get_session()
            async with session.request(
                method, url, timeout=aiohttp.ClientTimeout(total=30), **kwargs
            ) as response:
                if response.status == 429:
                    raise RateLimitedError(
                        "Rate limited by Helius",
                        retry_after=parse_retry_after(response.headers.get("Retry-After")),
                    )
                response.raise_for_status()
                self._api_calls_made += 1
                return await response.json()

    def _ensure_ready(self):
        if not self.api_key:
            raise FeedUnavailableError("HELIUS_API_KEY is not configured")
        if not self._check_circuit_breaker():
            raise FeedUnavailableError("Helius circuit breaker is open")

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self._ensure_ready()
        url = f"{self.base_url}{endpoint}"
        request_params = dict(params or {})
        request_params["api-key"] = self.api_key
        return await self._retry_with_backoff(
            lambda: self._request_json("GET", url, params=request_params),
            f"GET {endpoint}",
        )

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        self._ensure_ready()
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        data = await self._retry_with_backoff(
            lambda: self._request_json("POST", self.rpc_url, json=payload),
            f"RPC {method}",
        )
        if isinstance(data, dict) and data.get("error"):
            raise FeedUnavailableError(f"RPC {method} returned error: {data['error']}")
        return data.get("result") if isinstance(data, dict) else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_transactions(self, address: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Get raw transaction history for a wallet, newest first.

        Args:
            address: Wallet address to query
            limit: Maximum number of transactions (defaults to config)

        Returns:
            List of raw transaction dictionaries

        Raises:
            FeedUnavailableError: no API key, circuit open, or retries exhausted
        """
        target = limit or TradeLensConfig.get_tx_limit()
        if self.use_rpc:
            signatures = await self.fetch_signatures(address, target)
            return await self.fetch_parsed_transactions(signatures)
        return await self._fetch_enhanced(address, target)

    async def _fetch_enhanced(self, address: str, target: int) -> List[Dict[str, Any]]:
        endpoint = f"/addresses/{address}/transactions"
        before_sig: Optional[str] = None
        all_txs: List[Dict[str, Any]] = []
        pages = 0

        while len(all_txs) < target and pages < self.max_pages:
            params: Dict[str, Any] = {"limit": min(PAGE_SIZE, target - len(all_txs))}
            if before_sig:
                params["before"] = before_sig

            data = await self._get(endpoint, params)
            batch = data if isinstance(data, list) else (data or {}).get("transactions", [])
            if not batch:
                break

            all_txs.extend(tx for tx in batch if isinstance(tx, dict))
            pages += 1

            # Next page starts before the last signature of this page
            last_sig = batch[-1].get("signature") if isinstance(batch[-1], dict) else None
            if not last_sig or last_sig == before_sig:
                break
            before_sig = last_sig

        logger.debug(f"[Helius] Fetched {len(all_txs)} transactions for {address} in {pages} pages")
        return all_txs[:target]

    async def fetch_signatures(self, address: str, limit: int) -> List[str]:
        """Recent transaction signatures for an address (newest first)."""
        result = await self._rpc("getSignaturesForAddress", [address, {"limit": min(limit, 1000)}])
        return [entry["signature"] for entry in result or [] if isinstance(entry, dict) and entry.get("signature")]

    async def fetch_parsed_transactions(self, signatures: List[str]) -> List[Dict[str, Any]]:
        """
        Fetch jsonParsed transactions in throttled batches.

        Batches of ``batch_size`` run concurrently, with ``batch_delay``
        seconds between batches. Signatures the node does not return are
        skipped. Every request in a batch runs to completion; the first
        failure in the batch then fails the whole fetch.
        """
        transactions: List[Dict[str, Any]] = []
        for start in range(0, len(signatures), self.batch_size):
            if start:
                await asyncio.sleep(self.batch_delay)
            batch = signatures[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self._get_transaction(sig) for sig in batch), return_exceptions=True
            )
            for signature, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning(f"[Helius] getTransaction {signature} failed: {_redact(str(result))}")
                    raise result
            transactions.extend(tx for tx in results if tx)
        return transactions

    async def _get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return await self._rpc(
            "getTransaction",
            [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0}],
        )
