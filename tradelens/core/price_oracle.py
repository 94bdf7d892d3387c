"""
Price oracles: map an asset symbol or mint address to a spot price.

The classifier only ever sees the ``PriceOracle`` interface. The default is
``ReferencePriceOracle``, a small static table of rough reference prices used
when a transaction carries no on-chain price; ``DexScreenerPriceOracle``
queries the live market and ``CachedPriceOracle`` puts either behind Redis.
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from tradelens.config import TradeLensConfig
from .models import PriceQuote
from .redis_client import RedisClient
from .transactions import KNOWN_MINTS

logger = logging.getLogger(__name__)

_BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
_MINTS_BY_SYMBOL = {symbol: mint for mint, symbol in KNOWN_MINTS.items()}


def is_mint_address(value: str) -> bool:
    return bool(_BASE58_ADDRESS.match(value or ""))


class PriceOracle(ABC):
    """Source of spot prices."""

    @abstractmethod
    def get_price(self, symbol_or_address: str) -> Optional[PriceQuote]:
        """
        Look up the current price of an asset.

        Args:
            symbol_or_address: Ticker symbol (e.g. "BONK") or mint address

        Returns:
            PriceQuote, or None when the asset is unknown to this oracle
        """


class ReferencePriceOracle(PriceOracle):
    """
    Static table of rough reference prices for well-known symbols.

    This is a best-effort placeholder for valuing trades whose transaction
    carries no price, not market data.
    """

    REFERENCE_PRICES: Dict[str, float] = {
        "BONK": 0.000003,
        "JUP": 0.65,
        "PYTH": 0.45,
    }

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        table = self.REFERENCE_PRICES if prices is None else prices
        self.prices = {symbol.upper(): price for symbol, price in table.items()}

    def get_price(self, symbol_or_address: str) -> Optional[PriceQuote]:
        if not symbol_or_address:
            return None
        symbol = KNOWN_MINTS.get(symbol_or_address, symbol_or_address).upper()
        price = self.prices.get(symbol)
        if price is None:
            return None
        return PriceQuote(symbol=symbol, price=price, source="reference")


class DexScreenerPriceOracle(PriceOracle):
    """Live prices from the DexScreener public API (Solana pairs only)."""

    def __init__(self, api_key: Optional[str] = None, timeout: float = 10.0):
        """
        Initialize DexScreener oracle.

        Args:
            api_key: DexScreener API key (optional, public API doesn't require key)
            timeout: Per-request timeout in seconds
        """
        self.api_key = api_key or TradeLensConfig.get_dexscreener_api_key() or ""
        self.base_url = "https://api.dexscreener.com/latest/dex"
        self.timeout = timeout
        self.rate_limit_delay = 0.5  # Seconds between requests
        self.last_request_time = 0.0

    def _rate_limit(self):
        """Ensure we don't exceed rate limits."""
        current_time = time.time()
        time_since_last = current_time - self.last_request_time
        if time_since_last < self.rate_limit_delay:
            time.sleep(self.rate_limit_delay - time_since_last)
        self.last_request_time = time.time()

    def _url_for(self, symbol_or_address: str) -> tuple:
        mint = _MINTS_BY_SYMBOL.get(symbol_or_address.upper())
        if mint:
            return f"{self.base_url}/tokens/{mint}", None
        if is_mint_address(symbol_or_address):
            return f"{self.base_url}/tokens/{symbol_or_address}", None
        return f"{self.base_url}/search", {"q": symbol_or_address}

    def get_price(self, symbol_or_address: str) -> Optional[PriceQuote]:
        if not symbol_or_address:
            return None

        self._rate_limit()
        url, params = self._url_for(symbol_or_address)
        headers = {"X-API-KEY": self.api_key} if self.api_key else None

        try:
            response = requests.get(url, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return self._parse_quote(symbol_or_address, response.json())
        except requests.exceptions.RequestException as e:
            logger.debug(f"DexScreener API request failed: {e}")
        except (ValueError, KeyError, TypeError) as e:
            logger.debug(f"DexScreener response parsing failed: {e}")

        return None

    @staticmethod
    def _parse_quote(requested: str, data: Any) -> Optional[PriceQuote]:
        if not data or not data.get("pairs"):
            return None

        pairs = [p for p in data["pairs"] if p.get("chainId", "solana") == "solana"]
        if not is_mint_address(requested):
            # Search results include look-alikes; keep exact symbol matches
            wanted = requested.upper()
            pairs = [
                p for p in pairs
                if (p.get("baseToken") or {}).get("symbol", "").upper() == wanted
            ]
        if not pairs:
            return None

        # Get the pair with highest liquidity
        best_pair = max(
            pairs,
            key=lambda p: float((p.get("liquidity") or {}).get("usd", 0) or 0),
        )

        price_usd = float(best_pair.get("priceUsd", 0) or 0)
        if price_usd <= 0:
            return None

        def optional_float(value: Any) -> Optional[float]:
            return float(value) if value is not None else None

        symbol = (best_pair.get("baseToken") or {}).get("symbol") or requested
        return PriceQuote(
            symbol=symbol.upper(),
            price=price_usd,
            change_24h=optional_float((best_pair.get("priceChange") or {}).get("h24")),
            volume_24h=optional_float((best_pair.get("volume") or {}).get("h24")),
            market_cap=optional_float(best_pair.get("marketCap", best_pair.get("fdv"))),
            liquidity=optional_float((best_pair.get("liquidity") or {}).get("usd")),
            source="dexscreener",
        )


class CachedPriceOracle(PriceOracle):
    """
    Caches another oracle's answers in Redis (or the in-memory fallback).

    Misses are cached too, so an unknown symbol is not re-queried until the
    TTL expires.
    """

    KEY_PREFIX = "tradelens:price:"

    def __init__(
        self,
        inner: PriceOracle,
        redis_client: Optional[RedisClient] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.inner = inner
        self.redis_client = redis_client or RedisClient()
        self.ttl_seconds = ttl_seconds or TradeLensConfig.get_price_cache_ttl()

    def get_price(self, symbol_or_address: str) -> Optional[PriceQuote]:
        if not symbol_or_address:
            return None

        cache_key = f"{self.KEY_PREFIX}{symbol_or_address.upper()}"
        cached_json = self.redis_client.get(cache_key)
        if cached_json is not None:
            try:
                cached = json.loads(cached_json)
                return PriceQuote.from_dict(cached) if cached else None
            except (ValueError, KeyError, TypeError) as e:
                logger.debug(f"Discarding unreadable cached price for {symbol_or_address}: {e}")
                self.redis_client.delete(cache_key)

        quote = self.inner.get_price(symbol_or_address)
        cache_value = json.dumps(quote.to_dict() if quote else None)
        self.redis_client.set(cache_key, cache_value, ttl_seconds=self.ttl_seconds)
        return quote
