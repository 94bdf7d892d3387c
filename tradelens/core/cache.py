"""
Caching decorator around the aggregator.

``aggregate`` itself holds no state. ``AnalysisCache`` wraps it and stores
serialized analyses in Redis (or the in-memory fallback), keyed by a digest
of the input trades, so repeated analyses of an unchanged trade set skip the
computation. Every hit is rehydrated into a fresh WalletAnalysis.
"""

import hashlib
import json
import logging
from typing import Callable, Optional, Sequence

from .aggregator import aggregate
from .models import Trade, WalletAnalysis
from .redis_client import RedisClient

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class AnalysisCache:
    """Memoizes an aggregate function by trade-set digest."""

    KEY_PREFIX = "tradelens:analysis:"

    def __init__(
        self,
        aggregate_fn: Callable[..., WalletAnalysis] = aggregate,
        redis_client: Optional[RedisClient] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        """
        Args:
            aggregate_fn: Function computing a WalletAnalysis from trades
            redis_client: Cache backend (a default RedisClient if omitted)
            ttl_seconds: Lifetime of a cached analysis
        """
        self.aggregate_fn = aggregate_fn
        self.redis_client = redis_client or RedisClient()
        self.ttl_seconds = ttl_seconds
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key_for(trades: Sequence[Trade], **kwargs) -> str:
        """Digest of the trades (order-insensitive) and aggregation options."""
        payload = {
            "trades": sorted((t.to_dict() for t in trades), key=lambda d: (d["timestamp"], d["id"])),
            "options": kwargs,
        }
        digest = hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()
        return f"{AnalysisCache.KEY_PREFIX}{digest}"

    def __call__(self, trades: Sequence[Trade], **kwargs) -> WalletAnalysis:
        cache_key = self.key_for(trades, **kwargs)

        cached_json = self.redis_client.get(cache_key)
        if cached_json is not None:
            try:
                analysis = WalletAnalysis.from_dict(json.loads(cached_json))
                self.hits += 1
                return analysis
            except (ValueError, KeyError, TypeError) as e:
                logger.debug(f"Discarding unreadable cached analysis {cache_key}: {e}")
                self.redis_client.delete(cache_key)

        self.misses += 1
        analysis = self.aggregate_fn(trades, **kwargs)
        self.redis_client.set(cache_key, json.dumps(analysis.to_dict()), ttl_seconds=self.ttl_seconds)
        return analysis

    def invalidate(self, trades: Sequence[Trade], **kwargs):
        self.redis_client.delete(self.key_for(trades, **kwargs))
