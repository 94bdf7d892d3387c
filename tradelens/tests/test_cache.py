"""
Tests for the analysis cache and its Redis fallback backend.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import redis

from tradelens.core.aggregator import aggregate
from tradelens.core.cache import AnalysisCache
from tradelens.core.redis_client import RedisClient


class TestAnalysisCache:

    def test_repeat_analysis_is_served_from_cache(self, make_trade, memory_cache):
        trades = [
            make_trade("acquisition", "X", 10, 1.0, days=0),
            make_trade("disposition", "X", 10, 1.5, days=1),
        ]
        aggregate_fn = Mock(side_effect=aggregate)
        cache = AnalysisCache(aggregate_fn, redis_client=memory_cache)

        first = cache(trades)
        second = cache(trades)

        assert aggregate_fn.call_count == 1
        assert (cache.hits, cache.misses) == (1, 1)
        assert second is not first
        assert second.to_dict() == first.to_dict()

    def test_key_ignores_trade_order(self, make_trade):
        trades = [make_trade(days=0), make_trade(days=1)]
        assert AnalysisCache.key_for(trades) == AnalysisCache.key_for(list(reversed(trades)))

    def test_options_are_part_of_the_key(self, make_trade, memory_cache):
        trades = [make_trade(amount=5)]
        cache = AnalysisCache(redis_client=memory_cache)

        assert cache(trades, small_trade_amount=0.01).recommendations != \
            cache(trades, small_trade_amount=10).recommendations
        assert cache.misses == 2

    def test_invalidate(self, make_trade, memory_cache):
        trades = [make_trade()]
        cache = AnalysisCache(redis_client=memory_cache)

        cache(trades)
        cache.invalidate(trades)
        cache(trades)

        assert cache.misses == 2

    def test_corrupt_entry_is_recomputed(self, make_trade, memory_cache):
        trades = [make_trade()]
        cache = AnalysisCache(redis_client=memory_cache)
        memory_cache.set(AnalysisCache.key_for(trades), '{"overallSuccessRate": 1}')

        analysis = cache(trades)

        assert analysis.overall_success_rate == 100.0
        assert cache.misses == 1


class TestRedisClientFallback:

    def test_disabled_uses_memory(self):
        client = RedisClient(enabled=False)

        client.set("k", "v")

        assert client.get("k") == "v"
        assert not client.is_available()

    def test_expired_entries_are_dropped(self):
        client = RedisClient(enabled=False)
        client.set("k", "v", ttl_seconds=10)

        later = datetime.now(timezone.utc) + timedelta(seconds=11)
        with patch.object(RedisClient, "_now", return_value=later):
            assert client.get("k") is None

    def test_delete_and_clear(self):
        client = RedisClient(enabled=False)
        client.set("a", "1")
        client.set("b", "2")

        client.delete("a")
        assert client.get("a") is None

        client.clear()
        assert client.get("b") is None

    def test_invalid_url_disables_redis(self):
        client = RedisClient(redis_url="http://localhost:6379", enabled=True)
        assert client.enabled is False

    def test_unreachable_server_falls_back(self):
        with patch("tradelens.core.redis_client.redis.Redis.from_url") as from_url:
            from_url.return_value.ping.side_effect = redis.ConnectionError("refused")
            client = RedisClient(redis_url="redis://localhost:6379", enabled=True)

        assert client.enabled is False
        client.set("k", "v")
        assert client.get("k") == "v"
