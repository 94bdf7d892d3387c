"""
Redis Client with In-Memory Fallback

Provides Redis-backed caching with automatic fallback to a process-local
dictionary if Redis is disabled or unreachable, so caching layers degrade
gracefully instead of failing the analysis.
"""

import logging
from typing import Optional, Dict
from datetime import datetime, timedelta, timezone

import redis

from tradelens.config import TradeLensConfig

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Redis client wrapper with in-memory fallback.

    If Redis is unavailable or disabled, values are kept in a dict with
    per-key expiry.
    """

    def __init__(self, redis_url: Optional[str] = None, enabled: Optional[bool] = None):
        """
        Initialize Redis client.

        Args:
            redis_url: Redis connection URL (defaults to config)
            enabled: Whether Redis is enabled (defaults to config)
        """
        if enabled is None:
            enabled = TradeLensConfig.get_redis_enabled()
        self.enabled = enabled

        if redis_url is None:
            redis_url = TradeLensConfig.get_redis_url()
        self.redis_url = redis_url

        self.redis_client = None
        self._fallback_cache: Dict[str, tuple] = {}  # key -> (value, expiry_time)

        if not self.enabled:
            logger.debug("Redis disabled, using fallback cache")
            return

        if not self.redis_url.startswith(("redis://", "rediss://", "unix://")):
            logger.warning(f"Invalid Redis URL format: {self.redis_url}")
            self.enabled = False
            return

        try:
            self.redis_client = redis.Redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            # Test connection
            self.redis_client.ping()
            logger.info("Redis client initialized successfully")
        except redis.RedisError as e:
            logger.warning(f"Failed to connect to Redis: {e}. Using fallback cache.")
            self.enabled = False
            self.redis_client = None

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def get(self, key: str) -> Optional[str]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        if self.enabled and self.redis_client:
            try:
                return self.redis_client.get(key)
            except redis.RedisError as e:
                logger.debug(f"Redis get failed for key {key}: {e}, using fallback")

        if key in self._fallback_cache:
            value, expiry = self._fallback_cache[key]
            if expiry is None or self._now() < expiry:
                return value
            del self._fallback_cache[key]

        return None

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None):
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Time to live in seconds (None = no expiry)
        """
        if self.enabled and self.redis_client:
            try:
                if ttl_seconds:
                    self.redis_client.setex(key, ttl_seconds, value)
                else:
                    self.redis_client.set(key, value)
                return
            except redis.RedisError as e:
                logger.debug(f"Redis set failed for key {key}: {e}, using fallback")

        expiry = None
        if ttl_seconds:
            expiry = self._now() + timedelta(seconds=ttl_seconds)
        self._fallback_cache[key] = (value, expiry)

        # Drop expired entries once the fallback grows
        if len(self._fallback_cache) > 1000:
            now = self._now()
            expired_keys = [
                k for k, (_, exp) in self._fallback_cache.items()
                if exp is not None and now >= exp
            ]
            for k in expired_keys:
                del self._fallback_cache[k]

    def delete(self, key: str):
        """Delete key from cache."""
        if self.enabled and self.redis_client:
            try:
                self.redis_client.delete(key)
                return
            except redis.RedisError as e:
                logger.debug(f"Redis delete failed for key {key}: {e}")

        self._fallback_cache.pop(key, None)

    def clear(self):
        """Clear all cached values."""
        if self.enabled and self.redis_client:
            try:
                self.redis_client.flushdb()
                return
            except redis.RedisError as e:
                logger.debug(f"Redis clear failed: {e}")

        self._fallback_cache.clear()

    def is_available(self) -> bool:
        """Check if Redis is available and working."""
        if not self.enabled or not self.redis_client:
            return False
        try:
            self.redis_client.ping()
            return True
        except redis.RedisError:
            return False
