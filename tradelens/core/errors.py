"""
Error types raised at the network boundaries of TradeLens.

The classifier, aggregator and pattern detector never raise; only the
transaction feed and price lookups surface these, and the orchestrator in
``analyzer.py`` decides how they reach the user.
"""

from typing import Optional


class TradeLensError(Exception):
    """Base class for TradeLens errors."""


class FeedError(TradeLensError):
    """A transaction source could not produce transactions."""


class RateLimitedError(FeedError):
    """Upstream answered HTTP 429."""

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class FeedUnavailableError(FeedError):
    """The feed gave up after exhausting its retry budget (or is not configured)."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts
