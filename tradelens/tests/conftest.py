"""
Pytest configuration and fixtures for TradeLens tests.
"""

import itertools
from datetime import timedelta
from typing import Optional

import pytest

from tradelens.core.classifier import TransactionClassifier
from tradelens.core.metrics import TradeLensMetrics
from tradelens.core.models import Trade, TradeType
from tradelens.core.price_oracle import ReferencePriceOracle
from tradelens.core.redis_client import RedisClient

from payloads import BASE_TIME, WALLET


@pytest.fixture
def wallet_address():
    """Sample Solana wallet address for testing."""
    return WALLET


@pytest.fixture
def classifier():
    """Classifier with the built-in reference prices and default thresholds."""
    return TransactionClassifier(price_oracle=ReferencePriceOracle(), min_trade_amount=0.001)


@pytest.fixture
def metrics():
    """Metrics exporter on a private registry."""
    return TradeLensMetrics()


@pytest.fixture
def memory_cache():
    """Cache backend that never touches a Redis server."""
    return RedisClient(enabled=False)


@pytest.fixture
def make_trade():
    """Factory for trades at BASE_TIME plus an offset."""
    ids = itertools.count(1)

    def _make(
        type: str = "acquisition",
        asset: str = "X",
        amount: float = 10.0,
        unit_price: float = 1.0,
        days: float = 0.0,
        hours: float = 0.0,
        successful: bool = True,
        notes: Optional[str] = None,
        id: Optional[str] = None,
    ) -> Trade:
        return Trade(
            id=id or f"t{next(ids)}",
            timestamp=BASE_TIME + timedelta(days=days, hours=hours),
            type=TradeType(type),
            asset=asset,
            amount=amount,
            unit_price=unit_price,
            venue="Jupiter",
            successful=successful,
            notes=notes,
        )

    return _make
