"""
End-to-end tests for the wallet analysis pipeline.
"""

import asyncio
import json
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from tradelens.core.aggregator import ONBOARDING_RECOMMENDATIONS
from tradelens.core.analyzer import (
    DEMO_MODE_MESSAGE,
    ERROR_MESSAGE,
    ERROR_RECOMMENDATIONS,
    FEED_DOWN_MESSAGE,
    NO_TRADES_MESSAGE,
    WalletAnalyzer,
)
from tradelens.core.cache import AnalysisCache
from tradelens.core.errors import FeedUnavailableError
from tradelens.core.helius_client import TransactionSource
from tradelens.core.models import ActivityLevel, NOT_AVAILABLE, PatternKind
from tradelens.core.patterns import PatternDetector
from tradelens.core.price_oracle import ReferencePriceOracle
from tradelens.core.synthesizer import FallbackSynthesizer

from payloads import BASE_TIME, BASE_TS, WALLET, helius_swap

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class StaticSource(TransactionSource):
    """Feed that returns canned transactions or raises."""

    def __init__(self, transactions: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.transactions = transactions or []
        self.error = error
        self.calls = []

    async def fetch_transactions(self, address: str, limit: int) -> List[Dict[str, Any]]:
        self.calls.append((address, limit))
        if self.error:
            raise self.error
        return list(self.transactions)


@pytest.fixture
def build(classifier, metrics):
    """Analyzer factory wired to test doubles."""

    def _build(source: TransactionSource, seed: int = 11, **kwargs) -> WalletAnalyzer:
        options = dict(
            source=source,
            classifier=classifier,
            detector=PatternDetector(rng=random.Random(seed)),
            synthesizer=FallbackSynthesizer(rng=random.Random(seed), now=NOW),
            price_oracle=ReferencePriceOracle(),
            metrics=metrics,
            demo_trade_count=4,
            small_trade_amount=0.01,
            now=NOW,
        )
        options.update(kwargs)
        return WalletAnalyzer(**options)

    return _build


def has_closed_position(trades) -> bool:
    return any(
        buy.asset == sell.asset and buy.is_acquisition and sell.is_disposition and buy.timestamp < sell.timestamp
        for buy in trades
        for sell in trades
    )


class TestLiveAnalysis:

    @pytest.fixture
    def source(self):
        return StaticSource([
            helius_swap(signature="sell", timestamp=BASE_TS + 86400, buy=False, lamports=750_000_000),
            helius_swap(signature="buy", timestamp=BASE_TS, lamports=500_000_000),
        ])

    def test_report(self, build, source):
        report = asyncio.run(build(source).analyze(WALLET, limit=25))

        assert source.calls == [(WALLET, 25)]
        assert not report.is_demo
        assert not report.is_error
        assert report.message is None
        assert [t.id for t in report.trades] == ["buy", "sell"]
        assert report.analysis.total_profit_loss == pytest.approx(0.25)
        assert report.analysis.average_hold_time == "1 day(s)"
        assert report.analysis.most_profitable_asset == "BONK"
        assert PatternKind.BUY_LOW_SELL_HIGH in [p.kind for p in report.patterns]

    def test_metrics(self, build, source, metrics):
        asyncio.run(build(source).analyze(WALLET))

        sample = metrics.registry.get_sample_value
        assert sample("tradelens_transactions_classified_total", {"outcome": "trade"}) == 2
        assert sample("tradelens_patterns_detected_total", {"kind": "buy-low-sell-high"}) == 1
        assert sample("tradelens_wallets_analyzed_total") == 1
        assert sample("tradelens_demo_fallbacks_total") == 0

    def test_report_is_json_serializable(self, build, source):
        report = asyncio.run(build(source).analyze(WALLET))
        data = json.loads(json.dumps(report.to_dict()))

        assert data["isDemo"] is False
        assert data["trades"][0]["type"] == "acquisition"
        assert data["patterns"][0]["kind"] == "buy-low-sell-high"

    def test_activity_summary(self, build, source):
        analyzer = build(source, now=BASE_TIME + timedelta(days=1, hours=1))

        report = asyncio.run(analyzer.analyze(WALLET))

        activity = report.activity
        assert activity.buy_count == 1
        assert activity.sell_count == 1
        assert activity.total_volume == pytest.approx(1.25)
        assert activity.top_asset == "BONK"
        assert activity.recent_activity == ActivityLevel.MEDIUM
        assert report.to_dict()["activity"]["recentActivity"] == "medium"

    def test_cached_aggregation(self, build, source, memory_cache):
        cache = AnalysisCache(redis_client=memory_cache)
        analyzer = build(source, aggregate_fn=cache)

        first = asyncio.run(analyzer.analyze(WALLET))
        second = asyncio.run(analyzer.analyze(WALLET))

        assert cache.hits == 1
        assert second.analysis.to_dict() == first.analysis.to_dict()


class TestFallbacks:

    @pytest.mark.parametrize("seed", range(8))
    def test_empty_feed_serves_demo_data(self, build, seed):
        report = asyncio.run(build(StaticSource([]), seed=seed).analyze(WALLET))

        assert report.is_demo
        assert report.analysis.is_demo
        assert report.message == NO_TRADES_MESSAGE
        assert len(report.trades) == 4
        assert all(t.is_demo for t in report.trades)
        assert report.trades == sorted(report.trades, key=lambda t: t.timestamp)
        assert (report.analysis.average_hold_time != NOT_AVAILABLE) == has_closed_position(report.trades)

    def test_unclassifiable_feed_serves_demo_data(self, build, metrics):
        report = asyncio.run(build(StaticSource([None, {"signature": "x"}])).analyze(WALLET))

        assert report.is_demo
        assert report.message == NO_TRADES_MESSAGE
        assert metrics.registry.get_sample_value(
            "tradelens_transactions_classified_total", {"outcome": "skipped"}
        ) == 2

    def test_feed_failure_serves_demo_data(self, build, metrics):
        source = StaticSource(error=FeedUnavailableError("retries exhausted", attempts=3))

        report = asyncio.run(build(source).analyze(WALLET))

        assert report.is_demo
        assert not report.is_error
        assert report.message == FEED_DOWN_MESSAGE
        assert metrics.registry.get_sample_value("tradelens_feed_failures_total", {"reason": "unavailable"}) == 1
        assert metrics.registry.get_sample_value("tradelens_demo_fallbacks_total") == 1

    def test_unexpected_error_gives_error_report(self, build, metrics):
        report = asyncio.run(build(StaticSource(error=RuntimeError("boom"))).analyze(WALLET))

        assert report.is_error
        assert not report.is_demo
        assert report.message == ERROR_MESSAGE
        assert report.analysis.recommendations == ERROR_RECOMMENDATIONS
        assert report.trades == []
        assert metrics.registry.get_sample_value("tradelens_wallets_analyzed_total") == 1

    def test_demo_mode_skips_feed(self, build):
        source = StaticSource([helius_swap()])

        report = asyncio.run(build(source).analyze(WALLET, demo=True))

        assert source.calls == []
        assert report.is_demo
        assert report.message == DEMO_MODE_MESSAGE

    def test_no_demo_trades_still_labelled(self, build):
        report = asyncio.run(build(StaticSource([]), demo_trade_count=0).analyze(WALLET))

        assert report.trades == []
        assert report.is_demo
        assert report.analysis.is_demo
        assert report.analysis.recommendations == ONBOARDING_RECOMMENDATIONS

    def test_seeded_demo_reports_match(self, build):
        first = asyncio.run(build(StaticSource([]), seed=5).analyze(WALLET))
        second = asyncio.run(build(StaticSource([]), seed=5).analyze(WALLET))

        assert first.to_dict() == second.to_dict()

    def test_demo_report_has_activity(self, build):
        report = asyncio.run(build(StaticSource([])).analyze(WALLET))

        assert report.activity.total_trades == 4
        assert report.activity.buy_count + report.activity.sell_count == 4


def test_get_price(build):
    quote = asyncio.run(build(StaticSource()).get_price("JUP"))

    assert quote.price == 0.65
