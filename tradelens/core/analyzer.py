"""
Wallet analyzer: orchestrates feed -> classifier -> aggregator/detector.

This is the only place where feed failures turn into user-facing fallbacks.
A wallet analysis always comes back as one of:
- real analysis of the classified trades
- labelled demo analysis, when the feed is unavailable or yields no trades
- labelled error analysis with an apology and a retry hint
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from tradelens.config import TradeLensConfig
from .aggregator import aggregate, summarize_activity
from .classifier import TransactionClassifier
from .errors import FeedUnavailableError
from .helius_client import HeliusClient, TransactionSource
from .metrics import TradeLensMetrics, get_metrics
from .models import (
    FrequencyClass,
    NOT_AVAILABLE,
    Pattern,
    PriceQuote,
    Trade,
    TradeActivity,
    WalletAnalysis,
)
from .patterns import PatternDetector
from .price_oracle import CachedPriceOracle, DexScreenerPriceOracle, PriceOracle
from .synthesizer import FallbackSynthesizer

logger = logging.getLogger(__name__)

ERROR_RECOMMENDATIONS = [
    "Unable to fully analyze your wallet due to an error.",
    "Try reconnecting your wallet or refreshing the page.",
    "Make sure your wallet has transaction history.",
]

ERROR_MESSAGE = "Sorry, we couldn't analyze this wallet right now. Please try again in a few moments."
FEED_DOWN_MESSAGE = "Live transaction data is unavailable right now, so this report shows demo data."
NO_TRADES_MESSAGE = "No trades were found for this wallet, so this report shows demo data."
DEMO_MODE_MESSAGE = "Demo mode: this report shows synthetic data."


def error_analysis() -> WalletAnalysis:
    """Labelled analysis returned when the pipeline failed unexpectedly."""
    return WalletAnalysis(
        overall_success_rate=0.0,
        total_profit_loss=0.0,
        most_profitable_asset=NOT_AVAILABLE,
        least_profitable_asset=NOT_AVAILABLE,
        average_hold_time=NOT_AVAILABLE,
        frequency=FrequencyClass.LOW,
        trades_per_week=0.0,
        recommendations=list(ERROR_RECOMMENDATIONS),
    )


@dataclass
class WalletReport:
    """Everything a report surface needs for one wallet."""
    address: str
    analysis: WalletAnalysis
    patterns: List[Pattern] = field(default_factory=list)
    trades: List[Trade] = field(default_factory=list)
    is_demo: bool = False
    is_error: bool = False
    message: Optional[str] = None
    activity: Optional[TradeActivity] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "isDemo": self.is_demo,
            "isError": self.is_error,
            "message": self.message,
            "analysis": self.analysis.to_dict(),
            "activity": self.activity.to_dict() if self.activity else None,
            "patterns": [p.to_dict() for p in self.patterns],
            "trades": [t.to_dict() for t in self.trades],
        }


class WalletAnalyzer:
    """
    Runs the full analysis pipeline for a wallet.

    Typical use:
        async with HeliusClient() as source:
            report = await WalletAnalyzer(source=source).analyze(address)
    """

    def __init__(
        self,
        source: Optional[TransactionSource] = None,
        classifier: Optional[TransactionClassifier] = None,
        detector: Optional[PatternDetector] = None,
        synthesizer: Optional[FallbackSynthesizer] = None,
        price_oracle: Optional[PriceOracle] = None,
        aggregate_fn: Callable[..., WalletAnalysis] = aggregate,
        metrics: Optional[TradeLensMetrics] = None,
        demo_trade_count: Optional[int] = None,
        small_trade_amount: Optional[float] = None,
        seed: Optional[int] = None,
        now: Optional[datetime] = None,
    ):
        """
        Args:
            source: Transaction feed (HeliusClient by default)
            classifier: Transaction classifier
            detector: Pattern detector
            synthesizer: Demo trade generator
            price_oracle: Spot price oracle for get_price (cached DexScreener by default)
            aggregate_fn: Aggregation function, e.g. an AnalysisCache
            metrics: Metrics exporter (process-wide instance by default)
            demo_trade_count: Trades to synthesize on fallback (defaults to config)
            small_trade_amount: Threshold for the consolidation recommendation
            seed: Seeds the default detector and synthesizer
            now: Reference time for the recent-activity window (defaults to
                the current UTC time at each analysis)
        """
        self.source = source or HeliusClient()
        self.classifier = classifier or TransactionClassifier()
        self.detector = detector or PatternDetector(rng=random.Random(seed))
        self.synthesizer = synthesizer or FallbackSynthesizer(rng=random.Random(seed))
        self.price_oracle = price_oracle or CachedPriceOracle(DexScreenerPriceOracle())
        self.aggregate_fn = aggregate_fn
        self.now = now
        self.metrics = metrics or get_metrics()
        self.demo_trade_count = (
            TradeLensConfig.get_demo_trade_count() if demo_trade_count is None else demo_trade_count
        )
        self.small_trade_amount = (
            TradeLensConfig.get_small_trade_amount() if small_trade_amount is None else small_trade_amount
        )

    async def close(self):
        if isinstance(self.source, HeliusClient):
            await self.source.close()

    async def analyze(self, address: str, limit: Optional[int] = None, demo: bool = False) -> WalletReport:
        """
        Analyze a wallet end to end.

        Args:
            address: Wallet address
            limit: Maximum transactions to fetch (defaults to config)
            demo: Skip the feed and analyze synthetic trades

        Returns:
            WalletReport; never raises
        """
        start_time = time.time()
        try:
            return await self._analyze(address, limit, demo)
        except Exception:
            logger.exception(f"Analysis of {address} failed")
            return WalletReport(
                address=address,
                analysis=error_analysis(),
                is_error=True,
                message=ERROR_MESSAGE,
            )
        finally:
            self.metrics.increment_wallets_analyzed()
            self.metrics.record_analysis_duration(time.time() - start_time)

    async def _analyze(self, address: str, limit: Optional[int], demo: bool) -> WalletReport:
        if demo:
            return self._demo_report(address, DEMO_MODE_MESSAGE)

        try:
            raw = await self.source.fetch_transactions(address, limit or TradeLensConfig.get_tx_limit())
        except FeedUnavailableError as e:
            logger.warning(f"Transaction feed unavailable for {address}: {e}")
            self.metrics.increment_feed_failures("unavailable")
            return self._demo_report(address, FEED_DOWN_MESSAGE)

        trades = self.classifier.classify_many(raw, address)
        self.metrics.record_classification(len(trades), len(raw) - len(trades))
        logger.info(f"Classified {len(trades)} trades from {len(raw)} transactions for {address}")

        if not trades:
            return self._demo_report(address, NO_TRADES_MESSAGE)

        return self._report(address, trades)

    def _report(self, address: str, trades: List[Trade], message: Optional[str] = None) -> WalletReport:
        analysis = self.aggregate_fn(trades, small_trade_amount=self.small_trade_amount)
        patterns = self.detector.detect_patterns(trades)
        self.metrics.record_patterns(p.kind.value for p in patterns)
        return WalletReport(
            address=address,
            analysis=analysis,
            patterns=patterns,
            trades=trades,
            is_demo=analysis.is_demo,
            message=message,
            activity=summarize_activity(trades, self.now or datetime.now(timezone.utc)),
        )

    def _demo_report(self, address: str, message: str) -> WalletReport:
        logger.info(f"Serving demo analysis for {address}: {message}")
        self.metrics.increment_demo_fallbacks()
        trades = sorted(self.synthesizer.synthesize(self.demo_trade_count), key=lambda t: t.timestamp)
        report = self._report(address, trades, message)
        # An empty synthetic set still came from the fallback path
        report.is_demo = True
        report.analysis.is_demo = True
        return report

    async def get_price(self, symbol_or_address: str) -> Optional[PriceQuote]:
        """Spot price lookup; the synchronous oracle runs in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.price_oracle.get_price, symbol_or_address)
