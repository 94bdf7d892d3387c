"""
Prometheus Metrics Export for TradeLens

Exports pipeline metrics for monitoring:
- Transactions classified, by outcome
- Feed failures and demo fallbacks
- Patterns detected, by kind
- Analysis duration
"""

import logging
from typing import Iterable, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server

from tradelens.config import TradeLensConfig

logger = logging.getLogger(__name__)


class TradeLensMetrics:
    """
    Prometheus metrics exporter for TradeLens.

    Each instance owns its CollectorRegistry, so several instances (tests,
    embedded use) can coexist without duplicate-metric errors.

    Metrics exported:
    - tradelens_transactions_classified_total: by outcome (trade / skipped)
    - tradelens_feed_failures_total: by reason
    - tradelens_demo_fallbacks_total: analyses served from synthetic trades
    - tradelens_patterns_detected_total: by pattern kind
    - tradelens_wallets_analyzed_total
    - tradelens_analysis_duration_seconds (Histogram)
    """

    def __init__(self, port: int = 8082, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics exporter.

        Args:
            port: Port to expose metrics on (default 8082)
            registry: Registry to register into (a fresh one by default)
        """
        self.port = port
        self.metrics_started = False
        self.registry = registry or CollectorRegistry()

        self.transactions_classified = Counter(
            'tradelens_transactions_classified_total',
            'Raw transactions run through the classifier',
            ['outcome'],
            registry=self.registry,
        )

        self.feed_failures = Counter(
            'tradelens_feed_failures_total',
            'Transaction feed failures after retries',
            ['reason'],
            registry=self.registry,
        )

        self.demo_fallbacks = Counter(
            'tradelens_demo_fallbacks_total',
            'Analyses served from synthetic demo trades',
            registry=self.registry,
        )

        self.patterns_detected = Counter(
            'tradelens_patterns_detected_total',
            'Behavioural patterns detected',
            ['kind'],
            registry=self.registry,
        )

        self.wallets_analyzed = Counter(
            'tradelens_wallets_analyzed_total',
            'Total number of wallets analyzed',
            registry=self.registry,
        )

        self.analysis_duration = Histogram(
            'tradelens_analysis_duration_seconds',
            'Time taken to analyze one wallet',
            buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60],
            registry=self.registry,
        )

    def start_server(self):
        """Start Prometheus metrics HTTP server."""
        if self.metrics_started:
            return

        try:
            start_http_server(self.port, registry=self.registry)
            self.metrics_started = True
            logger.info(f"Prometheus metrics server started on port {self.port}")
        except OSError as e:
            logger.warning(f"Failed to start Prometheus metrics server: {e}")

    def record_classification(self, classified: int, skipped: int):
        """
        Record classifier outcomes for one wallet.

        Args:
            classified: Transactions that produced a trade
            skipped: Transactions that classified to None
        """
        if classified:
            self.transactions_classified.labels(outcome="trade").inc(classified)
        if skipped:
            self.transactions_classified.labels(outcome="skipped").inc(skipped)

    def increment_feed_failures(self, reason: str = "unavailable"):
        self.feed_failures.labels(reason=reason).inc()

    def increment_demo_fallbacks(self, count: int = 1):
        self.demo_fallbacks.inc(count)

    def record_patterns(self, kinds: Iterable[str]):
        """
        Count detected patterns.

        Args:
            kinds: Pattern kind values, one per detected pattern
        """
        for kind in kinds:
            self.patterns_detected.labels(kind=kind).inc()

    def increment_wallets_analyzed(self, count: int = 1):
        self.wallets_analyzed.inc(count)

    def record_analysis_duration(self, duration_seconds: float):
        self.analysis_duration.observe(duration_seconds)


# Global metrics instance
_metrics_instance: Optional[TradeLensMetrics] = None


def get_metrics() -> TradeLensMetrics:
    """Get or create global metrics instance."""
    global _metrics_instance

    if _metrics_instance is None:
        _metrics_instance = TradeLensMetrics(port=TradeLensConfig.get_metrics_port())

        # Auto-start if enabled
        if TradeLensConfig.get_metrics_enabled():
            _metrics_instance.start_server()

    return _metrics_instance
