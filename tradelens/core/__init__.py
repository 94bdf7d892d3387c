"""
TradeLens Core Module

Provides transaction classification, trade aggregation, pattern detection,
demo-data synthesis and the feeds/oracles they consume.
"""

from .aggregator import aggregate
from .analyzer import WalletAnalyzer, WalletReport
from .cache import AnalysisCache
from .classifier import TransactionClassifier, classify
from .errors import FeedError, FeedUnavailableError, RateLimitedError, TradeLensError
from .helius_client import HeliusClient, TransactionSource
from .models import (
    FrequencyClass,
    Pattern,
    PatternKind,
    PriceQuote,
    TokenAnalysis,
    Trade,
    TradeExtreme,
    TradeType,
    WalletAnalysis,
)
from .patterns import PatternDetector
from .price_oracle import (
    CachedPriceOracle,
    DexScreenerPriceOracle,
    PriceOracle,
    ReferencePriceOracle,
)
from .synthesizer import FallbackSynthesizer

__all__ = [
    # Pipeline
    "TransactionClassifier",
    "classify",
    "aggregate",
    "PatternDetector",
    "FallbackSynthesizer",
    "WalletAnalyzer",
    "WalletReport",
    "AnalysisCache",
    # Feed & oracles
    "TransactionSource",
    "HeliusClient",
    "PriceOracle",
    "ReferencePriceOracle",
    "DexScreenerPriceOracle",
    "CachedPriceOracle",
    # Models
    "Trade",
    "TradeType",
    "TradeExtreme",
    "TokenAnalysis",
    "WalletAnalysis",
    "FrequencyClass",
    "Pattern",
    "PatternKind",
    "PriceQuote",
    # Errors
    "TradeLensError",
    "FeedError",
    "FeedUnavailableError",
    "RateLimitedError",
]
