"""
Data models for TradeLens trade reconstruction and analysis.

This module defines the value objects passed between the classifier,
aggregator and pattern detector. All of them are plain dataclasses; the ones
describing trades and patterns are frozen so a computed result can be shared
without copying.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# Marker carried in the notes of every synthesized trade
DEMO_MARKER = "[DEMO]"

NOT_AVAILABLE = "N/A"


class TradeType(Enum):
    """Direction of a trade relative to the analysed wallet."""
    ACQUISITION = "acquisition"  # gained the asset (buy)
    DISPOSITION = "disposition"  # gave the asset up (sell)


class FrequencyClass(Enum):
    """Trading frequency bucket."""
    LOW = "Low"        # < 1 trade/week
    MEDIUM = "Medium"  # < 10 trades/week
    HIGH = "High"      # >= 10 trades/week


class ActivityLevel(Enum):
    """How busy the wallet was over the recent-activity window."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PatternKind(Enum):
    """Behavioural patterns recognised by the pattern detector."""
    BUY_LOW_SELL_HIGH = "buy-low-sell-high"
    AVERAGING_DOWN = "averaging-down"
    MOMENTUM_CLUSTERING = "momentum-clustering"
    CONCENTRATION_RISK = "concentration-risk"
    RAPID_SUCCESSION = "rapid-succession"
    REACTIVE_SELLING = "reactive-selling"
    ACCUMULATION = "accumulation"
    DISTRIBUTION = "distribution"
    PREFERRED_HOUR = "preferred-trading-hour"


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _parse_iso(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class Trade:
    """
    A single trade reconstructed from one raw transaction.

    ``total_value`` is derived from ``amount * unit_price`` when not given.
    Prices are quoted in native units (SOL) when they come from the
    transaction itself, or from the reference price oracle otherwise.
    """
    id: str
    timestamp: datetime
    type: TradeType
    asset: str
    amount: float
    unit_price: float
    venue: str = "Unknown"
    successful: bool = True
    notes: Optional[str] = None
    total_value: Optional[float] = None

    def __post_init__(self):
        """Convert string type to enum and fill in total_value."""
        if isinstance(self.type, str):
            object.__setattr__(self, "type", TradeType(self.type.lower()))
        if self.total_value is None:
            object.__setattr__(self, "total_value", self.amount * self.unit_price)

    @property
    def is_acquisition(self) -> bool:
        return self.type == TradeType.ACQUISITION

    @property
    def is_disposition(self) -> bool:
        return self.type == TradeType.DISPOSITION

    @property
    def is_demo(self) -> bool:
        """True when this trade was synthesized rather than read from chain."""
        return bool(self.notes) and DEMO_MARKER in self.notes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _iso(self.timestamp),
            "type": self.type.value,
            "asset": self.asset,
            "amount": self.amount,
            "unitPrice": self.unit_price,
            "totalValue": self.total_value,
            "venue": self.venue,
            "successful": self.successful,
            "notes": self.notes,
        }


@dataclass
class TradeExtreme:
    """Best or worst trade of an asset, by total value."""
    value: float
    date: datetime
    trade_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "date": _iso(self.date), "tradeId": self.trade_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeExtreme":
        return cls(
            value=float(data["value"]),
            date=_parse_iso(data["date"]),
            trade_id=data.get("tradeId"),
        )


@dataclass
class TokenAnalysis:
    """Per-asset rollup computed by the aggregator."""
    symbol: str
    name: str
    total_trades: int
    profitable_trades: int
    success_rate: float  # percent, one decimal
    total_profit_loss: float  # signed, two decimals
    average_hold_time: str
    best_trade: TradeExtreme
    worst_trade: TradeExtreme

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "totalTrades": self.total_trades,
            "profitableTrades": self.profitable_trades,
            "successRate": self.success_rate,
            "totalProfitLoss": self.total_profit_loss,
            "averageHoldTime": self.average_hold_time,
            "bestTrade": self.best_trade.to_dict(),
            "worstTrade": self.worst_trade.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenAnalysis":
        return cls(
            symbol=data["symbol"],
            name=data.get("name", data["symbol"]),
            total_trades=int(data["totalTrades"]),
            profitable_trades=int(data["profitableTrades"]),
            success_rate=float(data["successRate"]),
            total_profit_loss=float(data["totalProfitLoss"]),
            average_hold_time=data["averageHoldTime"],
            best_trade=TradeExtreme.from_dict(data["bestTrade"]),
            worst_trade=TradeExtreme.from_dict(data["worstTrade"]),
        )


@dataclass
class WalletAnalysis:
    """
    Wallet-level analytics returned by the aggregator.

    ``least_profitable_asset`` equals ``most_profitable_asset`` when only one
    asset was traded; callers should read that as "no distinct least
    profitable asset".
    """
    overall_success_rate: float
    total_profit_loss: float
    most_profitable_asset: str
    least_profitable_asset: str
    average_hold_time: str
    frequency: FrequencyClass
    trades_per_week: float
    recommendations: List[str] = field(default_factory=list)
    token_analyses: List[TokenAnalysis] = field(default_factory=list)
    is_demo: bool = False

    @property
    def trade_frequency(self) -> str:
        """Human-readable frequency, e.g. ``Medium (3.5 trades/week)``."""
        return f"{self.frequency.value} ({self.trades_per_week:.1f} trades/week)"

    @property
    def has_distinct_least_profitable(self) -> bool:
        return (
            self.least_profitable_asset != NOT_AVAILABLE
            and self.least_profitable_asset != self.most_profitable_asset
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallSuccessRate": self.overall_success_rate,
            "totalProfitLoss": self.total_profit_loss,
            "mostProfitableAsset": self.most_profitable_asset,
            "leastProfitableAsset": self.least_profitable_asset,
            "averageHoldTime": self.average_hold_time,
            "tradeFrequency": self.trade_frequency,
            "frequencyClass": self.frequency.value,
            "tradesPerWeek": self.trades_per_week,
            "recommendations": list(self.recommendations),
            "tokenAnalyses": [t.to_dict() for t in self.token_analyses],
            "isDemo": self.is_demo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WalletAnalysis":
        return cls(
            overall_success_rate=float(data["overallSuccessRate"]),
            total_profit_loss=float(data["totalProfitLoss"]),
            most_profitable_asset=data["mostProfitableAsset"],
            least_profitable_asset=data["leastProfitableAsset"],
            average_hold_time=data["averageHoldTime"],
            frequency=FrequencyClass(data["frequencyClass"]),
            trades_per_week=float(data["tradesPerWeek"]),
            recommendations=list(data.get("recommendations", [])),
            token_analyses=[TokenAnalysis.from_dict(t) for t in data.get("tokenAnalyses", [])],
            is_demo=bool(data.get("isDemo", False)),
        )


@dataclass
class TradeActivity:
    """Headline counts and volumes over a trade set."""
    total_trades: int
    buy_count: int
    sell_count: int
    total_volume: float  # sum of total_value, native units
    average_value: float
    top_asset: str  # largest summed amount; NOT_AVAILABLE when empty
    top_asset_volume: float
    recent_activity: ActivityLevel

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalTrades": self.total_trades,
            "buyCount": self.buy_count,
            "sellCount": self.sell_count,
            "totalVolume": self.total_volume,
            "averageValue": self.average_value,
            "topAsset": self.top_asset,
            "topAssetVolume": self.top_asset_volume,
            "recentActivity": self.recent_activity.value,
        }


@dataclass(frozen=True)
class Pattern:
    """A recurring behaviour found in a trade set."""
    id: str
    kind: PatternKind
    confidence: int  # 0-100, heuristic
    description: str
    suggested_action: str
    trade_ids: Tuple[str, ...] = ()
    asset: Optional[str] = None
    metrics: Dict[str, float] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "asset": self.asset,
            "confidence": self.confidence,
            "description": self.description,
            "suggestedAction": self.suggested_action,
            "tradeIds": list(self.trade_ids),
            "metrics": dict(self.metrics),
        }


@dataclass
class PriceQuote:
    """Spot price answer from a price oracle."""
    symbol: str
    price: float
    change_24h: Optional[float] = None
    volume_24h: Optional[float] = None
    market_cap: Optional[float] = None
    liquidity: Optional[float] = None
    source: str = "unknown"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change24h": self.change_24h,
            "volume24h": self.volume_24h,
            "marketCap": self.market_cap,
            "liquidity": self.liquidity,
            "source": self.source,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceQuote":
        return cls(
            symbol=data["symbol"],
            price=float(data["price"]),
            change_24h=data.get("change24h"),
            volume_24h=data.get("volume24h"),
            market_cap=data.get("marketCap"),
            liquidity=data.get("liquidity"),
            source=data.get("source", "unknown"),
            timestamp=_parse_iso(data.get("timestamp")) or datetime.now(timezone.utc),
        )
