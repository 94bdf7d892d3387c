"""
Trade Aggregator

Computes wallet-level analytics from an ordered set of trades:
- Success rate from each trade's ``successful`` flag (not profitability)
- Profit/loss from a naive cash-flow model: acquisitions subtract their
  value, dispositions add it. This is a lower bound; it does not match lots,
  so an open position shows up as a loss.
- Holding time from pairing each disposition with the most recent open
  acquisition of the same asset
- Trading frequency (trades per week) and its Low/Medium/High bucket
- Per-asset rollups, ranking and recommendations
- A separate activity summary (``summarize_activity``): buy/sell counts,
  volume, top asset and how busy the last 48 hours were

``aggregate`` is a pure function: it never mutates its input and returns a
fresh WalletAnalysis on every call. Malformed values (negative or non-finite
amounts and values) contribute zero.
"""

import math
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    ActivityLevel,
    FrequencyClass,
    NOT_AVAILABLE,
    TokenAnalysis,
    Trade,
    TradeActivity,
    TradeExtreme,
    WalletAnalysis,
)

SMALL_TRADE_AMOUNT = 0.01
SHORT_HOLD_SECONDS = 7 * 24 * 3600
HIGH_FREQUENCY_PER_WEEK = 10.0
RECENT_WINDOW = timedelta(hours=48)
RECENT_HIGH_TRADES = 3

TOKEN_NAMES: Dict[str, str] = {
    "SOL": "Solana",
    "BONK": "Bonk",
    "JUP": "Jupiter",
    "PYTH": "Pyth Network",
    "RAY": "Raydium",
    "ORCA": "Orca",
    "WIF": "dogwifhat",
    "POPCAT": "Popcat",
    "USDC": "USD Coin",
    "USDT": "Tether USD",
}

ONBOARDING_RECOMMENDATIONS = [
    "No transaction history found. Try adding some funds to your wallet or making some transactions.",
    "Consider buying SOL to start your trading journey.",
    "Explore Solana DeFi platforms like Jupiter, Raydium, or Orca.",
]

REC_HOLD_LONGER = "Consider holding assets longer for better potential returns."
REC_DIVERSIFY = "Your portfolio could benefit from diversification across more assets."
REC_FEWER_TRADES = "Your trading frequency is high. Consider a more strategic approach to reduce fees."
REC_CONSOLIDATE = (
    "Many of your transactions are very small. "
    "Consider consolidating into larger trades to minimize fees."
)
REC_CONTINUE = "Continue your current strategy as it appears to be working well."


def _safe(value: Optional[float]) -> float:
    """Clamp malformed numbers to zero."""
    if value is None or not math.isfinite(value) or value < 0:
        return 0.0
    return value


def format_hold_time(seconds: Optional[float]) -> str:
    """
    Format a duration the way reports show holding time.

    Args:
        seconds: Duration in seconds, or None when no pair closed

    Returns:
        "N minute(s)" below an hour, "N hour(s)" below a day, else "N day(s)";
        "N/A" for None
    """
    if seconds is None:
        return NOT_AVAILABLE
    if seconds < 3600:
        return f"{round(seconds / 60)} minute(s)"
    if seconds < 86400:
        return f"{round(seconds / 3600)} hour(s)"
    return f"{round(seconds / 86400)} day(s)"


def classify_frequency(trades_per_week: float) -> FrequencyClass:
    if trades_per_week < 1:
        return FrequencyClass.LOW
    if trades_per_week < HIGH_FREQUENCY_PER_WEEK:
        return FrequencyClass.MEDIUM
    return FrequencyClass.HIGH


def group_by_asset(trades: Sequence[Trade]) -> "OrderedDict[str, List[Trade]]":
    """Partition trades by asset, keeping first-seen asset order and in-group order."""
    groups: "OrderedDict[str, List[Trade]]" = OrderedDict()
    for trade in trades:
        groups.setdefault(trade.asset, []).append(trade)
    return groups


def cash_flow(trades: Sequence[Trade]) -> float:
    """Dispositions add their value, acquisitions subtract it."""
    total = 0.0
    for trade in trades:
        value = _safe(trade.total_value)
        total += value if trade.is_disposition else -value
    return total


def hold_durations(trades: Sequence[Trade]) -> List[float]:
    """
    Holding periods (seconds) of one asset's closed pairs.

    Trades are walked in time order; each disposition closes the most recent
    open acquisition.
    """
    open_since = None
    durations = []
    for trade in sorted(trades, key=lambda t: t.timestamp):
        if trade.is_acquisition:
            open_since = trade.timestamp
        elif open_since is not None:
            durations.append((trade.timestamp - open_since).total_seconds())
            open_since = None
    return durations


def count_profitable_dispositions(trades: Sequence[Trade]) -> int:
    """
    Count dispositions that realized a gain under FIFO lot matching.

    Each disposition consumes the oldest open acquisition lots; it is
    profitable when its proceeds exceed the cost of the units it consumed.
    Units sold without any open lot have no known cost and are not counted.
    """
    lots: List[List[float]] = []  # [remaining amount, unit cost]
    profitable = 0
    for trade in sorted(trades, key=lambda t: t.timestamp):
        amount = _safe(trade.amount)
        if amount == 0:
            continue
        unit_value = _safe(trade.total_value) / amount

        if trade.is_acquisition:
            lots.append([amount, unit_value])
            continue

        remaining = amount
        matched = 0.0
        cost = 0.0
        while remaining > 0 and lots:
            lot = lots[0]
            used = min(remaining, lot[0])
            cost += used * lot[1]
            matched += used
            remaining -= used
            lot[0] -= used
            if lot[0] <= 0:
                lots.pop(0)

        if matched > 0 and matched * unit_value > cost:
            profitable += 1
    return profitable


def _extremes(trades: Sequence[Trade]) -> Tuple[TradeExtreme, TradeExtreme]:
    best = max(trades, key=lambda t: _safe(t.total_value))
    worst = min(trades, key=lambda t: _safe(t.total_value))
    return (
        TradeExtreme(value=round(_safe(best.total_value), 2), date=best.timestamp, trade_id=best.id),
        TradeExtreme(value=round(_safe(worst.total_value), 2), date=worst.timestamp, trade_id=worst.id),
    )


def analyze_token(symbol: str, trades: Sequence[Trade]) -> Tuple[TokenAnalysis, float]:
    """
    Roll up one asset's trades.

    Returns:
        Tuple of (TokenAnalysis, unrounded profit/loss)
    """
    pnl = cash_flow(trades)
    durations = hold_durations(trades)
    profitable = count_profitable_dispositions(trades)
    best, worst = _extremes(trades)

    analysis = TokenAnalysis(
        symbol=symbol,
        name=TOKEN_NAMES.get(symbol, symbol),
        total_trades=len(trades),
        profitable_trades=profitable,
        success_rate=round(profitable / len(trades) * 100, 1),
        total_profit_loss=round(pnl, 2),
        average_hold_time=format_hold_time(sum(durations) / len(durations) if durations else None),
        best_trade=best,
        worst_trade=worst,
    )
    return analysis, pnl


def trades_per_week(trades: Sequence[Trade]) -> float:
    """Trade count over the span between first and last trade, at least one week."""
    if not trades:
        return 0.0
    timestamps = [t.timestamp for t in trades]
    weeks = (max(timestamps) - min(timestamps)).total_seconds() / (7 * 86400)
    return len(trades) / max(1.0, weeks)


def empty_analysis() -> WalletAnalysis:
    """Canonical zero analysis for a wallet without trades."""
    return WalletAnalysis(
        overall_success_rate=0.0,
        total_profit_loss=0.0,
        most_profitable_asset=NOT_AVAILABLE,
        least_profitable_asset=NOT_AVAILABLE,
        average_hold_time=NOT_AVAILABLE,
        frequency=FrequencyClass.LOW,
        trades_per_week=0.0,
        recommendations=list(ONBOARDING_RECOMMENDATIONS),
        token_analyses=[],
    )


def build_recommendations(
    trades: Sequence[Trade],
    average_hold_seconds: Optional[float],
    asset_count: int,
    rate: float,
    small_trade_amount: float = SMALL_TRADE_AMOUNT,
) -> List[str]:
    """Fixed rule list, evaluated in order; never empty."""
    recommendations = []
    if average_hold_seconds is not None and average_hold_seconds < SHORT_HOLD_SECONDS:
        recommendations.append(REC_HOLD_LONGER)
    if asset_count == 1:
        recommendations.append(REC_DIVERSIFY)
    if rate >= HIGH_FREQUENCY_PER_WEEK:
        recommendations.append(REC_FEWER_TRADES)
    small = sum(1 for t in trades if _safe(t.amount) < small_trade_amount)
    if small > len(trades) / 3:
        recommendations.append(REC_CONSOLIDATE)
    if not recommendations:
        recommendations.append(REC_CONTINUE)
    return recommendations


def aggregate(
    trades: Sequence[Trade],
    small_trade_amount: float = SMALL_TRADE_AMOUNT,
) -> WalletAnalysis:
    """
    Compute WalletAnalysis for a set of trades.

    Args:
        trades: Trades of one wallet (any order)
        small_trade_amount: Amount below which a trade counts as small for the
            consolidation recommendation

    Returns:
        Fresh WalletAnalysis; the canonical zero analysis for no trades
    """
    trades = list(trades)
    if not trades:
        return empty_analysis()

    successful = sum(1 for t in trades if t.successful)

    groups = group_by_asset(trades)
    rollups = [analyze_token(symbol, group) for symbol, group in groups.items()]
    total_pnl = sum(pnl for _, pnl in rollups)

    # Stable sort keeps first-seen order among equal P/L
    token_analyses = sorted((a for a, _ in rollups), key=lambda a: a.total_profit_loss, reverse=True)

    durations = [d for group in groups.values() for d in hold_durations(group)]
    average_hold = sum(durations) / len(durations) if durations else None

    rate = trades_per_week(trades)

    return WalletAnalysis(
        overall_success_rate=round(successful / len(trades) * 100, 2),
        total_profit_loss=round(total_pnl, 2),
        most_profitable_asset=token_analyses[0].symbol,
        least_profitable_asset=token_analyses[-1].symbol,
        average_hold_time=format_hold_time(average_hold),
        frequency=classify_frequency(rate),
        trades_per_week=round(rate, 1),
        recommendations=build_recommendations(
            trades, average_hold, len(groups), rate, small_trade_amount
        ),
        token_analyses=token_analyses,
        is_demo=any(t.is_demo for t in trades),
    )


def summarize_activity(trades: Sequence[Trade], now: datetime) -> TradeActivity:
    """
    Headline activity numbers for a trade set.

    The top asset is the one with the largest summed amount (first seen wins
    ties). Recent activity counts trades in the 48 hours before ``now``:
    three or more is high, one or more medium, otherwise low; a wallet with
    no trades at all has none.

    Args:
        trades: Trades of one wallet (any order)
        now: Reference time for the recent-activity window

    Returns:
        Fresh TradeActivity
    """
    trades = list(trades)
    if not trades:
        return TradeActivity(
            total_trades=0,
            buy_count=0,
            sell_count=0,
            total_volume=0.0,
            average_value=0.0,
            top_asset=NOT_AVAILABLE,
            top_asset_volume=0.0,
            recent_activity=ActivityLevel.NONE,
        )

    buys = sum(1 for t in trades if t.is_acquisition)
    volume = sum(_safe(t.total_value) for t in trades)

    top_asset, top_amount = NOT_AVAILABLE, 0.0
    for asset, group in group_by_asset(trades).items():
        amount = sum(_safe(t.amount) for t in group)
        if amount > top_amount:
            top_asset, top_amount = asset, amount

    recent = sum(1 for t in trades if now - RECENT_WINDOW <= t.timestamp <= now)
    if recent >= RECENT_HIGH_TRADES:
        level = ActivityLevel.HIGH
    elif recent:
        level = ActivityLevel.MEDIUM
    else:
        level = ActivityLevel.LOW

    return TradeActivity(
        total_trades=len(trades),
        buy_count=buys,
        sell_count=len(trades) - buys,
        total_volume=volume,
        average_value=volume / len(trades),
        top_asset=top_asset,
        top_asset_volume=top_amount,
        recent_activity=level,
    )
