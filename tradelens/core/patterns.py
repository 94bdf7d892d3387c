"""
Pattern Detector

Scans a trade set for recurring behaviour:
- buy-low-sell-high: a disposition at least 5% above an earlier acquisition
- averaging-down: consecutive acquisitions, the second at least 10% cheaper
- momentum-clustering: 3+ same-typed trades of one asset within 30 days
- concentration-risk: one asset is over 70% of more than 5 trades
- rapid-succession: 2+ acquisition gaps under 24h in the latest 10 trades
- reactive-selling: 2+ disposition gaps under 12h
- accumulation / distribution: over 80% acquisitions across 5+ trades, or
  under 20% acquisitions with more than 3 dispositions
- preferred-trading-hour: over half of the trades (and at least 3) fall in
  the same UTC hour

Assets with fewer than two trades are dropped before any rule runs, so no
pattern ever references them. Confidence scores are heuristic: each kind
draws from a fixed range using the injected ``random.Random``, so a seeded
detector gives reproducible output.
"""

import logging
import random
from collections import Counter
from datetime import timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from .aggregator import group_by_asset
from .models import Pattern, PatternKind, Trade, TradeType

logger = logging.getLogger(__name__)

BLSH_MIN_GAIN = 5.0
BLSH_STRONG_GAIN = 20.0
AVERAGING_DOWN_MIN_DROP = 10.0
AVERAGING_DOWN_STRONG_DROP = 25.0
MOMENTUM_MIN_TRADES = 3
MOMENTUM_STRONG_TRADES = 5
MOMENTUM_WINDOW = timedelta(days=30)
CONCENTRATION_SHARE = 0.7
CONCENTRATION_MIN_TRADES = 5
RAPID_WINDOW_TRADES = 10
RAPID_GAP = timedelta(hours=24)
REACTIVE_GAP = timedelta(hours=12)
MIN_SHORT_GAPS = 2
BUY_RATIO_MIN_TRADES = 5
ACCUMULATION_RATIO = 0.8
DISTRIBUTION_RATIO = 0.2
DISTRIBUTION_MIN_SELLS = 3
PEAK_HOUR_MIN_TRADES = 3
PEAK_HOUR_SHARE = 0.5

# (low, high) inclusive confidence ranges
CONFIDENCE = {
    "blsh_strong": (80, 95),
    "blsh": (60, 79),
    "averaging_down_strong": (75, 90),
    "averaging_down": (55, 70),
    "momentum_strong": (75, 90),
    "momentum": (60, 75),
    "concentration": (80, 94),
    "rapid": (60, 84),
    "reactive": (65, 84),
    "accumulation": (70, 89),
    "distribution": (65, 84),
    "preferred_hour": (60, 84),
}


class PatternDetector:
    """Detects behavioural patterns in a wallet's trades."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Args:
            rng: Source of confidence jitter; pass a seeded Random for
                reproducible scores
        """
        self.rng = rng or random.Random()

    def _confidence(self, key: str) -> int:
        low, high = CONFIDENCE[key]
        return self.rng.randint(low, high)

    def detect_patterns(self, trades: Sequence[Trade]) -> List[Pattern]:
        """
        Detect all pattern kinds in a trade set.

        Args:
            trades: Trades in any order

        Returns:
            Patterns, per-asset kinds first (in first-seen asset order),
            then portfolio-wide kinds
        """
        ordered = sorted(trades, key=lambda t: t.timestamp)
        eligible = {asset: group for asset, group in group_by_asset(ordered).items() if len(group) >= 2}
        if not eligible:
            return []

        eligible_trades = [t for t in ordered if t.asset in eligible]
        ids = _IdFactory()
        patterns: List[Pattern] = []

        for asset, group in eligible.items():
            patterns.extend(self._buy_low_sell_high(asset, group, ids))
            patterns.extend(self._averaging_down(asset, group, ids))
            patterns.extend(self._momentum_clustering(asset, group, ids))

        patterns.extend(self._concentration_risk(ordered, eligible, ids))
        patterns.extend(self._rapid_succession(eligible_trades, ids))
        patterns.extend(self._reactive_selling(eligible_trades, ids))
        patterns.extend(self._buy_sell_balance(eligible_trades, ids))
        patterns.extend(self._preferred_hour(eligible_trades, ids))

        logger.debug(f"Detected {len(patterns)} patterns across {len(eligible)} assets")
        return patterns

    # ------------------------------------------------------------------
    # Per-asset patterns
    # ------------------------------------------------------------------

    def _buy_low_sell_high(self, asset: str, trades: List[Trade], ids: "_IdFactory") -> List[Pattern]:
        patterns = []
        i = 0
        while i < len(trades) - 1:
            buy = trades[i]
            if buy.type != TradeType.ACQUISITION or buy.unit_price <= 0:
                i += 1
                continue

            matched = None
            for j in range(i + 1, len(trades)):
                sell = trades[j]
                if sell.type != TradeType.DISPOSITION:
                    continue
                gain = (sell.unit_price - buy.unit_price) / buy.unit_price * 100
                if gain >= BLSH_MIN_GAIN:
                    matched = (j, sell, gain)
                    break

            if matched is None:
                i += 1
                continue

            j, sell, gain = matched
            days = round((sell.timestamp - buy.timestamp).total_seconds() / 86400)
            strong = gain > BLSH_STRONG_GAIN
            patterns.append(Pattern(
                id=ids.next(PatternKind.BUY_LOW_SELL_HIGH, asset),
                kind=PatternKind.BUY_LOW_SELL_HIGH,
                asset=asset,
                confidence=self._confidence("blsh_strong" if strong else "blsh"),
                description=f"Bought {asset} and sold {days} days later for a {gain:.1f}% gain",
                suggested_action="Note what drove this entry and exit so the setup can be repeated deliberately.",
                trade_ids=(buy.id, sell.id),
                metrics={"gain_percent": round(gain, 2), "days_held": days},
            ))
            # Both trades are consumed
            i = j + 1
        return patterns

    def _averaging_down(self, asset: str, trades: List[Trade], ids: "_IdFactory") -> List[Pattern]:
        buys = [t for t in trades if t.type == TradeType.ACQUISITION]
        patterns = []
        i = 0
        while i < len(buys) - 1:
            first, second = buys[i], buys[i + 1]
            if first.unit_price <= 0 or second.unit_price >= first.unit_price:
                i += 1
                continue

            drop = (first.unit_price - second.unit_price) / first.unit_price * 100
            if drop < AVERAGING_DOWN_MIN_DROP:
                i += 1
                continue

            strong = drop > AVERAGING_DOWN_STRONG_DROP
            patterns.append(Pattern(
                id=ids.next(PatternKind.AVERAGING_DOWN, asset),
                kind=PatternKind.AVERAGING_DOWN,
                asset=asset,
                confidence=self._confidence("averaging_down_strong" if strong else "averaging_down"),
                description=f"Bought more {asset} after price dropped {drop:.1f}%, lowering average cost basis",
                suggested_action="Set a maximum position size before adding to a losing position.",
                trade_ids=(first.id, second.id),
                metrics={"drop_percent": round(drop, 2)},
            ))
            # Skip this pair
            i += 2
        return patterns

    def _momentum_clustering(self, asset: str, trades: List[Trade], ids: "_IdFactory") -> List[Pattern]:
        patterns = []
        for trade_type in (TradeType.ACQUISITION, TradeType.DISPOSITION):
            same = [t for t in trades if t.type == trade_type]
            window = _densest_window(same, MOMENTUM_WINDOW)
            if len(window) < MOMENTUM_MIN_TRADES:
                continue

            days = round((window[-1].timestamp - window[0].timestamp).total_seconds() / 86400)
            buying = trade_type == TradeType.ACQUISITION
            strong = len(window) >= MOMENTUM_STRONG_TRADES
            patterns.append(Pattern(
                id=ids.next(PatternKind.MOMENTUM_CLUSTERING, asset),
                kind=PatternKind.MOMENTUM_CLUSTERING,
                asset=asset,
                confidence=self._confidence("momentum_strong" if strong else "momentum"),
                description=(
                    f"{'Accumulated' if buying else 'Distributed'} {asset} with {len(window)} "
                    f"{'acquisitions' if buying else 'dispositions'} in {days} days"
                ),
                suggested_action=(
                    "Decide in advance how large the position may grow before following a trend."
                    if buying else
                    "Check whether the exits follow a plan or a price move before selling further."
                ),
                trade_ids=tuple(t.id for t in window),
                metrics={"trade_count": len(window), "window_days": days},
            ))
        return patterns

    # ------------------------------------------------------------------
    # Portfolio-wide patterns
    # ------------------------------------------------------------------

    def _concentration_risk(
        self, trades: List[Trade], eligible: Dict[str, List[Trade]], ids: "_IdFactory"
    ) -> List[Pattern]:
        total = len(trades)
        if total <= CONCENTRATION_MIN_TRADES:
            return []

        asset, count = Counter(t.asset for t in trades).most_common(1)[0]
        share = count / total
        if share <= CONCENTRATION_SHARE or asset not in eligible:
            return []

        return [Pattern(
            id=ids.next(PatternKind.CONCENTRATION_RISK, asset),
            kind=PatternKind.CONCENTRATION_RISK,
            asset=asset,
            confidence=self._confidence("concentration"),
            description=(
                f"Over 70% of your recent activity involves {asset}. "
                "High concentration increases both potential reward and risk."
            ),
            suggested_action=(
                "Consider allocating a portion of future trades to other promising assets "
                "to reduce single-asset risk."
            ),
            trade_ids=tuple(t.id for t in eligible[asset]),
            metrics={"share_percent": round(share * 100, 1), "trade_count": count, "total_trades": total},
        )]

    def _rapid_succession(self, trades: List[Trade], ids: "_IdFactory") -> List[Pattern]:
        recent = trades[-RAPID_WINDOW_TRADES:]
        buys = [t for t in recent if t.type == TradeType.ACQUISITION]
        involved, short_gaps = _short_gaps(buys, RAPID_GAP)
        if short_gaps < MIN_SHORT_GAPS:
            return []

        return [Pattern(
            id=ids.next(PatternKind.RAPID_SUCCESSION, None),
            kind=PatternKind.RAPID_SUCCESSION,
            confidence=self._confidence("rapid"),
            description=(
                "You made several purchases in quick succession. "
                "Rapid buying can sometimes indicate fear of missing out."
            ),
            suggested_action="Consider planning entries in advance and spreading buys over time.",
            trade_ids=tuple(t.id for t in involved),
            metrics={"short_gaps": short_gaps},
        )]

    def _reactive_selling(self, trades: List[Trade], ids: "_IdFactory") -> List[Pattern]:
        sells = [t for t in trades if t.type == TradeType.DISPOSITION]
        involved, short_gaps = _short_gaps(sells, REACTIVE_GAP)
        if short_gaps < MIN_SHORT_GAPS:
            return []

        return [Pattern(
            id=ids.next(PatternKind.REACTIVE_SELLING, None),
            kind=PatternKind.REACTIVE_SELLING,
            confidence=self._confidence("reactive"),
            description=(
                "You sold multiple assets in a short timeframe. "
                "Clustered selling can sometimes indicate reacting to market events."
            ),
            suggested_action=(
                "Consider setting predetermined exit points and sticking to your strategy "
                "regardless of short-term market movements."
            ),
            trade_ids=tuple(t.id for t in involved),
            metrics={"short_gaps": short_gaps},
        )]

    def _buy_sell_balance(self, trades: List[Trade], ids: "_IdFactory") -> List[Pattern]:
        if len(trades) < BUY_RATIO_MIN_TRADES:
            return []

        buys = [t for t in trades if t.type == TradeType.ACQUISITION]
        sells = [t for t in trades if t.type == TradeType.DISPOSITION]
        ratio = len(buys) / len(trades)
        metrics = {"buy_ratio": round(ratio, 2), "buys": len(buys), "sells": len(sells)}

        if ratio > ACCUMULATION_RATIO:
            return [Pattern(
                id=ids.next(PatternKind.ACCUMULATION, None),
                kind=PatternKind.ACCUMULATION,
                confidence=self._confidence("accumulation"),
                description=(
                    "You're buying frequently without taking profits. While accumulation is good "
                    "in bull markets, remember to consider profit-taking strategies."
                ),
                suggested_action="Consider setting price targets for taking partial profits on some positions.",
                trade_ids=tuple(t.id for t in buys),
                metrics=metrics,
            )]

        if ratio < DISTRIBUTION_RATIO and len(sells) > DISTRIBUTION_MIN_SELLS:
            return [Pattern(
                id=ids.next(PatternKind.DISTRIBUTION, None),
                kind=PatternKind.DISTRIBUTION,
                confidence=self._confidence("distribution"),
                description=(
                    "You've been primarily selling assets recently. This could be profit-taking "
                    "or risk management, but ensure it aligns with your overall strategy."
                ),
                suggested_action=(
                    "Review market conditions and your investment thesis to confirm "
                    "if selling is the optimal strategy."
                ),
                trade_ids=tuple(t.id for t in sells),
                metrics=metrics,
            )]

        return []

    def _preferred_hour(self, trades: List[Trade], ids: "_IdFactory") -> List[Pattern]:
        by_hour: Dict[int, List[Trade]] = {}
        for trade in trades:
            by_hour.setdefault(trade.timestamp.astimezone(timezone.utc).hour, []).append(trade)
        if not by_hour:
            return []

        # Earliest hour wins ties
        hour = max(sorted(by_hour), key=lambda h: len(by_hour[h]))
        peak = by_hour[hour]
        share = len(peak) / len(trades)
        if len(peak) < PEAK_HOUR_MIN_TRADES or share <= PEAK_HOUR_SHARE:
            return []

        label = f"{hour % 12 or 12}{'AM' if hour < 12 else 'PM'} UTC"
        return [Pattern(
            id=ids.next(PatternKind.PREFERRED_HOUR, None),
            kind=PatternKind.PREFERRED_HOUR,
            confidence=self._confidence("preferred_hour"),
            description=(
                f"You frequently trade around {label}. Analyzing whether this timing is "
                "optimal for your assets could improve results."
            ),
            suggested_action="Compare market volatility and volume at your typical trading time vs. other times.",
            trade_ids=tuple(t.id for t in peak),
            metrics={"hour": hour, "trade_count": len(peak), "share_percent": round(share * 100, 1)},
        )]


class _IdFactory:
    """Deterministic pattern ids: ``<kind>-<asset|portfolio>-<n>``."""

    def __init__(self):
        self._counts: Counter = Counter()

    def next(self, kind: PatternKind, asset: Optional[str]) -> str:
        key = f"{kind.value}-{asset or 'portfolio'}"
        self._counts[key] += 1
        return f"{key}-{self._counts[key]}"


def _densest_window(trades: List[Trade], span: timedelta) -> List[Trade]:
    """Largest run of time-ordered trades whose first and last are at most ``span`` apart."""
    best: Tuple[int, int] = (0, 0)
    start = 0
    for end in range(len(trades)):
        while trades[end].timestamp - trades[start].timestamp > span:
            start += 1
        if end + 1 - start > best[1] - best[0]:
            best = (start, end + 1)
    return trades[best[0]:best[1]]


def _short_gaps(trades: List[Trade], gap: timedelta) -> Tuple[List[Trade], int]:
    """Trades bordering a gap shorter than ``gap``, and how many such gaps there are."""
    involved: List[Trade] = []
    count = 0
    for previous, current in zip(trades, trades[1:]):
        if current.timestamp - previous.timestamp < gap:
            count += 1
            for trade in (previous, current):
                if not involved or involved[-1] is not trade:
                    involved.append(trade)
    return involved, count
