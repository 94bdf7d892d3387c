"""
Fallback Synthesizer

Produces a small, plausible, clearly labelled set of demo trades for when
the transaction feed has nothing usable, so the report surface can still
show a complete analysis. Every synthesized trade carries the ``[DEMO]``
marker in its notes; ``Trade.is_demo`` and ``WalletAnalysis.is_demo`` are
derived from it.
"""

import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from .models import DEMO_MARKER, Trade, TradeType

logger = logging.getLogger(__name__)

DEMO_ASSETS = ["BONK", "JUP", "PYTH", "RAY", "ORCA"]
DEMO_VENUES = ["Jupiter", "Raydium", "Orca"]

# symbol -> (base price, random spread)
DEMO_PRICE_RANGES: Dict[str, Tuple[float, float]] = {
    "BONK": (0.000003, 0.000001),
    "JUP": (0.65, 0.1),
    "PYTH": (0.45, 0.05),
    "RAY": (1.85, 0.2),
    "ORCA": (0.75, 0.1),
}
DEFAULT_PRICE_RANGE = (0.1, 0.05)

# First trades land in the last two days, the rest 3 to 33 days back
RECENT_COUNT = 2
RECENT_MAX_DAYS = 2.0
OLDER_MIN_DAYS = 3.0
OLDER_SPREAD_DAYS = 30.0


def demo_amount(price: float, rng: random.Random) -> float:
    """Cheaper tokens trade in larger quantities."""
    if price < 0.0001:
        return 1_000_000 + rng.random() * 9_000_000
    if price < 0.01:
        return 1000 + rng.random() * 9000
    if price < 0.1:
        return 100 + rng.random() * 900
    if price < 1:
        return 20 + rng.random() * 80
    return 1 + rng.random() * 10


class FallbackSynthesizer:
    """Generates labelled demo trades."""

    def __init__(self, rng: Optional[random.Random] = None, now: Optional[datetime] = None):
        """
        Args:
            rng: Random source; pass a seeded Random for reproducible output
            now: Reference time for timestamps (defaults to the current UTC time)
        """
        self.rng = rng or random.Random()
        self.now = now

    def synthesize(self, count: int) -> List[Trade]:
        """
        Generate ``count`` demo trades, newest first.

        Args:
            count: Number of trades; zero or negative gives an empty list

        Returns:
            List of Trade objects whose notes contain the demo marker
        """
        if count <= 0:
            return []

        now = self.now or datetime.now(timezone.utc)
        trades = [self._make_trade(i, now) for i in range(count)]
        trades.sort(key=lambda t: t.timestamp, reverse=True)

        logger.info(f"Synthesized {len(trades)} demo trades")
        return trades

    def _make_trade(self, index: int, now: datetime) -> Trade:
        rng = self.rng
        if index < RECENT_COUNT:
            days_ago = rng.random() * RECENT_MAX_DAYS
        else:
            days_ago = OLDER_MIN_DAYS + rng.random() * OLDER_SPREAD_DAYS
        timestamp = now - timedelta(days=days_ago)

        asset = rng.choice(DEMO_ASSETS)
        base, spread = DEMO_PRICE_RANGES.get(asset, DEFAULT_PRICE_RANGE)
        price = base + rng.random() * spread
        amount = demo_amount(price, rng)

        trade_type = TradeType.ACQUISITION if rng.random() > 0.5 else TradeType.DISPOSITION
        venue = rng.choice(DEMO_VENUES)

        amount = round(amount, 0 if asset == "BONK" else 2)
        price = round(price, 8 if asset == "BONK" else 4)
        verb = "buy" if trade_type == TradeType.ACQUISITION else "sell"

        return Trade(
            id=f"demo-{index}-{rng.getrandbits(32):08x}",
            timestamp=timestamp,
            type=trade_type,
            asset=asset,
            amount=amount,
            unit_price=price,
            venue=venue,
            successful=True,
            notes=f"{DEMO_MARKER} Demo {verb} {asset} on {venue}",
        )
