"""
Transaction classifier: turns one raw transaction into a Trade, or None.

Classification is best-effort. Strategies are tried in priority order and the
first one that applies decides the outcome:

1. explicit swap (``events.swap``, or a token leg plus a native/wSOL leg, or a
   token leg against the account's own lamport change, or a stablecoin-quoted
   swap converted to SOL at the oracle rate)
2. native-transfer only (system transfers / Helius ``nativeTransfers``)
3. native balance delta, net of the fee the account paid

Every trade is denominated in SOL. The chosen candidate then goes through the
dust filter, which measures swaps by their SOL leg. ``classify`` never
raises: heterogeneous payloads are expected, and anything unusable is logged
at DEBUG and reported as "not a trade".
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from tradelens.config import TradeLensConfig
from .models import Trade, TradeType
from .price_oracle import PriceOracle, ReferencePriceOracle
from .transactions import (
    LAMPORTS_PER_SOL,
    RawTransaction,
    SOL_MINT,
    STABLE_MINTS,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    TokenTransfer,
    resolve_symbol,
)

logger = logging.getLogger(__name__)

DEFAULT_UNIT_PRICE = 0.1
NATIVE_ASSET = "SOL"

GENERIC_PROGRAMS: Dict[str, str] = {
    TOKEN_PROGRAM_ID: "Token Program",
    TOKEN_2022_PROGRAM_ID: "Token Program",
    SYSTEM_PROGRAM_ID: "System Transfer",
}

# Lower-case keyword -> venue, checked against source/description/logs
TEXT_VENUE_HINTS: List[Tuple[str, str]] = [
    ("jupiter", "Jupiter"),
    ("raydium", "Raydium"),
    ("whirlpool", "Orca"),
    ("orca", "Orca"),
    ("pump", "Pump.fun"),
]


@dataclass
class _Candidate:
    type: TradeType
    asset: str
    amount: float
    unit_price: float
    notes: str
    native_amount: Optional[float] = None  # counter-asset amount, swaps only


class TransactionClassifier:
    """Classifies raw transactions for one account into trades."""

    def __init__(
        self,
        price_oracle: Optional[PriceOracle] = None,
        min_trade_amount: Optional[float] = None,
        dex_programs: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            price_oracle: Reference prices for swaps without an on-chain price
                (defaults to ReferencePriceOracle)
            min_trade_amount: Dust threshold in native units (defaults to config)
            dex_programs: program id -> venue label (defaults to config)
        """
        self.price_oracle = price_oracle or ReferencePriceOracle()
        self.min_trade_amount = (
            TradeLensConfig.get_min_trade_amount() if min_trade_amount is None else min_trade_amount
        )
        self.dex_programs = dex_programs if dex_programs is not None else TradeLensConfig.get_dex_programs()

    def classify(self, tx: Any, account_address: str) -> Optional[Trade]:
        """
        Classify one raw transaction relative to ``account_address``.

        Args:
            tx: Helius enhanced transaction or RPC jsonParsed transaction
            account_address: Wallet the trade direction is relative to

        Returns:
            Trade, or None when the transaction is not a trade
        """
        try:
            return self._classify(tx, account_address)
        except Exception as e:
            signature = tx.get("signature") if isinstance(tx, dict) else None
            logger.debug(f"Could not classify transaction {signature}: {e}")
            return None

    def classify_many(self, txs: List[Any], account_address: str) -> List[Trade]:
        """Classify a batch and return the trades sorted oldest first."""
        trades = [t for t in (self.classify(tx, account_address) for tx in txs) if t is not None]
        return sorted(trades, key=lambda t: t.timestamp)

    def _classify(self, tx: Any, account: str) -> Optional[Trade]:
        view = RawTransaction.from_payload(tx)
        if view is None or not view.program_ids or not view.has_metadata:
            logger.debug("Skipping transaction without instructions or metadata")
            return None
        if view.timestamp is None:
            logger.debug(f"Skipping transaction {view.signature}: no block time")
            return None

        candidate = (
            self._from_swap_event(view, account)
            or self._from_transfer_legs(view, account)
            or self._from_native_transfers(view, account)
            or self._from_balance_delta(view, account)
        )
        if candidate is None:
            logger.debug(f"Transaction {view.signature} has no trade for {account}")
            return None

        if self._is_dust(candidate):
            logger.debug(
                f"Discarding dust trade {view.signature}: {candidate.amount} {candidate.asset}"
            )
            return None

        return Trade(
            id=view.signature or f"tx-{int(view.timestamp.timestamp())}",
            timestamp=view.timestamp,
            type=candidate.type,
            asset=candidate.asset,
            amount=candidate.amount,
            unit_price=candidate.unit_price,
            venue=self.detect_venue(view),
            successful=not view.failed,
            notes=candidate.notes,
        )

    def _is_dust(self, candidate: _Candidate) -> bool:
        """Swaps are measured by their native leg, everything else by amount."""
        if candidate.native_amount is not None:
            return candidate.native_amount < self.min_trade_amount
        return candidate.amount < self.min_trade_amount

    # ------------------------------------------------------------------
    # Venue
    # ------------------------------------------------------------------

    def detect_venue(self, view: RawTransaction) -> str:
        """
        Label the venue of a transaction.

        DEX program ids win, then textual hints from source/description/logs,
        then generic token/system programs; otherwise "Unknown".
        """
        for program_id in view.program_ids:
            if program_id in self.dex_programs:
                return self.dex_programs[program_id]

        for hint in view.text_hints:
            lowered = hint.lower()
            for keyword, venue in TEXT_VENUE_HINTS:
                if keyword in lowered:
                    return venue

        for program_id in view.program_ids:
            if program_id in GENERIC_PROGRAMS:
                return GENERIC_PROGRAMS[program_id]

        return "Unknown"

    # ------------------------------------------------------------------
    # Strategy 1: explicit swaps
    # ------------------------------------------------------------------

    def _reference_price(self, asset: str) -> float:
        quote = self.price_oracle.get_price(asset)
        if quote is not None and quote.price > 0:
            return quote.price
        return DEFAULT_UNIT_PRICE

    def _native_price(self) -> Optional[float]:
        """Oracle price of one SOL in stablecoin units, if known."""
        quote = self.price_oracle.get_price(NATIVE_ASSET)
        if quote is not None and quote.price > 0:
            return quote.price
        return None

    def _swap_candidate(
        self,
        trade_type: TradeType,
        asset: str,
        token_amount: float,
        native_amount: Optional[float],
    ) -> _Candidate:
        if native_amount and token_amount > 0:
            unit_price = native_amount / token_amount
        else:
            unit_price = self._reference_price(asset)

        if native_amount:
            verb = "Bought" if trade_type == TradeType.ACQUISITION else "Sold"
            notes = f"{verb} {token_amount:g} {asset} for {native_amount:g} {NATIVE_ASSET}"
        else:
            notes = f"Swap of {token_amount:g} {asset} (reference price)"

        return _Candidate(
            type=trade_type,
            asset=asset,
            amount=token_amount,
            unit_price=unit_price,
            notes=notes,
            native_amount=native_amount,
        )

    @staticmethod
    def _pick_token_leg(legs: List[TokenTransfer], account: str) -> Optional[TokenTransfer]:
        """Leg touching the account, preferring non-wSOL mints; else any non-wSOL leg."""
        touching = [leg for leg in legs if account in (leg.source, leg.destination)]
        for pool in (touching, legs):
            for leg in pool:
                if leg.mint != SOL_MINT and leg.amount > 0:
                    return leg
        return None

    def _from_swap_event(self, view: RawTransaction, account: str) -> Optional[_Candidate]:
        event = view.swap_event
        if event is None:
            return None

        swapper = account == view.fee_payer
        native_in = event.native_input
        native_out = event.native_output

        if native_in and (native_in.source == account or swapper):
            leg = self._pick_token_leg(event.token_outputs, account)
            if leg:
                return self._swap_candidate(
                    TradeType.ACQUISITION, leg.symbol or resolve_symbol(leg.mint),
                    leg.amount, native_in.sol,
                )

        if native_out and (native_out.destination == account or swapper):
            leg = self._pick_token_leg(event.token_inputs, account)
            if leg:
                return self._swap_candidate(
                    TradeType.DISPOSITION, leg.symbol or resolve_symbol(leg.mint),
                    leg.amount, native_out.sol,
                )

        return None

    def _from_transfer_legs(self, view: RawTransaction, account: str) -> Optional[_Candidate]:
        if not view.token_transfers:
            return None

        token_deltas = view.token_deltas(account)
        wsol_delta = token_deltas.pop(SOL_MINT, 0.0)

        # Primary token: largest non-stable movement; else a stable bought/sold for SOL
        volatile = {m: d for m, d in token_deltas.items() if m not in STABLE_MINTS}
        stables = {m: d for m, d in token_deltas.items() if m in STABLE_MINTS}
        pool = volatile or stables
        if not pool:
            return None
        primary_mint = max(pool, key=lambda m: abs(pool[m]))
        primary_delta = pool[primary_mint]
        asset = view.symbol_for(primary_mint)

        has_native_leg = bool(view.native_transfers) or wsol_delta != 0
        if has_native_leg:
            native_delta = view.native_delta(account)
            # Wrapped SOL counts as SOL; prefer it when native movement is noise
            if wsol_delta:
                native_delta = wsol_delta if abs(native_delta) < self.min_trade_amount else native_delta + wsol_delta

            if view.touches_native(account) or wsol_delta:
                if native_delta < 0:
                    trade_type = TradeType.ACQUISITION
                elif native_delta > 0:
                    trade_type = TradeType.DISPOSITION
                else:
                    trade_type = TradeType.ACQUISITION if primary_delta > 0 else TradeType.DISPOSITION
                return self._swap_candidate(trade_type, asset, abs(primary_delta), abs(native_delta) or None)

            # Native leg exists but does not involve the account: value from the token side
            trade_type = TradeType.ACQUISITION if primary_delta > 0 else TradeType.DISPOSITION
            return self._swap_candidate(trade_type, asset, abs(primary_delta), None)

        if volatile and stables:
            return self._from_stable_leg(view, asset, primary_delta, stables)

        # wSOL opened and closed inside the transaction leaves no SOL transfer;
        # the account's own lamport change is then the native leg
        if len(token_deltas) == 1:
            native_delta = self._net_native_change(view, account)
            if native_delta is not None and native_delta * primary_delta < 0:
                trade_type = TradeType.ACQUISITION if primary_delta > 0 else TradeType.DISPOSITION
                return self._swap_candidate(trade_type, asset, abs(primary_delta), abs(native_delta))

        return None

    def _from_stable_leg(
        self, view: RawTransaction, asset: str, primary_delta: float, stables: Dict[str, float]
    ) -> Optional[_Candidate]:
        """Token bought or sold for a stablecoin, valued in SOL at the oracle rate."""
        stable_mint = max(stables, key=lambda m: abs(stables[m]))
        stable_delta = stables[stable_mint]
        if stable_delta < 0 < primary_delta:
            trade_type = TradeType.ACQUISITION
        elif primary_delta < 0 < stable_delta:
            trade_type = TradeType.DISPOSITION
        else:
            return None

        sol_price = self._native_price()
        if sol_price is None:
            logger.debug(f"Skipping stablecoin swap {view.signature}: no SOL price to convert with")
            return None

        stable_amount = abs(stable_delta)
        candidate = self._swap_candidate(trade_type, asset, abs(primary_delta), stable_amount / sol_price)
        candidate.notes += f" (paid in {stable_amount:g} {view.symbol_for(stable_mint)})"
        return candidate

    @staticmethod
    def _net_native_change(view: RawTransaction, account: str) -> Optional[float]:
        """Lamport change of the account in SOL, with any fee it paid added back."""
        if account not in view.balance_changes:
            return None
        lamports = view.balance_changes[account]
        if account == view.fee_payer:
            lamports += view.fee_lamports
        return lamports / LAMPORTS_PER_SOL

    # ------------------------------------------------------------------
    # Strategy 2: native transfers
    # ------------------------------------------------------------------

    def _from_native_transfers(self, view: RawTransaction, account: str) -> Optional[_Candidate]:
        if not view.touches_native(account):
            return None

        delta = view.native_delta(account)
        if delta == 0:
            return None

        if delta > 0:
            counterparty = next(
                (t.source for t in view.native_transfers if t.destination == account and t.source), None
            )
            trade_type, notes = TradeType.ACQUISITION, f"Received SOL from {counterparty or 'unknown'}"
        else:
            counterparty = next(
                (t.destination for t in view.native_transfers if t.source == account and t.destination), None
            )
            trade_type, notes = TradeType.DISPOSITION, f"Sent SOL to {counterparty or 'unknown'}"

        return _Candidate(
            type=trade_type,
            asset=NATIVE_ASSET,
            amount=abs(delta),
            unit_price=1.0,
            notes=notes,
        )

    # ------------------------------------------------------------------
    # Strategy 3: balance delta
    # ------------------------------------------------------------------

    def _from_balance_delta(self, view: RawTransaction, account: str) -> Optional[_Candidate]:
        delta = self._net_native_change(view, account)
        if delta is None:
            return None
        paid_fee = account == view.fee_payer

        if delta > 0:
            return _Candidate(TradeType.ACQUISITION, NATIVE_ASSET, delta, 1.0, "Native balance increase")
        if delta < 0:
            return _Candidate(TradeType.DISPOSITION, NATIVE_ASSET, -delta, 1.0, "Native balance decrease")

        # Fee-only interaction
        fee = view.fee if paid_fee else 0.0
        return _Candidate(TradeType.DISPOSITION, NATIVE_ASSET, fee, 1.0, "Fee-only interaction")


def classify(tx: Any, account_address: str) -> Optional[Trade]:
    """Classify with a default-configured classifier."""
    return TransactionClassifier().classify(tx, account_address)
