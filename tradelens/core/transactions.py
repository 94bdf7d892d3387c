"""
Normalised view over raw Solana transaction payloads.

Two wire shapes are accepted:

- Helius enhanced transactions (``/v0/addresses/{address}/transactions``):
  ``signature``, ``timestamp``, ``instructions``, ``accountData``,
  ``nativeTransfers``, ``tokenTransfers``, ``events.swap``, ``fee``,
  ``feePayer``, ``source``, ``description``, ``transactionError``.
- Solana RPC ``getTransaction`` with ``jsonParsed`` encoding, either bare or
  wrapped in a JSON-RPC ``{"result": ...}`` envelope.

``RawTransaction.from_payload`` never raises on odd payloads; missing pieces
are simply left empty so the classifier can decide the record is not a trade.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
STABLE_MINTS = {USDC_MINT, USDT_MINT}

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

# Well-known mints -> display symbol
KNOWN_MINTS: Dict[str, str] = {
    SOL_MINT: "SOL",
    USDC_MINT: "USDC",
    USDT_MINT: "USDT",
    "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263": "BONK",
    "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm": "WIF",
    "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr": "POPCAT",
    "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN": "JUP",
    "HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3": "PYTH",
    "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R": "RAY",
    "orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE": "ORCA",
}

_SYSTEM_TRANSFER_TYPES = {"transfer", "transferWithSeed"}


def parse_ui_token_amount(transfer: Dict[str, Any]) -> float:
    """
    Best-effort parser for token amounts in transfer objects.

    Payloads vary by endpoint/version; we support common shapes:
    - rawTokenAmount: { tokenAmount: "123", decimals: 6 }
    - tokenAmount: number (already UI amount)
    - tokenAmount / uiTokenAmount: { uiAmount, uiAmountString, amount, decimals }
    """
    # 1) rawTokenAmount is the most precise
    raw = transfer.get("rawTokenAmount")
    if isinstance(raw, dict) and raw.get("tokenAmount") is not None:
        try:
            raw_amt = float(raw["tokenAmount"])
            dec = int(raw.get("decimals", 0) or 0)
            return raw_amt / (10 ** dec) if dec > 0 else raw_amt
        except (TypeError, ValueError):
            pass

    # 2) tokenAmount as dict
    ta = transfer.get("tokenAmount")
    if ta is None:
        ta = transfer.get("uiTokenAmount")
    if isinstance(ta, dict):
        for key in ("uiAmount", "uiAmountString"):
            if ta.get(key) is not None:
                try:
                    return float(ta[key])
                except (TypeError, ValueError):
                    pass
        if "amount" in ta:
            try:
                raw_amt = float(ta["amount"])
                dec = int(ta.get("decimals", 0) or 0)
                return raw_amt / (10 ** dec) if dec > 0 else raw_amt
            except (TypeError, ValueError):
                return 0.0
        return 0.0

    # 3) tokenAmount as scalar
    if ta is None:
        return 0.0
    try:
        return float(ta)
    except (TypeError, ValueError):
        return 0.0


def resolve_symbol(mint: str, symbol: Optional[str] = None) -> str:
    """Display symbol for a mint: explicit symbol, well-known table, else the mint itself."""
    if symbol:
        return symbol
    return KNOWN_MINTS.get(mint, mint)


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class NativeTransfer:
    """Movement of native SOL between two accounts (lamports)."""
    source: Optional[str]
    destination: Optional[str]
    lamports: int

    @property
    def sol(self) -> float:
        return self.lamports / LAMPORTS_PER_SOL


@dataclass
class TokenTransfer:
    """Movement of an SPL token between two owners (UI units)."""
    mint: str
    amount: float
    source: Optional[str] = None
    destination: Optional[str] = None
    symbol: Optional[str] = None


@dataclass
class SwapEvent:
    """Structured swap event with native and token legs."""
    native_input: Optional[NativeTransfer] = None   # native sent into the swap
    native_output: Optional[NativeTransfer] = None  # native paid out by the swap
    token_inputs: List[TokenTransfer] = field(default_factory=list)
    token_outputs: List[TokenTransfer] = field(default_factory=list)


@dataclass
class RawTransaction:
    """Shape-independent view of one transaction."""
    signature: Optional[str]
    timestamp: Optional[datetime]
    program_ids: List[str] = field(default_factory=list)
    has_metadata: bool = False
    failed: bool = False
    fee_lamports: int = 0
    fee_payer: Optional[str] = None
    # account -> post minus pre lamports
    balance_changes: Dict[str, int] = field(default_factory=dict)
    native_transfers: List[NativeTransfer] = field(default_factory=list)
    token_transfers: List[TokenTransfer] = field(default_factory=list)
    swap_event: Optional[SwapEvent] = None
    source: Optional[str] = None
    description: Optional[str] = None
    log_messages: List[str] = field(default_factory=list)

    @property
    def fee(self) -> float:
        return self.fee_lamports / LAMPORTS_PER_SOL

    @property
    def text_hints(self) -> List[str]:
        """Free text that may name the venue (source, description, logs)."""
        hints = [h for h in (self.source, self.description) if h]
        hints.extend(self.log_messages)
        return hints

    def native_delta(self, account: str) -> float:
        """Net SOL the account received over the native transfers (negative = sent)."""
        lamports = 0
        for transfer in self.native_transfers:
            if transfer.source == account:
                lamports -= transfer.lamports
            if transfer.destination == account:
                lamports += transfer.lamports
        return lamports / LAMPORTS_PER_SOL

    def touches_native(self, account: str) -> bool:
        return any(
            account in (t.source, t.destination) for t in self.native_transfers
        )

    def token_deltas(self, account: str) -> Dict[str, float]:
        """Net UI amount per mint for the account across the token transfers."""
        deltas: Dict[str, float] = defaultdict(float)
        for transfer in self.token_transfers:
            if transfer.source == account:
                deltas[transfer.mint] -= transfer.amount
            if transfer.destination == account:
                deltas[transfer.mint] += transfer.amount
        return {mint: delta for mint, delta in deltas.items() if delta != 0}

    def symbol_for(self, mint: str) -> str:
        for transfer in self.token_transfers:
            if transfer.mint == mint and transfer.symbol:
                return transfer.symbol
        return resolve_symbol(mint)

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["RawTransaction"]:
        """Build a view from either supported wire shape; None for non-dicts."""
        if not isinstance(payload, dict):
            return None
        if isinstance(payload.get("result"), dict):
            payload = payload["result"]
        if isinstance(payload.get("transaction"), dict) and "message" in payload["transaction"]:
            return cls._from_rpc(payload)
        return cls._from_helius(payload)

    # ------------------------------------------------------------------
    # Helius enhanced transactions
    # ------------------------------------------------------------------

    @classmethod
    def _from_helius(cls, tx: Dict[str, Any]) -> "RawTransaction":
        program_ids: List[str] = []
        for ix in tx.get("instructions") or []:
            if not isinstance(ix, dict):
                continue
            if ix.get("programId"):
                program_ids.append(ix["programId"])
            for inner in ix.get("innerInstructions") or []:
                if isinstance(inner, dict) and inner.get("programId"):
                    program_ids.append(inner["programId"])

        balance_changes: Dict[str, int] = {}
        for entry in tx.get("accountData") or []:
            if isinstance(entry, dict) and entry.get("account"):
                balance_changes[entry["account"]] = _to_int(entry.get("nativeBalanceChange"))

        native_transfers = [
            NativeTransfer(t.get("fromUserAccount"), t.get("toUserAccount"), _to_int(t.get("amount")))
            for t in tx.get("nativeTransfers") or []
            if isinstance(t, dict)
        ]

        token_transfers = [
            TokenTransfer(
                mint=t.get("mint", ""),
                amount=abs(parse_ui_token_amount(t)),
                source=t.get("fromUserAccount"),
                destination=t.get("toUserAccount"),
                symbol=t.get("tokenSymbol") or t.get("symbol"),
            )
            for t in tx.get("tokenTransfers") or []
            if isinstance(t, dict) and t.get("mint")
        ]

        events = tx.get("events") or {}
        swap_event = cls._helius_swap_event(events.get("swap")) if isinstance(events, dict) else None

        has_metadata = any(
            tx.get(key) is not None
            for key in ("accountData", "nativeTransfers", "tokenTransfers", "events", "fee")
        )

        timestamp = tx.get("timestamp")
        return cls(
            signature=tx.get("signature"),
            timestamp=datetime.fromtimestamp(timestamp, tz=timezone.utc) if timestamp else None,
            program_ids=program_ids,
            has_metadata=has_metadata,
            failed=tx.get("transactionError") is not None,
            fee_lamports=_to_int(tx.get("fee")),
            fee_payer=tx.get("feePayer"),
            balance_changes=balance_changes,
            native_transfers=native_transfers,
            token_transfers=token_transfers,
            swap_event=swap_event,
            source=tx.get("source"),
            description=tx.get("description"),
        )

    @staticmethod
    def _helius_swap_event(swap: Any) -> Optional[SwapEvent]:
        if not isinstance(swap, dict):
            return None

        def native_leg(leg: Any, sent: bool) -> Optional[NativeTransfer]:
            if not isinstance(leg, dict) or not leg.get("account"):
                return None
            lamports = _to_int(leg.get("amount"))
            if lamports <= 0:
                return None
            if sent:
                return NativeTransfer(leg["account"], None, lamports)
            return NativeTransfer(None, leg["account"], lamports)

        def token_legs(legs: Any, sent: bool) -> List[TokenTransfer]:
            result = []
            for leg in legs or []:
                if not isinstance(leg, dict) or not leg.get("mint"):
                    continue
                user = leg.get("userAccount")
                result.append(TokenTransfer(
                    mint=leg["mint"],
                    amount=abs(parse_ui_token_amount(leg)),
                    source=user if sent else None,
                    destination=None if sent else user,
                    symbol=leg.get("tokenSymbol") or leg.get("symbol"),
                ))
            return result

        event = SwapEvent(
            native_input=native_leg(swap.get("nativeInput"), sent=True),
            native_output=native_leg(swap.get("nativeOutput"), sent=False),
            token_inputs=token_legs(swap.get("tokenInputs"), sent=True),
            token_outputs=token_legs(swap.get("tokenOutputs"), sent=False),
        )
        if event.native_input is None and event.native_output is None:
            return None
        return event

    # ------------------------------------------------------------------
    # RPC getTransaction (jsonParsed)
    # ------------------------------------------------------------------

    @classmethod
    def _from_rpc(cls, tx: Dict[str, Any]) -> "RawTransaction":
        meta = tx.get("meta")
        transaction = tx["transaction"]
        message = transaction.get("message") or {}

        account_keys: List[str] = []
        for key in message.get("accountKeys") or []:
            account_keys.append(key.get("pubkey") if isinstance(key, dict) else key)

        instructions = [ix for ix in message.get("instructions") or [] if isinstance(ix, dict)]
        inner_instructions: List[Dict[str, Any]] = []
        if isinstance(meta, dict):
            for group in meta.get("innerInstructions") or []:
                if isinstance(group, dict):
                    inner_instructions.extend(
                        ix for ix in group.get("instructions") or [] if isinstance(ix, dict)
                    )

        program_ids = [ix["programId"] for ix in instructions + inner_instructions if ix.get("programId")]

        native_transfers = []
        for ix in instructions + inner_instructions:
            parsed = ix.get("parsed")
            if ix.get("program") != "system" or not isinstance(parsed, dict):
                continue
            if parsed.get("type") not in _SYSTEM_TRANSFER_TYPES:
                continue
            info = parsed.get("info") or {}
            native_transfers.append(
                NativeTransfer(info.get("source"), info.get("destination"), _to_int(info.get("lamports")))
            )

        signatures = transaction.get("signatures") or []
        block_time = tx.get("blockTime")
        view = cls(
            signature=signatures[0] if signatures else None,
            timestamp=datetime.fromtimestamp(block_time, tz=timezone.utc) if block_time else None,
            program_ids=program_ids,
            has_metadata=isinstance(meta, dict),
            fee_payer=account_keys[0] if account_keys else None,
            native_transfers=native_transfers,
        )
        if not isinstance(meta, dict):
            return view

        view.failed = meta.get("err") is not None
        view.fee_lamports = _to_int(meta.get("fee"))
        view.log_messages = [m for m in meta.get("logMessages") or [] if isinstance(m, str)]

        pre = meta.get("preBalances") or []
        post = meta.get("postBalances") or []
        for index, key in enumerate(account_keys):
            if key and index < len(pre) and index < len(post):
                view.balance_changes[key] = _to_int(post[index]) - _to_int(pre[index])

        view.token_transfers = cls._rpc_token_transfers(
            meta.get("preTokenBalances") or [], meta.get("postTokenBalances") or []
        )
        return view

    @staticmethod
    def _rpc_token_transfers(pre: List[Any], post: List[Any]) -> List[TokenTransfer]:
        """Token balance deltas per (owner, mint), expressed as one-sided transfers."""
        balances: Dict[tuple, float] = defaultdict(float)
        for sign, entries in ((-1.0, pre), (1.0, post)):
            for entry in entries:
                if not isinstance(entry, dict) or not entry.get("mint") or not entry.get("owner"):
                    continue
                amount = parse_ui_token_amount({"uiTokenAmount": entry.get("uiTokenAmount")})
                balances[(entry["owner"], entry["mint"])] += sign * amount

        transfers = []
        for (owner, mint), delta in balances.items():
            if delta < 0:
                transfers.append(TokenTransfer(mint=mint, amount=-delta, source=owner))
            elif delta > 0:
                transfers.append(TokenTransfer(mint=mint, amount=delta, destination=owner))
        return transfers
