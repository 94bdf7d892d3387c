"""
Tests for the raw transaction view.
"""

import pytest

from tradelens.core.models import TradeType
from tradelens.core.transactions import (
    RawTransaction,
    parse_ui_token_amount,
    resolve_symbol,
)

from payloads import (
    BASE_TIME,
    BONK_MINT,
    COUNTERPARTY,
    JUPITER_PROGRAM,
    POOL,
    SYSTEM_PROGRAM,
    TOKEN_PROGRAM,
    WALLET,
    helius_swap,
    rpc_transaction,
)


class TestParseUiTokenAmount:
    """Token amount shapes seen across endpoints."""

    def test_raw_token_amount(self):
        assert parse_ui_token_amount({"rawTokenAmount": {"tokenAmount": "1500000", "decimals": 6}}) == 1.5

    def test_scalar_token_amount(self):
        assert parse_ui_token_amount({"tokenAmount": 42.5}) == 42.5

    def test_ui_amount_dict(self):
        assert parse_ui_token_amount({"uiTokenAmount": {"uiAmount": 3.25}}) == 3.25

    def test_ui_amount_string(self):
        assert parse_ui_token_amount({"tokenAmount": {"uiAmount": None, "uiAmountString": "7.5"}}) == 7.5

    def test_amount_with_decimals(self):
        assert parse_ui_token_amount({"tokenAmount": {"amount": "250", "decimals": 2}}) == 2.5

    @pytest.mark.parametrize("transfer", [{}, {"tokenAmount": "abc"}, {"tokenAmount": {}}])
    def test_unusable_amounts_are_zero(self, transfer):
        assert parse_ui_token_amount(transfer) == 0.0


class TestResolveSymbol:
    def test_known_mint(self):
        assert resolve_symbol(BONK_MINT) == "BONK"

    def test_explicit_symbol_wins(self):
        assert resolve_symbol(BONK_MINT, "bonk2") == "bonk2"

    def test_unknown_mint_is_its_own_symbol(self):
        assert resolve_symbol("SomeMint") == "SomeMint"


class TestHeliusView:
    """Helius enhanced transaction normalisation."""

    def test_fields(self):
        view = RawTransaction.from_payload(helius_swap(signature="abc"))

        assert view.signature == "abc"
        assert view.timestamp == BASE_TIME
        assert view.program_ids == [JUPITER_PROGRAM, TOKEN_PROGRAM]
        assert view.has_metadata
        assert not view.failed
        assert view.fee == pytest.approx(0.000005)
        assert view.fee_payer == WALLET
        assert view.native_delta(WALLET) == pytest.approx(-0.5)
        assert view.token_deltas(WALLET) == {BONK_MINT: 1_000_000}
        assert view.touches_native(WALLET)
        assert not view.touches_native(COUNTERPARTY)

    def test_swap_event_without_native_leg_is_ignored(self):
        tx = helius_swap()
        tx["events"] = {"swap": {"nativeInput": None, "nativeOutput": None, "tokenInputs": [], "tokenOutputs": []}}

        assert RawTransaction.from_payload(tx).swap_event is None

    def test_swap_event_legs(self):
        tx = helius_swap()
        tx["events"] = {
            "swap": {
                "nativeInput": {"account": WALLET, "amount": "100000000"},
                "tokenOutputs": [{"userAccount": WALLET, "mint": BONK_MINT, "tokenAmount": 10}],
            }
        }

        event = RawTransaction.from_payload(tx).swap_event

        assert event.native_input.source == WALLET
        assert event.native_input.sol == pytest.approx(0.1)
        assert event.native_output is None
        assert event.token_outputs[0].destination == WALLET
        assert event.token_outputs[0].source is None

    def test_non_dict_entries_are_skipped(self):
        tx = helius_swap()
        tx["instructions"].append("garbage")
        tx["nativeTransfers"].append(None)
        tx["tokenTransfers"].append({"tokenAmount": 5})

        view = RawTransaction.from_payload(tx)

        assert len(view.native_transfers) == 1
        assert len(view.token_transfers) == 1


class TestRpcView:
    """Solana RPC jsonParsed normalisation."""

    def test_balance_changes_and_fee_payer(self):
        view = RawTransaction.from_payload(rpc_transaction())

        assert view.fee_payer == WALLET
        assert view.balance_changes[WALLET] == -2_000_005_000
        assert view.balance_changes[COUNTERPARTY] == 2_000_000_000
        assert view.program_ids == [SYSTEM_PROGRAM]
        assert view.native_delta(WALLET) == pytest.approx(-2.0)

    def test_inner_instructions_are_collected(self):
        tx = rpc_transaction()
        tx["meta"]["innerInstructions"] = [{"index": 0, "instructions": [{"programId": TOKEN_PROGRAM}]}]

        assert TOKEN_PROGRAM in RawTransaction.from_payload(tx).program_ids

    def test_token_balances_become_transfers(self, classifier):
        tx = rpc_transaction(
            account_keys=[WALLET, POOL, SYSTEM_PROGRAM, TOKEN_PROGRAM],
            pre_balances=[1_000_005_000, 0, 1, 1],
            post_balances=[500_000_000, 500_000_000, 1, 1],
            instructions=[
                {
                    "program": "system",
                    "programId": SYSTEM_PROGRAM,
                    "parsed": {
                        "type": "transfer",
                        "info": {"source": WALLET, "destination": POOL, "lamports": 500_000_000},
                    },
                },
                {"programId": JUPITER_PROGRAM},
            ],
        )
        tx["meta"]["preTokenBalances"] = [
            {"accountIndex": 4, "mint": BONK_MINT, "owner": WALLET,
             "uiTokenAmount": {"uiAmount": 0, "decimals": 5, "amount": "0"}},
        ]
        tx["meta"]["postTokenBalances"] = [
            {"accountIndex": 4, "mint": BONK_MINT, "owner": WALLET,
             "uiTokenAmount": {"uiAmount": 1000.0, "decimals": 5, "amount": "100000000"}},
        ]

        view = RawTransaction.from_payload(tx)
        assert view.token_deltas(WALLET) == {BONK_MINT: 1000.0}

        trade = classifier.classify(tx, WALLET)
        assert trade.type == TradeType.ACQUISITION
        assert trade.asset == "BONK"
        assert trade.amount == 1000.0
        assert trade.unit_price == pytest.approx(0.0005)
        assert trade.venue == "Jupiter"
