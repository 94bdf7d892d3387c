#!/usr/bin/env python3
"""
TradeLens - Wallet Trade Reconstruction

Fetches a wallet's recent transactions, reconstructs its trades and prints
trading analytics and behavioural patterns.

Usage:
    tradelens <address>                 # Analyze a wallet
    tradelens <address> --json          # Machine-readable report
    tradelens <address> --demo --seed 7 # Reproducible demo report
    tradelens --price BONK              # Spot price lookup
    tradelens --show-config             # Print configuration and exit

Demo data is always labelled as such in both output formats.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from typing import List, Optional

from tradelens.config import TradeLensConfig
from tradelens.core.analyzer import WalletAnalyzer, WalletReport
from tradelens.core.helius_client import HeliusClient

logger = logging.getLogger("tradelens")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="tradelens",
        description="TradeLens - Wallet Trade Reconstruction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "address",
        nargs="?",
        help="Solana wallet address to analyze",
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=TradeLensConfig.get_tx_limit(),
        help=f"Maximum transactions to fetch (default: {TradeLensConfig.get_tx_limit()}, or TRADELENS_TX_LIMIT)",
    )

    parser.add_argument(
        "--demo",
        action="store_true",
        help="Analyze synthetic demo trades instead of fetching transactions",
    )

    parser.add_argument(
        "--rpc",
        action="store_true",
        help="Fetch via Solana RPC getTransaction (jsonParsed) instead of the enhanced API",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for demo data and pattern confidence jitter",
    )

    parser.add_argument(
        "--price",
        metavar="SYMBOL",
        help="Look up the spot price of a symbol or mint address",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Print configuration summary and exit",
    )

    args = parser.parse_args(argv)
    if not args.address and not args.price and not args.show_config:
        parser.error("an address is required unless --price or --show-config is given")
    return args


def format_report(report: WalletReport) -> str:
    """Human-readable report."""
    analysis = report.analysis
    lines = ["=" * 70, f"TradeLens report for {report.address}", "=" * 70]

    if report.is_demo:
        lines.append("*** DEMO DATA - these trades are synthetic, not your real activity ***")
    if report.message:
        lines.append(report.message)
    if report.is_demo or report.message:
        lines.append("")

    lines.extend([
        f"Success rate:        {analysis.overall_success_rate:.2f}%",
        f"Total profit/loss:   {analysis.total_profit_loss:+.2f}",
        f"Most profitable:     {analysis.most_profitable_asset}",
    ])
    if analysis.has_distinct_least_profitable:
        lines.append(f"Least profitable:    {analysis.least_profitable_asset}")
    lines.extend([
        f"Average hold time:   {analysis.average_hold_time}",
        f"Trade frequency:     {analysis.trade_frequency}",
    ])
    if report.activity is not None:
        activity = report.activity
        lines.append(
            f"Activity (48h):      {activity.recent_activity.value} "
            f"({activity.buy_count} buys / {activity.sell_count} sells, "
            f"volume {activity.total_volume:.4f} SOL)"
        )

    if analysis.token_analyses:
        lines.append("\nPer asset:")
        for token in analysis.token_analyses:
            lines.append(
                f"  {token.symbol:<8} trades={token.total_trades:<3} "
                f"profitable={token.profitable_trades:<3} success={token.success_rate:.1f}% "
                f"p/l={token.total_profit_loss:+.2f} hold={token.average_hold_time}"
            )

    if report.patterns:
        lines.append("\nPatterns:")
        for pattern in report.patterns:
            lines.append(f"  [{pattern.kind.value}] ({pattern.confidence}%) {pattern.description}")
            lines.append(f"      -> {pattern.suggested_action}")

    lines.append("\nRecommendations:")
    for recommendation in analysis.recommendations:
        lines.append(f"  - {recommendation}")

    if report.trades:
        lines.append(f"\nTrades ({len(report.trades)}):")
        for trade in report.trades:
            lines.append(
                f"  {trade.timestamp.strftime('%Y-%m-%d %H:%M')} {trade.type.value:<11} "
                f"{trade.amount:>16,.4f} {trade.asset:<8} @ {trade.unit_price:.8g} via {trade.venue}"
                + ("  [DEMO]" if trade.is_demo else "")
            )

    lines.append("=" * 70)
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> int:
    source = HeliusClient(use_rpc=args.rpc)
    analyzer = WalletAnalyzer(source=source, seed=args.seed)
    try:
        if args.price:
            quote = await analyzer.get_price(args.price)
            if args.json:
                print(json.dumps(quote.to_dict() if quote else None, indent=2))
            elif quote is None:
                print(f"{args.price}: N/A")
            else:
                change = f"{quote.change_24h:+.2f}%" if quote.change_24h is not None else "N/A"
                print(f"{quote.symbol}: ${quote.price:.8g} (24h {change}, source {quote.source})")
            if not args.address:
                return 0

        report = await analyzer.analyze(args.address, limit=args.limit, demo=args.demo)
        if args.json:
            print(json.dumps(report.to_dict(), indent=2))
        else:
            print(format_report(report))
        return 1 if report.is_error else 0
    finally:
        await analyzer.close()


def main(argv: Optional[List[str]] = None):
    """Main entry point for the TradeLens CLI."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.show_config:
        TradeLensConfig.print_config_summary()
        return

    is_valid, warnings = TradeLensConfig.validate_config()
    for warning in warnings:
        logger.warning(warning)
    if not is_valid:
        sys.exit(2)

    logger.debug(f"Started at {datetime.now(timezone.utc).isoformat()}")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
