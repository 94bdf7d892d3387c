"""
TradeLens - reconstructs trades from a Solana wallet's raw transactions and
derives trading analytics and behavioural patterns from them.
"""

__version__ = "0.1.0"
