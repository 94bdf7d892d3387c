"""
TradeLens Configuration Module

Centralized configuration management for TradeLens.
Loads from environment variables with sensible defaults.
"""

import os
from typing import Dict, Optional
from urllib.parse import urlparse, parse_qs


# Known program ids and the venue label they map to. DEX entries win over the
# generic token/system programs during venue detection.
DEFAULT_DEX_PROGRAMS: Dict[str, str] = {
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4": "Jupiter",
    "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB": "Jupiter",
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8": "Raydium",
    "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK": "Raydium",
    "9W959DqEETiGZocYWCQPaJ6sBmUzgfxXfqGeTEdp3aQP": "Orca",
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc": "Orca",
    "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P": "Pump.fun",
}


class TradeLensConfig:
    """Centralized TradeLens configuration."""

    # ========================================================================
    # API Keys
    # ========================================================================

    @staticmethod
    def get_helius_api_key() -> Optional[str]:
        """Get Helius API key from environment or RPC URL."""
        key = os.getenv("HELIUS_API_KEY")
        if not key:
            # Try to extract from RPC URL
            rpc_url = os.getenv("SOLANA_RPC_URL", "")
            if rpc_url:
                query_params = parse_qs(urlparse(rpc_url).query)
                # parse_qs returns a list, e.g., {'api-key': ['xyz']}
                if "api-key" in query_params:
                    key = query_params["api-key"][0]
        return key

    @staticmethod
    def get_dexscreener_api_key() -> Optional[str]:
        """Get DexScreener API key from environment (optional)."""
        return os.getenv("DEXSCREENER_API_KEY")

    # ========================================================================
    # Transaction Feed
    # ========================================================================

    @staticmethod
    def get_helius_base_url() -> str:
        """Get Helius enhanced-transactions API base URL."""
        return os.getenv("TRADELENS_HELIUS_BASE_URL", "https://api.helius.xyz/v0")

    @staticmethod
    def get_tx_limit() -> int:
        """Get maximum transactions to fetch per wallet."""
        return int(os.getenv("TRADELENS_TX_LIMIT", "50"))

    @staticmethod
    def get_tx_max_pages() -> int:
        """Get maximum pagination pages per wallet transaction fetch."""
        return int(os.getenv("TRADELENS_TX_MAX_PAGES", "10"))

    @staticmethod
    def get_rate_limit_delay() -> float:
        """Get minimum delay between feed requests in seconds."""
        return float(os.getenv("TRADELENS_RATE_LIMIT_DELAY", "0.1"))

    @staticmethod
    def get_fetch_batch_size() -> int:
        """Get number of concurrent requests per RPC fetch batch."""
        return int(os.getenv("TRADELENS_FETCH_BATCH_SIZE", "3"))

    @staticmethod
    def get_fetch_batch_delay() -> float:
        """Get pause between RPC fetch batches in seconds."""
        return float(os.getenv("TRADELENS_FETCH_BATCH_DELAY", "1.0"))

    @staticmethod
    def get_max_retries() -> int:
        """Get retry ceiling for rate-limited or failed feed requests."""
        return int(os.getenv("TRADELENS_MAX_RETRIES", "3"))

    # ========================================================================
    # Classification & Analysis
    # ========================================================================

    @staticmethod
    def get_min_trade_amount() -> float:
        """Get dust threshold (native units) below which trades are discarded."""
        return float(os.getenv("TRADELENS_MIN_TRADE_AMOUNT", "0.001"))

    @staticmethod
    def get_small_trade_amount() -> float:
        """Get amount below which a trade counts as small for recommendations."""
        return float(os.getenv("TRADELENS_SMALL_TRADE_AMOUNT", "0.01"))

    @staticmethod
    def get_demo_trade_count() -> int:
        """Get number of synthetic trades produced when the feed has no data."""
        return int(os.getenv("TRADELENS_DEMO_TRADE_COUNT", "4"))

    @staticmethod
    def get_dex_programs() -> Dict[str, str]:
        """
        Get program id -> venue mapping used for venue detection.

        TRADELENS_DEX_PROGRAM_IDS accepts a comma separated list of
        ``program_id=Venue`` entries; a bare program id is labelled "DEX".
        """
        env_val = os.getenv("TRADELENS_DEX_PROGRAM_IDS")
        if not env_val:
            return dict(DEFAULT_DEX_PROGRAMS)

        programs = {}
        for entry in env_val.split(","):
            entry = entry.strip()
            if not entry:
                continue
            program_id, _, venue = entry.partition("=")
            programs[program_id.strip()] = venue.strip() or "DEX"
        return programs

    # ========================================================================
    # Price Oracle
    # ========================================================================

    @staticmethod
    def get_price_cache_ttl() -> int:
        """Get price cache TTL in seconds."""
        return int(os.getenv("TRADELENS_PRICE_CACHE_TTL_SECONDS", "60"))

    # ========================================================================
    # Redis Configuration
    # ========================================================================

    @staticmethod
    def get_redis_enabled() -> bool:
        """Get whether Redis caching is enabled."""
        return os.getenv("REDIS_ENABLED", "false").lower() == "true"

    @staticmethod
    def get_redis_url() -> str:
        """Get Redis connection URL."""
        return os.getenv("REDIS_URL", "redis://localhost:6379")

    # ========================================================================
    # Metrics
    # ========================================================================

    @staticmethod
    def get_metrics_enabled() -> bool:
        """Get whether the Prometheus metrics server should be started."""
        return os.getenv("TRADELENS_METRICS_ENABLED", "false").lower() == "true"

    @staticmethod
    def get_metrics_port() -> int:
        """Get Prometheus metrics port."""
        return int(os.getenv("TRADELENS_METRICS_PORT", "8082"))

    # ========================================================================
    # Configuration Validation
    # ========================================================================

    @staticmethod
    def validate_config() -> tuple[bool, list[str]]:
        """
        Validate the current configuration.

        Returns:
            Tuple of (is_valid, list_of_warnings)
        """
        warnings = []
        is_valid = True

        if not TradeLensConfig.get_helius_api_key():
            warnings.append("HELIUS_API_KEY is not set. Analyses will use labelled demo data.")

        if TradeLensConfig.get_min_trade_amount() < 0:
            warnings.append("TRADELENS_MIN_TRADE_AMOUNT must not be negative")
            is_valid = False

        if TradeLensConfig.get_fetch_batch_size() < 1:
            warnings.append("TRADELENS_FETCH_BATCH_SIZE must be at least 1")
            is_valid = False

        if TradeLensConfig.get_max_retries() < 1:
            warnings.append("TRADELENS_MAX_RETRIES must be at least 1")
            is_valid = False

        if TradeLensConfig.get_demo_trade_count() < 1:
            warnings.append("TRADELENS_DEMO_TRADE_COUNT < 1: empty wallets will get an empty analysis")

        return is_valid, warnings

    @staticmethod
    def print_config_summary():
        """Print a summary of current configuration."""
        print("=" * 70)
        print("TradeLens Configuration Summary")
        print("=" * 70)
        print(f"Helius API Key: {'Set' if TradeLensConfig.get_helius_api_key() else 'Not set'}")
        print(f"Helius Base URL: {TradeLensConfig.get_helius_base_url()}")
        print(f"DexScreener API Key: {'Set' if TradeLensConfig.get_dexscreener_api_key() else 'Not set'}")
        print(f"Transaction Limit: {TradeLensConfig.get_tx_limit()}")
        print(f"Max Pages: {TradeLensConfig.get_tx_max_pages()}")
        print(f"Max Retries: {TradeLensConfig.get_max_retries()}")
        print(f"Min Trade Amount: {TradeLensConfig.get_min_trade_amount()}")
        print(f"Demo Trade Count: {TradeLensConfig.get_demo_trade_count()}")
        print(f"Known DEX Programs: {len(TradeLensConfig.get_dex_programs())}")
        print(f"Redis: {'Enabled' if TradeLensConfig.get_redis_enabled() else 'Disabled'}")
        print("=" * 70)

        is_valid, warnings = TradeLensConfig.validate_config()
        if warnings:
            print("\nConfiguration Warnings:")
            for warning in warnings:
                print(f"  ⚠️  {warning}")
        else:
            print("\n✓ Configuration looks good!")
