import os
from dotenv import load_dotenv

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")
load_dotenv(env_path)


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return float(default)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return int(default)


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # NEXT-SNIPER ENGINE CONFIGURATION (.env based)
    # ═══════════════════════════════════════════════════════════════════

    # Console output (file log is always written)
    SILENT_MODE = os.getenv("SILENT_MODE", "false").lower() == "true"

    # Paths
    DATA_DIR = os.path.abspath(
        os.getenv("DATA_DIR", os.path.join(os.path.dirname(__file__), "../data"))
    )

    # ═══════════════════════════════════════════════════════════════════
    # NETWORK
    # ═══════════════════════════════════════════════════════════════════
    SUPPORTED_NETWORKS = ("devnet", "mainnet-beta")
    NETWORK = os.getenv("NETWORK", "devnet")

    RPC_URLS = {
        "devnet": "https://api.devnet.solana.com",
        "mainnet-beta": "https://api.mainnet-beta.solana.com",
    }
    RPC_URL = os.getenv("RPC_URL", "") or RPC_URLS.get(NETWORK, RPC_URLS["devnet"])

    # ═══════════════════════════════════════════════════════════════════
    # ENGINE LOOP
    # ═══════════════════════════════════════════════════════════════════
    TICK_INTERVAL_S = _env_float("TICK_INTERVAL_S", 5.0)  # Bot logic cadence

    # Retry / backoff (per wallet session)
    MAX_ATTEMPTS = _env_int("MAX_ATTEMPTS", 3)
    BACKOFF_BASE_S = _env_float("BACKOFF_BASE_S", 1.0)
    BACKOFF_CEILING_S = _env_float("BACKOFF_CEILING_S", 30.0)
    UNKNOWN_RETRY_DELAY_S = _env_float("UNKNOWN_RETRY_DELAY_S", 2.0)
    CONFIRMATION_TIMEOUT_S = _env_float("CONFIRMATION_TIMEOUT_S", 60.0)
    CONFIRMATION_POLL_S = _env_float("CONFIRMATION_POLL_S", 1.0)

    # Audit trail
    LOG_CAPACITY = 200

    # ═══════════════════════════════════════════════════════════════════
    # STRATEGIES & WALLETS
    # ═══════════════════════════════════════════════════════════════════
    STRATEGY_STORE_KEY = "userTradingStrategies"
    STRATEGY_STORE_PATH = os.getenv("STRATEGY_STORE_PATH", "") or os.path.join(
        DATA_DIR, f"strategies-{NETWORK}.json"
    )

    # Comma separated base58 secret keys, one per bot wallet
    BOT_WALLET_KEYS = os.getenv("BOT_WALLET_KEYS", "")

    # ═══════════════════════════════════════════════════════════════════
    # FEES
    # ═══════════════════════════════════════════════════════════════════
    DEFAULT_PRIORITY_FEE = 1000  # micro-lamports per CU
    PRIORITY_FEE_MULTIPLIER = 1.2  # applied to the median recent fee
    PRIORITY_FEE_CACHE_TTL_S = 10
    COMPUTE_UNIT_LIMIT = _env_int("COMPUTE_UNIT_LIMIT", 200_000)
    USE_PRIORITY_FEE = os.getenv("USE_PRIORITY_FEE", "true").lower() == "true"

    # ═══════════════════════════════════════════════════════════════════
    # POOLS
    # ═══════════════════════════════════════════════════════════════════
    # POOL=BASE_VAULT/QUOTE_VAULT[/BASE_SUPPLY], comma separated
    POOL_VAULTS = os.getenv("POOL_VAULTS", "")
    SOL_USD_PRICE = _env_float("SOL_USD_PRICE", 0.0) or None
