"""
Priority Fee Client
===================
Suggests a compute-unit price from recent network prioritization fees.

Takes the median of ``getRecentPrioritizationFees`` and adds a 20% buffer
so transactions stay competitive without overpaying. Any failure falls
back to a safe default.

Usage:
    from sniper.shared.execution.priority_fee import PriorityFeeClient

    fee = await PriorityFeeClient.get_fee_estimate(rpc_url)
    # Returns: 1200 (microLamports)
"""

import math
import time
from typing import Dict, List, Optional

import httpx

from config.settings import Settings
from sniper.shared.system.logging import Logger


def suggest_fee(fees: List[int], multiplier: float = Settings.PRIORITY_FEE_MULTIPLIER) -> int:
    """Median of ``fees`` times ``multiplier`` rounded up; default when empty."""
    if not fees:
        return Settings.DEFAULT_PRIORITY_FEE
    ordered = sorted(fees)
    median = ordered[len(ordered) // 2]
    return math.ceil(median * multiplier)


class PriorityFeeClient:
    """Cached priority fee estimator over raw JSON-RPC."""

    _cache: Dict[str, int] = {}
    _cache_time: Dict[str, float] = {}
    CACHE_TTL = Settings.PRIORITY_FEE_CACHE_TTL_S

    @classmethod
    async def get_fee_estimate(
        cls,
        rpc_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> int:
        """
        Get a priority fee estimate in microLamports.

        Args:
            rpc_url: RPC endpoint (defaults to Settings.RPC_URL)
            client: Optional shared httpx client
        """
        url = rpc_url or Settings.RPC_URL

        if url in cls._cache and time.time() - cls._cache_time.get(url, 0) < cls.CACHE_TTL:
            return cls._cache[url]

        payload = {"jsonrpc": "2.0", "id": 1, "method": "getRecentPrioritizationFees", "params": []}

        try:
            if client is None:
                async with httpx.AsyncClient(timeout=5.0) as owned:
                    response = await owned.post(url, json=payload)
            else:
                response = await client.post(url, json=payload)

            if response.status_code != 200:
                Logger.warning(f"[FEE] RPC returned {response.status_code}, using default")
                return Settings.DEFAULT_PRIORITY_FEE

            data = response.json()
            samples = [int(item.get("prioritizationFee", 0)) for item in data.get("result") or []]
            if not samples:
                Logger.debug("[FEE] No recent priority fees found. Using default.")
                return Settings.DEFAULT_PRIORITY_FEE

            fee = suggest_fee(samples)
            cls._cache[url] = fee
            cls._cache_time[url] = time.time()
            Logger.debug(f"[FEE] Median-based suggestion: {fee} µLamports ({len(samples)} samples)")
            return fee

        except Exception as e:
            Logger.error(f"[FEE] Priority fee fetch failed: {e}")

        return Settings.DEFAULT_PRIORITY_FEE

    @classmethod
    def reset_cache(cls) -> None:
        cls._cache.clear()
        cls._cache_time.clear()
