"""
Pool Observer
=============
Supplies timestamped pool snapshots on demand (``fetch``) or as a
polling stream (``subscribe``).

``RpcPoolObserver`` derives price and liquidity from the two vault token
accounts of a constant-product pool: price = quote / base, liquidity
(LP value in quote units) = 2 * quote reserve.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional, Tuple

from sniper.shared.system.logging import Logger


@dataclass(frozen=True)
class PoolSnapshot:
    """Observed pool state at ``timestamp``."""

    pool: str
    price: float
    liquidity: float = 0.0
    market_cap: float = 0.0
    lp_value: float = 0.0
    sol_usd_price: Optional[float] = None
    base_reserve: float = 0.0
    quote_reserve: float = 0.0
    timestamp: float = field(default_factory=time.time)

    def metric(self, name: str) -> Optional[float]:
        """Numeric metric by name, ``None`` if unknown or unset."""
        value = getattr(self, name, None)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.timestamp


class PoolObserver(ABC):
    """Boundary to whatever knows the pool state."""

    @abstractmethod
    async def fetch(self, pool: str) -> PoolSnapshot:
        ...

    async def subscribe(self, pool: str, interval: float = 5.0) -> AsyncIterator[PoolSnapshot]:
        """Polling subscription. Fetch errors are logged and the stream continues."""
        while True:
            try:
                yield await self.fetch(pool)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                Logger.warning(f"[OBSERVER] Fetch failed for {pool[:8]}...: {e}")
            await asyncio.sleep(interval)


@dataclass(frozen=True)
class PoolVaults:
    base_vault: str
    quote_vault: str
    base_supply: float = 0.0  # circulating supply, enables market cap


def parse_pool_vaults(raw: str) -> Dict[str, PoolVaults]:
    """
    Parse ``POOL=BASE_VAULT/QUOTE_VAULT[/SUPPLY],...``.

    Malformed entries are skipped with a warning.
    """
    vaults: Dict[str, PoolVaults] = {}
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            pool, rest = chunk.split("=", 1)
            parts = rest.split("/")
            supply = float(parts[2]) if len(parts) > 2 else 0.0
            vaults[pool.strip()] = PoolVaults(parts[0].strip(), parts[1].strip(), supply)
        except (ValueError, IndexError):
            Logger.warning(f"[OBSERVER] Ignoring malformed pool vault entry: {chunk}")
    return vaults


class RpcPoolObserver(PoolObserver):
    """
    Reads reserves from vault token accounts through the ledger client.

    Usage:
        observer = RpcPoolObserver(ledger, {pool: PoolVaults(base, quote)})
        snap = await observer.fetch(pool)
    """

    def __init__(self, ledger, vaults: Dict[str, PoolVaults], sol_usd_price: Optional[float] = None):
        self.ledger = ledger
        self.vaults = dict(vaults)
        self.sol_usd_price = sol_usd_price

    async def _reserves(self, vaults: PoolVaults) -> Tuple[float, float]:
        base, quote = await asyncio.gather(
            self.ledger.get_token_account_balance(vaults.base_vault),
            self.ledger.get_token_account_balance(vaults.quote_vault),
        )
        return base, quote

    async def fetch(self, pool: str) -> PoolSnapshot:
        vaults = self.vaults.get(pool)
        if vaults is None:
            raise KeyError(f"No vaults configured for pool {pool}")

        base, quote = await self._reserves(vaults)
        price = quote / base if base > 0 else 0.0
        lp_value = 2 * quote

        return PoolSnapshot(
            pool=pool,
            price=price,
            liquidity=lp_value,
            lp_value=lp_value,
            market_cap=price * vaults.base_supply,
            sol_usd_price=self.sol_usd_price,
            base_reserve=base,
            quote_reserve=quote,
        )
