"""
Trading Engine
==============
Top-level runtime for one network: wires the shared services (ledger,
strategy store, log sink, pool observer) into a wallet registry and
drives it with a fixed-interval tick.

Each tick fetches every pool referenced by an enabled strategy and hands
the snapshots to all wallet sessions; the sessions do the rest on their
own tasks.
"""

import asyncio
import os
import time
from typing import Any, Dict, Iterable, List, Optional

from config.settings import Settings
from sniper.engine.strategy_evaluator import InstructionPlanner, StrategyEvaluator
from sniper.engine.wallet_registry import ReloadCoordinator, WalletRegistry
from sniper.engine.wallet_session import RetryPolicy, WalletSession
from sniper.shared.execution.priority_fee import PriorityFeeClient
from sniper.shared.execution.transaction_builder import TransactionBuilder
from sniper.shared.feeds.pool_observer import PoolObserver, PoolSnapshot, RpcPoolObserver, parse_pool_vaults
from sniper.shared.infrastructure.ledger_client import LedgerClient
from sniper.shared.infrastructure.signer import Signer, load_signers_from_env
from sniper.shared.state.strategy_store import StrategyStore
from sniper.shared.system.log_sink import LogSink
from sniper.shared.system.logging import Logger


def rpc_url_for(network: str) -> str:
    if network == Settings.NETWORK:
        return Settings.RPC_URL
    return Settings.RPC_URLS[network]


def store_path_for(network: str) -> str:
    if network == Settings.NETWORK:
        return Settings.STRATEGY_STORE_PATH
    return os.path.join(Settings.DATA_DIR, f"strategies-{network}.json")


class TradingEngine:
    """
    Multi-wallet strategy engine for a single network.

    Usage:
        engine = TradingEngine("devnet")
        await engine.start()        # loads BOT_WALLET_KEYS, starts sessions
        await engine.reload_wallets()
        await engine.stop()
    """

    def __init__(
        self,
        network: str = Settings.NETWORK,
        ledger=None,
        observer: Optional[PoolObserver] = None,
        store: Optional[StrategyStore] = None,
        log_sink: Optional[LogSink] = None,
        evaluator: Optional[StrategyEvaluator] = None,
        planner: Optional[InstructionPlanner] = None,
        policy: Optional[RetryPolicy] = None,
        interval: float = Settings.TICK_INTERVAL_S,
        use_priority_fee: bool = Settings.USE_PRIORITY_FEE,
    ):
        if network not in Settings.SUPPORTED_NETWORKS:
            raise ValueError(f"Unsupported network: {network}")

        self.network = network
        self.name = f"sniper-{network}"
        self.ledger = ledger if ledger is not None else LedgerClient(rpc_url_for(network))
        self.observer = observer if observer is not None else RpcPoolObserver(
            self.ledger, parse_pool_vaults(Settings.POOL_VAULTS), Settings.SOL_USD_PRICE
        )
        self.store = store if store is not None else StrategyStore(store_path_for(network))
        self.log_sink = log_sink if log_sink is not None else LogSink()
        self.builder = TransactionBuilder(self.ledger)
        self.evaluator = evaluator
        self.planner = planner
        self.policy = policy if policy is not None else RetryPolicy.from_settings()
        self.interval = interval
        self.use_priority_fee = use_priority_fee

        self.registry = WalletRegistry()
        self.coordinator = ReloadCoordinator(self.registry)
        self.coordinator.register_reloader(self.build_sessions)

        self.running = False
        self.status = "STOPPED"
        self.start_time: Optional[float] = None
        self.ticks = 0
        self.last_snapshots: Dict[str, PoolSnapshot] = {}
        self._task: Optional[asyncio.Task] = None

        Logger.info(f"[ENGINE] {self.name} initialized")

    # =========================================================================
    # SESSIONS
    # =========================================================================

    async def _priority_fee(self) -> int:
        return await PriorityFeeClient.get_fee_estimate(getattr(self.ledger, "rpc_url", None))

    def make_session(self, signer: Signer) -> WalletSession:
        return WalletSession(
            signer,
            self.store,
            self.log_sink,
            self.builder,
            self.ledger,
            evaluator=self.evaluator,
            planner=self.planner,
            policy=self.policy,
            fee_provider=self._priority_fee if self.use_priority_fee else None,
        )

    def build_sessions(self, signers: Optional[Iterable[Signer]] = None) -> List[WalletSession]:
        """One session per signer; defaults to the bot wallets in BOT_WALLET_KEYS."""
        if signers is None:
            signers = load_signers_from_env()
        return [self.make_session(signer) for signer in signers]

    async def reload_wallets(self) -> bool:
        return await self.coordinator.reload_wallets()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        if self.running:
            Logger.info(f"[ENGINE] {self.name} already running.")
            return

        self.running = True
        self.status = "RUNNING"
        self.start_time = time.time()
        await self.reload_wallets()
        self.registry.start_all()
        Logger.info(f"[ENGINE] {self.name} started with {len(self.registry)} wallet(s)")

        self._task = asyncio.create_task(self._monitor_loop(), name=f"{self.name}-tick")

    async def stop(self) -> None:
        if not self.running:
            return

        self.running = False
        self.status = "STOPPED"
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self.registry.stop_all()
        Logger.info(f"[ENGINE] {self.name} stopped")

    async def close(self) -> None:
        await self.stop()
        close = getattr(self.ledger, "close", None)
        if close is not None:
            await close()

    async def _monitor_loop(self) -> None:
        while self.running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                Logger.error(f"[ENGINE] {self.name} tick error: {e}")
                self.status = "ERROR"

            await asyncio.sleep(self.interval)

    # =========================================================================
    # TICK
    # =========================================================================

    def active_pools(self) -> List[str]:
        pools: List[str] = []
        for strategy in self.store.load():
            if strategy.enabled and strategy.pool not in pools:
                pools.append(strategy.pool)
        return pools

    async def fetch_snapshots(self, pools: List[str]) -> Dict[str, PoolSnapshot]:
        results = await asyncio.gather(*(self.observer.fetch(p) for p in pools), return_exceptions=True)
        snapshots: Dict[str, PoolSnapshot] = {}
        for pool, result in zip(pools, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                Logger.warning(f"[OBSERVER] {pool[:8]}... unavailable: {result}")
                continue
            snapshots[pool] = result
        return snapshots

    async def tick(self) -> Dict[str, PoolSnapshot]:
        """Fetch fresh pool state and offer it to every wallet session."""
        self.ticks += 1
        pools = self.active_pools()
        if not pools:
            return {}

        snapshots = await self.fetch_snapshots(pools)
        if snapshots:
            self.last_snapshots.update(snapshots)
            self.registry.broadcast(snapshots)
            self.status = "RUNNING"
        return snapshots

    def get_status(self) -> Dict[str, Any]:
        uptime = time.time() - self.start_time if self.running and self.start_time else 0
        return {
            "name": self.name,
            "network": self.network,
            "status": self.status,
            "uptime": int(uptime),
            "ticks": self.ticks,
            "wallets": self.registry.get_status(),
            "log_entries": len(self.log_sink),
        }
