"""
Wallet Registry & Reload Coordinator
====================================
The registry owns the live set of wallet sessions, keyed by public key.
The set is swapped as a single dict assignment, so anyone iterating the
registry sees either the old set or the new one.

The coordinator holds one swappable reload procedure (last registration
wins) and runs it under a lock, so reloads never overlap.
"""

import asyncio
import inspect
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from sniper.engine.wallet_session import WalletSession
from sniper.shared.feeds.pool_observer import PoolSnapshot
from sniper.shared.system.logging import Logger


class WalletRegistry:
    """
    Live wallet sessions.

    Usage:
        registry = WalletRegistry()
        await registry.replace(sessions)
        registry.broadcast({pool: snapshot})
    """

    def __init__(self, grace: float = 0.0):
        self._sessions: Dict[str, WalletSession] = {}
        self._lock = asyncio.Lock()
        self.grace = grace
        self.running = False

    # =========================================================================
    # READ
    # =========================================================================

    @property
    def sessions(self) -> Dict[str, WalletSession]:
        return self._sessions

    def get(self, public_key: str) -> Optional[WalletSession]:
        return self._sessions.get(public_key)

    def public_keys(self) -> List[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, public_key: str) -> bool:
        return public_key in self._sessions

    def __iter__(self):
        return iter(list(self._sessions.values()))

    # =========================================================================
    # MUTATION
    # =========================================================================

    @staticmethod
    def _validate(sessions: List[WalletSession]) -> None:
        """Each wallet appears once and no signer object is shared."""
        keys = set()
        signers = set()
        for session in sessions:
            if session.public_key in keys:
                raise ValueError(f"Duplicate wallet session for {session.public_key}")
            if id(session.signer) in signers:
                raise ValueError(f"Signer shared between sessions ({session.label})")
            keys.add(session.public_key)
            signers.add(id(session.signer))

    async def replace(self, sessions: Iterable[WalletSession]) -> Dict[str, List[str]]:
        """
        Swap in a new session set.

        Sessions whose wallet is already live are kept (their loop keeps
        running, their strategy scope is refreshed). Sessions whose
        wallet disappears are stopped after the swap.
        """
        incoming = list(sessions)
        self._validate(incoming)

        async with self._lock:
            old = self._sessions
            new: Dict[str, WalletSession] = {}
            added, kept = [], []

            for session in incoming:
                existing = old.get(session.public_key)
                if existing is not None:
                    existing.strategy_ids = session.strategy_ids
                    new[session.public_key] = existing
                    kept.append(session.public_key)
                else:
                    new[session.public_key] = session
                    added.append(session.public_key)

            removed = [key for key in old if key not in new]
            self._sessions = new

            if self.running:
                for key in added:
                    new[key].start()

            await self._stop_many([old[key] for key in removed])

        Logger.info(f"[REGISTRY] Wallet set now {len(new)} (+{len(added)} ={len(kept)} -{len(removed)})")
        return {"added": added, "kept": kept, "removed": removed}

    async def add(self, session: WalletSession) -> None:
        async with self._lock:
            if session.public_key in self._sessions:
                raise ValueError(f"Wallet already registered: {session.public_key}")
            self._validate(list(self._sessions.values()) + [session])
            sessions = dict(self._sessions)
            sessions[session.public_key] = session
            self._sessions = sessions
            if self.running:
                session.start()
        Logger.info(f"[REGISTRY] Added {session.label}")

    async def remove(self, public_key: str) -> bool:
        async with self._lock:
            session = self._sessions.get(public_key)
            if session is None:
                return False
            sessions = dict(self._sessions)
            del sessions[public_key]
            self._sessions = sessions
            await self._stop_many([session])
        Logger.info(f"[REGISTRY] Removed {session.label}")
        return True

    async def _stop_many(self, sessions: List[WalletSession]) -> None:
        if not sessions:
            return
        results = await asyncio.gather(
            *(s.stop(grace=self.grace) for s in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                Logger.error(f"[REGISTRY] Stopping {session.label} failed: {result}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start_all(self) -> None:
        self.running = True
        for session in self:
            session.start()

    async def stop_all(self) -> None:
        self.running = False
        await self._stop_many(list(self))

    def broadcast(self, snapshots: Dict[str, PoolSnapshot]) -> None:
        """Offer fresh snapshots to every session."""
        for session in self:
            session.offer(snapshots)

    def get_status(self) -> List[Dict]:
        return [session.get_status() for session in self]


Reloader = Callable[[], Union[Iterable[WalletSession], Awaitable[Iterable[WalletSession]]]]


class ReloadCoordinator:
    """
    Single reload procedure with serialized invocation.

    Usage:
        coordinator = ReloadCoordinator(registry)
        coordinator.register_reloader(build_sessions)
        await coordinator.reload_wallets()
    """

    def __init__(self, registry: WalletRegistry):
        self.registry = registry
        self._reloader: Optional[Reloader] = None
        self._lock = asyncio.Lock()
        self.reload_count = 0

    @property
    def has_reloader(self) -> bool:
        return self._reloader is not None

    def register_reloader(self, reloader: Optional[Reloader]) -> None:
        """Install the reload procedure. A later call replaces an earlier one."""
        self._reloader = reloader

    async def reload_wallets(self) -> bool:
        """
        Rebuild the wallet set with the registered procedure.

        Concurrent calls queue on the lock. Returns False when nothing was
        reloaded (no procedure registered, or it failed); the existing
        sessions are untouched in that case.
        """
        async with self._lock:
            reloader = self._reloader
            if reloader is None:
                Logger.debug("[REGISTRY] Reload requested with no reloader registered")
                return False

            try:
                result = reloader()
                if inspect.isawaitable(result):
                    result = await result
                if result is None:
                    Logger.error("[REGISTRY] Wallet reload returned no session set, keeping current set")
                    return False
                await self.registry.replace(result)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                Logger.error(f"[REGISTRY] Wallet reload failed, keeping current set: {e}")
                return False

            self.reload_count += 1
            return True
