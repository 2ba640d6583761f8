"""
Wallet Session
==============
One wallet's execution loop: evaluate its strategies against fresh pool
snapshots, build, sign and submit a transaction, await confirmation, and
retry according to the classified failure.

State machine (one cycle):

    IDLE → EVALUATING → BUILDING → SUBMITTING → AWAITING_CONFIRMATION → SUCCESS
                           ↑           │                 │
                           │           └──── failure ────┤
                           │                             ↓
                        RETRYING ←── RATE_LIMITED / first UNKNOWN
                                     SIMULATION_FAILED / exhausted → FAILED

    SUCCESS, FAILED → IDLE.  RETRYING goes back to BUILDING, never to
    EVALUATING: triggers are not re-checked mid-retry.

Every session owns its signer and its counters; nothing mutable is
shared between sessions except the thread-safe store and log sink.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from config.settings import Settings
from sniper.engine.strategy_evaluator import (
    InstructionPlanner,
    MemoInstructionPlanner,
    StrategyEvaluator,
    ThresholdEvaluator,
    TradeIntent,
)
from sniper.shared.execution.error_classifier import ClassifiedError, ErrorKind, classify_error
from sniper.shared.execution.transaction_builder import TransactionBuilder
from sniper.shared.feeds.pool_observer import PoolSnapshot
from sniper.shared.infrastructure.ledger_client import ConfirmationTimeout
from sniper.shared.infrastructure.signer import Signer
from sniper.shared.state.strategy_store import Strategy, StrategyStore
from sniper.shared.system.log_sink import LogSink
from sniper.shared.system.logging import Logger


class SessionState(Enum):
    IDLE = "IDLE"
    EVALUATING = "EVALUATING"
    BUILDING = "BUILDING"
    SUBMITTING = "SUBMITTING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    RETRYING = "RETRYING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
    SessionState.IDLE: {SessionState.EVALUATING},
    SessionState.EVALUATING: {SessionState.BUILDING, SessionState.IDLE},
    SessionState.BUILDING: {SessionState.SUBMITTING, SessionState.RETRYING, SessionState.FAILED},
    SessionState.SUBMITTING: {SessionState.AWAITING_CONFIRMATION, SessionState.RETRYING, SessionState.FAILED},
    SessionState.AWAITING_CONFIRMATION: {SessionState.SUCCESS, SessionState.RETRYING, SessionState.FAILED},
    SessionState.RETRYING: {SessionState.BUILDING},
    SessionState.SUCCESS: {SessionState.IDLE},
    SessionState.FAILED: {SessionState.IDLE},
}


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff configuration for one session.

    ``max_attempts`` counts every rate-limited attempt of one cycle, the
    first included: 3 means at most 2 backoff retries before FAILED.
    """

    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_ceiling: float = 30.0
    unknown_retry_delay: float = 2.0
    unknown_max_retries: int = 1
    confirmation_timeout: float = 60.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=Settings.MAX_ATTEMPTS,
            backoff_base=Settings.BACKOFF_BASE_S,
            backoff_ceiling=Settings.BACKOFF_CEILING_S,
            unknown_retry_delay=Settings.UNKNOWN_RETRY_DELAY_S,
            confirmation_timeout=Settings.CONFIRMATION_TIMEOUT_S,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Exponential delay after the ``attempt``-th rate-limited failure (1-based)."""
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_ceiling)


@dataclass
class CycleOutcome:
    """Result of one evaluation cycle."""

    state: Optional[SessionState]  # SUCCESS, FAILED, or None when nothing fired
    strategy_id: Optional[str] = None
    attempts: int = 0
    signature: Optional[str] = None
    error: Optional[ClassifiedError] = None
    delays: List[float] = field(default_factory=list)
    cancelled: bool = False

    @property
    def fired(self) -> bool:
        return self.state is not None

    @property
    def success(self) -> bool:
        return self.state is SessionState.SUCCESS


class _RetryBudget:
    """Per-cycle retry counters. Created fresh for every cycle."""

    def __init__(self, policy: RetryPolicy):
        self.policy = policy
        self.rate_limited = 0
        self.unknown = 0

    def next_delay(self, error: ClassifiedError) -> Optional[float]:
        """Delay before the next attempt, or None to give up."""
        if error.kind is ErrorKind.SIMULATION_FAILED:
            return None

        if error.kind is ErrorKind.RATE_LIMITED:
            self.rate_limited += 1
            if self.rate_limited >= self.policy.max_attempts:
                return None
            return self.policy.backoff_delay(self.rate_limited)

        self.unknown += 1
        if self.unknown > self.policy.unknown_max_retries:
            return None
        return self.policy.unknown_retry_delay


FeeProvider = Callable[[], Awaitable[int]]
Sleeper = Callable[[float], Awaitable[None]]


class WalletSession:
    """
    Execution loop for a single wallet.

    Usage:
        session = WalletSession(signer, store, log_sink, builder, ledger)
        session.start()                       # background task
        session.offer({pool: snapshot})       # engine tick pushes state
        outcome = await session.run_cycle({pool: snapshot})  # or drive directly
        await session.stop()
    """

    def __init__(
        self,
        signer: Signer,
        store: StrategyStore,
        log_sink: LogSink,
        builder: TransactionBuilder,
        ledger,
        evaluator: Optional[StrategyEvaluator] = None,
        planner: Optional[InstructionPlanner] = None,
        policy: Optional[RetryPolicy] = None,
        strategy_ids: Optional[Iterable[str]] = None,
        fee_provider: Optional[FeeProvider] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.signer = signer
        self.public_key = signer.public_key
        self.label = signer.short_key()
        self.store = store
        self.log_sink = log_sink
        self.builder = builder
        self.ledger = ledger
        self.evaluator = evaluator if evaluator is not None else ThresholdEvaluator()
        self.planner = planner if planner is not None else MemoInstructionPlanner()
        self.policy = policy if policy is not None else RetryPolicy.from_settings()
        self.strategy_ids: Optional[Set[str]] = set(strategy_ids) if strategy_ids is not None else None
        self.fee_provider = fee_provider
        self._sleep = sleep

        self.state = SessionState.IDLE
        self.history: deque = deque(maxlen=100)
        self.consecutive_failures = 0
        self.cycles = 0
        self.last_outcome: Optional[CycleOutcome] = None

        self._pending: Dict[str, PoolSnapshot] = {}
        self._fresh = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self._in_flight_signature: Optional[str] = None

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def _transition(self, target: SessionState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} → {target.value}")
        self.history.append((self.state, target, time.time()))
        self.state = target

    def _reset_to_idle(self) -> None:
        """Teardown path: return to IDLE from anywhere."""
        if self.state is not SessionState.IDLE:
            self.history.append((self.state, SessionState.IDLE, time.time()))
            self.state = SessionState.IDLE

    def _audit(self, message: str) -> None:
        try:
            self.log_sink.append(f"[{self.label}] {message}")
        except Exception as e:
            Logger.error(f"[SESSION] {self.label} log sink append failed: {e}")

    # =========================================================================
    # STRATEGIES
    # =========================================================================

    def owned_strategies(self) -> List[Strategy]:
        strategies = self.store.load()
        return [
            s for s in strategies
            if s.wallet == self.public_key and (self.strategy_ids is None or s.id in self.strategy_ids)
        ]

    def _select_intent(self, strategies: List[Strategy], snapshots: Dict[str, PoolSnapshot]) -> Optional[TradeIntent]:
        """First enabled strategy whose triggers hold. At most one action per cycle."""
        evaluated: List[str] = []
        intent = None
        for strategy in strategies:
            if not strategy.enabled:
                continue
            snapshot = snapshots.get(strategy.pool)
            if snapshot is None:
                continue
            evaluated.append(strategy.id)
            try:
                intent = self.evaluator.evaluate(strategy, snapshot)
            except Exception as e:
                Logger.error(f"[SESSION] {self.label} evaluator error on {strategy.id}: {e}")
                intent = None
            if intent is not None:
                break

        # One store write per cycle
        if evaluated:
            try:
                self.store.mark_evaluated_many(evaluated, time.time())
            except Exception as e:
                Logger.warning(f"[SESSION] {self.label} could not stamp {len(evaluated)} strategies: {e}")
        return intent

    # =========================================================================
    # CYCLE
    # =========================================================================

    async def run_cycle(self, snapshots: Dict[str, PoolSnapshot]) -> CycleOutcome:
        """Run one full cycle. Never raises except for cancellation."""
        async with self._cycle_lock:
            self.cycles += 1
            try:
                outcome = await self._cycle(snapshots)
            except asyncio.CancelledError:
                self._on_cancelled()
                raise
            self.last_outcome = outcome
            return outcome

    async def _cycle(self, snapshots: Dict[str, PoolSnapshot]) -> CycleOutcome:
        strategies = self.owned_strategies()
        if not any(s.pool in snapshots for s in strategies):
            return CycleOutcome(state=None)

        self._transition(SessionState.EVALUATING)
        intent = self._select_intent(strategies, snapshots)
        if intent is None:
            self._transition(SessionState.IDLE)
            return CycleOutcome(state=None)

        Logger.info(f"[SESSION] {self.label} fired {intent.strategy_id}: {intent.description}")
        self._transition(SessionState.BUILDING)
        return await self._execute(intent)

    async def _execute(self, intent: TradeIntent) -> CycleOutcome:
        outcome = CycleOutcome(state=None, strategy_id=intent.strategy_id)
        budget = _RetryBudget(self.policy)
        payer = self.signer.pubkey()
        instructions = None

        while True:
            # --- BUILDING ---
            outcome.attempts += 1
            try:
                if instructions is None:
                    instructions = await self.planner.plan(intent, payer)
                fee = await self._priority_fee()
                envelope = await self.builder.build(payer, instructions, priority_fee=fee)

                # --- SUBMITTING ---
                self._transition(SessionState.SUBMITTING)
                tx = envelope.sign(self.signer)
                self._in_flight_signature = None
                signature = await self.ledger.send_transaction(tx)
                self._in_flight_signature = signature
                outcome.signature = signature

                # --- AWAITING_CONFIRMATION ---
                self._transition(SessionState.AWAITING_CONFIRMATION)
                await self._await_confirmation(signature, envelope.last_valid_block_height)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = classify_error(e)
                outcome.error = error
                delay = budget.next_delay(error)
                Logger.warning(
                    f"[SESSION] {self.label} attempt {outcome.attempts} in {self.state.value}: "
                    f"{error.kind.value} ({error.original or error.message})"
                )
                if delay is None:
                    return self._finish_failed(intent, outcome)

                self._transition(SessionState.RETRYING)
                outcome.delays.append(delay)
                await self._sleep(delay)
                self._transition(SessionState.BUILDING)
                continue

            return self._finish_success(intent, outcome)

    async def _priority_fee(self) -> Optional[int]:
        if self.fee_provider is None:
            return None
        try:
            return await self.fee_provider()
        except Exception as e:
            Logger.warning(f"[FEE] {self.label} fee estimate failed, building without: {e}")
            return None

    async def _await_confirmation(self, signature: str, last_valid_block_height: int) -> None:
        timeout = self.policy.confirmation_timeout
        try:
            await asyncio.wait_for(
                self.ledger.confirm_transaction(signature, last_valid_block_height, timeout=timeout),
                timeout=timeout + 1.0,
            )
        except asyncio.TimeoutError as e:
            raise ConfirmationTimeout(signature, timeout) from e

    def _finish_success(self, intent: TradeIntent, outcome: CycleOutcome) -> CycleOutcome:
        self._transition(SessionState.SUCCESS)
        self._in_flight_signature = None
        self.consecutive_failures = 0
        outcome.state = SessionState.SUCCESS
        self._audit(
            f"{intent.strategy_id}: {intent.description} confirmed "
            f"({(outcome.signature or '')[:16]}...) after {outcome.attempts} attempt(s)"
        )
        Logger.success(f"[SESSION] {self.label} {intent.strategy_id} confirmed")
        self._transition(SessionState.IDLE)
        return outcome

    def _finish_failed(self, intent: TradeIntent, outcome: CycleOutcome) -> CycleOutcome:
        self._transition(SessionState.FAILED)
        self._in_flight_signature = None
        self.consecutive_failures += 1
        outcome.state = SessionState.FAILED
        reason = outcome.error.kind.value if outcome.error else "UNKNOWN"
        detail = outcome.error.message if outcome.error else ""
        self._audit(
            f"{intent.strategy_id}: {intent.description} failed after {outcome.attempts} attempt(s) "
            f"[{reason}] {detail}"
        )
        Logger.error(f"[SESSION] {self.label} {intent.strategy_id} failed: {reason}")
        self._transition(SessionState.IDLE)
        return outcome

    def _on_cancelled(self) -> None:
        state = self.state
        if state in (SessionState.SUBMITTING, SessionState.AWAITING_CONFIRMATION):
            sig = self._in_flight_signature
            ref = f"{sig[:16]}..." if sig else "unsent/unknown signature"
            self._audit(f"cycle cancelled during {state.value}; transaction {ref} outcome unknown")
        elif state is not SessionState.IDLE:
            Logger.info(f"[SESSION] {self.label} cycle abandoned in {state.value}")
        self._in_flight_signature = None
        self.last_outcome = CycleOutcome(state=None, cancelled=True)
        self._reset_to_idle()

    # =========================================================================
    # BACKGROUND LOOP
    # =========================================================================

    def offer(self, snapshots: Dict[str, PoolSnapshot]) -> None:
        """Hand fresh snapshots to the loop. Newer values replace older ones."""
        if not snapshots:
            return
        self._pending.update(snapshots)
        self._fresh.set()

    async def _loop(self) -> None:
        while not self._stopping:
            await self._fresh.wait()
            self._fresh.clear()
            if self._stopping:
                break
            snapshots, self._pending = self._pending, {}
            try:
                await self.run_cycle(snapshots)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # One wallet's bug must not kill its loop
                Logger.error(f"[SESSION] {self.label} cycle error: {e}")
                self._reset_to_idle()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.create_task(self._loop(), name=f"session-{self.label}")
        Logger.info(f"[SESSION] {self.label} started")

    async def stop(self, grace: float = 0.0) -> None:
        """
        Stop the loop. With ``grace`` > 0 an in-flight cycle may finish first;
        otherwise it is cancelled at its next suspension point.
        """
        self._stopping = True
        self._fresh.set()
        task = self._task
        if task is None or task.done():
            return

        if grace > 0:
            done, _ = await asyncio.wait({task}, timeout=grace)
            if done:
                self._task = None
                return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._task = None
        Logger.info(f"[SESSION] {self.label} stopped")

    def get_status(self) -> Dict:
        return {
            "wallet": self.public_key,
            "state": self.state.value,
            "running": self.running,
            "cycles": self.cycles,
            "consecutive_failures": self.consecutive_failures,
            "last_outcome": self.last_outcome.state.value if self.last_outcome and self.last_outcome.state else None,
        }
