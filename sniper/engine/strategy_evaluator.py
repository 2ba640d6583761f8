"""
Strategy Evaluation
===================
Pluggable seams between a strategy and the transaction it produces.

- ``StrategyEvaluator`` decides whether a strategy fires on a snapshot
  and returns a ``TradeIntent``.
- Sizers turn a ``TradeAction`` into a concrete amount.
- ``InstructionPlanner`` turns an intent into Solana instructions. The
  DEX program encoding is outside the engine; integrators supply their
  own planner. ``MemoInstructionPlanner`` records the intent on-chain as
  an SPL memo, which is enough for devnet dry runs.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from sniper.shared.feeds.pool_observer import PoolSnapshot
from sniper.shared.state.strategy_store import COMPARATORS, Strategy, TradeAction
from sniper.shared.system.logging import Logger


MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")


@dataclass(frozen=True)
class TradeIntent:
    """A strategy fired: trade ``amount`` on ``pool`` in direction ``side``."""

    strategy_id: str
    wallet: str
    pool: str
    side: str
    amount: float
    snapshot: PoolSnapshot
    params: Dict = field(default_factory=dict)

    @property
    def description(self) -> str:
        return f"{self.side.upper()} {self.amount:g} on {self.pool[:8]}... @ {self.snapshot.price:.6g}"


# ═══════════════════════════════════════════════════════════════════════════════
# SIZING
# ═══════════════════════════════════════════════════════════════════════════════

Sizer = Callable[[TradeAction, PoolSnapshot], float]

SIZERS: Dict[str, Sizer] = {
    "fixed": lambda action, snapshot: action.amount,
}


def register_sizer(name: str, sizer: Sizer) -> None:
    SIZERS[name] = sizer


# ═══════════════════════════════════════════════════════════════════════════════
# EVALUATORS
# ═══════════════════════════════════════════════════════════════════════════════

class StrategyEvaluator(ABC):

    @abstractmethod
    def evaluate(self, strategy: Strategy, snapshot: PoolSnapshot) -> Optional[TradeIntent]:
        ...


class ThresholdEvaluator(StrategyEvaluator):
    """
    Fires when every trigger holds (logical AND, in order).

    A strategy with no triggers never fires, and a trigger on an unknown
    metric is treated as not holding.
    """

    def triggers_hold(self, strategy: Strategy, snapshot: PoolSnapshot) -> bool:
        if not strategy.triggers:
            return False
        for trigger in strategy.triggers:
            value = snapshot.metric(trigger.metric)
            if value is None:
                return False
            if not COMPARATORS[trigger.op](value, trigger.threshold):
                return False
        return True

    def evaluate(self, strategy: Strategy, snapshot: PoolSnapshot) -> Optional[TradeIntent]:
        if not strategy.enabled or snapshot.pool != strategy.pool:
            return None
        if not self.triggers_hold(strategy, snapshot):
            return None

        sizer = SIZERS.get(strategy.action.sizing)
        if sizer is None:
            Logger.warning(f"[SESSION] Unknown sizing rule '{strategy.action.sizing}' on {strategy.id}")
            return None

        amount = sizer(strategy.action, snapshot)
        if amount <= 0:
            return None

        return TradeIntent(
            strategy_id=strategy.id,
            wallet=strategy.wallet,
            pool=strategy.pool,
            side=strategy.action.side,
            amount=amount,
            snapshot=snapshot,
            params=dict(strategy.action.params),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# INSTRUCTION PLANNERS
# ═══════════════════════════════════════════════════════════════════════════════

class InstructionPlanner(ABC):

    @abstractmethod
    async def plan(self, intent: TradeIntent, payer: Pubkey) -> List[Instruction]:
        ...


class MemoInstructionPlanner(InstructionPlanner):
    """Encodes the intent as a JSON memo signed by the payer."""

    async def plan(self, intent: TradeIntent, payer: Pubkey) -> List[Instruction]:
        memo = json.dumps(
            {
                "strategy": intent.strategy_id,
                "pool": intent.pool,
                "side": intent.side,
                "amount": intent.amount,
                "price": intent.snapshot.price,
            },
            separators=(",", ":"),
        )
        return [
            Instruction(
                program_id=MEMO_PROGRAM_ID,
                data=memo.encode("utf-8"),
                accounts=[AccountMeta(payer, is_signer=True, is_writable=False)],
            )
        ]
