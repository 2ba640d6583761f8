"""
Strategy Store
==============
Durable persistence of user-authored strategies, scoped per network.

Source of Truth: one JSON key-value file per environment; the key
``userTradingStrategies`` holds the full serialized strategy list.
Concurrency: writes are serialized by a lock and land via an atomic
``os.replace``, so a concurrent ``load()`` sees either the old or the
new list. Read failures degrade to "no strategies"; write failures are
logged and never raised.
"""

import json
import os
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config.settings import Settings
from sniper.shared.system.logging import Logger


COMPARATORS = {
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    "==": lambda a, b: a == b,
}

SIDES = ("buy", "sell")


class PersistenceFailure(Exception):
    """Store read/write failed. Caught and logged inside the store."""


# ═══════════════════════════════════════════════════════════════════════════════
# STRATEGY SCHEMA
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TriggerCondition:
    """``metric op threshold`` evaluated against a pool snapshot."""

    metric: str  # e.g. "price", "liquidity", "market_cap"
    op: str
    threshold: float

    def __post_init__(self):
        if self.op not in COMPARATORS:
            raise ValueError(f"Unsupported comparator: {self.op}")

    def to_dict(self) -> Dict[str, Any]:
        return {"metric": self.metric, "op": self.op, "threshold": self.threshold}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TriggerCondition":
        return cls(metric=str(data["metric"]), op=str(data["op"]), threshold=float(data["threshold"]))

    @classmethod
    def parse(cls, text: str) -> "TriggerCondition":
        """Parse ``"price<0.002"`` style shorthand."""
        for op in (">=", "<=", "==", ">", "<"):
            if op in text:
                metric, threshold = text.split(op, 1)
                if not metric.strip():
                    break
                return cls(metric=metric.strip(), op=op, threshold=float(threshold))
        raise ValueError(f"Cannot parse trigger: {text!r}")


@dataclass(frozen=True)
class TradeAction:
    """What to do when every trigger holds."""

    side: str  # "buy" | "sell"
    amount: float  # interpreted by the sizing rule
    sizing: str = "fixed"
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.side not in SIDES:
            raise ValueError(f"Unsupported side: {self.side}")

    def to_dict(self) -> Dict[str, Any]:
        return {"side": self.side, "amount": self.amount, "sizing": self.sizing, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeAction":
        return cls(
            side=str(data["side"]),
            amount=float(data["amount"]),
            sizing=str(data.get("sizing", "fixed")),
            params=dict(data.get("params") or {}),
        )


@dataclass(frozen=True)
class Strategy:
    """
    Immutable strategy record. Edits produce a new instance via
    ``with_changes`` and are written back as a whole.
    """

    id: str
    wallet: str  # owning wallet public key
    pool: str  # pool account the triggers observe
    triggers: Tuple[TriggerCondition, ...]
    action: TradeAction
    enabled: bool = True
    last_evaluated: Optional[float] = None
    name: str = ""

    def with_changes(self, **changes) -> "Strategy":
        if "id" in changes or "wallet" in changes:
            raise ValueError("Strategy id and wallet are immutable")
        if "triggers" in changes:
            changes["triggers"] = tuple(changes["triggers"])
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "wallet": self.wallet,
            "pool": self.pool,
            "triggers": [t.to_dict() for t in self.triggers],
            "action": self.action.to_dict(),
            "enabled": self.enabled,
            "last_evaluated": self.last_evaluated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Strategy":
        last = data.get("last_evaluated")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            wallet=str(data["wallet"]),
            pool=str(data["pool"]),
            triggers=tuple(TriggerCondition.from_dict(t) for t in data.get("triggers", [])),
            action=TradeAction.from_dict(data["action"]),
            enabled=bool(data.get("enabled", True)),
            last_evaluated=float(last) if last is not None else None,
        )


def new_strategy_id() -> str:
    return uuid.uuid4().hex[:12]


# ═══════════════════════════════════════════════════════════════════════════════
# STORE
# ═══════════════════════════════════════════════════════════════════════════════

class StrategyStore:
    """
    JSON file backed strategy persistence.

    Usage:
        store = StrategyStore()                # Settings.STRATEGY_STORE_PATH
        strategies = store.load()
        store.save(strategies + [new_strategy])
        store.set_enabled(strategy_id, False)
    """

    def __init__(self, path: Optional[str] = None, key: str = Settings.STRATEGY_STORE_KEY):
        self.path = path or Settings.STRATEGY_STORE_PATH
        self.key = key
        self._lock = threading.RLock()
        self._memory: List[Strategy] = []  # last known good, used when the file is unreadable

    # =========================================================================
    # RAW FILE ACCESS
    # =========================================================================

    def _read_document(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"read {self.path}: {e}") from e
        if not isinstance(document, dict):
            raise PersistenceFailure(f"read {self.path}: top-level value is not an object")
        return document

    def _write_document(self, document: Dict[str, Any]) -> None:
        temp_file = f"{self.path}.{os.getpid()}.{threading.get_ident()}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            # Atomic swap
            os.replace(temp_file, self.path)
        except OSError as e:
            if os.path.exists(temp_file):
                try:
                    os.remove(temp_file)
                except OSError:
                    pass
            raise PersistenceFailure(f"write {self.path}: {e}") from e

    @staticmethod
    def _decode(raw: Any) -> List[Strategy]:
        strategies: List[Strategy] = []
        seen = set()
        for item in raw or []:
            try:
                strategy = Strategy.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                Logger.warning(f"[STORE] Skipping malformed strategy entry: {e}")
                continue
            if strategy.id in seen:
                Logger.warning(f"[STORE] Duplicate strategy id {strategy.id} ignored")
                continue
            seen.add(strategy.id)
            strategies.append(strategy)
        return strategies

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def load(self) -> List[Strategy]:
        """Full ordered strategy list; ``[]`` when missing or unreadable."""
        with self._lock:
            try:
                document = self._read_document()
            except PersistenceFailure as e:
                Logger.error(f"[STORE] Failed to load strategies: {e}")
                return []
            strategies = self._decode(document.get(self.key))
            self._memory = list(strategies)
            return strategies

    def save(self, strategies: List[Strategy]) -> bool:
        """Persist the full list atomically. Returns False (and logs) on failure."""
        ids = [s.id for s in strategies]
        if len(ids) != len(set(ids)):
            Logger.error("[STORE] Refusing to save: duplicate strategy ids")
            return False

        with self._lock:
            self._memory = list(strategies)
            try:
                try:
                    document = self._read_document()
                except PersistenceFailure:
                    document = {}
                document[self.key] = [s.to_dict() for s in strategies]
                self._write_document(document)
            except PersistenceFailure as e:
                Logger.error(f"[STORE] Failed to save strategies: {e}")
                return False
            return True

    def _current(self) -> List[Strategy]:
        """Read for read-modify-write; falls back to in-memory state."""
        try:
            document = self._read_document()
        except PersistenceFailure as e:
            Logger.warning(f"[STORE] Using in-memory strategies: {e}")
            return list(self._memory)
        return self._decode(document.get(self.key))

    def get(self, strategy_id: str) -> Optional[Strategy]:
        for strategy in self.load():
            if strategy.id == strategy_id:
                return strategy
        return None

    def for_wallet(self, wallet: str) -> List[Strategy]:
        return [s for s in self.load() if s.wallet == wallet]

    def add(self, strategy: Strategy) -> bool:
        with self._lock:
            current = self._current()
            if any(s.id == strategy.id for s in current):
                raise ValueError(f"Strategy id already exists: {strategy.id}")
            return self.save(current + [strategy])

    def remove(self, strategy_id: str) -> bool:
        with self._lock:
            current = self._current()
            remaining = [s for s in current if s.id != strategy_id]
            if len(remaining) == len(current):
                return False
            return self.save(remaining)

    def update(self, strategy_id: str, **changes) -> Optional[Strategy]:
        """Atomically replace one strategy with an edited copy."""
        with self._lock:
            current = self._current()
            for index, strategy in enumerate(current):
                if strategy.id == strategy_id:
                    updated = strategy.with_changes(**changes)
                    current[index] = updated
                    self.save(current)
                    return updated
            return None

    def set_enabled(self, strategy_id: str, enabled: bool) -> Optional[Strategy]:
        return self.update(strategy_id, enabled=enabled)

    def update_params(
        self,
        strategy_id: str,
        triggers: Optional[List[TriggerCondition]] = None,
        action: Optional[TradeAction] = None,
    ) -> Optional[Strategy]:
        changes: Dict[str, Any] = {}
        if triggers is not None:
            changes["triggers"] = triggers
        if action is not None:
            changes["action"] = action
        return self.update(strategy_id, **changes) if changes else self.get(strategy_id)

    def mark_evaluated(self, strategy_id: str, when: Optional[float] = None) -> Optional[Strategy]:
        return self.update(strategy_id, last_evaluated=when if when is not None else time.time())

    def mark_evaluated_many(self, strategy_ids: Iterable[str], when: Optional[float] = None) -> int:
        """Stamp several strategies with one read-modify-write. Returns how many matched."""
        wanted = set(strategy_ids)
        if not wanted:
            return 0
        stamp = when if when is not None else time.time()
        with self._lock:
            current = self._current()
            matched = 0
            for index, strategy in enumerate(current):
                if strategy.id in wanted:
                    current[index] = strategy.with_changes(last_evaluated=stamp)
                    matched += 1
            if matched:
                self.save(current)
            return matched
