"""
Log Sink
========
Bounded, newest-first audit trail shared by every wallet session.

Entries are process-lifetime only. The presentation layer reads
``entries()``; sessions write with ``append()``. Every entry is mirrored
to the file/console Logger so the rotating log keeps the same audit.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from config.settings import Settings
from sniper.shared.system.logging import Logger


@dataclass(frozen=True)
class LogEntry:
    message: str
    timestamp: float = field(default_factory=time.time)

    def __str__(self) -> str:
        clock = datetime.fromtimestamp(self.timestamp).strftime("%H:%M:%S")
        return f"{clock}: {self.message}"


class LogSink:
    """Thread-safe capped log. Index 0 is always the most recent entry."""

    def __init__(self, capacity: int = Settings.LOG_CAPACITY, mirror: bool = True):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.mirror = mirror
        self._entries: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, message: str) -> LogEntry:
        entry = LogEntry(message=str(message))
        with self._lock:
            # appendleft on a bounded deque evicts from the right (oldest)
            self._entries.appendleft(entry)
        if self.mirror:
            Logger.info(f"[AUDIT] {entry.message}")
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def entries(self) -> List[LogEntry]:
        """Snapshot copy, newest first."""
        with self._lock:
            return list(self._entries)

    def lines(self) -> List[str]:
        return [str(e) for e in self.entries()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
