"""
Mock Pool Observer
==================
Returns preset snapshots; records every fetch.
"""

from typing import Dict, List

from sniper.shared.feeds.pool_observer import PoolObserver, PoolSnapshot


class MockPoolObserver(PoolObserver):

    def __init__(self, snapshots: Dict[str, PoolSnapshot] = None):
        self.snapshots = dict(snapshots or {})
        self.fetches: List[str] = []

    def set_snapshot(self, snapshot: PoolSnapshot) -> None:
        self.snapshots[snapshot.pool] = snapshot

    async def fetch(self, pool: str) -> PoolSnapshot:
        self.fetches.append(pool)
        if pool not in self.snapshots:
            raise KeyError(f"No snapshot for {pool}")
        return self.snapshots[pool]
