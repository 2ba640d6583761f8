"""
Next-Sniper Test Mocks
======================
Reusable fakes for isolated testing.
"""

from tests.mocks.mock_ledger import MockLedger
from tests.mocks.mock_observer import MockPoolObserver

__all__ = [
    "MockLedger",
    "MockPoolObserver",
]
