"""
Next-Sniper Test Configuration
==============================
Shared fixtures and pytest markers for the test suite.
"""

import os
import sys
import tempfile

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep test runs out of the real logs/ and data/ folders
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "next-sniper-test-logs"))
os.environ.setdefault("DATA_DIR", os.path.join(tempfile.gettempdir(), "next-sniper-test-data"))
os.environ.setdefault("SILENT_MODE", "true")


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture
def pool_id():
    return "PoolAAAAbbbbCCCCddddEEEEffff1111"


@pytest.fixture
def snapshot_factory(pool_id):
    """Build PoolSnapshots with sensible defaults."""
    from sniper.shared.feeds.pool_observer import PoolSnapshot

    def make(price: float = 0.001, pool: str = None, **kwargs):
        kwargs.setdefault("liquidity", 50.0)
        kwargs.setdefault("lp_value", kwargs["liquidity"])
        return PoolSnapshot(pool=pool or pool_id, price=price, **kwargs)

    return make
