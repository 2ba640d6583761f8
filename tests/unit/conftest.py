"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO NETWORK ALLOWED.

All unit tests should be completely isolated from:
- Network (RPC, HTTP)
- File system (except tmp_path)
"""

import pytest


# ============================================================================
# AUTOUSE: ENFORCE I/O ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Automatically disable network I/O for unit tests.
    Any test that accidentally tries to make a network call will fail.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Unit tests must be pure logic with no external dependencies."
        )

    monkeypatch.setattr("httpx.AsyncClient.get", block_network)
    monkeypatch.setattr("httpx.AsyncClient.post", block_network)


@pytest.fixture(autouse=True)
def reset_fee_cache():
    from sniper.shared.execution.priority_fee import PriorityFeeClient

    PriorityFeeClient.reset_cache()
    yield
    PriorityFeeClient.reset_cache()


# ============================================================================
# SHARED SERVICES
# ============================================================================


@pytest.fixture
def store(tmp_path):
    from sniper.shared.state.strategy_store import StrategyStore
    return StrategyStore(str(tmp_path / "strategies.json"))


@pytest.fixture
def log_sink():
    from sniper.shared.system.log_sink import LogSink
    return LogSink(mirror=False)


@pytest.fixture
def ledger():
    from tests.mocks.mock_ledger import MockLedger
    return MockLedger()


@pytest.fixture
def signer():
    from sniper.shared.infrastructure.signer import KeypairSigner
    return KeypairSigner.generate()


@pytest.fixture
def sleeps():
    """Recorded backoff delays; pair with ``fake_sleep``."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay):
        sleeps.append(delay)
    return _sleep


@pytest.fixture
def strategy_factory(pool_id):
    """Build strategies that fire when price < threshold."""
    from sniper.shared.state.strategy_store import Strategy, TradeAction, TriggerCondition, new_strategy_id

    def make(wallet: str, threshold: float = 0.002, pool: str = None, enabled: bool = True, **kwargs):
        return Strategy(
            id=kwargs.pop("id", None) or new_strategy_id(),
            wallet=wallet,
            pool=pool or pool_id,
            triggers=kwargs.pop("triggers", (TriggerCondition("price", "<", threshold),)),
            action=kwargs.pop("action", TradeAction(side="buy", amount=0.5)),
            enabled=enabled,
            **kwargs,
        )

    return make


@pytest.fixture
def session_factory(store, log_sink, fake_sleep):
    """WalletSession wired to the shared store/sink with instant backoff."""
    from sniper.engine.wallet_session import RetryPolicy, WalletSession
    from sniper.shared.execution.transaction_builder import TransactionBuilder

    def make(signer, ledger, policy=None, **kwargs):
        kwargs.setdefault("sleep", fake_sleep)
        return WalletSession(
            signer,
            store,
            log_sink,
            TransactionBuilder(ledger),
            ledger,
            policy=policy or RetryPolicy(max_attempts=3, backoff_base=1.0, backoff_ceiling=30.0, unknown_retry_delay=2.0),
            **kwargs,
        )

    return make
