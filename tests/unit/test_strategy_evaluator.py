"""
Strategy Evaluator Unit Tests
=============================
Trigger semantics, sizing hooks and memo planning.
"""

import json

import pytest


class TestThresholdEvaluator:

    def test_fires_when_trigger_holds(self, strategy_factory, snapshot_factory, signer):
        from sniper.engine.strategy_evaluator import ThresholdEvaluator

        strategy = strategy_factory(signer.public_key, threshold=0.002)

        intent = ThresholdEvaluator().evaluate(strategy, snapshot_factory(price=0.001))

        assert intent is not None
        assert intent.strategy_id == strategy.id
        assert intent.side == "buy"
        assert intent.amount == 0.5

    def test_quiet_when_trigger_fails(self, strategy_factory, snapshot_factory, signer):
        from sniper.engine.strategy_evaluator import ThresholdEvaluator

        strategy = strategy_factory(signer.public_key, threshold=0.002)

        assert ThresholdEvaluator().evaluate(strategy, snapshot_factory(price=0.003)) is None

    def test_all_triggers_must_hold(self, strategy_factory, snapshot_factory, signer):
        from sniper.engine.strategy_evaluator import ThresholdEvaluator
        from sniper.shared.state.strategy_store import TriggerCondition

        strategy = strategy_factory(
            signer.public_key,
            triggers=(TriggerCondition("price", "<", 1.0), TriggerCondition("liquidity", ">", 100.0)),
        )
        evaluator = ThresholdEvaluator()

        assert evaluator.evaluate(strategy, snapshot_factory(price=0.5, liquidity=50.0)) is None
        assert evaluator.evaluate(strategy, snapshot_factory(price=0.5, liquidity=150.0)) is not None

    def test_no_triggers_never_fires(self, strategy_factory, snapshot_factory, signer):
        from sniper.engine.strategy_evaluator import ThresholdEvaluator

        strategy = strategy_factory(signer.public_key, triggers=())

        assert ThresholdEvaluator().evaluate(strategy, snapshot_factory()) is None

    def test_unknown_metric_does_not_hold(self, strategy_factory, snapshot_factory, signer):
        from sniper.engine.strategy_evaluator import ThresholdEvaluator
        from sniper.shared.state.strategy_store import TriggerCondition

        strategy = strategy_factory(signer.public_key, triggers=(TriggerCondition("volume_h1", ">", 0.0),))

        assert ThresholdEvaluator().evaluate(strategy, snapshot_factory()) is None

    def test_disabled_or_other_pool(self, strategy_factory, snapshot_factory, signer):
        from sniper.engine.strategy_evaluator import ThresholdEvaluator

        evaluator = ThresholdEvaluator()
        disabled = strategy_factory(signer.public_key, enabled=False)
        other = strategy_factory(signer.public_key, pool="OtherPool")

        assert evaluator.evaluate(disabled, snapshot_factory(price=0.001)) is None
        assert evaluator.evaluate(other, snapshot_factory(price=0.001)) is None

    def test_custom_sizer(self, strategy_factory, snapshot_factory, signer, monkeypatch):
        from sniper.engine import strategy_evaluator as module
        from sniper.shared.state.strategy_store import TradeAction

        monkeypatch.setitem(module.SIZERS, "liquidity_pct", lambda action, snap: snap.liquidity * action.amount)
        strategy = strategy_factory(signer.public_key, action=TradeAction("buy", 0.1, sizing="liquidity_pct"))

        intent = module.ThresholdEvaluator().evaluate(strategy, snapshot_factory(price=0.001, liquidity=40.0))

        assert intent.amount == pytest.approx(4.0)

    def test_unknown_sizer(self, strategy_factory, snapshot_factory, signer):
        from sniper.engine.strategy_evaluator import ThresholdEvaluator
        from sniper.shared.state.strategy_store import TradeAction

        strategy = strategy_factory(signer.public_key, action=TradeAction("buy", 1.0, sizing="kelly"))

        assert ThresholdEvaluator().evaluate(strategy, snapshot_factory(price=0.001)) is None


class TestMemoPlanner:

    @pytest.mark.asyncio
    async def test_memo_carries_intent(self, strategy_factory, snapshot_factory, signer):
        from sniper.engine.strategy_evaluator import MEMO_PROGRAM_ID, MemoInstructionPlanner, ThresholdEvaluator

        strategy = strategy_factory(signer.public_key)
        intent = ThresholdEvaluator().evaluate(strategy, snapshot_factory(price=0.001))

        [ix] = await MemoInstructionPlanner().plan(intent, signer.pubkey())

        assert ix.program_id == MEMO_PROGRAM_ID
        assert json.loads(bytes(ix.data))["strategy"] == strategy.id
        assert ix.accounts[0].pubkey == signer.pubkey()
        assert ix.accounts[0].is_signer
