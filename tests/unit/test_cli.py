"""
CLI Unit Tests
==============
Strategy and wallet commands through Typer's test runner.
"""

import pytest
from typer.testing import CliRunner

runner = CliRunner()


@pytest.fixture
def cli_store_path(tmp_path, monkeypatch):
    path = str(tmp_path / "cli-strategies.json")
    monkeypatch.setattr("sniper.engine.trading_engine.store_path_for", lambda network: path)
    return path


class TestStrategiesCommands:

    def test_add_list_disable_remove(self, cli_store_path, signer):
        from cli_typer import app
        from sniper.shared.state.strategy_store import StrategyStore

        result = runner.invoke(app, [
            "strategies", "add",
            "--wallet", signer.public_key,
            "--pool", "PoolAAAA",
            "--side", "buy",
            "--amount", "0.25",
            "-t", "price<0.002",
            "-t", "liquidity>=10",
        ])
        assert result.exit_code == 0, result.output

        [strategy] = StrategyStore(cli_store_path).load()
        assert len(strategy.triggers) == 2
        assert strategy.action.amount == 0.25

        result = runner.invoke(app, ["strategies", "list"])
        assert result.exit_code == 0
        assert strategy.id in result.output

        assert runner.invoke(app, ["strategies", "disable", strategy.id]).exit_code == 0
        assert StrategyStore(cli_store_path).get(strategy.id).enabled is False

        assert runner.invoke(app, ["strategies", "remove", strategy.id]).exit_code == 0
        assert StrategyStore(cli_store_path).load() == []

    def test_bad_trigger_rejected(self, cli_store_path, signer):
        from cli_typer import app

        result = runner.invoke(app, [
            "strategies", "add",
            "--wallet", signer.public_key,
            "--pool", "PoolAAAA",
            "--side", "buy",
            "--amount", "1",
            "-t", "price~5",
        ])

        assert result.exit_code == 1

    def test_enable_missing(self, cli_store_path):
        from cli_typer import app

        assert runner.invoke(app, ["strategies", "enable", "nope"]).exit_code == 1

    def test_unsupported_network(self, cli_store_path):
        from cli_typer import app

        assert runner.invoke(app, ["strategies", "list", "--network", "testnet"]).exit_code == 1


class TestWalletsCommands:

    def test_generate_prints_loadable_keys(self):
        from cli_typer import app
        from sniper.shared.infrastructure.signer import load_signers_from_env

        result = runner.invoke(app, ["wallets", "generate", "--count", "2"])

        assert result.exit_code == 0
        line = next(l for l in result.output.splitlines() if l.startswith("BOT_WALLET_KEYS="))
        assert len(load_signers_from_env(line.split("=", 1)[1])) == 2

    def test_list_empty(self, monkeypatch):
        from cli_typer import app

        monkeypatch.setattr("config.settings.Settings.BOT_WALLET_KEYS", "")

        result = runner.invoke(app, ["wallets", "list"])

        assert result.exit_code == 0
        assert "No bot wallets" in result.output
