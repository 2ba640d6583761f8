"""
Next-Sniper CLI
===============
Command-line interface using Typer + Rich.

Commands:
    python cli_typer.py run --network devnet
    python cli_typer.py wallets list
    python cli_typer.py wallets generate
    python cli_typer.py strategies list
    python cli_typer.py strategies add --wallet <PUBKEY> --pool <POOL> --side buy --amount 0.1 -t "price<0.002"
    python cli_typer.py strategies enable <ID>
"""

import asyncio
import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.settings import Settings

app = typer.Typer(
    name="sniper",
    help="Next-Sniper - multi-wallet strategy execution for Solana pools",
    add_completion=False,
    rich_markup_mode="rich",
)
wallets_app = typer.Typer(help="Inspect and create bot wallets")
strategies_app = typer.Typer(help="Manage stored strategies")
app.add_typer(wallets_app, name="wallets")
app.add_typer(strategies_app, name="strategies")

console = Console()


def _check_network(network: str) -> str:
    if network not in Settings.SUPPORTED_NETWORKS:
        console.print(f"[bold red]❌ Unsupported network: {network}[/bold red]")
        raise typer.Exit(1)
    return network


def _store(network: str):
    from sniper.engine.trading_engine import store_path_for
    from sniper.shared.state.strategy_store import StrategyStore

    return StrategyStore(store_path_for(_check_network(network)))


NETWORK_OPTION = typer.Option(Settings.NETWORK, "--network", "-n", help="devnet or mainnet-beta")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: RUN
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def run(
    network: str = NETWORK_OPTION,
    interval: float = typer.Option(Settings.TICK_INTERVAL_S, "--interval", help="Tick interval in seconds", min=0.5),
    duration: Optional[float] = typer.Option(None, "--duration", help="Stop after N seconds (default: run until Ctrl+C)"),
):
    """
    Run the strategy engine for every wallet in BOT_WALLET_KEYS.

    \b
    Examples:
        python cli_typer.py run
        python cli_typer.py run --network mainnet-beta --interval 2
    """
    _check_network(network)
    console.print(Panel.fit(
        f"[bold cyan]🎯 Next-Sniper Engine[/bold cyan]\n"
        f"Network: {network} | Interval: {interval}s",
        border_style="cyan",
    ))

    from sniper.engine.trading_engine import TradingEngine

    async def _run():
        engine = TradingEngine(network, interval=interval)
        await engine.start()
        if len(engine.registry) == 0:
            console.print("[yellow]⚠️  No bot wallets loaded (set BOT_WALLET_KEYS)[/yellow]")
        try:
            if duration is None:
                while engine.running:
                    await asyncio.sleep(1)
            else:
                await asyncio.sleep(duration)
        finally:
            await engine.close()
            for line in engine.log_sink.lines()[:20]:
                console.print(f"[dim]{line}[/dim]")

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutdown requested.[/yellow]")


# ═══════════════════════════════════════════════════════════════════════════════
# WALLETS
# ═══════════════════════════════════════════════════════════════════════════════

@wallets_app.command("list")
def wallets_list():
    """Show the bot wallets configured in BOT_WALLET_KEYS."""
    from sniper.shared.infrastructure.signer import load_signers_from_env

    signers = load_signers_from_env()
    if not signers:
        console.print("[yellow]No bot wallets configured.[/yellow]")
        return

    table = Table(title="Bot Wallets")
    table.add_column("#", justify="right")
    table.add_column("Public Key", style="cyan")
    for index, signer in enumerate(signers, 1):
        table.add_row(str(index), signer.public_key)
    console.print(table)


@wallets_app.command("generate")
def wallets_generate(
    count: int = typer.Option(1, "--count", "-c", min=1, max=20, help="How many wallets"),
):
    """Create new bot wallets and print their BOT_WALLET_KEYS entries."""
    from sniper.shared.infrastructure.signer import KeypairSigner

    signers = [KeypairSigner.generate() for _ in range(count)]
    for signer in signers:
        console.print(f"[cyan]{signer.public_key}[/cyan]")
    console.print("\n[bold red]⚠️  Secret keys below. Store them in .env, never commit them.[/bold red]")
    console.print("BOT_WALLET_KEYS=" + ",".join(s.export_base58() for s in signers), soft_wrap=True)


# ═══════════════════════════════════════════════════════════════════════════════
# STRATEGIES
# ═══════════════════════════════════════════════════════════════════════════════

@strategies_app.command("list")
def strategies_list(
    network: str = NETWORK_OPTION,
    wallet: Optional[str] = typer.Option(None, "--wallet", help="Filter by wallet public key"),
):
    """List stored strategies."""
    store = _store(network)
    strategies = store.for_wallet(wallet) if wallet else store.load()
    if not strategies:
        console.print(f"[yellow]No strategies stored for {network}.[/yellow]")
        return

    table = Table(title=f"Strategies ({network})")
    table.add_column("ID", style="cyan", no_wrap=True, min_width=12)
    table.add_column("Name")
    table.add_column("Wallet")
    table.add_column("Pool")
    table.add_column("Triggers")
    table.add_column("Action")
    table.add_column("Enabled")
    for s in strategies:
        triggers = " & ".join(f"{t.metric}{t.op}{t.threshold:g}" for t in s.triggers) or "-"
        table.add_row(
            s.id,
            s.name or "-",
            f"{s.wallet[:4]}...{s.wallet[-4:]}",
            f"{s.pool[:8]}...",
            triggers,
            f"{s.action.side} {s.action.amount:g} ({s.action.sizing})",
            "[green]yes[/green]" if s.enabled else "[red]no[/red]",
        )
    console.print(table)


@strategies_app.command("add")
def strategies_add(
    wallet: str = typer.Option(..., "--wallet", help="Owning wallet public key"),
    pool: str = typer.Option(..., "--pool", help="Pool account"),
    side: str = typer.Option(..., "--side", help="buy or sell"),
    amount: float = typer.Option(..., "--amount", help="Trade amount", min=0.0),
    trigger: List[str] = typer.Option([], "--trigger", "-t", help='Trigger like "price<0.002" (repeatable)'),
    name: str = typer.Option("", "--name", help="Display name"),
    disabled: bool = typer.Option(False, "--disabled", help="Store without enabling"),
    network: str = NETWORK_OPTION,
):
    """Create a strategy and persist it immediately."""
    from sniper.shared.state.strategy_store import Strategy, TradeAction, TriggerCondition, new_strategy_id

    try:
        strategy = Strategy(
            id=new_strategy_id(),
            name=name,
            wallet=wallet,
            pool=pool,
            triggers=tuple(TriggerCondition.parse(t) for t in trigger),
            action=TradeAction(side=side, amount=amount),
            enabled=not disabled,
        )
    except ValueError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(1)

    if not _store(network).add(strategy):
        console.print("[bold red]❌ Could not persist strategy (see log)[/bold red]")
        raise typer.Exit(1)
    console.print(f"[bold green]✅ Added {strategy.id}[/bold green]")


@strategies_app.command("remove")
def strategies_remove(strategy_id: str, network: str = NETWORK_OPTION):
    """Delete a strategy."""
    if not _store(network).remove(strategy_id):
        console.print(f"[yellow]No strategy {strategy_id}[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Removed {strategy_id}[/green]")


def _set_enabled(strategy_id: str, enabled: bool, network: str) -> None:
    if _store(network).set_enabled(strategy_id, enabled) is None:
        console.print(f"[yellow]No strategy {strategy_id}[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]{strategy_id} {'enabled' if enabled else 'disabled'}[/green]")


@strategies_app.command("enable")
def strategies_enable(strategy_id: str, network: str = NETWORK_OPTION):
    """Enable a strategy."""
    _set_enabled(strategy_id, True, network)


@strategies_app.command("disable")
def strategies_disable(strategy_id: str, network: str = NETWORK_OPTION):
    """Disable a strategy."""
    _set_enabled(strategy_id, False, network)


# ═══════════════════════════════════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════════

def main():
    """Entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user.[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    main()
