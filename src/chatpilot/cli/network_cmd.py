"""CLI commands for connectivity checks."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from chatpilot.models.network import NetworkStats
from chatpilot.network.engine import NetworkResilienceEngine

network_app = typer.Typer(help="Check connectivity as the network engine sees it.")
console = Console()


async def _probe_once() -> tuple[bool, NetworkStats]:
    from chatpilot.settings import get_settings

    engine = NetworkResilienceEngine(get_settings().network)
    try:
        reachable = await engine.check_network_status()
        return reachable, engine.get_network_stats()
    finally:
        await engine.close()


@network_app.command("probe")
def probe() -> None:
    """Run one connectivity probe and print the engine's stats."""
    reachable, stats = asyncio.run(_probe_once())

    table = Table(title="Network")
    table.add_column("Field")
    table.add_column("Value")
    for key, value in stats.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)

    if not reachable:
        console.print("[red]✗[/red] Probe target unreachable.")
        raise typer.Exit(code=1)
    console.print("[green]✓[/green] Network reachable.")
