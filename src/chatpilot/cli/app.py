"""Unified CLI entry point for chatpilot.

Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> env vars (CHATPILOT_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import typer

from chatpilot.cli.chat_cmd import ask, history, services
from chatpilot.cli.network_cmd import network_app
from chatpilot.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("chatpilot")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "chatpilot — resilient automation of chat-style AI web front ends. "
    "Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml "
    "-> env vars (CHATPILOT_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("services")(services)
app.command("ask")(ask)
app.command("history")(history)
app.add_typer(network_app, name="network")
app.add_typer(settings_app, name="settings")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    log_level: str = typer.Option("", "--log-level", help="Override the configured log level."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines."),
) -> None:
    """Configure logging; show help when no subcommand is provided."""
    if version:
        typer.echo(f"chatpilot {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    from chatpilot.logging_setup import configure_logging
    from chatpilot.settings import get_settings

    settings = get_settings()
    configure_logging(log_level or settings.log_level, json_format=json_logs or settings.log_json)


if __name__ == "__main__":
    app()
