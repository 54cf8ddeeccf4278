"""CLI commands that drive a chat service end to end."""

from __future__ import annotations

import asyncio
import logging
import tomllib
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from chatpilot.exceptions import ChatPilotError
from chatpilot.models.adapter import AdapterConfig

logger = logging.getLogger(__name__)
console = Console()


def _load_config(path: Path | None) -> AdapterConfig | None:
    if path is None:
        return None
    with open(path, "rb") as f:
        return AdapterConfig.model_validate(tomllib.load(f))


def _resolve_url(service: str, url: str, config: AdapterConfig | None) -> str:
    from chatpilot.adapters.services import BUILTIN_VARIANTS

    if url:
        return url
    if config is not None and config.home_url:
        return config.home_url
    adapter_cls = BUILTIN_VARIANTS.get(service)
    default = getattr(adapter_cls, "default_config", None)
    if default is not None and default.home_url:
        return default.home_url
    raise typer.BadParameter(f"No landing page known for {service!r}; pass --url", param_hint="--url")


def _settings(headed: bool):  # type: ignore[no-untyped-def]
    from chatpilot.settings import get_settings

    settings = get_settings()
    if headed:
        browser = settings.browser.model_copy(update={"headless": False})
        settings = settings.model_copy(update={"browser": browser})
    return settings


def _report(exc: ChatPilotError) -> None:
    console.print(f"[red]✗[/red] {exc}")
    console.print(f"  category: {exc.category}")
    if exc.detail:
        console.print(f"  detail:   {exc.detail}")


async def _ask(
    service: str,
    message: str,
    url: str,
    config: AdapterConfig | None,
    timeout_ms: int | None,
    headed: bool,
) -> str:
    from chatpilot.browser.session import open_session
    from chatpilot.context import AutomationContext

    settings = _settings(headed)
    async with AutomationContext.create(settings) as ctx:
        async with open_session(settings, url, network=ctx.network) as session:
            _, adapter = ctx.open_adapter(service, session.surface, config)
            await adapter.initialize()
            await adapter.send_message(message)
            return await adapter.get_response(timeout_ms)


async def _history(service: str, url: str, config: AdapterConfig | None, headed: bool) -> list[dict]:
    from chatpilot.browser.session import open_session
    from chatpilot.context import AutomationContext

    settings = _settings(headed)
    async with AutomationContext.create(settings) as ctx:
        async with open_session(settings, url, network=ctx.network) as session:
            _, adapter = ctx.open_adapter(service, session.surface, config)
            await adapter.initialize()
            return [turn.to_dict() for turn in await adapter.get_conversation_history()]


def services() -> None:
    """List the supported adapter variants."""
    from chatpilot.adapters.registry import AdapterRegistry
    from chatpilot.adapters.services import BUILTIN_VARIANTS

    registry = AdapterRegistry()
    registry.register_defaults()

    table = Table(title="Supported services")
    table.add_column("Variant")
    table.add_column("Name")
    table.add_column("Landing page")
    for variant_id in registry.get_supported_types():
        default = getattr(BUILTIN_VARIANTS.get(variant_id), "default_config", None)
        if default is None:
            table.add_row(variant_id, "(any, needs --config)", "")
        else:
            table.add_row(variant_id, default.display_name, default.home_url)
    console.print(table)


def ask(
    service: str = typer.Argument(..., help="Adapter variant (see `chatpilot services`)."),
    message: str = typer.Argument(..., help="Message to send."),
    url: str = typer.Option("", "--url", help="Override the landing page."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="TOML AdapterConfig for the generic variant."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout", help="Response timeout in milliseconds."),
    headed: bool = typer.Option(False, "--headed", help="Show the browser window."),
) -> None:
    """Send MESSAGE to SERVICE and print the reply."""
    config = _load_config(config_path)
    target = _resolve_url(service, url, config)
    try:
        reply = asyncio.run(_ask(service, message, target, config, timeout_ms, headed))
    except ChatPilotError as exc:
        _report(exc)
        raise typer.Exit(code=1)
    console.print(reply)


def history(
    service: str = typer.Argument(..., help="Adapter variant (see `chatpilot services`)."),
    url: str = typer.Option("", "--url", help="Conversation URL."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="TOML AdapterConfig for the generic variant."),
    headed: bool = typer.Option(False, "--headed", help="Show the browser window."),
) -> None:
    """Print the visible conversation on SERVICE."""
    config = _load_config(config_path)
    target = _resolve_url(service, url, config)
    try:
        turns = asyncio.run(_history(service, target, config, headed))
    except ChatPilotError as exc:
        _report(exc)
        raise typer.Exit(code=1)

    if not turns:
        console.print("[yellow]No conversation found.[/yellow]")
        return
    for turn in turns:
        style = "cyan" if turn["role"] == "user" else "green"
        console.print(f"[{style}]{turn['role']}[/{style}]: {turn['content']}")
