"""CLI commands for inspecting and validating chatpilot settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate chatpilot configuration.")
console = Console()


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings."""
    from chatpilot.settings import get_settings

    settings = get_settings()
    console.print_json(json.dumps(settings.model_dump(mode="json"), indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from pydantic import ValidationError

    from chatpilot.settings import get_settings

    try:
        settings = get_settings()
    except ValidationError as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)

    problems: list[str] = []
    if settings.adapter.element_poll_ms > settings.adapter.element_timeout_ms:
        problems.append("adapter.element_poll_ms exceeds adapter.element_timeout_ms")
    if settings.adapter.response_poll_ms > settings.adapter.response_timeout_ms:
        problems.append("adapter.response_poll_ms exceeds adapter.response_timeout_ms")
    if settings.network.max_retries < 0 or settings.network.max_anti_automation_retries < 0:
        problems.append("network retry budgets must not be negative")
    if settings.recovery.max_retries < 0:
        problems.append("recovery.max_retries must not be negative")

    if problems:
        for problem in problems:
            console.print(f"[red]✗[/red] {problem}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment: {settings.env}")
    console.print(f"  Headless browser: {settings.browser.headless}")
    console.print(f"  Request timeout: {settings.network.timeout_ms}ms")
    console.print(f"  Recovery retry ceiling: {settings.recovery.max_retries}")
