"""Tests for the chatpilot CLI (via typer.testing.CliRunner)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

from chatpilot.exceptions import AntiAutomationDetected
from chatpilot.network.engine import NetworkResilienceEngine


def _runner():
    """Return a Typer test CliRunner bound to the main app."""
    from typer.testing import CliRunner

    from chatpilot.cli.app import app

    return CliRunner(), app


# ===================================================================
# Top-level commands
# ===================================================================


class TestAppCli:
    """Tests for the root command group."""

    def test_version(self) -> None:
        runner, app = _runner()
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("chatpilot ")

    def test_no_subcommand_shows_help(self) -> None:
        runner, app = _runner()
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "ask" in result.output

    def test_services_lists_variants(self) -> None:
        """chatpilot services shows every built-in variant."""
        runner, app = _runner()
        result = runner.invoke(app, ["services"])
        assert result.exit_code == 0
        for variant in ("chatgpt", "claude", "gemini", "copilot", "generic"):
            assert variant in result.output


# ===================================================================
# ask
# ===================================================================


class TestAskCli:
    """Tests for chatpilot ask with the browser session mocked out."""

    def test_prints_reply(self) -> None:
        runner, app = _runner()
        with patch("chatpilot.cli.chat_cmd._ask", new=AsyncMock(return_value="Paris is the capital.")) as ask:
            result = runner.invoke(app, ["ask", "claude", "Capital of France?"])

        assert result.exit_code == 0
        assert "Paris is the capital." in result.output
        args = ask.await_args.args
        assert args[:3] == ("claude", "Capital of France?", "https://claude.ai/new")

    def test_url_override(self) -> None:
        runner, app = _runner()
        with patch("chatpilot.cli.chat_cmd._ask", new=AsyncMock(return_value="ok")) as ask:
            result = runner.invoke(app, ["ask", "generic", "hi", "--url", "https://chat.example.com"])

        assert result.exit_code == 0
        assert ask.await_args.args[2] == "https://chat.example.com"

    def test_generic_without_url_is_usage_error(self) -> None:
        runner, app = _runner()
        with patch("chatpilot.cli.chat_cmd._ask", new=AsyncMock()) as ask:
            result = runner.invoke(app, ["ask", "generic", "hi"])

        assert result.exit_code == 2
        ask.assert_not_called()

    def test_chatpilot_error_exits_1(self) -> None:
        """A terminal adapter error is reported with its category."""
        runner, app = _runner()
        error = AntiAutomationDetected("captcha", "Please verify you are human")
        with patch("chatpilot.cli.chat_cmd._ask", new=AsyncMock(side_effect=error)):
            result = runner.invoke(app, ["ask", "chatgpt", "hello"])

        assert result.exit_code == 1
        assert "anti_automation" in result.output
        assert "captcha" in result.output


# ===================================================================
# network / settings
# ===================================================================


class TestNetworkCli:
    """Tests for chatpilot network probe."""

    def test_probe_reachable(self) -> None:
        runner, app = _runner()
        with patch.object(NetworkResilienceEngine, "_http_probe", new=AsyncMock(return_value=True)):
            result = runner.invoke(app, ["network", "probe"])

        assert result.exit_code == 0
        assert "connected" in result.output
        assert "Network reachable" in result.output

    def test_probe_unreachable(self) -> None:
        runner, app = _runner()
        with patch.object(NetworkResilienceEngine, "_http_probe", new=AsyncMock(return_value=False)):
            result = runner.invoke(app, ["network", "probe"])

        assert result.exit_code == 1
        assert "unreachable" in result.output


class TestSettingsCli:
    """Tests for chatpilot settings show/validate."""

    def test_show(self) -> None:
        runner, app = _runner()
        result = runner.invoke(app, ["settings", "show"])
        assert result.exit_code == 0
        assert "max_retries" in result.output

    def test_validate(self) -> None:
        runner, app = _runner()
        result = runner.invoke(app, ["settings", "validate"])
        assert result.exit_code == 0
        assert "Settings are valid" in result.output

    def test_validate_reports_bad_polling(self, monkeypatch) -> None:
        monkeypatch.setenv("CHATPILOT_ADAPTER__RESPONSE_POLL_MS", "60000")
        runner, app = _runner()
        result = runner.invoke(app, ["settings", "validate"])
        assert result.exit_code == 1
        assert "response_poll_ms" in result.output
