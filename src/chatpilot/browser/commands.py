"""Whitelisted page command protocol.

UI and shell collaborators drive a hosted page only through the three named
commands below. Commands are dispatched by name to a fixed handler table;
nothing here evaluates caller-supplied code.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated, Any, Awaitable, Callable, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from chatpilot.exceptions import UnknownCommand

if TYPE_CHECKING:
    from chatpilot.browser.surface import AutomationSurface

logger = logging.getLogger(__name__)


class InputTextCommand(BaseModel):
    """Clear the element at ``selector`` and type ``text`` into it."""

    action: Literal["INPUT_TEXT"] = "INPUT_TEXT"
    selector: str = Field(min_length=1)
    text: str


class ClickButtonCommand(BaseModel):
    """Click the element at ``selector``."""

    action: Literal["CLICK_BUTTON"] = "CLICK_BUTTON"
    selector: str = Field(min_length=1)


class GetResponseCommand(BaseModel):
    """Read the text content of the element at ``selector``."""

    action: Literal["GET_RESPONSE"] = "GET_RESPONSE"
    selector: str = Field(min_length=1)


PageCommand = Annotated[
    Union[InputTextCommand, ClickButtonCommand, GetResponseCommand],
    Field(discriminator="action"),
]

COMMAND_NAMES: tuple[str, ...] = ("INPUT_TEXT", "CLICK_BUTTON", "GET_RESPONSE")

_command_adapter: TypeAdapter[Any] = TypeAdapter(PageCommand)


class CommandResult(BaseModel):
    """Outcome of one dispatched command."""

    action: str
    success: bool
    value: str | None = None
    error: str = ""


def parse_command(payload: dict[str, Any]) -> InputTextCommand | ClickButtonCommand | GetResponseCommand:
    """Validate a raw command payload.

    Raises:
        UnknownCommand: If ``action`` is missing or not whitelisted.
        pydantic.ValidationError: If a whitelisted command has bad fields.
    """
    action = str(payload.get("action", ""))
    if action not in COMMAND_NAMES:
        raise UnknownCommand(action)
    return _command_adapter.validate_python(payload)


class CommandDispatcher:
    """Route named page commands to fixed surface operations.

    Args:
        surface: The automation surface of the page the commands target.
    """

    def __init__(self, surface: AutomationSurface) -> None:
        self._surface = surface
        self._handlers: dict[str, Callable[[Any], Awaitable[CommandResult]]] = {
            "INPUT_TEXT": self._do_input_text,
            "CLICK_BUTTON": self._do_click_button,
            "GET_RESPONSE": self._do_get_response,
        }

    async def dispatch(self, command: InputTextCommand | ClickButtonCommand | GetResponseCommand) -> CommandResult:
        """Run one validated command."""
        handler = self._handlers.get(command.action)
        if handler is None:
            raise UnknownCommand(command.action)
        logger.debug("Dispatching page command %s -> %s", command.action, command.selector)
        return await handler(command)

    async def dispatch_raw(self, payload: dict[str, Any]) -> CommandResult:
        """Validate and run a raw ``{"action": ..., ...}`` payload.

        Malformed fields on a known command are reported as a failed result;
        unknown command names raise ``UnknownCommand``.
        """
        try:
            command = parse_command(payload)
        except ValidationError as exc:
            logger.warning("Rejected malformed page command %s: %s", payload.get("action"), exc)
            return CommandResult(action=str(payload.get("action")), success=False, error="invalid command fields")
        return await self.dispatch(command)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _do_input_text(self, command: InputTextCommand) -> CommandResult:
        handle = await self._surface.query(command.selector)
        if handle is None:
            return CommandResult(action=command.action, success=False, error="element not found")
        ok = await self._surface.set_value(handle, command.text)
        return CommandResult(action=command.action, success=ok)

    async def _do_click_button(self, command: ClickButtonCommand) -> CommandResult:
        handle = await self._surface.query(command.selector)
        if handle is None:
            return CommandResult(action=command.action, success=False, error="element not found")
        ok = await self._surface.click(handle)
        return CommandResult(action=command.action, success=ok, error="" if ok else "element not interactable")

    async def _do_get_response(self, command: GetResponseCommand) -> CommandResult:
        handle = await self._surface.query(command.selector)
        if handle is None:
            return CommandResult(action=command.action, success=False, error="element not found")
        text = await self._surface.read_text(handle)
        return CommandResult(action=command.action, success=True, value=text)
