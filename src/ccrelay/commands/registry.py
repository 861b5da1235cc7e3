"""Command handler registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from ccrelay.core.messages import BotMessage, Platform
from ccrelay.formatters.chat import get_command_help_text

if TYPE_CHECKING:
    from ccrelay.assistant.integration import ClaudeIntegration
    from ccrelay.service import BotMessageService


@dataclass
class CommandContext:
    message: BotMessage
    platform: Platform
    args: list[str]
    integration: ClaudeIntegration | None = None
    service: BotMessageService | None = None


@dataclass
class CommandResult:
    success: bool
    message: str
    data: Any = None


@dataclass
class CommandHandler:
    name: str
    description: str
    usage: str
    execute: Callable[[CommandContext], Awaitable[CommandResult]]


class CommandRegistry:
    """Name -> handler map, kept in registration order."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}

    def register(self, handler: CommandHandler) -> None:
        self._handlers[handler.name] = handler

    def command(
        self, name: str, description: str, usage: str
    ) -> Callable[
        [Callable[[CommandContext], Awaitable[CommandResult]]],
        Callable[[CommandContext], Awaitable[CommandResult]],
    ]:
        """Decorator form of register()."""

        def decorator(func):
            self.register(CommandHandler(name, description, usage, func))
            return func

        return decorator

    def unregister(self, name: str) -> bool:
        return self._handlers.pop(name, None) is not None

    def get(self, name: str) -> CommandHandler | None:
        return self._handlers.get(name)

    def has(self, name: str) -> bool:
        return name in self._handlers

    def list(self) -> list[CommandHandler]:
        return list(self._handlers.values())

    def help_text(self) -> str:
        return get_command_help_text(self._handlers.values())
