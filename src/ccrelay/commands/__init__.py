"""
Chat commands.

Components:
    CommandParser: text -> ParsedCommand
    CommandRegistry: name -> CommandHandler
    create_default_registry: registry with the built-in commands
    CommandRouter: registry, then service commands, then unknown
"""

from .builtin import create_default_registry
from .parser import DEFAULT_PREFIX, CommandParser, ParsedCommand
from .registry import (
    CommandContext,
    CommandHandler,
    CommandRegistry,
    CommandResult,
)
from .router import NO_PENDING_PERMISSION, CommandRouter

__all__ = [
    "DEFAULT_PREFIX",
    "NO_PENDING_PERMISSION",
    "CommandContext",
    "CommandHandler",
    "CommandParser",
    "CommandRegistry",
    "CommandResult",
    "CommandRouter",
    "ParsedCommand",
    "create_default_registry",
]
