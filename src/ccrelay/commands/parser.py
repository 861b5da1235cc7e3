"""Slash-command parser."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from ccrelay.core.messages import BotMessage

DEFAULT_PREFIX = "/"

_WHITESPACE = re.compile(r"\s+")


@dataclass
class ParsedCommand:
    is_command: bool
    original_message: str
    command: str | None = None
    args: list[str] = field(default_factory=list)


class CommandParser:
    """
    Splits chat text into a command name and arguments.

    Text is a command iff, once stripped, it starts with the prefix. The first
    whitespace-separated token is case-folded into the command name.
    """

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        self.prefix = prefix

    def parse(self, message: BotMessage | str) -> ParsedCommand:
        content = (message.content if isinstance(message, BotMessage) else message).strip()

        if not content.startswith(self.prefix):
            return ParsedCommand(is_command=False, original_message=content)

        parts = _WHITESPACE.split(content[len(self.prefix) :].lstrip())
        return ParsedCommand(
            is_command=True,
            command=parts[0].lower(),
            args=parts[1:],
            original_message=content,
        )
