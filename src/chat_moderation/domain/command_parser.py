"""Slash-command detection for inbound chat messages."""

from __future__ import annotations

from dataclasses import dataclass

COMMAND_PREFIX = "/"


@dataclass(frozen=True)
class ParsedCommand:
    """Normalized command name plus the raw argument tokens."""

    name: str
    arguments: tuple[str, ...]


def parse_command(message_text: str) -> ParsedCommand | None:
    """Return the parsed command for slash-prefixed text, else None."""

    stripped = message_text.strip()
    if not stripped.startswith(COMMAND_PREFIX):
        return None

    tokens = stripped.split()
    name = tokens[0].lower()
    if name == COMMAND_PREFIX:
        return None
    return ParsedCommand(name=name, arguments=tuple(tokens[1:]))
