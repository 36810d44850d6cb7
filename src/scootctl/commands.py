"""
Command definitions and auto-completion for REPL.

Defines all available commands with metadata and provides a completer
for prompt_toolkit auto-completion.
"""

from dataclasses import dataclass
from typing import Any, List

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .codec import DrivingMode
from .core import SPEED_MAX, SPEED_MIN


@dataclass
class Command:
    """Command definition with metadata."""

    name: str
    aliases: List[str]
    description: str
    usage: str
    handler: str


COMMANDS = [
    Command(
        name="scan",
        aliases=["sc"],
        description="Scan for nearby BLE devices",
        usage="scan [seconds] [--named]",
        handler="cmd_scan",
    ),
    Command(
        name="connect",
        aliases=["c"],
        description="Connect to a device by address or scan list number",
        usage="connect [address|#]",
        handler="cmd_connect",
    ),
    Command(
        name="disconnect",
        aliases=["dc"],
        description="Disconnect from device",
        usage="disconnect",
        handler="cmd_disconnect",
    ),
    Command(
        name="mode",
        aliases=["m"],
        description="Select driving mode",
        usage="mode <eco|normal|sport|developer>",
        handler="cmd_mode",
    ),
    Command(
        name="lock",
        aliases=["lk"],
        description="Lock the scooter",
        usage="lock",
        handler="cmd_lock",
    ),
    Command(
        name="unlock",
        aliases=["ul"],
        description="Unlock the scooter",
        usage="unlock",
        handler="cmd_unlock",
    ),
    Command(
        name="speed",
        aliases=["sp"],
        description="Set speed limit in km/h",
        usage="speed <km/h>",
        handler="cmd_speed",
    ),
    Command(
        name="advanced",
        aliases=["adv"],
        description="Select advanced mode by number",
        usage="advanced <0-254>",
        handler="cmd_advanced",
    ),
    Command(
        name="hex",
        aliases=["x"],
        description="Send a raw hex command",
        usage="hex <hex string>",
        handler="cmd_hex",
    ),
    Command(
        name="status",
        aliases=["st"],
        description="Show connection status",
        usage="status",
        handler="cmd_status",
    ),
    Command(
        name="forget",
        aliases=["f"],
        description="Clear the remembered device address",
        usage="forget",
        handler="cmd_forget",
    ),
    Command(
        name="help",
        aliases=["h", "?"],
        description="Show all available commands",
        usage="help",
        handler="cmd_help",
    ),
    Command(
        name="quit",
        aliases=["q", "exit"],
        description="Exit the REPL",
        usage="quit",
        handler="cmd_quit",
    ),
]


def get_command(name: str) -> Command | None:
    """Get command by name or alias.

    Args:
        name: Command name or alias

    Returns:
        Command object if found, None otherwise
    """
    for cmd in COMMANDS:
        if cmd.name == name or name in cmd.aliases:
            return cmd
    return None


class CommandCompleter(Completer):
    """Auto-completion for commands and arguments."""

    def __init__(self) -> None:
        """Initialize completer."""
        self._command_names = set()
        self._command_aliases = set()

        for cmd in COMMANDS:
            self._command_names.add(cmd.name)
            self._command_aliases.update(cmd.aliases)

        self._argument_values = {
            "mode": [mode.name.lower() for mode in DrivingMode],
            "speed": [str(speed) for speed in range(SPEED_MIN, SPEED_MAX + 1)],
        }

    def get_completions(self, document: Document, complete_event) -> Any:  # type: ignore[no-untyped-def]
        """Get completion suggestions for current input.

        Args:
            document: Current input document
            complete_event: Completion event

        Yields:
            Completion objects for matching commands/arguments
        """
        text = document.text_before_cursor.lstrip()
        parts = text.split()

        # If no text yet, suggest nothing (avoid spam)
        if not text:
            return []

        # First part: complete command name
        if len(parts) <= 1 and not text.endswith(" "):
            partial_cmd = parts[0].lower() if parts else ""
            all_names = self._command_names | self._command_aliases

            for name in sorted(all_names):
                if name.startswith(partial_cmd):
                    yield Completion(
                        name,
                        start_position=-len(partial_cmd),
                        display=f"({name})",
                    )
            return

        # Argument: suggest mode names or speed values
        cmd = get_command(parts[0].lower())
        if cmd is None or cmd.name not in self._argument_values:
            return

        partial = "" if text.endswith(" ") else parts[-1].lower()
        for value in self._argument_values[cmd.name]:
            if value.startswith(partial):
                yield Completion(
                    value,
                    start_position=-len(partial),
                    display=value,
                )
