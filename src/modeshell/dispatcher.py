# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Slash-directive dispatch for ModeShell.

Directives:
- /cli /chat /agent /search   switch mode
- /settings                   open settings
- /cwd <path>                 change the working directory
- /quit                       exit (status 0)

Any other `/...` input is swallowed so typos never reach the shell.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Any, Protocol

from .executor import EntryKind, ProcessExecutor
from .interfaces import HistoryStore
from .modes import CYCLE_ORDER, Mode

CWD_USAGE = "Error: Missing folder argument. Usage: /cwd <folder>"

# Fallback when system.yaml has no entry for a mode
_DEFAULT_SLASH = {
    Mode.COMMAND: ("/cli", "Switch to CLI mode"),
    Mode.CHAT: ("/chat", "Switch to chat mode"),
    Mode.AGENT: ("/agent", "Switch to agent mode"),
    Mode.SEARCH: ("/search", "Switch to search mode"),
    Mode.SETTINGS: ("/settings", "Open settings"),
}


class DispatchTarget(Protocol):
    def set_mode(self, mode: Mode) -> None: ...


@dataclass(frozen=True)
class SlashCommand:
    name: str
    description: str
    mode: Mode | None = None
    # Text placed in the input when picked from the completion list
    insert: str = ""

    @property
    def completion(self) -> str:
        return self.insert or self.name


class CommandDispatcher:
    """Recognizes and runs slash directives."""

    def __init__(
        self,
        executor: ProcessExecutor,
        store: HistoryStore,
        modes_config: dict[str, dict[str, Any]] | None = None,
    ):
        self.executor = executor
        self.store = store
        self.target: DispatchTarget | None = None

        self._mode_commands: dict[Mode, SlashCommand] = {}
        for mode, (slash, description) in _DEFAULT_SLASH.items():
            cfg = (modes_config or {}).get(mode.value) or {}
            self._mode_commands[mode] = SlashCommand(
                name=str(cfg.get("slash") or slash).lower(),
                description=str(cfg.get("description") or description),
                mode=mode,
            )

    def bind(self, target: DispatchTarget) -> None:
        self.target = target

    # ----------------------------------------------------------------
    # Completion list
    # ----------------------------------------------------------------

    def slash_commands(self, current: Mode) -> list[SlashCommand]:
        """Directives offered in `current` mode, in display order."""
        commands = [
            self._mode_commands[Mode.SETTINGS],
            SlashCommand("/quit", "Exit application"),
            SlashCommand("/cwd", "Change working directory", insert="/cwd "),
        ]
        commands.extend(
            self._mode_commands[mode]
            for mode in CYCLE_ORDER
            if mode != current
        )
        return commands

    def suggest(self, prefix: str, current: Mode) -> list[SlashCommand]:
        prefix = prefix.strip().lower()
        return [
            cmd
            for cmd in self.slash_commands(current)
            if cmd.name.startswith(prefix)
        ]

    # ----------------------------------------------------------------
    # Dispatch
    # ----------------------------------------------------------------

    def dispatch(self, text: str) -> bool:
        """Handle a directive. Returns False if text is not a directive.

        Raises:
            SystemExit: on /quit
        """
        line = text.strip()
        if not line.startswith("/"):
            return False

        name = line.split()[0].lower()
        if name == "/quit":
            raise SystemExit(0)

        if name == "/cwd":
            self._change_directory(line, line[len(name):].strip())
            return True

        for cmd in self._mode_commands.values():
            if cmd.name == name and cmd.mode is not None:
                if self.target is not None:
                    self.target.set_mode(cmd.mode)
                return True

        # Unknown directive: handled, never executed
        return True

    def _change_directory(self, line: str, arg: str) -> None:
        self.executor.add_entry(EntryKind.COMMAND, line)
        message = self._resolve_directory(arg)
        self.executor.add_entry(EntryKind.OUTPUT, message)
        self.store.append_transcript(Mode.COMMAND.value, line, message)

    def _resolve_directory(self, arg: str) -> str:
        """Commit the new directory if valid; return the transcript line."""
        if not arg:
            return CWD_USAGE

        cwd = self.executor.get_working_directory()
        resolved = os.path.normpath(
            os.path.join(cwd, os.path.expanduser(arg))
        )
        if not os.path.isdir(resolved):
            return f"Error: Directory not found: {resolved}"

        self.executor.set_working_directory(resolved)
        return f"Changed directory to: {resolved}"
