# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
ModeShell session.

The mode state machine behind the UI:
- mode switching (slash directives, Ctrl+Up/Down cycling, Settings)
- submission routing to the executor, the dispatcher or the agent
- per-mode Chat/Agent transcripts with pending answers
- live input state: slash suggestions, search results, `@` browser,
  agent advisory pages

Important boundary:
- Session does not load YAML or touch the terminal.
- Session consumes the injected store, executor, config and agent.
- Background work (commands, agent requests) runs on threads that
  submit() returns, so callers can join them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import os
from pathlib import Path
import threading

from . import config as cfg_module
from .advisory import AdvisoryResponse, CommandPage, parse_agent_response
from .browser import FileSystemBrowser
from .config import ANSI_COLORS, Settings
from .crashlog import write_crash_log
from .dispatcher import CommandDispatcher, SlashCommand
from .executor import ProcessExecutor
from .interfaces import Agent, ConfigModel, HistoryStore
from .modes import Mode, cycle
from .search import SearchIndex, SearchResult
from .utils import format_table

THINKING = "Thinking..."
AGENT_UNAVAILABLE = "Error: No agent configured. Please check settings."

SETTINGS_HELP = [
    "Settings commands:",
    "  show                          current provider, model and key",
    "  providers                     known providers and models",
    "  set provider|model|api_key V  change a value",
    "  save                          save, reload the agent, back to cli",
    "  back                          discard changes, back to cli",
    "  aliases                       list path aliases",
    "  alias NAME PATH [DESCRIPTION] add or replace a path alias",
    "  unalias NAME                  remove a path alias",
]


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class EntryStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


@dataclass
class ChatEntry:
    """One question or answer in a Chat/Agent transcript.

    Answers start as PENDING placeholders and are resolved in place.
    """

    role: ChatRole
    text: str
    status: EntryStatus = EntryStatus.RESOLVED
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def resolve(self, text: str) -> None:
        self.text = text
        self.status = EntryStatus.RESOLVED


@dataclass(frozen=True)
class PendingSelection:
    command: str
    source: str  # "search" or "agent"


@dataclass
class Session:
    """ModeShell session engine."""

    store: HistoryStore
    executor: ProcessExecutor
    dispatcher: CommandDispatcher
    search_index: SearchIndex
    browser: FileSystemBrowser
    config: ConfigModel

    agent: Agent | None = None
    settings: Settings = field(default_factory=Settings)
    settings_path: Path | None = None

    mode: Mode = Mode.COMMAND
    transcripts: dict[Mode, list[ChatEntry]] = field(
        default_factory=lambda: {Mode.CHAT: [], Mode.AGENT: []}
    )
    pending: PendingSelection | None = None

    # Live input state
    input_text: str = ""
    slash_suggestions: list[SlashCommand] = field(default_factory=list)
    slash_index: int = 0
    search_query: str = ""
    search_results: list[SearchResult] = field(default_factory=list)
    search_selected: int = 0
    pages: list[CommandPage] = field(default_factory=list)
    page_index: int = 0
    settings_output: list[str] = field(default_factory=list)

    # Derived from config
    thinking_text: str = THINKING
    unavailable_text: str = AGENT_UNAVAILABLE

    # ---- Hooks (wired by UI/CLI) ----
    # Called with (mode, entry) when a chat/agent entry is added or resolved
    on_update: Callable[[Mode, ChatEntry], None] | None = None
    # Called with (old, new) after every mode change
    on_mode_change: Callable[[Mode, Mode], None] | None = None
    # Informational lines (settings screen)
    output_fn: Callable[[str], None] | None = None
    # Returns the model IDs the installed llm plugins can serve
    known_models: Callable[[], set[str]] | None = None

    _lock: threading.RLock = field(default_factory=threading.RLock)

    def __post_init__(self) -> None:
        messages = self.config.messages
        self.thinking_text = messages.get("thinking") or THINKING
        self.unavailable_text = (
            messages.get("agent_unavailable") or AGENT_UNAVAILABLE
        )
        self.dispatcher.bind(self)

    # -----------------------
    # Session
    # -----------------------

    @property
    def working_directory(self) -> str:
        """Single source of truth: the executor's directory."""
        return self.executor.get_working_directory()

    @property
    def agent_available(self) -> bool:
        if self.agent is None:
            return False
        return bool(getattr(self.agent, "is_available", True))

    def start(self) -> str:
        """Welcome text shown once at startup."""
        welcome = (self.config.system.get("welcome") or {}).get("message")
        return welcome.strip() if isinstance(welcome, str) else ""

    def mode_label(self, mode: Mode | None = None) -> str:
        mode = mode or self.mode
        cfg = self.config.modes.get(mode.value) or {}
        return str(cfg.get("label") or mode.value)

    def prompt(self) -> str:
        """Return the current prompt string with ANSI colors."""
        branding = self.config.branding.get(self.mode.value, {})
        color = ANSI_COLORS.get(
            branding.get("color", "reset"), ANSI_COLORS["reset"]
        )
        caret = ANSI_COLORS.get(
            branding.get("caret_color", "reset"), ANSI_COLORS["reset"]
        )
        reset = ANSI_COLORS["reset"]
        return f"{color}{self.mode_label()}{reset}{caret}>{reset}"

    def chat_history(self, mode: Mode) -> list[ChatEntry]:
        with self._lock:
            return list(self.transcripts.get(mode, []))

    # -----------------------
    # Mode transitions
    # -----------------------

    def set_mode(self, mode: Mode) -> None:
        old = self.mode
        if mode == old:
            return

        if old == Mode.AGENT:
            self.pages = []
            self.page_index = 0
        if mode == Mode.SEARCH:
            self.search_query = ""
            self.search_results = []
            self.search_selected = 0

        self.mode = mode
        self.slash_suggestions = []
        self.browser.close()

        if mode == Mode.SETTINGS:
            self._emit(self._settings_summary() + ["", *SETTINGS_HELP])

        if self.on_mode_change:
            self.on_mode_change(old, mode)

    def cycle_mode(self, step: int) -> Mode:
        """Ctrl+Up (+1) / Ctrl+Down (-1). Disabled in Settings."""
        if self.mode != Mode.SETTINGS:
            self.set_mode(cycle(self.mode, step))
        return self.mode

    # -----------------------
    # Live input state
    # -----------------------

    def on_input_change(self, text: str) -> None:
        """Recompute suggestions/results for the current input text."""
        self.input_text = text

        if self.pending is not None and text != self.pending.command:
            self.pending = None

        if "@" in text:
            self.browser.open(text)
            self.slash_suggestions = []
            self.search_results = []
            return
        if self.browser.visible:
            self.browser.close()

        if text.startswith("/") and " " not in text:
            self.slash_suggestions = self.dispatcher.suggest(text, self.mode)
            self.slash_index = 0
            self.search_results = []
            return
        self.slash_suggestions = []

        if self.mode == Mode.SEARCH and self.pending is None:
            self.run_search(text)

    def move_slash(self, delta: int) -> None:
        if self.slash_suggestions:
            self.slash_index = (self.slash_index + delta) % len(
                self.slash_suggestions
            )

    def select_slash(self) -> SlashCommand | None:
        """Pick the highlighted directive and close the suggestion list."""
        if not self.slash_suggestions:
            return None
        cmd = self.slash_suggestions[self.slash_index]
        self.slash_suggestions = []
        return cmd

    # ---- Search ----

    def run_search(self, query: str) -> list[SearchResult]:
        self.search_query = query
        self.search_results = self.search_index.search(query)
        self.search_selected = 0
        return self.search_results

    def move_search(self, delta: int) -> None:
        if self.search_results:
            self.search_selected = (self.search_selected + delta) % len(
                self.search_results
            )

    @property
    def selected_search_result(self) -> SearchResult | None:
        if not self.search_results:
            return None
        return self.search_results[self.search_selected]

    def select_search_result(self) -> str | None:
        """Make the highlighted command the pending selection."""
        result = self.selected_search_result
        if result is None:
            return None
        self.pending = PendingSelection(result.command, "search")
        self.search_results = []
        self.search_selected = 0
        self.input_text = result.command
        return result.command

    def delete_search_result(self) -> bool:
        """Delete the highlighted command's statistics and re-run the query."""
        result = self.selected_search_result
        if result is None:
            return False
        removed = self.search_index.delete(result.command)
        keep = self.search_selected
        self.run_search(self.search_query)
        if self.search_results:
            self.search_selected = min(keep, len(self.search_results) - 1)
        return removed

    def dismiss_search(self) -> str:
        self.search_results = []
        self.search_selected = 0
        self.pending = None
        self.input_text = ""
        return ""

    # ---- Advisory pages ----

    def move_page(self, delta: int) -> None:
        if self.pages:
            self.page_index = (self.page_index + delta) % len(self.pages)

    @property
    def current_page(self) -> CommandPage | None:
        if not self.pages:
            return None
        return self.pages[self.page_index]

    def select_page(self) -> str | None:
        page = self.current_page
        if page is None:
            return None
        self.pending = PendingSelection(page.command, "agent")
        self.pages = []
        self.page_index = 0
        self.input_text = page.command
        return page.command

    def dismiss_pages(self) -> str:
        self.pages = []
        self.page_index = 0
        self.pending = None
        self.input_text = ""
        return ""

    # -----------------------
    # Submission
    # -----------------------

    def submit(self, text: str) -> threading.Thread | None:
        """Route one submitted line.

        Order: slash directives, then a pending selection, then the
        active mode. Returns the background thread, if one was started.

        Raises:
            SystemExit: on /quit
        """
        value = text.strip()
        if not value:
            return None

        self.input_text = ""
        self.slash_suggestions = []
        self.browser.close()

        if value.startswith("/"):
            self.pending = None
            self.dispatcher.dispatch(value)
            return None

        pending, self.pending = self.pending, None
        if pending is not None and value == pending.command:
            self.set_mode(Mode.COMMAND)
            return self.executor.submit(pending.command)

        if self.mode == Mode.SETTINGS:
            self.handle_settings_command(value)
            return None

        if self.mode == Mode.COMMAND:
            return self.executor.submit(value)

        if self.mode == Mode.SEARCH:
            if self.search_results:
                # Enter picks from the list (select_search_result)
                return None
            self.set_mode(Mode.COMMAND)
            return self.executor.submit(value)

        return self._ask(self.mode, value)

    def _notify(self, mode: Mode, entry: ChatEntry) -> None:
        if self.on_update:
            self.on_update(mode, entry)

    def _ask(self, mode: Mode, question: str) -> threading.Thread | None:
        with self._lock:
            transcript = self.transcripts.setdefault(mode, [])
            history = [
                {"role": e.role.value, "content": e.text}
                for e in transcript
                if e.status == EntryStatus.RESOLVED
            ]
            asked = ChatEntry(ChatRole.USER, question)
            transcript.append(asked)
        self._notify(mode, asked)

        if mode == Mode.AGENT:
            self.pages = []
            self.page_index = 0

        if not self.agent_available:
            with self._lock:
                answer = ChatEntry(ChatRole.ASSISTANT, self.unavailable_text)
                transcript.append(answer)
            self._notify(mode, answer)
            return None

        with self._lock:
            answer = ChatEntry(
                ChatRole.ASSISTANT, self.thinking_text, EntryStatus.PENDING
            )
            transcript.append(answer)
        self._notify(mode, answer)

        thread = threading.Thread(
            target=self._answer,
            args=(mode, question, history, answer),
            daemon=True,
            name=f"modeshell-{mode.value}",
        )
        thread.start()
        return thread

    def _answer(
        self,
        mode: Mode,
        question: str,
        history: list[dict[str, str]],
        answer: ChatEntry,
    ) -> None:
        assert self.agent is not None
        pages: list[CommandPage] = []
        try:
            response = self.agent.process_request(
                question, mode.value, history
            )
        except Exception as e:
            write_crash_log(e, mode=mode.value, command=question)
            response = f"Error: {e}"
            display = response
        else:
            display = response
            if mode == Mode.AGENT:
                parsed = parse_agent_response(response)
                display = parsed.text
                if isinstance(parsed, AdvisoryResponse):
                    pages = list(parsed.pages)

        with self._lock:
            answer.resolve(display)
            if pages and self.mode == Mode.AGENT:
                self.pages = pages
                self.page_index = 0

        self.store.append_conversation(mode.value, question, response)
        self._notify(mode, answer)

    # -----------------------
    # Settings mode
    # -----------------------

    def _emit(self, lines: list[str]) -> list[str]:
        self.settings_output = lines
        if self.output_fn:
            for line in lines:
                self.output_fn(line)
        return lines

    def _settings_summary(self) -> list[str]:
        state = "available" if self.agent_available else "not configured"
        return [
            f"Provider: {self.settings.provider}",
            f"Model:    {self.settings.model}",
            f"API key:  {self.settings.masked_key()}",
            f"Agent:    {state}",
        ]

    def handle_settings_command(self, line: str) -> list[str]:
        """Run one Settings-mode command and return the lines it printed."""
        parts = line.split()
        if not parts:
            return self._emit(SETTINGS_HELP)

        cmd = parts[0].lower()
        if cmd == "show":
            return self._emit(self._settings_summary())
        if cmd == "providers":
            return self._emit(self._list_providers())
        if cmd == "set":
            return self._emit(self._set_value(parts))
        if cmd == "save":
            return self._emit(self._save())
        if cmd == "back":
            if self.settings_path is not None:
                self.settings = cfg_module.load_settings(self.settings_path)
            self.set_mode(Mode.COMMAND)
            return self._emit(["Settings unchanged."])
        if cmd == "aliases":
            return self._emit(self._list_aliases())
        if cmd == "alias":
            return self._emit(self._add_alias(line))
        if cmd == "unalias":
            return self._emit(self._remove_alias(parts))
        return self._emit(SETTINGS_HELP)

    def _list_providers(self) -> list[str]:
        known = self.known_models() if self.known_models else None
        lines = []
        for provider, models in self.config.providers.items():
            names = [
                m if known is None or m in known else f"{m} (not installed)"
                for m in models or []
            ]
            lines.append(f"{provider}: {', '.join(names)}")
        return lines or ["(no providers configured)"]

    def _set_value(self, parts: list[str]) -> list[str]:
        if len(parts) < 3:
            return ["Usage: set provider|model|api_key <value>"]

        key = parts[1].lower()
        value = " ".join(parts[2:])
        if key == "provider":
            providers = self.config.providers
            match = next(
                (p for p in providers if p.lower() == value.lower()), None
            )
            if match is None:
                return [
                    f"Error: Unknown provider: {value}",
                    f"Known providers: {', '.join(providers)}",
                ]
            self.settings.provider = match
            models = providers.get(match) or []
            if models and self.settings.model not in models:
                self.settings.model = models[0]
            return [
                f"Provider set to {match} (model {self.settings.model})."
            ]
        if key == "model":
            self.settings.model = value
            return [f"Model set to {value}."]
        if key in ("api_key", "apikey", "key"):
            self.settings.api_key = value
            return [f"API key set ({self.settings.masked_key()})."]
        return ["Usage: set provider|model|api_key <value>"]

    def _save(self) -> list[str]:
        if not cfg_module.save_settings(self.settings, self.settings_path):
            return ["Error: Could not save settings (see crash log)."]

        configure = getattr(self.agent, "configure", None)
        if callable(configure):
            configure(self.settings)

        state = "available" if self.agent_available else "not configured"
        self.set_mode(Mode.COMMAND)
        return [f"Settings saved. Agent {state}."]

    def _list_aliases(self) -> list[str]:
        aliases = self.store.list_aliases()
        if not aliases:
            return ["(no aliases)"]
        return format_table(
            ["NAME", "PATH", "DESCRIPTION"],
            [[a["name"], a["path"], a["description"]] for a in aliases],
        )

    def _add_alias(self, line: str) -> list[str]:
        parts = line.split(maxsplit=3)
        if len(parts) < 3:
            return ["Usage: alias NAME PATH [DESCRIPTION]"]

        name, raw_path = parts[1], parts[2]
        description = parts[3] if len(parts) > 3 else ""
        if "@" in name:
            return [f"Error: Alias names cannot contain '@': {name}"]

        path = os.path.normpath(
            os.path.join(self.working_directory, os.path.expanduser(raw_path))
        )
        if not os.path.isdir(path):
            return [f"Error: Directory not found: {path}"]

        if not self.store.add_alias(name, path, description, "folder"):
            return [f"Error: Could not save alias '{name}'."]
        return [f"Alias '{name}' -> {path}"]

    def _remove_alias(self, parts: list[str]) -> list[str]:
        if len(parts) < 2:
            return ["Usage: unalias NAME"]
        name = parts[1]
        if self.store.delete_alias(name):
            return [f"Removed alias '{name}'."]
        return [f"No alias named '{name}'."]
