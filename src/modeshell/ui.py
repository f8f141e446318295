# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.filters import Condition
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

from .advisory import format_page
from .config import ANSI_COLORS, TAG_COLORS
from .executor import EntryKind, ExecutorSnapshot, TranscriptEntry
from .modes import CYCLE_ORDER, Mode
from .utils import truncate

if TYPE_CHECKING:
    from .session import ChatEntry, Session  # pragma: no cover

# Modes whose screen shows the command transcript
TRANSCRIPT_MODES = (Mode.COMMAND, Mode.SEARCH)


# ----------------------------
# Config helpers (MUST come from config.py facade via session.config.get_path)
# ----------------------------


def _cfg_get_path(session: Session | None, path: str, default):
    if session is None:
        return default
    cfg = getattr(session, "config", None)
    if cfg is None or not hasattr(cfg, "get_path"):
        return default
    return cfg.get_path(path, default)


def _cfg_bool(session: Session | None, path: str, default: bool) -> bool:
    return bool(_cfg_get_path(session, path, default))


def _cfg_dict(session: Session | None, path: str, default: dict) -> dict:
    val = _cfg_get_path(session, path, default)
    return val if isinstance(val, dict) else default


def _cfg_int(session: Session | None, path: str, default: int) -> int:
    val = _cfg_get_path(session, path, default)
    return val if isinstance(val, int) and val > 0 else default


# ----------------------------
# Theme / Style
# ----------------------------


def _default_style_dict() -> dict[str, str]:
    return {
        "bottom-toolbar": "bg:#0b0b0b #d0d0d0",
        # modebar
        "modeshell.modebar": "bg:#0b0b0b #d0d0d0",
        "modeshell.modebar.active": "bg:#d0d0d0 #0b0b0b bold",
        "modeshell.modebar.inactive": "bg:#0b0b0b #d0d0d0",
        "modeshell.modebar.sep": "bg:#0b0b0b #666666",
        "modeshell.modebar.cwd": "bg:#0b0b0b #808080",
        "modeshell.modebar.busy": "bg:#0b0b0b #ffaf00 bold",
        # list under the prompt (suggestions, results, files, pages)
        "modeshell.list": "bg:#0b0b0b #a0a0a0",
        "modeshell.list.current": "bg:#303030 #ffffff bold",
        "modeshell.list.meta": "bg:#0b0b0b #666666",
    }


def _build_style(session: Session | None) -> Style:
    base = _default_style_dict()
    overrides = _cfg_dict(session, "ui.theme.style", {})
    # only keep string->string
    for k, v in list(overrides.items()):
        if isinstance(k, str) and isinstance(v, str):
            base[k] = v
    return Style.from_dict(base)


# ----------------------------
# Transcript formatting
# ----------------------------


def _tag(name: str) -> str:
    color = ANSI_COLORS[TAG_COLORS[name]]
    return f"{color}[{name}]{ANSI_COLORS['reset']}"


def format_entry(entry: TranscriptEntry) -> str:
    if entry.kind == EntryKind.COMMAND:
        return f"{_tag('CMD')} {entry.text}"
    if entry.text.startswith(("Error", "Busy:")):
        red = ANSI_COLORS["red"]
        return f"{red}{entry.text}{ANSI_COLORS['reset']}"
    return entry.text


def format_chat_entry(entry: ChatEntry) -> str:
    tag = _tag("YOU") if entry.role.value == "user" else _tag("AI")
    if entry.status.value == "pending":
        dim = ANSI_COLORS["dim"]
        return f"{tag} {dim}{entry.text}{ANSI_COLORS['reset']}"
    return f"{tag} {entry.text}"


# ----------------------------
# PromptSession UI + Bottom Mode Bar
# ----------------------------


class PromptToolkitUI:
    """
    This is the *terminal-friendly* UI:
      - Keeps normal terminal scrollback + drag-select copy.
      - Streams command output above the prompt as it arrives.
      - Adds a YAML-themed bottom toolbar that can show:
          * mode strip + working directory (+ running command)
          * the active list: slash directives, search results,
            `@` file browser, agent advisory pages
      - Adds hotkeys:
          * Ctrl+Up / Ctrl+Down (Ctrl+N / Ctrl+P): cycle modes
          * Up / Down / Enter / Escape / Delete / Space: operate the list
          * Ctrl+Left / Ctrl+Right: page advisories
          * Ctrl+X: cancel the running command
    """

    def __init__(self, session: Session) -> None:
        self.shell = session
        self.session: PromptSession[str] | None = None
        self._style = _build_style(session)

        # Track whether we ended on a newline (to prevent prompt mangling)
        self._needs_newline_before_prompt = False

        # Command transcript entries already printed
        self._printed = 0
        self._print_lock = threading.Lock()

    # ---------- wiring ----------

    def attach(self) -> None:
        """Hook the UI into session and executor notifications."""
        self.shell.on_update = self._on_chat_update
        self.shell.on_mode_change = self._on_mode_change
        self.shell.output_fn = self.write_line
        self.shell.executor.subscribe(self._on_executor_update)

    def _on_executor_update(self, snap: ExecutorSnapshot) -> None:
        if self.shell.mode in TRANSCRIPT_MODES:
            self._flush(snap.entries)
        self._invalidate()

    def _on_mode_change(self, old: Mode, new: Mode) -> None:
        if new in TRANSCRIPT_MODES:
            self._flush(self.shell.executor.entries)

    def _on_chat_update(self, mode: Mode, entry: ChatEntry) -> None:
        self.write_line(format_chat_entry(entry))
        self._invalidate()

    def _flush(self, entries: tuple[TranscriptEntry, ...]) -> None:
        with self._print_lock:
            # Transcript was cleared: start over
            if self._printed > len(entries):
                self._printed = 0
            for entry in entries[self._printed:]:
                self.write_line(format_entry(entry))
            self._printed = len(entries)

    def _invalidate(self) -> None:
        if self.session is not None and self.session.app.is_running:
            self.session.app.invalidate()

    # ---------- toolbar rendering ----------

    def _toolbar_width(self) -> int:
        if self.session and self.session.app and self.session.app.output:
            return int(self.session.app.output.get_size().columns)
        return 120

    def _build_modebar_tokens(self) -> list[tuple[str, str]]:
        if not _cfg_bool(self.shell, "ui.modebar.enabled", True):
            return []

        tokens: list[tuple[str, str]] = []
        modes = list(CYCLE_ORDER) + [Mode.SETTINGS]
        for i, mode in enumerate(modes):
            style = (
                "class:modeshell.modebar.active"
                if mode == self.shell.mode
                else "class:modeshell.modebar.inactive"
            )
            tokens.append((style, f" {self.shell.mode_label(mode)} "))
            if i != len(modes) - 1:
                tokens.append(("class:modeshell.modebar.sep", "|"))

        tokens.append(
            (
                "class:modeshell.modebar.cwd",
                f"  {self.shell.working_directory}",
            )
        )
        running = self.shell.executor.running_command
        if running:
            tokens.append(
                (
                    "class:modeshell.modebar.busy",
                    f"  running: {truncate(running, 40)} (Ctrl+X cancels)",
                )
            )
        return tokens

    def _list_rows(self) -> tuple[list[str], int]:
        """Rows for the currently active list and the highlighted index."""
        s = self.shell
        if s.browser.visible:
            return [item.label for item in s.browser.items], (
                s.browser.selected_index
            )
        if s.slash_suggestions:
            rows = [f"{c.name}  {c.description}" for c in s.slash_suggestions]
            return rows, s.slash_index
        if s.mode == Mode.SEARCH and s.search_results:
            return [r.label for r in s.search_results], s.search_selected
        if s.mode == Mode.AGENT and s.pages:
            page = s.pages[s.page_index]
            return format_page(page, s.page_index, len(s.pages)), -1
        return [], -1

    def _build_list_tokens(self, width: int) -> list[tuple[str, str]]:
        if not _cfg_bool(self.shell, "ui.toolbar.enabled", True):
            return []

        rows, current = self._list_rows()
        if not rows:
            return []

        max_items = _cfg_int(self.shell, "ui.toolbar.max_items", 8)
        # Keep the highlighted row in view
        start = 0
        if current >= max_items:
            start = current - max_items + 1
        shown = rows[start:start + max_items]

        out: list[tuple[str, str]] = []
        for i, row in enumerate(shown, start=start):
            style = (
                "class:modeshell.list.current"
                if i == current
                else "class:modeshell.list"
            )
            marker = "> " if i == current else "  "
            out.append((style, truncate(marker + row, width)))
            out.append(("class:modeshell.list", "\n"))
        if len(rows) > start + len(shown):
            out.append(
                (
                    "class:modeshell.list.meta",
                    f"  … {len(rows) - start - len(shown)} more\n",
                )
            )
        return out

    def _bottom_toolbar(self):
        """
        Return formatted text (list-of-tuples) with optional newlines.
        """
        width = self._toolbar_width()

        list_lines = self._build_list_tokens(width=width)
        mode_line = self._build_modebar_tokens()

        if not list_lines and not mode_line:
            return ""

        out: list[tuple[str, str]] = []
        # 1) active list first, if present
        out.extend(list_lines)
        # 2) mode bar below
        out.extend(mode_line)
        return out

    # ---------- session ----------

    def _ensure_session(self) -> None:
        if self.session is not None:
            return

        self.session = PromptSession(
            key_bindings=self.build_key_bindings(),
            style=self._style,
            bottom_toolbar=self._bottom_toolbar,
            refresh_interval=0.5,
        )

        def _changed(buf) -> None:
            self.shell.on_input_change(buf.text)

        self.session.default_buffer.on_text_changed += _changed

    # ---------- public API ----------

    def read(self, prompt: str) -> str:
        self._ensure_session()
        assert self.session is not None

        # If last output didn't end with newline, insert one
        # before prompt redraw
        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._needs_newline_before_prompt = False

        # raw=True keeps ANSI colors in lines printed by worker threads
        with patch_stdout(raw=True):
            # prompt contains ANSI from session.prompt(),
            # so preserve it
            return self.session.prompt(ANSI(prompt + " "))

    def write(self, text: str) -> None:
        """Write EXACTLY what we receive (no extra newline).

        Track prompt safety.
        """
        if not text:
            return
        print(text, end="", flush=True)
        self._needs_newline_before_prompt = not text.endswith("\n")

    def write_line(self, text: str) -> None:
        self.write(text + "\n")

    # ---------- keybindings ----------

    def build_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()
        s = self.shell

        browser_open = Condition(lambda: s.browser.visible)
        slash_open = Condition(
            lambda: not s.browser.visible and bool(s.slash_suggestions)
        )
        results_open = Condition(
            lambda: not s.browser.visible
            and not s.slash_suggestions
            and s.mode == Mode.SEARCH
            and bool(s.search_results)
        )
        pages_open = Condition(
            lambda: not s.browser.visible
            and not s.slash_suggestions
            and s.mode == Mode.AGENT
            and bool(s.pages)
        )

        def _set_text(event, text: str) -> None:
            buf = event.current_buffer
            buf.text = text
            buf.cursor_position = len(text)

        def _switch_and_refresh(event, step: int) -> None:
            # 1) drop whatever user was typing
            event.current_buffer.reset()

            # 2) switch mode
            s.cycle_mode(step)

            # 3) redraw prompt immediately (shows new label)
            event.app.exit(result="")

        @kb.add("c-l")
        def _(event):
            event.app.renderer.clear()
            event.current_buffer.reset()
            event.app.invalidate()

        # Ctrl+Up moves forward through the cycle, like Ctrl+N
        for key, step in (("c-up", 1), ("c-n", 1), ("c-down", -1), ("c-p", -1)):

            @kb.add(key)
            def _(event, step=step):
                _switch_and_refresh(event, step)

        @kb.add("c-x")
        def _(event):
            # cancel() may wait for the child to exit; keep the loop free
            threading.Thread(
                target=s.executor.cancel, daemon=True, name="modeshell-cancel"
            ).start()

        # ---- `@` file browser ----

        @kb.add("up", filter=browser_open)
        def _(event):
            s.browser.move(-1)

        @kb.add("down", filter=browser_open)
        def _(event):
            s.browser.move(+1)

        @kb.add("enter", filter=browser_open)
        def _(event):
            text = s.browser.select()
            if text is not None:
                _set_text(event, text)

        @kb.add("space", filter=browser_open)
        def _(event):
            text = s.browser.accept_with_space()
            if text is not None:
                _set_text(event, text)

        @kb.add("escape", filter=browser_open, eager=True)
        def _(event):
            s.browser.close()

        # ---- slash directives ----

        @kb.add("up", filter=slash_open)
        def _(event):
            s.move_slash(-1)

        @kb.add("down", filter=slash_open)
        def _(event):
            s.move_slash(+1)

        @kb.add("enter", filter=slash_open)
        def _(event):
            cmd = s.select_slash()
            if cmd is None:
                return
            _set_text(event, cmd.completion)
            if not cmd.insert:
                event.current_buffer.validate_and_handle()

        @kb.add("escape", filter=slash_open, eager=True)
        def _(event):
            s.slash_suggestions = []

        # ---- search results ----

        @kb.add("up", filter=results_open)
        def _(event):
            s.move_search(-1)

        @kb.add("down", filter=results_open)
        def _(event):
            s.move_search(+1)

        @kb.add("enter", filter=results_open)
        def _(event):
            command = s.select_search_result()
            if command is not None:
                _set_text(event, command)

        @kb.add("delete", filter=results_open)
        def _(event):
            s.delete_search_result()

        @kb.add("escape", filter=results_open, eager=True)
        def _(event):
            _set_text(event, s.dismiss_search())

        # ---- agent advisory pages ----

        @kb.add("c-left", filter=pages_open)
        def _(event):
            s.move_page(-1)

        @kb.add("c-right", filter=pages_open)
        def _(event):
            s.move_page(+1)

        @kb.add("enter", filter=pages_open)
        def _(event):
            command = s.select_page()
            if command is not None:
                _set_text(event, command)

        @kb.add("escape", filter=pages_open, eager=True)
        def _(event):
            _set_text(event, s.dismiss_pages())

        return kb
