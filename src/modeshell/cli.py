# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
ModeShell CLI entry point and REPL loop.

Design:
- CLI owns process startup, data root and DB resolution.
- Session is the mode state machine (store+executor+agent injected).
- UI is terminal-friendly PromptSession (keeps scrollback + copy/select).
"""

from __future__ import annotations

import builtins
from collections.abc import Callable
import os
from pathlib import Path

from . import config
from .agent import AgentService, known_model_ids
from .browser import FileSystemBrowser
from .crashlog import write_crash_log
from .db import ensure_schema
from .dispatcher import CommandDispatcher
from .executor import ExecutorSnapshot, ProcessExecutor
from .search import SearchIndex
from .session import Session
from .store import SQLiteStore
from .ui import PromptToolkitUI, format_chat_entry, format_entry


def run_repl(
    session: Session,
    ui: PromptToolkitUI | None = None,
    input_fn: Callable[[str], str] | None = None,
    output_fn: Callable[[str], None] = print,
) -> None:
    """Run the standard ModeShell REPL loop.

    input_fn defaults to the builtin input(), looked up per call.
    /quit raises SystemExit(0), which is left to propagate.
    """
    if input_fn is None:
        input_fn = builtins.input

    while True:
        try:
            prompt = session.prompt()

            if ui is not None:
                line = ui.read(prompt)
            else:
                line = input_fn(prompt + " ")

            line = (line or "").strip()
            if not line:
                continue

            try:
                thread = session.submit(line)
                # Without the prompt_toolkit UI there is nothing to
                # redraw around streamed output, so wait for it.
                if ui is None and thread is not None:
                    thread.join()

            except Exception as e:
                # Unhandled exception - write crash log
                write_crash_log(e, mode=session.mode.value, command=line)
                # Show error to user
                error_msg = (
                    f"[ERROR] Unhandled exception: "
                    f"{type(e).__name__}: {e}"
                )
                if ui is not None:
                    ui.write_line(error_msg)
                else:
                    output_fn(error_msg)
                # Continue session

        except (KeyboardInterrupt, EOFError):
            msg = "\nBye!\n"
            if ui is not None:
                ui.write(msg)
            else:
                output_fn(msg)
            break


def build_session(data_root: Path | None = None) -> Session:
    """Explicit wiring: one of each service, injected into the session."""
    if data_root is None:
        data_root = config.get_data_root()

    db_path = config.history_db_path(data_root)
    ensure_schema(db_path)
    store = SQLiteStore(db_path)

    cfg = config.load_system_config()
    defaults = [
        (
            str(a.get("name")),
            str(a.get("folder") or ""),
            str(a.get("description") or ""),
        )
        for a in cfg.aliases.get("defaults") or []
        if isinstance(a, dict) and a.get("name")
    ]
    store.bootstrap_default_aliases(Path.home(), defaults or None)

    settings_file = config.settings_path(data_root)
    settings = config.load_settings(settings_file)
    agent = AgentService(cfg.providers)
    agent.configure(settings)

    executor = ProcessExecutor(store=store, cwd=os.getcwd(), force_color=True)
    dispatcher = CommandDispatcher(executor, store, cfg.modes)

    return Session(
        store=store,
        executor=executor,
        dispatcher=dispatcher,
        search_index=SearchIndex(store, cfg.search),
        browser=FileSystemBrowser(store, executor.get_working_directory),
        config=cfg,
        agent=agent,
        settings=settings,
        settings_path=settings_file,
        known_models=known_model_ids,
    )


def main() -> None:
    """Main entry point for ModeShell CLI."""
    session = build_session()
    start_output = session.start()

    # If user explicitly disables prompt_toolkit UI:
    if os.environ.get("MODESHELL_LEGACY_UI") == "1":
        if start_output:
            print(start_output)
        _attach_plain_output(session)
        run_repl(session)
        return

    # Default: PromptToolkitUI (keeps terminal scrollback/copy/select)
    ui = PromptToolkitUI(session)
    ui.attach()

    # Print startup message into the UI (ensure it ends cleanly)
    if start_output:
        ui.write_line(start_output)

    run_repl(session, ui=ui)


def _attach_plain_output(session: Session) -> None:
    """Print transcript lines with plain print() for the legacy loop."""
    printed = 0

    def _on_snapshot(snap: ExecutorSnapshot) -> None:
        nonlocal printed
        for entry in snap.entries[printed:]:
            print(format_entry(entry))
        printed = len(snap.entries)

    session.executor.subscribe(_on_snapshot)
    session.on_update = lambda _mode, entry: print(format_chat_entry(entry))
    session.output_fn = print
