# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Crash log for ModeShell.

Every recovered-but-unexpected failure (store errors, agent failures,
settings I/O, unhandled REPL exceptions) is appended here so the session
itself can keep going.
"""

from __future__ import annotations

from datetime import datetime
import traceback

from . import config as cfg_module


def write_crash_log(
    error: BaseException,
    mode: str = "",
    command: str = "",
    context: str = "",
) -> None:
    """Write an entry to the crash log.

    Only creates the log directory when actually needed.
    Appends to crash.log (never overwrites).
    """
    try:
        logs_dir = cfg_module.logs_dir(cfg_module.get_data_root())

        # Create logs directory only when we need to write
        logs_dir.mkdir(parents=True, exist_ok=True)

        crash_log_path = logs_dir / "crash.log"

        lines = [f"{datetime.now().isoformat()}"]
        if mode:
            lines.append(f"mode={mode}")
        if command:
            lines.append(f"command={command}")
        if context:
            lines.append(f"context={context}")

        lines.append(f"error={type(error).__name__}: {error}")
        lines.append("traceback:")
        lines.append(
            "".join(
                traceback.format_exception(
                    type(error), error, error.__traceback__
                )
            ).rstrip()
        )
        lines.append("----")

        with crash_log_path.open("a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    except Exception:
        # If we can't write the crash log, fail silently
        # (we're already in an error state)
        pass
