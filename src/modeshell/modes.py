# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""Session modes and the Ctrl+Up/Down cycle order."""

from __future__ import annotations

from enum import Enum


class Mode(str, Enum):
    COMMAND = "command"
    CHAT = "chat"
    AGENT = "agent"
    SEARCH = "search"
    SETTINGS = "settings"


CYCLE_ORDER: tuple[Mode, ...] = (
    Mode.COMMAND,
    Mode.CHAT,
    Mode.AGENT,
    Mode.SEARCH,
)


def cycle(mode: Mode, step: int) -> Mode:
    """Next mode in CYCLE_ORDER, wrapping at both ends.

    Settings is not part of the cycle and stays put.
    """
    if mode not in CYCLE_ORDER:
        return mode
    idx = CYCLE_ORDER.index(mode)
    return CYCLE_ORDER[(idx + step) % len(CYCLE_ORDER)]
