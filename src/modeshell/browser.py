# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
`@` path autocomplete for ModeShell.

Typing a trigger token ending in `@` opens a directory listing:
- `name@`  alias from the history store
- `c@`     drive root (C:\\) when it exists
- `@`      current working directory

Picking a file splices its full path into the input in place of the
trigger token; picking a directory browses into it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import os
import string

from .interfaces import HistoryStore


@dataclass(frozen=True)
class BrowserItem:
    name: str
    path: str
    is_dir: bool

    @property
    def label(self) -> str:
        return f"{self.name}/" if self.is_dir else self.name


@dataclass(frozen=True)
class Trigger:
    """Location of the `@` trigger token inside an input line."""

    start: int  # index of the first character of the token
    at: int  # index of the `@`
    token: str  # text between start and `@`
    rest: str  # text after `@`


def find_trigger(text: str) -> Trigger | None:
    """Locate the last `@` and the whitespace-delimited token before it."""
    at = text.rfind("@")
    if at == -1:
        return None

    before = text[:at]
    start = max(before.rfind(" "), before.rfind("\t")) + 1
    return Trigger(
        start=start,
        at=at,
        token=before[start:],
        rest=text[at + 1:],
    )


def drive_root(letter: str) -> str:
    return f"{letter.upper()}:\\"


def scan_directory(path: str) -> list[BrowserItem]:
    """List a directory, directories first, then by name (case-insensitive).

    Raises OSError when the directory cannot be read.
    """
    items: list[BrowserItem] = []
    with os.scandir(path) as it:
        for entry in it:
            try:
                is_dir = entry.is_dir()
            except OSError:
                is_dir = False
            items.append(BrowserItem(entry.name, entry.path, is_dir))

    items.sort(key=lambda item: (not item.is_dir, item.name.lower()))
    return items


class FileSystemBrowser:
    """Listing state for the `@` file browser."""

    def __init__(
        self,
        store: HistoryStore,
        get_cwd: Callable[[], str],
        path_exists: Callable[[str], bool] = os.path.isdir,
    ):
        self.store = store
        self.get_cwd = get_cwd
        self.path_exists = path_exists

        self.visible = False
        self.items: list[BrowserItem] = []
        self.selected_index = 0
        self.directory = ""

        self._text = ""
        self._trigger: Trigger | None = None

    # ----------------------------------------------------------------
    # Trigger resolution
    # ----------------------------------------------------------------

    def resolve(self, text: str) -> str | None:
        """Directory the input's trigger points at, or None."""
        trigger = find_trigger(text)
        if trigger is None or trigger.rest:
            return None

        token = trigger.token
        if token:
            alias = self.store.get_alias(token)
            if alias is not None:
                return alias["path"]

        if len(token) == 1 and token in string.ascii_letters:
            path = drive_root(token)
            return path if self.path_exists(path) else None

        if not token:
            return self.get_cwd()

        return None

    def open(self, text: str) -> bool:
        """Browse the directory the input's trigger resolves to.

        Returns whether the browser is visible afterwards.
        """
        path = self.resolve(text)
        if path is None:
            self.close()
            return False

        self._text = text
        self._trigger = find_trigger(text)
        return self.browse(path)

    def browse(self, path: str) -> bool:
        """Scan path. A scan failure hides the browser instead of raising."""
        try:
            items = scan_directory(path)
        except OSError:
            self.items = []
            self.visible = False
            return False

        self.items = items
        self.selected_index = 0
        self.directory = path
        self.visible = bool(items)
        return self.visible

    def close(self) -> None:
        self.visible = False
        self.items = []
        self.selected_index = 0
        self.directory = ""
        self._text = ""
        self._trigger = None

    # ----------------------------------------------------------------
    # Navigation + selection
    # ----------------------------------------------------------------

    @property
    def selected(self) -> BrowserItem | None:
        if not self.items:
            return None
        return self.items[self.selected_index]

    def move(self, delta: int) -> None:
        if self.items:
            self.selected_index = (self.selected_index + delta) % len(
                self.items
            )

    def splice(self, path: str) -> str:
        """Replace the trigger token in the original input with path."""
        trigger = self._trigger
        if trigger is None:
            return path
        return (
            self._text[:trigger.start] + path + self._text[trigger.at + 1:]
        )

    def select(self) -> str | None:
        """Enter on the selected item.

        Directories are browsed into (returns None); files return the new
        input text and close the browser.
        """
        item = self.selected
        if item is None:
            return None
        if item.is_dir:
            self.browse(item.path)
            return None

        new_text = self.splice(item.path)
        self.close()
        return new_text

    def accept_with_space(self) -> str | None:
        """Splice the selected item (or the current directory) plus a space."""
        item = self.selected
        if item is not None:
            chosen = item.path
        elif self.directory:
            chosen = self.directory
        else:
            return None

        new_text = self.splice(chosen) + " "
        self.close()
        return new_text
