# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Subprocess-backed process executor for ModeShell.

This module provides:
- execute(): run one shell command in the calling thread, streaming each
  output chunk (split into lines) into the command transcript as it
  arrives, partial lines included
- submit(): the same, on a daemon thread (for the prompt_toolkit UI)
- subscribe(): immutable (entries, is_processing) snapshots on every change
- cancel(): terminate the running child's process group

One child process at a time. A command submitted while another is still
running is rejected with a busy notice instead of being queued.
"""

from __future__ import annotations

import codecs
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import os
import signal
import subprocess
import threading

from .crashlog import write_crash_log
from .interfaces import HistoryStore


class EntryKind(str, Enum):
    COMMAND = "command"
    OUTPUT = "output"


@dataclass(frozen=True)
class TranscriptEntry:
    kind: EntryKind
    text: str
    timestamp: str


@dataclass(frozen=True)
class ExecutorSnapshot:
    entries: tuple[TranscriptEntry, ...]
    is_processing: bool


Subscriber = Callable[[ExecutorSnapshot], None]


READ_SIZE = 4096


def _read_chunks(fd: int) -> Iterator[str]:
    """Yield output pieces as soon as the child writes them.

    Each read is split on line breaks. A trailing partial line (a prompt
    such as "Password: ") is yielded right away; the break that later
    ends it does not produce an extra empty piece.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    mid_line = False
    after_cr = False
    while True:
        data = os.read(fd, READ_SIZE)
        text = decoder.decode(data, final=not data)

        if after_cr and text.startswith("\n"):
            # \r\n split across two reads
            text = text[1:]
            after_cr = False
        elif mid_line and text[:1] in ("\r", "\n"):
            brk = "\r\n" if text.startswith("\r\n") else text[0]
            text = text[len(brk):]
            mid_line = False
            after_cr = brk == "\r"

        if text:
            mid_line = not text.endswith(("\r", "\n"))
            after_cr = text.endswith("\r")
            for piece in text.splitlines():
                yield piece.rstrip()

        if not data:
            return


class ProcessExecutor:
    """Runs shell commands and owns the Command-mode transcript."""

    def __init__(
        self,
        store: HistoryStore | None = None,
        cwd: str | None = None,
        force_color: bool = False,
        shell: str | None = None,
    ):
        """Initialize executor.

        Args:
            store: where finished commands are persisted (None disables it)
            cwd: initial working directory (default: process cwd)
            force_color: If True, set color-forcing env variables
            shell: shell executable (default: the platform shell)
        """
        self.store = store
        self.force_color = force_color
        self.shell = shell

        self._cwd = cwd or os.getcwd()
        self._entries: list[TranscriptEntry] = []
        self._processing = False
        self._running_command: str | None = None
        self._proc: subprocess.Popen | None = None
        self._subscribers: list[Subscriber] = []

        # Guards state and serializes notifications. Reentrant so a
        # subscriber may read executor state from inside its callback.
        self._lock = threading.RLock()

    def _build_env(self) -> dict:
        env = os.environ.copy()
        if self.force_color:
            env["PY_COLORS"] = "1"
            env["FORCE_COLOR"] = "1"
            env["CLICOLOR_FORCE"] = "1"
        return env

    # ----------------------------------------------------------------
    # State
    # ----------------------------------------------------------------

    def get_working_directory(self) -> str:
        return self._cwd

    def set_working_directory(self, path: str) -> None:
        """Callers validate the directory first; no checks happen here."""
        self._cwd = path

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def running_command(self) -> str | None:
        return self._running_command

    @property
    def entries(self) -> tuple[TranscriptEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def snapshot(self) -> ExecutorSnapshot:
        with self._lock:
            return ExecutorSnapshot(tuple(self._entries), self._processing)

    # ----------------------------------------------------------------
    # Subscription
    # ----------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback; it is called at once with the current state.

        Returns a function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)
            self._deliver(callback, self.snapshot())

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def _deliver(self, callback: Subscriber, snap: ExecutorSnapshot) -> None:
        try:
            callback(snap)
        except Exception as e:
            write_crash_log(e, mode="command", context="executor subscriber")

    def _notify(self) -> None:
        with self._lock:
            snap = self.snapshot()
            for callback in list(self._subscribers):
                self._deliver(callback, snap)

    def _append(self, kind: EntryKind, text: str) -> None:
        with self._lock:
            self._entries.append(
                TranscriptEntry(kind, text, datetime.now().isoformat())
            )
            self._notify()

    def add_entry(self, kind: EntryKind, text: str) -> None:
        """Append a transcript line produced outside a child process."""
        self._append(kind, text)

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._notify()

    # ----------------------------------------------------------------
    # Execution
    # ----------------------------------------------------------------

    def _begin(self, command: str) -> bool:
        """Claim the single execution slot, or record a busy notice."""
        with self._lock:
            if self._processing:
                self._append(EntryKind.COMMAND, command)
                self._append(
                    EntryKind.OUTPUT,
                    f'Busy: "{self._running_command}" is still running',
                )
                return False
            self._processing = True
            self._running_command = command
            self._append(EntryKind.COMMAND, command)
            return True

    def _finish(self) -> None:
        with self._lock:
            self._proc = None
            self._running_command = None
            self._processing = False
            self._notify()

    def execute(self, command: str) -> int | None:
        """Run a shell command, streaming its output into the transcript.

        Args:
            command: raw shell string (full shell semantics, not parsed)

        Returns:
            The exit code, or None if the command was rejected as busy or
            the process could not be spawned.
        """
        if not self._begin(command):
            return None
        return self._run(command)

    def submit(self, command: str) -> threading.Thread | None:
        """Run a command on a daemon thread.

        Returns the started thread, or None when rejected as busy.
        """
        if not self._begin(command):
            return None
        thread = threading.Thread(
            target=self._run,
            args=(command,),
            daemon=True,
            name="modeshell-exec",
        )
        thread.start()
        return thread

    def _run(self, command: str) -> int | None:
        try:
            proc = subprocess.Popen(
                command,
                shell=True,
                executable=self.shell,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                # Merged so chunks keep the order the OS delivered them
                stderr=subprocess.STDOUT,
                bufsize=0,
                env=self._build_env(),
                cwd=self._cwd,
                # So cancel() can signal the whole process group
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            # ValueError: embedded NUL byte in the command line
            self._append(EntryKind.OUTPUT, f"Error executing command: {e}")
            self._finish()
            return None

        with self._lock:
            self._proc = proc

        output_lines: list[str] = []
        try:
            assert proc.stdout is not None
            try:
                for text in _read_chunks(proc.stdout.fileno()):
                    output_lines.append(text)
                    self._append(EntryKind.OUTPUT, text)
            finally:
                proc.stdout.close()

            exit_code = proc.wait()
            if not output_lines:
                message = f"Command executed with exit code {exit_code}"
                output_lines.append(message)
                self._append(EntryKind.OUTPUT, message)

            if self.store is not None:
                self.store.append_transcript(
                    "command", command, "\n".join(output_lines)
                )
                self.store.upsert_command_stat(command)
            return exit_code
        finally:
            self._finish()

    def cancel(self) -> bool:
        """Terminate the running child. Returns whether one was running."""
        with self._lock:
            proc = self._proc
        if proc is None or proc.poll() is not None:
            return False

        self._signal(proc, force=False)
        try:
            proc.wait(timeout=1.0)
        except subprocess.TimeoutExpired:
            self._signal(proc, force=True)
        return True

    @staticmethod
    def _signal(proc: subprocess.Popen, force: bool) -> None:
        try:
            if hasattr(os, "killpg"):
                sig = signal.SIGKILL if force else signal.SIGTERM
                os.killpg(proc.pid, sig)
            elif force:
                proc.kill()
            else:
                proc.terminate()
        except ProcessLookupError:
            pass
