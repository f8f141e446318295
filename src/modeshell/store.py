# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
SQLite-backed history store for ModeShell.

Handles all database operations: session transcript, conversations,
command-frequency statistics and filesystem aliases.

Store errors never propagate into the session: each operation writes the
crash log and returns a neutral value (False / None / [] / 0).
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
import functools
from pathlib import Path
import sqlite3
import threading
from typing import Any, TypeVar

from .crashlog import write_crash_log

T = TypeVar("T")

# Whitelisted ORDER BY columns for list_command_stats
SORT_FIELDS: tuple[str, ...] = ("last_used", "exec_count", "command")
DEFAULT_SORT_FIELD = "last_used"

WILDCARD = "**"

# (name, folder relative to home, description)
DEFAULT_FOLDER_ALIASES: list[tuple[str, str, str]] = [
    ("userdir", "", "User home directory"),
    ("desktop", "Desktop", "Desktop folder"),
    ("documents", "Documents", "Documents folder"),
    ("downloads", "Downloads", "Downloads folder"),
]


def _now() -> str:
    return datetime.now().isoformat(timespec="microseconds")


def _escape_like(term: str) -> str:
    return (
        term.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )


def _guarded(fallback: Callable[[], Any]):
    """Catch sqlite errors, log them, and return fallback() instead."""

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(self: SQLiteStore, *args, **kwargs):
            try:
                return fn(self, *args, **kwargs)
            except sqlite3.Error as e:
                write_crash_log(
                    e, context=f"store.{fn.__name__} db={self.db_path}"
                )
                return fallback()

        return wrapper

    return decorator


class SQLiteStore:
    """SQLite implementation of HistoryStore protocol."""

    def __init__(self, db_path: Path):
        """Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (must have schema)

        Note:
            Store does NOT create schema. Schema must be created by
            db.ensure_schema() before constructing SQLiteStore.
        """
        self.db_path = db_path
        # Executor threads and the UI thread share this store.
        self._lock = threading.Lock()

        db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = sqlite3.connect(str(self.db_path))
            try:
                yield conn
                conn.commit()
            finally:
                conn.close()

    # ----------------------------------------------------------------
    # Transcript + conversation records
    # ----------------------------------------------------------------

    @_guarded(lambda: False)
    def append_transcript(self, mode: str, input: str, output: str) -> bool:
        """Insert one transcript record (no dedup)."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO history (mode, input, output, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (mode, input, output, _now()),
            )
        return True

    @_guarded(lambda: False)
    def append_conversation(
        self, mode: str, user_message: str, ai_response: str
    ) -> bool:
        """Insert one chat/agent exchange (no dedup)."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO conversations
                (mode, user_message, ai_response, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (mode, user_message, ai_response, _now()),
            )
        return True

    @_guarded(lambda: [])
    def list_transcripts(self, limit: int = 50) -> list[dict[str, Any]]:
        """Newest-first transcript records."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT mode, input, output, created_at FROM history
                ORDER BY id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            {"mode": m, "input": i, "output": o, "created_at": c}
            for m, i, o, c in rows
        ]

    @_guarded(lambda: [])
    def list_conversations(self, limit: int = 50) -> list[dict[str, Any]]:
        """Newest-first conversation records."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT mode, user_message, ai_response, created_at
                FROM conversations
                ORDER BY id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            {
                "mode": m,
                "user_message": u,
                "ai_response": a,
                "created_at": c,
            }
            for m, u, a, c in rows
        ]

    # ----------------------------------------------------------------
    # Command statistics
    # ----------------------------------------------------------------

    @_guarded(lambda: False)
    def upsert_command_stat(self, command: str) -> bool:
        """Insert with exec_count=1, or bump exec_count and last_used."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO cmd_history (command, last_used, exec_count)
                VALUES (?, ?, 1)
                ON CONFLICT(command) DO UPDATE SET
                    exec_count = exec_count + 1,
                    last_used = excluded.last_used
                """,
                (command, _now()),
            )
        return True

    @_guarded(lambda: [])
    def list_command_stats(
        self, limit: int = 50, sort_field: str = DEFAULT_SORT_FIELD
    ) -> list[dict[str, Any]]:
        """Up to `limit` rows ordered descending by sort_field.

        Unknown sort fields fall back to last_used; the column name is
        never taken from the caller verbatim.
        """
        field = sort_field if sort_field in SORT_FIELDS else DEFAULT_SORT_FIELD
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT command, last_used, exec_count FROM cmd_history
                ORDER BY {field} DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            {"command": c, "last_used": lu, "exec_count": n}
            for c, lu, n in rows
        ]

    @_guarded(lambda: [])
    def search_command_stats(
        self, term: str, limit: int = 20
    ) -> list[dict[str, Any]]:
        """Case-insensitive literal substring search.

        Empty/blank terms and the ** wildcard list everything, like
        list_command_stats with the default sort field.
        """
        stripped = term.strip()
        if not stripped or stripped == WILDCARD:
            return self.list_command_stats(limit)

        pattern = f"%{_escape_like(term)}%"
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT command, last_used, exec_count FROM cmd_history
                WHERE command LIKE ? ESCAPE '\\'
                ORDER BY exec_count DESC, last_used DESC
                LIMIT ?
                """,
                (pattern, limit),
            ).fetchall()
        return [
            {"command": c, "last_used": lu, "exec_count": n}
            for c, lu, n in rows
        ]

    @_guarded(lambda: None)
    def get_command_stat(self, command: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT command, last_used, exec_count FROM cmd_history
                WHERE command = ?
                """,
                (command,),
            ).fetchone()
        if row is None:
            return None
        return {"command": row[0], "last_used": row[1], "exec_count": row[2]}

    @_guarded(lambda: False)
    def delete_command_stat(self, command: str) -> bool:
        """Exact-match delete. Returns whether a row was removed."""
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM cmd_history WHERE command = ?", (command,)
            )
            return cur.rowcount > 0

    @_guarded(lambda: 0)
    def count_command_stats(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM cmd_history").fetchone()
        return int(row[0]) if row else 0

    # ----------------------------------------------------------------
    # Filesystem aliases
    # ----------------------------------------------------------------

    @_guarded(lambda: False)
    def add_alias(
        self,
        name: str,
        path: str,
        description: str | None = None,
        kind: str = "auto",
    ) -> bool:
        """Add or replace an alias (one row per name)."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO f_aliases
                (name, path, description, kind, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (name, path, description or "", kind, _now()),
            )
        return True

    @_guarded(lambda: None)
    def get_alias(self, name: str) -> dict[str, str] | None:
        """Find an alias by exact name, or None if not found."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT name, path, description, kind FROM f_aliases
                WHERE name = ?
                """,
                (name,),
            ).fetchone()
        if row is None:
            return None
        return {
            "name": row[0],
            "path": row[1],
            "description": row[2] or "",
            "kind": row[3] or "auto",
        }

    @_guarded(lambda: [])
    def list_aliases(self) -> list[dict[str, str]]:
        """All aliases, sorted by name."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT name, path, description, kind FROM f_aliases
                ORDER BY name
                """
            ).fetchall()
        return [
            {
                "name": name,
                "path": path,
                "description": description or "",
                "kind": kind or "auto",
            }
            for name, path, description, kind in rows
        ]

    @_guarded(lambda: False)
    def delete_alias(self, name: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM f_aliases WHERE name = ?", (name,)
            )
            return cur.rowcount > 0

    def bootstrap_default_aliases(
        self,
        home_dir: Path | str,
        defaults: list[tuple[str, str, str]] | None = None,
    ) -> int:
        """Insert the well-known folder aliases that do not exist yet.

        Existing aliases are never overwritten. Returns how many were added.
        """
        home = Path(home_dir)
        added = 0
        for name, folder, description in defaults or DEFAULT_FOLDER_ALIASES:
            if self.get_alias(name) is not None:
                continue
            target = home / folder if folder else home
            if self.add_alias(name, str(target), description, "folder"):
                added += 1
        return added
