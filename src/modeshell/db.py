# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Low-level database schema for ModeShell.

Handles:
- Table creation for the history store
- Additive column upgrades (columns are only ever added, never dropped)
"""

from __future__ import annotations

from pathlib import Path
import sqlite3

# Columns that may be missing from databases created by older releases.
# (table, column, DDL fragment)
_ADDITIVE_COLUMNS: list[tuple[str, str, str]] = [
    ("f_aliases", "description", "description TEXT DEFAULT ''"),
    ("f_aliases", "kind", "kind TEXT DEFAULT 'auto'"),
    ("cmd_history", "exec_count", "exec_count INTEGER NOT NULL DEFAULT 1"),
]


def ensure_schema(db_path: Path) -> None:
    """Create or upgrade the database schema.

    Creates required tables if they don't exist:
    - history: raw session transcript (mode, input, output)
    - conversations: chat/agent exchanges (write-only audit sink)
    - cmd_history: per-command frequency statistics
    - f_aliases: named filesystem path shortcuts

    Args:
        db_path: Path to SQLite database file

    This function is idempotent - safe to call multiple times.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                mode TEXT NOT NULL,
                input TEXT NOT NULL,
                output TEXT,
                created_at TEXT NOT NULL
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                mode TEXT NOT NULL,
                user_message TEXT NOT NULL,
                ai_response TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS cmd_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                command TEXT NOT NULL UNIQUE,
                last_used TEXT NOT NULL,
                exec_count INTEGER NOT NULL DEFAULT 1
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS f_aliases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                path TEXT NOT NULL,
                description TEXT DEFAULT '',
                kind TEXT DEFAULT 'auto',
                created_at TEXT NOT NULL
            )
            """
        )

        for table, column, ddl in _ADDITIVE_COLUMNS:
            cur = conn.execute(f"PRAGMA table_info({table})")
            cols = {row[1] for row in cur.fetchall()}
            if column not in cols:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl}")

        conn.commit()
    finally:
        conn.close()
