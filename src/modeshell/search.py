# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Ranked command-history search (read-only view over the history store).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .interfaces import HistoryStore

WILDCARD = "**"
LIST_ALL_LIMIT = 100
RESULT_LIMIT = 20


@dataclass(frozen=True)
class SearchResult:
    command: str
    exec_count: int
    last_used: str = ""

    @property
    def label(self) -> str:
        return f"{self.command} ({self.exec_count}×)"


class SearchIndex:
    """Search command statistics by substring.

    `**` lists everything (by last use); blank input yields nothing.
    """

    def __init__(
        self,
        store: HistoryStore,
        search_config: dict[str, Any] | None = None,
    ):
        cfg = search_config or {}
        self.store = store
        self.wildcard = str(cfg.get("wildcard") or WILDCARD)
        self.list_all_limit = int(cfg.get("list_all_limit") or LIST_ALL_LIMIT)
        self.result_limit = int(cfg.get("result_limit") or RESULT_LIMIT)

    def search(self, term: str) -> list[SearchResult]:
        query = term.strip()
        if not query:
            return []

        if query == self.wildcard:
            rows = self.store.list_command_stats(self.list_all_limit)
        else:
            rows = self.store.search_command_stats(query, self.result_limit)

        return [
            SearchResult(
                command=row["command"],
                exec_count=int(row.get("exec_count") or 1),
                last_used=row.get("last_used") or "",
            )
            for row in rows
        ]

    def delete(self, command: str) -> bool:
        return self.store.delete_command_stat(command)

    def count(self) -> int:
        return self.store.count_command_stats()
