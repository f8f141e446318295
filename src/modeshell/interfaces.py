# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Protocol definitions for dependency injection.

These interfaces enable clean separation between session logic,
database operations and the external agent collaborator.
"""

from __future__ import annotations

from typing import Any, Protocol


class HistoryStore(Protocol):
    """Protocol for persistent storage operations."""

    def append_transcript(self, mode: str, input: str, output: str) -> bool:
        """Insert one raw session transcript record."""
        ...

    def append_conversation(
        self, mode: str, user_message: str, ai_response: str
    ) -> bool:
        """Insert one chat/agent exchange."""
        ...

    def upsert_command_stat(self, command: str) -> bool:
        """Insert a command statistic or bump its count and last use."""
        ...

    def list_command_stats(
        self, limit: int = 50, sort_field: str = "last_used"
    ) -> list[dict[str, Any]]:
        """List command statistics, descending by sort_field."""
        ...

    def search_command_stats(
        self, term: str, limit: int = 20
    ) -> list[dict[str, Any]]:
        """Substring search over command statistics."""
        ...

    def delete_command_stat(self, command: str) -> bool:
        """Delete a statistic by exact command text."""
        ...

    def count_command_stats(self) -> int:
        """Number of stored command statistics."""
        ...

    def add_alias(
        self,
        name: str,
        path: str,
        description: str | None = None,
        kind: str = "auto",
    ) -> bool:
        """Add or replace a filesystem alias."""
        ...

    def get_alias(self, name: str) -> dict[str, str] | None:
        """Find an alias by exact name, or None if not found."""
        ...

    def list_aliases(self) -> list[dict[str, str]]:
        """List all aliases, sorted by name."""
        ...

    def delete_alias(self, name: str) -> bool:
        """Remove an alias. Returns whether a row was removed."""
        ...


class Agent(Protocol):
    """Protocol for the natural-language agent collaborator."""

    def process_request(
        self, user_input: str, mode: str, history: list[dict[str, str]]
    ) -> str:
        """Answer user_input given prior {role, content} turns.

        Raises on failure; callers turn the failure into answer text.
        """
        ...


class ConfigModel(Protocol):
    """Protocol for configuration access."""

    @property
    def modes(self) -> dict[str, dict[str, Any]]:
        """Mode configuration."""
        ...

    @property
    def search(self) -> dict[str, Any]:
        """Search limits and wildcard."""
        ...

    @property
    def messages(self) -> dict[str, str]:
        """User-facing fixed messages."""
        ...

    @property
    def providers(self) -> dict[str, list[str]]:
        """Provider to model catalog."""
        ...

    @property
    def branding(self) -> dict[str, dict[str, str]]:
        """Branding configuration."""
        ...

    @property
    def system(self) -> dict[str, Any]:
        """System configuration."""
        ...
