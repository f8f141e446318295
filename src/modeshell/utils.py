# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Text helpers shared by the session and the UI.
"""

from __future__ import annotations

from typing import Any


def truncate(text: str, width: int) -> str:
    """Shorten text to width characters, marking the cut with `…`."""
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    if width == 1:
        return "…"
    return text[: width - 1] + "…"


def format_table(
    headers: list[str],
    rows: list[list[Any]],
    max_width: int = 60,
) -> list[str]:
    """
    Format rows as aligned text columns.

    Args:
        headers: column header names
        rows: one list of values per row
        max_width: longest cell kept before truncation

    Returns:
        Table lines (header, rule, rows); empty when there are no rows
    """
    if not rows:
        return []

    str_headers = [str(h) for h in headers]
    str_rows = [
        [truncate(str(val), max_width) for val in row] for row in rows
    ]

    col_widths = []
    for i, header in enumerate(str_headers):
        width = len(header)
        for row in str_rows:
            if i < len(row):
                width = max(width, len(row[i]))
        col_widths.append(width)

    def _line(cells: list[str]) -> str:
        return "  ".join(
            cell.ljust(col_widths[i]) for i, cell in enumerate(cells)
        ).rstrip()

    lines = [_line(str_headers)]
    lines.append("  ".join("-" * w for w in col_widths))
    lines.extend(_line(row) for row in str_rows)
    return lines
