# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Parser for command-advisory blocks in agent answers.

Agent mode asks the model to describe commands as:

    [COMMAND_RESPONSE]
    COMMAND: git status
    DESCRIPTION: Show the working tree status
    OPTIONS: -s short format
    EXAMPLES: git status -s
    [/COMMAND_RESPONSE]

parse_agent_response() returns either PlainResponse (no usable blocks) or
AdvisoryResponse (display text plus one CommandPage per valid block).
"""

from __future__ import annotations

from dataclasses import dataclass

OPEN_TAG = "[COMMAND_RESPONSE]"
CLOSE_TAG = "[/COMMAND_RESPONSE]"

FIELDS = ("COMMAND", "DESCRIPTION", "OPTIONS", "EXAMPLES")


@dataclass(frozen=True)
class CommandPage:
    command: str
    description: str
    options: str = ""
    examples: str = ""


@dataclass(frozen=True)
class PlainResponse:
    text: str


@dataclass(frozen=True)
class AdvisoryResponse:
    text: str
    pages: tuple[CommandPage, ...]


def _split_blocks(response: str) -> tuple[str, list[str]]:
    """Separate block bodies from the surrounding text.

    An opening tag without a closing tag is left in the text as-is.
    """
    outside: list[str] = []
    bodies: list[str] = []
    pos = 0
    while True:
        start = response.find(OPEN_TAG, pos)
        if start == -1:
            outside.append(response[pos:])
            break
        end = response.find(CLOSE_TAG, start + len(OPEN_TAG))
        if end == -1:
            outside.append(response[pos:])
            break
        outside.append(response[pos:start])
        bodies.append(response[start + len(OPEN_TAG):end])
        pos = end + len(CLOSE_TAG)
    return "".join(outside).strip(), bodies


def _parse_block(body: str) -> CommandPage | None:
    """Read FIELD: value lines. Unlabelled lines continue the last field.

    Blocks without both COMMAND and DESCRIPTION are dropped.
    """
    values: dict[str, list[str]] = {}
    current: str | None = None
    for raw in body.splitlines():
        line = raw.strip()
        if not line:
            continue

        label, sep, rest = line.partition(":")
        if sep and label.strip().upper() in FIELDS:
            current = label.strip().upper()
            values.setdefault(current, []).append(rest.strip())
        elif current is not None:
            values[current].append(line)

    def _field(name: str) -> str:
        return "\n".join(v for v in values.get(name, []) if v)

    command = _field("COMMAND")
    description = _field("DESCRIPTION")
    if not command or not description:
        return None
    return CommandPage(
        command=command,
        description=description,
        options=_field("OPTIONS"),
        examples=_field("EXAMPLES"),
    )


def parse_agent_response(response: str) -> PlainResponse | AdvisoryResponse:
    remaining, bodies = _split_blocks(response)
    if not bodies:
        return PlainResponse(response)

    pages = tuple(
        page for page in (_parse_block(b) for b in bodies) if page is not None
    )
    text = remaining or response.strip()
    if not pages:
        return PlainResponse(text)
    return AdvisoryResponse(text=text, pages=pages)


def format_page(page: CommandPage, index: int, total: int) -> list[str]:
    """Lines for one advisory page, as shown under the prompt."""
    lines = [
        f"[{index + 1}/{total}] {page.command}",
        f"  {page.description}",
    ]
    if page.options:
        lines.append(f"  Options: {page.options}")
    if page.examples:
        lines.append(f"  Examples: {page.examples}")
    return lines
