# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
LLM-backed agent collaborator for Chat and Agent modes.

Models come from the `llm` library (and whichever provider plugins are
installed, e.g. llm-anthropic or llm-gemini). The service is unavailable
until configure() succeeds with a provider, model and API key.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import llm

from .config import Settings
from .crashlog import write_crash_log

CHAT_SYSTEM_PROMPT = (
    "You are a helpful assistant embedded in a terminal session. "
    "Answer concisely; use plain text that reads well in a terminal."
)

AGENT_SYSTEM_PROMPT = """\
You are a specialized AI assistant focused ONLY on command-line operations \
and technical commands.

You can help with:
- Operating system commands (Linux, Windows, macOS)
- Development tools (git, npm, docker, kubernetes, etc.)
- Terminal operations and shell scripting
- Command syntax, options, and usage examples

For command-related questions, respond with structured information in \
this format:
[COMMAND_RESPONSE]
COMMAND: command_name
DESCRIPTION: Brief description of what the command does
OPTIONS: Key command-line options and flags (if applicable)
EXAMPLES: Practical usage examples (if applicable)
[/COMMAND_RESPONSE]

You can include multiple command blocks if the request involves several \
commands. COMMAND must be a line the user could run as-is.

If the user asks about non-command topics, politely say: "I'm specialized \
in command-line operations only. For other topics, switch to chat mode \
with /chat."
"""


class AgentError(Exception):
    """Raised when the agent cannot produce an answer."""


ModelFactory = Callable[[str, str], Any]


def llm_model(model_id: str, api_key: str) -> Any:
    """Resolve a model through the llm plugin registry."""
    model = llm.get_model(model_id)
    model.key = api_key
    return model


def known_model_ids() -> set[str]:
    """Model IDs and aliases registered by the installed llm plugins."""
    ids: set[str] = set()
    for entry in llm.get_models_with_aliases():
        ids.add(entry.model.model_id)
        ids.update(entry.aliases)
    return ids


def missing_models(
    providers: dict[str, list[str]], known: set[str]
) -> list[str]:
    """Catalog entries (as provider/model) that no installed plugin serves."""
    return [
        f"{provider}/{model}"
        for provider, models in providers.items()
        for model in models or []
        if model not in known
    ]


def build_prompt(user_input: str, history: list[dict[str, str]]) -> str:
    """Fold earlier {role, content} turns into a single prompt."""
    if not history:
        return user_input

    turns = []
    for turn in history:
        speaker = "User" if turn.get("role") == "user" else "Assistant"
        turns.append(f"{speaker}: {turn.get('content', '').strip()}")

    return (
        "## Conversation so far:\n"
        + "\n\n".join(turns)
        + f"\n\n## User request:\n{user_input}"
    )


class AgentService:
    """Agent protocol implementation backed by an llm model."""

    def __init__(
        self,
        providers: dict[str, list[str]],
        model_factory: ModelFactory = llm_model,
    ):
        self.providers = providers
        self.model_factory = model_factory
        self._model: Any = None

    @property
    def is_available(self) -> bool:
        return self._model is not None

    def configure(self, settings: Settings) -> bool:
        """(Re)build the backend from settings. Returns availability."""
        self._model = None

        if not (settings.provider and settings.model and settings.api_key):
            return False
        if settings.provider not in self.providers:
            return False

        try:
            self._model = self.model_factory(settings.model, settings.api_key)
        except llm.UnknownModelError as e:
            write_crash_log(
                e,
                context=f"agent.configure provider={settings.provider} "
                f"model={settings.model}",
            )
            return False
        return True

    def process_request(
        self, user_input: str, mode: str, history: list[dict[str, str]]
    ) -> str:
        if self._model is None:
            raise AgentError("No agent configured")

        system = AGENT_SYSTEM_PROMPT if mode == "agent" else CHAT_SYSTEM_PROMPT
        try:
            response = self._model.prompt(
                build_prompt(user_input, history), system=system
            )
            return response.text()
        except Exception as e:
            raise AgentError(f"Agent processing failed: {e}") from e
