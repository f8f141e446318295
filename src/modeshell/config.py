# ModeShell — Multi-Mode Terminal Session Manager
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Filesystem discovery, packaged defaults and settings for ModeShell.

Handles:
- Data root resolution (MODESHELL_DATA_HOME, ~/.local/share)
- History DB / settings / crash log path helpers
- Packaged YAML defaults loading (modeshell/defaults/system.yaml)
- The flat provider/model/api_key settings file
- ANSI coloring constants shared by the UI and prompt
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from importlib import resources as importlib_resources
import os
from pathlib import Path
from typing import Any

import yaml

# -----------------------
# UI + branding constants
# -----------------------

ANSI_COLORS: dict[str, str] = {
    "cyan": "\033[38;5;69;1m",
    "pink": "\033[38;5;169;1m",
    "magenta": "\033[38;5;126;1m",
    "yellow": "\033[38;5;226;1m",
    "orange": "\033[38;2;255;165;1;1m",
    "purple": "\033[38;5;96;1m",
    "docker_blue": "\033[38;5;67;1m",
    "node_green": "\033[38;5;40;1m",
    "reset": "\033[0m",
    "dim": "\033[2m",
    "green": "\033[32m",
    "red": "\033[31m",
}

TAG_COLORS: dict[str, str] = {
    "CMD": "green",
    "ERR": "red",
    "YOU": "cyan",
    "AI": "magenta",
}

APP_DIR_NAME = "modeshell"


# -----------------------
# Config model wrapper
# -----------------------


class YAMLConfig:
    """Simple config wrapper that implements ConfigModel protocol."""

    def __init__(self, config_dict: dict[str, Any]):
        self._config = config_dict
        # Derive prompt branding from modes
        self._branding: dict[str, dict[str, str]] = {}
        for mode_name, mode_cfg in self.modes.items():
            if not isinstance(mode_cfg, dict):
                continue
            self._branding[mode_name] = {
                "color": mode_cfg.get("color") or "reset",
                "caret_color": mode_cfg.get("caret_color") or "reset",
            }

    @property
    def modes(self) -> dict[str, dict[str, Any]]:
        modes = self._config.get("modes", {})
        return modes if isinstance(modes, dict) else {}

    @property
    def search(self) -> dict[str, Any]:
        return self._config.get("search", {}) or {}

    @property
    def messages(self) -> dict[str, str]:
        return self._config.get("messages", {}) or {}

    @property
    def aliases(self) -> dict[str, Any]:
        return self._config.get("aliases", {}) or {}

    @property
    def providers(self) -> dict[str, list[str]]:
        return self._config.get("providers", {}) or {}

    @property
    def branding(self) -> dict[str, dict[str, str]]:
        return self._branding

    @property
    def system(self) -> dict[str, Any]:
        return self._config.get("system", {}) or {}

    @property
    def ui(self) -> dict[str, Any]:
        ui_cfg = self._config.get("ui", {})
        return ui_cfg if isinstance(ui_cfg, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_path(self, path: str, default: Any = None) -> Any:
        """
        Nested lookup using dot-separated path.
        Example: get_path("ui.theme.style", {}) -> dict style mapping
        """
        if not path:
            return default

        cur: Any = self._config
        for part in path.split("."):
            if not isinstance(cur, dict):
                return default
            if part not in cur:
                return default
            cur = cur[part]
        return cur


# -----------------------
# Data root + path helpers
# -----------------------


def get_data_root() -> Path:
    """Get the data root directory for ModeShell.

    Resolution order:
    1. MODESHELL_DATA_HOME environment variable (if set)
    2. ~/.local/share (default, XDG_DATA_HOME is ignored)
    """
    data_home = os.getenv("MODESHELL_DATA_HOME")
    if data_home:
        root = Path(data_home)
    else:
        root = Path.home() / ".local" / "share"

    root.mkdir(parents=True, exist_ok=True)
    return root


def history_db_path(data_root: Path) -> Path:
    """<data_root>/modeshell/history.db"""
    return data_root / APP_DIR_NAME / "history.db"


def settings_path(data_root: Path) -> Path:
    """<data_root>/modeshell/settings.yaml"""
    return data_root / APP_DIR_NAME / "settings.yaml"


def logs_dir(data_root: Path) -> Path:
    """<data_root>/modeshell/logs"""
    return data_root / APP_DIR_NAME / "logs"


# -----------------------
# Packaged defaults loading
# -----------------------


def _defaults_dir() -> Path:
    """Return the installed path to the packaged defaults directory."""
    return Path(
        importlib_resources.files("modeshell.defaults")
    )  # type: ignore[arg-type]


def load_defaults_yaml(filename: str) -> dict[str, Any]:
    """
    Load a YAML file from modeshell/defaults/.
    """
    defaults_dir = _defaults_dir()
    path = defaults_dir / filename
    if not path.exists():
        raise FileNotFoundError(
            f"Missing defaults YAML: {filename} "
            f"(looked in {defaults_dir})"
        )

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(
            f"Defaults YAML {filename} must load to a mapping/dict."
        )
    return data


def load_system_config() -> YAMLConfig:
    """
    Load system.yaml from packaged defaults and return a YAMLConfig wrapper.
    """
    return YAMLConfig(load_defaults_yaml("system.yaml"))


# -----------------------
# Settings file
# -----------------------

DEFAULT_SETTINGS: dict[str, str] = {
    "provider": "Anthropic",
    "model": "claude-haiku-4.5",
    "api_key": "",
}


@dataclass
class Settings:
    """Flat provider/model/api_key record persisted in settings.yaml."""

    provider: str = DEFAULT_SETTINGS["provider"]
    model: str = DEFAULT_SETTINGS["model"]
    api_key: str = DEFAULT_SETTINGS["api_key"]

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    def masked_key(self) -> str:
        if not self.api_key:
            return "(not set)"
        if len(self.api_key) <= 8:
            return "*" * len(self.api_key)
        return f"{self.api_key[:4]}…{self.api_key[-4:]}"


def _settings_from_mapping(data: dict[str, Any]) -> Settings:
    merged = dict(DEFAULT_SETTINGS)
    for key in DEFAULT_SETTINGS:
        value = data.get(key)
        if isinstance(value, str):
            merged[key] = value
    return Settings(**merged)


def ensure_settings_file(path: Path) -> None:
    """Create the settings file with defaults if it does not exist."""
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(DEFAULT_SETTINGS, f, sort_keys=False)


def load_settings(path: Path | None = None) -> Settings:
    """Load settings, creating the file with defaults when absent.

    Stored values are merged over the defaults. An unreadable or corrupt
    file yields the defaults (and a crash log entry).
    """
    if path is None:
        path = settings_path(get_data_root())

    try:
        ensure_settings_file(path)
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        from .crashlog import write_crash_log

        write_crash_log(e, context=f"load_settings path={path}")
        return Settings()

    if not isinstance(data, dict):
        return Settings()
    return _settings_from_mapping(data)


def save_settings(settings: Settings, path: Path | None = None) -> bool:
    """Persist settings. Returns False (and logs) if the write failed."""
    if path is None:
        path = settings_path(get_data_root())

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(settings.to_dict(), f, sort_keys=False)
    except OSError as e:
        from .crashlog import write_crash_log

        write_crash_log(e, context=f"save_settings path={path}")
        return False
    return True
