"""Configuration manager for q3graph using TOML files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import toml

CONFIG_HOME = Path(os.environ.get("Q3GRAPH_HOME", str(Path.home() / ".q3graph"))).expanduser()
CONFIG_FILE = CONFIG_HOME / "config.toml"

DEFAULT_GRAPH_CONFIG: Dict[str, Any] = {
    "base_corpus": "",
    "passthrough": "closure",
    "disassembler_command": "",
}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError):
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w") as f:
            toml.dump(config, f)
        return True
    except OSError:
        return False


def load_graph_config() -> Dict[str, Any]:
    """Load the ``[graph]`` section merged over the defaults.

    Returns:
        Dict with ``base_corpus``, ``passthrough`` and
        ``disassembler_command`` keys.
    """
    merged = DEFAULT_GRAPH_CONFIG.copy()
    merged.update(load_full_config().get("graph", {}))
    return merged


def save_graph_config(**values: Any) -> bool:
    """Update keys of the ``[graph]`` section.

    Other sections in the file are preserved. Keys whose value is ``None``
    are left untouched.

    Returns:
        True if saved successfully, False otherwise
    """
    config = load_full_config()
    section = config.setdefault("graph", {})
    for key, value in values.items():
        if value is not None:
            section[key] = value
    return _save_full_config(config)
