"""Configuration paths and asset type tables for q3graph."""

from __future__ import annotations

from typing import Dict, List, Set

from .config_manager import CONFIG_HOME, load_graph_config

BASE_DIR = CONFIG_HOME
MEMORY_DIR = BASE_DIR / "memory"
STATE_FILE = BASE_DIR / "state.json"
SNAPSHOT_NAME = "previous-graph.json"

SKIP_DIRS: Set[str] = {".git", ".svn", ".hg", "__pycache__", ".q3graph"}

# ---------------------------------------------------------------------------
# Extension type groups, checked in this order when disambiguating.
# ---------------------------------------------------------------------------
IMAGE_TYPES: List[str] = [".png", ".jpg", ".jpeg", ".tga", ".gif", ".pcx", ".webp", ".dds", ".bmp"]
AUDIO_TYPES: List[str] = [".wav", ".mp3", ".ogg", ".opus", ".mpga", ".m4a", ".flac"]
SOURCE_TYPES: List[str] = [
    ".map", ".shader", ".skin", ".cfg", ".arena", ".bot", ".txt",
    ".menu", ".defi", ".h", ".c", ".scc",
]
FILE_TYPES: List[str] = [
    ".bsp", ".aas", ".md3", ".md5", ".mdr", ".iqm", ".qvm", ".dis",
    ".dat", ".roq", ".ttf", ".pk3", ".jts",
]

TYPE_GROUPS: Dict[str, List[str]] = {
    "image": IMAGE_TYPES,
    "audio": AUDIO_TYPES,
    "source": SOURCE_TYPES,
    "file": FILE_TYPES,
}
ALL_TYPES: Set[str] = {ext for group in TYPE_GROUPS.values() for ext in group}

MAP_TYPES = [".bsp"]
MODEL_TYPES = [".md3", ".md5"]
SHADER_TYPES = [".shader"]
SKIN_TYPES = [".skin"]
QVM_TYPES = [".qvm"]
DISASSEMBLY_EXT = ".dis"

STEPS: Dict[str, str] = {
    "files": "Scanning all files",
    "maps": "Looking for maps",
    "models": "Looking for models",
    "shaders": "Looking for shaders",
    "skins": "Looking for skins",
    "disassemble": "Disassembling QVMs",
    "qvms": "Looking for QVMs",
    "entities": "Looking for game entities",
    "vertices": "Graphing vertices",
}

PASSTHROUGH_MODES = ("single", "closure")

# [graph] settings from ~/.q3graph/config.toml (set via `q3graph set-base`)
_graph_config = load_graph_config()

BASE_CORPUS = _graph_config.get("base_corpus", "")
PASSTHROUGH = _graph_config.get("passthrough", "closure")
DISASSEMBLER_COMMAND = _graph_config.get("disassembler_command", "")


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    MEMORY_DIR.mkdir(parents=True, exist_ok=True)
    BASE_DIR.mkdir(parents=True, exist_ok=True)
