"""Per-format reference extractors.

Each extractor turns one file into an :class:`AssetRecord` holding the raw
reference strings that file points at. Extractors raise
:class:`AssetParseError` for malformed input; isolating those failures is
the scanner's job.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List

from . import bsp, md3, qvm, shader, skin
from .config import DISASSEMBLY_EXT, MAP_TYPES, MODEL_TYPES, QVM_TYPES, SHADER_TYPES, SKIN_TYPES
from .errors import AssetParseError
from .models import AssetKind, AssetRecord

logger = logging.getLogger(__name__)

_MUSIC_SPLIT_RE = re.compile(r"(\.wav)\s+", re.IGNORECASE)


def sorted_unique(values: Iterable[str]) -> List[str]:
    """Drop empty values and duplicates, then sort."""
    return sorted({v for v in values if v})


# ===================================================================
# Abstract Extractor Interface
# ===================================================================

class Extractor(ABC):
    """Parses files of one asset kind into reference records."""

    kind: AssetKind
    extensions: List[str]

    def handles(self, path: str) -> bool:
        return os.path.splitext(path)[1].lower() in self.extensions

    @abstractmethod
    def extract(self, path: Path) -> AssetRecord:
        """Parse *path* and return its outgoing references."""
        ...


# ===================================================================
# Concrete extractors
# ===================================================================

class MapExtractor(Extractor):
    kind = AssetKind.MAP
    extensions = MAP_TYPES

    def extract(self, path: Path) -> AssetRecord:
        level = bsp.load(path.read_bytes(), str(path), lumps=(bsp.LUMP_ENTITIES, bsp.LUMP_SHADERS))
        return AssetRecord(
            kind=self.kind,
            path=str(path),
            references=entity_references(str(path), level.entities),
            shaders=sorted_unique(s.name for s in level.shaders),
            classnames=sorted_unique(e.get("classname", "") for e in level.entities),
        )


def entity_references(map_path: str, entities: List[Dict[str, str]]) -> List[str]:
    """Files and class names a map's entities point at.

    Inline brush models (``*1``) are not files and are dropped. The bot
    navigation file shares the map's base name.
    """
    refs: List[str] = []
    for entity in entities:
        refs.append(entity.get("noise", ""))
        music = _MUSIC_SPLIT_RE.sub(r"\1{SPLIT}", entity.get("music", ""))
        refs.extend(part.strip() for part in music.split("{SPLIT}"))
        refs.append(entity.get("model", ""))
        refs.append(entity.get("model2", ""))
    refs = [r for r in refs if r and not r.startswith("*")]
    refs.append(os.path.splitext(map_path)[0] + ".aas")
    refs.extend(entity.get("classname", "") for entity in entities)
    return sorted_unique(refs)


class ModelExtractor(Extractor):
    kind = AssetKind.MODEL
    extensions = MODEL_TYPES

    def extract(self, path: Path) -> AssetRecord:
        if path.suffix.lower() == ".md5":
            model = md3.load_md5(path.read_text(encoding="utf-8", errors="replace"), str(path))
        else:
            model = md3.load(path.read_bytes(), str(path))
        return AssetRecord(
            kind=self.kind,
            path=str(path),
            references=sorted_unique(s for surface in model.surfaces for s in surface.shaders),
            has_skins=model.num_skins > 0,
        )


class ShaderExtractor(Extractor):
    kind = AssetKind.SHADER
    extensions = SHADER_TYPES

    def extract(self, path: Path) -> AssetRecord:
        definitions = shader.load(path.read_text(encoding="utf-8", errors="replace"), str(path))
        return AssetRecord(
            kind=self.kind,
            path=str(path),
            references=sorted(definitions),
            definitions={
                name: sorted_unique(definition.textures())
                for name, definition in definitions.items()
            },
        )


class SkinExtractor(Extractor):
    kind = AssetKind.SKIN
    extensions = SKIN_TYPES

    def extract(self, path: Path) -> AssetRecord:
        parsed = skin.load(path.read_text(encoding="utf-8", errors="replace"))
        return AssetRecord(
            kind=self.kind,
            path=str(path),
            references=sorted_unique(s.shader_name for s in parsed.surfaces),
        )


class BytecodeExtractor(Extractor):
    """Reads the ``.dis`` listing beside a module, not the module itself.

    ``definitions`` carries the game entity table (class name -> assets).
    """

    kind = AssetKind.BYTECODE
    extensions = QVM_TYPES

    def extract(self, path: Path) -> AssetRecord:
        listing = disassembly_path(path)
        if not listing.exists():
            raise AssetParseError(str(path), f"missing disassembly {listing.name}")
        strings = qvm.extract_strings(listing.read_text(encoding="utf-8", errors="replace"))
        return AssetRecord(
            kind=self.kind,
            path=str(path),
            references=qvm.asset_strings(strings),
            definitions=qvm.game_entities(strings),
        )


def disassembly_path(qvm_path: Path) -> Path:
    return qvm_path.with_suffix(DISASSEMBLY_EXT)


EXTRACTORS: Dict[AssetKind, Extractor] = {
    e.kind: e
    for e in (MapExtractor(), ModelExtractor(), ShaderExtractor(), SkinExtractor(), BytecodeExtractor())
}
