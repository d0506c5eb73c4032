"""Quake III ``IBSP`` level loader.

Only the two lumps that carry references are decoded: the entity string
(lump 0) and the shader table (lump 1).
"""

from __future__ import annotations

import re
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .errors import AssetParseError

BSP_MAGIC = b"IBSP"
BSP_VERSIONS = (46, 47)
NUM_LUMPS = 17

LUMP_ENTITIES = 0
LUMP_SHADERS = 1

SHADER_RECORD = struct.Struct("<64sii")

_ENTITY_TOKEN_RE = re.compile(r'[{}]|"([^"]*)"')


@dataclass
class BspShader:
    name: str
    surface_flags: int
    content_flags: int


@dataclass
class BspMap:
    version: int
    entities: List[Dict[str, str]] = field(default_factory=list)
    shaders: List[BspShader] = field(default_factory=list)


def load(data: bytes, path: str = "<bsp>", lumps: Optional[Sequence[int]] = None) -> BspMap:
    """Decode the requested lumps of a BSP file.

    Args:
        data:  Raw file contents.
        path:  Used in error messages only.
        lumps: Lump indices to decode; defaults to entities and shaders.
    """
    if lumps is None:
        lumps = (LUMP_ENTITIES, LUMP_SHADERS)
    header_size = 8 + NUM_LUMPS * 8
    if len(data) < header_size or data[:4] != BSP_MAGIC:
        raise AssetParseError(path, "not an IBSP file")
    (version,) = struct.unpack_from("<i", data, 4)
    if version not in BSP_VERSIONS:
        raise AssetParseError(path, f"unsupported BSP version {version}")

    directory = [struct.unpack_from("<ii", data, 8 + i * 8) for i in range(NUM_LUMPS)]
    bsp = BspMap(version=version)

    if LUMP_ENTITIES in lumps:
        bsp.entities = parse_entities(_lump(data, directory, LUMP_ENTITIES, path).decode("latin-1"))
    if LUMP_SHADERS in lumps:
        bsp.shaders = _parse_shaders(_lump(data, directory, LUMP_SHADERS, path))
    return bsp


def _lump(data: bytes, directory: List[tuple], index: int, path: str) -> bytes:
    offset, length = directory[index]
    if offset < 0 or length < 0 or offset + length > len(data):
        raise AssetParseError(path, f"lump {index} lies outside the file")
    return data[offset:offset + length]


def _parse_shaders(blob: bytes) -> List[BspShader]:
    shaders: List[BspShader] = []
    for offset in range(0, len(blob) - SHADER_RECORD.size + 1, SHADER_RECORD.size):
        raw_name, surface_flags, content_flags = SHADER_RECORD.unpack_from(blob, offset)
        name = raw_name.split(b"\0", 1)[0].decode("latin-1")
        shaders.append(BspShader(name, surface_flags, content_flags))
    return shaders


def parse_entities(text: str) -> List[Dict[str, str]]:
    """Parse the entity string into one dict per ``{ ... }`` block.

    Repeated keys keep their last value, like the engine's spawn parser.
    """
    entities: List[Dict[str, str]] = []
    current: Optional[Dict[str, str]] = None
    pending_key: Optional[str] = None

    for match in _ENTITY_TOKEN_RE.finditer(text.rstrip("\0")):
        token = match.group(0)
        if token == "{":
            current = {}
            pending_key = None
        elif token == "}":
            if current is not None:
                entities.append(current)
            current = None
        elif current is not None:
            value = match.group(1)
            if pending_key is None:
                pending_key = value
            else:
                current[pending_key] = value
                pending_key = None
    return entities
