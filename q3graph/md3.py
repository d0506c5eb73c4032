"""Model loaders: binary MD3 and text MD5 meshes.

Only surface shader names and the skin count are decoded; vertices,
frames and tags are skipped by offset.
"""

from __future__ import annotations

import re
import struct
from dataclasses import dataclass, field
from typing import List

from .errors import AssetParseError

MD3_MAGIC = b"IDP3"
MD3_VERSION = 15

# ident, version, name[64], flags, numFrames, numTags, numSurfaces, numSkins,
# ofsFrames, ofsTags, ofsSurfaces, ofsEnd
MD3_HEADER = struct.Struct("<4si64siiiiiiiii")
# ident, name[64], flags, numFrames, numShaders, numVerts, numTriangles,
# ofsTriangles, ofsShaders, ofsSt, ofsXyzNormals, ofsEnd
MD3_SURFACE = struct.Struct("<4s64siiiiiiiiii")
MD3_SHADER = struct.Struct("<64si")

_MD5_SHADER_RE = re.compile(r'^\s*shader\s+"([^"]*)"', re.MULTILINE | re.IGNORECASE)


@dataclass
class Surface:
    name: str
    shaders: List[str] = field(default_factory=list)


@dataclass
class Model:
    name: str
    surfaces: List[Surface] = field(default_factory=list)
    num_skins: int = 0


def _cstr(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("latin-1")


def load(data: bytes, path: str = "<md3>") -> Model:
    if len(data) < MD3_HEADER.size or data[:4] != MD3_MAGIC:
        raise AssetParseError(path, "not an MD3 file")
    (
        _ident, version, raw_name, _flags, _num_frames, _num_tags,
        num_surfaces, num_skins, _ofs_frames, _ofs_tags, ofs_surfaces, ofs_end,
    ) = MD3_HEADER.unpack_from(data, 0)
    if version != MD3_VERSION:
        raise AssetParseError(path, f"unsupported MD3 version {version}")
    if num_surfaces < 0 or ofs_end > len(data):
        raise AssetParseError(path, "header points past end of file")

    model = Model(name=_cstr(raw_name), num_skins=num_skins)
    offset = ofs_surfaces
    for index in range(num_surfaces):
        if offset < 0 or offset + MD3_SURFACE.size > len(data):
            raise AssetParseError(path, f"surface {index} lies outside the file")
        (
            ident, surf_name, _flags, _frames, num_shaders, _verts, _tris,
            _ofs_tris, ofs_shaders, _ofs_st, _ofs_xyz, surf_end,
        ) = MD3_SURFACE.unpack_from(data, offset)
        if ident != MD3_MAGIC:
            raise AssetParseError(path, f"bad surface ident at offset {offset}")
        if surf_end <= 0:
            raise AssetParseError(path, f"surface {index} has no length")

        surface = Surface(name=_cstr(surf_name))
        base = offset + ofs_shaders
        if base < 0 or base + num_shaders * MD3_SHADER.size > len(data):
            raise AssetParseError(path, f"shaders of surface {index} lie outside the file")
        for i in range(num_shaders):
            raw_shader, _index = MD3_SHADER.unpack_from(data, base + i * MD3_SHADER.size)
            surface.shaders.append(_cstr(raw_shader))
        model.surfaces.append(surface)
        offset += surf_end
    return model


def load_md5(text: str, path: str = "<md5>") -> Model:
    """Collect ``shader`` statements of an MD5 mesh, one surface per mesh."""
    if "MD5Version" not in text:
        raise AssetParseError(path, "not an MD5 mesh")
    model = Model(name=path)
    for i, shader in enumerate(_MD5_SHADER_RE.findall(text)):
        model.surfaces.append(Surface(name=f"mesh{i}", shaders=[shader]))
    return model
