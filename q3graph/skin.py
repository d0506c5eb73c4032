"""Skin file parser (``surface,shader`` lines)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass
class SkinSurface:
    name: str
    shader_name: str


@dataclass
class Skin:
    surfaces: List[SkinSurface] = field(default_factory=list)


def load(text: str) -> Skin:
    skin = Skin()
    for line in text.splitlines():
        line = line.split("//", 1)[0].strip()
        if "," not in line:
            continue
        surface, shader_name = line.split(",", 1)
        shader_name = shader_name.strip().strip('"')
        # tag_* entries carry no shader
        if not shader_name:
            continue
        skin.surfaces.append(SkinSurface(surface.strip().strip('"'), shader_name))
    return skin
