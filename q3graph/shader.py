"""Shader script parser.

Parses ``scripts/*.shader`` files into named definitions, keeping only what
points at other files: stage texture maps and sky box faces.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import AssetParseError

SKY_SIDES = ("rt", "bk", "lf", "ft", "up", "dn")

_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_TOKEN_RE = re.compile(r'"([^"]*)"|([{}])|([^\s{}"]+)')


@dataclass
class ShaderStage:
    maps: List[str] = field(default_factory=list)


@dataclass
class ShaderDefinition:
    name: str
    stages: List[ShaderStage] = field(default_factory=list)
    outer_box: List[str] = field(default_factory=list)
    inner_box: List[str] = field(default_factory=list)

    def textures(self) -> List[str]:
        refs = [m for stage in self.stages for m in stage.maps]
        refs.extend(self.outer_box)
        refs.extend(self.inner_box)
        return refs


def _tokenize(text: str) -> List[List[str]]:
    """Split *text* into lines of tokens, comments removed."""
    text = _BLOCK_COMMENT_RE.sub(" ", text)
    text = _LINE_COMMENT_RE.sub("", text)
    lines: List[List[str]] = []
    for line in text.splitlines():
        tokens = [m.group(m.lastindex) for m in _TOKEN_RE.finditer(line)]
        if tokens:
            lines.append(tokens)
    return lines


def _is_image(token: str) -> bool:
    # $lightmap, $whiteimage and *white are engine-internal
    return bool(token) and not token.startswith(("$", "*"))


def _sky_box(name: str) -> List[str]:
    if not name or name == "-":
        return []
    return [f"{name}_{side}" for side in SKY_SIDES]


def load(text: str, path: str = "<shader>") -> Dict[str, ShaderDefinition]:
    """Parse a shader script into ``{shader name: ShaderDefinition}``."""
    shaders: Dict[str, ShaderDefinition] = {}
    current: Optional[ShaderDefinition] = None
    stage: Optional[ShaderStage] = None
    pending_name: Optional[str] = None
    depth = 0

    for tokens in _tokenize(text):
        i = 0
        while i < len(tokens):
            token = tokens[i]
            if token == "{":
                depth += 1
                if depth == 1:
                    if pending_name is None:
                        raise AssetParseError(path, "block opened without a shader name")
                    current = ShaderDefinition(name=pending_name)
                    pending_name = None
                elif depth == 2:
                    stage = ShaderStage()
                    current.stages.append(stage)
                else:
                    raise AssetParseError(path, "blocks nested too deeply")
                i += 1
                continue
            if token == "}":
                depth -= 1
                if depth < 0:
                    raise AssetParseError(path, "unbalanced '}'")
                if depth == 0:
                    shaders[current.name] = current
                    current = None
                stage = None
                i += 1
                continue

            if depth == 0:
                if pending_name is not None:
                    raise AssetParseError(path, f"shader '{pending_name}' has no body")
                pending_name = token
                i += 1
                continue

            # a directive runs to the end of the line or the next brace
            end = i + 1
            while end < len(tokens) and tokens[end] not in ("{", "}"):
                end += 1
            _apply_directive(current, stage, token.lower(), tokens[i + 1:end])
            i = end

    if depth != 0:
        raise AssetParseError(path, "unbalanced '{' at end of file")
    if pending_name is not None:
        raise AssetParseError(path, f"shader '{pending_name}' has no body")
    return shaders


def _apply_directive(
    shader: ShaderDefinition,
    stage: Optional[ShaderStage],
    keyword: str,
    args: List[str],
) -> None:
    if stage is None:
        if keyword == "skyparms":
            shader.outer_box = _sky_box(args[0] if args else "")
            shader.inner_box = _sky_box(args[2] if len(args) > 2 else "")
        return
    if keyword in ("map", "clampmap", "videomap"):
        if args and _is_image(args[0]):
            stage.maps.append(args[0])
    elif keyword == "animmap":
        stage.maps.extend(a for a in args[1:] if _is_image(a))
