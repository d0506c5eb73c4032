"""Core data models shared by the scanner, resolver and graph assembler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Union

if TYPE_CHECKING:
    from .graph import DirectedGraph

# source path -> ordered, deduplicated raw references
ReferenceMap = Dict[str, List[str]]


class AssetKind(str, Enum):
    MAP = "map"
    MODEL = "model"
    SHADER = "shader"
    SKIN = "skin"
    BYTECODE = "bytecode"


@dataclass
class AssetRecord:
    """Outgoing references extracted from one source file.

    ``references`` is the flat, sorted list used for graph edges. Shader
    scripts also fill ``definitions`` (shader name -> textures), maps fill
    ``shaders`` with the shader lump names and ``classnames`` with the
    entity classes, which also appear in ``references``.
    """

    kind: AssetKind
    path: str
    references: List[str] = field(default_factory=list)
    shaders: List[str] = field(default_factory=list)
    classnames: List[str] = field(default_factory=list)
    definitions: Dict[str, List[str]] = field(default_factory=dict)
    has_skins: bool = False


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    BASE = "baseq3"


@dataclass(frozen=True)
class ResolutionResult:
    reference: str
    status: ResolutionStatus
    path: Optional[str] = None
    type_group: Optional[str] = None
    assumed_image: bool = False

    @property
    def resolved(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED


class ProgressStep(NamedTuple):
    """One progress descriptor: ``(phase, current, total, label)``."""

    phase: int
    current: Union[int, bool]
    total: int
    label: str


ProgressCallback = Callable[[List[ProgressStep]], Optional[Awaitable[None]]]


@dataclass
class GameState:
    """Everything one project scan produces; this is what gets snapshotted."""

    entities: ReferenceMap = field(default_factory=dict)
    map_entities: ReferenceMap = field(default_factory=dict)
    map_classnames: ReferenceMap = field(default_factory=dict)
    maps: ReferenceMap = field(default_factory=dict)
    models: ReferenceMap = field(default_factory=dict)
    scripts: ReferenceMap = field(default_factory=dict)
    shaders: ReferenceMap = field(default_factory=dict)
    skins: ReferenceMap = field(default_factory=dict)
    qvms: ReferenceMap = field(default_factory=dict)
    everything: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    _KEYS = {
        "entities": "entities",
        "map_entities": "mapEntities",
        "map_classnames": "mapClassnames",
        "maps": "maps",
        "models": "models",
        "scripts": "scripts",
        "shaders": "shaders",
        "skins": "skins",
        "qvms": "qvms",
        "everything": "everything",
        "errors": "errors",
    }

    def to_dict(self) -> Dict[str, Any]:
        return {json_key: getattr(self, attr) for attr, json_key in self._KEYS.items()}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "GameState":
        values = {
            attr: payload[json_key]
            for attr, json_key in cls._KEYS.items()
            if json_key in payload
        }
        return cls(**values)


@dataclass
class BuildResult:
    graph: "DirectedGraph"
    not_found: List[str] = field(default_factory=list)
    baseq3: List[str] = field(default_factory=list)
    assumed_image: List[str] = field(default_factory=list)
    unknown_types: List[str] = field(default_factory=list)
