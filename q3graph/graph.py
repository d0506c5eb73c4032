"""Directed dependency graph of game assets.

Vertices are keyed by id: an absolute file path, a logical shader name or
a game entity class name. Edges point from the referencing asset to the
referenced one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

VERTEX_FILE = "file"
VERTEX_SHADER = "shader"
VERTEX_ENTITY = "entity"

EDGE_REFERENCE = "references"
EDGE_PASSTHROUGH = "passthrough"


@dataclass(eq=False)
class Edge:
    source: "Vertex"
    target: "Vertex"
    edge_type: str = EDGE_REFERENCE
    # shader the edge was copied through, for pass-through edges
    via: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return self.source.id, self.target.id


@dataclass(eq=False)
class Vertex:
    id: str
    name: str
    kind: str = VERTEX_FILE
    in_edges: List[Edge] = field(default_factory=list, repr=False)
    out_edges: List[Edge] = field(default_factory=list, repr=False)

    @property
    def is_shader(self) -> bool:
        return self.kind == VERTEX_SHADER

    def targets(self) -> List["Vertex"]:
        return [e.target for e in self.out_edges]

    def sources(self) -> List["Vertex"]:
        return [e.source for e in self.in_edges]


class DirectedGraph:
    """Insertion-ordered graph with get-or-add vertices and unique edges."""

    def __init__(self) -> None:
        self._vertices: Dict[str, Vertex] = {}
        self._edges: Dict[Tuple[str, str], Edge] = {}

    def __len__(self) -> int:
        return len(self._vertices)

    def __contains__(self, vertex_id: object) -> bool:
        return vertex_id in self._vertices

    @property
    def vertices(self) -> List[Vertex]:
        return list(self._vertices.values())

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def iter_edges(self) -> Iterator[Edge]:
        return iter(list(self._edges.values()))

    def add_vertex(self, vertex_id: str, name: Optional[str] = None, kind: str = VERTEX_FILE) -> Vertex:
        """Return the vertex for *vertex_id*, creating it on first request.

        A shader request upgrades an existing file vertex of the same id,
        since shader names and texture paths share one namespace.
        """
        vertex = self._vertices.get(vertex_id)
        if vertex is None:
            vertex = Vertex(id=vertex_id, name=name or vertex_id, kind=kind)
            self._vertices[vertex_id] = vertex
        elif kind == VERTEX_SHADER and vertex.kind == VERTEX_FILE:
            vertex.kind = VERTEX_SHADER
        return vertex

    def get_vertex(self, vertex_id: str) -> Optional[Vertex]:
        return self._vertices.get(vertex_id)

    def has_edge(self, source_id: str, target_id: str) -> bool:
        return (source_id, target_id) in self._edges

    def add_edge(
        self,
        source: Vertex,
        target: Vertex,
        edge_type: str = EDGE_REFERENCE,
        via: Optional[str] = None,
    ) -> Optional[Edge]:
        """Connect *source* to *target*.

        Returns the new edge, or ``None`` when the pair is already
        connected or both ends are the same vertex.
        """
        if source is target or (source.id, target.id) in self._edges:
            return None
        edge = Edge(source, target, edge_type, via)
        self._edges[edge.key] = edge
        source.out_edges.append(edge)
        target.in_edges.append(edge)
        return edge

    def edge_pairs(self) -> List[Tuple[str, str]]:
        return sorted(self._edges)

    def to_dict(self) -> Dict[str, List[dict]]:
        return {
            "vertices": [
                {"id": v.id, "name": v.name, "kind": v.kind}
                for v in self._vertices.values()
            ],
            "edges": [
                {"src": e.source.id, "dst": e.target.id, "edge_type": e.edge_type, "via": e.via}
                for e in self._edges.values()
            ],
        }
