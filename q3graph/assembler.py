"""Graph assembly from scanned reference maps.

Every distinct reference token is resolved once, either to a file in the
corpus or to a shader defined in a script. Edges are then laid down kind
by kind and shader dependencies are passed through to whatever uses the
shader.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional

from .config import ALL_TYPES, PASSTHROUGH, PASSTHROUGH_MODES, STEPS
from .graph import (
    EDGE_PASSTHROUGH,
    VERTEX_ENTITY,
    VERTEX_FILE,
    VERTEX_SHADER,
    DirectedGraph,
    Vertex,
)
from .models import BuildResult, GameState, ProgressCallback, ResolutionStatus
from .resolver import FileCorpus, ReferenceResolver
from .scanner import load_game, report_progress

logger = logging.getLogger(__name__)


class _Target(NamedTuple):
    id: str
    kind: str


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return out


def _flatten(reference_map: Dict[str, List[str]]) -> List[str]:
    return [ref for refs in reference_map.values() for ref in refs]


class GraphAssembler:
    """Build a :class:`DirectedGraph` from one :class:`GameState`.

    Args:
        state:       Reference maps and file listing from a scan or snapshot.
        base:        Upstream listing for ``baseq3`` classification.
        passthrough: ``"closure"`` (fixed point) or ``"single"`` (copy the
                     shader's current targets as each edge is added).
    """

    def __init__(
        self,
        state: GameState,
        base: Optional[FileCorpus] = None,
        passthrough: str = "closure",
    ) -> None:
        if passthrough not in PASSTHROUGH_MODES:
            raise ValueError(
                f"Unknown pass-through mode '{passthrough}'. "
                f"Choose from: {', '.join(PASSTHROUGH_MODES)}"
            )
        self.state = state
        self.passthrough = passthrough
        self.corpus = FileCorpus(state.everything)
        self.resolver = ReferenceResolver(self.corpus, base)
        self.graph = DirectedGraph()

        self.file_lookup: Dict[str, _Target] = {}
        self.shader_lookup: Dict[str, _Target] = {}
        self.not_found: List[str] = []
        self.baseq3: List[str] = []
        self.assumed_image: List[str] = []

        # lower-cased shader name -> name as first defined
        self.shader_names: Dict[str, str] = {}
        for name in _flatten(state.scripts):
            self.shader_names.setdefault(name.lower(), name)

        # entity class names never resolve as files
        self.classnames = set(state.entities).union(*state.map_classnames.values())

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def file_candidates(self) -> List[str]:
        s = self.state
        return _unique(
            _flatten(s.map_entities)
            + list(s.qvms)
            + list(s.maps)
            + list(s.scripts)
            + list(s.models)
            + list(s.skins)
            + _flatten(s.shaders)
            + _flatten(s.qvms)
        )

    def shader_candidates(self) -> List[str]:
        s = self.state
        return _unique(
            _flatten(s.entities)
            + _flatten(s.maps)
            + _flatten(s.models)
            + _flatten(s.scripts)
            + _flatten(s.skins)
            + _flatten(s.qvms)
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve_file(self, reference: str) -> Optional[_Target]:
        try:
            result = self.resolver.resolve(reference)
        except ValueError:
            logger.debug("Skipping empty reference %r", reference)
            return None
        if result.status is ResolutionStatus.BASE:
            self.baseq3.append(reference)
            return None
        if result.status is ResolutionStatus.NOT_FOUND:
            self.not_found.append(reference)
            return None
        if result.assumed_image:
            self.assumed_image.append(reference)
        return _Target(result.path, VERTEX_FILE)

    def resolve_all(self) -> None:
        """Fill both lookup tables; ambiguous references propagate.

        Entity class names are not files; they are settled in
        :meth:`link_all` once the entity vertices exist.
        """
        for reference in self.file_candidates():
            if reference in self.classnames:
                continue
            target = self._resolve_file(reference)
            if target is not None:
                self.file_lookup[reference] = target

        for reference in self.shader_candidates():
            name = self.shader_names.get(reference.lower())
            if name is not None:
                self.shader_lookup[reference] = _Target(name, VERTEX_SHADER)
                continue
            target = self.file_lookup.get(reference) or self._resolve_file(reference)
            if target is not None:
                self.shader_lookup[reference] = target

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def _vertex(self, target: _Target) -> Vertex:
        if target.kind == VERTEX_FILE:
            return self.graph.add_vertex(target.id, os.path.basename(target.id), VERTEX_FILE)
        return self.graph.add_vertex(target.id, target.id, target.kind)

    def _add_edge(self, source: Vertex, target: Vertex) -> None:
        edge = self.graph.add_edge(source, target)
        if edge is None or self.passthrough != "single" or not target.is_shader:
            return
        for onward in list(target.targets()):
            self.graph.add_edge(source, onward, EDGE_PASSTHROUGH, via=target.id)

    def _link(
        self,
        source: _Target,
        references: Iterable[str],
        files: bool = False,
        shaders: bool = False,
    ) -> Optional[Vertex]:
        """Connect *source* to every resolved reference.

        The source vertex only exists once something it names resolved.
        """
        targets: List[_Target] = []
        for ref in references:
            if files and ref in self.file_lookup:
                targets.append(self.file_lookup[ref])
            if shaders and ref in self.shader_lookup:
                targets.append(self.shader_lookup[ref])
        if not targets:
            return None
        vertex = self._vertex(source)
        for target in targets:
            self._add_edge(vertex, self._vertex(target))
        return vertex

    def link_all(self) -> None:
        s = self.state
        for classname, refs in s.entities.items():
            if self._link(_Target(classname, VERTEX_ENTITY), refs, shaders=True) is not None:
                # maps name entities by class name
                self.file_lookup[classname] = _Target(classname, VERTEX_ENTITY)
        for classnames in s.map_classnames.values():
            self.not_found.extend(c for c in classnames if c not in self.file_lookup)
        for path, refs in s.map_entities.items():
            self._link(_Target(path, VERTEX_FILE), refs, files=True)
        for name, textures in s.shaders.items():
            shader = self.shader_lookup.get(name)
            if shader is not None and shader.kind == VERTEX_SHADER:
                self._link(shader, textures, files=True)
        for path, names in s.scripts.items():
            self._link(_Target(path, VERTEX_FILE), names, shaders=True)
        for reference_map in (s.maps, s.models, s.skins):
            for path, refs in reference_map.items():
                self._link(_Target(path, VERTEX_FILE), refs, shaders=True)
        for path, refs in s.qvms.items():
            self._link(_Target(path, VERTEX_FILE), refs, files=True, shaders=True)

    def expand_closure(self) -> int:
        """Pass shader dependencies through until nothing new appears.

        For every edge ``X -> Y`` where ``Y`` is a shader, or where
        ``Y -> Z`` was itself passed through, ``X -> Z`` is added.
        Returns the number of edges added.
        """
        added = 0
        changed = True
        while changed:
            changed = False
            for edge in self.graph.iter_edges():
                middle = edge.target
                for onward in list(middle.out_edges):
                    if not (middle.is_shader or onward.edge_type == EDGE_PASSTHROUGH):
                        continue
                    via = middle.id if middle.is_shader else onward.via
                    if self.graph.add_edge(edge.source, onward.target, EDGE_PASSTHROUGH, via) is not None:
                        added += 1
                        changed = True
        return added

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def unknown_types(self) -> List[str]:
        extensions = (os.path.splitext(path)[1].lower() for path in self.state.everything)
        return _unique(ext for ext in extensions if ext and ext not in ALL_TYPES)

    def build(self) -> BuildResult:
        self.resolve_all()
        self.link_all()
        return self.finish()

    def finish(self) -> BuildResult:
        """Run closure expansion if enabled and collect the diagnostics."""
        if self.passthrough == "closure":
            added = self.expand_closure()
            logger.debug("Pass-through closure added %d edges", added)
        logger.info(
            "Graph built: %d vertices, %d edges, %d not found, %d in base",
            len(self.graph), len(self.graph.edges), len(set(self.not_found)), len(set(self.baseq3)),
        )
        return BuildResult(
            graph=self.graph,
            not_found=_unique(self.not_found),
            baseq3=_unique(self.baseq3),
            assumed_image=_unique(self.assumed_image),
            unknown_types=self.unknown_types(),
        )


async def graph_game(
    state: Optional[GameState] = None,
    project: Optional[Path] = None,
    progress: Optional[ProgressCallback] = None,
    base: Optional[FileCorpus] = None,
    passthrough: Optional[str] = None,
) -> BuildResult:
    """Assemble the graph, scanning *project* first when no state is given."""
    if state is None:
        if project is None:
            raise ValueError("graph_game needs either a game state or a project path")
        state = await load_game(project, progress)

    assembler = GraphAssembler(state, base, passthrough or PASSTHROUGH)
    total = len(STEPS) + len(state.qvms)
    current = len(STEPS) - 1 + len(state.qvms)
    await report_progress(
        progress, current, total,
        f"Graphing {len(assembler.file_candidates())} vertices",
    )
    assembler.resolve_all()
    await report_progress(
        progress, total, total,
        f"Graphing {len(assembler.shader_candidates())} shaders",
    )
    assembler.link_all()
    return assembler.finish()
