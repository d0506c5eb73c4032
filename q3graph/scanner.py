"""Project scanning: file listing, per-format extraction and disassembly.

:func:`load_game` walks a content tree once and returns a
:class:`~q3graph.models.GameState` holding one reference map per asset
kind plus the full file listing. Nothing here touches the graph.
"""

from __future__ import annotations

import inspect
import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .config import DISASSEMBLER_COMMAND, QVM_TYPES, SKIP_DIRS, STEPS
from .errors import Q3GraphError
from .extractors import EXTRACTORS, disassembly_path, sorted_unique
from .models import AssetKind, AssetRecord, GameState, ProgressCallback, ProgressStep
from .qvm import disassemble_qvm
from .resolver import FileCorpus, expand_wildcards

logger = logging.getLogger(__name__)

# game entity tables live in the client module; the server module is a fallback
ENTITY_MODULES = ("cgame", "qagame")


async def report_progress(
    progress: Optional[ProgressCallback],
    current: int,
    total: int,
    label: str,
    phase: int = 1,
) -> None:
    """Send one step to *progress*, awaiting it when it returns an awaitable."""
    if progress is None:
        return
    result = progress([ProgressStep(phase, current, total, label)])
    if inspect.isawaitable(result):
        await result


def scan_files(project: Path) -> List[str]:
    """Every file under *project* as a sorted list of absolute posix paths."""
    root = project.resolve()
    files: List[str] = []
    for path in root.rglob("*"):
        rel = path.relative_to(root)
        if any(part in SKIP_DIRS for part in rel.parts[:-1]):
            continue
        if path.is_file():
            files.append(path.as_posix())
    return sorted(files)


def find_types(files: Iterable[str], extensions: Iterable[str]) -> List[str]:
    wanted = {e.lower() for e in extensions}
    return [f for f in files if os.path.splitext(f)[1].lower() in wanted]


def _extract_all(
    kind: AssetKind,
    paths: Iterable[str],
    errors: List[Dict[str, str]],
) -> Dict[str, AssetRecord]:
    """Run one extractor over *paths*; a bad file is logged and skipped."""
    extractor = EXTRACTORS[kind]
    records: Dict[str, AssetRecord] = {}
    for path in paths:
        if not extractor.handles(path):
            continue
        try:
            records[path] = extractor.extract(Path(path))
        except Exception as exc:
            logger.warning("Failed to parse %s: %s", path, exc)
            errors.append({"path": path, "error": str(exc)})
    return records


def ensure_disassembly(qvm_path: Path, command: str = "") -> bool:
    """Disassemble *qvm_path* unless its listing already exists.

    Returns ``True`` when the disassembler ran.
    """
    listing = disassembly_path(qvm_path)
    if listing.exists():
        return False
    logger.info("Disassembling %s", qvm_path.name)
    disassemble_qvm(qvm_path, listing, command)
    return True


def game_entities(qvm_records: Dict[str, AssetRecord]) -> Dict[str, List[str]]:
    """Entity table (class name -> assets) from the cgame or qagame module."""
    for module in ENTITY_MODULES:
        for path, record in qvm_records.items():
            if Path(path).stem.lower() == module and record.definitions:
                return dict(record.definitions)
    return {}


async def load_game(
    project: Path,
    progress: Optional[ProgressCallback] = None,
    disassembler_command: Optional[str] = None,
) -> GameState:
    """Scan *project* and build every reference map.

    Args:
        project:              Root of the content tree (e.g. ``baseq3/``).
        progress:             Optional callback, see :class:`ProgressStep`.
        disassembler_command: External disassembler; the built-in one is
                              used when empty. Defaults to the config value.
    """
    project = Path(project)
    if not project.is_dir():
        raise Q3GraphError(f"Project directory not found: {project}")
    if disassembler_command is None:
        disassembler_command = DISASSEMBLER_COMMAND

    total = len(STEPS)
    await report_progress(progress, 0, total, STEPS["files"])
    everything = scan_files(project)
    errors: List[Dict[str, str]] = []

    await report_progress(progress, 1, total, STEPS["maps"])
    maps = _extract_all(AssetKind.MAP, everything, errors)
    logger.info("Found %d maps", len(maps))

    await report_progress(progress, 2, total, STEPS["models"])
    models = _extract_all(AssetKind.MODEL, everything, errors)
    with_skins = sum(1 for m in models.values() if m.has_skins)
    logger.info("Found %d models, %d with skins", len(models), with_skins)

    await report_progress(progress, 3, total, STEPS["shaders"])
    scripts = _extract_all(AssetKind.SHADER, everything, errors)
    logger.info("Found %d shader scripts", len(scripts))

    await report_progress(progress, 4, total, STEPS["skins"])
    skins = _extract_all(AssetKind.SKIN, everything, errors)
    logger.info("Found %d skins", len(skins))

    await report_progress(progress, 5, total, STEPS["disassemble"])
    qvm_paths = find_types(everything, QVM_TYPES)
    ready: List[str] = []
    for qvm_path in qvm_paths:
        try:
            if ensure_disassembly(Path(qvm_path), disassembler_command):
                listing = disassembly_path(Path(qvm_path)).as_posix()
                if listing not in everything:
                    everything.append(listing)
            ready.append(qvm_path)
        except Exception as exc:
            logger.warning("Failed to disassemble %s: %s", qvm_path, exc)
            errors.append({"path": qvm_path, "error": str(exc)})
    everything.sort()

    await report_progress(progress, 6, total, STEPS["qvms"])
    qvms = _extract_all(AssetKind.BYTECODE, ready, errors)

    await report_progress(progress, 7, total, STEPS["entities"])
    entities = game_entities(qvms)
    logger.info("Found %d game entities", len(entities))

    shader_textures: Dict[str, List[str]] = {}
    for record in scripts.values():
        for name, textures in record.definitions.items():
            shader_textures[name] = sorted_unique(shader_textures.get(name, []) + textures)

    corpus = FileCorpus(everything)
    total += len(qvms)
    qvm_refs: Dict[str, List[str]] = {}
    for index, (path, record) in enumerate(qvms.items()):
        await report_progress(
            progress, 8 + index, total,
            f"Searching for QVM files {Path(path).name} from {len(record.references)} strings",
        )
        qvm_refs[path] = sorted(expand_wildcards(record.references, corpus))

    return GameState(
        entities=entities,
        map_entities={p: r.references for p, r in maps.items()},
        map_classnames={p: r.classnames for p, r in maps.items()},
        maps={p: r.shaders for p, r in maps.items()},
        models={p: r.references for p, r in models.items()},
        scripts={p: r.references for p, r in scripts.items()},
        shaders=shader_textures,
        skins={p: r.references for p, r in skins.items()},
        qvms=qvm_refs,
        everything=everything,
        errors=errors,
    )


def load_base_corpus(source: Path, write_to: Optional[Path] = None) -> FileCorpus:
    """Load the upstream content listing used for ``baseq3`` classification.

    *source* is either a directory, listed recursively and lower-cased, or
    a JSON file holding a list of paths. A directory listing can be saved
    to *write_to* for reuse.
    """
    source = Path(source)
    if source.is_dir():
        paths = [p.lower() for p in scan_files(source)]
        if write_to is not None:
            write_to.parent.mkdir(parents=True, exist_ok=True)
            write_to.write_text(json.dumps(paths, indent=2), encoding="utf-8")
        return FileCorpus(paths)
    if not source.is_file():
        raise Q3GraphError(f"Base corpus not found: {source}")
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise Q3GraphError(f"Base corpus {source} is not valid JSON: {exc}") from exc
    if not isinstance(payload, list) or not all(isinstance(p, str) for p in payload):
        raise Q3GraphError(f"Base corpus {source} must be a JSON list of paths")
    return FileCorpus(p.lower() for p in payload)
