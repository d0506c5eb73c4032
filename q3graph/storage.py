"""Persistence for project memories.

Each project gets a directory under ``MEMORY_DIR`` holding:

- ``previous-graph.json``: the game-state snapshot, so a graph can be
  rebuilt without rescanning.
- ``project.json``: metadata (source path, base corpus, build time).
- ``graph.db``: SQLite copy of the last built graph for queries and
  export.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import MEMORY_DIR, SNAPSHOT_NAME, STATE_FILE, ensure_base_dirs
from .errors import SnapshotError
from .models import BuildResult, GameState

logger = logging.getLogger(__name__)

DIAGNOSTIC_CATEGORIES = ("not_found", "baseq3", "assumed_image", "unknown_types")


# ===================================================================
# ProjectManager
# ===================================================================

class ProjectManager:
    """Manage project memory directories and active project state."""

    def __init__(self) -> None:
        ensure_base_dirs()

    def list_projects(self) -> List[str]:
        if not MEMORY_DIR.exists():
            return []
        return sorted([p.name for p in MEMORY_DIR.iterdir() if p.is_dir()])

    def project_dir(self, project_name: str) -> Path:
        return MEMORY_DIR / project_name

    def create_or_get_project(self, project_name: str) -> Path:
        path = self.project_dir(project_name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def set_current_project(self, project_name: str) -> None:
        ensure_base_dirs()
        STATE_FILE.write_text(
            json.dumps({"current_project": project_name}, indent=2),
            encoding="utf-8",
        )

    def get_current_project(self) -> Optional[str]:
        if not STATE_FILE.exists():
            return None
        try:
            payload = json.loads(STATE_FILE.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return None
        return payload.get("current_project")

    def unload_project(self) -> None:
        ensure_base_dirs()
        STATE_FILE.write_text(
            json.dumps({"current_project": None}, indent=2),
            encoding="utf-8",
        )

    def delete_project(self, project_name: str) -> bool:
        path = self.project_dir(project_name)
        if not path.exists():
            return False
        for child in sorted(path.glob("**/*"), reverse=True):
            if child.is_file():
                child.unlink()
            elif child.is_dir():
                child.rmdir()
        path.rmdir()
        if self.get_current_project() == project_name:
            self.unload_project()
        return True

    def snapshot_path(self, project_name: str) -> Path:
        return self.project_dir(project_name) / SNAPSHOT_NAME


# ===================================================================
# Snapshot (game state cache)
# ===================================================================

def save_snapshot(state: GameState, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
    logger.info("Game graph written to \"%s\"", path)


def load_snapshot(path: Path) -> GameState:
    """Read a snapshot written by :func:`save_snapshot`.

    Raises:
        SnapshotError: the file is missing, not JSON, or lacks the file
            listing.
    """
    if not path.exists():
        raise SnapshotError(f"No snapshot at {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Snapshot {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("everything"), list):
        raise SnapshotError(f"Snapshot {path} has no file listing")
    return GameState.from_dict(payload)


# ===================================================================
# GraphStore  (SQLite)
# ===================================================================

class GraphStore:
    """SQLite copy of the last graph built for a project."""

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir
        self.db_path = project_dir / "graph.db"
        self.meta_path = project_dir / "project.json"
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS vertices (
                vertex_id TEXT PRIMARY KEY,
                kind      TEXT NOT NULL,
                name      TEXT NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS edges (
                src       TEXT NOT NULL,
                dst       TEXT NOT NULL,
                edge_type TEXT NOT NULL,
                via       TEXT
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS diagnostics (
                category  TEXT NOT NULL,
                reference TEXT NOT NULL
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_edges_src ON edges(src)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_edges_dst ON edges(dst)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_vertices_name ON vertices(name)")
        self.conn.commit()

    # ------------------------------------------------------------------
    # Clear / metadata
    # ------------------------------------------------------------------

    def clear(self) -> None:
        cur = self.conn.cursor()
        cur.execute("DELETE FROM edges")
        cur.execute("DELETE FROM vertices")
        cur.execute("DELETE FROM diagnostics")
        self.conn.commit()

    def set_metadata(self, payload: Dict[str, Any]) -> None:
        self.meta_path.write_text(
            json.dumps(payload, indent=2), encoding="utf-8",
        )

    def get_metadata(self) -> Dict[str, Any]:
        if not self.meta_path.exists():
            return {}
        try:
            return json.loads(self.meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    def save_build(self, result: BuildResult) -> None:
        """Replace the stored graph and diagnostics with *result*."""
        self.clear()
        cur = self.conn.cursor()
        cur.executemany(
            "INSERT OR REPLACE INTO vertices (vertex_id, kind, name) VALUES (?, ?, ?)",
            [(v.id, v.kind, v.name) for v in result.graph.vertices],
        )
        cur.executemany(
            "INSERT INTO edges (src, dst, edge_type, via) VALUES (?, ?, ?, ?)",
            [(e.source.id, e.target.id, e.edge_type, e.via) for e in result.graph.edges],
        )
        cur.executemany(
            "INSERT INTO diagnostics (category, reference) VALUES (?, ?)",
            [
                (category, reference)
                for category in DIAGNOSTIC_CATEGORIES
                for reference in getattr(result, category)
            ],
        )
        self.conn.commit()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_vertices(self) -> List[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM vertices ORDER BY vertex_id").fetchall()

    def get_vertex(self, id_or_name: str) -> Optional[sqlite3.Row]:
        """Look a vertex up by id, then name, then id suffix."""
        row = self.conn.execute(
            "SELECT * FROM vertices WHERE vertex_id = ? OR name = ? "
            "ORDER BY vertex_id = ? DESC LIMIT 1",
            (id_or_name, id_or_name, id_or_name),
        ).fetchone()
        if row is not None:
            return row
        return self.conn.execute(
            "SELECT * FROM vertices WHERE vertex_id LIKE ? ORDER BY vertex_id LIMIT 1",
            ("%" + id_or_name,),
        ).fetchone()

    def get_edges(self) -> List[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM edges").fetchall()

    def neighbors(self, src_id: str) -> List[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM edges WHERE src = ? ORDER BY dst", (src_id,),
        ).fetchall()

    def reverse_neighbors(self, dst_id: str) -> List[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM edges WHERE dst = ? ORDER BY src", (dst_id,),
        ).fetchall()

    def get_diagnostics(self, category: Optional[str] = None) -> Dict[str, List[str]]:
        categories = (category,) if category else DIAGNOSTIC_CATEGORIES
        out: Dict[str, List[str]] = {}
        for name in categories:
            rows = self.conn.execute(
                "SELECT reference FROM diagnostics WHERE category = ? ORDER BY rowid",
                (name,),
            ).fetchall()
            out[name] = [r["reference"] for r in rows]
        return out
