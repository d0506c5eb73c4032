"""Typer-based CLI for building and querying Quake III asset graphs."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Set

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from . import __version__, config
from .assembler import GraphAssembler
from .config_manager import save_graph_config
from .errors import AmbiguousReferenceError, Q3GraphError
from .graph_export import export_dot, export_html
from .models import BuildResult, GameState, ProgressStep
from .resolver import FileCorpus, ReferenceResolver
from .scanner import load_base_corpus, load_game
from .storage import DIAGNOSTIC_CATEGORIES, GraphStore, ProjectManager, load_snapshot, save_snapshot

console = Console()

app = typer.Typer(
    help="Quake III asset dependency graphs: maps, models, shaders, skins and QVMs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

BASE_LIST_NAME = "base-filelist.json"


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"q3graph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log scan details."),
):
    """q3graph: map every reference in a game content tree."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


# ===================================================================
# Helpers
# ===================================================================

def _project_name_from_path(project_path: Path) -> str:
    return project_path.resolve().name.replace(" ", "_")


def _current_project_dir(pm: ProjectManager) -> Path:
    project = pm.get_current_project()
    if not project:
        raise typer.BadParameter("No project loaded. Use 'q3graph load-project <name>' or run 'q3graph scan <path>'.")
    project_dir = pm.project_dir(project)
    if not project_dir.exists():
        raise typer.BadParameter(f"Loaded project '{project}' does not exist in memory.")
    return project_dir


def _check_passthrough(mode: Optional[str]) -> str:
    mode = (mode or config.PASSTHROUGH).lower()
    if mode not in config.PASSTHROUGH_MODES:
        raise typer.BadParameter(f"Pass-through mode must be one of: {', '.join(config.PASSTHROUGH_MODES)}")
    return mode


def _load_base(base: Optional[str], project_dir: Path) -> Optional[FileCorpus]:
    if not base:
        return None
    try:
        return load_base_corpus(Path(base), write_to=project_dir / BASE_LIST_NAME)
    except Q3GraphError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _load_base_list(project_dir: Path) -> Optional[FileCorpus]:
    """The base listing cached by `scan --base`, if any."""
    base_list = project_dir / BASE_LIST_NAME
    if not base_list.exists():
        return None
    try:
        return load_base_corpus(base_list)
    except Q3GraphError as exc:
        console.print(f"[red]✗[/red] {exc}")
        console.print("Run 'q3graph scan' again with --base to rebuild the listing.")
        raise typer.Exit(code=1)


def _load_state(project_dir: Path) -> GameState:
    try:
        return load_snapshot(project_dir / config.SNAPSHOT_NAME)
    except Q3GraphError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=1)


def _assemble(state: GameState, base: Optional[FileCorpus], mode: str) -> BuildResult:
    try:
        return GraphAssembler(state, base, mode).build()
    except AmbiguousReferenceError as exc:
        console.print(f"[red]✗ Build failed:[/red] {exc}")
        for candidate in exc.candidates:
            console.print(f"   - {candidate}")
        console.print("Rename or remove one of the candidates and rebuild.")
        raise typer.Exit(code=1)


def _store_build(project_dir: Path, result: BuildResult, **metadata) -> None:
    store = GraphStore(project_dir)
    store.save_build(result)
    store.set_metadata({
        **store.get_metadata(),
        **metadata,
        "built_at": datetime.now().isoformat(),
    })
    store.close()


def _print_summary(result: BuildResult) -> None:
    typer.echo(f"Vertices: {len(result.graph)} | Edges: {len(result.graph.edges)}")
    typer.echo(
        f"Not found: {len(result.not_found)} | In base: {len(result.baseq3)} "
        f"| Assumed images: {len(result.assumed_image)}"
    )
    if result.unknown_types:
        typer.echo(f"Unknown file types: {', '.join(result.unknown_types)}")


# ===================================================================
# Scanning and building
# ===================================================================

@app.command("scan")
def scan(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Root of the content tree."),
    project_name: Optional[str] = typer.Option(None, "--name", "-n", help="Explicit memory name for project."),
    base: Optional[str] = typer.Option(None, "--base", "-b", help="Base content directory or JSON file list."),
    passthrough: Optional[str] = typer.Option(None, "--passthrough", help="Pass-through mode: closure or single."),
):
    """Scan a content tree, snapshot it and build its asset graph."""
    mode = _check_passthrough(passthrough)
    pm = ProjectManager()
    resolved_path = project_path.resolve()
    name = project_name or _project_name_from_path(resolved_path)
    project_dir = pm.create_or_get_project(name)
    base = base or config.BASE_CORPUS
    base_corpus = _load_base(base, project_dir)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Scanning...", total=len(config.STEPS))

        def on_progress(steps: List[ProgressStep]) -> None:
            for step in steps:
                if step.phase == 1:
                    progress.update(task, completed=int(step.current), total=step.total, description=step.label)

        state = asyncio.run(load_game(resolved_path, on_progress))

    save_snapshot(state, pm.snapshot_path(name))
    for failure in state.errors:
        console.print(f"[yellow]⚠[/yellow] {failure['path']}: {failure['error']}")

    result = _assemble(state, base_corpus, mode)
    _store_build(
        project_dir, result,
        project_name=name,
        source_path=str(resolved_path),
        base_corpus=base or "",
        passthrough=mode,
    )
    pm.set_current_project(name)

    typer.echo(f"Scanned '{resolved_path}' as project '{name}'.")
    _print_summary(result)


@app.command("build")
def build(
    passthrough: Optional[str] = typer.Option(None, "--passthrough", help="Pass-through mode: closure or single."),
):
    """Rebuild the current project's graph from its snapshot, without rescanning."""
    pm = ProjectManager()
    project_dir = _current_project_dir(pm)
    state = _load_state(project_dir)

    store = GraphStore(project_dir)
    metadata = store.get_metadata()
    store.close()
    mode = _check_passthrough(passthrough or metadata.get("passthrough"))

    base_corpus = _load_base_list(project_dir)
    if base_corpus is None and metadata.get("base_corpus"):
        base_corpus = _load_base(metadata["base_corpus"], project_dir)

    result = _assemble(state, base_corpus, mode)
    _store_build(project_dir, result, passthrough=mode)
    typer.echo(f"Rebuilt graph for '{project_dir.name}'.")
    _print_summary(result)


# ===================================================================
# Queries
# ===================================================================

@app.command("resolve")
def resolve(reference: str = typer.Argument(..., help="Raw reference as written in an asset.")):
    """Show what a raw reference resolves to in the current project."""
    pm = ProjectManager()
    project_dir = _current_project_dir(pm)
    state = _load_state(project_dir)
    base_corpus = _load_base_list(project_dir)

    resolver = ReferenceResolver(FileCorpus(state.everything), base_corpus)
    try:
        result = resolver.resolve(reference)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except AmbiguousReferenceError as exc:
        console.print(f"[red]✗[/red] {exc}")
        for candidate in exc.candidates:
            console.print(f"   - {candidate}")
        raise typer.Exit(code=1)

    typer.echo(f"{reference}: {result.status.value}")
    if result.path:
        typer.echo(f"  -> {result.path}")
    if result.assumed_image:
        typer.echo("  (no extension; assumed image)")


def _walk(store: GraphStore, vertex_id: str, depth: int, prefix: str, seen: Set[str], lines: List[str]) -> None:
    if depth <= 0:
        return
    for edge in store.neighbors(vertex_id):
        marker = " (via {})".format(edge["via"]) if edge["via"] else ""
        lines.append(f"{prefix}-> {edge['dst']}{marker}")
        if edge["dst"] not in seen:
            seen.add(edge["dst"])
            _walk(store, edge["dst"], depth - 1, prefix + "   ", seen, lines)


@app.command("graph")
def graph(
    vertex: str = typer.Argument(..., help="Vertex id, name or path suffix."),
    depth: int = typer.Option(1, min=1, max=6, help="Traversal depth."),
):
    """Show what a vertex depends on and what refers to it."""
    pm = ProjectManager()
    store = GraphStore(_current_project_dir(pm))
    row = store.get_vertex(vertex)
    if row is None:
        store.close()
        typer.echo(f"❌ Vertex '{vertex}' not found in current project.", err=True)
        raise typer.Exit(code=1)

    lines = [f"{row['vertex_id']} [{row['kind']}]"]
    _walk(store, row["vertex_id"], depth, "  ", {row["vertex_id"]}, lines)
    referrers = store.reverse_neighbors(row["vertex_id"])
    if referrers:
        lines.append("Referenced by:")
        lines.extend(f"  <- {edge['src']}" for edge in referrers)
    typer.echo("\n".join(lines))
    store.close()


@app.command("missing")
def missing(
    category: Optional[str] = typer.Option(
        None, "--category", "-c",
        help=f"One of: {', '.join(DIAGNOSTIC_CATEGORIES)}.",
    ),
):
    """List unresolved, base-content and assumed-image references."""
    if category and category not in DIAGNOSTIC_CATEGORIES:
        raise typer.BadParameter(f"Category must be one of: {', '.join(DIAGNOSTIC_CATEGORIES)}")
    pm = ProjectManager()
    store = GraphStore(_current_project_dir(pm))
    diagnostics: Dict[str, List[str]] = store.get_diagnostics(category)
    store.close()

    for name, references in diagnostics.items():
        typer.echo(f"{name} ({len(references)}):")
        for reference in references:
            typer.echo(f"  {reference}")


@app.command("export-graph")
def export_graph(
    focus: str = typer.Argument("", help="Optional focus vertex to export a local subgraph."),
    fmt: str = typer.Option("html", "--format", "-f", help="Export format: html or dot."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
):
    """Export graph to standalone HTML or Graphviz DOT."""
    fmt = fmt.lower()
    if fmt not in {"html", "dot"}:
        raise typer.BadParameter("Format must be one of: html, dot")

    pm = ProjectManager()
    store = GraphStore(_current_project_dir(pm))
    current = pm.get_current_project() or "project"

    if output is None:
        output = Path.cwd() / f"{current}_graph.{fmt}"

    if fmt == "html":
        export_html(store, output, focus=focus)
    else:
        export_dot(store, output, focus=focus)

    typer.echo(f"Exported graph to {output}")
    store.close()


# ===================================================================
# Project memories
# ===================================================================

@app.command("list-projects")
def list_projects():
    """List all persisted project memories."""
    pm = ProjectManager()
    projects = pm.list_projects()
    current = pm.get_current_project()

    if not projects:
        typer.echo("No projects scanned yet.")
        raise typer.Exit(code=0)

    for p in projects:
        marker = "*" if p == current else " "
        typer.echo(f"{marker} {p}")


@app.command("load-project")
def load_project(project_name: str = typer.Argument(..., help="Name of project memory to load.")):
    """Switch active project memory."""
    pm = ProjectManager()
    if project_name not in pm.list_projects():
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    pm.set_current_project(project_name)
    typer.echo(f"Loaded project '{project_name}'.")


@app.command("unload-project")
def unload_project():
    """Unload active project memory without deleting data."""
    pm = ProjectManager()
    pm.unload_project()
    typer.echo("Unloaded active project.")


@app.command("delete-project")
def delete_project(project_name: str = typer.Argument(..., help="Project memory to delete.")):
    """Delete persisted project memory."""
    pm = ProjectManager()
    if not pm.delete_project(project_name):
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    typer.echo(f"Deleted project '{project_name}'.")


@app.command("current-project")
def current_project():
    """Print active project memory name."""
    pm = ProjectManager()
    current = pm.get_current_project()
    typer.echo(current or "No project loaded")


@app.command("set-base")
def set_base(base_path: Path = typer.Argument(..., exists=True, help="Base content directory or JSON file list.")):
    """Remember a default base corpus for future scans."""
    if not save_graph_config(base_corpus=str(base_path.resolve())):
        console.print("[red]✗[/red] Could not write config file.")
        raise typer.Exit(code=1)
    typer.echo(f"Base corpus set to {base_path.resolve()}")


if __name__ == "__main__":
    app()
