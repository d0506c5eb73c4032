"""Graph export helpers for DOT and simple standalone HTML outputs."""

from __future__ import annotations

import html
import json
from pathlib import Path
from typing import Dict, List

from .storage import GraphStore

_KIND_SHAPES = {"file": "box", "shader": "ellipse", "entity": "diamond"}


def export_dot(store: GraphStore, output_file: Path, focus: str = "") -> None:
    vertices = {row["vertex_id"]: row for row in store.get_vertices()}
    edges = [dict(e) for e in store.get_edges()]

    selected = _focused_subgraph(vertices, edges, focus)

    lines = ["digraph AssetGraph {"]
    lines.append("  rankdir=LR;")

    for vertex_id in selected["vertices"]:
        vertex = vertices[vertex_id]
        shape = _KIND_SHAPES.get(vertex["kind"], "box")
        lines.append(f'  "{_esc(vertex_id)}" [label="{_esc(vertex["name"])}", shape={shape}];')

    for edge in selected["edges"]:
        style = ", style=dashed" if edge["edge_type"] == "passthrough" else ""
        lines.append(f'  "{_esc(edge["src"])}" -> "{_esc(edge["dst"])}" [label="{_esc(edge["edge_type"])}"{style}];')

    lines.append("}")
    output_file.write_text("\n".join(lines) + "\n", encoding="utf-8")


def export_html(store: GraphStore, output_file: Path, focus: str = "") -> None:
    """Export the graph as a single HTML page listing vertices and edges."""
    vertices = {row["vertex_id"]: row for row in store.get_vertices()}
    edges = [dict(e) for e in store.get_edges()]

    selected = _focused_subgraph(vertices, edges, focus)
    graph_payload = {
        "vertices": [
            {"id": vertex_id, "label": f"{vertices[vertex_id]['kind']}: {vertices[vertex_id]['name']}"}
            for vertex_id in selected["vertices"]
        ],
        "edges": selected["edges"],
    }
    output_file.write_text(_basic_html_export(graph_payload, store.get_diagnostics()), encoding="utf-8")


def _basic_html_export(graph_payload: dict, diagnostics: Dict[str, List[str]]) -> str:
    missing = "".join(f"<li>{html.escape(ref)}</li>" for ref in diagnostics.get("not_found", []))
    # keep a literal </script> in a path from closing the data block
    data = json.dumps(graph_payload).replace("</", "<\\/")
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>Asset Graph Export</title>
  <style>
    body {{ font-family: ui-monospace, SFMono-Regular, Menlo, monospace; margin: 20px; }}
    #container {{ display: grid; grid-template-columns: 1fr 1fr; gap: 18px; }}
    .panel {{ border: 1px solid #ddd; border-radius: 8px; padding: 10px; }}
    ul {{ list-style: none; padding: 0; margin: 0; }}
    li {{ margin: 4px 0; }}
  </style>
</head>
<body>
  <h1>Asset Graph Export</h1>
  <div id="container">
    <div class="panel">
      <h2>Vertices</h2>
      <ul id="vertices"></ul>
    </div>
    <div class="panel">
      <h2>Edges</h2>
      <ul id="edges"></ul>
    </div>
    <div class="panel">
      <h2>Not found</h2>
      <ul>{missing}</ul>
    </div>
  </div>
  <script>
    const graph = {data};
    const verticesEl = document.getElementById('vertices');
    const edgesEl = document.getElementById('edges');
    graph.vertices.forEach(v => {{
      const li = document.createElement('li');
      li.textContent = `${{v.label}} (${{v.id}})`;
      verticesEl.appendChild(li);
    }});
    graph.edges.forEach(e => {{
      const li = document.createElement('li');
      li.textContent = `${{e.src}} --${{e.edge_type}}--> ${{e.dst}}`;
      edgesEl.appendChild(li);
    }});
  </script>
</body>
</html>
"""


def _focused_subgraph(vertices: Dict[str, dict], edges: List[dict], focus: str) -> Dict[str, List]:
    if not focus:
        return {"vertices": sorted(vertices), "edges": edges}

    needle = focus.lower()
    focus_ids = {
        vertex_id
        for vertex_id, vertex in vertices.items()
        if needle in vertex_id.lower() or needle in vertex["name"].lower()
    }

    if not focus_ids:
        return {"vertices": sorted(vertices), "edges": edges}

    edge_subset = [e for e in edges if e["src"] in focus_ids or e["dst"] in focus_ids]
    vertex_subset = set(focus_ids)
    for e in edge_subset:
        vertex_subset.add(e["src"])
        vertex_subset.add(e["dst"])
    return {"vertices": sorted(vertex_subset), "edges": edge_subset}


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
