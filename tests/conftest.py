"""Pytest configuration and fixtures for q3graph tests."""

import shutil
import struct
import tempfile
from pathlib import Path
from typing import Generator, List, Optional

import pytest

from q3graph.md3 import MD3_HEADER, MD3_SHADER, MD3_SURFACE
from q3graph.qvm import VM_MAGIC
from q3graph.storage import GraphStore, ProjectManager


# ===================================================================
# Byte-level writers for the binary formats
# ===================================================================

def build_bsp(entities: str, shaders: Optional[List[str]] = None, version: int = 46) -> bytes:
    """Minimal IBSP file with only the entity and shader lumps filled."""
    header_size = 8 + 17 * 8
    entity_blob = entities.encode("latin-1") + b"\0"
    shader_blob = b"".join(struct.pack("<64sii", name.encode("latin-1"), 0, 1) for name in shaders or [])

    lumps = []
    offset = header_size
    for blob in (entity_blob, shader_blob):
        lumps.append((offset, len(blob)))
        offset += len(blob)
    lumps.extend([(offset, 0)] * (17 - len(lumps)))

    header = b"IBSP" + struct.pack("<i", version)
    header += b"".join(struct.pack("<ii", o, length) for o, length in lumps)
    return header + entity_blob + shader_blob


def build_md3(surfaces: List[List[str]], num_skins: int = 0) -> bytes:
    """MD3 with one surface per shader list and no geometry."""
    body = b""
    for index, shaders in enumerate(surfaces):
        shader_blob = b"".join(
            MD3_SHADER.pack(name.encode("latin-1"), i) for i, name in enumerate(shaders)
        )
        ofs_end = MD3_SURFACE.size + len(shader_blob)
        body += MD3_SURFACE.pack(
            b"IDP3", f"surface{index}".encode(), 0, 1, len(shaders), 0, 0,
            ofs_end, MD3_SURFACE.size, ofs_end, ofs_end, ofs_end,
        ) + shader_blob
    ofs_surfaces = MD3_HEADER.size
    header = MD3_HEADER.pack(
        b"IDP3", 15, b"test_model", 0, 1, 0, len(surfaces), num_skins,
        ofs_surfaces, ofs_surfaces, ofs_surfaces, ofs_surfaces + len(body),
    )
    return header + body


def build_qvm(strings: List[str]) -> bytes:
    """QVM with two instructions (CONST, LEAVE), one data word and *strings* as literals."""
    code = bytes([8]) + struct.pack("<i", 5) + bytes([4]) + struct.pack("<i", 0)
    data = struct.pack("<i", 0)
    lit = b"".join(s.encode("ascii") + b"\0" for s in strings)
    code_offset = 32
    data_offset = code_offset + len(code)
    header = struct.pack("<8i", VM_MAGIC, 2, code_offset, len(code), data_offset, len(data), len(lit), 0)
    return header + code + data + lit


def write(root: Path, rel: str, data) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, bytes):
        path.write_bytes(data)
    else:
        path.write_text(data, encoding="utf-8")
    return path


# ===================================================================
# Fixtures
# ===================================================================

@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch):
    """Keep every test away from the user's ~/.q3graph settings."""
    monkeypatch.setattr("q3graph.config_manager.CONFIG_FILE", tmp_path / "q3graph-config.toml")
    monkeypatch.setattr("q3graph.config.BASE_CORPUS", "")
    monkeypatch.setattr("q3graph.config.PASSTHROUGH", "closure")
    monkeypatch.setattr("q3graph.assembler.PASSTHROUGH", "closure")
    monkeypatch.setattr("q3graph.scanner.DISASSEMBLER_COMMAND", "")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def temp_project_manager(temp_dir: Path, monkeypatch) -> ProjectManager:
    """Create a ProjectManager with temporary storage."""
    memory_dir = temp_dir / "memory"
    state_file = temp_dir / "state.json"

    # Patch both config AND storage modules (storage imports at module load)
    monkeypatch.setattr("q3graph.config.BASE_DIR", temp_dir)
    monkeypatch.setattr("q3graph.config.MEMORY_DIR", memory_dir)
    monkeypatch.setattr("q3graph.config.STATE_FILE", state_file)
    monkeypatch.setattr("q3graph.storage.MEMORY_DIR", memory_dir)
    monkeypatch.setattr("q3graph.storage.STATE_FILE", state_file)

    return ProjectManager()


@pytest.fixture
def temp_graph_store(temp_dir: Path) -> Generator[GraphStore, None, None]:
    """Create a GraphStore with temporary storage."""
    project_dir = temp_dir / "test_project"
    project_dir.mkdir(parents=True, exist_ok=True)
    store = GraphStore(project_dir)
    yield store
    store.close()


@pytest.fixture
def e2e_project(temp_dir: Path) -> Path:
    """Arena map -> player model -> player_skin shader -> player texture."""
    root = temp_dir / "arena_mod"
    write(root, "maps/arena.bsp", build_bsp(
        '{\n"classname" "misc_model"\n"model" "models/player.md3"\n}\n'
    ))
    write(root, "models/player.md3", build_md3([["player_skin"]]))
    write(root, "scripts/player.shader", "player_skin\n{\n\t{\n\t\tmap textures/player.tga\n\t}\n}\n")
    write(root, "textures/player.tga", b"TGA")
    return root


@pytest.fixture
def game_project(temp_dir: Path) -> Path:
    """A small mod exercising every asset kind, a base-content miss and a broken model."""
    root = temp_dir / "mod"
    entities = (
        '{\n"classname" "worldspawn"\n"music" "music/intro.wav music/loop.wav"\n}\n'
        '{\n"classname" "item_armor_shard"\n"origin" "0 0 0"\n}\n'
        '{\n"classname" "target_speaker"\n"noise" "sound/world/wind.wav"\n}\n'
        '{\n"classname" "misc_model"\n"model" "models/mapobjects/tree.md3"\n}\n'
        '{\n"classname" "func_door"\n"model" "*1"\n}\n'
    )
    write(root, "maps/q3dm1.bsp", build_bsp(entities, ["textures/base/floor", "textures/sky/space", "noshader"]))
    write(root, "models/mapobjects/tree.md3", build_md3([["models/mapobjects/tree_bark"]]))
    write(root, "models/mapobjects/tree_bark.jpg", b"JPG")
    write(root, "models/players/sarge/head.md3", build_md3([["models/players/sarge/head"]], num_skins=1))
    write(root, "models/players/sarge/head.tga", b"TGA")
    write(root, "models/players/sarge/head_default.skin", (
        "h_head,models/players/sarge/head_skin\n"
        "tag_head,\n"
    ))
    write(root, "models/powerups/armor/shard.md3", build_md3([]))
    write(root, "models/broken.md3", b"IDP3 not really a model")
    write(root, "scripts/models.shader", (
        "// player heads\n"
        "models/players/sarge/head_skin\n{\n\t{\n\t\tmap models/players/sarge/head.tga\n\t\trgbGen lightingDiffuse\n\t}\n}\n"
    ))
    write(root, "scripts/sky.shader", (
        "textures/sky/space\n{\n\tskyParms env/space 512 -\n\t{\n\t\tmap $lightmap\n\t}\n}\n"
    ))
    write(root, "env/space_rt.tga", b"TGA")
    write(root, "textures/base/floor.tga", b"TGA")
    write(root, "music/intro.wav", b"RIFF")
    write(root, "sound/world/wind.wav", b"RIFF")
    write(root, "sound/misc/ar1_pkup.wav", b"RIFF")
    write(root, "icons/iconr_shard.tga", b"TGA")
    write(root, "sprites/plasma1.tga", b"TGA")
    write(root, "sprites/balloon3.tga", b"TGA")
    write(root, "readme.xyz", "notes")
    write(root, "vm/cgame.qvm", build_qvm([
        "item_armor_shard",
        "models/powerups/armor/shard.md3",
        "sound/misc/ar1_pkup.wav",
        "icons/iconr_shard",
        "Armor Shard",
        "sprites/*.tga",
        "%s: %i",
    ]))
    return root


@pytest.fixture
def base_dir(temp_dir: Path) -> Path:
    """Upstream content holding the music track the mod does not ship."""
    root = temp_dir / "baseq3"
    write(root, "music/loop.wav", b"RIFF")
    write(root, "textures/base/wall.tga", b"TGA")
    return root
