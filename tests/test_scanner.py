"""Tests for project scanning, disassembly and base corpus loading."""

import asyncio
import json
from pathlib import Path

import pytest

from q3graph import scanner
from q3graph.errors import Q3GraphError
from q3graph.scanner import load_base_corpus, load_game, scan_files

from conftest import build_qvm, write


def test_scan_files_skips_vcs_dirs(temp_dir: Path):
    write(temp_dir, "maps/a.bsp", b"")
    write(temp_dir, ".git/objects/xx", b"")
    write(temp_dir, "textures/b.tga", b"")

    files = scan_files(temp_dir)

    assert [Path(f).relative_to(temp_dir.resolve()).as_posix() for f in files] == ["maps/a.bsp", "textures/b.tga"]


def test_load_game_reference_maps(game_project: Path):
    state = asyncio.run(load_game(game_project))

    level = [p for p in state.map_entities if p.endswith("maps/q3dm1.bsp")][0]
    assert "music/loop.wav" in state.map_entities[level]
    assert "item_armor_shard" in state.map_entities[level]
    assert not any(ref.startswith("*") for ref in state.map_entities[level])
    assert state.map_classnames[level] == [
        "func_door", "item_armor_shard", "misc_model", "target_speaker", "worldspawn",
    ]
    assert state.maps[level] == ["noshader", "textures/base/floor", "textures/sky/space"]
    assert state.shaders["models/players/sarge/head_skin"] == ["models/players/sarge/head.tga"]
    assert state.entities == {
        "item_armor_shard": [
            "icons/iconr_shard",
            "models/powerups/armor/shard.md3",
            "sound/misc/ar1_pkup.wav",
        ],
    }

    cgame = [p for p in state.qvms if p.endswith("vm/cgame.qvm")][0]
    refs = state.qvms[cgame]
    assert "sprites/*.tga" not in refs
    assert any(r.endswith("sprites/plasma1.tga") for r in refs)
    assert refs == sorted(refs)


def test_broken_file_is_isolated(game_project: Path):
    state = asyncio.run(load_game(game_project))

    assert [e["path"] for e in state.errors] == [
        p for p in state.everything if p.endswith("models/broken.md3")
    ]
    # the other models still parsed
    assert any(p.endswith("models/mapobjects/tree.md3") for p in state.models)


def test_disassembly_runs_once(game_project: Path, monkeypatch):
    calls = []
    real = scanner.disassemble_qvm

    def counting(qvm_path, dis_path, command=""):
        calls.append(qvm_path)
        real(qvm_path, dis_path, command)

    monkeypatch.setattr(scanner, "disassemble_qvm", counting)

    first = asyncio.run(load_game(game_project))
    second = asyncio.run(load_game(game_project))

    assert len(calls) == 1
    assert (game_project / "vm" / "cgame.dis").exists()
    assert first.everything == second.everything
    assert first.qvms == second.qvms


def test_failed_disassembly_is_isolated(temp_dir: Path):
    write(temp_dir, "vm/ui.qvm", b"not a qvm at all, just bytes padding out")
    write(temp_dir, "vm/cgame.qvm", build_qvm(["item_health", "sound/h.wav"]))

    state = asyncio.run(load_game(temp_dir))

    assert len(state.errors) == 1
    assert state.errors[0]["path"].endswith("vm/ui.qvm")
    assert state.entities == {"item_health": ["sound/h.wav"]}


def test_entities_fall_back_to_qagame(temp_dir: Path):
    write(temp_dir, "vm/qagame.qvm", build_qvm(["weapon_gauntlet", "models/weapons2/gauntlet/gauntlet.md3"]))
    state = asyncio.run(load_game(temp_dir))
    assert state.entities == {"weapon_gauntlet": ["models/weapons2/gauntlet/gauntlet.md3"]}


def test_progress_steps(game_project: Path):
    steps = []
    asyncio.run(load_game(game_project, steps.extend))

    assert all(s.phase == 1 for s in steps)
    assert steps[0].label == "Scanning all files"
    assert steps[0].total == 9
    # one extra step per QVM
    assert steps[-1].total == 10
    assert steps[-1].current == 8
    assert steps[-1].label.startswith("Searching for QVM files cgame.qvm")


def test_async_progress_is_awaited(e2e_project: Path):
    seen = []

    async def progress(batch):
        await asyncio.sleep(0)
        seen.extend(batch)

    asyncio.run(load_game(e2e_project, progress))
    assert len(seen) == 8


def test_missing_project(temp_dir: Path):
    with pytest.raises(Q3GraphError):
        asyncio.run(load_game(temp_dir / "nope"))


class TestBaseCorpus:
    """Tests for loading the upstream content listing."""

    def test_from_directory_writes_list(self, base_dir: Path, temp_dir: Path):
        listing = temp_dir / "out" / "base.json"
        corpus = load_base_corpus(base_dir, write_to=listing)

        assert len(corpus) == 2
        assert json.loads(listing.read_text()) == list(corpus)
        assert all(p == p.lower() for p in corpus)

    def test_from_json(self, temp_dir: Path):
        listing = write(temp_dir, "base.json", json.dumps(["/Base/Music/Loop.wav"]))
        assert list(load_base_corpus(listing)) == ["/base/music/loop.wav"]

    def test_invalid_json(self, temp_dir: Path):
        listing = write(temp_dir, "base.json", '{"not": "a list"}')
        with pytest.raises(Q3GraphError, match="JSON list"):
            load_base_corpus(listing)

    def test_missing(self, temp_dir: Path):
        with pytest.raises(Q3GraphError, match="not found"):
            load_base_corpus(temp_dir / "missing.json")
