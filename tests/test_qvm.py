"""Tests for QVM disassembly and string-constant extraction."""

import struct
import sys
from pathlib import Path

import pytest

from q3graph import qvm
from q3graph.errors import DisassemblyError

from conftest import build_qvm


def test_disassemble_listing():
    listing = qvm.disassemble(build_qvm(["models/a.md3", "hello world"]), "cgame.qvm")
    lines = listing.splitlines()

    assert lines[0] == "; disassembly of cgame.qvm"
    assert "00000000 CONST 0x00000005" in lines
    assert "00000001 LEAVE 0x00000000" in lines
    lit = lines[lines.index("lit") + 1:]
    assert lit == ['00000004 "models/a.md3"', '00000011 "hello world"']


def test_extract_strings_round_trips_quotes():
    listing = qvm.disassemble(build_qvm(['say "hi"', "back\\slash"]))
    assert qvm.extract_strings(listing) == ['say "hi"', "back\\slash"]


def test_disassemble_bad_magic():
    data = struct.pack("<i", 0x1234) + build_qvm([])[4:]
    with pytest.raises(DisassemblyError, match="magic"):
        qvm.disassemble(data)


def test_disassemble_truncated():
    with pytest.raises(DisassemblyError):
        qvm.disassemble(build_qvm(["sound/a.wav"])[:20])


def test_disassemble_unknown_opcode():
    data = bytearray(build_qvm([]))
    data[32] = 200
    with pytest.raises(DisassemblyError, match="unknown opcode"):
        qvm.disassemble(bytes(data))


@pytest.mark.parametrize("value,expected", [
    ("models/players/sarge/head.md3", True),
    ("icons/iconr_shard", True),
    ("sound.wav", True),
    ("sprites/*.tga", True),
    ("item_armor_shard", False),
    ("Armor Shard", False),
    ("%s/%s.skin", False),
    ("1/2", False),
    ("ab", False),
])
def test_is_asset_like(value, expected):
    assert qvm.is_asset_like(value) is expected


def test_asset_strings_keeps_order_and_dedupes():
    strings = ["sound/b.wav", "menu", "sound/a.wav", "sound/b.wav", "gfx/*.tga"]
    assert qvm.asset_strings(strings) == ["sound/b.wav", "sound/a.wav", "gfx/*.tga"]


def test_game_entities_groups_by_classname():
    strings = [
        "models/stray.md3",
        "item_armor_shard",
        "sound/misc/ar1_pkup.wav",
        "models/powerups/armor/shard.md3",
        "Armor Shard",
        "weapon_rocketlauncher",
        "models/weapons2/rocketl/rocketl.md3",
        "models/weapons2/*.md3",
        "weapon_rocketlauncher",
    ]
    assert qvm.game_entities(strings) == {
        "item_armor_shard": ["models/powerups/armor/shard.md3", "sound/misc/ar1_pkup.wav"],
        "weapon_rocketlauncher": ["models/weapons2/rocketl/rocketl.md3"],
    }


def test_disassemble_qvm_builtin(temp_dir: Path):
    qvm_path = temp_dir / "cgame.qvm"
    qvm_path.write_bytes(build_qvm(["models/a.md3"]))
    dis_path = temp_dir / "cgame.dis"

    qvm.disassemble_qvm(qvm_path, dis_path)

    assert qvm.extract_strings(dis_path.read_text()) == ["models/a.md3"]


def test_disassemble_qvm_external_stdout(temp_dir: Path):
    qvm_path = temp_dir / "game.qvm"
    qvm_path.write_bytes(b"unused")
    dis_path = temp_dir / "game.dis"
    script = temp_dir / "fake_dis.py"
    script.write_text('print("lit")\nprint(\'00000000 "sound/x.wav"\')\n')

    qvm.disassemble_qvm(qvm_path, dis_path, f'"{sys.executable}" "{script}" {{input}}')

    assert qvm.extract_strings(dis_path.read_text()) == ["sound/x.wav"]


def test_disassemble_qvm_external_failure(temp_dir: Path):
    qvm_path = temp_dir / "game.qvm"
    qvm_path.write_bytes(b"unused")
    with pytest.raises(DisassemblyError, match="disassembler failed"):
        qvm.disassemble_qvm(qvm_path, temp_dir / "game.dis", "definitely-not-a-real-disassembler {input}")
