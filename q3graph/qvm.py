"""QVM bytecode disassembly and string-constant extraction.

The built-in disassembler writes a plain text listing next to each module
(``cgame.qvm`` -> ``cgame.dis``). Everything downstream reads that listing,
so an external disassembler can be swapped in through
``disassembler_command`` as long as it emits the same ``lit`` section.
"""

from __future__ import annotations

import logging
import re
import shlex
import struct
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from .config import ALL_TYPES
from .errors import DisassemblyError

logger = logging.getLogger(__name__)

VM_MAGIC = 0x12721444
VM_MAGIC_VER2 = 0x12721445

_HEADER = struct.Struct("<8i")

# (mnemonic, operand size in bytes), indexed by opcode
OPCODES = [
    ("UNDEF", 0), ("IGNORE", 0), ("BREAK", 0), ("ENTER", 4), ("LEAVE", 4),
    ("CALL", 0), ("PUSH", 0), ("POP", 0), ("CONST", 4), ("LOCAL", 4),
    ("JUMP", 0), ("EQ", 4), ("NE", 4), ("LTI", 4), ("LEI", 4),
    ("GTI", 4), ("GEI", 4), ("LTU", 4), ("LEU", 4), ("GTU", 4),
    ("GEU", 4), ("EQF", 4), ("NEF", 4), ("LTF", 4), ("LEF", 4),
    ("GTF", 4), ("GEF", 4), ("LOAD1", 0), ("LOAD2", 0), ("LOAD4", 0),
    ("STORE1", 0), ("STORE2", 0), ("STORE4", 0), ("ARG", 1), ("BLOCK_COPY", 4),
    ("SEX8", 0), ("SEX16", 0), ("NEGI", 0), ("ADD", 0), ("SUB", 0),
    ("DIVI", 0), ("DIVU", 0), ("MODI", 0), ("MODU", 0), ("MULI", 0),
    ("MULU", 0), ("BAND", 0), ("BOR", 0), ("BXOR", 0), ("BCOM", 0),
    ("LSH", 0), ("RSHI", 0), ("RSHU", 0), ("NEGF", 0), ("ADDF", 0),
    ("SUBF", 0), ("DIVF", 0), ("MULF", 0), ("CVIF", 0), ("CVFI", 0),
]

_LIT_LINE_RE = re.compile(r'^([0-9a-f]{8}) "((?:[^"\\]|\\.)*)"$')
_ASSET_CHARS_RE = re.compile(r"^[A-Za-z0-9_\-./*]+$")
_ENTITY_CLASS_RE = re.compile(r"^(?:item|weapon|ammo|holdable|team)_[a-z0-9_]+$")


# ===================================================================
# Disassembly
# ===================================================================

def disassemble(data: bytes, name: str = "<qvm>") -> str:
    """Return a text listing of a QVM image: header, code and literals."""
    if len(data) < _HEADER.size:
        raise DisassemblyError(f"{name}: file too short for a QVM header")
    (
        magic, instruction_count, code_offset, code_length,
        data_offset, data_length, lit_length, bss_length,
    ) = _HEADER.unpack_from(data, 0)
    if magic not in (VM_MAGIC, VM_MAGIC_VER2):
        raise DisassemblyError(f"{name}: bad QVM magic 0x{magic & 0xFFFFFFFF:08x}")
    if code_offset + code_length > len(data) or data_offset + data_length + lit_length > len(data):
        raise DisassemblyError(f"{name}: segments extend past end of file")

    lines = [
        f"; disassembly of {name}",
        f"; magic 0x{magic:08x} instructions {instruction_count} code {code_length} "
        f"data {data_length} lit {lit_length} bss {bss_length}",
        "code",
    ]
    lines.extend(_disassemble_code(data[code_offset:code_offset + code_length], instruction_count, name))

    lines.append("lit")
    lit = data[data_offset + data_length:data_offset + data_length + lit_length]
    for address, text in _literal_strings(lit, data_length):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        lines.append(f'{address:08x} "{escaped}"')
    return "\n".join(lines) + "\n"


def _disassemble_code(code: bytes, instruction_count: int, name: str) -> List[str]:
    lines: List[str] = []
    pc = 0
    for index in range(instruction_count):
        if pc >= len(code):
            raise DisassemblyError(f"{name}: code ends after {index} of {instruction_count} instructions")
        opcode = code[pc]
        if opcode >= len(OPCODES):
            raise DisassemblyError(f"{name}: unknown opcode {opcode} at instruction {index}")
        mnemonic, size = OPCODES[opcode]
        pc += 1
        if size == 4:
            (operand,) = struct.unpack_from("<i", code, pc)
            lines.append(f"{index:08x} {mnemonic} 0x{operand & 0xFFFFFFFF:08x}")
        elif size == 1:
            lines.append(f"{index:08x} {mnemonic} {code[pc]}")
        else:
            lines.append(f"{index:08x} {mnemonic}")
        pc += size
    return lines


def _literal_strings(lit: bytes, base: int) -> List[tuple]:
    strings = []
    start = 0
    for end, byte in enumerate(lit):
        if byte != 0:
            continue
        raw = lit[start:end]
        if raw and all(0x20 <= b < 0x7F for b in raw):
            strings.append((base + start, raw.decode("ascii")))
        start = end + 1
    return strings


def disassemble_qvm(qvm_path: Path, dis_path: Path, command: str = "") -> None:
    """Write the disassembly of *qvm_path* to *dis_path*.

    With *command* set, it is run instead of the built-in disassembler.
    ``{input}`` and ``{output}`` are substituted; when ``{output}`` is
    absent the command's stdout becomes the listing.
    """
    if not command:
        dis_path.write_text(disassemble(qvm_path.read_bytes(), qvm_path.name), encoding="utf-8")
        return

    args = [
        part.replace("{input}", str(qvm_path)).replace("{output}", str(dis_path))
        for part in shlex.split(command)
    ]
    logger.debug("Running disassembler: %s", " ".join(args))
    try:
        result = subprocess.run(args, check=True, capture_output=True, text=True)
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        raise DisassemblyError(f"{qvm_path}: disassembler failed: {exc}") from exc
    if "{output}" not in command:
        dis_path.write_text(result.stdout, encoding="utf-8")


# ===================================================================
# String extraction
# ===================================================================

def extract_strings(disassembly: str) -> List[str]:
    """Return every literal from the ``lit`` section, in address order."""
    strings: List[str] = []
    in_lit = False
    for line in disassembly.splitlines():
        if line == "lit":
            in_lit = True
            continue
        if not in_lit:
            continue
        match = _LIT_LINE_RE.match(line)
        if match:
            strings.append(re.sub(r"\\(.)", r"\1", match.group(2)))
    return strings


def is_asset_like(value: str) -> bool:
    if len(value) < 3 or not _ASSET_CHARS_RE.match(value):
        return False
    if "/" in value:
        return any(c.isalpha() for c in value)
    suffix = Path(value).suffix.lower()
    return suffix in ALL_TYPES or ("*" in value and bool(suffix))


def asset_strings(strings: List[str]) -> List[str]:
    """Filter literals down to the ones that look like file references."""
    seen = set()
    assets: List[str] = []
    for value in strings:
        if value not in seen and is_asset_like(value):
            seen.add(value)
            assets.append(value)
    return assets


def game_entities(strings: List[str]) -> Dict[str, List[str]]:
    """Group asset literals under the item/weapon class name preceding them.

    The item table keeps each classname next to its pickup sound, world
    models and icon, so literal order approximates the table layout.
    """
    entities: Dict[str, List[str]] = {}
    current: Optional[str] = None
    for value in strings:
        if _ENTITY_CLASS_RE.match(value):
            current = value
            entities.setdefault(current, [])
        elif current is not None and is_asset_like(value) and "*" not in value:
            if value not in entities[current]:
                entities[current].append(value)
    return {name: sorted(refs) for name, refs in entities.items()}
