"""Exception types raised while scanning content and assembling graphs."""

from __future__ import annotations

from typing import List, Optional


class Q3GraphError(Exception):
    """Base class for all q3graph errors."""


class AssetParseError(Q3GraphError):
    """A single asset file is malformed.

    Raised by the format loaders and caught per file by the scanner, so one
    broken model never stops the rest of the scan.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class DisassemblyError(Q3GraphError):
    """The bytecode disassembler failed for one module."""


class SnapshotError(Q3GraphError):
    """A saved game-state snapshot could not be read."""


class AmbiguousReferenceError(Q3GraphError):
    """A reference matched several files and its type could not break the tie.

    This is the only error allowed to abort a graph build.
    """

    def __init__(
        self,
        reference: str,
        type_group: Optional[str],
        candidates: Optional[List[str]] = None,
    ) -> None:
        self.reference = reference
        self.type_group = type_group
        self.candidates = list(candidates or [])
        if type_group is None:
            message = f"File type not found for reference '{reference}'"
        else:
            message = (
                f"Ambiguous reference '{reference}' (type: {type_group}): "
                f"{len(self.candidates)} candidate(s) after type filtering"
            )
        super().__init__(message)
