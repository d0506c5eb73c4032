"""Reference resolution against the project's file listing.

Asset references are usually written without an extension and with
whatever case the author liked, and mods override base content with
files in other formats. Resolution is therefore a substring search over
the lower-cased file listing, narrowed by the reference's type group when
more than one file matches.
"""

from __future__ import annotations

import logging
import posixpath
import re
from pathlib import PurePosixPath
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .config import IMAGE_TYPES, TYPE_GROUPS
from .errors import AmbiguousReferenceError
from .models import ResolutionResult, ResolutionStatus

logger = logging.getLogger(__name__)

_SEPARATORS_RE = re.compile(r"/{2,}")


class FileCorpus:
    """Read-only list of file paths with a lower-cased twin for matching.

    ``paths`` keeps the original case for display and IO; every search
    runs against ``lowered``.
    """

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self.paths: List[str] = list(paths)
        self.lowered: List[str] = [p.replace("\\", "/").lower() for p in self.paths]
        self._exact: Dict[str, int] = {}
        for index, low in enumerate(self.lowered):
            self._exact.setdefault(low, index)

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and path.replace("\\", "/").lower() in self._exact

    def exact(self, path: str) -> Optional[str]:
        index = self._exact.get(path.replace("\\", "/").lower())
        return None if index is None else self.paths[index]

    def search(self, lookup: str) -> List[int]:
        """Indices of every entry containing *lookup* (already lower-cased)."""
        return [i for i, low in enumerate(self.lowered) if lookup in low]

    def glob(self, pattern: str) -> List[str]:
        """Entries whose trailing path components match *pattern*."""
        pattern = pattern.replace("\\", "/").lower().lstrip("/")
        if not pattern:
            return []
        return [
            self.paths[i]
            for i, low in enumerate(self.lowered)
            if PurePosixPath(low).match(pattern)
        ]


# ===================================================================
# Normalisation helpers
# ===================================================================

def normalize_reference(reference: str) -> str:
    """Collapse separators, drop the extension and lower-case."""
    lookup = _SEPARATORS_RE.sub("/", reference.replace("\\", "/"))
    return posixpath.splitext(lookup)[0].lower()


def reference_extension(reference: str) -> str:
    return posixpath.splitext(reference.replace("\\", "/"))[1].lower()


def type_group(reference: str) -> Tuple[str, List[str]]:
    """Return ``(group name, extensions)`` for a reference.

    Extension-less references are assumed to be images, since shaders
    name their textures that way.

    Raises:
        AmbiguousReferenceError: the extension belongs to no known group.
    """
    ext = reference_extension(reference)
    if not ext:
        return "image", IMAGE_TYPES
    for name, extensions in TYPE_GROUPS.items():
        if ext in extensions:
            return name, extensions
    raise AmbiguousReferenceError(reference, None)


def expand_wildcards(references: Iterable[str], corpus: FileCorpus) -> List[str]:
    """Replace every glob-style reference with the files it matches.

    Non-wildcard references pass through unchanged; order is kept and
    duplicates are dropped.
    """
    expanded: List[str] = []
    seen = set()
    for ref in references:
        candidates = corpus.glob(ref) if "*" in ref else [ref]
        for candidate in candidates:
            if candidate not in seen:
                seen.add(candidate)
                expanded.append(candidate)
    return expanded


# ===================================================================
# Resolution
# ===================================================================

def resolve(
    reference: str,
    corpus: FileCorpus,
    base: Optional[FileCorpus] = None,
) -> ResolutionResult:
    """Resolve one raw reference to a file in *corpus*.

    Args:
        reference: Raw string as extracted from an asset.
        corpus:    The project's file listing.
        base:      Optional upstream listing; matches there are reported
                   as ``BASE`` instead of ``NOT_FOUND``.

    Raises:
        ValueError: the reference normalises to an empty string.
        AmbiguousReferenceError: several files match and the type group
            cannot narrow them to one.
    """
    exact = corpus.exact(reference)
    if exact is not None:
        return ResolutionResult(reference, ResolutionStatus.RESOLVED, path=exact)

    lookup = normalize_reference(reference)
    if not lookup:
        raise ValueError(f"reference {reference!r} is empty after normalisation")

    matches = corpus.search(lookup)
    if not matches:
        if base is not None and base.search(lookup):
            return ResolutionResult(reference, ResolutionStatus.BASE)
        return ResolutionResult(reference, ResolutionStatus.NOT_FOUND)
    if len(matches) == 1:
        return ResolutionResult(reference, ResolutionStatus.RESOLVED, path=corpus.paths[matches[0]])

    # an explicit extension naming exactly one file wins outright
    ext = reference_extension(reference)
    if ext:
        named = [i for i in matches if corpus.lowered[i].endswith(lookup + ext)]
        if len(named) == 1:
            return ResolutionResult(reference, ResolutionStatus.RESOLVED, path=corpus.paths[named[0]])

    group, extensions = type_group(reference)
    narrowed = []
    for i in matches:
        stem, candidate_ext = posixpath.splitext(corpus.lowered[i])
        if candidate_ext in extensions and stem.endswith(lookup):
            narrowed.append(i)
    if len(narrowed) != 1:
        raise AmbiguousReferenceError(
            reference, group, [corpus.paths[i] for i in (narrowed or matches)],
        )
    return ResolutionResult(
        reference,
        ResolutionStatus.RESOLVED,
        path=corpus.paths[narrowed[0]],
        type_group=group,
        assumed_image=not ext,
    )


class ReferenceResolver:
    """Memoising wrapper around :func:`resolve` for one corpus pair."""

    def __init__(self, corpus: FileCorpus, base: Optional[FileCorpus] = None) -> None:
        self.corpus = corpus
        self.base = base
        self._cache: Dict[str, ResolutionResult] = {}

    def resolve(self, reference: str) -> ResolutionResult:
        cached = self._cache.get(reference)
        if cached is None:
            cached = resolve(reference, self.corpus, self.base)
            self._cache[reference] = cached
            logger.debug("Resolved %r -> %s %s", reference, cached.status.value, cached.path or "")
        return cached
