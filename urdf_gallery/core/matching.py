"""Deterministic matching of recorded file references against a repo tree."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from posixpath import basename

from urdf_gallery.core.preview_keys import DEFAULT_EXTENSION

REASON_NOT_FOUND = "not found in tree"
REASON_EMPTY_REFERENCE = "empty file reference"


@dataclass(slots=True)
class MatchResult:
    path: str | None
    reason: str | None = None

    @property
    def resolved(self) -> bool:
        return self.path is not None


def normalize_reference(value: str) -> str:
    """Forward slashes only, no leading slash."""
    return (value or "").replace("\\", "/").lstrip("/")


def normalize_scoped_path(value: str | None) -> str:
    return (value or "").strip("/")


def pick_best_path(candidates: Iterable[str], scoped_path: str | None = None) -> str | None:
    """Prefer candidates under the scoped path, then shortest, then lexicographic."""
    pool = list(candidates)
    if not pool:
        return None
    prefix = normalize_scoped_path(scoped_path)
    if prefix:
        scoped = [path for path in pool if path.startswith(f"{prefix}/")]
        # Fall back to every candidate when nothing sits under the scope.
        if scoped:
            pool = scoped
    return min(pool, key=lambda path: (len(path), path))


class CandidateIndex:
    """Lookup tables over the tree paths that carry the tracked extension."""

    def __init__(self, tree_paths: Iterable[str], extension: str = DEFAULT_EXTENSION) -> None:
        suffix = extension.lower()
        self.paths: list[str] = sorted(
            path for path in tree_paths if path.lower().endswith(suffix)
        )
        self.exact: frozenset[str] = frozenset(self.paths)
        self.by_path: dict[str, str] = {}
        self.by_name: dict[str, list[str]] = {}
        for path in self.paths:
            self.by_path[path.lower()] = path
            self.by_name.setdefault(basename(path).lower(), []).append(path)

    def __len__(self) -> int:
        return len(self.paths)

    def match(self, reference: str, scoped_path: str | None = None) -> MatchResult:
        raw = normalize_reference(reference)
        if not raw:
            return MatchResult(path=None, reason=REASON_EMPTY_REFERENCE)
        # Paths that differ only by case share one by_path slot.
        if raw in self.exact:
            return MatchResult(path=raw)
        direct = self.by_path.get(raw.lower())
        if direct is not None:
            return MatchResult(path=direct)
        best = pick_best_path(self.by_name.get(basename(raw).lower(), []), scoped_path)
        if best is None:
            return MatchResult(path=None, reason=REASON_NOT_FOUND)
        return MatchResult(path=best)


def match_path(
    reference: str,
    tree_paths: Iterable[str],
    scoped_path: str | None = None,
    extension: str = DEFAULT_EXTENSION,
) -> str | None:
    """Resolve one reference against a raw path listing."""
    return CandidateIndex(tree_paths, extension).match(reference, scoped_path).path
