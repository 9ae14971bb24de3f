"""Glob pattern resolution into a minimal set of watch targets.

Patterns are resolved against a root directory:
- Relative patterns are joined to the root, absolute patterns pass through.
- `*` matches within one path segment, `**` matches any number of
  directories (including none).
- A pattern ending in a path separator matches directories only.

An include match is dropped when it equals an exclude match or starts with
one. The prefix test is on the path string, so excluding `/r/build` also
drops `/r/build-tools`.
"""

from __future__ import annotations

import glob
import os
from collections.abc import Iterable

from watchrun.logging import get_logger

log = get_logger("resolver")


def normalize_path(path: str) -> str:
    """Canonical form used for every path comparison.

    Removes redundant separators, `.` segments and trailing separators.
    """
    return os.path.normpath(path)


def is_dir(path: str) -> bool:
    return os.path.isdir(path)


def containing_dir(path: str) -> str:
    """The path itself for a directory, otherwise its parent directory."""
    if is_dir(path):
        return path
    return os.path.dirname(path)


def unique(items: Iterable[str]) -> list[str]:
    """Drop duplicates, keeping the first occurrence of each item in order."""
    return list(dict.fromkeys(items))


def make_absolute(root: str, patterns: Iterable[str]) -> list[str]:
    """Anchor relative patterns at root, keeping any trailing separator."""
    absolute = []
    for pattern in patterns:
        if os.path.isabs(pattern):
            absolute.append(pattern)
            continue

        joined = os.path.join(glob.escape(root), pattern)
        dirs_only = pattern.endswith(("/", os.sep))
        joined = normalize_path(joined)
        if dirs_only:
            joined += os.sep
        absolute.append(joined)
    return absolute


def expand_patterns(patterns: Iterable[str]) -> list[str]:
    """Expand absolute glob patterns into normalized, existing paths."""
    matches: list[str] = []
    for pattern in patterns:
        if not os.path.isabs(pattern):
            log.debug("Ignoring non-absolute pattern %s", pattern)
            continue

        found = glob.glob(pattern, recursive=True, include_hidden=True)
        if pattern.endswith(("/", os.sep)):
            found = [m for m in found if is_dir(m)]

        matches.extend(normalize_path(m) for m in found)
    return unique(matches)


def is_excluded(path: str, excluded: Iterable[str]) -> bool:
    """True if path equals or starts with any excluded path."""
    return any(path.startswith(e) for e in excluded)


def resolve_patterns(root: str, include: Iterable[str], exclude: Iterable[str]) -> list[str]:
    """Resolve include/exclude patterns to absolute paths.

    Args:
        root: Directory relative patterns are anchored at.
        include: Patterns whose matches are watched.
        exclude: Patterns whose matches, and anything below them, are dropped.

    Returns:
        Matched paths in discovery order, without duplicates.
    """
    included = expand_patterns(make_absolute(root, include))
    excluded = expand_patterns(make_absolute(root, exclude))
    return [p for p in included if not is_excluded(p, excluded)]


def reduce_paths(paths: Iterable[str]) -> list[str]:
    """Collapse sibling paths into their containing directory.

    Paths are grouped by containing directory (a directory is its own
    group). A group with more than one member is replaced by the directory;
    a lone member is kept as-is.

    Returns:
        Sorted list of reduced paths.
    """
    groups: dict[str, list[str]] = {}
    for path in unique(paths):
        groups.setdefault(containing_dir(path), []).append(path)

    reduced = {key if len(members) > 1 else members[0] for key, members in groups.items()}
    return sorted(reduced)


def watch_dirs(paths: Iterable[str]) -> list[str]:
    """Directories to register with the notifier for the given watch paths."""
    return sorted(set(containing_dir(p) for p in paths))
