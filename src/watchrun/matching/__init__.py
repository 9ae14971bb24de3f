"""Path matching for watchrun.

Resolves include/exclude glob patterns into a minimal watch set and maps
changed paths back to the triggers that should run.
"""

from watchrun.matching.index import TriggerIndex
from watchrun.matching.resolver import (
    containing_dir,
    normalize_path,
    reduce_paths,
    resolve_patterns,
    unique,
    watch_dirs,
)

__all__ = [
    "TriggerIndex",
    "containing_dir",
    "normalize_path",
    "reduce_paths",
    "resolve_patterns",
    "unique",
    "watch_dirs",
]
