"""Raw change events delivered by a notifier."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class ChangeOp(Enum):
    """What happened to a path."""

    CREATE = "create"
    WRITE = "write"
    REMOVE = "remove"
    RENAME = "rename"  # Path was moved away
    METADATA = "metadata"  # Attribute/open/close only; never batched

    @property
    def changes_content(self) -> bool:
        return self is not ChangeOp.METADATA


@dataclass(frozen=True)
class ChangeEvent:
    """A single filesystem notification."""

    path: str
    op: ChangeOp
    timestamp: float = field(default_factory=time.time, compare=False)
