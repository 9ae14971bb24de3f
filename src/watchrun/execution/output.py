"""Per-trigger output attribution."""

from __future__ import annotations

import re

from watchrun.execution.protocol import TextSink

_LINE_SPLIT = re.compile(r"(?<=\n)")


class TriggerOutput:
    """Writes `[name] ` in front of every line that goes through it.

    The header is emitted lazily before the first character of a line, so a
    line written in several chunks gets exactly one header.

    Example:
        out = TriggerOutput("build", sys.stdout)
        out.write("compiling\\ndone")  # "[build] compiling\\n[build] done"
    """

    def __init__(self, name: str, sink: TextSink) -> None:
        self.name = name
        self._sink = sink
        self._header = f"[{name}] "
        self._at_line_start = True

    def write(self, text: str) -> int:
        for piece in _LINE_SPLIT.split(text):
            if not piece:
                continue
            if self._at_line_start:
                self._sink.write(self._header)
            self._sink.write(piece)
            self._at_line_start = piece.endswith("\n")
        return len(text)

    def flush(self) -> None:
        self._sink.flush()
