"""Protocols for trigger bodies and their output sinks."""

from __future__ import annotations

from typing import Protocol


class TextSink(Protocol):
    """Anything trigger output can be written to (sys.stdout, StringIO, ...)."""

    def write(self, text: str, /) -> int: ...

    def flush(self) -> None: ...


class Runnable(Protocol):
    """Protocol for the body of an action or service.

    Implementations:
    - ShellScript: runs a script through a local shell
    """

    async def run(self, cwd: str, stdout: TextSink, stderr: TextSink) -> None:
        """Run the body to completion.

        Args:
            cwd: Working directory for the body.
            stdout: Sink for standard output.
            stderr: Sink for standard error.

        Raises:
            asyncio.CancelledError: The surrounding task was cancelled; the
                body has been stopped before this propagates.
            ExecutionError: The body failed (ScriptFailedError for a
                non-zero exit status).
        """
        ...
