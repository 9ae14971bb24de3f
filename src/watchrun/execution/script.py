"""Shell script runnable backed by asyncio subprocesses."""

from __future__ import annotations

import asyncio
import codecs
import os
import platform
import signal

from watchrun.errors import ExecutionError, ScriptFailedError
from watchrun.execution.protocol import TextSink
from watchrun.logging import get_logger

log = get_logger("script")

_WINDOWS = platform.system() == "Windows"

_READ_SIZE = 4096


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    """Send sig to the process group the script runs in."""
    if _WINDOWS:
        process.terminate()
        return
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        pass  # Already gone
    except OSError:
        process.terminate()


async def shutdown_process(
    process: asyncio.subprocess.Process,
    interrupt_timeout: float = 2.0,
    terminate_timeout: float = 3.0,
) -> None:
    """Gracefully stop a process: interrupt, then terminate, then kill.

    Args:
        process: The process to stop.
        interrupt_timeout: Seconds to wait after sending SIGINT.
        terminate_timeout: Seconds to wait after sending SIGTERM.
    """
    if process.returncode is not None:
        return

    try:
        _signal_group(process, signal.SIGINT)
        try:
            await asyncio.wait_for(process.wait(), timeout=interrupt_timeout)
            return
        except asyncio.TimeoutError:
            pass

        _signal_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=terminate_timeout)
            return
        except asyncio.TimeoutError:
            pass
    finally:
        # Also reached when this shutdown is itself cancelled
        if process.returncode is None:
            _signal_group(process, getattr(signal, "SIGKILL", signal.SIGTERM))

    await process.wait()


async def _pump(reader: asyncio.StreamReader | None, sink: TextSink) -> None:
    """Copy a process stream into a text sink as it arrives."""
    if reader is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await reader.read(_READ_SIZE)
        if not chunk:
            break
        sink.write(decoder.decode(chunk))
        sink.flush()
    tail = decoder.decode(b"", final=True)
    if tail:
        sink.write(tail)
        sink.flush()


class ShellScript:
    """Runs a script with `<shell> -c <source>`.

    The script gets its own session, so cancellation reaches every process
    it started, not just the shell.

    Example:
        script = ShellScript("test", "go test ./...")
        await script.run("/project", sys.stdout, sys.stderr)
    """

    def __init__(
        self,
        name: str,
        source: str,
        shell: str = "/bin/sh",
        interrupt_timeout: float = 2.0,
        terminate_timeout: float = 3.0,
    ) -> None:
        self.name = name
        self.source = source
        self.shell = shell
        self.interrupt_timeout = interrupt_timeout
        self.terminate_timeout = terminate_timeout

    def __repr__(self) -> str:
        return f"ShellScript({self.name!r}, {self.source!r})"

    async def run(self, cwd: str, stdout: TextSink, stderr: TextSink) -> None:
        """Run the script to completion.

        Raises:
            asyncio.CancelledError: If cancelled; the process group has been
                shut down by then.
            ExecutionError: If the shell could not be started.
            ScriptFailedError: If the script exited non-zero.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                self.shell,
                "-c",
                self.source,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=not _WINDOWS,
            )
        except OSError as e:
            raise ExecutionError(self.name, f"failed to start {self.name}: {e}") from e

        log.debug("Started %s (pid %d)", self.name, process.pid)

        try:
            await asyncio.gather(
                _pump(process.stdout, stdout),
                _pump(process.stderr, stderr),
            )
            returncode = await process.wait()
        except asyncio.CancelledError:
            log.debug("Stopping %s (pid %d)", self.name, process.pid)
            await shutdown_process(process, self.interrupt_timeout, self.terminate_timeout)
            raise

        if returncode != 0:
            raise ScriptFailedError(self.name, f"{self.name} failed", returncode=returncode)
