"""
External publishing tool wrapper.

Runs the host tool's import command as an asyncio subprocess against one
artifact file, with a per-invocation timeout, and captures its output for
the classifier. The wrapper never decides success itself.

Architecture:
    ::

        ExternalPublisher(command=["n8n", "import:workflow"])
            │
            ├── build_command(artifact, activate)
            │     n8n import:workflow --input=<artifact> --force [--activate]
            │
            └── publish(artifact, activate, timeout)     (async)
                  asyncio.create_subprocess_exec
                  wait_for(communicate(), timeout) ── TimeoutError → kill process group
                  └── ToolInvocation(exit_code, stdout, stderr, timed_out)

    ====================  =========================================
    Condition             Result
    ====================  =========================================
    tool exits            ToolInvocation with captured text
    timeout exceeded      process group killed, ``timed_out=True``
    executable missing    PublisherNotFoundError (infrastructure)
    ====================  =========================================

Tags:
    subprocess, asyncio, external-tool, publish, flow-spine
"""

from __future__ import annotations

import asyncio
import os
import shutil
import signal
import time
from collections.abc import Sequence
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

from flowspine.core.errors import InfrastructureError, PublisherNotFoundError
from flowspine.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_COMMAND = ("n8n", "import:workflow")
KILL_DRAIN_SECONDS = 2.0


@dataclass(frozen=True)
class ToolInvocation:
    """Captured result of one external tool run."""

    command: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    timed_out: bool = False
    duration_seconds: float = 0.0


class ExternalPublisher:
    """Invoke the external publishing tool.

    Parameters
    ----------
    command
        Argv prefix of the import command.
    input_flag
        Format string for the artifact argument (``{path}`` placeholder).
    upsert_flag
        Flag making a document with a known id update the remote entry.
    activate_flag
        Flag appended when activation is requested.
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_COMMAND,
        *,
        input_flag: str = "--input={path}",
        upsert_flag: str = "--force",
        activate_flag: str = "--activate",
    ) -> None:
        if not command:
            raise ValueError("publisher command must not be empty")
        self.command = tuple(command)
        self.input_flag = input_flag
        self.upsert_flag = upsert_flag
        self.activate_flag = activate_flag

    @property
    def executable(self) -> str:
        return self.command[0]

    def build_command(self, artifact: str | Path, *, activate: bool = False) -> list[str]:
        argv = [*self.command, self.input_flag.format(path=artifact)]
        if self.upsert_flag:
            argv.append(self.upsert_flag)
        if activate and self.activate_flag:
            argv.append(self.activate_flag)
        return argv

    def is_available(self) -> bool:
        return shutil.which(self.executable) is not None

    def ensure_available(self) -> None:
        """Raise PublisherNotFoundError when the executable is not on PATH."""
        if not self.is_available():
            raise PublisherNotFoundError(self.executable)

    async def publish(
        self,
        artifact: str | Path,
        *,
        activate: bool = False,
        timeout: float = 30.0,
    ) -> ToolInvocation:
        """Run the import command against ``artifact``.

        Raises:
            PublisherNotFoundError: The executable cannot be started.
            InfrastructureError: Any other OS-level failure to spawn it.
        """
        argv = self.build_command(artifact, activate=activate)
        started = time.monotonic()
        logger.debug("publisher.invoke", command=" ".join(argv), timeout=timeout)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise PublisherNotFoundError(self.executable, cause=exc)
        except PermissionError as exc:
            raise InfrastructureError(
                f"Publishing tool is not executable: {self.executable}", cause=exc
            ).with_context(command=" ".join(argv))

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            _kill_process_group(process)
            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=KILL_DRAIN_SECONDS)
            except TimeoutError:
                # a detached descendant still holds the pipes
                stdout, stderr = b"", b""
            duration = time.monotonic() - started
            logger.warning("publisher.timeout", artifact=str(artifact), timeout=timeout)
            return ToolInvocation(
                command=tuple(argv),
                exit_code=process.returncode,
                stdout=stdout.decode("utf-8", errors="replace"),
                stderr=stderr.decode("utf-8", errors="replace"),
                timed_out=True,
                duration_seconds=duration,
            )

        duration = time.monotonic() - started
        logger.debug(
            "publisher.exited",
            artifact=str(artifact),
            exit_code=process.returncode,
            duration_seconds=round(duration, 3),
        )
        return ToolInvocation(
            command=tuple(argv),
            exit_code=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_seconds=duration,
        )


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill the tool and every descendant sharing its session.

    Wrappers such as ``npx`` or ``sh -c`` leave grandchildren that keep the
    output pipes open after the direct child dies.
    """
    with suppress(ProcessLookupError):
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
