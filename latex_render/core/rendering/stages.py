"""
Stage Runner
============

Runs one external conversion tool inside a workspace under a deadline shared
by every stage of a render, capturing stdout and stderr together for
diagnostics.
"""

import asyncio
import os
import signal
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from latex_render.config.logging import get_logger
from latex_render.core.rendering.workspace import Workspace

logger = get_logger(__name__)


class Deadline:
    """Monotonic expiry shared by all stages of one render."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        self.expires_at = time.monotonic() + timeout

    @classmethod
    def within(cls, parent: "Deadline", timeout: float) -> "Deadline":
        """A deadline of ``timeout`` seconds that never outlives ``parent``."""
        return cls(min(timeout, parent.remaining()))

    def remaining(self) -> float:
        """Seconds left before expiry, never negative."""
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


@dataclass(frozen=True)
class PipelineStage:
    """A named external tool invocation with fixed input and output artifacts."""

    index: int
    name: str
    executable: str
    args: Tuple[str, ...]
    input_name: str
    output_name: str

    @property
    def command(self) -> Tuple[str, ...]:
        return (self.executable, *self.args)


class StageExecutionError(Exception):
    """Exception raised when a stage fails to start, exits non-zero or times out."""

    def __init__(
        self,
        stage: PipelineStage,
        reason: str,
        output: str = "",
        returncode: Optional[int] = None,
    ):
        super().__init__(f"{stage.name} failed: {reason}")
        self.stage = stage
        self.reason = reason
        self.output = output
        self.returncode = returncode


class StageRunner:
    """Executes pipeline stages as subprocesses."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="stage_runner")

    async def run(self, deadline: Deadline, workspace: Workspace, stage: PipelineStage) -> str:
        """
        Run a stage to completion within the remaining deadline.

        Args:
            deadline: Deadline shared across the whole pipeline
            workspace: Workspace used as the working directory
            stage: Stage to execute

        Returns:
            Combined stdout and stderr of the tool

        Raises:
            StageExecutionError: If the tool cannot start, exits non-zero,
                or the deadline expires first
        """
        if deadline.expired:
            raise StageExecutionError(stage, "deadline expired before start")

        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *stage.command,
                cwd=workspace.path,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            self.logger.error(
                "Stage could not be started",
                stage=stage.name,
                command=list(stage.command),
                error=str(e),
            )
            raise StageExecutionError(stage, f"could not start {stage.executable}: {e}") from e

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=deadline.remaining())
        except asyncio.TimeoutError:
            await self._terminate(process)
            self.logger.error(
                "Stage timed out",
                stage=stage.name,
                command=list(stage.command),
                timeout=deadline.timeout,
            )
            raise StageExecutionError(stage, f"timed out after {deadline.timeout:g}s")
        except asyncio.CancelledError:
            await self._terminate(process)
            self.logger.info("Stage cancelled", stage=stage.name)
            raise

        output = stdout.decode("utf-8", errors="replace")
        duration = time.monotonic() - started

        if process.returncode != 0:
            self.logger.error(
                "Stage failed",
                stage=stage.name,
                command=list(stage.command),
                returncode=process.returncode,
                output=output,
            )
            raise StageExecutionError(
                stage, f"exited with status {process.returncode}", output, process.returncode
            )

        self.logger.debug("Stage completed", stage=stage.name, duration=round(duration, 3))
        return output

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Kill the stage's process group and reap it."""
        if process.returncode is None:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        await asyncio.shield(process.wait())
