"""
Workspace Manager
=================

Ephemeral per-render directories. Each render gets its own uniquely named
directory which is removed once the render finishes, whatever the outcome.
"""

import shutil
import tempfile
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncGenerator, Optional

from latex_render.config.logging import get_logger

logger = get_logger(__name__)


class WorkspaceError(Exception):
    """Exception raised when a workspace cannot be created, written or read."""

    pass


@dataclass(frozen=True)
class Workspace:
    """Exclusively owned directory holding all files of one render."""

    id: str
    path: Path

    def resolve(self, name: str) -> Path:
        """
        Resolve an artifact name inside the workspace.

        Raises:
            WorkspaceError: If the name points outside the workspace
        """
        candidate = (self.path / name).resolve()
        if candidate.parent != self.path.resolve():
            raise WorkspaceError(f"Artifact name escapes workspace: {name!r}")
        return candidate


class WorkspaceManager:
    """Creates, populates and destroys render workspaces."""

    def __init__(self, root: Optional[Path] = None, prefix: str = "latex-"):
        self.root = root
        self.prefix = prefix
        self.logger = logger.bind(component="workspace_manager")

    def create(self) -> Workspace:
        """
        Allocate a new workspace directory.

        Returns:
            The created workspace

        Raises:
            WorkspaceError: If the filesystem cannot provide a directory
        """
        workspace_id = uuid.uuid4().hex
        try:
            path = Path(
                tempfile.mkdtemp(prefix=f"{self.prefix}{workspace_id[:8]}-", dir=self.root)
            )
        except OSError as e:
            self.logger.error("Failed to create workspace", root=str(self.root), error=str(e))
            raise WorkspaceError(f"Failed to create workspace: {e}") from e

        self.logger.debug("Workspace created", workspace_id=workspace_id, path=str(path))
        return Workspace(id=workspace_id, path=path)

    def destroy(self, workspace: Workspace) -> None:
        """
        Remove the workspace and everything in it.

        Failures are logged and never raised; the response has already been
        decided by the time cleanup runs.
        """
        if not workspace.path.exists():
            return
        try:
            shutil.rmtree(workspace.path)
            self.logger.debug("Workspace destroyed", workspace_id=workspace.id)
        except OSError as e:
            self.logger.warning(
                "Failed to remove workspace",
                workspace_id=workspace.id,
                path=str(workspace.path),
                error=str(e),
            )

    def write_input(self, workspace: Workspace, name: str, data: bytes) -> Path:
        """
        Write an input artifact into the workspace.

        Raises:
            WorkspaceError: If the file cannot be written
        """
        target = workspace.resolve(name)
        try:
            target.write_bytes(data)
        except OSError as e:
            raise WorkspaceError(f"Failed to write {name}: {e}") from e
        return target

    def read_output(self, workspace: Workspace, name: str) -> bytes:
        """
        Read an output artifact from the workspace.

        Raises:
            WorkspaceError: If the file is missing or unreadable
        """
        target = workspace.resolve(name)
        try:
            return target.read_bytes()
        except OSError as e:
            raise WorkspaceError(f"Failed to read {name}: {e}") from e

    @asynccontextmanager
    async def workspace(self) -> AsyncGenerator[Workspace, None]:
        """Create a workspace and destroy it on exit."""
        workspace = self.create()
        try:
            yield workspace
        finally:
            self.destroy(workspace)
