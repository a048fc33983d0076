"""
Render Pipeline
===============

Orchestrates the three toolchain stages over a single workspace:

    WRITING -> TYPESET -> CROP -> RASTERIZE -> DONE

Any stage failure moves the pipeline to FAILED, skipping the remaining
stages. All stages share one deadline, so time spent in an early stage is no
longer available to later ones.

Only the first rasterized page is returned. Multi-page documents are not an
error; the remaining pages are discarded with the workspace.
"""

import io
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from PIL import Image  # type: ignore

from latex_render.config.logging import get_logger
from latex_render.config.settings import Settings
from latex_render.core.rendering.stages import (
    Deadline,
    PipelineStage,
    StageExecutionError,
    StageRunner,
)
from latex_render.core.rendering.workspace import Workspace, WorkspaceManager

logger = get_logger(__name__)

SOURCE_FILE = "document.tex"
TYPESET_OUTPUT = "document.pdf"
CROPPED_OUTPUT = "document-cropped.pdf"
RASTER_PREFIX = "output"
RASTER_OUTPUT = f"{RASTER_PREFIX}-1.png"


class PipelineState(str, Enum):
    """Render pipeline states."""
    WRITING = "writing"
    TYPESET = "typeset"
    CROP = "crop"
    RASTERIZE = "rasterize"
    DONE = "done"
    FAILED = "failed"


class RenderFailedError(Exception):
    """Exception raised when a render stops at a failed stage."""

    def __init__(self, result: "PipelineResult"):
        super().__init__(
            f"Stage {result.failed_stage_index} ({result.failed_stage_name}) failed: {result.reason}"
        )
        self.result = result


@dataclass(frozen=True)
class RenderRequest:
    """Accepted source document and the deadline it must render within."""

    source: bytes
    deadline: Deadline

    def __post_init__(self) -> None:
        if not self.source:
            raise ValueError("Render source must not be empty")


@dataclass(frozen=True)
class PipelineResult:
    """Final image bytes, or the stage at which the render failed."""

    image: Optional[bytes] = None
    failed_stage: Optional[PipelineStage] = None
    diagnostics: str = ""
    reason: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    processing_time: float = 0.0
    state: PipelineState = PipelineState.DONE

    @property
    def ok(self) -> bool:
        return self.image is not None

    @property
    def failed_stage_index(self) -> Optional[int]:
        return self.failed_stage.index if self.failed_stage else None

    @property
    def failed_stage_name(self) -> Optional[str]:
        return self.failed_stage.name if self.failed_stage else None

    def raise_for_failure(self) -> "PipelineResult":
        """Raise RenderFailedError if the render did not complete."""
        if not self.ok:
            raise RenderFailedError(self)
        return self


def build_stages(settings: Settings) -> Tuple[PipelineStage, PipelineStage, PipelineStage]:
    """Build the static stage table from configuration."""
    shell_escape = "-shell-escape" if settings.allow_shell_escape else "-no-shell-escape"
    return (
        PipelineStage(
            index=1,
            name=PipelineState.TYPESET.value,
            executable=settings.pdflatex_command,
            args=("-halt-on-error", "-interaction=nonstopmode", shell_escape, SOURCE_FILE),
            input_name=SOURCE_FILE,
            output_name=TYPESET_OUTPUT,
        ),
        PipelineStage(
            index=2,
            name=PipelineState.CROP.value,
            executable=settings.pdfcrop_command,
            args=(TYPESET_OUTPUT, CROPPED_OUTPUT),
            input_name=TYPESET_OUTPUT,
            output_name=CROPPED_OUTPUT,
        ),
        PipelineStage(
            index=3,
            name=PipelineState.RASTERIZE.value,
            executable=settings.pdftoppm_command,
            args=("-png", "-r", str(settings.raster_dpi), CROPPED_OUTPUT, RASTER_PREFIX),
            input_name=CROPPED_OUTPUT,
            output_name=RASTER_OUTPUT,
        ),
    )


def probe_dimensions(png_data: bytes) -> Tuple[Optional[int], Optional[int]]:
    """Read image dimensions, or (None, None) if the bytes cannot be decoded."""
    try:
        with Image.open(io.BytesIO(png_data)) as image:
            return image.width, image.height
    except Exception as e:
        logger.warning("Could not read raster dimensions", error=str(e))
        return None, None


class RenderPipeline:
    """Sequential typeset, crop and rasterize pipeline."""

    _transitions = {
        PipelineState.WRITING: PipelineState.TYPESET,
        PipelineState.TYPESET: PipelineState.CROP,
        PipelineState.CROP: PipelineState.RASTERIZE,
        PipelineState.RASTERIZE: PipelineState.DONE,
    }

    def __init__(
        self,
        workspaces: WorkspaceManager,
        stages: Tuple[PipelineStage, ...],
        runner: Optional[StageRunner] = None,
    ):
        self.workspaces = workspaces
        self.runner = runner or StageRunner()
        self.stages = {PipelineState(stage.name): stage for stage in stages}
        self.logger = logger.bind(component="render_pipeline")

    async def execute(self, workspace: Workspace, source: bytes, deadline: Deadline) -> PipelineResult:
        """
        Run the pipeline over an already created workspace.

        Args:
            workspace: Workspace owned by this render
            source: LaTeX source bytes
            deadline: Deadline shared by all stages

        Returns:
            PipelineResult with the first page PNG, or the failing stage

        Raises:
            WorkspaceError: If the source cannot be written or the final
                image cannot be read
        """
        started = time.monotonic()
        state = PipelineState.WRITING
        self.workspaces.write_input(workspace, SOURCE_FILE, source)

        while True:
            state = self._transitions[state]
            if state is PipelineState.DONE:
                break

            stage = self.stages[state]
            try:
                await self.runner.run(deadline, workspace, stage)
            except StageExecutionError as e:
                return self._failed(workspace, stage, e.reason, e.output, started)

            if not workspace.resolve(stage.output_name).is_file():
                self.logger.error(
                    "Stage produced no output",
                    stage=stage.name,
                    expected=stage.output_name,
                    workspace_id=workspace.id,
                )
                return self._failed(
                    workspace, stage, f"{stage.output_name} was not produced", "", started
                )

        image = self.workspaces.read_output(workspace, RASTER_OUTPUT)
        width, height = probe_dimensions(image)
        result = PipelineResult(
            image=image,
            width=width,
            height=height,
            processing_time=time.monotonic() - started,
        )
        self.logger.info(
            "Render completed",
            workspace_id=workspace.id,
            file_size=len(image),
            width=width,
            height=height,
            processing_time=round(result.processing_time, 3),
        )
        return result

    async def render(self, request: RenderRequest) -> PipelineResult:
        """Run one render in a fresh workspace that is removed afterwards."""
        async with self.workspaces.workspace() as workspace:
            return await self.execute(workspace, request.source, request.deadline)

    def _failed(
        self,
        workspace: Workspace,
        stage: PipelineStage,
        reason: str,
        diagnostics: str,
        started: float,
    ) -> PipelineResult:
        self.logger.warning(
            "Render failed",
            stage=stage.name,
            stage_index=stage.index,
            reason=reason,
            workspace_id=workspace.id,
        )
        return PipelineResult(
            failed_stage=stage,
            diagnostics=diagnostics,
            reason=reason,
            processing_time=time.monotonic() - started,
            state=PipelineState.FAILED,
        )
