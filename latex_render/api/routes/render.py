"""
Render Routes
=============

Synchronous LaTeX to PNG endpoint.

Request handling order is fixed: content type, authorization, admission,
body read, workspace, pipeline. Checks before admission never hold a slot;
once a slot is taken it is released on every exit path.
"""

import asyncio
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from latex_render.api.auth import validate_api_key
from latex_render.api.validation import read_source, require_plain_text
from latex_render.config.logging import get_logger
from latex_render.config.settings import Settings
from latex_render.core.rendering.admission import AdmissionGate
from latex_render.core.rendering.pipeline import RenderPipeline, RenderRequest
from latex_render.core.rendering.stages import Deadline
from latex_render.models.schemas import RenderOutcome

logger = get_logger(__name__)

router = APIRouter(tags=["Rendering"])

T = TypeVar("T")

CLIENT_CLOSED_REQUEST = 499


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def run_until_disconnected(request: Request, work: Awaitable[T]) -> T:
    """
    Await ``work`` unless the client goes away first.

    A disconnect cancels the work, which terminates any running tool.

    Raises:
        HTTPException: 499 if the client disconnected before completion
    """
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()
        await asyncio.gather(task, watcher, return_exceptions=True)

    if task.cancelled():
        logger.info("Client disconnected, render cancelled")
        raise HTTPException(status_code=CLIENT_CLOSED_REQUEST, detail="Client closed request")
    return task.result()


@router.post(
    "/render-latex",
    response_class=Response,
    dependencies=[Depends(require_plain_text), Depends(validate_api_key)],
    responses={200: {"content": {"image/png": {}}, "description": "Rendered first page"}},
)
async def render_latex(request: Request) -> Response:
    """
    Render a LaTeX document to PNG.

    The body is the raw LaTeX source sent as ``text/plain``. Only the first
    page of the typeset document is returned.
    """
    settings: Settings = request.app.state.settings
    gate: AdmissionGate = request.app.state.admission_gate
    pipeline: RenderPipeline = request.app.state.pipeline
    request_deadline = Deadline(settings.write_timeout)

    if not await gate.try_acquire():
        raise HTTPException(status_code=429, detail="Service busy")
    try:
        source = await read_source(request, settings.max_body_bytes, settings.read_timeout)
        render_request = RenderRequest(
            source=source,
            deadline=Deadline.within(request_deadline, settings.command_timeout),
        )
        logger.info(
            "Render requested",
            content_length=len(source),
            request_id=getattr(request.state, "request_id", None),
        )
        result = await run_until_disconnected(request, pipeline.render(render_request))
    finally:
        gate.release()

    result.raise_for_failure()
    outcome = RenderOutcome(
        file_size=len(result.image),
        width=result.width,
        height=result.height,
        processing_time=result.processing_time,
    )
    logger.info(
        "Render served",
        request_id=getattr(request.state, "request_id", None),
        **outcome.model_dump(),
    )
    return Response(content=result.image, media_type="image/png")
