"""
FastAPI Application
==================

Main FastAPI application for LaTeX to PNG conversion.
Wires the admission gate, workspace manager and render pipeline into the
HTTP routes and maps render failures to HTTP responses.
"""

from contextlib import asynccontextmanager
import shutil
import uuid
from typing import AsyncGenerator, Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from latex_render.api.routes.health import router as health_router
from latex_render.api.routes.render import router as render_router
from latex_render.config.settings import get_settings, Settings
from latex_render.config.logging import get_logger
from latex_render.core.rendering.admission import AdmissionGate
from latex_render.core.rendering.pipeline import RenderFailedError, RenderPipeline, build_stages
from latex_render.core.rendering.stages import StageRunner
from latex_render.core.rendering.workspace import WorkspaceError, WorkspaceManager
from latex_render.models.schemas import ErrorResponse

logger = get_logger(__name__)

ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    408: "REQUEST_TIMEOUT",
    413: "PAYLOAD_TOO_LARGE",
    415: "UNSUPPORTED_MEDIA_TYPE",
    429: "SERVICE_BUSY",
    499: "CLIENT_CLOSED_REQUEST",
}


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    error_code: str,
    details: Optional[dict] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    error_response = ErrorResponse(
        error=message,
        error_code=error_code,
        details=details,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(
        status_code=status_code, content=error_response.model_dump(mode="json"), headers=headers
    )


def _check_toolchain(settings: Settings) -> None:
    """Warn about toolchain executables that cannot be found."""
    for command in (settings.pdflatex_command, settings.pdfcrop_command, settings.pdftoppm_command):
        if shutil.which(command) is None:
            logger.warning("Toolchain executable not found", command=command)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting render service",
        worker_limit=settings.worker_limit,
        max_body_bytes=settings.max_body_bytes,
        command_timeout=settings.command_timeout,
        allow_shell_escape=settings.allow_shell_escape,
        auth_enabled=settings.auth_enabled,
        read_header_timeout=settings.read_header_timeout,
    )
    _check_toolchain(settings)
    try:
        yield
    finally:
        logger.info("Shutting down render service")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    The admission gate and pipeline are created here, once per application,
    and shared with the routes through ``app.state``.

    Args:
        settings: Settings to use instead of the environment

    Returns:
        FastAPI application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Convert LaTeX documents to PNG images",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    workspaces = WorkspaceManager(root=settings.workspace_root)
    app.state.settings = settings
    app.state.admission_gate = AdmissionGate(settings.worker_limit)
    app.state.pipeline = RenderPipeline(workspaces, build_stages(settings), StageRunner())

    app.include_router(render_router)
    app.include_router(health_router)

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next) -> Any:  # type: ignore
        """Add request ID to all requests."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Client errors: structured body, no error logging."""
        logger.debug(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            request_id=getattr(request.state, "request_id", None),
        )
        return _error_response(
            request,
            exc.status_code,
            str(exc.detail),
            ERROR_CODES.get(exc.status_code, str(exc.status_code)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RenderFailedError)
    async def render_failed_handler(request: Request, exc: RenderFailedError) -> JSONResponse:
        """Stage failures are logged with diagnostics and reported opaquely."""
        result = exc.result
        logger.error(
            "Render pipeline failed",
            stage=result.failed_stage_name,
            stage_index=result.failed_stage_index,
            reason=result.reason,
            diagnostics=result.diagnostics,
            request_id=getattr(request.state, "request_id", None),
        )
        return _error_response(
            request,
            500,
            f"{result.failed_stage_name} error",
            "RENDER_FAILED",
            details={"stage": result.failed_stage_name, "reason": result.reason}
            if settings.debug
            else None,
        )

    @app.exception_handler(WorkspaceError)
    async def workspace_error_handler(request: Request, exc: WorkspaceError) -> JSONResponse:
        """Workspace IO failures."""
        logger.error(
            "Workspace error",
            error=str(exc),
            request_id=getattr(request.state, "request_id", None),
        )
        return _error_response(request, 500, "Internal server error", "WORKSPACE_ERROR")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """General exception handler for unexpected errors."""
        logger.error(
            "Unhandled exception",
            exception=str(exc),
            request_id=getattr(request.state, "request_id", None),
            exc_info=True,
        )
        return _error_response(
            request,
            500,
            "Internal server error",
            "INTERNAL_ERROR",
            details={"exception": str(exc)} if settings.debug else None,
        )

    @app.get("/", tags=["General"])
    async def root() -> dict[str, Any]:
        """Root endpoint with basic API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "health_check": "/healthz",
            "endpoints": {
                "render_latex": "POST /render-latex",
                "health": "GET /health",
            },
        }

    return app


app = create_app()


def run_server() -> None:
    """Run the service with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "latex_render.api.main:app",
        host=settings.host,
        port=settings.port,
        timeout_keep_alive=int(settings.idle_timeout),
        log_level=settings.log_level.lower(),
        log_config=None,
        access_log=True,
    )


if __name__ == "__main__":
    run_server()
