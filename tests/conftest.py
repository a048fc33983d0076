"""
Test Configuration
==================

Pytest fixtures for the render service: test settings pointing at a fake
toolchain, an isolated workspace root and FastAPI test clients.
"""

from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from latex_render.api.main import create_app
from latex_render.config.settings import Settings
from latex_render.core.rendering.pipeline import RenderPipeline, build_stages
from latex_render.core.rendering.stages import StageRunner
from latex_render.core.rendering.workspace import WorkspaceManager

from tests.utils.helpers import FakeToolchain, make_png

TEST_API_KEY = "test-api-key-123"


@pytest.fixture
def page_png() -> bytes:
    """PNG returned by the fake rasterizer for page 1."""
    return make_png(120, 40)


@pytest.fixture
def fake_toolchain(tmp_path: Path, page_png: bytes) -> FakeToolchain:
    """Fake pdflatex, pdfcrop and pdftoppm executables."""
    return FakeToolchain(tmp_path / "toolchain", page_png)


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """Directory under which render workspaces are created."""
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def make_settings(
    fake_toolchain: FakeToolchain, workspace_root: Path
) -> Callable[..., Settings]:
    """Build test settings, overriding any field by keyword."""

    def _make(**overrides) -> Settings:
        values = {
            "environment": "testing",
            "debug": False,
            "log_level": "DEBUG",
            "api_key": None,
            "worker_limit": 2,
            "command_timeout": 10.0,
            "max_body_bytes": 1 << 20,
            "workspace_root": workspace_root,
            **fake_toolchain.settings_overrides(),
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def test_settings(make_settings: Callable[..., Settings]) -> Settings:
    """Default test settings."""
    return make_settings()


@pytest.fixture
def pipeline(test_settings: Settings, workspace_root: Path) -> RenderPipeline:
    """Render pipeline wired to the fake toolchain."""
    return RenderPipeline(
        WorkspaceManager(root=workspace_root), build_stages(test_settings), StageRunner()
    )


@pytest.fixture
def app(test_settings: Settings) -> FastAPI:
    """FastAPI application for testing."""
    return create_app(test_settings)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """FastAPI test client."""
    with TestClient(app) as test_client:
        yield test_client
