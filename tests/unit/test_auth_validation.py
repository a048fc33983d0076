"""
Unit Tests for Request Checks
=============================

Tests for the authorization predicate, the content-type predicate and the
client-disconnect race used by the render route.
"""

import asyncio

import pytest
from fastapi import HTTPException

from latex_render.api.auth import authorize
from latex_render.api.routes.render import run_until_disconnected
from latex_render.api.validation import is_plain_text


class TestAuthorize:
    """Test API key checks."""

    def test_no_key_configured_accepts_everything(self):
        assert authorize(None) is True
        assert authorize("", bearer_token="wrong") is True

    def test_api_key_header(self):
        assert authorize("secret", api_key="secret") is True
        assert authorize("secret", api_key="other") is False

    def test_bearer_token(self):
        assert authorize("secret", bearer_token="secret") is True
        assert authorize("secret", bearer_token=" secret ") is True
        assert authorize("secret", bearer_token="other") is False

    def test_either_credential_is_enough(self):
        assert authorize("secret", api_key="other", bearer_token="secret") is True
        assert authorize("secret", api_key="secret", bearer_token="other") is True

    def test_missing_credentials_rejected(self):
        assert authorize("secret") is False


class TestIsPlainText:
    """Test content-type matching."""

    @pytest.mark.parametrize(
        "content_type",
        ["text/plain", "text/plain; charset=utf-8", "TEXT/PLAIN", " text/plain ;charset=latin-1"],
    )
    def test_accepted(self, content_type):
        assert is_plain_text(content_type) is True

    @pytest.mark.parametrize(
        "content_type",
        [None, "", "application/json", "text/html", "text/plain-ish", "application/x-latex"],
    )
    def test_rejected(self, content_type):
        assert is_plain_text(content_type) is False


class FakeRequest:
    """Request stand-in whose client disconnects after a delay."""

    def __init__(self, disconnect_after: float):
        self.disconnect_after = disconnect_after

    async def receive(self):
        await asyncio.sleep(self.disconnect_after)
        return {"type": "http.disconnect"}


class TestRunUntilDisconnected:
    """Test racing work against client disconnects."""

    @pytest.mark.asyncio
    async def test_returns_result_when_work_finishes_first(self):
        async def work():
            return "done"

        assert await run_until_disconnected(FakeRequest(10), work()) == "done"

    @pytest.mark.asyncio
    async def test_propagates_work_errors(self):
        async def work():
            raise ValueError("stage exploded")

        with pytest.raises(ValueError, match="stage exploded"):
            await run_until_disconnected(FakeRequest(10), work())

    @pytest.mark.asyncio
    async def test_disconnect_cancels_work(self):
        cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(HTTPException) as exc_info:
            await asyncio.wait_for(run_until_disconnected(FakeRequest(0.05), work()), timeout=5)

        assert exc_info.value.status_code == 499
        assert cancelled.is_set()
