"""
Request Validation
==================

Content-type and body checks for the render endpoint.
"""

import asyncio
from typing import Optional

from fastapi import HTTPException, Request
from starlette.requests import ClientDisconnect

PLAIN_TEXT = "text/plain"


def is_plain_text(content_type: Optional[str]) -> bool:
    """Accept exactly ``text/plain``, ignoring parameters and case."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == PLAIN_TEXT


def require_plain_text(request: Request) -> None:
    """
    Raises:
        HTTPException: 415 if the body is not plain text
    """
    if not is_plain_text(request.headers.get("content-type")):
        raise HTTPException(status_code=415, detail="Unsupported Content-Type")


async def _read_limited(request: Request, max_bytes: int) -> bytes:
    declared = request.headers.get("content-length")
    if declared is not None:
        try:
            declared_size = int(declared)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid Content-Length")
        if declared_size > max_bytes:
            raise HTTPException(status_code=413, detail="Request body too large")

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > max_bytes:
            raise HTTPException(status_code=413, detail="Request body too large")
    return bytes(body)


async def read_source(request: Request, max_bytes: int, timeout: float) -> bytes:
    """
    Read the LaTeX source from the request body.

    Args:
        request: Incoming request
        max_bytes: Body size ceiling
        timeout: Seconds allowed for receiving the whole body

    Returns:
        Non-empty body bytes

    Raises:
        HTTPException: 413 if oversized, 408 if too slow, 400 if unreadable or empty
    """
    try:
        body = await asyncio.wait_for(_read_limited(request, max_bytes), timeout=timeout)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=408, detail="Timed out reading LaTeX content")
    except ClientDisconnect:
        raise HTTPException(status_code=400, detail="Failed to read LaTeX content")

    if not body:
        raise HTTPException(status_code=400, detail="Empty LaTeX content")
    return body
