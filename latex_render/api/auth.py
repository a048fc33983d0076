"""
Authentication Utilities
=======================

API key check for the render endpoint. Callers present the configured key
either as ``X-API-Key`` or as an ``Authorization: Bearer`` token.
"""

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

# API key header
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Bearer token
bearer_scheme = HTTPBearer(auto_error=False)


def _matches(expected: str, presented: Optional[str]) -> bool:
    if presented is None:
        return False
    return secrets.compare_digest(expected.encode(), presented.strip().encode())


def authorize(
    expected_key: Optional[str],
    api_key: Optional[str] = None,
    bearer_token: Optional[str] = None,
) -> bool:
    """
    Check presented credentials against the configured key.

    Args:
        expected_key: Configured key; no key means every caller is accepted
        api_key: Value of the ``X-API-Key`` header
        bearer_token: Credentials of an ``Authorization: Bearer`` header

    Returns:
        True if the request is authorized
    """
    if not expected_key:
        return True
    return _matches(expected_key, api_key) or _matches(expected_key, bearer_token)


async def validate_api_key(
    request: Request,
    api_key: Optional[str] = Depends(api_key_header),
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    """
    Validate the request's credentials against the application's key.

    Raises:
        HTTPException: 401 if the credentials are missing or invalid
    """
    expected_key = request.app.state.settings.api_key
    bearer_token = bearer.credentials if bearer else None

    if not authorize(expected_key, api_key, bearer_token):
        raise HTTPException(
            status_code=401, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"}
        )
