"""
Pydantic Models and Schemas
===========================

API response models and render metadata.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response body returned for every failed request."""
    error: str = Field(..., description="Human readable error message")
    error_code: str = Field(..., description="Stable machine readable error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Extra detail, debug mode only")
    request_id: Optional[str] = Field(None, description="Request identifier")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HealthStatus(BaseModel):
    """Service health and capacity."""
    status: str = Field(..., description="Overall status")
    version: str = Field(..., description="Application version")
    active_renders: int = Field(..., ge=0, description="Renders currently holding a slot")
    max_concurrent: int = Field(..., ge=1, description="Admission limit")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RenderOutcome(BaseModel):
    """Metadata describing one successful render."""
    file_size: int = Field(..., ge=0, description="PNG size in bytes")
    width: Optional[int] = Field(None, gt=0, description="Image width in pixels")
    height: Optional[int] = Field(None, gt=0, description="Image height in pixels")
    processing_time: float = Field(..., ge=0, description="Pipeline wall time in seconds")
