"""
PhotoBazaar Backend: Shared Schemas
====================================

What:  The response envelope, pagination block, error and health shapes, and
       the CamelModel base every API schema derives from.
How:   Python attributes stay snake_case; aliases make the JSON camelCase.
       FastAPI serializes response models by alias, and populate_by_name lets
       request bodies use either spelling.

Envelope:
    {"success": true, "message": "...", "data": {...}}
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(CamelModel, Generic[T]):
    """Success envelope returned by every JSON endpoint."""

    success: bool = Field(default=True)
    message: Optional[str] = Field(default=None, description="Human-readable outcome")
    data: Optional[T] = Field(default=None)


class Pagination(CamelModel):
    current_page: int = Field(description="1-based page number")
    total_pages: int
    total_items: int
    items_per_page: int
    has_next: bool
    has_prev: bool


class ErrorResponse(BaseModel):
    """
    Shape of every error body (documentation only; handlers build it directly).

    Example:
        {
            "success": false,
            "error": "download_limit_exceeded",
            "message": "Download limit reached. This purchase allows 3 downloads.",
            "details": {"max_downloads": 3},
            "request_id": "a1b2c3d4"
        }
    """

    success: bool = Field(default=False)
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
