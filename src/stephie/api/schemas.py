"""Pydantic schemas for API responses."""

from typing import Any

from pydantic import BaseModel, Field


class SyncResponse(BaseModel):
    """Result of a full metadata sync."""

    success: bool
    duration_ms: int | None = None
    resource_count: int | None = None
    total_column_count: int | None = None
    last_sync_timestamp: str | None = Field(default=None, description="ISO-8601 UTC")
    code: str | None = None
    error: str | None = None
    details: dict[str, Any] | None = None
