"""Pydantic schemas for rate limit policy responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitPolicyResponse(BaseModel):
    """Active fixed-window policy as seen by clients."""

    limit: int = Field(..., description="Admitted requests per window and client.")
    window_ms: int = Field(..., description="Window length in milliseconds.")
    key_prefix: str = Field(..., description="Namespace of limiter keys in the store.")
    reset_expiry_on_change: bool = Field(
        ..., description="Whether admitted requests refresh the stored record's TTL."
    )
