"""Response models for the request throttle service."""

from typing import List, Optional

from pydantic import BaseModel, Field


class RateLimitErrorResponse(BaseModel):
    """Body returned with HTTP 429."""

    success: bool = False
    message: str
    retryAfter: int = Field(..., ge=0, description="Seconds until the window resets")
    error: Optional[str] = None
    cooldownSeconds: Optional[int] = None


class ErrorResponse(BaseModel):
    """Generic failure envelope."""

    success: bool = False
    message: str


class PolicyInfo(BaseModel):
    """Public description of a policy."""

    name: str
    limit: int
    window_ms: int
    key_prefix: str
    admin_bypass: bool = False
    admin_limit: Optional[int] = None


class PolicyListResponse(BaseModel):
    policies: List[PolicyInfo]


class QuotaResponse(BaseModel):
    """Body returned when a throttle check admits the request."""

    success: bool = True
    policy: str
    limit: int
    remaining: int
    reset: int


class HealthResponse(BaseModel):
    status: str = "ok"
    entries: int = 0
