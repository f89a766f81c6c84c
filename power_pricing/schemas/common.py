"""Common Pydantic schemas"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response schema"""
    error: str = Field(..., description="Error message")
    code: Optional[str] = Field(None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    trace_id: Optional[str] = Field(None, description="Request trace ID")


class RateLimitedResponse(BaseModel):
    """Body returned with HTTP 429"""
    error: str = Field(default="Too many requests", description="Error message")
    code: str = Field(default="RATE_LIMITED", description="Error code")
    retryAfter: Optional[int] = Field(None, description="Seconds until the window resets")
