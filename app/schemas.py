"""Pydantic schemas for request/response serialization in the URL shortener.

Schema Hierarchy
=================
::
    EncodeRequest (Input)
    └─ original_url: str | None

    EncodeResponse (Output)
    └─ short_url: str

    DecodeResponse (Output)
    └─ original_url: str

    EncodeErrorResponse (Output, 422)
    ├─ error: str
    └─ details: list[str]

    ErrorResponse (Output, 404/500/503)
    └─ error: str

    RateLimitResponse (Output, 429)
    ├─ error: str
    ├─ message: str
    └─ retry_after: int

    HealthResponse (Output)
    ├─ status: HealthStatus
    ├─ database: HealthStatus
    ├─ counter_backend: CounterBackend
    └─ counter_backend_status: HealthStatus

Key Behaviours
===============
- EncodeRequest does not validate the URL itself; the service layer does, so
  rejected URLs produce the ``Failed to encode URL`` body with its details.
- A missing original_url is accepted here and reported as blank by the service.
"""

from typing import Optional

from pydantic import BaseModel, Field

from app.enums import CounterBackend, HealthStatus

__all__ = [
    "DecodeResponse",
    "EncodeErrorResponse",
    "EncodeRequest",
    "EncodeResponse",
    "ErrorResponse",
    "HealthResponse",
    "RateLimitResponse",
]


class EncodeRequest(BaseModel):
    original_url: Optional[str] = None


class EncodeResponse(BaseModel):
    short_url: str


class DecodeResponse(BaseModel):
    original_url: str


class EncodeErrorResponse(BaseModel):
    error: str = "Failed to encode URL"
    details: list[str]


class ErrorResponse(BaseModel):
    error: str


class RateLimitResponse(BaseModel):
    error: str = "Rate limit exceeded"
    message: str = "Too many requests. Please try again later."
    retry_after: int = Field(..., description="Seconds until the current window resets", ge=1)


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    counter_backend: CounterBackend
    counter_backend_status: HealthStatus
