"""Shared enums for the URL shortener application.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["CounterBackend", "HealthStatus", "InsertOutcome", "RequestStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    ERROR = "error"
    NOT_FOUND = "not_found"


class CounterBackend(StrEnum):
    """Throttle counter backends."""

    REDIS = "redis"
    MEMORY = "memory"


class InsertOutcome(StrEnum):
    """Result of an optimistic insert into the mapping store."""

    INSERTED = "inserted"
    URL_CONFLICT = "url_conflict"
    CODE_CONFLICT = "code_conflict"
