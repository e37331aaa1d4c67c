"""Shared enums for the PasteLink text store.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheBackend"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    CAPACITY_EXHAUSTED = "capacity_exhausted"
    ERROR = "error"


class CacheBackend(StrEnum):
    """Where the read cache lives."""

    MEMORY = "memory"
    REDIS = "redis"
