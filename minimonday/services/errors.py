"""
Data-access layer exceptions.

Failures raised by a wrapped fetcher are never converted into these types;
they reach the caller unchanged.
"""

from collections.abc import Mapping
from typing import Any


class ServiceError(Exception):
    """Base exception for data-access layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, the operation was not invoked."""

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for endpoint '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
        )


class VersionConflictError(ServiceError):
    """Resource changed since the client last read it."""

    def __init__(self, conflict: Mapping[str, Any], service_id: str | None = None):
        self.conflict = conflict
        resource_id = conflict.get("id", "?")
        super().__init__(
            f"Resource '{resource_id}' was modified by another user",
            service_id=service_id,
        )
