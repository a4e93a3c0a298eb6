"""
HTTP errors for the route handlers that sit on top of the data-access layer.
"""

import math
from typing import Any

from fastapi import HTTPException, status

from minimonday.services.errors import CircuitOpenError, VersionConflictError


class ConflictError(HTTPException):
    """Conflict error exception"""

    def __init__(self, detail: Any = "Resource conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class ServiceUnavailableError(HTTPException):
    """Remote store temporarily unavailable; the client may retry"""

    def __init__(
        self,
        detail: str = "Service temporarily unavailable",
        retry_after: float | None = None,
    ):
        headers = None
        if retry_after is not None:
            headers = {"Retry-After": str(max(1, math.ceil(retry_after)))}
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            headers=headers,
        )


def to_http_exception(error: Exception) -> HTTPException:
    """
    Map a data-access failure onto the response the client should see.

    Version conflicts become 409 with the current resource; everything that
    made the read fail (open circuit, exhausted retries, downstream errors)
    becomes a retryable 503. HTTPExceptions pass through untouched.
    """
    if isinstance(error, HTTPException):
        return error

    if isinstance(error, VersionConflictError):
        return ConflictError(
            detail={
                "error": "Conflict",
                "message": str(error),
                "conflict": dict(error.conflict),
            }
        )

    if isinstance(error, CircuitOpenError):
        return ServiceUnavailableError(retry_after=error.reset_after_seconds)

    return ServiceUnavailableError()
