"""
Optimistic concurrency checks for spreadsheet-backed resources.

The check compares what the client last saw against a freshly read copy.
The store has no compare-and-swap, so a writer can still slip in between
the check and the write; this only narrows the window.
"""

import secrets
import string
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil import parser as date_parser

from minimonday.services.errors import VersionConflictError

# Sheets round-trips timestamps with second precision
TIMESTAMP_TOLERANCE = timedelta(seconds=1)

_MUTATION_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class VersionCheck:
    """Outcome of a version comparison."""

    valid: bool
    conflict: Mapping[str, Any] | None = None


def _parse_timestamp(value: Any) -> datetime | None:
    try:
        parsed = date_parser.parse(str(value))
    except (ValueError, OverflowError):
        return None
    # Rows written without an offset are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def check_version(
    resource: Mapping[str, Any] | None,
    payload: Mapping[str, Any],
) -> VersionCheck:
    """
    Compare a mutation payload against the current resource.

    A missing resource, or a payload with neither 'version' nor
    'updated_at', passes. Otherwise a differing version number, or
    updated_at values further apart than TIMESTAMP_TOLERANCE, is a conflict
    and the current resource is returned with it.
    """
    payload_version = payload.get("version")
    payload_updated_at = payload.get("updated_at")

    if resource is None or (payload_version is None and not payload_updated_at):
        return VersionCheck(valid=True)

    resource_version = resource.get("version")
    if payload_version is not None and resource_version is not None:
        if payload_version != resource_version:
            return VersionCheck(valid=False, conflict=resource)

    resource_updated_at = resource.get("updated_at")
    if payload_updated_at and resource_updated_at:
        payload_time = _parse_timestamp(payload_updated_at)
        resource_time = _parse_timestamp(resource_updated_at)
        # An unreadable timestamp on either side is no evidence of a conflict
        if payload_time is None or resource_time is None:
            return VersionCheck(valid=True)
        if abs(payload_time - resource_time) > TIMESTAMP_TOLERANCE:
            return VersionCheck(valid=False, conflict=resource)

    return VersionCheck(valid=True)


def ensure_version(
    resource: Mapping[str, Any] | None,
    payload: Mapping[str, Any],
) -> None:
    """Raise VersionConflictError when check_version reports a conflict."""
    result = check_version(resource, payload)
    if not result.valid and result.conflict is not None:
        raise VersionConflictError(result.conflict)


def generate_client_mutation_id() -> str:
    """Idempotency id for a client mutation: '<epoch ms>-<9 random chars>'."""
    suffix = "".join(secrets.choice(_MUTATION_ID_ALPHABET) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"
