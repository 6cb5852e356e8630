"""
Shared utility functions for the warden service.

This module contains common utilities used across the codebase.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

NIL_UUID = uuid.UUID(int=0)


def new_id() -> uuid.UUID:
    """Generate a new random identifier."""
    return uuid.uuid4()


def parse_uuid(value: Any) -> uuid.UUID | None:
    """
    Parse a UUID from a string (or pass a UUID through).

    Returns None for anything that is not a well-formed, non-nil UUID.
    """
    if isinstance(value, uuid.UUID):
        return value if value != NIL_UUID else None
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        return None
    return parsed if parsed != NIL_UUID else None


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def page_count(total: int, page_size: int) -> int:
    """Number of pages for a listing, never less than one."""
    if page_size <= 0:
        return 1
    return max(1, (total + page_size - 1) // page_size)
