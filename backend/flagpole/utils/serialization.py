"""Serialization utilities for converting models to API responses."""
from datetime import datetime
from typing import Optional
from uuid import UUID


def serialize_uuid(value: Optional[UUID]) -> Optional[str]:
    """
    Serialize UUID to string.

    Args:
        value: UUID value or None

    Returns:
        String representation or None
    """
    return str(value) if value else None


def serialize_datetime(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize datetime to ISO format string.

    Args:
        value: Datetime value or None

    Returns:
        ISO format string or None
    """
    return value.isoformat() if value else None
