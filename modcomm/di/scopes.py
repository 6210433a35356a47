"""
Service lifetimes.
"""

from enum import Enum
from typing import Union


class Lifetime(str, Enum):
    """Service lifetime scopes."""

    SINGLETON = "singleton"  # One instance per binding, created lazily
    TRANSIENT = "transient"  # New instance every resolve

    @classmethod
    def coerce(cls, value: Union["Lifetime", str]) -> "Lifetime":
        """Accept either an enum member or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown lifetime {value!r} (expected one of: {valid})") from None


__all__ = ["Lifetime"]
