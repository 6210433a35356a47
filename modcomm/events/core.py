"""
Module events - immutable messages published between modules.
"""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Type, Union


def event_key(event_type: Union[str, Type["ModuleEvent"]]) -> str:
    """Key under which listeners for ``event_type`` are stored."""
    if isinstance(event_type, str):
        return event_type
    if isinstance(event_type, type):
        return f"{event_type.__module__}.{event_type.__qualname__}"
    raise TypeError(f"Event type must be a class or str, got {type(event_type).__name__}")


@dataclass(frozen=True)
class ModuleEvent:
    """
    Base class for events exchanged between modules.

    Subclass it per event kind; listeners are matched on the exact class.

    Example:
        >>> class PaymentProcessed(ModuleEvent):
        ...     pass
        >>> event = PaymentProcessed("payments", {"amount": 120})
        >>> event.get("amount")
        120
    """

    module_origin: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        # Detach from the caller's dict and expose it read-only
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def __hash__(self) -> int:
        return hash((type(self), self.module_origin, self.timestamp, tuple(sorted(self.payload))))

    @property
    def event_name(self) -> str:
        return event_key(type(self))

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def has(self, key: str) -> bool:
        return key in self.payload

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_name,
            "module_origin": self.module_origin,
            "payload": dict(self.payload),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModuleEvent":
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)

        kwargs: Dict[str, Any] = {
            "module_origin": data["module_origin"],
            "payload": data.get("payload") or {},
        }
        if timestamp is not None:
            kwargs["timestamp"] = timestamp
        return cls(**kwargs)


# Lifecycle events published by the module manager

class ModuleLoaded(ModuleEvent):
    """A module finished registering and booting."""


class ModuleFailed(ModuleEvent):
    """A module failed to load; payload carries ``module`` and ``error``."""


class ModuleDisabled(ModuleEvent):
    """A loaded module was shut down and its services removed."""


__all__ = [
    "ModuleEvent",
    "ModuleLoaded",
    "ModuleFailed",
    "ModuleDisabled",
    "event_key",
]
