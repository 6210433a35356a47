"""
modcomm events - immutable module events and a priority-ordered dispatcher.
"""

from .core import (
    ModuleEvent,
    ModuleLoaded,
    ModuleFailed,
    ModuleDisabled,
    event_key,
)

from .dispatcher import (
    EventDispatcher,
    Listener,
)

__all__ = [
    "ModuleEvent",
    "ModuleLoaded",
    "ModuleFailed",
    "ModuleDisabled",
    "event_key",
    "EventDispatcher",
    "Listener",
]
