"""
Event dispatcher - priority-ordered publish/subscribe between modules.

Listeners run synchronously in descending priority; equal priorities keep
registration order. A failing listener is logged and skipped, so one module
can never break another module's publish call.
"""

import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type, Union

from .core import ModuleEvent, event_key

Callback = Callable[[ModuleEvent], Any]
EventType = Union[str, Type[ModuleEvent]]


@dataclass(frozen=True)
class Listener:
    """A registered listener; ``sequence`` breaks priority ties."""

    event_type: str
    callback: Callback
    priority: int
    sequence: int

    @property
    def sort_key(self):
        return (-self.priority, self.sequence)

    @property
    def name(self) -> str:
        return getattr(self.callback, "__qualname__", None) or repr(self.callback)


class EventDispatcher:
    """
    Synchronous in-process event dispatcher.

    ``set_async`` only records the preference: there is no background
    executor, so dispatch always runs listeners inline.
    """

    def __init__(
        self,
        *,
        default_priority: int = 0,
        async_enabled: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger("modcomm.events")
        self.default_priority = default_priority
        self._listeners: Dict[str, List[Listener]] = {}
        self._sequence = itertools.count()
        self._async_enabled = async_enabled
        self._dispatched = 0
        self._failures = 0

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def listen(self, event_type: EventType, callback: Callback, priority: Optional[int] = None) -> Listener:
        """Subscribe ``callback`` to ``event_type``; higher priority runs first."""
        if not callable(callback):
            raise TypeError("Event listener must be callable")

        key = event_key(event_type)
        listener = Listener(
            event_type=key,
            callback=callback,
            priority=self.default_priority if priority is None else priority,
            sequence=next(self._sequence),
        )

        listeners = self._listeners.setdefault(key, [])
        listeners.append(listener)
        listeners.sort(key=lambda entry: entry.sort_key)

        self.logger.debug(f"Listener {listener.name} registered for {key} (priority {listener.priority})")
        return listener

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def dispatch(self, event: ModuleEvent) -> ModuleEvent:
        """
        Deliver ``event`` to every listener of its exact class.

        Returns:
            The same event, unmodified
        """
        key = event.event_name
        # Snapshot: listeners added or removed mid-dispatch apply to the next dispatch
        listeners = list(self._listeners.get(key, ()))
        self._dispatched += 1

        if self._async_enabled:
            self.logger.debug(f"Async dispatch requested for {key}; no executor available, running inline")

        if not listeners:
            self.logger.debug(f"No listeners for {key}")
            return event

        started = time.perf_counter()
        for listener in listeners:
            self._invoke(listener, event)

        self.logger.debug(
            f"Dispatched {key} to {len(listeners)} listener(s) in "
            f"{(time.perf_counter() - started) * 1000:.2f}ms",
            extra={"context": {"event": key, "origin": event.module_origin}},
        )
        return event

    def _invoke(self, listener: Listener, event: ModuleEvent) -> None:
        started = time.perf_counter()
        try:
            listener.callback(event)
        except Exception as e:
            self._failures += 1
            self.logger.error(
                f"Event listener {listener.name} failed for {listener.event_type}: {e}",
                exc_info=True,
                extra={"context": {
                    "event": listener.event_type,
                    "listener": listener.name,
                    "origin": event.module_origin,
                    "priority": listener.priority,
                }},
            )
            return

        self.logger.debug(
            f"Listener {listener.name} handled {listener.event_type} in "
            f"{(time.perf_counter() - started) * 1000:.2f}ms"
        )

    # ------------------------------------------------------------------
    # Async preference (extension point)
    # ------------------------------------------------------------------

    def set_async(self, enabled: bool) -> None:
        self._async_enabled = bool(enabled)

    @property
    def async_enabled(self) -> bool:
        return self._async_enabled

    @property
    def supports_background(self) -> bool:
        return False

    # ------------------------------------------------------------------
    # Introspection and removal
    # ------------------------------------------------------------------

    def has_listeners(self, event_type: EventType) -> bool:
        return bool(self._listeners.get(event_key(event_type)))

    def get_listeners(self, event_type: EventType) -> List[Listener]:
        """Listeners for ``event_type`` in execution order (a copy)."""
        return list(self._listeners.get(event_key(event_type), ()))

    def get_registered_events(self) -> List[str]:
        return [key for key, listeners in self._listeners.items() if listeners]

    def remove_listener(self, event_type: EventType, callback: Callback) -> bool:
        """Remove the first registration of ``callback``; True if one was found."""
        key = event_key(event_type)
        listeners = self._listeners.get(key, [])
        for index, listener in enumerate(listeners):
            if listener.callback == callback:
                del listeners[index]
                if not listeners:
                    del self._listeners[key]
                return True
        return False

    def remove_listeners(self, event_type: EventType) -> int:
        return len(self._listeners.pop(event_key(event_type), []))

    def clear_listeners(self) -> None:
        self._listeners.clear()

    def get_stats(self) -> Dict[str, Any]:
        events = {key: len(listeners) for key, listeners in self._listeners.items() if listeners}
        return {
            "total_events": len(events),
            "total_listeners": sum(events.values()),
            "async_enabled": self._async_enabled,
            "events": events,
            "dispatched": self._dispatched,
            "listener_failures": self._failures,
        }


__all__ = ["EventDispatcher", "Listener"]
