"""
Hook system - named actions (side effects) and filters (value pipelines).

Lower priority numbers run first; equal priorities keep registration order.
Callbacks that raise are logged and skipped. A filter chain carries on from
the value it had just before the failing callback.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

DEFAULT_PRIORITY = 10


@dataclass(frozen=True)
class HookEntry:
    """A callback attached to an action or filter."""

    name: str
    callback: Callable[..., Any]
    priority: int
    sequence: int

    @property
    def sort_key(self):
        return (self.priority, self.sequence)

    @property
    def label(self) -> str:
        return getattr(self.callback, "__qualname__", None) or repr(self.callback)


class HookSystem:
    """
    Actions and filters keyed by name.

    Example:
        >>> hooks = HookSystem()
        >>> hooks.add_filter("invoice.total", lambda total: total * 1.2)
        >>> hooks.apply_filters("invoice.total", 100)
        120.0
    """

    def __init__(self, *, default_priority: int = DEFAULT_PRIORITY, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("modcomm.hooks")
        self.default_priority = default_priority
        self._actions: Dict[str, List[HookEntry]] = {}
        self._filters: Dict[str, List[HookEntry]] = {}
        self._sequence = itertools.count()
        # Filters currently being applied, innermost last
        self._filter_stack: List[str] = []

    def _add(self, table: Dict[str, List[HookEntry]], name: str, callback, priority: Optional[int]) -> HookEntry:
        if not callable(callback):
            raise TypeError(f"Hook callback for '{name}' must be callable")

        entry = HookEntry(
            name=name,
            callback=callback,
            priority=self.default_priority if priority is None else priority,
            sequence=next(self._sequence),
        )
        entries = table.setdefault(name, [])
        entries.append(entry)
        entries.sort(key=lambda e: e.sort_key)
        return entry

    @staticmethod
    def _remove(table: Dict[str, List[HookEntry]], name: str, callback) -> bool:
        entries = table.get(name, [])
        for index, entry in enumerate(entries):
            if entry.callback == callback:
                del entries[index]
                if not entries:
                    del table[name]
                return True
        return False

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def add_action(self, hook: str, callback: Callable[..., Any], priority: Optional[int] = None) -> HookEntry:
        entry = self._add(self._actions, hook, callback, priority)
        self.logger.debug(f"Action {entry.label} added to {hook} (priority {entry.priority})")
        return entry

    def do_action(self, hook: str, *args: Any) -> None:
        """Run every callback of ``hook`` with ``args``."""
        entries = list(self._actions.get(hook, ()))
        if not entries:
            return

        for entry in entries:
            try:
                entry.callback(*args)
            except Exception as e:
                self.logger.error(
                    f"Action {entry.label} failed on {hook}: {e}",
                    exc_info=True,
                    extra={"context": {"hook": hook, "callback": entry.label, "priority": entry.priority}},
                )

        self.logger.debug(f"Action {hook} executed {len(entries)} callback(s)")

    def remove_action(self, hook: str, callback: Callable[..., Any]) -> bool:
        return self._remove(self._actions, hook, callback)

    def remove_all_actions(self, hook: str) -> int:
        return len(self._actions.pop(hook, []))

    def has_actions(self, hook: str) -> bool:
        return bool(self._actions.get(hook))

    def get_actions(self, hook: str) -> List[HookEntry]:
        return list(self._actions.get(hook, ()))

    def get_registered_hooks(self) -> List[str]:
        return list(self._actions)

    def clear_actions(self) -> None:
        self._actions.clear()

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def add_filter(self, name: str, callback: Callable[..., Any], priority: Optional[int] = None) -> HookEntry:
        entry = self._add(self._filters, name, callback, priority)
        self.logger.debug(f"Filter {entry.label} added to {name} (priority {entry.priority})")
        return entry

    def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        """
        Pass ``value`` through every callback of filter ``name``.

        Each callback receives ``(value, *args)`` and returns the new value.
        A filter that is already running returns ``value`` untouched.
        """
        if name in self._filter_stack:
            self.logger.warning(
                f"Recursive apply_filters('{name}') detected; returning value unchanged",
                extra={"context": {"filter": name, "stack": list(self._filter_stack)}},
            )
            return value

        entries = list(self._filters.get(name, ()))
        if not entries:
            return value

        self._filter_stack.append(name)
        try:
            for entry in entries:
                try:
                    value = entry.callback(value, *args)
                except Exception as e:
                    # value still holds the output of the previous callback
                    self.logger.error(
                        f"Filter {entry.label} failed on {name}: {e}",
                        exc_info=True,
                        extra={"context": {"filter": name, "callback": entry.label, "priority": entry.priority}},
                    )
        finally:
            self._filter_stack.pop()

        return value

    def remove_filter(self, name: str, callback: Callable[..., Any]) -> bool:
        return self._remove(self._filters, name, callback)

    def remove_all_filters(self, name: str) -> int:
        return len(self._filters.pop(name, []))

    def has_filters(self, name: str) -> bool:
        return bool(self._filters.get(name))

    def get_filters(self, name: str) -> List[HookEntry]:
        return list(self._filters.get(name, ()))

    def get_registered_filters(self) -> List[str]:
        return list(self._filters)

    def clear_filters(self) -> None:
        self._filters.clear()

    def current_filter(self) -> Optional[str]:
        """Name of the innermost filter being applied, if any."""
        return self._filter_stack[-1] if self._filter_stack else None

    def doing_filter(self, name: Optional[str] = None) -> bool:
        if name is None:
            return bool(self._filter_stack)
        return name in self._filter_stack

    # ------------------------------------------------------------------

    def clear(self) -> None:
        self._actions.clear()
        self._filters.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_hooks": len(self._actions),
            "total_filters": len(self._filters),
            "total_actions": sum(len(entries) for entries in self._actions.values()),
            "total_filter_callbacks": sum(len(entries) for entries in self._filters.values()),
            "current_filter_stack": list(self._filter_stack),
            "hooks_list": list(self._actions),
            "filters_list": list(self._filters),
        }


__all__ = ["HookSystem", "HookEntry", "DEFAULT_PRIORITY"]
