"""
Composition root - builds and owns one set of communication components.

There is no process-wide instance: the application creates a hub at startup
and passes it (or its components) to whatever needs them.

Example:
    >>> hub = create_hub(load_config(["modcomm.yaml"]))
    >>> hub.discover_and_load()
    >>> hub.dispatch(OrderPlaced("orders", {"id": 42}))
    >>> total = hub.apply_filters("order.total", 100)
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .config import CommunicationConfig
from .di.core import Container
from .di.scopes import Lifetime
from .events.core import ModuleEvent
from .events.dispatcher import EventDispatcher, EventType, Listener
from .hooks import HookEntry, HookSystem
from .modules.descriptor import LoadedModule
from .modules.discovery import FilesystemWalker, MemoryProbe, PathWalker
from .modules.manager import ModuleManager
from .registry import ModuleServiceRegistry


@dataclass
class CommunicationHub:
    """The wired components plus shortcuts for the common calls."""

    config: CommunicationConfig
    container: Container
    registry: ModuleServiceRegistry
    dispatcher: EventDispatcher
    hooks: HookSystem
    manager: ModuleManager

    # Events

    def dispatch(self, event: ModuleEvent) -> ModuleEvent:
        return self.dispatcher.dispatch(event)

    def listen(self, event_type: EventType, callback: Callable, priority: Optional[int] = None) -> Listener:
        return self.dispatcher.listen(event_type, callback, priority)

    # Hooks

    def add_action(self, hook: str, callback: Callable, priority: Optional[int] = None) -> HookEntry:
        return self.hooks.add_action(hook, callback, priority)

    def do_action(self, hook: str, *args: Any) -> None:
        self.hooks.do_action(hook, *args)

    def add_filter(self, name: str, callback: Callable, priority: Optional[int] = None) -> HookEntry:
        return self.hooks.add_filter(name, callback, priority)

    def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        return self.hooks.apply_filters(name, value, *args)

    def remove_action(self, hook: str, callback: Callable) -> bool:
        return self.hooks.remove_action(hook, callback)

    def remove_filter(self, name: str, callback: Callable) -> bool:
        return self.hooks.remove_filter(name, callback)

    def has_action(self, hook: str) -> bool:
        return self.hooks.has_actions(hook)

    def has_filter(self, name: str) -> bool:
        return self.hooks.has_filters(name)

    # Services

    def service(self, name: str) -> Optional[Any]:
        """
        Module service by name, or None when nothing is registered under it.

        Errors raised while building a registered service propagate.
        """
        if not self.registry.has(name):
            return None
        return self.registry.get(name)

    def has_service(self, name: str) -> bool:
        return self.registry.has(name)

    def register_service(
        self,
        name: str,
        module: str,
        factory: Callable,
        lifetime: Union[Lifetime, str] = Lifetime.SINGLETON,
    ):
        return self.registry.register(name, module, factory, lifetime)

    # Modules

    def discover_and_load(self, base_path: Union[str, Path, None] = None) -> Dict[str, LoadedModule]:
        return self.manager.discover_and_load_modules(base_path)

    def shutdown(self) -> List[str]:
        return self.manager.shutdown_all()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "events": self.dispatcher.get_stats(),
            "services": self.registry.get_stats(),
            "hooks": self.hooks.get_stats(),
            "container": self.container.get_stats(),
            "modules": self.manager.get_stats(),
        }


def create_hub(
    config: Optional[CommunicationConfig] = None,
    *,
    walker: Optional[PathWalker] = None,
    memory_probe: Optional[MemoryProbe] = None,
    logger: Optional[logging.Logger] = None,
) -> CommunicationHub:
    """
    Build every component once and wire them together.

    Args:
        config: Tunables; defaults when omitted
        walker: Filesystem walker for discovery (default: FilesystemWalker
            bounded by ``config.discovery_max_depth``)
        memory_probe: Callable returning process memory in bytes
        logger: Root logger for all components (each gets a child of it)
    """
    config = config or CommunicationConfig()

    if config.log_level:
        logging.getLogger("modcomm").setLevel(config.log_level.upper())

    def child(name: str) -> Optional[logging.Logger]:
        return logger.getChild(name) if logger is not None else None

    container = Container(max_depth=config.max_resolution_depth, logger=child("di"))
    registry = ModuleServiceRegistry(max_depth=config.max_resolution_depth, logger=child("registry"))
    dispatcher = EventDispatcher(
        default_priority=config.default_listener_priority,
        async_enabled=config.async_dispatch,
        logger=child("events"),
    )
    hooks = HookSystem(default_priority=config.default_hook_priority, logger=child("hooks"))
    manager = ModuleManager(
        registry,
        dispatcher,
        hooks,
        walker or FilesystemWalker(max_depth=config.discovery_max_depth),
        config=config,
        logger=child("modules"),
        memory_probe=memory_probe,
    )

    container.instance(CommunicationConfig, config)
    container.instance(ModuleServiceRegistry, registry)
    container.instance(EventDispatcher, dispatcher)
    container.instance(HookSystem, hooks)
    container.instance(ModuleManager, manager)

    hub = CommunicationHub(
        config=config,
        container=container,
        registry=registry,
        dispatcher=dispatcher,
        hooks=hooks,
        manager=manager,
    )
    container.instance(CommunicationHub, hub)
    return hub


__all__ = ["CommunicationHub", "create_hub"]
