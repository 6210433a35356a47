"""
Module manager - discovery, dependency ordering and lifecycle of modules.

Load sequence for one module:
    DISCOVERED -> LOADING -> instantiate -> check capabilities ->
    register_services -> register_event_listeners -> register_hooks ->
    boot -> LOADED

Any failure in that sequence marks only that module FAILED; the pass goes on
with the next module. Failed modules are never retried automatically.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..config import CommunicationConfig
from ..errors import CommunicationError, ModuleLoadError
from ..events.core import ModuleDisabled, ModuleFailed, ModuleLoaded
from ..events.dispatcher import EventDispatcher
from ..hooks import HookSystem
from ..registry import ModuleServiceRegistry
from .contract import missing_capabilities
from .descriptor import LoadedModule, ModuleDescriptor, ModuleState
from .discovery import MemoryProbe, ModuleDiscovery, PathWalker, file_factory
from .graph import DependencyGraph

ModuleFactory = Callable[[], Any]

# Origin used for lifecycle events published by the manager itself
MANAGER_ORIGIN = "modcomm"


class ModuleManager:
    """
    Discovers, orders, loads and disables modules.

    Modules are created through a factory table keyed by module name.
    ``register_module`` adds explicit entries; discovery fills in a loader for
    every descriptor file it finds, without overriding explicit entries.
    """

    def __init__(
        self,
        registry: ModuleServiceRegistry,
        dispatcher: EventDispatcher,
        hooks: HookSystem,
        walker: PathWalker,
        *,
        config: Optional[CommunicationConfig] = None,
        logger: Optional[logging.Logger] = None,
        memory_probe: Optional[MemoryProbe] = None,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.hooks = hooks
        self.config = config or CommunicationConfig()
        self.logger = logger or logging.getLogger("modcomm.modules")
        self.discovery = ModuleDiscovery(
            walker,
            config=self.config,
            logger=self.logger,
            memory_probe=memory_probe,
        )

        self._descriptors: Dict[str, ModuleDescriptor] = {}
        self._factories: Dict[str, ModuleFactory] = {}
        self._explicit: set = set()
        self._loaded: Dict[str, LoadedModule] = {}
        self._load_order: List[str] = []

    # ------------------------------------------------------------------
    # Discovery and registration
    # ------------------------------------------------------------------

    def discover_modules(self, base_path: Union[str, Path, None] = None) -> Dict[str, ModuleDescriptor]:
        """
        Scan ``base_path`` (default: ``config.modules_path``) for modules.

        New and DISABLED modules get fresh DISCOVERED descriptors; LOADED and
        FAILED ones are left as they are.

        Returns:
            The manager's descriptors for every module found by this scan
        """
        base = Path(base_path if base_path is not None else self.config.modules_path)
        found = self.discovery.discover(base)

        for name, descriptor in found.items():
            existing = self._descriptors.get(name)
            if existing is not None and existing.state not in (ModuleState.DISCOVERED, ModuleState.DISABLED):
                self.logger.debug(f"Module {name} already {existing.state.value}; keeping its descriptor")
                continue

            # Explicit entries keep their own dependencies and path
            if name in self._explicit and existing is not None:
                if existing.state is ModuleState.DISABLED:
                    self._descriptors[name] = self._fresh_descriptor(existing)
                continue

            self._descriptors[name] = descriptor
            self._factories[name] = file_factory(descriptor, self.config.descriptor_class)

        return {name: self._descriptors[name] for name in found}

    def register_module(
        self,
        name: str,
        factory: ModuleFactory,
        dependencies: Iterable[str] = (),
        path: Union[str, Path, None] = None,
    ) -> ModuleDescriptor:
        """
        Add an explicit factory table entry. ``factory`` may be a class or any
        zero-argument callable returning a module instance.
        """
        if not callable(factory):
            raise TypeError(f"Factory for module '{name}' must be callable")

        existing = self._descriptors.get(name)
        if existing is not None and existing.state is ModuleState.LOADED:
            raise CommunicationError(
                f"Module '{name}' is loaded and cannot be re-registered",
                suggestion=f"Disable '{name}' before registering a new factory for it",
            )

        ref = f"{getattr(factory, '__module__', '?')}:{getattr(factory, '__qualname__', repr(factory))}"
        descriptor = ModuleDescriptor(
            name=name,
            path=Path(path) if path is not None else None,
            class_ref=ref,
            dependencies=list(dependencies),
        )
        self._descriptors[name] = descriptor
        self._factories[name] = factory
        self._explicit.add(name)
        return descriptor

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def build_graph(
        self,
        descriptors: Union[Mapping[str, ModuleDescriptor], Iterable[ModuleDescriptor], None] = None,
    ) -> DependencyGraph:
        graph = DependencyGraph()
        for descriptor in self._as_list(descriptors):
            graph.add_node(descriptor.name, descriptor.dependencies)
        return graph

    def resolve_dependencies(
        self,
        descriptors: Union[Mapping[str, ModuleDescriptor], Iterable[ModuleDescriptor], None] = None,
    ) -> List[str]:
        """
        Order module names so that every dependency precedes its dependents.

        Dependencies that name unknown modules are skipped with a warning.

        Raises:
            CircularDependencyError: the declared dependencies form a cycle
        """
        graph = self.build_graph(descriptors)

        for name, missing in graph.missing_dependencies().items():
            self.logger.warning(
                f"Module {name} depends on unknown module(s): {', '.join(missing)}",
                extra={"context": {"module_name": name, "missing": missing}},
            )

        return graph.topological_sort()

    def _as_list(self, descriptors) -> List[ModuleDescriptor]:
        if descriptors is None:
            return list(self._descriptors.values())
        if isinstance(descriptors, Mapping):
            return list(descriptors.values())
        return list(descriptors)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_module(self, descriptor: ModuleDescriptor) -> bool:
        """
        Load one module. Returns True when it reached LOADED.

        Failures never propagate: the descriptor is marked FAILED and its
        ``error`` holds the ModuleLoadError.
        """
        name = descriptor.name
        if descriptor.state is not ModuleState.DISCOVERED:
            self.logger.debug(f"Skipping module {name}: state is {descriptor.state.value}")
            return False

        if name in self._loaded:
            self.logger.warning(f"Module {name} is already loaded; ignoring second descriptor")
            return False

        self._descriptors[name] = descriptor
        self._warn_unloaded_dependencies(descriptor)

        descriptor.transition(ModuleState.LOADING)
        try:
            instance, info = self._activate(descriptor)
        except Exception as e:
            self._mark_failed(descriptor, e)
            return False

        descriptor.transition(ModuleState.LOADED)
        loaded = LoadedModule(name=name, instance=instance, info=info, loaded_at=datetime.now())
        self._loaded[name] = loaded
        self._load_order.append(name)

        self.logger.info(
            f"Module {name} loaded (version {info.get('version', 'unknown')})",
            extra={"context": {"module_name": name, "info": info}},
        )

        self.hooks.do_action("module.loaded", name, instance)
        self.dispatcher.dispatch(ModuleLoaded(MANAGER_ORIGIN, {"module": name, "info": info}))
        return True

    def _activate(self, descriptor: ModuleDescriptor):
        name = descriptor.name
        factory = self._factories.get(name)
        if factory is None and descriptor.file is not None:
            factory = self._factories[name] = file_factory(descriptor, self.config.descriptor_class)
        if factory is None:
            raise ModuleLoadError(name, "no factory registered for this module")

        instance = factory()

        missing = missing_capabilities(instance)
        if missing:
            raise ModuleLoadError(
                name,
                f"missing capability: {', '.join(missing)}",
                missing=missing,
            )

        instance.register_services(self.registry)
        instance.register_event_listeners(self.dispatcher)
        instance.register_hooks(self.hooks)
        instance.boot()

        info = instance.get_module_info() or {}
        return instance, dict(info)

    def _mark_failed(self, descriptor: ModuleDescriptor, cause: Exception) -> None:
        name = descriptor.name
        if isinstance(cause, ModuleLoadError):
            error = cause
        else:
            error = ModuleLoadError(name, f"{type(cause).__name__}: {cause}")
            error.__cause__ = cause

        descriptor.fail(error)

        # Drop whatever the module managed to register before failing
        self.registry.remove_module_services(name)

        self.logger.error(
            f"Failed to load module {name}: {error.reason}",
            exc_info=cause,
            extra={"context": {"module_name": name, "class_ref": descriptor.class_ref}},
        )
        self.dispatcher.dispatch(ModuleFailed(MANAGER_ORIGIN, {"module": name, "error": error.reason}))

    def _warn_unloaded_dependencies(self, descriptor: ModuleDescriptor) -> None:
        for dep in descriptor.dependencies:
            dep_descriptor = self._descriptors.get(dep)
            if dep_descriptor is not None and dep_descriptor.state is not ModuleState.LOADED:
                self.logger.warning(
                    f"Loading module {descriptor.name} although its dependency {dep} "
                    f"is {dep_descriptor.state.value}"
                )

    def discover_and_load_modules(self, base_path: Union[str, Path, None] = None) -> Dict[str, LoadedModule]:
        """
        Discover, order and load every module under ``base_path``.

        Raises:
            CircularDependencyError: discovered modules depend on each other in a cycle
        """
        found = self.discover_modules(base_path)
        if not found:
            return self.get_loaded_modules()

        for name in self.resolve_dependencies(found):
            self.load_module(found[name])

        return self.get_loaded_modules()

    def load_modules(self, modules: Mapping[str, Mapping[str, Any]]) -> Dict[str, LoadedModule]:
        """
        Config-driven loading.

        Example:
            manager.load_modules({
                "clients": {"factory": ClientsModule},
                "billing": {"class": BillingModule, "dependencies": ["clients"]},
                "legacy": {"factory": LegacyModule, "enabled": False},
            })
        """
        registered: List[ModuleDescriptor] = []
        for name, entry in modules.items():
            if not entry.get("enabled", True):
                self.logger.info(f"Module {name} is disabled in configuration; skipping")
                continue

            existing = self._descriptors.get(name)
            if existing is not None and existing.state is ModuleState.LOADED:
                self.logger.warning(f"Module {name} is already loaded; ignoring its configuration entry")
                continue

            factory = entry.get("factory") or entry.get("class")
            if factory is None or not callable(factory):
                reason = (
                    "configuration entry has neither 'factory' nor 'class'"
                    if factory is None
                    else f"configured factory {factory!r} is not callable"
                )
                self._reject_entry(name, entry, ModuleLoadError(name, reason))
                continue

            registered.append(
                self.register_module(
                    name,
                    factory,
                    dependencies=entry.get("dependencies", ()),
                    path=entry.get("path"),
                )
            )

        by_name = {descriptor.name: descriptor for descriptor in registered}
        for name in self.resolve_dependencies(by_name):
            self.load_module(by_name[name])

        return self.get_loaded_modules()

    def _reject_entry(self, name: str, entry: Mapping[str, Any], error: ModuleLoadError) -> None:
        """Record an unusable configuration entry as a FAILED module."""
        descriptor = ModuleDescriptor(name=name, dependencies=list(entry.get("dependencies", ())))
        self._descriptors[name] = descriptor
        descriptor.transition(ModuleState.LOADING)
        self._mark_failed(descriptor, error)

    # ------------------------------------------------------------------
    # Disabling
    # ------------------------------------------------------------------

    def disable_module(self, name: str) -> bool:
        """
        Shut a loaded module down and remove its services.

        Event listeners and hooks the module attached stay attached; callbacks
        on the ``module.disabled`` action receive ``(name, instance)`` and can
        detach them.
        """
        loaded = self._loaded.get(name)
        if loaded is None:
            return False

        dependents = [
            other for other, descriptor in self._descriptors.items()
            if name in descriptor.dependencies and other in self._loaded
        ]
        if dependents:
            self.logger.warning(f"Disabling module {name} while loaded modules depend on it: {', '.join(dependents)}")

        try:
            loaded.instance.shutdown()
        except Exception as e:
            self.logger.error(f"Module {name} failed during shutdown: {e}", exc_info=True)

        removed = self.registry.remove_module_services(name)
        self._descriptors[name].transition(ModuleState.DISABLED)
        del self._loaded[name]
        self._load_order.remove(name)

        self.logger.info(
            f"Module {name} disabled ({removed} service(s) removed)",
            extra={"context": {"module_name": name, "services_removed": removed}},
        )

        self.hooks.do_action("module.disabled", name, loaded.instance)
        self.dispatcher.dispatch(ModuleDisabled(MANAGER_ORIGIN, {"module": name, "services_removed": removed}))
        return True

    def enable_module(self, name: str) -> bool:
        """
        Re-activate a DISABLED module through its factory table entry.

        Disabled descriptors are terminal, so a fresh DISCOVERED descriptor
        replaces it before loading.
        """
        descriptor = self._descriptors.get(name)
        if descriptor is None or descriptor.state is not ModuleState.DISABLED:
            return False

        fresh = self._descriptors[name] = self._fresh_descriptor(descriptor)
        return self.load_module(fresh)

    @staticmethod
    def _fresh_descriptor(descriptor: ModuleDescriptor) -> ModuleDescriptor:
        return ModuleDescriptor(
            name=descriptor.name,
            path=descriptor.path,
            class_ref=descriptor.class_ref,
            dependencies=list(descriptor.dependencies),
            file=descriptor.file,
        )

    def shutdown_all(self) -> List[str]:
        """Disable every loaded module in reverse load order; returns the names disabled."""
        disabled = []
        for name in reversed(list(self._load_order)):
            if self.disable_module(name):
                disabled.append(name)
        return disabled

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_loaded_modules(self) -> Dict[str, LoadedModule]:
        return dict(self._loaded)

    def get_module_info(self, name: str) -> Optional[Dict[str, Any]]:
        loaded = self._loaded.get(name)
        return dict(loaded.info) if loaded else None

    def is_module_loaded(self, name: str) -> bool:
        return name in self._loaded

    def get_descriptor(self, name: str) -> Optional[ModuleDescriptor]:
        return self._descriptors.get(name)

    def get_descriptors(self) -> Dict[str, ModuleDescriptor]:
        return dict(self._descriptors)

    def get_state(self, name: str) -> Optional[ModuleState]:
        descriptor = self._descriptors.get(name)
        return descriptor.state if descriptor else None

    @property
    def load_order(self) -> List[str]:
        return list(self._load_order)

    def get_stats(self) -> Dict[str, Any]:
        states = {state.value: 0 for state in ModuleState}
        for descriptor in self._descriptors.values():
            states[descriptor.state.value] += 1

        modules = {}
        for name, loaded in self._loaded.items():
            info = loaded.info
            modules[name] = {
                "services_count": len(info.get("services_exposed", [])),
                "events_count": len(info.get("events_dispatched", [])),
                "hooks_count": len(info.get("hooks_provided", [])),
                "dependencies": list(info.get("dependencies", self._descriptors[name].dependencies)),
                "loaded_at": loaded.loaded_at.isoformat(),
            }

        return {
            "total_modules": len(self._loaded),
            "states": states,
            "failed": [name for name, d in self._descriptors.items() if d.state is ModuleState.FAILED],
            "modules": modules,
        }


__all__ = ["ModuleManager", "MANAGER_ORIGIN"]
