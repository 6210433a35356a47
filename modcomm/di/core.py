"""
Core DI primitives: ServiceBinding, ResolveCtx, Container.

The container maps abstract names (strings or types) to concretes and builds
instances on demand:
- types are auto-wired through constructor introspection
- callables are invoked as factories with the container
- strings alias another binding
- anything else is returned as a value
"""

import difflib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..errors import (
    CircularDependencyError,
    CommunicationError,
    DepthExceededError,
    ResolutionError,
    ServiceNotFoundError,
)
from .providers import Token, ValueProvider, is_instantiable, provider_for, token_key
from .scopes import Lifetime

DEFAULT_MAX_DEPTH = 10


@dataclass
class ServiceBinding:
    """A registered service: name, concrete, lifetime and owning module."""

    name: str
    concrete: Any
    lifetime: Lifetime = Lifetime.TRANSIENT
    module: Optional[str] = None
    registered_at: datetime = field(default_factory=datetime.now)

    @property
    def is_singleton(self) -> bool:
        return self.lifetime is Lifetime.SINGLETON

    def to_dict(self) -> Dict[str, Any]:
        concrete = self.concrete
        if isinstance(concrete, ValueProvider):
            concrete_repr = "<instance>"
        else:
            concrete_repr = getattr(concrete, "__qualname__", None) or repr(concrete)
        return {
            "name": self.name,
            "concrete": concrete_repr,
            "lifetime": self.lifetime.value,
            "module": self.module,
            "registered_at": self.registered_at.isoformat(),
        }


class ResolveCtx:
    """
    In-flight resolution set.

    Names are pushed before construction and popped in ``finally`` so that a
    failed build never leaves a stale mark behind.
    """

    __slots__ = ("max_depth", "_stack")

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth
        self._stack: List[str] = []

    def push(self, key: str) -> None:
        if key in self._stack:
            start = self._stack.index(key)
            raise CircularDependencyError(key, self._stack[start:] + [key])
        if len(self._stack) >= self.max_depth:
            raise DepthExceededError(key, self.max_depth, self._stack + [key])
        self._stack.append(key)

    def pop(self, key: str) -> None:
        if self._stack and self._stack[-1] == key:
            self._stack.pop()
        elif key in self._stack:
            self._stack.remove(key)

    @property
    def trace(self) -> List[str]:
        return list(self._stack)

    def __contains__(self, key: str) -> bool:
        return key in self._stack

    def __len__(self) -> int:
        return len(self._stack)


class Container:
    """
    Service container with singleton/transient bindings and auto-wiring.

    Not thread-safe: a multi-threaded host must serialize access.
    """

    def __init__(self, *, max_depth: int = DEFAULT_MAX_DEPTH, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("modcomm.di")
        self._bindings: Dict[str, ServiceBinding] = {}
        self._instances: Dict[str, Any] = {}
        self._providers: Dict[str, Any] = {}
        self._ctx = ResolveCtx(max_depth)
        self._resolutions = 0

        self.instance(Container, self)

    @property
    def max_depth(self) -> int:
        return self._ctx.max_depth

    @property
    def resolving(self) -> List[str]:
        """Names currently being resolved, outermost first."""
        return self._ctx.trace

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        name: Token,
        concrete: Any = None,
        lifetime: Union[Lifetime, str] = Lifetime.TRANSIENT,
        *,
        module: Optional[str] = None,
    ) -> ServiceBinding:
        """
        Bind ``name`` to ``concrete``. Re-registration replaces the binding
        and drops any instance cached for the old one.
        """
        key = token_key(name)
        if concrete is None:
            if not isinstance(name, type):
                raise ValueError(f"A concrete is required when registering '{key}' by name")
            concrete = name

        if key in self._bindings:
            self.logger.debug(f"Replacing binding for {key}")

        binding = ServiceBinding(key, concrete, Lifetime.coerce(lifetime), module)
        self._bindings[key] = binding
        self._instances.pop(key, None)
        self._providers.pop(key, None)

        self.logger.debug(
            f"Registered {binding.lifetime.value} binding {key}",
            extra={"context": {"service": key, "module": module}},
        )
        return binding

    def singleton(self, name: Token, concrete: Any = None, **kwargs) -> ServiceBinding:
        return self.register(name, concrete, Lifetime.SINGLETON, **kwargs)

    def transient(self, name: Token, concrete: Any = None, **kwargs) -> ServiceBinding:
        return self.register(name, concrete, Lifetime.TRANSIENT, **kwargs)

    def instance(self, name: Token, obj: Any) -> ServiceBinding:
        """Register a pre-built object as a singleton."""
        binding = self.register(name, ValueProvider(obj), Lifetime.SINGLETON)
        self._instances[binding.name] = obj
        return binding

    def register_services(self, services: Union[Mapping[Token, Any], Iterable[Tuple[Token, Any]]]) -> None:
        """
        Bulk registration.

        Values are either a concrete (registered transient) or a mapping with
        ``concrete`` and optional ``lifetime`` keys.
        """
        items = services.items() if isinstance(services, Mapping) else services
        for name, spec in items:
            if isinstance(spec, Mapping):
                self.register(
                    name,
                    spec.get("concrete"),
                    spec.get("lifetime", Lifetime.TRANSIENT),
                    module=spec.get("module"),
                )
            else:
                self.register(name, spec)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, name: Token) -> Any:
        """
        Resolve ``name`` to an instance.

        Raises:
            CircularDependencyError: name is already being resolved
            DepthExceededError: resolution chain reached max_depth
            ServiceNotFoundError: unbound string name
            ResolutionError: construction failed
        """
        key = token_key(name)

        cached = self._instances.get(key)
        if cached is not None or key in self._instances:
            return cached

        self._ctx.push(key)
        try:
            binding = self._bindings.get(key)
            if binding is None:
                if not isinstance(name, type):
                    raise ServiceNotFoundError(
                        key,
                        candidates=self._candidates(key),
                        trace=self._ctx.trace,
                    )
                provider = self._provider(key, name)
            else:
                provider = self._provider(key, binding.concrete)

            try:
                instance = provider.instantiate(self)
            except CommunicationError:
                raise
            except Exception as e:
                raise ResolutionError(
                    key,
                    f"{type(e).__name__}: {e}",
                    trace=self._ctx.trace,
                ) from e

            if binding is not None and binding.is_singleton:
                self._instances[key] = instance

            self._resolutions += 1
            return instance
        finally:
            self._ctx.pop(key)

    get = resolve

    def can_resolve(self, name: Token) -> bool:
        key = token_key(name)
        if key in self._bindings or key in self._instances:
            return True
        return is_instantiable(name)

    def _provider(self, key: str, concrete: Any):
        provider = self._providers.get(key)
        if provider is None:
            provider = provider_for(concrete)
            self._providers[key] = provider
        return provider

    def _candidates(self, key: str) -> List[str]:
        return difflib.get_close_matches(key, list(self._bindings), n=3, cutoff=0.6)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_registered(self, name: Token) -> bool:
        return token_key(name) in self._bindings

    def __contains__(self, name: Token) -> bool:
        return self.is_registered(name)

    def get_binding(self, name: Token) -> Optional[ServiceBinding]:
        return self._bindings.get(token_key(name))

    def get_stats(self) -> Dict[str, Any]:
        singletons = sum(1 for b in self._bindings.values() if b.is_singleton)
        return {
            "total_bindings": len(self._bindings),
            "singleton_bindings": singletons,
            "transient_bindings": len(self._bindings) - singletons,
            "cached_instances": len(self._instances),
            "resolutions": self._resolutions,
            "resolving": self._ctx.trace,
            "max_depth": self._ctx.max_depth,
        }

    def flush(self) -> None:
        """Drop every binding and cached instance (the container stays bound to itself)."""
        self._bindings.clear()
        self._instances.clear()
        self._providers.clear()
        self._resolutions = 0
        self.instance(Container, self)
        self.logger.debug("Container flushed")


__all__ = ["ServiceBinding", "ResolveCtx", "Container", "DEFAULT_MAX_DEPTH"]
