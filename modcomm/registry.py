"""
Module service registry - named services owned by modules.

Modules publish services under string names together with their own module
name, so that a module's services can be listed and removed as a group when
the module is disabled. Factories receive the registry itself, which lets a
service pull its own dependencies from other modules.
"""

import difflib
import logging
from typing import Any, Callable, Dict, List, Optional, Type, Union

from .di.core import DEFAULT_MAX_DEPTH, ResolveCtx, ServiceBinding
from .di.providers import ClassProvider, FactoryProvider, Token, is_instantiable, token_key
from .di.scopes import Lifetime
from .errors import CommunicationError, ResolutionError, ServiceNotFoundError

Factory = Callable[..., Any]

# Marks in-flight constructor calls in the resolution trace
BUILD_SUFFIX = "#build"


class ModuleServiceRegistry:
    """
    Registry of services tagged with their originating module.

    Example:
        >>> registry = ModuleServiceRegistry()
        >>> registry.singleton("billing.invoices", "billing", lambda r: InvoiceStore())
        >>> store = registry.get("billing.invoices")
    """

    def __init__(self, *, max_depth: int = DEFAULT_MAX_DEPTH, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("modcomm.registry")
        self._services: Dict[str, ServiceBinding] = {}
        self._instances: Dict[str, Any] = {}
        self._class_providers: Dict[type, ClassProvider] = {}
        self._ctx = ResolveCtx(max_depth)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        name: Token,
        module: str,
        factory: Factory,
        lifetime: Union[Lifetime, str] = Lifetime.SINGLETON,
    ) -> ServiceBinding:
        """Register ``factory`` under ``name`` on behalf of ``module``."""
        if not callable(factory):
            raise TypeError(f"Factory for service '{token_key(name)}' must be callable")

        key = token_key(name)
        previous = self._services.get(key)
        if previous is not None and previous.module != module:
            self.logger.warning(
                f"Service {key} from module {previous.module} is being replaced by module {module}",
                extra={"context": {"service": key, "previous": previous.module, "module": module}},
            )

        binding = ServiceBinding(key, FactoryProvider(factory), Lifetime.coerce(lifetime), module)
        self._services[key] = binding
        self._instances.pop(key, None)

        self.logger.debug(f"Service registered: {key} ({binding.lifetime.value}) from {module}")
        return binding

    def singleton(self, name: Token, module: str, factory: Factory) -> ServiceBinding:
        return self.register(name, module, factory, Lifetime.SINGLETON)

    def transient(self, name: Token, module: str, factory: Factory) -> ServiceBinding:
        return self.register(name, module, factory, Lifetime.TRANSIENT)

    def register_class(
        self,
        name: Token,
        cls: Type,
        module: str,
        lifetime: Union[Lifetime, str] = Lifetime.SINGLETON,
    ) -> ServiceBinding:
        """Register a class whose constructor is auto-wired from this registry."""
        return self.register(name, module, lambda registry: registry.build(cls), lifetime)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def get(self, name: Token) -> Any:
        """
        Get a service instance.

        Raises:
            ServiceNotFoundError: nothing registered under ``name``
            CircularDependencyError: the service (transitively) requires itself
            DepthExceededError: the resolution chain is too deep
            ResolutionError: the factory failed
        """
        key = token_key(name)

        binding = self._services.get(key)
        if binding is None:
            raise ServiceNotFoundError(
                key,
                candidates=difflib.get_close_matches(key, list(self._services), n=3, cutoff=0.6),
                trace=self._ctx.trace,
            )

        if binding.is_singleton and key in self._instances:
            return self._instances[key]

        instance = self._instantiate(key, binding.concrete)

        if binding.is_singleton:
            self._instances[key] = instance
        return instance

    def resolve(self, token: Token) -> Any:
        """Resolve a registered service, or build an unregistered concrete class."""
        if self.has(token):
            return self.get(token)
        if isinstance(token, type):
            return self.build(token)
        return self.get(token)

    def can_resolve(self, token: Token) -> bool:
        return self.has(token) or is_instantiable(token)

    def build(self, cls: Type) -> Any:
        """Construct ``cls`` with its constructor dependencies taken from the registry."""
        provider = self._class_providers.get(cls)
        if provider is None:
            provider = self._class_providers[cls] = ClassProvider(cls)
        # Constructor frames are keyed apart from binding frames
        return self._instantiate(f"{token_key(cls)}{BUILD_SUFFIX}", provider)

    def _instantiate(self, key: str, provider) -> Any:
        self._ctx.push(key)
        try:
            return provider.instantiate(self)
        except CommunicationError:
            raise
        except Exception as e:
            raise ResolutionError(
                key.removesuffix(BUILD_SUFFIX),
                f"{type(e).__name__}: {e}",
                trace=self._ctx.trace,
            ) from e
        finally:
            self._ctx.pop(key)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def has(self, name: Token) -> bool:
        return token_key(name) in self._services

    def __contains__(self, name: Token) -> bool:
        return self.has(name)

    def get_service_info(self, name: Token) -> Optional[ServiceBinding]:
        return self._services.get(token_key(name))

    def get_available_services(self) -> List[str]:
        return list(self._services)

    def get_services_by_module(self, module: str) -> List[str]:
        return [key for key, binding in self._services.items() if binding.module == module]

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove(self, name: Token) -> bool:
        key = token_key(name)
        if key not in self._services:
            return False

        del self._services[key]
        self._instances.pop(key, None)
        self.logger.debug(f"Service removed: {key}")
        return True

    def remove_module_services(self, module: str) -> int:
        """Remove every service owned by ``module`` and return how many were removed."""
        names = self.get_services_by_module(module)
        for key in names:
            del self._services[key]
            self._instances.pop(key, None)

        if names:
            self.logger.info(
                f"Removed {len(names)} service(s) of module {module}",
                extra={"context": {"module": module, "services": names}},
            )
        return len(names)

    def clear_instances(self) -> None:
        """Forget cached singletons; bindings stay."""
        self._instances.clear()

    def clear(self) -> None:
        self._services.clear()
        self._instances.clear()
        self._class_providers.clear()

    def get_stats(self) -> Dict[str, Any]:
        modules: Dict[str, int] = {}
        singletons = 0
        for binding in self._services.values():
            modules[binding.module] = modules.get(binding.module, 0) + 1
            if binding.is_singleton:
                singletons += 1

        return {
            "total_services": len(self._services),
            "total_modules": len(modules),
            "singleton_services": singletons,
            "transient_services": len(self._services) - singletons,
            "cached_instances": len(self._instances),
            "modules": modules,
        }

    def __len__(self) -> int:
        return len(self._services)


__all__ = ["ModuleServiceRegistry"]
