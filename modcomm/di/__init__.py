"""
modcomm dependency injection.

Synchronous service container with:
- singleton and transient lifetimes
- constructor auto-wiring from type annotations
- factory, alias and value bindings
- cycle detection and a bounded resolution depth
"""

from .core import (
    Container,
    ResolveCtx,
    ServiceBinding,
    DEFAULT_MAX_DEPTH,
)

from .providers import (
    ClassProvider,
    FactoryProvider,
    ValueProvider,
    AliasProvider,
    Dependency,
    token_key,
    is_instantiable,
)

from .scopes import Lifetime

__all__ = [
    # Core
    "Container",
    "ResolveCtx",
    "ServiceBinding",
    "DEFAULT_MAX_DEPTH",
    # Providers
    "ClassProvider",
    "FactoryProvider",
    "ValueProvider",
    "AliasProvider",
    "Dependency",
    "token_key",
    "is_instantiable",
    # Scopes
    "Lifetime",
]
