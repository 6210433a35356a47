"""
Provider implementations - strategies for turning a binding into an instance.

Every provider exposes ``instantiate(owner)`` where ``owner`` is the container
or registry doing the resolving. Owners provide ``resolve(token)`` and
``can_resolve(token)``.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, Type, TypeVar, Union, get_args, get_origin

from ..errors import ResolutionError

T = TypeVar("T")

Token = Union[str, Type[Any]]

# Parameters annotated with these never trigger recursive construction.
_PRIMITIVES = frozenset({
    str, bytes, bytearray, int, float, complex, bool,
    list, dict, tuple, set, frozenset, object, type(None),
})


class Resolver(Protocol):
    """Anything that can resolve a token: the container or the registry."""

    def resolve(self, token: Token) -> Any: ...

    def can_resolve(self, token: Token) -> bool: ...


def token_key(token: Token) -> str:
    """Normalize a token to its string key (types become module.qualname)."""
    if isinstance(token, str):
        return token
    if isinstance(token, type):
        return f"{token.__module__}.{token.__qualname__}"
    raise TypeError(f"Service names must be str or type, got {type(token).__name__}")


def is_instantiable(cls: Any) -> bool:
    """True for concrete classes the auto-wirer may construct."""
    if not isinstance(cls, type) or cls is Any or cls in _PRIMITIVES:
        return False
    if inspect.isabstract(cls) or getattr(cls, "_is_protocol", False):
        return False
    return True


@dataclass(frozen=True)
class Dependency:
    """One constructor parameter as seen by the auto-wirer."""

    name: str
    token: Optional[Token]
    default: Any = inspect.Parameter.empty
    optional: bool = False
    positional_only: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty


class ClassProvider:
    """
    Provider that instantiates a class by resolving constructor dependencies.

    Rules per parameter:
    - class annotation: resolved through the owner when it is bound or
      instantiable, otherwise the default is used
    - Optional[X]: like X, falling back to the default (or None)
    - string annotation: resolved when the owner has a binding of that name
    - primitive or missing annotation: the default must exist
    """

    __slots__ = ("_cls", "_dependencies")

    def __init__(self, cls: Type[T]):
        if not isinstance(cls, type):
            raise TypeError(f"ClassProvider expects a class, got {cls!r}")
        self._cls = cls
        self._dependencies = self._extract_dependencies(cls)

    @property
    def cls(self) -> type:
        return self._cls

    @property
    def dependencies(self) -> List[Dependency]:
        return list(self._dependencies)

    def instantiate(self, owner: Resolver) -> Any:
        """Instantiate class by resolving dependencies."""
        if not is_instantiable(self._cls):
            raise ResolutionError(
                token_key(self._cls),
                "class is abstract or a protocol and cannot be instantiated",
                suggestion="Register a concrete implementation for this abstraction",
            )

        args = []
        kwargs = {}
        for dep in self._dependencies:
            value = self._resolve_dependency(dep, owner)
            if dep.positional_only:
                args.append(value)
            else:
                kwargs[dep.name] = value

        return self._cls(*args, **kwargs)

    def _resolve_dependency(self, dep: Dependency, owner: Resolver) -> Any:
        token = dep.token
        if token is not None and owner.can_resolve(token):
            return owner.resolve(token)

        if dep.has_default:
            return dep.default
        if dep.optional:
            return None

        if token is None:
            reason = f"parameter '{dep.name}' has no usable type and no default"
        else:
            label = token if isinstance(token, str) else token.__qualname__
            reason = f"parameter '{dep.name}' needs unresolvable {label} and has no default"
        raise ResolutionError(token_key(self._cls), reason)

    def _extract_dependencies(self, cls: Type) -> List[Dependency]:
        """
        Extract dependencies from __init__ signature.

        Returns:
            Parameters in declaration order, VAR_* parameters excluded
        """
        deps: List[Dependency] = []

        if cls.__init__ is object.__init__:
            return deps

        try:
            sig = inspect.signature(cls.__init__)
        except (TypeError, ValueError):
            # Builtins and C extensions may not expose a signature
            return deps

        try:
            type_hints = inspect.get_annotations(cls.__init__, eval_str=True)
        except Exception:
            try:
                from typing import get_type_hints
                type_hints = get_type_hints(cls.__init__)
            except Exception:
                type_hints = {}

        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls"):
                continue

            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue

            # Prefer resolved hint, fallback to raw annotation
            annotation = type_hints.get(param_name, param.annotation)
            token, optional = self._parse_annotation(annotation)

            deps.append(Dependency(
                name=param_name,
                token=token,
                default=param.default,
                optional=optional,
                positional_only=param.kind is inspect.Parameter.POSITIONAL_ONLY,
            ))

        return deps

    @staticmethod
    def _parse_annotation(annotation: Any):
        """Reduce an annotation to (token, optional)."""
        if annotation is inspect.Parameter.empty or annotation is Any:
            return None, False

        if isinstance(annotation, str):
            return annotation, False

        origin = get_origin(annotation)
        if origin is not None:
            from typing import Annotated
            args = get_args(annotation)
            if origin is Annotated:
                return ClassProvider._parse_annotation(args[0])

            # Optional[X] / X | None
            non_none = [arg for arg in args if arg is not type(None)]
            if len(non_none) == 1 and len(args) == 2:
                token, _ = ClassProvider._parse_annotation(non_none[0])
                return token, True

            # Other generics (List[X], Dict[K, V], unions) are not injectable
            return None, False

        if isinstance(annotation, type) and annotation not in _PRIMITIVES:
            return annotation, False

        return None, False


class FactoryProvider:
    """
    Provider that calls a factory function.

    The owner is passed as the single argument when the factory accepts a
    positional parameter; zero-argument factories are called bare.
    """

    __slots__ = ("_factory", "_takes_owner")

    def __init__(self, factory: Callable[..., T]):
        if not callable(factory):
            raise TypeError(f"FactoryProvider expects a callable, got {factory!r}")
        self._factory = factory
        self._takes_owner = self._accepts_argument(factory)

    @property
    def factory(self) -> Callable[..., Any]:
        return self._factory

    def instantiate(self, owner: Resolver) -> Any:
        if self._takes_owner:
            return self._factory(owner)
        return self._factory()

    @staticmethod
    def _accepts_argument(factory: Callable) -> bool:
        try:
            sig = inspect.signature(factory)
        except (TypeError, ValueError):
            return True

        positional = (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        )
        return any(p.kind in positional for p in sig.parameters.values())


class ValueProvider:
    """Provider that returns a pre-built value."""

    __slots__ = ("_value",)

    def __init__(self, value: Any):
        self._value = value

    def instantiate(self, owner: Resolver) -> Any:
        return self._value


class AliasProvider:
    """Provider that forwards resolution to another name."""

    __slots__ = ("_target",)

    def __init__(self, target: Token):
        self._target = target

    @property
    def target(self) -> Token:
        return self._target

    def instantiate(self, owner: Resolver) -> Any:
        return owner.resolve(self._target)


PROVIDER_TYPES = (ClassProvider, FactoryProvider, ValueProvider, AliasProvider)


def provider_for(concrete: Any):
    """Pick the provider strategy for a binding's concrete."""
    if isinstance(concrete, PROVIDER_TYPES):
        return concrete
    if isinstance(concrete, type):
        return ClassProvider(concrete)
    if isinstance(concrete, str):
        return AliasProvider(concrete)
    if callable(concrete):
        return FactoryProvider(concrete)
    return ValueProvider(concrete)


__all__ = [
    "Token",
    "Resolver",
    "token_key",
    "is_instantiable",
    "Dependency",
    "ClassProvider",
    "FactoryProvider",
    "ValueProvider",
    "AliasProvider",
    "provider_for",
]
