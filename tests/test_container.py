"""
Service container: bindings, lifetimes, auto-wiring and resolution guards.
"""

from abc import ABC, abstractmethod
from typing import Optional

import pytest

from modcomm.di import ClassProvider, Container, Lifetime, token_key
from modcomm.errors import (
    CircularDependencyError,
    CommunicationError,
    DepthExceededError,
    ResolutionError,
    ServiceNotFoundError,
)


# Classes used for auto-wiring. They live at module level so string
# annotations can be evaluated against this module's globals.

class Clock:
    pass


class Repository:
    def __init__(self, clock: Clock):
        self.clock = clock


class ReportService:
    def __init__(self, repo: Repository, title: str = "daily", retries: int = 3, *args, **kwargs):
        self.repo = repo
        self.title = title
        self.retries = retries


class NeedsDsn:
    def __init__(self, dsn: str):
        self.dsn = dsn


class Untyped:
    def __init__(self, thing):
        self.thing = thing


class Store(ABC):
    @abstractmethod
    def save(self, item): ...


class MemoryStore(Store):
    def __init__(self):
        self.items = []

    def save(self, item):
        self.items.append(item)


class UsesStore:
    def __init__(self, store: Store):
        self.store = store


class MaybeStore:
    def __init__(self, store: Optional[Store] = None):
        self.store = store


class CycleA:
    def __init__(self, b: "CycleB"):
        self.b = b


class CycleB:
    def __init__(self, a: CycleA):
        self.a = a


class Ring1:
    def __init__(self, nxt: "Ring2"):
        self.nxt = nxt


class Ring2:
    def __init__(self, nxt: "Ring3"):
        self.nxt = nxt


class Ring3:
    def __init__(self, nxt: "Ring4"):
        self.nxt = nxt


class Ring4:
    def __init__(self, nxt: "Ring5"):
        self.nxt = nxt


class Ring5:
    def __init__(self, nxt: Ring1):
        self.nxt = nxt


class Exploding:
    def __init__(self):
        raise ValueError("boom")


# ============================================================================
# Lifetimes
# ============================================================================

class TestLifetimes:

    def test_transient_yields_distinct_instances(self, container):
        container.transient("clock", Clock)
        first = container.resolve("clock")
        second = container.resolve("clock")
        assert isinstance(first, Clock)
        assert first is not second

    def test_singleton_yields_identical_instance(self, container):
        container.singleton("clock", Clock)
        assert container.resolve("clock") is container.resolve("clock")

    def test_singleton_factory_called_once(self, container):
        calls = []

        def factory(c):
            calls.append(c)
            return object()

        container.singleton("thing", factory)
        container.resolve("thing")
        container.resolve("thing")
        assert calls == [container]

    def test_instance_binding(self, container):
        clock = Clock()
        container.instance(Clock, clock)
        assert container.resolve(Clock) is clock

    def test_lifetime_accepts_strings(self, container):
        binding = container.register("clock", Clock, "singleton")
        assert binding.lifetime is Lifetime.SINGLETON

    def test_unknown_lifetime_rejected(self, container):
        with pytest.raises(ValueError, match="Unknown lifetime"):
            container.register("clock", Clock, "request")

    def test_reregistration_replaces_binding_and_cache(self, container):
        container.singleton("store", MemoryStore)
        old = container.resolve("store")

        container.singleton("store", lambda: "replacement")
        assert container.resolve("store") == "replacement"
        assert container.resolve("store") is not old

    def test_string_name_needs_concrete(self, container):
        with pytest.raises(ValueError, match="concrete is required"):
            container.register("clock")

    def test_type_registers_itself(self, container):
        container.singleton(Clock)
        assert container.is_registered(Clock)
        assert token_key(Clock) in container
        assert container.resolve(Clock) is container.resolve(Clock)

    def test_register_services_bulk(self, container):
        container.register_services({
            "clock": Clock,
            "store": {"concrete": MemoryStore, "lifetime": "singleton"},
        })
        assert container.resolve("clock") is not container.resolve("clock")
        assert container.resolve("store") is container.resolve("store")


# ============================================================================
# Auto-wiring
# ============================================================================

class TestAutowiring:

    def test_unbound_class_is_autowired(self, container):
        repo = container.resolve(Repository)
        assert isinstance(repo.clock, Clock)

    def test_autowired_unbound_class_is_not_cached(self, container):
        assert container.resolve(Clock) is not container.resolve(Clock)

    def test_bound_dependency_is_injected(self, container):
        clock = Clock()
        container.instance(Clock, clock)
        assert container.resolve(Repository).clock is clock

    def test_primitive_defaults_used(self, container):
        service = container.resolve(ReportService)
        assert service.title == "daily"
        assert service.retries == 3
        assert isinstance(service.repo, Repository)

    def test_primitive_without_default_fails(self, container):
        with pytest.raises(ResolutionError, match="dsn"):
            container.resolve(NeedsDsn)

    def test_untyped_without_default_fails(self, container):
        with pytest.raises(ResolutionError, match="thing"):
            container.resolve(Untyped)

    def test_abstract_without_binding_fails(self, container):
        with pytest.raises(ResolutionError, match="store"):
            container.resolve(UsesStore)

    def test_abstract_bound_to_concrete(self, container):
        container.singleton(Store, MemoryStore)
        service = container.resolve(UsesStore)
        assert isinstance(service.store, MemoryStore)
        assert service.store is container.resolve(Store)

    def test_optional_abstract_falls_back_to_default(self, container):
        assert container.resolve(MaybeStore).store is None

    def test_optional_abstract_uses_binding_when_present(self, container):
        container.singleton(Store, MemoryStore)
        assert isinstance(container.resolve(MaybeStore).store, MemoryStore)

    def test_factory_receives_container(self, container):
        container.register("repo", lambda c: Repository(c.resolve(Clock)))
        assert isinstance(container.resolve("repo").clock, Clock)

    def test_zero_argument_factory(self, container):
        container.register("answer", lambda: 42)
        assert container.resolve("answer") == 42

    def test_string_concrete_is_alias(self, container):
        container.singleton("store.memory", MemoryStore)
        container.register("store", "store.memory")
        assert container.resolve("store") is container.resolve("store.memory")

    def test_plain_value_concrete(self, container):
        container.register("settings", {"debug": True})
        assert container.resolve("settings") == {"debug": True}

    def test_container_resolves_itself(self, container):
        assert container.resolve(Container) is container

    def test_class_provider_lists_dependencies(self):
        deps = {dep.name: dep for dep in ClassProvider(ReportService).dependencies}
        assert set(deps) == {"repo", "title", "retries"}
        assert deps["repo"].token is Repository
        assert deps["title"].token is None
        assert deps["title"].has_default


# ============================================================================
# Resolution errors
# ============================================================================

class TestResolutionErrors:

    def test_unbound_name_not_found(self, container):
        container.register("mailer.smtp", Clock)
        with pytest.raises(ServiceNotFoundError) as exc_info:
            container.resolve("mailer.smpt")
        assert isinstance(exc_info.value, ResolutionError)
        assert "mailer.smtp" in exc_info.value.candidates

    def test_factory_errors_are_wrapped(self, container):
        container.register("exploding", Exploding)
        with pytest.raises(ResolutionError, match="boom") as exc_info:
            container.resolve("exploding")
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_two_node_cycle(self, container):
        with pytest.raises(CircularDependencyError) as exc_info:
            container.resolve(CycleA)
        assert exc_info.value.name == token_key(CycleA)
        assert container.resolving == []

    def test_five_node_cycle(self, container):
        with pytest.raises(CircularDependencyError) as exc_info:
            container.resolve(Ring1)
        assert len(exc_info.value.cycle) == 6
        assert container.resolving == []

    def test_named_factory_cycle(self, container):
        container.register("a", lambda c: c.resolve("b"))
        container.register("b", lambda c: c.resolve("a"))
        with pytest.raises(CircularDependencyError) as exc_info:
            container.resolve("a")
        assert exc_info.value.cycle == ["a", "b", "a"]

    def test_depth_exceeded(self):
        container = Container(max_depth=10)
        for i in range(12):
            container.register(f"s{i}", lambda c, i=i: c.resolve(f"s{i + 1}"))
        container.register("s12", lambda: "bottom")

        with pytest.raises(DepthExceededError) as exc_info:
            container.resolve("s0")
        assert exc_info.value.max_depth == 10
        assert container.resolving == []

    def test_chain_within_depth(self):
        container = Container(max_depth=10)
        for i in range(5):
            container.register(f"s{i}", lambda c, i=i: c.resolve(f"s{i + 1}"))
        container.register("s5", lambda: "bottom")
        assert container.resolve("s0") == "bottom"

    def test_container_recovers_after_failure(self, container):
        container.register("broken", lambda: 1 / 0)
        container.register("ok", lambda: "fine")
        with pytest.raises(ResolutionError):
            container.resolve("broken")
        assert container.resolve("ok") == "fine"

    def test_all_errors_share_base(self):
        assert issubclass(CircularDependencyError, CommunicationError)
        assert issubclass(DepthExceededError, CommunicationError)
        assert issubclass(ServiceNotFoundError, ResolutionError)


# ============================================================================
# Stats and flush
# ============================================================================

class TestContainerStats:

    def test_stats(self, container):
        container.singleton("clock", Clock)
        container.transient("repo", Repository)
        container.resolve("clock")

        stats = container.get_stats()
        # The container's own self-binding counts as a singleton
        assert stats["total_bindings"] == 3
        assert stats["singleton_bindings"] == 2
        assert stats["transient_bindings"] == 1
        assert stats["cached_instances"] == 2
        assert stats["resolving"] == []
        assert stats["max_depth"] == 10

    def test_flush_keeps_self_binding(self, container):
        container.singleton("clock", Clock)
        container.flush()
        assert not container.is_registered("clock")
        assert container.resolve(Container) is container
