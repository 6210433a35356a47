"""
Module service registry: module-owned services, factories and removal.
"""

import logging

import pytest

from modcomm.di import Lifetime
from modcomm.errors import (
    CircularDependencyError,
    DepthExceededError,
    ResolutionError,
    ServiceNotFoundError,
)
from modcomm.registry import ModuleServiceRegistry


class Ledger:
    def __init__(self):
        self.entries = []


class InvoiceService:
    def __init__(self, ledger: Ledger, currency: str = "EUR"):
        self.ledger = ledger
        self.currency = currency


class NeedsRate:
    def __init__(self, rate: float):
        self.rate = rate


class BrokenLedger:
    def __init__(self):
        raise RuntimeError("ledger store offline")


class Chain:
    def __init__(self, next_link: "Chain"):
        self.next_link = next_link


# ============================================================================
# Registration and lookup
# ============================================================================

class TestRegistryLookup:

    def test_singleton_service(self, registry):
        registry.singleton("billing.ledger", "billing", lambda r: Ledger())
        assert registry.get("billing.ledger") is registry.get("billing.ledger")

    def test_transient_service(self, registry):
        registry.transient("billing.ledger", "billing", lambda r: Ledger())
        assert registry.get("billing.ledger") is not registry.get("billing.ledger")

    def test_default_lifetime_is_singleton(self, registry):
        binding = registry.register("billing.ledger", "billing", Ledger)
        assert binding.lifetime is Lifetime.SINGLETON

    def test_factory_receives_registry(self, registry):
        seen = []
        registry.register("probe", "core", lambda r: seen.append(r) or "ok")
        assert registry.get("probe") == "ok"
        assert seen == [registry]

    def test_zero_argument_factory(self, registry):
        registry.register("answer", "core", lambda: 42)
        assert registry.get("answer") == 42

    def test_factory_pulls_other_module_service(self, registry):
        registry.singleton("clients.ledger", "clients", lambda r: Ledger())
        registry.singleton(
            "billing.invoices",
            "billing",
            lambda r: InvoiceService(r.get("clients.ledger")),
        )
        invoices = registry.get("billing.invoices")
        assert invoices.ledger is registry.get("clients.ledger")

    def test_unknown_service(self, registry):
        registry.singleton("billing.ledger", "billing", Ledger)
        with pytest.raises(ServiceNotFoundError) as exc_info:
            registry.get("billing.ledgr")
        assert exc_info.value.candidates == ["billing.ledger"]

    def test_non_callable_factory_rejected(self, registry):
        with pytest.raises(TypeError):
            registry.register("broken", "core", "not callable")

    def test_factory_error_wrapped(self, registry):
        registry.register("broken", "core", lambda r: {}["missing"])
        with pytest.raises(ResolutionError, match="KeyError") as exc_info:
            registry.get("broken")
        assert isinstance(exc_info.value.__cause__, KeyError)

    def test_replacement_by_other_module_logs_warning(self, registry, caplog):
        caplog.set_level(logging.WARNING, logger="modcomm")
        registry.singleton("shared.cache", "alpha", lambda r: "alpha")
        registry.singleton("shared.cache", "beta", lambda r: "beta")
        assert registry.get("shared.cache") == "beta"
        assert any("replaced by module beta" in r.getMessage() for r in caplog.records)


# ============================================================================
# Class registration
# ============================================================================

class TestRegisterClass:

    def test_typed_parameter_from_registered_service(self, registry):
        ledger = Ledger()
        registry.singleton(Ledger, "core", lambda r: ledger)
        registry.register_class("billing.invoices", InvoiceService, "billing")

        service = registry.get("billing.invoices")
        assert service.ledger is ledger
        assert service.currency == "EUR"

    def test_unregistered_concrete_is_built(self, registry):
        registry.register_class("billing.invoices", InvoiceService, "billing")
        assert isinstance(registry.get("billing.invoices").ledger, Ledger)

    def test_primitive_without_default_fails(self, registry):
        registry.register_class("rates", NeedsRate, "fx")
        with pytest.raises(ResolutionError, match="rate"):
            registry.get("rates")

    def test_register_class_lifetime(self, registry):
        registry.register_class("ledger", Ledger, "core", Lifetime.TRANSIENT)
        assert registry.get("ledger") is not registry.get("ledger")

    def test_class_registered_under_its_own_type(self, registry):
        registry.register_class(Ledger, Ledger, "core")
        assert isinstance(registry.get(Ledger), Ledger)
        assert registry.get(Ledger) is registry.get(Ledger)

    def test_dependency_on_type_keyed_class(self, registry):
        registry.register_class(Ledger, Ledger, "core")
        registry.register_class(InvoiceService, InvoiceService, "billing")

        service = registry.get(InvoiceService)
        assert service.ledger is registry.get(Ledger)
        assert registry.resolve(InvoiceService) is service

    def test_type_keyed_self_dependency_is_cycle(self, registry):
        registry.register_class(Chain, Chain, "core")
        with pytest.raises(CircularDependencyError):
            registry.get(Chain)

    def test_construction_error_names_class(self, registry):
        registry.register_class(BrokenLedger, BrokenLedger, "core")
        with pytest.raises(ResolutionError, match="ledger store offline") as exc_info:
            registry.get(BrokenLedger)
        assert exc_info.value.name == f"{__name__}.BrokenLedger"
        assert isinstance(exc_info.value.__cause__, RuntimeError)


# ============================================================================
# Resolution guards
# ============================================================================

class TestRegistryGuards:

    def test_circular_services(self, registry):
        registry.transient("a", "core", lambda r: r.get("b"))
        registry.transient("b", "core", lambda r: r.get("a"))
        with pytest.raises(CircularDependencyError) as exc_info:
            registry.get("a")
        assert exc_info.value.name == "a"

    def test_depth_bound(self):
        registry = ModuleServiceRegistry(max_depth=3)
        for i in range(5):
            registry.transient(f"s{i}", "core", lambda r, i=i: r.get(f"s{i + 1}"))
        registry.transient("s5", "core", lambda r: "bottom")

        with pytest.raises(DepthExceededError):
            registry.get("s0")

        # Nothing stays marked in flight after the failure
        registry.transient("ok", "core", lambda r: "fine")
        assert registry.get("ok") == "fine"


# ============================================================================
# Introspection and removal
# ============================================================================

class TestRegistryMaintenance:

    @pytest.fixture
    def populated(self, registry):
        registry.singleton("billing.ledger", "billing", lambda r: Ledger())
        registry.transient("billing.invoice", "billing", lambda r: object())
        registry.singleton("clients.directory", "clients", lambda r: {})
        return registry

    def test_service_info(self, populated):
        info = populated.get_service_info("billing.ledger")
        assert info.module == "billing"
        assert info.is_singleton
        assert populated.get_service_info("nope") is None

    def test_available_and_by_module(self, populated):
        assert populated.get_available_services() == [
            "billing.ledger",
            "billing.invoice",
            "clients.directory",
        ]
        assert populated.get_services_by_module("billing") == ["billing.ledger", "billing.invoice"]

    def test_remove(self, populated):
        assert populated.remove("clients.directory") is True
        assert populated.remove("clients.directory") is False
        assert not populated.has("clients.directory")

    def test_remove_module_services_returns_count(self, populated):
        assert populated.remove_module_services("billing") == 2
        assert populated.remove_module_services("billing") == 0
        assert populated.get_available_services() == ["clients.directory"]

    def test_clear_instances_rebuilds_singletons(self, populated):
        first = populated.get("billing.ledger")
        populated.clear_instances()
        assert populated.get("billing.ledger") is not first
        assert populated.has("billing.ledger")

    def test_clear(self, populated):
        populated.clear()
        assert len(populated) == 0

    def test_stats(self, populated):
        populated.get("billing.ledger")
        stats = populated.get_stats()
        assert stats == {
            "total_services": 3,
            "total_modules": 2,
            "singleton_services": 2,
            "transient_services": 1,
            "cached_instances": 1,
            "modules": {"billing": 2, "clients": 1},
        }
