"""
Capability contract every communicating module implements.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Protocol, runtime_checkable

CAPABILITIES = (
    "register_services",
    "register_event_listeners",
    "register_hooks",
    "get_dispatchable_events",
    "get_module_info",
    "boot",
    "shutdown",
)


@runtime_checkable
class ModuleCommunication(Protocol):
    """Structural contract checked by the module manager before loading."""

    def register_services(self, registry) -> None: ...

    def register_event_listeners(self, dispatcher) -> None: ...

    def register_hooks(self, hooks) -> None: ...

    def get_dispatchable_events(self) -> List[type]: ...

    def get_module_info(self) -> Dict[str, Any]: ...

    def boot(self) -> None: ...

    def shutdown(self) -> None: ...


def missing_capabilities(module: Any) -> List[str]:
    """Names from CAPABILITIES that ``module`` does not provide as callables."""
    return [name for name in CAPABILITIES if not callable(getattr(module, name, None))]


class BaseModule(ABC):
    """
    Convenience base for module communication classes.

    Subclasses declare metadata as class attributes and implement the three
    registration methods. ``dependencies`` must be a literal list of module
    names: discovery reads it from source without importing the file.

    Example:
        class ModuleCommunication(BaseModule):
            name = "billing"
            version = "1.2.0"
            dependencies = ["clients"]

            def register_services(self, registry):
                registry.singleton("billing.invoices", self.name, lambda r: InvoiceStore())

            def register_event_listeners(self, dispatcher):
                dispatcher.listen(ClientDeleted, self.on_client_deleted)

            def register_hooks(self, hooks):
                hooks.add_filter("invoice.total", apply_vat)
    """

    name: str = ""
    version: str = "0.0.0"
    description: str = ""
    dependencies: List[str] = []

    # Names reported by get_module_info(); purely informational
    services_exposed: List[str] = []
    hooks_provided: List[str] = []

    @abstractmethod
    def register_services(self, registry) -> None:
        ...

    @abstractmethod
    def register_event_listeners(self, dispatcher) -> None:
        ...

    @abstractmethod
    def register_hooks(self, hooks) -> None:
        ...

    def get_dispatchable_events(self) -> List[type]:
        return []

    def get_module_info(self) -> Dict[str, Any]:
        return {
            "name": self.name or type(self).__module__,
            "version": self.version,
            "description": self.description,
            "dependencies": list(self.dependencies),
            "services_exposed": list(self.services_exposed),
            "events_dispatched": [event.__name__ for event in self.get_dispatchable_events()],
            "hooks_provided": list(self.hooks_provided),
        }

    def boot(self) -> None:
        pass

    def shutdown(self) -> None:
        pass


__all__ = ["CAPABILITIES", "ModuleCommunication", "BaseModule", "missing_capabilities"]
