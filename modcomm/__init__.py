"""
modcomm - module communication and dependency resolution.

Components:
- Container: auto-wiring service container (singleton/transient)
- ModuleServiceRegistry: services owned by modules
- EventDispatcher: priority-ordered module events
- HookSystem: named actions and filters
- ModuleManager: discovery, dependency ordering and module lifecycle
"""

__version__ = "0.1.0"

# ============================================================================
# Errors
# ============================================================================

from .errors import (
    CommunicationError,
    ResolutionError,
    ServiceNotFoundError,
    CircularDependencyError,
    DepthExceededError,
    ModuleLoadError,
    ModuleStateError,
)

# ============================================================================
# Configuration
# ============================================================================

from .config import CommunicationConfig, ConfigLoader, ConfigError, load_config

# ============================================================================
# Components
# ============================================================================

from .di import Container, Lifetime, ServiceBinding
from .registry import ModuleServiceRegistry
from .events import (
    EventDispatcher,
    ModuleEvent,
    ModuleLoaded,
    ModuleFailed,
    ModuleDisabled,
)
from .hooks import HookSystem
from .modules import (
    BaseModule,
    DependencyGraph,
    FilesystemWalker,
    ModuleCommunication,
    ModuleDescriptor,
    ModuleManager,
    ModuleState,
)
from .bootstrap import CommunicationHub, create_hub

__all__ = [
    "__version__",
    # Errors
    "CommunicationError",
    "ResolutionError",
    "ServiceNotFoundError",
    "CircularDependencyError",
    "DepthExceededError",
    "ModuleLoadError",
    "ModuleStateError",
    # Config
    "CommunicationConfig",
    "ConfigLoader",
    "ConfigError",
    "load_config",
    # Components
    "Container",
    "Lifetime",
    "ServiceBinding",
    "ModuleServiceRegistry",
    "EventDispatcher",
    "ModuleEvent",
    "ModuleLoaded",
    "ModuleFailed",
    "ModuleDisabled",
    "HookSystem",
    "BaseModule",
    "DependencyGraph",
    "FilesystemWalker",
    "ModuleCommunication",
    "ModuleDescriptor",
    "ModuleManager",
    "ModuleState",
    # Composition root
    "CommunicationHub",
    "create_hub",
]
