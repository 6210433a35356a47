"""
modcomm modules - capability contract, discovery, ordering and lifecycle.
"""

from .contract import (
    CAPABILITIES,
    BaseModule,
    ModuleCommunication,
    missing_capabilities,
)

from .descriptor import (
    LoadedModule,
    ModuleDescriptor,
    ModuleState,
)

from .discovery import (
    FilesystemWalker,
    ModuleDiscovery,
    PathWalker,
    file_factory,
    process_rss,
    read_declared_dependencies,
)

from .graph import DependencyGraph

from .manager import ModuleManager, MANAGER_ORIGIN

__all__ = [
    # Contract
    "CAPABILITIES",
    "BaseModule",
    "ModuleCommunication",
    "missing_capabilities",
    # Descriptors
    "LoadedModule",
    "ModuleDescriptor",
    "ModuleState",
    # Discovery
    "FilesystemWalker",
    "ModuleDiscovery",
    "PathWalker",
    "file_factory",
    "process_rss",
    "read_declared_dependencies",
    # Ordering / lifecycle
    "DependencyGraph",
    "ModuleManager",
    "MANAGER_ORIGIN",
]
