"""
Module descriptors and their lifecycle state machine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ModuleStateError


class ModuleState(str, Enum):
    """Lifecycle states of a discovered module."""

    DISCOVERED = "discovered"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"
    DISABLED = "disabled"


# FAILED and DISABLED are terminal; only re-discovery replaces a DISABLED descriptor
_TRANSITIONS = {
    ModuleState.DISCOVERED: {ModuleState.LOADING},
    ModuleState.LOADING: {ModuleState.LOADED, ModuleState.FAILED},
    ModuleState.LOADED: {ModuleState.DISABLED},
    ModuleState.FAILED: set(),
    ModuleState.DISABLED: set(),
}


@dataclass
class ModuleDescriptor:
    """
    A module known to the manager.

    Attributes:
        name: Module name (directory below the modules root)
        path: Module root directory
        class_ref: Import-style reference of the communication class
        dependencies: Names of modules that must load first
        file: Descriptor source file, when discovered from disk
        state: Current lifecycle state
        error: Load failure, set when state is FAILED
    """

    name: str
    path: Optional[Path] = None
    class_ref: str = ""
    dependencies: List[str] = field(default_factory=list)
    file: Optional[Path] = None
    state: ModuleState = ModuleState.DISCOVERED
    error: Optional[BaseException] = None

    def can_transition(self, target: ModuleState) -> bool:
        return target in _TRANSITIONS[self.state]

    def transition(self, target: ModuleState) -> None:
        if not self.can_transition(target):
            raise ModuleStateError(self.name, self.state.value, target.value)
        self.state = target

    def fail(self, error: BaseException) -> None:
        self.transition(ModuleState.FAILED)
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.path) if self.path else None,
            "class_ref": self.class_ref,
            "dependencies": list(self.dependencies),
            "state": self.state.value,
            "error": getattr(self.error, "message", None) or (str(self.error) if self.error else None),
        }


@dataclass
class LoadedModule:
    """A module instance that completed registration and boot."""

    name: str
    instance: Any
    info: Dict[str, Any]
    loaded_at: datetime = field(default_factory=datetime.now)


__all__ = ["ModuleState", "ModuleDescriptor", "LoadedModule"]
