"""
Shared test fixtures and helpers for the modcomm test suite.
"""

import textwrap
from pathlib import Path
from typing import Callable, Iterable, Optional

import pytest

from modcomm.bootstrap import create_hub
from modcomm.config import CommunicationConfig
from modcomm.di.core import Container
from modcomm.events.dispatcher import EventDispatcher
from modcomm.hooks import HookSystem
from modcomm.modules.discovery import FilesystemWalker
from modcomm.modules.manager import ModuleManager
from modcomm.registry import ModuleServiceRegistry


# ============================================================================
# Module tree helpers
# ============================================================================

# Descriptor used by file-based module tests. Boot order is observable through
# the "test.booted" action, shutdown order through "test.shutdown".
MODULE_TEMPLATE = '''\
from modcomm.modules import BaseModule


class ModuleCommunication(BaseModule):
    name = {name!r}
    version = "1.0.0"
    dependencies = {dependencies!r}
    services_exposed = [{service!r}]
    hooks_provided = ["test.booted"]

    def register_services(self, registry):
        registry.singleton({service!r}, {name!r}, lambda r: {{"module": {name!r}}})

    def register_event_listeners(self, dispatcher):
        pass

    def register_hooks(self, hooks):
        self._hooks = hooks

    def boot(self):
        self._hooks.do_action("test.booted", {name!r})

    def shutdown(self):
        self._hooks.do_action("test.shutdown", {name!r})
'''


def write_module_file(
    root: Path,
    name: str,
    dependencies: Iterable[str] = (),
    body: Optional[str] = None,
) -> Path:
    """Create <root>/<name>/infrastructure/communication/module_communication.py."""
    target = root / name / "infrastructure" / "communication"
    target.mkdir(parents=True, exist_ok=True)

    if body is None:
        source = MODULE_TEMPLATE.format(
            name=name,
            dependencies=list(dependencies),
            service=f"{name}.service",
        )
    else:
        source = textwrap.dedent(body)

    path = target / "module_communication.py"
    path.write_text(source)
    return path


@pytest.fixture
def modules_root(tmp_path) -> Path:
    root = tmp_path / "modules"
    root.mkdir()
    return root


@pytest.fixture
def write_module(modules_root) -> Callable[..., Path]:
    def _write(name: str, dependencies: Iterable[str] = (), body: Optional[str] = None) -> Path:
        return write_module_file(modules_root, name, dependencies, body)
    return _write


# ============================================================================
# Components
# ============================================================================

@pytest.fixture
def config() -> CommunicationConfig:
    return CommunicationConfig()


@pytest.fixture
def container() -> Container:
    return Container()


@pytest.fixture
def registry() -> ModuleServiceRegistry:
    return ModuleServiceRegistry()


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def hooks() -> HookSystem:
    return HookSystem()


@pytest.fixture
def manager(registry, dispatcher, hooks, config) -> ModuleManager:
    return ModuleManager(
        registry,
        dispatcher,
        hooks,
        FilesystemWalker(max_depth=config.discovery_max_depth),
        config=config,
        memory_probe=lambda: 0,
    )


@pytest.fixture
def hub(config):
    return create_hub(config, memory_probe=lambda: 0)
