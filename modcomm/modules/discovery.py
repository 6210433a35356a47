"""
Module discovery - bounded filesystem scan for module descriptors.

A module lives in ``<modules root>/<Name>/`` and publishes its communication
class in ``<Name>/<descriptor_location>/<descriptor_filename>``. The scan is
capped by depth (walker), file count and process memory growth; hitting a
cap truncates the result with a warning instead of failing.
"""

import ast
import importlib.util
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Tuple, Union

import psutil

from ..config import CommunicationConfig
from .descriptor import ModuleDescriptor

MemoryProbe = Callable[[], int]

# Directories never worth walking into
_SKIP_DIRS = frozenset({"__pycache__", "node_modules"})


def process_rss() -> int:
    """Resident set size of the current process, in bytes."""
    return psutil.Process().memory_info().rss


class PathWalker(Protocol):
    """Yields file paths under ``root``."""

    def walk(self, root: Path) -> Iterable[Path]: ...


class FilesystemWalker:
    """
    Sorted, depth-bounded ``os.walk``.

    Files directly inside ``root`` are depth 0; a directory at depth
    ``max_depth`` is listed but not descended into.
    """

    def __init__(self, max_depth: int = 5, follow_symlinks: bool = False):
        self.max_depth = max_depth
        self.follow_symlinks = follow_symlinks

    def walk(self, root: Union[str, Path]) -> Iterator[Path]:
        root = Path(root)
        for dirpath, dirnames, filenames in os.walk(root, followlinks=self.follow_symlinks):
            current = Path(dirpath)
            depth = len(current.relative_to(root).parts)

            if depth >= self.max_depth:
                dirnames[:] = []
            else:
                dirnames[:] = sorted(
                    d for d in dirnames if d not in _SKIP_DIRS and not d.startswith(".")
                )

            for filename in sorted(filenames):
                yield current / filename


def read_declared_dependencies(
    path: Path,
    class_name: str,
    logger: Optional[logging.Logger] = None,
) -> List[str]:
    """
    Statically read ``dependencies = [...]`` from ``class_name`` in ``path``.

    The file is parsed, never executed. Anything but a literal list or tuple
    of strings yields ``[]`` and a warning.
    """
    logger = logger or logging.getLogger("modcomm.modules")

    try:
        tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    except (OSError, SyntaxError, UnicodeDecodeError) as e:
        logger.warning(f"Cannot parse module descriptor {path}: {e}")
        return []

    for node in tree.body:
        if not (isinstance(node, ast.ClassDef) and node.name == class_name):
            continue

        for stmt in node.body:
            if isinstance(stmt, ast.Assign):
                names = [t.id for t in stmt.targets if isinstance(t, ast.Name)]
            elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name) and stmt.value:
                names = [stmt.target.id]
            else:
                continue

            if "dependencies" not in names:
                continue

            try:
                value = ast.literal_eval(stmt.value)
            except ValueError:
                logger.warning(f"{path}: {class_name}.dependencies is not a literal; ignoring it")
                return []

            if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
                return list(value)

            logger.warning(f"{path}: {class_name}.dependencies must be a list of module names")
            return []

    return []


def file_factory(descriptor: ModuleDescriptor, class_name: str) -> Callable[[], Any]:
    """
    Factory that imports the descriptor file by path and instantiates
    ``class_name`` from it. The import happens on call, not here.
    """

    def load() -> Any:
        module_name = f"_modcomm_modules.{descriptor.name}"
        spec = importlib.util.spec_from_file_location(module_name, descriptor.file)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot import module descriptor {descriptor.file}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            sys.modules.pop(module_name, None)
            raise

        cls = getattr(module, class_name, None)
        if cls is None:
            raise ImportError(f"{descriptor.file} does not define {class_name}")
        return cls()

    load.__qualname__ = f"file_factory.<{descriptor.name}>"
    return load


class ModuleDiscovery:
    """
    Turns walker output into ModuleDescriptors.

    Example:
        >>> discovery = ModuleDiscovery(FilesystemWalker(max_depth=5))
        >>> descriptors = discovery.discover("modules")
    """

    def __init__(
        self,
        walker: PathWalker,
        *,
        config: Optional[CommunicationConfig] = None,
        logger: Optional[logging.Logger] = None,
        memory_probe: Optional[MemoryProbe] = None,
    ):
        self.walker = walker
        self.config = config or CommunicationConfig()
        self.logger = logger or logging.getLogger("modcomm.modules")
        self.memory_probe = memory_probe or process_rss
        self.stats: Dict[str, Any] = {}
        self._reset_stats()

    def _reset_stats(self) -> None:
        self.stats = {
            "files_scanned": 0,
            "descriptors_found": 0,
            "truncated": None,
        }

    @property
    def location_parts(self) -> Tuple[str, ...]:
        return tuple(part for part in Path(self.config.descriptor_location).parts if part not in ("", "."))

    def discover(self, base_path: Union[str, Path]) -> Dict[str, ModuleDescriptor]:
        """
        Scan ``base_path`` for module descriptors.

        Returns:
            Descriptors keyed by module name, in walk order
        """
        self._reset_stats()
        base = Path(base_path)

        if not base.is_dir():
            self.logger.info(f"Modules path {base} does not exist; nothing to discover")
            return {}

        max_files = self.config.discovery_max_files
        check_every = max(1, self.config.discovery_memory_check_interval)
        ceiling = int(self.config.discovery_max_memory_mb * 1024 * 1024)
        baseline = self.memory_probe()

        found: Dict[str, ModuleDescriptor] = {}
        scanned = 0

        for path in self.walker.walk(base):
            if scanned >= max_files:
                self._truncate("max_files", f"file limit of {max_files} reached", scanned, base)
                break

            scanned += 1

            if scanned % check_every == 0:
                growth = self.memory_probe() - baseline
                if growth > ceiling:
                    self._truncate(
                        "max_memory",
                        f"memory grew by {growth / (1024 * 1024):.1f}MB "
                        f"(limit {self.config.discovery_max_memory_mb}MB)",
                        scanned,
                        base,
                    )
                    break

            name = self._module_name(base, Path(path))
            if name is None:
                continue

            if name in found:
                self.logger.warning(f"Duplicate module descriptor for {name} at {path}; keeping the first")
                continue

            found[name] = self.build_descriptor(base, Path(path))
            self.logger.debug(f"Discovered module {name} at {path}")

        self.stats["files_scanned"] = scanned
        self.stats["descriptors_found"] = len(found)

        self.logger.info(
            f"Discovered {len(found)} module(s) under {base} ({scanned} files scanned)",
            extra={"context": dict(self.stats)},
        )
        return found

    def _truncate(self, reason: str, detail: str, scanned: int, base: Path) -> None:
        self.stats["truncated"] = reason
        self.logger.warning(
            f"Module discovery truncated under {base}: {detail}",
            extra={"context": {"reason": reason, "files_scanned": scanned, "base_path": str(base)}},
        )

    def _module_name(self, base: Path, path: Path) -> Optional[str]:
        """Module name when ``path`` is a descriptor file, else None."""
        if path.name != self.config.descriptor_filename:
            return None

        try:
            rel = path.relative_to(base).parts
        except ValueError:
            return None

        location = self.location_parts
        if len(rel) != len(location) + 2 or tuple(rel[1:-1]) != location:
            return None
        return rel[0]

    def build_descriptor(self, base: Path, path: Path) -> ModuleDescriptor:
        name = path.relative_to(base).parts[0]
        class_name = self.config.descriptor_class

        ref_parts = [base.name, name, *self.location_parts, path.stem]
        return ModuleDescriptor(
            name=name,
            path=base / name,
            class_ref=".".join(ref_parts) + f":{class_name}",
            dependencies=read_declared_dependencies(path, class_name, self.logger),
            file=path,
        )


__all__ = [
    "PathWalker",
    "FilesystemWalker",
    "ModuleDiscovery",
    "read_declared_dependencies",
    "file_factory",
    "process_rss",
]
