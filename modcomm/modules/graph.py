"""
Module dependency graph: depth-first load ordering and cycle detection.
"""

from typing import Dict, Iterable, List, Optional, Set

from ..errors import CircularDependencyError


class DependencyGraph:
    """
    Directed graph of modules; edges point from a module to its dependencies.

    Dependencies that are not themselves nodes are kept on the edge list but
    ignored for ordering; ``missing_dependencies`` reports them.
    """

    def __init__(self):
        self._adjacency: Dict[str, List[str]] = {}

    def add_node(self, name: str, dependencies: Iterable[str] = ()) -> None:
        """
        Add node to graph.

        Args:
            name: Module name
            dependencies: Names of modules ``name`` depends on
        """
        self._adjacency[name] = list(dict.fromkeys(dependencies))

    def topological_sort(self) -> List[str]:
        """
        Compute load order (dependencies first).

        Depth-first post-order over nodes in insertion order. Reaching a node
        that is still being visited means a cycle.

        Raises:
            CircularDependencyError: names the revisited node and the cycle path
        """
        resolved: List[str] = []
        done: Set[str] = set()
        visiting: List[str] = []

        def visit(name: str) -> None:
            if name in done:
                return
            if name in visiting:
                cycle = visiting[visiting.index(name):] + [name]
                raise CircularDependencyError(name, cycle)

            visiting.append(name)
            for dep in self._adjacency[name]:
                if dep in self._adjacency:
                    visit(dep)
            visiting.pop()

            done.add(name)
            resolved.append(name)

        for name in self._adjacency:
            visit(name)

        return resolved

    get_load_order = topological_sort

    def find_cycle(self) -> Optional[List[str]]:
        """
        Find a cycle using Tarjan's strongly connected components.

        Returns:
            Node names forming the first cycle found, or None
        """
        counter = 0
        index: Dict[str, int] = {}
        lowlink: Dict[str, int] = {}
        stack: List[str] = []
        on_stack: Set[str] = set()
        found: List[List[str]] = []

        def strongconnect(name: str) -> None:
            nonlocal counter
            index[name] = lowlink[name] = counter
            counter += 1
            stack.append(name)
            on_stack.add(name)

            for dep in self._adjacency[name]:
                if dep not in self._adjacency:
                    continue
                if dep not in index:
                    strongconnect(dep)
                    lowlink[name] = min(lowlink[name], lowlink[dep])
                elif dep in on_stack:
                    lowlink[name] = min(lowlink[name], index[dep])

            if lowlink[name] == index[name]:
                component: List[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == name:
                        break
                # Self-loops are cycles too
                if len(component) > 1 or name in self._adjacency[name]:
                    found.append(list(reversed(component)))

        for name in self._adjacency:
            if name not in index:
                strongconnect(name)

        return found[0] if found else None

    def missing_dependencies(self) -> Dict[str, List[str]]:
        """Map of node -> declared dependencies that are not nodes."""
        missing: Dict[str, List[str]] = {}
        for name, deps in self._adjacency.items():
            absent = [dep for dep in deps if dep not in self._adjacency]
            if absent:
                missing[name] = absent
        return missing

    def get_dependencies(self, name: str) -> List[str]:
        return list(self._adjacency.get(name, []))

    def get_transitive_dependencies(self, name: str) -> Set[str]:
        """Every module ``name`` depends on, directly or not."""
        seen: Set[str] = set()
        pending = list(self._adjacency.get(name, []))
        while pending:
            dep = pending.pop()
            if dep in seen:
                continue
            seen.add(dep)
            pending.extend(self._adjacency.get(dep, []))
        seen.discard(name)
        return seen

    def get_dependents(self, name: str) -> List[str]:
        """Modules that declare ``name`` as a direct dependency."""
        return [node for node, deps in self._adjacency.items() if name in deps]

    def get_layers(self) -> List[List[str]]:
        """
        Group nodes into layers whose dependencies all sit in earlier layers.

        Stops at the first layer that cannot be formed (a cycle).
        """
        layers: List[List[str]] = []
        placed: Set[str] = set()
        remaining = [name for name in self._adjacency]

        while remaining:
            layer = [
                name for name in remaining
                if all(dep in placed or dep not in self._adjacency for dep in self._adjacency[name])
            ]
            if not layer:
                break
            layers.append(layer)
            placed.update(layer)
            remaining = [name for name in remaining if name not in placed]

        return layers

    def to_dict(self) -> Dict[str, List[str]]:
        return {name: list(deps) for name, deps in self._adjacency.items()}

    def to_dot(self) -> str:
        """Export graph as DOT format for visualization."""
        lines = [
            "digraph modules {",
            "  rankdir=LR;",
            "  node [shape=box, style=rounded];",
        ]
        for name in self._adjacency:
            lines.append(f'  "{name}";')
        for name, deps in self._adjacency.items():
            for dep in deps:
                style = "" if dep in self._adjacency else " [style=dashed]"
                lines.append(f'  "{name}" -> "{dep}"{style};')
        lines.append("}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._adjacency)

    def __contains__(self, name: str) -> bool:
        return name in self._adjacency

    def __repr__(self) -> str:
        return f"DependencyGraph({len(self._adjacency)} nodes)"


__all__ = ["DependencyGraph"]
