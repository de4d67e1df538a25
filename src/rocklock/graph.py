"""Dependency graph built up by the resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import networkx as nx

from .errors import CircularDependencyError, PackageNotFoundError
from .version import ANY

if TYPE_CHECKING:
    from semantic_version import Version

    from .version import VersionConstraint


@dataclass
class DependencyNode:
    """A package in the dependency graph."""

    name: str
    constraint: VersionConstraint
    resolved_version: Version | None = None
    dependencies: list[str] = field(default_factory=list)


class DependencyGraph(nx.DiGraph):
    """A directed graph of packages, with an edge from each package to each of its dependencies.

    Only packages added with :meth:`add_node` are *registered*; a dependency may
    point at a package that has not been registered (yet).
    """

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Initialize an empty dependency graph."""
        super().__init__(*args, **kwargs)
        self._packages: dict[str, DependencyNode] = {}

    def add_node(self, node_for_adding: str, constraint: VersionConstraint | None = None, **attr: object) -> None:
        """Register a package, replacing any existing node of the same name.

        A replaced node starts over without dependencies.
        """
        if node_for_adding in self._packages:
            self.remove_edges_from(list(self.out_edges(node_for_adding)))
        self._packages[node_for_adding] = DependencyNode(
            name=node_for_adding, constraint=ANY if constraint is None else constraint
        )
        super().add_node(node_for_adding, **attr)

    def _registered(self, name: str) -> DependencyNode:
        try:
            return self._packages[name]
        except KeyError:
            raise PackageNotFoundError(name, "dependency graph") from None

    def add_dependency(self, package: str, dependency: str) -> None:
        """Record that ``package`` depends on ``dependency``.

        Raises:
            PackageNotFoundError: if ``package`` has not been registered.

        """
        node = self._registered(package)
        node.dependencies.append(dependency)
        self.add_edge(package, dependency)

    def set_resolved_version(self, name: str, version: Version) -> None:
        """Record the version chosen for a registered package."""
        self._registered(name).resolved_version = version

    def get_node(self, name: str) -> DependencyNode | None:
        """Return the registered node called ``name``, if any."""
        return self._packages.get(name)

    def node_names(self) -> list[str]:
        """Return the names of all registered packages, in registration order."""
        return list(self._packages)

    def detect_circular_dependencies(self) -> list[list[str]]:
        """Find every cycle reachable from a registered package.

        A depth-first search is started from each registered package that has not
        been visited yet. Whenever an edge leads back to a package that is still on
        the search stack, the stack slice from that package onward is one cycle.

        Returns:
            An empty list when the graph is acyclic.

        Raises:
            CircularDependencyError: listing every cycle found.

        """
        cycles: list[list[str]] = []
        visited: set[str] = set()
        for start in self._packages.values():
            if start.name in visited:
                continue
            path = [start.name]
            on_stack = {start.name}
            visited.add(start.name)
            stack = [iter(self.successors(start.name))]
            while stack:
                child = next(stack[-1], None)
                if child is None:
                    stack.pop()
                    on_stack.discard(path.pop())
                elif child in on_stack:
                    cycles.append(path[path.index(child) :])
                elif child not in visited:
                    visited.add(child)
                    on_stack.add(child)
                    path.append(child)
                    stack.append(iter(self.successors(child)))
        if cycles:
            raise CircularDependencyError(cycles)
        return cycles

    def get_all_dependencies(self, name: str) -> set[str]:
        """Return the transitive dependencies of ``name`` (not including ``name`` itself)."""
        self._registered(name)
        seen: set[str] = set()
        stack = list(self.successors(name))
        while stack:
            dep = stack.pop()
            if dep in seen:
                continue
            seen.add(dep)
            stack.extend(self.successors(dep))
        seen.discard(name)
        return seen

    def install_order(self) -> list[str]:
        """Return every package in the graph ordered so that dependencies come before their dependents."""
        return list(reversed(list(nx.topological_sort(self))))
