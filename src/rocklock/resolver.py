"""Dependency resolution: pick one version of every package reachable from a project's direct dependencies."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from .errors import NoSatisfyingVersionError, PackageNotFoundError, VersionConflictError, VersionParseError
from .graph import DependencyGraph
from .metadata import parse_metadata
from .version import VersionConstraint, parse_constraint, parse_version, version_components

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from semantic_version import Version

    from .registry import IndexEntry, PackageIndex, RegistryClient

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Resolves dependencies against a package index.

    Resolution is greedy: each package gets the highest available version that
    satisfies the first constraint seen for it, and a version is never revisited.
    A later constraint that the chosen version does not satisfy is reported as a
    warning rather than triggering backtracking.
    """

    def __init__(self, index: PackageIndex, client: RegistryClient) -> None:
        """Initialize the resolver.

        Args:
            index: the registry's package index
            client: used to fetch the metadata of each selected version

        """
        self.index = index
        self.client = client
        self.graph = DependencyGraph()

    def available_versions(self, name: str) -> list[tuple[Version, IndexEntry]]:
        """Return the published versions of ``name``, highest first.

        Versions that do not parse are skipped.

        Raises:
            PackageNotFoundError: if the index has no usable version of ``name``.

        """
        versions = []
        for entry in self.index.entries(name):
            try:
                versions.append((parse_version(entry.version), version_components(entry.version), entry))
            except VersionParseError as e:
                logger.debug("Skipping unparsable version of %s: %s", name, e)
        if not versions:
            raise PackageNotFoundError(name)
        # revisions of the same version: highest first
        versions.sort(key=lambda v: (v[0], v[1]), reverse=True)
        return [(version, entry) for version, _, entry in versions]

    def select_version(self, name: str, constraint: VersionConstraint) -> tuple[Version, IndexEntry]:
        """Return the highest published version of ``name`` that satisfies ``constraint``."""
        available = self.available_versions(name)
        for version, entry in available:
            if constraint.match(version):
                return version, entry
        raise NoSatisfyingVersionError(name, constraint, (v for v, _ in available))

    def _check_resolved(self, name: str, constraint: VersionConstraint, resolved: Mapping[str, Version]) -> None:
        if not constraint.match(resolved[name]):
            logger.warning(
                "%s %s was already selected but does not satisfy the later constraint %s",
                name,
                resolved[name],
                constraint,
            )

    def resolve(self, dependencies: Mapping[str, VersionConstraint | str]) -> dict[str, Version]:
        """Resolve ``dependencies`` and everything they transitively depend on.

        Args:
            dependencies: direct dependencies, mapping package name to constraint

        Returns:
            The selected version of every package.

        Raises:
            VersionParseError: if a direct or declared constraint cannot be parsed
            PackageNotFoundError: if a package is not in the index
            NoSatisfyingVersionError: if no published version satisfies a constraint
            CircularDependencyError: if the packages depend on each other in a cycle

        """
        self.graph = DependencyGraph()
        resolved: dict[str, Version] = {}
        queue: deque[tuple[str, VersionConstraint]] = deque(
            (name, c if isinstance(c, VersionConstraint) else parse_constraint(c))
            for name, c in sorted(dependencies.items())
        )

        while queue:
            name, constraint = queue.popleft()
            if name in resolved:
                self._check_resolved(name, constraint, resolved)
                continue

            version, entry = self.select_version(name, constraint)
            logger.debug("Selected %s %s for %s", name, version, constraint)
            self.graph.add_node(name, constraint)
            self.graph.set_resolved_version(name, version)
            resolved[name] = version

            metadata = parse_metadata(self.client.fetch_metadata(entry.metadata_url, name, entry.version))
            for dep_name, dep_constraint in metadata.parsed_dependencies():
                self.graph.add_dependency(name, dep_name)
                if dep_name in resolved:
                    self._check_resolved(dep_name, dep_constraint, resolved)
                else:
                    queue.append((dep_name, dep_constraint))

        self.graph.detect_circular_dependencies()
        logger.info("Resolved %d package(s)", len(resolved))
        return resolved

    def resolve_conflicts(self, name: str, constraints: Sequence[VersionConstraint]) -> VersionConstraint:
        """Check that a single version of ``name`` can satisfy every constraint in ``constraints``.

        Returns:
            The first constraint, if some published version satisfies all of them.

        Raises:
            VersionConflictError: if there are no constraints or no version satisfies them all.

        """
        if not constraints:
            raise VersionConflictError(name, constraints)
        if len(constraints) == 1:
            return constraints[0]
        for version, _ in self.available_versions(name):
            if all(c.match(version) for c in constraints):
                return constraints[0]
        raise VersionConflictError(name, constraints)
