"""Unit tests for dependency resolution."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

import pytest
from semantic_version import Version

from rocklock.errors import (
    CircularDependencyError,
    DependencySpecError,
    NoSatisfyingVersionError,
    PackageNotFoundError,
    VersionConflictError,
)
from rocklock.resolver import DependencyResolver
from rocklock.version import Compatible, GreaterOrEqual, LessThan

if TYPE_CHECKING:
    from conftest import FakeRegistryClient

Registry = Callable[..., "FakeRegistryClient"]


def resolver_for(fake_registry: Registry, packages: dict[str, dict[str, list[str]]]) -> DependencyResolver:
    client = fake_registry(packages)
    return DependencyResolver(client.fetch_index(), client)


class TestResolve:
    """Tests for DependencyResolver.resolve."""

    def test_highest_compatible_version(self, fake_registry: Registry) -> None:
        """Test that the highest version satisfying the constraint wins."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": [], "1.1.0": [], "2.0.0": []}})
        assert resolver.resolve({"pkg": "^1.0.0"}) == {"pkg": Version("1.1.0")}

    def test_transitive_dependencies(self, fake_registry: Registry) -> None:
        """Test that dependencies of dependencies are resolved and recorded in the graph."""
        resolver = resolver_for(
            fake_registry,
            {
                "app-lib": {"1.0-1": ["penlight >= 1.5", "luafilesystem"]},
                "penlight": {"1.4.0-1": [], "1.13.1-1": ["luafilesystem ~> 1.6"]},
                "luafilesystem": {"1.6.3-2": [], "1.8.0-1": []},
            },
        )
        resolved = resolver.resolve({"app-lib": "*"})
        assert resolved == {
            "app-lib": Version("1.0.1"),
            "penlight": Version("1.13.1"),
            "luafilesystem": Version("1.8.0"),
        }
        assert resolver.graph.get_all_dependencies("app-lib") == {"penlight", "luafilesystem"}
        assert resolver.graph.install_order().index("luafilesystem") < resolver.graph.install_order().index(
            "penlight"
        )

    def test_runtime_dependency_is_not_resolved(self, fake_registry: Registry) -> None:
        """Test that the lua pseudo-dependency never reaches the index."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": []}})
        assert resolver.resolve({"pkg": "*"}) == {"pkg": Version("1.0.0")}
        assert resolver.graph.node_names() == ["pkg"]

    def test_metadata_fetched_once_per_package(self, fake_registry: Registry) -> None:
        """Test that a package shared by several dependents is fetched once."""
        client = fake_registry(
            {
                "a": {"1.0.0": ["shared"]},
                "b": {"1.0.0": ["shared >= 1.0"]},
                "shared": {"1.0.0": []},
            }
        )
        resolver = DependencyResolver(client.fetch_index(), client)
        resolver.resolve({"a": "*", "b": "*"})
        assert client.calls_for("metadata") == [
            ("metadata", "a", "1.0.0"),
            ("metadata", "b", "1.0.0"),
            ("metadata", "shared", "1.0.0"),
        ]

    def test_metadata_uses_registry_version_string(self, fake_registry: Registry) -> None:
        """Test that metadata is requested with the version as the registry lists it."""
        client = fake_registry({"pkg": {"2.1-3": []}})
        DependencyResolver(client.fetch_index(), client).resolve({"pkg": "*"})
        assert client.calls_for("metadata") == [("metadata", "pkg", "2.1-3")]

    def test_circular_dependency(self, fake_registry: Registry) -> None:
        """Test that a cycle between two packages is reported."""
        resolver = resolver_for(
            fake_registry,
            {"pkg-a": {"1.0.0": ["pkg-b"]}, "pkg-b": {"1.0.0": ["pkg-a"]}},
        )
        with pytest.raises(CircularDependencyError) as exc_info:
            resolver.resolve({"pkg-a": "*"})
        assert exc_info.value.cycles == [["pkg-a", "pkg-b"]]
        assert "pkg-a -> pkg-b -> pkg-a" in str(exc_info.value)

    def test_package_not_found(self, fake_registry: Registry) -> None:
        """Test that a dependency missing from the index is an error."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": ["missing"]}})
        with pytest.raises(PackageNotFoundError, match="missing"):
            resolver.resolve({"pkg": "*"})

    def test_no_satisfying_version(self, fake_registry: Registry) -> None:
        """Test that the error lists the versions that were available."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": [], "1.2.0": []}})
        with pytest.raises(NoSatisfyingVersionError) as exc_info:
            resolver.resolve({"pkg": ">=2.0.0"})
        assert exc_info.value.package == "pkg"
        assert exc_info.value.available == ["1.2.0", "1.0.0"]

    def test_invalid_direct_constraint(self, fake_registry: Registry) -> None:
        """Test that an unparsable direct constraint is rejected."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": []}})
        with pytest.raises(ValueError, match="nope"):
            resolver.resolve({"pkg": "nope"})

    def test_invalid_declared_dependency(self, fake_registry: Registry) -> None:
        """Test that an unparsable dependency entry in metadata fails resolution."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": ["other ~= 1.0"]}, "other": {"1.0.0": []}})
        with pytest.raises(DependencySpecError):
            resolver.resolve({"pkg": "*"})

    def test_later_constraint_is_only_a_warning(
        self, fake_registry: Registry, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a version already selected is kept when a later constraint disagrees."""
        resolver = resolver_for(
            fake_registry,
            {
                "a": {"1.0.0": ["c >= 2.0"]},
                "b": {"1.0.0": ["c < 2.0"]},
                "c": {"1.0": [], "2.0": []},
            },
        )
        with caplog.at_level(logging.WARNING, logger="rocklock.resolver"):
            resolved = resolver.resolve({"a": "*", "b": "*"})
        assert resolved["c"] == Version("2.0.0")
        assert "does not satisfy the later constraint" in caplog.text

    def test_neighbouring_releases_stay_distinct(self, fake_registry: Registry) -> None:
        """Test that a revision suffix never lifts a release to the next patch version."""
        resolver = resolver_for(fake_registry, {"penlight": {"1.13.1-2": [], "1.13.2-1": []}})
        assert resolver.resolve({"penlight": "^1.0.0"}) == {"penlight": Version("1.13.2")}
        assert resolver.resolve({"penlight": "<1.13.2"}) == {"penlight": Version("1.13.1")}

    def test_highest_revision_is_selected(self, fake_registry: Registry) -> None:
        """Test that of two revisions of one version, the later one is fetched."""
        client = fake_registry({"pkg": {"1.0.0-1": [], "1.0.0-2": []}})
        resolved = DependencyResolver(client.fetch_index(), client).resolve({"pkg": "*"})
        assert resolved == {"pkg": Version("1.0.0")}
        assert client.calls_for("metadata") == [("metadata", "pkg", "1.0.0-2")]

    def test_unparsable_index_versions_are_skipped(self, fake_registry: Registry) -> None:
        """Test that registry versions that do not parse are ignored."""
        resolver = resolver_for(fake_registry, {"pkg": {"scm-1": [], "dev-1": [], "0.9-1": []}})
        assert resolver.resolve({"pkg": "*"}) == {"pkg": Version("0.9.1")}

    def test_only_unparsable_index_versions(self, fake_registry: Registry) -> None:
        """Test that a package with no usable version is not found."""
        resolver = resolver_for(fake_registry, {"pkg": {"scm-1": []}})
        with pytest.raises(PackageNotFoundError):
            resolver.resolve({"pkg": "*"})

    def test_graph_is_reset_between_runs(self, fake_registry: Registry) -> None:
        """Test that each resolve starts from an empty graph."""
        resolver = resolver_for(fake_registry, {"a": {"1.0.0": []}, "b": {"1.0.0": []}})
        resolver.resolve({"a": "*"})
        resolver.resolve({"b": "*"})
        assert resolver.graph.node_names() == ["b"]


class TestResolveConflicts:
    """Tests for DependencyResolver.resolve_conflicts."""

    def test_single_constraint(self, fake_registry: Registry) -> None:
        """Test that a lone constraint is returned as is."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": []}})
        constraint = Compatible(Version("1.0.0"))
        assert resolver.resolve_conflicts("pkg", [constraint]) is constraint

    def test_compatible_constraints(self, fake_registry: Registry) -> None:
        """Test that the first constraint is returned when one version satisfies all."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": [], "1.5.0": [], "2.0.0": []}})
        first = GreaterOrEqual(Version("1.2.0"))
        assert resolver.resolve_conflicts("pkg", [first, LessThan(Version("2.0.0"))]) is first

    def test_conflicting_constraints(self, fake_registry: Registry) -> None:
        """Test that disjoint constraints raise a conflict."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": [], "2.0.0": []}})
        with pytest.raises(VersionConflictError, match="no version satisfies all constraints"):
            resolver.resolve_conflicts("pkg", [GreaterOrEqual(Version("2.0.0")), LessThan(Version("2.0.0"))])

    def test_no_constraints(self, fake_registry: Registry) -> None:
        """Test that an empty constraint list is a conflict."""
        resolver = resolver_for(fake_registry, {"pkg": {"1.0.0": []}})
        with pytest.raises(VersionConflictError, match="no constraints provided"):
            resolver.resolve_conflicts("pkg", [])
