"""Tests against the live luarocks.org registry. Run with ``--runintegration``."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from rocklock.builder import LockfileBuilder
from rocklock.manifest import PackageManifest
from rocklock.registry import HTTPRegistryClient
from rocklock.verifier import PackageVerifier

if TYPE_CHECKING:
    from rocklock.cache import Cache


@pytest.mark.integration
class TestLuaRocks:
    """Locks small, long-lived packages from luarocks.org."""

    def test_index(self, cache: Cache) -> None:
        """Test that the public manifest lists well-known packages."""
        index = HTTPRegistryClient(cache).fetch_index()
        assert "luasocket" in index
        assert index.versions("inspect")

    def test_lock_and_verify(self, cache: Cache) -> None:
        """Test locking a package with a transitive dependency and verifying the result."""
        builder = LockfileBuilder(cache, HTTPRegistryClient(cache), max_concurrent=4)
        lockfile = builder.build_lockfile(PackageManifest(name="app", dependencies={"penlight": "*"}))
        assert "penlight" in lockfile
        assert "luafilesystem" in lockfile
        assert PackageVerifier(cache).verify_all(lockfile)
