from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

import pytest

from rocklock.cache import Cache
from rocklock.errors import NetworkError
from rocklock.registry import IndexEntry, PackageIndex, RegistryClient

REGISTRY = "https://registry.test/manifests/test"


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--runintegration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: mark test as an integration test")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--runintegration"):
        # --runintegration given in cli: do not skip integration tests
        return
    skip_integration = pytest.mark.skip(reason="need --runintegration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def make_rockspec(
    name: str,
    version: str,
    dependencies: list[str] | tuple[str, ...] = (),
    build_type: str = "builtin",
    source_url: str | None = None,
    lua_version: str | None = None,
) -> str:
    deps = "".join(f'   "{dep}",\n' for dep in ["lua >= 5.1", *dependencies])
    extra = f'lua_version = "{lua_version}"\n' if lua_version else ""
    return (
        f'package = "{name}"\n'
        f'version = "{version}"\n'
        "source = {\n"
        f'   url = "{source_url or f"https://example.test/{name}-{version}.tar.gz"}",\n'
        f'   tag = "v{version}"\n'
        "}\n"
        "description = {\n"
        f'   summary = "The {name} package",\n'
        '   homepage = "https://example.test",\n'
        '   license = "MIT"\n'
        "}\n"
        f"{extra}"
        f"dependencies = {{\n{deps}}}\n"
        "build = {\n"
        f'   type = "{build_type}",\n'
        "   modules = {\n"
        f'      {name.replace("-", "_")} = "src/{name}.lua"\n'
        "   }\n"
        "}\n"
    )


class FakeRegistryClient(RegistryClient):
    """An in-memory registry that stores the sources it serves in a real :class:`Cache`.

    ``packages`` maps a package name to a mapping of registry version string to
    the package's dependency entries.
    """

    def __init__(
        self,
        cache: Cache,
        packages: dict[str, dict[str, list[str]]],
        failing: set[str] | None = None,
        build_types: dict[str, str] | None = None,
        lua_versions: dict[str, str] | None = None,
    ) -> None:
        self.cache = cache
        self.packages = packages
        self.failing = failing or set()
        self.build_types = build_types or {}
        self.lua_versions = lua_versions or {}
        self.calls: list[tuple[str, ...]] = []
        self._lock = threading.Lock()

    def _record(self, *call: str) -> None:
        with self._lock:
            self.calls.append(call)

    def fetch_index(self) -> PackageIndex:
        self._record("index")
        return PackageIndex(
            {
                name: [
                    IndexEntry(
                        version=version,
                        metadata_url=f"{REGISTRY}/{name}-{version}.rockspec",
                        source_url=f"{REGISTRY}/{name}-{version}.src.rock",
                    )
                    for version in versions
                ]
                for name, versions in self.packages.items()
            }
        )

    def fetch_metadata(self, url: str, name: str, version: str) -> str:
        self._record("metadata", name, version)
        return make_rockspec(
            name,
            version,
            self.packages[name][version],
            build_type=self.build_types.get(name, "builtin"),
            lua_version=self.lua_versions.get(name),
        )

    def fetch_source(self, url: str) -> Path:
        self._record("source", url)
        stem = url.rsplit("/", 1)[-1]
        if any(stem.startswith(f"{name}-") for name in self.failing):
            raise NetworkError(url, "503 Service Unavailable")
        path = self.cache.source_path(url)
        self.cache.write(path, f"source of {stem}".encode())
        return path

    def calls_for(self, kind: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == kind]


@pytest.fixture
def cache(tmp_path: Path) -> Cache:
    cache = Cache(tmp_path / "cache")
    cache.init()
    return cache


@pytest.fixture
def fake_registry(cache: Cache) -> Callable[..., FakeRegistryClient]:
    def factory(packages: dict[str, dict[str, list[str]]], **kwargs: object) -> FakeRegistryClient:
        return FakeRegistryClient(cache, packages, **kwargs)  # type: ignore[arg-type]

    return factory
