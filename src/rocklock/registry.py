"""Access to the package registry: the package index, package metadata and source archives."""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

import requests

from . import __version__
from .errors import CacheError, NetworkError, PackageNotFoundError, VersionParseError
from .version import parse_version, version_components

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping
    from pathlib import Path

    from semantic_version import Version

    from .cache import Cache
    from .config import Settings

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://luarocks.org/manifests/luarocks"


@dataclass(frozen=True)
class IndexEntry:
    """One published version of a package."""

    version: str
    metadata_url: str
    source_url: str | None = None


class PackageIndex:
    """Every package in the registry and the versions published for it."""

    def __init__(self, packages: Mapping[str, list[IndexEntry]] | None = None) -> None:
        """Initialize the index from a mapping of package name to published versions."""
        self._packages: dict[str, list[IndexEntry]] = {name: list(entries) for name, entries in (packages or {}).items()}

    @classmethod
    def from_manifest_json(cls, obj: Mapping[str, object], base_url: str) -> PackageIndex:
        """Build an index from a LuaRocks JSON manifest.

        The manifest maps ``repository -> name -> version -> [{"arch": ...}]``. A
        ``rockspec`` arch is published at ``<base>/<name>-<version>.rockspec`` and
        a ``src`` arch at ``<base>/<name>-<version>.src.rock``.
        """
        repository = obj.get("repository")
        if not isinstance(repository, dict):
            msg = "Registry manifest has no 'repository' table"
            raise ValueError(msg)
        base = base_url.rstrip("/")
        packages: dict[str, list[IndexEntry]] = {}
        for name, versions in repository.items():
            if not isinstance(versions, dict):
                continue
            entries = []
            for version, arches in versions.items():
                arch_names = {a.get("arch") for a in arches if isinstance(a, dict)} if isinstance(arches, list) else set()
                stem = f"{base}/{name}-{version}"
                entries.append(
                    IndexEntry(
                        version=version,
                        metadata_url=f"{stem}.rockspec",
                        source_url=f"{stem}.src.rock" if "src" in arch_names else None,
                    )
                )
            packages[name] = entries
        return cls(packages)

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def __len__(self) -> int:
        return len(self._packages)

    def __iter__(self) -> Iterator[str]:
        return iter(self._packages)

    def package_names(self) -> list[str]:
        return sorted(self._packages)

    def entries(self, name: str) -> list[IndexEntry]:
        """Return every published version of ``name``.

        Raises:
            PackageNotFoundError: if the registry does not know ``name``.

        """
        try:
            return self._packages[name]
        except KeyError:
            raise PackageNotFoundError(name) from None

    def versions(self, name: str) -> list[str]:
        """Return the version strings published for ``name``, as listed in the registry."""
        return [entry.version for entry in self.entries(name)]

    def entry(self, name: str, version: Version) -> IndexEntry | None:
        """Return the published entry of ``name`` whose version parses to ``version``.

        When several revisions parse to the same version (``1.0.0-1`` and
        ``1.0.0-2``), the highest revision is returned.
        """
        best: tuple[tuple[int, ...], IndexEntry] | None = None
        for entry in self._packages.get(name, ()):
            try:
                if parse_version(entry.version) != version:
                    continue
                components = version_components(entry.version)
            except VersionParseError:
                continue
            if best is None or components > best[0]:
                best = (components, entry)
        return best[1] if best is not None else None


class RegistryClient(ABC):
    """Fetches registry resources. Implementations are expected to cache and to be safe to share between threads."""

    @abstractmethod
    def fetch_index(self) -> PackageIndex:
        """Return the registry's package index."""
        raise NotImplementedError

    @abstractmethod
    def fetch_metadata(self, url: str, name: str, version: str) -> str:
        """Return the text of the metadata of ``name`` at ``version``, published at ``url``."""
        raise NotImplementedError

    @abstractmethod
    def fetch_source(self, url: str) -> Path:
        """Download the source archive at ``url`` and return its local path."""
        raise NotImplementedError


class HTTPRegistryClient(RegistryClient):
    """A :class:`RegistryClient` for a LuaRocks-compatible HTTP registry, backed by a :class:`~rocklock.cache.Cache`."""

    def __init__(
        self,
        cache: Cache,
        registry_url: str = DEFAULT_REGISTRY_URL,
        timeout: float = 30.0,
        index_ttl: float = 24 * 60 * 60,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            cache: where downloaded resources are stored
            registry_url: base URL of the repository; the manifest is ``<registry_url>/manifest``
            timeout: seconds to wait for each request
            index_ttl: seconds a cached package index stays fresh
            session: optional preconfigured HTTP session

        """
        self.cache = cache
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self.index_ttl = index_ttl
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = f"rocklock/{__version__}"
        self.session = session

    @classmethod
    def from_settings(cls, cache: Cache, settings: Settings) -> HTTPRegistryClient:
        return cls(
            cache,
            registry_url=settings.registry_url,
            timeout=settings.request_timeout,
            index_ttl=settings.index_ttl,
        )

    @property
    def manifest_url(self) -> str:
        return f"{self.registry_url}/manifest"

    def _get(self, url: str, params: dict[str, str] | None = None) -> bytes:
        logger.debug("GET %s", url)
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(url, str(e)) from e
        return response.content

    def _index_is_fresh(self, path: Path) -> bool:
        if not self.cache.is_valid(path):
            return False
        try:
            age = time.time() - path.stat().st_mtime
        except OSError:
            return False
        return age < self.index_ttl

    def fetch_index(self) -> PackageIndex:
        path = self.cache.index_path(self.manifest_url)
        if self._index_is_fresh(path):
            logger.debug("Using cached package index %s", path)
            raw = self.cache.read(path)
        else:
            logger.info("Fetching package index from %s", self.manifest_url)
            raw = self._get(self.manifest_url, params={"format": "json"})
            self.cache.write(path, raw)
        try:
            obj = json.loads(raw)
            return PackageIndex.from_manifest_json(obj, self.registry_url)
        except (ValueError, AttributeError) as e:
            raise CacheError(path, f"Invalid package index ({e})") from e

    def fetch_metadata(self, url: str, name: str, version: str) -> str:
        path = self.cache.metadata_path(name, version)
        if self.cache.is_valid(path):
            return self.cache.read_text(path)
        data = self._get(url)
        self.cache.write(path, data)
        return data.decode("utf-8", errors="replace")

    def fetch_source(self, url: str) -> Path:
        path = self.cache.source_path(url)
        if self.cache.is_valid(path):
            logger.debug("Using cached source archive for %s", url)
            return path
        logger.info("Downloading %s", url)
        self.cache.write(path, self._get(url))
        return path
