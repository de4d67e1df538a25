"""Building and updating lockfiles from a project manifest."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .downloader import DEFAULT_MAX_CONCURRENT, ParallelDownloader, create_download_tasks
from .errors import CacheError, LockfileError
from .lockfile import LockedPackage, Lockfile
from .resolver import DependencyResolver

if TYPE_CHECKING:
    from collections.abc import Mapping

    from semantic_version import Version

    from .cache import Cache
    from .downloader import DownloadResult, DownloadTask
    from .manifest import PackageManifest
    from .registry import PackageIndex, RegistryClient
    from .runtime import RuntimeVersion

logger = logging.getLogger(__name__)


class LockfileBuilder:
    """Resolves a manifest's dependencies and locks every resolved package to a checksummed source archive."""

    def __init__(
        self,
        cache: Cache,
        client: RegistryClient,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        installed_runtime: RuntimeVersion | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            cache: the cache the client downloads into
            client: the registry client
            max_concurrent: maximum number of downloads in flight
            installed_runtime: if given, packages requiring another Lua version are rejected

        """
        self.cache = cache
        self.client = client
        self.installed_runtime = installed_runtime
        self.downloader = ParallelDownloader(client, max_concurrent)

    def resolve(self, manifest: PackageManifest, index: PackageIndex, *, exclude_dev: bool = False) -> dict[str, Version]:
        """Resolve the manifest's dependencies and, unless ``exclude_dev``, its dev dependencies.

        A package reached from both keeps the version resolved for the regular dependencies.
        """
        resolver = DependencyResolver(index, self.client)
        resolved = resolver.resolve(manifest.parsed_dependencies())
        if exclude_dev or not manifest.dev_dependencies:
            return resolved
        for name, version in resolver.resolve(manifest.parsed_dependencies(dev=True)).items():
            if name not in resolved:
                resolved[name] = version
            elif resolved[name] != version:
                logger.warning(
                    "Dev dependencies resolved %s to %s but regular dependencies need %s; using %s",
                    name,
                    version,
                    resolved[name],
                    resolved[name],
                )
        return resolved

    def build_lockfile(self, manifest: PackageManifest, *, exclude_dev: bool = False) -> Lockfile:
        """Build a new lockfile for ``manifest``.

        Raises:
            RocklockError: the first error met while resolving or downloading. No
                partial lockfile is ever returned.

        """
        index = self.client.fetch_index()
        resolved = self.resolve(manifest, index, exclude_dev=exclude_dev)
        lockfile = Lockfile()
        self._lock_packages(index, resolved, lockfile)
        return lockfile

    def update_lockfile(
        self, existing: Lockfile | None, manifest: PackageManifest, *, exclude_dev: bool = False
    ) -> Lockfile:
        """Re-resolve ``manifest`` and update ``existing``, reusing every entry whose version is unchanged."""
        index = self.client.fetch_index()
        resolved = self.resolve(manifest, index, exclude_dev=exclude_dev)
        return self.update_from_resolved(existing, resolved, index)

    def update_from_resolved(
        self,
        existing: Lockfile | None,
        resolved: Mapping[str, Version],
        index: PackageIndex | None = None,
    ) -> Lockfile:
        """Lock ``resolved``, copying entries of ``existing`` whose version string is unchanged.

        Copied entries are not downloaded or checksummed again. The package index is
        fetched (when not given) only if some package has to be locked anew.
        """
        lockfile = Lockfile()
        changed: dict[str, Version] = {}
        for name, version in sorted(resolved.items()):
            prior = existing.get_package(name) if existing is not None else None
            if prior is not None and prior.version == str(version):
                logger.debug("Keeping locked %s %s", name, version)
                lockfile.add_package(name, prior)
            else:
                changed[name] = version
        if changed:
            logger.info("Locking %d new or changed package(s)", len(changed))
            if index is None:
                index = self.client.fetch_index()
            self._lock_packages(index, changed, lockfile)
        return lockfile

    def _lock_packages(self, index: PackageIndex, resolved: Mapping[str, Version], lockfile: Lockfile) -> None:
        tasks = {task.name: task for task in create_download_tasks(index, resolved)}
        results = self.downloader.download_packages(tasks.values(), self.installed_runtime)
        for result in sorted(results, key=lambda r: r.name):
            if result.error is not None:
                raise result.error
            lockfile.add_package(result.name, self._locked_package(tasks[result.name], result, resolved[result.name]))

    def _locked_package(self, task: DownloadTask, result: DownloadResult, version: Version) -> LockedPackage:
        if result.source_path is None or result.source_url is None or result.metadata is None:
            msg = f"No source archive was downloaded for '{result.name}' {result.version}"
            raise LockfileError(msg)
        checksum = self.cache.checksum(result.source_path)
        try:
            size = result.source_path.stat().st_size
        except OSError as e:
            raise CacheError(result.source_path, f"Failed to stat source archive ({e})") from e
        build = result.metadata.build
        return LockedPackage(
            version=str(version),
            metadata_url=task.metadata_url,
            source_url=result.source_url,
            checksum=checksum,
            size=size,
            dependencies=result.metadata.package_dependencies(),
            build=build.to_obj() if build.needs_build else None,
        )
