"""Command-line driver for rocklock."""

from __future__ import annotations

import logging

from .builder import LockfileBuilder
from .cache import Cache
from .config import Settings
from .errors import RocklockError
from .lockfile import Lockfile
from .logger import setup_logger
from .manifest import PackageManifest
from .registry import HTTPRegistryClient
from .rocklock import version
from .runtime import RuntimeVersion
from .verifier import PackageVerifier

logger = logging.getLogger(__name__)


def verify_lockfile(settings: Settings, cache: Cache) -> int:
    lockfile = Lockfile.load(settings.project)
    if lockfile is None:
        logger.error("No lockfile found in %s", settings.project)
        return 1
    result = PackageVerifier(cache).verify_all(lockfile)
    logger.info("Verified %d package(s), %d failed", len(result.successful), len(result.failed))
    return 0 if result else 1


def lock(settings: Settings, cache: Cache) -> int:
    manifest = PackageManifest.load(settings.project)
    installed_runtime = (
        RuntimeVersion.parse(settings.installed_runtime) if settings.installed_runtime is not None else None
    )
    builder = LockfileBuilder(
        cache,
        HTTPRegistryClient.from_settings(cache, settings),
        max_concurrent=settings.max_concurrent_downloads,
        installed_runtime=installed_runtime,
    )
    if settings.update:
        lockfile = builder.update_lockfile(
            Lockfile.load(settings.project), manifest, exclude_dev=settings.production
        )
    else:
        lockfile = builder.build_lockfile(manifest, exclude_dev=settings.production)
    lockfile.save(settings.project)
    if settings.verify_checksums:
        result = PackageVerifier(cache).verify_all(lockfile)
        if not result:
            return 1
    return 0


def main() -> int:
    settings = Settings(_cli_parse_args=True)  # type: ignore[call-arg]
    setup_logger(settings)

    if settings.version:
        logger.info("rocklock version %s", version())
        return 0

    logger.debug("Starting rocklock with settings: %s", settings)
    cache = Cache(settings.cache_dir)
    try:
        cache.init()
        if settings.clean_cache:
            cache.clean(settings.cache_max_age_days, settings.cache_max_size)
            return 0
        if settings.verify:
            return verify_lockfile(settings, cache)
        return lock(settings, cache)
    except RocklockError as e:
        logger.error("%s", e)  # noqa: TRY400
        return 1
