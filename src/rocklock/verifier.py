"""Verification of lockfile checksums against cached source archives."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .cache import Cache, validate_checksum
from .errors import CacheError, ChecksumMismatchError, RocklockError

if TYPE_CHECKING:
    from pathlib import Path

    from .lockfile import LockedPackage, Lockfile

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    successful: list[str] = field(default_factory=list)
    failed: list[tuple[str, RocklockError]] = field(default_factory=list)

    def __bool__(self) -> bool:
        """Return whether every package verified."""
        return not self.failed


class PackageVerifier:
    """Checks that cached source archives still hash to the checksums recorded in a lockfile."""

    def __init__(self, cache: Cache) -> None:
        self.cache = cache

    @staticmethod
    def verify_file(path: Path, expected: str, package: str | None = None) -> None:
        """Check that ``path`` hashes to ``expected``.

        Raises:
            InvalidChecksumError: if ``expected`` is not a ``sha256:`` checksum
            ChecksumMismatchError: if the file hashes to something else

        """
        validate_checksum(expected, package)
        actual = Cache.checksum(path)
        if actual != expected:
            raise ChecksumMismatchError(expected, actual, package)

    def verify_package(self, name: str, locked: LockedPackage) -> None:
        """Check the cached source archive of a locked package against its recorded checksum."""
        validate_checksum(locked.checksum, name)
        if not locked.source_url:
            msg = f"No source URL recorded for '{name}'"
            raise CacheError(name, msg)
        path = self.cache.source_path(locked.source_url)
        if not path.is_file():
            raise CacheError(path, f"Source archive of '{name}' is not cached")
        self.verify_file(path, locked.checksum, name)

    def verify_all(self, lockfile: Lockfile) -> VerificationResult:
        """Verify every package of ``lockfile``, collecting failures instead of stopping at the first."""
        result = VerificationResult()
        for name, locked in lockfile:
            try:
                self.verify_package(name, locked)
            except RocklockError as e:
                logger.warning("Verification of %s failed: %s", name, e)
                result.failed.append((name, e))
            else:
                result.successful.append(name)
        return result
