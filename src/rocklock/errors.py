"""Exceptions raised by rocklock.

Every error carries the context needed to diagnose it (package, version,
constraint, expected/actual checksum) as attributes as well as in its message.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

__all__ = [
    "CacheError",
    "ChecksumMismatchError",
    "CircularDependencyError",
    "DependencySpecError",
    "DownloadError",
    "InvalidChecksumError",
    "LockfileError",
    "ManifestError",
    "MetadataError",
    "NetworkError",
    "NoSatisfyingVersionError",
    "PackageNotFoundError",
    "RocklockError",
    "RuntimeIncompatibleError",
    "VersionConflictError",
    "VersionParseError",
]


class RocklockError(Exception):
    """Base class for all rocklock errors."""


class VersionParseError(RocklockError, ValueError):
    """A version or constraint string could not be parsed."""

    def __init__(self, text: str, reason: str = "") -> None:
        """Initialize the error with the offending text."""
        self.text = text
        msg = f"Invalid version or constraint {text!r}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class DependencySpecError(VersionParseError):
    """A free-form dependency entry from package metadata could not be parsed."""


class PackageNotFoundError(RocklockError):
    """A package is not present in the registry index or the dependency graph."""

    def __init__(self, package: str, where: str = "registry index") -> None:
        """Initialize the error."""
        self.package = package
        super().__init__(f"Package '{package}' not found in {where}")


class NoSatisfyingVersionError(RocklockError):
    """No available version of a package satisfies the requested constraint."""

    def __init__(self, package: str, constraint: object, available: Iterable[object] = ()) -> None:
        """Initialize the error."""
        self.package = package
        self.constraint = constraint
        self.available = [str(v) for v in available]
        msg = f"No version of '{package}' satisfies constraint {constraint!s}"
        if self.available:
            msg = f"{msg} (available: {', '.join(self.available)})"
        super().__init__(msg)


class VersionConflictError(RocklockError):
    """No single version satisfies every constraint placed on a package."""

    def __init__(self, package: str, constraints: Sequence[object]) -> None:
        """Initialize the error."""
        self.package = package
        self.constraints = list(constraints)
        if self.constraints:
            msg = (
                f"Version conflict for '{package}': no version satisfies all constraints "
                f"({', '.join(map(str, self.constraints))})"
            )
        else:
            msg = f"Version conflict for '{package}': no constraints provided"
        super().__init__(msg)


class CircularDependencyError(RocklockError):
    """The dependency graph contains one or more cycles."""

    def __init__(self, cycles: Sequence[Sequence[str]]) -> None:
        """Initialize the error with every cycle found."""
        self.cycles = [list(cycle) for cycle in cycles]
        rendered = "; ".join(" -> ".join([*cycle, cycle[0]]) for cycle in self.cycles)
        super().__init__(f"Circular dependencies detected: {rendered}")


class MetadataError(RocklockError):
    """Package metadata (a rockspec) is malformed."""


class NetworkError(RocklockError):
    """A registry request failed."""

    def __init__(self, url: str, reason: str) -> None:
        """Initialize the error."""
        self.url = url
        super().__init__(f"Failed to fetch {url}: {reason}")


class CacheError(RocklockError):
    """A cache file could not be read, written or found."""

    def __init__(self, path: Path | str, reason: str) -> None:
        """Initialize the error."""
        self.path = path
        super().__init__(f"{reason}: {path!s}")


class InvalidChecksumError(RocklockError, ValueError):
    """A checksum is not of the form ``sha256:<64 lowercase hex>``."""

    def __init__(self, checksum: str, package: str | None = None) -> None:
        """Initialize the error."""
        self.checksum = checksum
        self.package = package
        where = f" for '{package}'" if package else ""
        super().__init__(f"Invalid checksum format{where}: expected 'sha256:...', got {checksum!r}")


class ChecksumMismatchError(RocklockError):
    """The bytes on disk do not hash to the recorded checksum."""

    def __init__(self, expected: str, actual: str, package: str | None = None) -> None:
        """Initialize the error."""
        self.expected = expected
        self.actual = actual
        self.package = package
        where = f" for '{package}'" if package else ""
        super().__init__(f"Checksum mismatch{where}:\n  Expected: {expected}\n  Actual:   {actual}")


class RuntimeIncompatibleError(RocklockError):
    """A package requires a runtime version other than the installed one."""

    def __init__(self, package: str, version: str, required: str, installed: object) -> None:
        """Initialize the error."""
        self.package = package
        self.version = version
        self.required = required
        self.installed = installed
        super().__init__(
            f"Package '{package}' version '{version}' requires Lua {required}, "
            f"but installed version is {installed!s}"
        )


class DownloadError(RocklockError):
    """One or more packages in a download batch failed."""

    def __init__(self, failures: Sequence[tuple[str, BaseException]]) -> None:
        """Initialize the error with every failed package."""
        self.failures = list(failures)
        details = "\n".join(f"  {name}: {error!s}" for name, error in self.failures)
        super().__init__(f"Failed to download {len(self.failures)} package(s):\n{details}")


class LockfileError(RocklockError):
    """A lockfile is malformed or uses an unsupported schema version."""


class ManifestError(RocklockError):
    """A project manifest is missing or invalid."""
