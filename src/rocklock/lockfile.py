"""The lockfile: the exact version, origin and checksum of every package in a project."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .cache import validate_checksum
from .errors import LockfileError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

LOCKFILE_NAME = "package.lock"
LOCKFILE_VERSION = 1
DEFAULT_SOURCE = "luarocks"


def atomic_write(path: Path, content: str) -> None:
    """Write ``content`` to a temporary file next to ``path`` and then move it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, str(path))
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


@dataclass
class LockedPackage:
    """A package pinned in the lockfile."""

    version: str
    metadata_url: str
    source_url: str
    checksum: str
    source: str = DEFAULT_SOURCE
    size: int | None = None
    dependencies: dict[str, str] = field(default_factory=dict)
    build: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        validate_checksum(self.checksum)

    def to_obj(self) -> dict[str, Any]:
        ret: dict[str, Any] = {
            "version": self.version,
            "source": self.source,
            "metadata_url": self.metadata_url,
            "source_url": self.source_url,
            "checksum": self.checksum,
        }
        if self.size is not None:
            ret["size"] = self.size
        ret["dependencies"] = dict(sorted(self.dependencies.items()))
        if self.build is not None:
            ret["build"] = self.build
        return ret

    @classmethod
    def from_obj(cls, name: str, obj: dict[str, Any]) -> LockedPackage:
        """Create a locked package from its lockfile entry.

        Raises:
            LockfileError: if a required field is missing.
            InvalidChecksumError: if the checksum is not ``sha256:<64 lowercase hex>``.

        """
        if not isinstance(obj, dict):
            msg = f"Lockfile entry for '{name}' must be a mapping"
            raise LockfileError(msg)
        missing = [key for key in ("version", "metadata_url", "source_url", "checksum") if key not in obj]
        if missing:
            msg = f"Lockfile entry for '{name}' is missing {', '.join(missing)}"
            raise LockfileError(msg)
        return cls(
            version=str(obj["version"]),
            source=obj.get("source", DEFAULT_SOURCE),
            metadata_url=obj["metadata_url"],
            source_url=obj["source_url"],
            checksum=obj["checksum"],
            size=obj.get("size"),
            dependencies={dep: str(constraint) for dep, constraint in (obj.get("dependencies") or {}).items()},
            build=obj.get("build"),
        )


class Lockfile:
    """Every locked package of a project, by name."""

    def __init__(self, packages: dict[str, LockedPackage] | None = None, lockfile_version: int = LOCKFILE_VERSION):
        self.lockfile_version: int = lockfile_version
        self.packages: dict[str, LockedPackage] = dict(packages or {})

    def add_package(self, name: str, package: LockedPackage) -> None:
        self.packages[name] = package

    def get_package(self, name: str) -> LockedPackage | None:
        return self.packages.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __len__(self) -> int:
        return len(self.packages)

    def __iter__(self) -> Iterator[tuple[str, LockedPackage]]:
        """Iterate over ``(name, package)`` pairs in name order."""
        for name in sorted(self.packages):
            yield name, self.packages[name]

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Lockfile)
            and self.lockfile_version == other.lockfile_version
            and self.packages == other.packages
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({len(self)} packages)"

    def to_obj(self) -> dict[str, Any]:
        return {
            "lockfile_version": self.lockfile_version,
            "packages": {name: package.to_obj() for name, package in self},
        }

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> Lockfile:
        if not isinstance(obj, dict):
            msg = "Lockfile must be a mapping"
            raise LockfileError(msg)
        lockfile_version = obj.get("lockfile_version")
        if lockfile_version != LOCKFILE_VERSION:
            msg = f"Unsupported lockfile version {lockfile_version!r} (expected {LOCKFILE_VERSION})"
            raise LockfileError(msg)
        packages = obj.get("packages") or {}
        if not isinstance(packages, dict):
            msg = "Lockfile 'packages' must be a mapping"
            raise LockfileError(msg)
        return cls(
            {name: LockedPackage.from_obj(name, entry) for name, entry in packages.items()},
            lockfile_version=lockfile_version,
        )

    @staticmethod
    def path(project_root: Path | str) -> Path:
        return Path(project_root) / LOCKFILE_NAME

    @classmethod
    def load(cls, project_root: Path | str) -> Lockfile | None:
        """Load the lockfile of the project at ``project_root``, or return None if it has none."""
        path = cls.path(project_root)
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as f:
                obj = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Failed to parse {path}: {e}"
            raise LockfileError(msg) from e
        logger.debug("Loaded lockfile %s", path)
        return cls.from_obj(obj)

    def save(self, project_root: Path | str) -> Path:
        """Write the lockfile into ``project_root``, replacing any previous one atomically."""
        path = self.path(project_root)
        content = yaml.safe_dump(self.to_obj(), default_flow_style=False, allow_unicode=True, sort_keys=True)
        atomic_write(path, content)
        logger.info("Wrote %s (%d packages)", path, len(self))
        return path
