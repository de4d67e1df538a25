"""The project manifest, ``package.yaml``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .errors import ManifestError
from .lockfile import atomic_write
from .runtime import parse_runtime_constraint
from .version import parse_constraint

if TYPE_CHECKING:
    from .version import VersionConstraint

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.yaml"
DEFAULT_LUA_VERSION = "5.4"


@dataclass
class PackageManifest:
    """A project's name, version and direct dependencies.

    ``dependencies`` and ``dev_dependencies`` map package names to constraint
    expressions such as ``^3.0.0`` or ``>=1.2``.
    """

    name: str
    version: str = "1.0.0"
    description: str | None = None
    homepage: str | None = None
    license: str | None = None
    lua_version: str = DEFAULT_LUA_VERSION
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Check the manifest.

        Raises:
            ManifestError: if a name, version or constraint is empty.
            VersionParseError: if a constraint or the Lua version cannot be parsed.

        """
        if not self.name:
            msg = "Package name cannot be empty"
            raise ManifestError(msg)
        if not self.version:
            msg = "Package version cannot be empty"
            raise ManifestError(msg)
        if not self.lua_version:
            msg = "lua_version cannot be empty"
            raise ManifestError(msg)
        parse_runtime_constraint(self.lua_version)
        for kind, deps in (("Dependency", self.dependencies), ("Dev dependency", self.dev_dependencies)):
            for name, constraint in deps.items():
                if not name:
                    msg = f"{kind} name cannot be empty"
                    raise ManifestError(msg)
                if not constraint:
                    msg = f"{kind} '{name}' version cannot be empty"
                    raise ManifestError(msg)
                parse_constraint(constraint)

    def parsed_dependencies(self, *, dev: bool = False) -> dict[str, VersionConstraint]:
        """Return the regular (or, with ``dev=True``, the dev) dependencies with parsed constraints."""
        deps = self.dev_dependencies if dev else self.dependencies
        return {name: parse_constraint(constraint) for name, constraint in deps.items()}

    def to_obj(self) -> dict[str, Any]:
        ret: dict[str, Any] = {"name": self.name, "version": self.version}
        for key in ("description", "homepage", "license"):
            value = getattr(self, key)
            if value is not None:
                ret[key] = value
        ret["lua_version"] = self.lua_version
        ret["dependencies"] = dict(self.dependencies)
        ret["dev_dependencies"] = dict(self.dev_dependencies)
        return ret

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> PackageManifest:
        if not isinstance(obj, dict):
            msg = f"{MANIFEST_NAME} must be a mapping"
            raise ManifestError(msg)
        if "name" not in obj:
            msg = f"{MANIFEST_NAME} is missing 'name'"
            raise ManifestError(msg)

        def _deps(key: str) -> dict[str, str]:
            deps = obj.get(key) or {}
            if not isinstance(deps, dict):
                msg = f"'{key}' in {MANIFEST_NAME} must be a mapping"
                raise ManifestError(msg)
            return {str(name): str(constraint) for name, constraint in deps.items()}

        manifest = cls(
            name=str(obj["name"]),
            version=str(obj.get("version", "1.0.0")),
            description=obj.get("description"),
            homepage=obj.get("homepage"),
            license=obj.get("license"),
            lua_version=str(obj.get("lua_version", DEFAULT_LUA_VERSION)),
            dependencies=_deps("dependencies"),
            dev_dependencies=_deps("dev_dependencies"),
        )
        manifest.validate()
        return manifest

    @classmethod
    def load(cls, project_root: Path | str) -> PackageManifest:
        """Load and validate the ``package.yaml`` of the project at ``project_root``."""
        path = Path(project_root) / MANIFEST_NAME
        if not path.exists():
            msg = f"{MANIFEST_NAME} not found in {project_root!s}"
            raise ManifestError(msg)
        try:
            with path.open(encoding="utf-8") as f:
                obj = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Failed to parse {path}: {e}"
            raise ManifestError(msg) from e
        return cls.from_obj(obj)

    def save(self, project_root: Path | str) -> Path:
        path = Path(project_root) / MANIFEST_NAME
        atomic_write(path, yaml.safe_dump(self.to_obj(), default_flow_style=False, sort_keys=False))
        logger.debug("Wrote %s", path)
        return path
