"""Version and version-constraint model.

Versions are plain ``major.minor.patch`` triples held in
:class:`semantic_version.Version`. Registry versions carry a dash revision
(``3.0-1``); the dash is read as one more dot-separator.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

from semantic_version import Version

from .errors import VersionParseError

_NUMERIC = re.compile(r"[0-9]+")
_MAX_COMPONENTS = 3

ZERO = Version(major=0, minor=0, patch=0)


def version_components(text: str) -> tuple[int, ...]:
    """Split a version string into its numeric components, treating ``-`` as one more separator.

    ``1.13.1-2`` gives ``(1, 13, 1, 2)``.

    Raises:
        VersionParseError: if any component is empty or non-numeric.

    """
    parts = text.strip().replace("-", ".").split(".")
    for part in parts:
        if not _NUMERIC.fullmatch(part):
            raise VersionParseError(text, f"non-numeric component {part!r}")
    return tuple(int(part) for part in parts)


def parse_version(text: str) -> Version:
    """Parse a version string such as ``1.2.3``, ``1.2`` or ``3.0-1``.

    A ``-`` is read as a ``.``, and the first three components become major,
    minor and patch. Missing minor and patch components default to zero and
    any further components are ignored, so ``3.0-1`` is ``3.0.1`` while
    ``1.13.1-1`` is ``1.13.1``.

    Raises:
        VersionParseError: if any component is empty or non-numeric.

    """
    numbers = list(version_components(text)[:_MAX_COMPONENTS])
    numbers.extend([0] * (_MAX_COMPONENTS - len(numbers)))
    return Version(major=numbers[0], minor=numbers[1], patch=numbers[2])


class VersionConstraint(ABC):
    """A predicate over versions."""

    @abstractmethod
    def match(self, version: Version) -> bool:
        """Return whether ``version`` satisfies this constraint."""
        raise NotImplementedError

    def __contains__(self, version: Version) -> bool:
        """Support ``version in constraint`` like :mod:`semantic_version` specs."""
        return self.match(version)


@dataclass(frozen=True)
class _BoundConstraint(VersionConstraint):
    version: Version
    operator: ClassVar[str] = ""

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"


class Exact(_BoundConstraint):
    """Exactly ``version``."""

    def match(self, version: Version) -> bool:
        return version == self.version


class Compatible(_BoundConstraint):
    """``^v``: at least ``v`` within the same major version."""

    operator = "^"

    def match(self, version: Version) -> bool:
        return version.major == self.version.major and version >= self.version


class Patch(_BoundConstraint):
    """``~v``: at least ``v`` within the same major and minor version."""

    operator = "~"

    def match(self, version: Version) -> bool:
        return (version.major, version.minor) == (self.version.major, self.version.minor) and version >= self.version


class GreaterOrEqual(_BoundConstraint):
    """``>=v``."""

    operator = ">="

    def match(self, version: Version) -> bool:
        return version >= self.version


class LessThan(_BoundConstraint):
    """``<v``."""

    operator = "<"

    def match(self, version: Version) -> bool:
        return version < self.version


class AnyPatch(_BoundConstraint):
    """``1.2.x``: any patch release of ``major.minor``, regardless of the bound's patch."""

    def match(self, version: Version) -> bool:
        return (version.major, version.minor) == (self.version.major, self.version.minor)

    def __str__(self) -> str:
        return f"{self.version.major}.{self.version.minor}.x"


@dataclass(frozen=True)
class AllOf(VersionConstraint):
    """Conjunction of constraints, written comma-separated (``>=1.0, <2.0``)."""

    constraints: tuple[VersionConstraint, ...]

    def match(self, version: Version) -> bool:
        return all(c.match(version) for c in self.constraints)

    def __str__(self) -> str:
        return ", ".join(map(str, self.constraints))


ANY = GreaterOrEqual(ZERO)

_PREFIXES: tuple[tuple[str, type[_BoundConstraint]], ...] = (
    (">=", GreaterOrEqual),
    ("^", Compatible),
    ("~", Patch),
    ("<", LessThan),
)


def parse_constraint(text: str) -> VersionConstraint:
    """Parse a constraint expression.

    Supported forms: ``1.2.3`` (exact), ``^1.2.3``, ``~1.2.3``, ``>=1.2.3``,
    ``<2.0.0``, ``1.2.x``, ``*`` and comma-separated conjunctions of these.

    Raises:
        VersionParseError: if the bound is not a valid version. Unparsable
            constraints are never treated as unconstrained.

    """
    stripped = text.strip()
    if "," in stripped:
        parts = [part.strip() for part in stripped.split(",")]
        if not all(parts):
            raise VersionParseError(text, "empty clause in constraint list")
        return AllOf(tuple(parse_constraint(part) for part in parts))
    if stripped == "*":
        return ANY
    for prefix, constraint_type in _PREFIXES:
        if stripped.startswith(prefix):
            return constraint_type(parse_version(stripped[len(prefix) :]))
    if stripped.endswith(".x"):
        return AnyPatch(parse_version(stripped[: -len(".x")]))
    return Exact(parse_version(stripped))


def satisfies(version: Version, constraint: VersionConstraint) -> bool:
    """Return whether ``version`` satisfies ``constraint``."""
    return constraint.match(version)
