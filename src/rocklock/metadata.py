"""Package metadata: rockspec parsing and the dependency entries it declares.

Rockspecs are Lua source files. They are not executed; the fields rocklock
needs are extracted with regular expressions and brace matching.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .errors import DependencySpecError, MetadataError, VersionParseError
from .version import ANY, AllOf, Compatible, Exact, GreaterOrEqual, LessThan, VersionConstraint, parse_version

RUNTIME_PACKAGE = "lua"
NATIVE_BUILD_TYPES = frozenset({"builtin", "none"})

_STRING = r"""(?:"([^"]*)"|'([^']*)')"""
_DEPENDENCY_ENTRY = re.compile(r"^\s*([A-Za-z0-9_][A-Za-z0-9_.\-]*)\s*(.*?)\s*$")
_CLAUSE = re.compile(r"^\s*(~>|>=|<=|==|~=|!=|>|<|=)?\s*(\S+)\s*$")
_OPERATOR_START = re.compile(r"^\s*(~>|>=|<=|==|~=|!=|>|<|=)")
_QUOTED_ITEM = re.compile(r"""["']([^"']+)["']""")
_LUA_COMMENT = re.compile(r"--[^\n]*")
_MODULE_ITEM = re.compile(r"""(?:^|(?<=[\s,{;]))(?:\[["']([^"']+)["']\]|([\w.]+))\s*=\s*["']([^"']+)["']""")


def _string_field(content: str, name: str) -> str | None:
    m = re.search(rf"(?<![\w.]){name}\s*=\s*{_STRING}", content)
    if m is None:
        return None
    return m.group(1) if m.group(1) is not None else m.group(2)


def _table_block(content: str, name: str) -> str | None:
    """Return the text between the braces of ``name = { ... }``, or None if there is no such table."""
    m = re.search(rf"(?<![\w.]){name}\s*=\s*\{{", content)
    if m is None:
        return None
    depth = 1
    pos = m.end()
    while pos < len(content) and depth:
        if content[pos] == "{":
            depth += 1
        elif content[pos] == "}":
            depth -= 1
        pos += 1
    if depth:
        msg = f"Unclosed table block for '{name}'"
        raise MetadataError(msg)
    return content[m.end() : pos - 1]


@dataclass
class SourceInfo:
    url: str
    tag: str | None = None
    branch: str | None = None


@dataclass
class BuildInfo:
    type: str = "builtin"
    modules: dict[str, str] = field(default_factory=dict)

    @property
    def needs_build(self) -> bool:
        """Whether this package needs a build step beyond copying Lua modules."""
        return self.type not in NATIVE_BUILD_TYPES

    def to_obj(self) -> dict[str, object]:
        return {"type": self.type, "modules": dict(sorted(self.modules.items()))}


@dataclass
class PackageMetadata:
    """The parts of a rockspec that resolution and locking use."""

    name: str
    version: str
    source: SourceInfo
    dependencies: list[str] = field(default_factory=list)
    build: BuildInfo = field(default_factory=BuildInfo)
    description: str | None = None
    homepage: str | None = None
    license: str | None = None
    lua_version: str | None = None

    @property
    def runtime_constraint(self) -> str | None:
        """The Lua version this package requires, from ``lua_version`` or its ``lua`` dependency."""
        if self.lua_version:
            return self.lua_version
        for entry in self.dependencies:
            if is_runtime_dependency(entry):
                return entry.strip()[len(RUNTIME_PACKAGE) :].strip()
        return None

    def parsed_dependencies(self) -> list[tuple[str, VersionConstraint]]:
        """Parse every dependency entry except the Lua runtime itself."""
        return [parse_dependency_string(entry) for entry in self.dependencies if not is_runtime_dependency(entry)]

    def package_dependencies(self) -> dict[str, str]:
        """Map each package dependency to its constraint as written in the rockspec (``*`` when there is none)."""
        deps = {}
        for entry in self.dependencies:
            if is_runtime_dependency(entry):
                continue
            name, _ = parse_dependency_string(entry)
            m = _DEPENDENCY_ENTRY.match(entry)
            deps[name] = (m.group(2) if m else "") or "*"
        return deps


def parse_metadata(content: str) -> PackageMetadata:
    """Parse the text of a rockspec.

    Raises:
        MetadataError: if ``package``, ``version`` or ``source.url`` is missing,
            or a table is not closed.

    """
    name = _string_field(content, "package")
    if not name:
        msg = "Rockspec is missing the 'package' field"
        raise MetadataError(msg)
    version = _string_field(content, "version")
    if not version:
        msg = f"Rockspec for '{name}' is missing the 'version' field"
        raise MetadataError(msg)

    source_block = _table_block(content, "source") or ""
    url = _string_field(source_block, "url")
    if not url:
        msg = f"Rockspec for '{name}' {version} is missing 'source.url'"
        raise MetadataError(msg)
    source = SourceInfo(url=url, tag=_string_field(source_block, "tag"), branch=_string_field(source_block, "branch"))

    dependencies_block = _table_block(content, "dependencies") or ""
    dependencies = [m.group(1).strip() for m in _QUOTED_ITEM.finditer(_LUA_COMMENT.sub("", dependencies_block))]

    build = BuildInfo()
    build_block = _table_block(content, "build")
    if build_block is not None:
        build.type = _string_field(build_block, "type") or build.type
        modules_block = _table_block(build_block, "modules") or ""
        for m in _MODULE_ITEM.finditer(modules_block):
            build.modules[m.group(1) or m.group(2)] = m.group(3)

    description_block = _table_block(content, "description") or ""
    return PackageMetadata(
        name=name,
        version=version,
        source=source,
        dependencies=dependencies,
        build=build,
        description=_string_field(description_block, "summary"),
        homepage=_string_field(description_block, "homepage") or _string_field(content, "homepage"),
        license=_string_field(description_block, "license") or _string_field(content, "license"),
        lua_version=_string_field(content, "lua_version"),
    )


def is_runtime_dependency(entry: str) -> bool:
    """Return whether a dependency entry names the Lua runtime itself with a version operator (``lua >= 5.1``)."""
    m = _DEPENDENCY_ENTRY.match(entry)
    if m is None:
        return False
    name, rest = m.groups()
    return name == RUNTIME_PACKAGE and _OPERATOR_START.match(rest) is not None


def _parse_clause(clause: str, entry: str) -> VersionConstraint:
    m = _CLAUSE.match(clause)
    if m is None:
        raise DependencySpecError(entry, f"malformed version clause {clause.strip()!r}")
    op, text = m.groups()
    try:
        version = parse_version(text)
    except VersionParseError as e:
        raise DependencySpecError(entry, str(e)) from e
    if op == "~>":
        return Compatible(version)
    if op == ">=":
        return GreaterOrEqual(version)
    if op == ">":
        return GreaterOrEqual(version.next_patch())
    if op == "<":
        return LessThan(version)
    if op == "<=":
        return LessThan(version.next_patch())
    if op in (None, "==", "="):
        return Exact(version)
    raise DependencySpecError(entry, f"unsupported operator {op!r}")


def parse_dependency_string(entry: str) -> tuple[str, VersionConstraint]:
    """Parse a dependency entry such as ``penlight``, ``luasocket >= 3.0`` or ``lpeg ~> 1.0``.

    ``~>`` becomes a caret-compatible constraint, ``> v`` becomes ``>= v`` with the
    patch bumped and ``<= v`` becomes ``< v`` with the patch bumped. Several
    comma-separated clauses must all hold.

    Raises:
        DependencySpecError: if the entry cannot be parsed. A malformed entry is
            never treated as unconstrained.

    """
    m = _DEPENDENCY_ENTRY.match(entry)
    if m is None:
        raise DependencySpecError(entry, "expected a package name")
    name, rest = m.groups()
    if not rest:
        return name, ANY
    clauses = rest.split(",")
    if not all(clause.strip() for clause in clauses):
        raise DependencySpecError(entry, "empty version clause")
    constraints = tuple(_parse_clause(clause, entry) for clause in clauses)
    if len(constraints) == 1:
        return name, constraints[0]
    return name, AllOf(constraints)
