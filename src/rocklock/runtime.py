"""Lua runtime versions and the runtime constraints packages declare."""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Callable

from .errors import VersionParseError

_RUNTIME_VERSION = re.compile(r"^(?:lua\s*)?(\d+)\.(\d+)(?:\.(\d+))?$", re.IGNORECASE)

_OPERATORS: tuple[tuple[str, Callable[[tuple[int, int], tuple[int, int]], bool]], ...] = (
    (">=", operator.ge),
    ("<=", operator.le),
    ("==", operator.eq),
    (">", operator.gt),
    ("<", operator.lt),
    ("=", operator.eq),
)


@dataclass(frozen=True, order=True)
class RuntimeVersion:
    """An installed or required Lua version. Compatibility is decided on ``(major, minor)``."""

    major: int
    minor: int
    patch: int = 0

    @classmethod
    def parse(cls, text: str) -> RuntimeVersion:
        """Parse ``5.4``, ``5.4.6`` or the ``lua -v`` form ``Lua 5.4.6  Copyright ...``."""
        words = text.strip().split()
        if len(words) >= 2 and words[0].lower() == "lua":  # noqa: PLR2004
            candidate = words[1]
        elif words:
            candidate = words[0]
        else:
            candidate = ""
        m = _RUNTIME_VERSION.match(candidate)
        if m is None:
            raise VersionParseError(text, "expected a Lua version such as 5.4")
        return cls(int(m.group(1)), int(m.group(2)), int(m.group(3) or 0))

    @property
    def major_minor(self) -> tuple[int, int]:
        return self.major, self.minor

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True)
class _Comparison:
    op: str
    test: Callable[[tuple[int, int], tuple[int, int]], bool]
    bound: tuple[int, int]

    def match(self, version: RuntimeVersion) -> bool:
        return self.test(version.major_minor, self.bound)


@dataclass(frozen=True)
class RuntimeConstraint:
    """A Lua version requirement such as ``>= 5.1, < 5.5`` or ``5.3 || 5.4``.

    ``alternatives`` is a disjunction of conjunctions of comparisons.
    """

    text: str
    alternatives: tuple[tuple[_Comparison, ...], ...]

    def match(self, version: RuntimeVersion) -> bool:
        """Return whether ``version`` satisfies this constraint."""
        return any(all(c.match(version) for c in clauses) for clauses in self.alternatives)

    def __str__(self) -> str:
        return self.text


def _parse_comparison(text: str, whole: str) -> _Comparison:
    clause = text.strip()
    for op, test in _OPERATORS:
        if clause.startswith(op):
            bound = clause[len(op) :]
            break
    else:
        op, test, bound = "==", operator.eq, clause
    try:
        version = RuntimeVersion.parse(bound)
    except VersionParseError:
        raise VersionParseError(whole, f"invalid Lua version in clause {clause!r}") from None
    return _Comparison(op, test, version.major_minor)


def parse_runtime_constraint(text: str) -> RuntimeConstraint:
    """Parse a runtime constraint.

    Alternatives are separated by ``||`` and each alternative is a comma-separated
    list of comparisons (``>=``, ``>``, ``<=``, ``<``, ``==``, ``=`` or a bare
    version meaning equality).

    Raises:
        VersionParseError: if any clause cannot be parsed.

    """
    if not text.strip():
        raise VersionParseError(text, "empty Lua version constraint")
    alternatives = tuple(
        tuple(_parse_comparison(clause, text) for clause in alternative.split(","))
        for alternative in text.split("||")
    )
    return RuntimeConstraint(text.strip(), alternatives)
