"""Version constraints and the algebra used to combine several callers' requirements."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .version import UpdatePolicy, Version

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

CONSTRAINT_CLAUSE = re.compile(r"([<>=!]+)?\s*([^\s,<>=!]+)")
LATEST_EXPRESSIONS = frozenset({"", "*", "latest"})
# Characters that would split a rendered bound into several clauses.
CLAUSE_BREAKING = re.compile(r"[\s,<>=!]")


def _as_version(value: Version | str) -> Version:
    return value if isinstance(value, Version) else Version.parse(value)


def _clause_text(version: Version) -> str:
    """The text of `version` as it appears in a rendered constraint.

    The raw text is kept unless it would not survive `VersionConstraint.parse`, in which case
    the parts that decide equality are rendered instead.
    """
    if not CLAUSE_BREAKING.search(version.raw):
        return version.raw
    text = ".".join(str(c) for c in version.components)
    if version.qualifier:
        text = f"{text}-{version.qualifier}"
    return text


class VersionConstraint:
    """A predicate over versions: an exact match, "latest" (anything) or a bounded range."""

    __slots__ = ("_exact", "_latest", "_max", "_max_inclusive", "_min", "_min_inclusive")

    def __init__(  # noqa: PLR0913
        self,
        *,
        exact: Version | None = None,
        minimum: Version | None = None,
        min_inclusive: bool = False,
        maximum: Version | None = None,
        max_inclusive: bool = False,
        latest: bool = False,
    ) -> None:
        """Create a constraint. Prefer the `exact`, `at_least`, `range`, `latest` and `parse` factories."""
        if minimum is not None and maximum is not None:
            order = minimum.compare(maximum)
            if order > 0 or (order == 0 and not (min_inclusive and max_inclusive)):
                msg = f"Empty version range: {minimum} .. {maximum}"
                raise ValueError(msg)
        self._exact = exact
        self._min = minimum
        self._min_inclusive = min_inclusive if minimum is not None else False
        self._max = maximum
        self._max_inclusive = max_inclusive if maximum is not None else False
        self._latest = latest

    @classmethod
    def exact(cls, version: Version | str) -> VersionConstraint:
        return cls(exact=_as_version(version))

    @classmethod
    def at_least(cls, version: Version | str) -> VersionConstraint:
        """Inclusive minimum."""
        return cls(minimum=_as_version(version), min_inclusive=True)

    @classmethod
    def range(
        cls,
        minimum: Version | str | None,
        maximum: Version | str | None,
        *,
        min_inclusive: bool = True,
        max_inclusive: bool = False,
    ) -> VersionConstraint:
        """A range, inclusive below and exclusive above unless told otherwise."""
        return cls(
            minimum=None if minimum is None else _as_version(minimum),
            min_inclusive=min_inclusive,
            maximum=None if maximum is None else _as_version(maximum),
            max_inclusive=max_inclusive,
        )

    @classmethod
    def latest(cls) -> VersionConstraint:
        return cls(latest=True)

    @classmethod
    def parse(cls, expression: str | None) -> VersionConstraint:
        """Parse a constraint expression.

        Accepted forms::

            5.4.0            exact
            =5.4.0, ==5.4.0  exact
            >=5.0.0          inclusive minimum
            >5.0.0           exclusive minimum
            <6.0.0, <=6.0.0  maximum
            >=5.0.0 <6.0.0   range, clauses separated by spaces or commas
            *, latest, ""    anything

        Raises:
            ValueError: for unknown operators, contradictory bounds or unparseable versions

        """
        if expression is None or expression.strip().lower() in LATEST_EXPRESSIONS:
            return cls.latest()
        trimmed = expression.strip()
        if not any(op in trimmed for op in "<>="):
            return cls.exact(trimmed)

        minimum = maximum = None
        min_inclusive = max_inclusive = False
        clauses = CONSTRAINT_CLAUSE.findall(trimmed)
        for op, text in clauses:
            version = Version.parse(text)
            if op in ("", "=", "=="):
                if len(clauses) > 1:
                    msg = f"An exact version cannot be combined with other clauses: {expression!r}"
                    raise ValueError(msg)
                return cls.exact(version)
            if op == ">=":
                minimum, min_inclusive = version, True
            elif op == ">":
                minimum, min_inclusive = version, False
            elif op == "<=":
                maximum, max_inclusive = version, True
            elif op == "<":
                maximum, max_inclusive = version, False
            else:
                msg = f"Unknown operator {op!r} in constraint {expression!r}"
                raise ValueError(msg)
        if minimum is None and maximum is None:
            msg = f"Could not parse constraint: {expression!r}"
            raise ValueError(msg)
        return cls(minimum=minimum, min_inclusive=min_inclusive, maximum=maximum, max_inclusive=max_inclusive)

    @classmethod
    def from_policy(cls, baseline: Version, policy: UpdatePolicy) -> VersionConstraint:
        """The range of versions `policy` allows starting from `baseline`."""
        if policy is UpdatePolicy.NONE:
            return cls.exact(baseline)
        if policy is UpdatePolicy.PATCH:
            return cls.range(baseline, Version.parse(f"{baseline.major}.{baseline.minor + 1}.0"))
        if policy is UpdatePolicy.MINOR:
            return cls.range(baseline, Version.parse(f"{baseline.major + 1}.0.0"))
        return cls.at_least(baseline)

    @property
    def is_latest(self) -> bool:
        return self._latest

    @property
    def exact_version(self) -> Version | None:
        return self._exact

    @property
    def minimum(self) -> Version | None:
        return self._min

    @property
    def min_inclusive(self) -> bool:
        return self._min_inclusive

    @property
    def maximum(self) -> Version | None:
        return self._max

    @property
    def max_inclusive(self) -> bool:
        return self._max_inclusive

    def is_satisfied_by(self, version: Version) -> bool:
        """Check whether `version` meets this constraint."""
        if self._latest:
            return True
        if self._exact is not None:
            return version == self._exact
        if self._min is not None:
            order = version.compare(self._min)
            if order < 0 or (order == 0 and not self._min_inclusive):
                return False
        if self._max is not None:
            order = version.compare(self._max)
            if order > 0 or (order == 0 and not self._max_inclusive):
                return False
        return True

    __contains__ = is_satisfied_by

    def select_best(self, available: Iterable[Version]) -> Version | None:
        """Return the highest satisfying version, or None if nothing satisfies."""
        for version in sorted(available, reverse=True):
            if self.is_satisfied_by(version):
                return version
        return None

    def merge(self, other: VersionConstraint) -> VersionConstraint | None:
        """Intersect two constraints.

        Returns:
            a constraint satisfied exactly by versions satisfying both, or None when no version can

        """
        if self._latest and other._latest:
            return self
        if self._exact is not None and other._exact is not None:
            return self if self._exact == other._exact else None
        if self._exact is not None:
            return self if other.is_satisfied_by(self._exact) else None
        if other._exact is not None:
            return other if self.is_satisfied_by(other._exact) else None

        minimum, min_inclusive = _tighter(
            (self._min, self._min_inclusive), (other._min, other._min_inclusive), prefer_higher=True
        )
        maximum, max_inclusive = _tighter(
            (self._max, self._max_inclusive), (other._max, other._max_inclusive), prefer_higher=False
        )
        if minimum is not None and maximum is not None:
            order = minimum.compare(maximum)
            if order > 0 or (order == 0 and not (min_inclusive and max_inclusive)):
                return None
        if minimum is None and maximum is None:
            return VersionConstraint.latest()
        return VersionConstraint(
            minimum=minimum, min_inclusive=min_inclusive, maximum=maximum, max_inclusive=max_inclusive
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionConstraint):
            return NotImplemented
        return (
            self._latest == other._latest
            and self._exact == other._exact
            and self._min == other._min
            and self._min_inclusive == other._min_inclusive
            and self._max == other._max
            and self._max_inclusive == other._max_inclusive
        )

    def __hash__(self) -> int:
        return hash((self._exact, self._min, self._min_inclusive, self._max, self._max_inclusive, self._latest))

    def __str__(self) -> str:
        if self._latest:
            return "*"
        if self._exact is not None:
            return _clause_text(self._exact)
        parts = []
        if self._min is not None:
            parts.append(f"{'>=' if self._min_inclusive else '>'}{_clause_text(self._min)}")
        if self._max is not None:
            parts.append(f"{'<=' if self._max_inclusive else '<'}{_clause_text(self._max)}")
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}.parse({str(self)!r})"


def _tighter(
    mine: tuple[Version | None, bool],
    theirs: tuple[Version | None, bool],
    *,
    prefer_higher: bool,
) -> tuple[Version | None, bool]:
    """Pick the tighter of two bounds; on a tie the inclusivity flags are ANDed."""
    (a, a_inclusive), (b, b_inclusive) = mine, theirs
    if a is None:
        return b, b_inclusive
    if b is None:
        return a, a_inclusive
    order = a.compare(b)
    if order == 0:
        return a, a_inclusive and b_inclusive
    if (order > 0) == prefer_higher:
        return a, a_inclusive
    return b, b_inclusive


@dataclass(frozen=True)
class ConstraintConflict:
    """Two constraints that could not be intersected, and what was used instead."""

    left: VersionConstraint
    right: VersionConstraint
    chosen: VersionConstraint

    def __str__(self) -> str:
        return f"{self.left} and {self.right} are incompatible, using {self.chosen}"

    def to_obj(self) -> dict[str, str]:
        return {"left": str(self.left), "right": str(self.right), "chosen": str(self.chosen)}


def merge_with_fallback(
    current: VersionConstraint, other: VersionConstraint
) -> tuple[VersionConstraint, ConstraintConflict | None]:
    """Merge two constraints, falling back to the higher minimum when they are incompatible.

    The fallback favours the newer requirement even though it may break the caller that asked for
    the older range, so the conflict is returned for reporting rather than raised.
    """
    merged = current.merge(other)
    if merged is not None:
        return merged, None
    current_min, other_min = _lower_bound(current), _lower_bound(other)
    if current_min is not None and other_min is not None:
        chosen = VersionConstraint.at_least(current_min if current_min.compare(other_min) > 0 else other_min)
    elif other_min is not None:
        chosen = VersionConstraint.at_least(other_min)
    else:
        chosen = current
    return chosen, ConstraintConflict(current, other, chosen)


def _lower_bound(constraint: VersionConstraint) -> Version | None:
    if constraint.exact_version is not None:
        return constraint.exact_version
    return constraint.minimum


def merge_all(
    constraints: Iterable[VersionConstraint | None], *, log_conflicts: bool = True
) -> tuple[VersionConstraint, list[ConstraintConflict]]:
    """Fold constraints in order; a None or "latest" entry leaves the running result unchanged.

    Returns:
        the effective constraint and every conflict met along the way

    """
    merged = VersionConstraint.latest()
    conflicts: list[ConstraintConflict] = []
    for constraint in constraints:
        if constraint is None or constraint.is_latest:
            continue
        merged, conflict = merge_with_fallback(merged, constraint)
        if conflict is not None:
            if log_conflicts:
                logger.warning("Incompatible version constraints: %s", conflict)
            conflicts.append(conflict)
    return merged, conflicts
