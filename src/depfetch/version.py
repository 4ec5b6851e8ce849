"""Loose version parsing and ordering for plugin artifacts.

Plugin authors publish versions in many shapes, so the parser accepts, in order:

    build-123, #123           a pure build counter
    R4.0.9, v2.11, 5.4.0-SNAPSHOT, 1_2_3+meta
                              optional prefix, numeric run, qualifier and metadata
    anything else with digits every run of digits, in order

Only strings without a single digit are rejected.
"""

from __future__ import annotations

import functools
import re
from enum import Enum

BUILD_NUMBER_PATTERN = re.compile(r"^(?:build[-.]?#?|#)(\d+)$", re.IGNORECASE)
VERSION_PATTERN = re.compile(
    r"^([a-zA-Z]*-?)?"  # prefix (R, v, release-)
    r"([0-9]+(?:[._][0-9]+)*)"  # numeric components
    r"(?:[-.]?([a-zA-Z][a-zA-Z0-9]*(?:[-._][a-zA-Z0-9]+)*))?"  # qualifier
    r"(?:\+(.+))?$"  # build metadata
)
TRAILING_NUMBER = re.compile(r"(\d+)$")
DIGIT_RUN = re.compile(r"\d+")

# Substring checks run in this order, so "release" is tested after "rc".
QUALIFIER_RANKS: tuple[tuple[str, int], ...] = (
    ("snapshot", 0),
    ("dev", 1),
    ("alpha", 2),
    ("beta", 3),
    ("rc", 4),
    ("cr", 4),
    ("final", 6),
    ("ga", 6),
    ("release", 6),
)
UNKNOWN_QUALIFIER_RANK = 5
PRERELEASE_MARKERS = ("snapshot", "alpha", "beta", "dev", "rc", "cr")
# Digits converted per step; stays below the interpreter's int-from-string length limit.
DIGIT_CHUNK = 1000


class VersionParseError(ValueError):
    """Raised when a string cannot be read as a version."""


class UpdatePolicy(Enum):
    """How far a version may drift from a baseline."""

    NONE = "NONE"
    PATCH = "PATCH"
    MINOR = "MINOR"
    MAJOR = "MAJOR"

    @property
    def strictness(self) -> int:
        """Position in NONE < PATCH < MINOR < MAJOR."""
        return list(UpdatePolicy).index(self)

    def merge(self, other: UpdatePolicy) -> UpdatePolicy:
        """Return the more restrictive of two policies."""
        return self if self.strictness <= other.strictness else other

    @classmethod
    def parse(cls, value: str | UpdatePolicy) -> UpdatePolicy:
        """Read a policy name case-insensitively."""
        if isinstance(value, UpdatePolicy):
            return value
        try:
            return cls[value.strip().upper()]
        except KeyError as e:
            msg = f"Unknown update policy: {value!r}"
            raise ValueError(msg) from e


def qualifier_rank(qualifier: str) -> int:
    """Rank a qualifier: snapshot < dev < alpha < beta < rc < unknown < final/ga/release."""
    letters = re.sub(r"[^a-z]", "", qualifier.lower())
    for marker, rank in QUALIFIER_RANKS:
        if marker in letters:
            return rank
    return UNKNOWN_QUALIFIER_RANK


def parse_number(digits: str) -> int:
    """Convert a run of decimal digits of any length to an int."""
    digits = digits.lstrip("0") or "0"
    if len(digits) <= DIGIT_CHUNK:
        return int(digits)
    value = 0
    for start in range(0, len(digits), DIGIT_CHUNK):
        chunk = digits[start : start + DIGIT_CHUNK]
        value = value * 10 ** len(chunk) + int(chunk)
    return value


@functools.total_ordering
class Version:
    """An immutable, totally ordered version value.

    Equality looks at the numeric components, the qualifier and the build number only; the raw
    text and the prefix are cosmetic.
    """

    __slots__ = ("_build_metadata", "_build_number", "_components", "_prefix", "_qualifier", "_raw")

    def __init__(  # noqa: PLR0913
        self,
        raw: str,
        components: tuple[int, ...] = (),
        *,
        prefix: str | None = None,
        qualifier: str | None = None,
        build_number: int | None = None,
        build_metadata: str | None = None,
    ) -> None:
        """Build a version from already parsed parts. Use `Version.parse` for strings."""
        self._raw = raw
        self._components = tuple(components)
        self._prefix = prefix or None
        self._qualifier = qualifier or None
        self._build_number = build_number
        self._build_metadata = build_metadata or None

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse a version string.

        Args:
            text: the version string, surrounding whitespace is ignored

        Returns:
            the parsed Version

        Raises:
            VersionParseError: if the string is blank or holds no digit at all

        """
        if text is None or not str(text).strip():
            msg = "Version string cannot be empty"
            raise VersionParseError(msg)
        trimmed = str(text).strip()

        build_match = BUILD_NUMBER_PATTERN.match(trimmed)
        if build_match:
            return cls(trimmed, (), prefix="build-", build_number=parse_number(build_match.group(1)))

        match = VERSION_PATTERN.match(trimmed)
        if match is None:
            numbers = DIGIT_RUN.findall(trimmed)
            if not numbers:
                msg = f"Cannot parse version: {text!r}"
                raise VersionParseError(msg)
            return cls(trimmed, tuple(parse_number(n) for n in numbers))

        prefix, numeric, qualifier, metadata = match.groups()
        components = tuple(parse_number(part) for part in re.split(r"[._]", numeric))
        build_number = None
        if qualifier:
            trailing = TRAILING_NUMBER.search(qualifier)
            if trailing:
                build_number = parse_number(trailing.group(1))
        return cls(
            trimmed,
            components,
            prefix=prefix,
            qualifier=qualifier,
            build_number=build_number,
            build_metadata=metadata,
        )

    @classmethod
    def try_parse(cls, text: str | None) -> Version | None:
        """Parse a version string, returning None instead of raising."""
        if text is None:
            return None
        try:
            return cls.parse(text)
        except VersionParseError:
            return None

    @property
    def raw(self) -> str:
        return self._raw

    @property
    def prefix(self) -> str | None:
        return self._prefix

    @property
    def components(self) -> tuple[int, ...]:
        return self._components

    @property
    def qualifier(self) -> str | None:
        return self._qualifier

    @property
    def build_number(self) -> int | None:
        return self._build_number

    @property
    def build_metadata(self) -> str | None:
        return self._build_metadata

    @property
    def major(self) -> int:
        return self._component(0)

    @property
    def minor(self) -> int:
        return self._component(1)

    @property
    def patch(self) -> int:
        return self._component(2)

    def _component(self, index: int) -> int:
        return self._components[index] if index < len(self._components) else 0

    @property
    def is_prerelease(self) -> bool:
        """Whether the qualifier marks a snapshot, dev, alpha, beta or release candidate."""
        if self._qualifier is None:
            return False
        lower = self._qualifier.lower()
        return any(marker in lower for marker in PRERELEASE_MARKERS)

    def is_allowed_by(self, baseline: Version, policy: UpdatePolicy) -> bool:
        """Check whether this version is an acceptable update of `baseline` under `policy`."""
        if policy is UpdatePolicy.NONE:
            return self == baseline
        if self < baseline:
            return False
        if policy is UpdatePolicy.PATCH:
            return self.major == baseline.major and self.minor == baseline.minor
        if policy is UpdatePolicy.MINOR:
            return self.major == baseline.major
        return True

    def _tail_key(self) -> tuple[bool, int, bool, int, str, str, int]:
        """Ordering key applied once the zero-padded components tie.

        Releases sort above qualified versions; qualifiers sort by rank, then by embedded build
        number, then case-insensitively by text. The last fields only separate values that the
        earlier ones consider equal, keeping the order consistent with `__eq__`.
        """
        qualifier = self._qualifier or ""
        return (
            self._qualifier is None,
            qualifier_rank(qualifier) if self._qualifier else 0,
            self._build_number is not None,
            self._build_number or 0,
            qualifier.lower(),
            qualifier,
            len(self._components),
        )

    def compare(self, other: Version) -> int:
        """Three-way comparison: negative, zero or positive."""
        width = max(len(self._components), len(other._components))
        mine = self._components + (0,) * (width - len(self._components))
        theirs = other._components + (0,) * (width - len(other._components))
        if mine != theirs:
            return -1 if mine < theirs else 1
        left, right = self._tail_key(), other._tail_key()
        if left == right:
            return 0
        return -1 if left < right else 1

    def __eq__(self, other: object) -> bool:
        """Compare components, qualifier and build number."""
        if not isinstance(other, Version):
            return NotImplemented
        return (
            self._components == other._components
            and self._qualifier == other._qualifier
            and self._build_number == other._build_number
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self) -> int:
        return hash((self._components, self._qualifier, self._build_number))

    def __str__(self) -> str:
        return self._raw

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._raw!r})"
