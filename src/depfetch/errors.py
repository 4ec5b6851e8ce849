"""Exceptions raised while resolving a dependency."""

from __future__ import annotations


class DependencyError(Exception):
    """Base class for every per-dependency failure.

    The message is prefixed with the dependency's display name so a log line or a failed outcome
    entry can be read on its own.
    """

    def __init__(self, message: str, dependency: str | None = None) -> None:
        self.dependency = dependency
        self.message = message
        super().__init__(f"[{dependency}] {message}" if dependency else message)


class UnknownSourceError(DependencyError):
    """No adapter is registered for the descriptor's source kind."""


class NotFoundError(DependencyError):
    """The remote repository has no matching project, version or file."""


class TransportError(DependencyError):
    """A request failed: connection error, timeout, bad status or malformed body."""


class ChecksumMismatchError(DependencyError):
    def __init__(self, dependency: str | None, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Checksum mismatch: expected {expected}, got {actual}", dependency)


class UnsatisfiedConstraintError(DependencyError):
    def __init__(self, dependency: str | None, constraint: str, available: list[str]) -> None:
        self.constraint = constraint
        self.available = available
        shown = ", ".join(available[:10]) + (", ..." if len(available) > 10 else "")  # noqa: PLR2004
        super().__init__(f"No version satisfies {constraint}; available: {shown}", dependency)


class CoordinationError(DependencyError):
    """The shared coordination directory or its lock could not be used; aborts the whole batch."""
