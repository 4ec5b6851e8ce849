"""The outcome report of one resolution batch."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

    from .constraint import ConstraintConflict
    from .models import FailurePolicy
    from .version import Version


@dataclass(frozen=True)
class DownloadedDependency:
    name: str
    version: Version
    path: Path


@dataclass(frozen=True)
class ExistingDependency:
    name: str
    version: Version
    path: Path


@dataclass(frozen=True)
class SkippedDependency:
    name: str
    reason: str


@dataclass(frozen=True)
class FailedDependency:
    name: str
    error: str
    policy: FailurePolicy


@dataclass
class DownloadResult:
    """Every dependency of a batch lands in exactly one of the four buckets.

    `conflicts` lists constraint merges that had to fall back to the higher minimum, so a caller
    can tell a bound that was knowingly overridden from a dependency that could not be satisfied.
    """

    downloaded: list[DownloadedDependency] = field(default_factory=list)
    existing: list[ExistingDependency] = field(default_factory=list)
    skipped: list[SkippedDependency] = field(default_factory=list)
    failed: list[FailedDependency] = field(default_factory=list)
    conflicts: dict[str, list[ConstraintConflict]] = field(default_factory=dict)
    coordinated: bool = True

    def add_downloaded(self, name: str, version: Version, path: Path) -> None:
        self.downloaded.append(DownloadedDependency(name, version, path))

    def add_existing(self, name: str, version: Version, path: Path) -> None:
        self.existing.append(ExistingDependency(name, version, path))

    def add_skipped(self, name: str, reason: str) -> None:
        self.skipped.append(SkippedDependency(name, reason))

    def add_failed(self, name: str, error: str, policy: FailurePolicy) -> None:
        self.failed.append(FailedDependency(name, error, policy))

    @property
    def requires_restart(self) -> bool:
        """Whether anything new was downloaded and has to be loaded by the host."""
        return bool(self.downloaded)

    @property
    def is_success(self) -> bool:
        return not self.failed

    def __len__(self) -> int:
        return len(self.downloaded) + len(self.existing) + len(self.skipped) + len(self.failed)

    def to_obj(self) -> dict[str, Any]:
        return {
            "success": self.is_success,
            "requiresRestart": self.requires_restart,
            "coordinated": self.coordinated,
            "downloaded": [{"name": d.name, "version": str(d.version), "path": str(d.path)} for d in self.downloaded],
            "existing": [{"name": e.name, "version": str(e.version), "path": str(e.path)} for e in self.existing],
            "skipped": [{"name": s.name, "reason": s.reason} for s in self.skipped],
            "failed": [{"name": f.name, "error": f.error, "policy": f.policy.value} for f in self.failed],
            "conflicts": {name: [c.to_obj() for c in conflicts] for name, conflicts in self.conflicts.items()},
        }
