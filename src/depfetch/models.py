"""Dependency descriptors and the values that flow between sources and the resolver."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path  # noqa: TC003
from typing import Any, Protocol, runtime_checkable

from .checksum import ChecksumAlgorithm
from .constraint import VersionConstraint
from .version import UpdatePolicy, Version


class SourceKind(str, Enum):
    """The kinds of remote repository a dependency can come from."""

    HANGAR = "hangar"
    MODRINTH = "modrinth"
    SPIGET = "spiget"
    GITHUB = "github"
    URL = "url"

    @classmethod
    def parse(cls, value: str | SourceKind) -> SourceKind:
        if isinstance(value, SourceKind):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            msg = f"{value} is not a known source"
            raise ValueError(msg) from e


class FailurePolicy(str, Enum):
    """What to do with a dependency that cannot be resolved.

    FAIL records a failure. WARN_USE_LATEST falls back to the newest listed version when no version
    satisfies the constraint; any other error is still recorded as a failure, but logged as a
    warning. WARN_SKIP records the dependency as skipped instead of failed.
    """

    FAIL = "fail"
    WARN_USE_LATEST = "warn-use-latest"
    WARN_SKIP = "warn-skip"

    @classmethod
    def parse(cls, value: str | FailurePolicy) -> FailurePolicy:
        if isinstance(value, FailurePolicy):
            return value
        normalized = value.strip().lower().replace("_", "-")
        aliases = {"use-latest": cls.WARN_USE_LATEST, "skip": cls.WARN_SKIP}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError as e:
            msg = f"Unknown failure policy: {value!r}"
            raise ValueError(msg) from e


class Platform(str, Enum):
    """Host platforms, with the identifiers each remote repository uses for them."""

    AUTO = "auto"
    FOLIA = "folia"
    PAPER = "paper"
    SPIGOT = "spigot"
    BUKKIT = "bukkit"
    PURPUR = "purpur"
    VELOCITY = "velocity"
    BUNGEECORD = "bungeecord"
    WATERFALL = "waterfall"

    @classmethod
    def parse(cls, value: str | Platform) -> Platform:
        if isinstance(value, Platform):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            msg = f"Unknown platform: {value!r}"
            raise ValueError(msg) from e

    @property
    def hangar_platform(self) -> str:
        """The platform key used by the slug registry's download maps."""
        return _HANGAR_PLATFORMS.get(self, "PAPER")

    @property
    def modrinth_loaders(self) -> tuple[str, ...]:
        """Loaders accepted when listing versions, most specific first."""
        return _MODRINTH_LOADERS[self]

    @property
    def preferred_file_patterns(self) -> tuple[str, ...]:
        """Substrings that mark a file built for this platform."""
        return _PREFERRED_FILES.get(self, ())

    @property
    def incompatible_file_patterns(self) -> tuple[str, ...]:
        """Substrings that mark a file built for some other platform."""
        return _INCOMPATIBLE_FILES.get(self, ())


_HANGAR_PLATFORMS = {
    Platform.VELOCITY: "VELOCITY",
    Platform.BUNGEECORD: "WATERFALL",
    Platform.WATERFALL: "WATERFALL",
}

_MODRINTH_LOADERS = {
    Platform.FOLIA: ("folia", "paper", "spigot", "bukkit"),
    Platform.PAPER: ("paper", "spigot", "bukkit"),
    Platform.PURPUR: ("purpur", "paper", "spigot", "bukkit"),
    Platform.SPIGOT: ("spigot", "bukkit"),
    Platform.BUKKIT: ("bukkit",),
    Platform.VELOCITY: ("velocity",),
    Platform.BUNGEECORD: ("bungeecord",),
    Platform.WATERFALL: ("waterfall", "bungeecord"),
    Platform.AUTO: ("paper", "spigot", "bukkit", "purpur", "folia"),
}

_PREFERRED_FILES = {
    Platform.FOLIA: ("folia", "paper"),
    Platform.PURPUR: ("purpur", "paper"),
    Platform.PAPER: ("paper",),
    Platform.SPIGOT: ("spigot",),
    Platform.BUKKIT: ("bukkit", "spigot"),
    Platform.VELOCITY: ("velocity",),
    Platform.BUNGEECORD: ("bungeecord", "bungee"),
    Platform.WATERFALL: ("waterfall", "bungeecord", "bungee"),
}

_INCOMPATIBLE_FILES = {
    Platform.SPIGOT: ("paper", "folia", "purpur", "velocity", "bungee"),
    Platform.BUKKIT: ("paper", "folia", "purpur", "velocity", "bungee"),
    Platform.PAPER: ("folia", "velocity", "bungee"),
    Platform.FOLIA: ("velocity", "bungee"),
    Platform.PURPUR: ("folia", "velocity", "bungee"),
    Platform.VELOCITY: ("paper", "spigot", "bukkit", "folia", "bungee"),
    Platform.BUNGEECORD: ("paper", "spigot", "bukkit", "folia", "velocity"),
    Platform.WATERFALL: ("paper", "spigot", "bukkit", "folia", "velocity"),
}


@dataclass(frozen=True)
class Dependency:
    """A caller's description of one dependency.

    Two descriptors are the same dependency when they share a source kind and identifier; every
    other field is a preference and does not take part in equality.
    """

    kind: SourceKind
    identifier: str
    name: str | None = field(default=None, compare=False)
    file_name: str | None = field(default=None, compare=False)
    sha256: str | None = field(default=None, compare=False)
    constraint: VersionConstraint | None = field(default=None, compare=False)
    update_policy: UpdatePolicy = field(default=UpdatePolicy.MINOR, compare=False)
    failure_policy: FailurePolicy = field(default=FailurePolicy.FAIL, compare=False)
    runtime_version: str | None = field(default=None, compare=False)
    asset_pattern: str | None = field(default=None, compare=False)
    platform: Platform = field(default=Platform.AUTO, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", SourceKind.parse(self.kind))
        if not self.identifier or not str(self.identifier).strip():
            msg = "A dependency needs an identifier"
            raise ValueError(msg)
        object.__setattr__(self, "identifier", str(self.identifier).strip())
        if isinstance(self.constraint, str):
            object.__setattr__(self, "constraint", VersionConstraint.parse(self.constraint))
        object.__setattr__(self, "update_policy", UpdatePolicy.parse(self.update_policy))
        object.__setattr__(self, "failure_policy", FailurePolicy.parse(self.failure_policy))
        object.__setattr__(self, "platform", Platform.parse(self.platform))
        if self.kind is SourceKind.GITHUB and "/" not in self.identifier:
            msg = f"GitHub dependencies must be given as owner/repo, not {self.identifier!r}"
            raise ValueError(msg)
        if self.kind is SourceKind.SPIGET and not self.identifier.isdigit():
            msg = f"Spiget resource ids are numeric, not {self.identifier!r}"
            raise ValueError(msg)

    @classmethod
    def hangar(cls, slug: str, **options: Any) -> Dependency:
        """A project on Hangar, by slug (e.g. ``ProtocolLib``)."""
        return cls(SourceKind.HANGAR, slug, **options)

    @classmethod
    def modrinth(cls, slug_or_id: str, **options: Any) -> Dependency:
        """A project on Modrinth, by slug or project id."""
        return cls(SourceKind.MODRINTH, slug_or_id, **options)

    @classmethod
    def spiget(cls, resource_id: int, **options: Any) -> Dependency:
        """A SpigotMC resource, through the Spiget API."""
        return cls(SourceKind.SPIGET, str(resource_id), **options)

    @classmethod
    def github(cls, repo: str, **options: Any) -> Dependency:
        """Release assets of a GitHub repository given as ``owner/repo``."""
        return cls(SourceKind.GITHUB, repo, **options)

    @classmethod
    def url(cls, download_url: str, **options: Any) -> Dependency:
        return cls(SourceKind.URL, download_url, **options)

    @classmethod
    def from_string(cls, description: str) -> Dependency:
        """Create a dependency from a string description.

        Args:
            description: String in format "kind:identifier@constraint", the constraint being optional.
                URL identifiers keep any ``@`` they contain; give their constraint after a ``#@``.

        Returns:
            New Dependency instance

        """
        try:
            kind_name, tail = description.split(":", 1)
            kind = SourceKind.parse(kind_name)
            if kind is SourceKind.URL:
                identifier, _, constraint = tail.partition("#@")
            else:
                identifier, _, constraint = tail.partition("@")
            return cls(kind, identifier, constraint=VersionConstraint.parse(constraint) if constraint else None)
        except ValueError as e:
            msg = f"Can not parse dependency description <{description}>"
            raise ValueError(msg) from e

    @property
    def display_name(self) -> str:
        """The display name, or the identifier if none was given."""
        return self.name or self.identifier

    @property
    def key(self) -> tuple[SourceKind, str]:
        return self.kind, self.identifier

    @property
    def is_latest(self) -> bool:
        return self.constraint is None or self.constraint.is_latest

    @property
    def expected_checksum(self) -> tuple[str, ChecksumAlgorithm] | None:
        if self.sha256:
            return self.sha256, ChecksumAlgorithm.SHA256
        return None

    def with_name(self, name: str) -> Dependency:
        return dataclasses.replace(self, name=name)

    def with_file_name(self, file_name: str) -> Dependency:
        return dataclasses.replace(self, file_name=file_name)

    def with_sha256(self, sha256: str) -> Dependency:
        return dataclasses.replace(self, sha256=sha256)

    def with_version(self, version: Version | str) -> Dependency:
        """Request an exact version."""
        return dataclasses.replace(self, constraint=VersionConstraint.exact(version))

    def with_min_version(self, version: Version | str) -> Dependency:
        """Request at least this version (inclusive)."""
        return dataclasses.replace(self, constraint=VersionConstraint.at_least(version))

    def with_range(self, expression: str) -> Dependency:
        """Request a version range such as ``>=5.0.0 <6.0.0``."""
        return dataclasses.replace(self, constraint=VersionConstraint.parse(expression))

    def with_latest(self) -> Dependency:
        return dataclasses.replace(self, constraint=VersionConstraint.latest())

    def with_update_policy(self, policy: UpdatePolicy | str) -> Dependency:
        return dataclasses.replace(self, update_policy=UpdatePolicy.parse(policy))

    def on_failure(self, policy: FailurePolicy | str) -> Dependency:
        return dataclasses.replace(self, failure_policy=FailurePolicy.parse(policy))

    def with_runtime_version(self, runtime_version: str) -> Dependency:
        return dataclasses.replace(self, runtime_version=runtime_version)

    def with_asset_pattern(self, pattern: str) -> Dependency:
        return dataclasses.replace(self, asset_pattern=pattern)

    def with_platform(self, platform: Platform | str) -> Dependency:
        return dataclasses.replace(self, platform=Platform.parse(platform))

    def to_obj(self) -> dict[str, Any]:
        ret: dict[str, Any] = {"source": self.kind.value, "identifier": self.identifier, "name": self.display_name}
        if self.constraint is not None:
            ret["constraint"] = str(self.constraint)
        ret["updatePolicy"] = self.update_policy.value
        ret["failurePolicy"] = self.failure_policy.value
        if self.platform is not Platform.AUTO:
            ret["platform"] = self.platform.value
        return ret

    def __str__(self) -> str:
        if self.constraint is None:
            return f"{self.kind.value}:{self.identifier}"
        return f"{self.kind.value}:{self.identifier}@{self.constraint}"


@dataclass(frozen=True)
class ResolvedArtifact:
    """Where to download one specific version of a dependency, and how to check it."""

    name: str
    version: Version
    download_url: str
    file_name: str
    checksum: str | None = None
    checksum_algorithm: ChecksumAlgorithm | None = None

    def to_obj(self) -> dict[str, Any]:
        ret: dict[str, Any] = {
            "name": self.name,
            "version": str(self.version),
            "downloadUrl": self.download_url,
            "fileName": self.file_name,
        }
        if self.checksum is not None and self.checksum_algorithm is not None:
            ret["checksum"] = self.checksum
            ret["checksumType"] = self.checksum_algorithm.name
        return ret


@runtime_checkable
class HostPlugin(Protocol):
    """What a host integration must expose about a plugin that wants dependencies."""

    @property
    def name(self) -> str: ...

    @property
    def install_directory(self) -> Path: ...
