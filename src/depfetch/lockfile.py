"""The last successful resolution of every dependency."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .checksum import ChecksumAlgorithm
from .registry import utc_timestamp
from .version import Version

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .models import ResolvedArtifact

logger = logging.getLogger(__name__)

LOCKFILE_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class LockEntry:
    """One resolved dependency. Entries are only ever replaced whole."""

    name: str
    resolved_version: str
    download_url: str
    file_name: str
    checksum: str | None = None
    checksum_algorithm: ChecksumAlgorithm | None = None

    @property
    def version(self) -> Version | None:
        return Version.try_parse(self.resolved_version)

    @classmethod
    def from_artifact(cls, artifact: ResolvedArtifact) -> LockEntry:
        return cls(
            name=artifact.name,
            resolved_version=str(artifact.version),
            download_url=artifact.download_url,
            file_name=artifact.file_name,
            checksum=artifact.checksum,
            checksum_algorithm=artifact.checksum_algorithm,
        )

    def to_obj(self) -> dict[str, str]:
        ret = {"name": self.name, "resolvedVersion": self.resolved_version}
        if self.checksum is not None and self.checksum_algorithm is not None:
            ret["checksum"] = self.checksum
            ret["checksumType"] = self.checksum_algorithm.name
        ret["downloadUrl"] = self.download_url
        ret["fileName"] = self.file_name
        return ret

    @classmethod
    def from_obj(cls, key: str, obj: dict[str, Any]) -> LockEntry:
        """Read an entry, accepting the legacy bare ``sha256`` field.

        An unknown ``checksumType`` leaves the entry without a checksum, so it is trusted rather than
        re-downloaded.
        """
        resolved_version = obj.get("resolvedVersion")
        file_name = obj.get("fileName")
        if not isinstance(resolved_version, str) or not isinstance(file_name, str):
            msg = f"Lockfile entry {key} is missing resolvedVersion or fileName"
            raise ValueError(msg)  # noqa: TRY004
        checksum = obj.get("checksum")
        algorithm = None
        if obj.get("checksumType") is not None:
            algorithm = ChecksumAlgorithm.parse(obj["checksumType"])
            if algorithm is None:
                logger.debug("Unknown checksum type %r for %s", obj["checksumType"], key)
        elif obj.get("sha256"):
            checksum = obj["sha256"]
            algorithm = ChecksumAlgorithm.SHA256
        return cls(
            name=obj.get("name") or key,
            resolved_version=resolved_version,
            download_url=obj.get("downloadUrl") or "",
            file_name=file_name,
            checksum=checksum if algorithm is not None else None,
            checksum_algorithm=algorithm,
        )


class Lockfile:
    def __init__(self, entries: dict[str, LockEntry] | None = None) -> None:
        self._entries: dict[str, LockEntry] = dict(entries or {})

    def get(self, name: str) -> LockEntry | None:
        return self._entries.get(name)

    def update(self, name: str, artifact: ResolvedArtifact) -> LockEntry:
        """Replace the entry for `name` with the given resolution."""
        entry = LockEntry.from_artifact(artifact)
        self._entries[name] = entry
        return entry

    def remove(self, name: str) -> None:
        self._entries.pop(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def items(self) -> Iterator[tuple[str, LockEntry]]:
        yield from self._entries.items()

    def to_obj(self) -> dict[str, Any]:
        return {
            "version": LOCKFILE_SCHEMA_VERSION,
            "generated": utc_timestamp(),
            "dependencies": {name: entry.to_obj() for name, entry in self._entries.items()},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_obj(), indent=2) + "\n"

    @classmethod
    def from_obj(cls, obj: dict[str, Any]) -> Lockfile:
        """Rebuild a lockfile; unreadable entries are dropped with a warning.

        Raises:
            ValueError: if `obj` does not have the lockfile's shape

        """
        if not isinstance(obj, dict):
            msg = "Lockfile root is not an object"
            raise ValueError(msg)  # noqa: TRY004
        dependencies = obj.get("dependencies") or {}
        if not isinstance(dependencies, dict):
            msg = "Lockfile dependencies are not an object"
            raise ValueError(msg)  # noqa: TRY004
        entries = {}
        for key, data in dependencies.items():
            try:
                entries[key] = LockEntry.from_obj(key, data)
            except (AttributeError, ValueError) as e:
                logger.warning("Dropping unreadable lockfile entry %s: %s", key, e)
        return cls(entries)

    @classmethod
    def from_json(cls, text: str) -> Lockfile:
        if not text.strip():
            return cls()
        return cls.from_obj(json.loads(text))
