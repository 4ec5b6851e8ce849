"""Modrinth projects."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from .checksum import ChecksumAlgorithm
from .errors import NotFoundError, TransportError
from .models import Platform, ResolvedArtifact, SourceKind
from .source import DependencySource, as_list, as_object, as_text, parse_versions

if TYPE_CHECKING:
    from .models import Dependency
    from .version import Version

logger = logging.getLogger(__name__)

API_BASE = "https://api.modrinth.com/v2"


def select_file(files: list[dict[str, Any]], platform: Platform) -> dict[str, Any]:
    """Pick the file of a multi-file version that best suits `platform`.

    Files named for the platform win, then the first file not named for some other platform,
    then the file flagged primary, then the first file.
    """
    if len(files) == 1:
        return files[0]

    def filename(file: dict[str, Any]) -> str | None:
        name = file.get("filename")
        return name.lower() if isinstance(name, str) else None

    for pattern in platform.preferred_file_patterns:
        for file in files:
            name = filename(file)
            if name is not None and pattern in name:
                return file

    avoid = platform.incompatible_file_patterns
    for file in files:
        name = filename(file)
        if name is not None and not any(pattern in name for pattern in avoid):
            return file

    for file in files:
        if file.get("primary") is True:
            return file
    return files[0]


class ModrinthSource(DependencySource):
    kind = SourceKind.MODRINTH
    description = "projects on modrinth.com, by slug or project id"

    def _list(self, dependency: Dependency, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        slug = dependency.identifier
        data = self.http.get_json(f"{API_BASE}/project/{slug}/version", params=params, dependency=slug)
        if not isinstance(data, list):
            msg = "Failed to parse Modrinth response"
            raise TransportError(msg, slug)
        return [item for item in data if isinstance(item, dict)]

    def fetch_versions(self, dependency: Dependency) -> list[Version]:
        params = {"loaders": json.dumps(list(dependency.platform.modrinth_loaders), separators=(",", ":"))}
        if dependency.runtime_version:
            params["game_versions"] = json.dumps([dependency.runtime_version], separators=(",", ":"))
        versions = parse_versions(item.get("version_number") for item in self._list(dependency, params))
        if not versions:
            msg = "No versions found on Modrinth"
            raise NotFoundError(msg, dependency.identifier)
        return versions

    def resolve(self, dependency: Dependency, version: Version) -> ResolvedArtifact:
        slug = dependency.identifier
        # Unfiltered: the version may not be in the loader-filtered listing.
        match = next((item for item in self._list(dependency) if item.get("version_number") == version.raw), None)
        if match is None:
            msg = f"Version not found on Modrinth: {version}"
            raise NotFoundError(msg, slug)
        files = [f for f in as_list(match.get("files"), "files", slug) if isinstance(f, dict)]
        if not files:
            msg = f"No files found for version {version}"
            raise NotFoundError(msg, slug)

        selected = select_file(files, dependency.platform)
        download_url = as_text(selected.get("url"), "url", slug)
        file_name = as_text(selected.get("filename"), "filename", slug)
        if not download_url or not file_name:
            msg = f"Invalid file info for version {version}"
            raise NotFoundError(msg, slug)
        sha512 = as_text(as_object(selected.get("hashes"), "hashes", slug).get("sha512"), "sha512", slug)
        logger.debug("Selected %s for %s %s", file_name, slug, version)

        return ResolvedArtifact(
            name=dependency.display_name,
            version=version,
            download_url=download_url,
            file_name=dependency.file_name or file_name,
            checksum=sha512,
            checksum_algorithm=ChecksumAlgorithm.SHA512 if sha512 else None,
        )
