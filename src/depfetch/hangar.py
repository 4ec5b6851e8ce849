"""Hangar, PaperMC's plugin repository."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .checksum import ChecksumAlgorithm
from .errors import NotFoundError, TransportError
from .models import ResolvedArtifact, SourceKind
from .source import DependencySource, as_list, as_object, as_text, parse_versions

if TYPE_CHECKING:
    from .models import Dependency
    from .version import Version

logger = logging.getLogger(__name__)

HANGAR_HOST = "https://hangar.papermc.io"
API_BASE = f"{HANGAR_HOST}/api/v1"
PAGE_SIZE = 25


class HangarSource(DependencySource):
    kind = SourceKind.HANGAR
    description = "projects on hangar.papermc.io, by slug"

    def fetch_versions(self, dependency: Dependency) -> list[Version]:
        slug = dependency.identifier
        params: dict[str, Any] = {"limit": PAGE_SIZE, "platform": dependency.platform.hangar_platform}
        if dependency.runtime_version:
            params["platformVersion"] = dependency.runtime_version
        data = self.http.get_json(f"{API_BASE}/projects/{slug}/versions", params=params, dependency=slug)
        if not isinstance(data, dict):
            msg = "Failed to parse Hangar response"
            raise TransportError(msg, slug)
        result = as_list(data.get("result"), "version listing", slug)
        versions = parse_versions(item.get("name") for item in result if isinstance(item, dict))
        if not versions:
            msg = "No versions found on Hangar"
            raise NotFoundError(msg, slug)
        return versions

    def resolve(self, dependency: Dependency, version: Version) -> ResolvedArtifact:
        slug = dependency.identifier
        data = self.http.get_json(f"{API_BASE}/projects/{slug}/versions/{version.raw}", dependency=slug)
        if not isinstance(data, dict):
            msg = "Failed to parse Hangar version response"
            raise TransportError(msg, slug)
        downloads = as_object(data.get("downloads"), "downloads", slug)
        if not downloads:
            msg = f"No downloads found for version {version}"
            raise NotFoundError(msg, slug)

        platform = dependency.platform.hangar_platform
        if platform in downloads:
            download = downloads[platform]
        else:
            platform, download = next(iter(downloads.items()))
            logger.debug("%s %s has no %s download, using %s", slug, version, dependency.platform.hangar_platform, platform)
        download = as_object(download, f"{platform} download", slug)

        file_info = as_object(download.get("fileInfo"), "fileInfo", slug)
        download_url = as_text(download.get("downloadUrl"), "downloadUrl", slug) or as_text(
            download.get("externalUrl"), "externalUrl", slug
        )
        if not download_url:
            download_url = f"{API_BASE}/projects/{slug}/versions/{version.raw}/{platform}/download"
        elif not download_url.startswith("http"):
            download_url = HANGAR_HOST + download_url
        checksum = as_text(file_info.get("sha256Hash"), "sha256Hash", slug)
        file_name = as_text(file_info.get("name"), "file name", slug)

        return ResolvedArtifact(
            name=dependency.display_name,
            version=version,
            download_url=download_url,
            file_name=dependency.file_name or file_name or f"{slug}-{version.raw}.jar",
            checksum=checksum,
            checksum_algorithm=ChecksumAlgorithm.SHA256 if checksum else None,
        )
