"""SpigotMC resources, through the Spiget API."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from .errors import NotFoundError, TransportError
from .models import ResolvedArtifact, SourceKind
from .source import DependencySource, as_object, as_text, parse_versions

if TYPE_CHECKING:
    from .models import Dependency
    from .version import Version

logger = logging.getLogger(__name__)

API_BASE = "https://api.spiget.org/v2"
PAGE_SIZE = 25
UNSAFE_FILE_CHARACTERS = re.compile(r"[^a-zA-Z0-9.-]")


class SpigetSource(DependencySource):
    kind = SourceKind.SPIGET
    description = "resources on spigotmc.org, by numeric resource id"

    def _resource(self, resource_id: str) -> dict[str, Any]:
        data = self.http.get_json(f"{API_BASE}/resources/{resource_id}", dependency=resource_id)
        if not isinstance(data, dict):
            msg = "Resource not found on Spiget"
            raise NotFoundError(msg, resource_id)
        return data

    def fetch_versions(self, dependency: Dependency) -> list[Version]:
        resource_id = dependency.identifier
        resource = self._resource(resource_id)
        history = self.http.get_json(
            f"{API_BASE}/resources/{resource_id}/versions",
            params={"size": PAGE_SIZE, "sort": "-releaseDate"},
            dependency=resource_id,
        )
        if not isinstance(history, list):
            msg = "Failed to parse Spiget version history"
            raise TransportError(msg, resource_id)
        versions = parse_versions(item.get("name") for item in history if isinstance(item, dict))
        if not versions:
            # Some resources publish no parseable history; fall back to the current version.
            versions = parse_versions([resource.get("version")])
            if versions:
                logger.debug("Using the current version of Spiget resource %s", resource_id)
        if not versions:
            msg = "No versions found on Spiget"
            raise NotFoundError(msg, resource_id)
        return versions

    def resolve(self, dependency: Dependency, version: Version) -> ResolvedArtifact:
        resource_id = dependency.identifier
        resource = self._resource(resource_id)
        name = as_text(resource.get("name"), "name", resource_id) or f"Resource-{resource_id}"

        file_info = as_object(resource.get("file"), "file", resource_id)
        external_url = as_text(file_info.get("externalUrl"), "externalUrl", resource_id)
        if resource.get("external") is True and external_url:
            download_url = external_url
        else:
            download_url = f"{API_BASE}/resources/{resource_id}/download"

        file_name = dependency.file_name or f"{UNSAFE_FILE_CHARACTERS.sub('_', name)}-{version.raw}.jar"
        return ResolvedArtifact(
            name=dependency.name or name,
            version=version,
            download_url=download_url,
            file_name=file_name,
        )
