"""Release assets of GitHub repositories."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from .checksum import ChecksumAlgorithm
from .errors import NotFoundError, TransportError
from .models import ResolvedArtifact, SourceKind
from .patterns import matches
from .source import DependencySource, as_list, as_text
from .version import Version

if TYPE_CHECKING:
    from .models import Dependency

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"
GITHUB_ACCEPT = {"Accept": "application/vnd.github.v3+json"}
LIST_PAGE_SIZE = 25
RESOLVE_PAGE_SIZE = 50
SHA256_DIGEST_PREFIX = "sha256:"


def clean_tag(tag: str) -> str:
    """Strip a leading ``v`` and then a leading ``release``/``release-``/``release_``."""
    return re.sub(r"^release[-_]?", "", re.sub(r"^[vV]", "", tag, count=1), count=1)


def tag_version(tag: str) -> Version | None:
    return Version.try_parse(clean_tag(tag)) or Version.try_parse(tag)


def select_asset(assets: list[dict[str, Any]], pattern: str | None) -> dict[str, Any]:
    """The first asset matching `pattern`, else the first ``.jar``, else the first asset."""
    if pattern:
        for asset in assets:
            name = asset.get("name")
            if isinstance(name, str) and matches(pattern, name):
                return asset
        logger.debug("No asset matches %r", pattern)
    for asset in assets:
        name = asset.get("name")
        if isinstance(name, str) and name.endswith(".jar"):
            return asset
    return assets[0]


class GitHubSource(DependencySource):
    kind = SourceKind.GITHUB
    description = "release assets of a GitHub repository, by owner/repo"

    def _releases(self, repo: str, per_page: int) -> list[dict[str, Any]]:
        data = self.http.get_json(
            f"{API_BASE}/repos/{repo}/releases", params={"per_page": per_page}, headers=GITHUB_ACCEPT, dependency=repo
        )
        if not isinstance(data, list):
            msg = "Failed to parse GitHub releases"
            raise TransportError(msg, repo)
        return [release for release in data if isinstance(release, dict)]

    def fetch_versions(self, dependency: Dependency) -> list[Version]:
        repo = dependency.identifier
        versions = []
        for release in self._releases(repo, LIST_PAGE_SIZE):
            tag = release.get("tag_name")
            if release.get("draft") is True or not isinstance(tag, str):
                continue
            version = tag_version(tag)
            if version is not None:
                versions.append(version)
        if not versions:
            msg = "No releases found on GitHub"
            raise NotFoundError(msg, repo)
        return versions

    def resolve(self, dependency: Dependency, version: Version) -> ResolvedArtifact:
        repo = dependency.identifier
        release = next(
            (
                release
                for release in self._releases(repo, RESOLVE_PAGE_SIZE)
                if isinstance(release.get("tag_name"), str)
                and version.raw in (release["tag_name"], clean_tag(release["tag_name"]))
            ),
            None,
        )
        if release is None:
            msg = f"Release not found on GitHub: {version}"
            raise NotFoundError(msg, repo)
        assets = [asset for asset in as_list(release.get("assets"), "assets", repo) if isinstance(asset, dict)]
        if not assets:
            msg = f"No assets found for release {version}"
            raise NotFoundError(msg, repo)

        asset = select_asset(assets, dependency.asset_pattern)
        download_url = as_text(asset.get("browser_download_url"), "browser_download_url", repo)
        asset_name = as_text(asset.get("name"), "asset name", repo)
        if not download_url:
            msg = "No download URL for asset"
            raise NotFoundError(msg, repo)

        checksum = None
        digest = asset.get("digest")
        if isinstance(digest, str) and digest.startswith(SHA256_DIGEST_PREFIX):
            checksum = digest[len(SHA256_DIGEST_PREFIX) :]

        return ResolvedArtifact(
            name=dependency.display_name,
            version=version,
            download_url=download_url,
            file_name=dependency.file_name or asset_name or f"{repo.rsplit('/', 1)[-1]}-{version.raw}.jar",
            checksum=checksum,
            checksum_algorithm=ChecksumAlgorithm.SHA256 if checksum else None,
        )
