"""Direct download URLs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import ResolvedArtifact, SourceKind
from .source import DependencySource, fallback_file_name, file_name_from_url
from .version import Version

if TYPE_CHECKING:
    from .models import Dependency

PLACEHOLDER_VERSION = "1.0.0"


class UrlSource(DependencySource):
    """A fixed URL. There is nothing to list, so the requested exact version (or a placeholder) stands in."""

    kind = SourceKind.URL
    description = "a file at a fixed URL"

    def fetch_versions(self, dependency: Dependency) -> list[Version]:
        if dependency.constraint is not None and dependency.constraint.exact_version is not None:
            return [dependency.constraint.exact_version]
        return [Version.parse(PLACEHOLDER_VERSION)]

    def resolve(self, dependency: Dependency, version: Version) -> ResolvedArtifact:
        expected = dependency.expected_checksum
        return ResolvedArtifact(
            name=dependency.display_name,
            version=version,
            download_url=dependency.identifier,
            file_name=dependency.file_name or file_name_from_url(dependency.identifier) or fallback_file_name(),
            checksum=expected[0] if expected else None,
            checksum_algorithm=expected[1] if expected else None,
        )
