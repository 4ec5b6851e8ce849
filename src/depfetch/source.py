"""The adapter interface every remote repository kind implements."""

from __future__ import annotations

import functools
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urlparse

from .errors import TransportError, UnknownSourceError
from .http import HttpClient
from .version import Version

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .models import Dependency, ResolvedArtifact, SourceKind

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".jar"


class DependencySource(ABC):
    """Turns a dependency descriptor into available versions, and a chosen version into a download."""

    kind: SourceKind
    description: str

    def __init__(self, http: HttpClient | None = None) -> None:
        self.http = http if http is not None else HttpClient()

    def __init_subclass__(cls, **kwargs: object) -> None:
        """Validate subclass configuration."""
        super().__init_subclass__(**kwargs)
        if getattr(cls, "kind", None) is None:
            error_msg = f"{cls.__name__} must define a `kind` class member"
            raise TypeError(error_msg)
        if getattr(cls, "description", None) is None:
            error_msg = f"{cls.__name__} must define a `description` class member"
            raise TypeError(error_msg)
        source_classes.cache_clear()

    @abstractmethod
    def fetch_versions(self, dependency: Dependency) -> list[Version]:
        """List the versions the repository offers for `dependency`.

        The order is not significant; selection sorts.

        Raises:
            NotFoundError: if the project is unknown or lists no usable version
            TransportError: if the repository cannot be reached

        """
        raise NotImplementedError

    @abstractmethod
    def resolve(self, dependency: Dependency, version: Version) -> ResolvedArtifact:
        """Find the artifact for one specific version.

        Raises:
            NotFoundError: if that version or a downloadable file for it cannot be found

        """
        raise NotImplementedError

    def __str__(self) -> str:
        return self.kind.value


def parse_versions(texts: Iterable[Any]) -> list[Version]:
    """Parse every string in `texts` that reads as a version, silently dropping the rest."""
    versions = []
    for text in texts:
        if isinstance(text, str):
            version = Version.try_parse(text)
            if version is not None:
                versions.append(version)
            else:
                logger.debug("Ignoring unparseable version %r", text)
    return versions


def as_object(value: Any, what: str, dependency: str | None = None) -> dict[str, Any]:
    """`value` as a JSON object, with a missing value read as an empty one.

    Raises:
        TransportError: if the repository sent something other than an object

    """
    if value is None:
        return {}
    if not isinstance(value, dict):
        msg = f"Malformed response: {what} is not an object"
        raise TransportError(msg, dependency)
    return value


def as_list(value: Any, what: str, dependency: str | None = None) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"Malformed response: {what} is not a list"
        raise TransportError(msg, dependency)
    return value


def as_text(value: Any, what: str, dependency: str | None = None) -> str | None:
    if value is None or isinstance(value, str):
        return value or None
    msg = f"Malformed response: {what} is not a string"
    raise TransportError(msg, dependency)


def file_name_from_url(url: str) -> str | None:
    """The last non-empty path segment of a URL, if any."""
    path = unquote(urlparse(url).path)
    name = path.rstrip("/").rsplit("/", 1)[-1]
    return name or None


def fallback_file_name(prefix: str = "download") -> str:
    return f"{prefix}-{int(time.time() * 1000)}{DEFAULT_EXTENSION}"


@functools.lru_cache
def source_classes() -> dict[SourceKind, type[DependencySource]]:
    """Map each source kind to the adapter class that handles it."""
    return {cls.kind: cls for cls in DependencySource.__subclasses__()}


def sources(http: HttpClient | None = None) -> dict[SourceKind, DependencySource]:
    """Instantiate every known adapter, sharing one HTTP client."""
    http = http if http is not None else HttpClient()
    return {kind: cls(http) for kind, cls in source_classes().items()}


def source_for(
    kind: SourceKind, available: Mapping[SourceKind, DependencySource], dependency: str | None = None
) -> DependencySource:
    """Look up the adapter for `kind`.

    Raises:
        UnknownSourceError: if no adapter handles `kind`

    """
    try:
        return available[kind]
    except KeyError:
        msg = f"No source registered for {getattr(kind, 'value', kind)}"
        raise UnknownSourceError(msg, dependency) from None
