"""Resolution of one caller's dependency batch against the shared install directory."""

from __future__ import annotations

import contextlib
import dataclasses
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from requests import RequestException

from .checksum import hash_file, verify
from .config import Settings
from .constraint import VersionConstraint
from .coordination import Coordinator
from .errors import (
    ChecksumMismatchError,
    CoordinationError,
    DependencyError,
    NotFoundError,
    TransportError,
    UnsatisfiedConstraintError,
)
from .http import HttpClient
from .models import FailurePolicy, Platform
from .result import DownloadResult
from .source import source_for
from .source import sources as available_sources

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from .lockfile import Lockfile
    from .models import Dependency, ResolvedArtifact, SourceKind
    from .registry import Registry
    from .source import DependencySource

logger = logging.getLogger(__name__)

RESOLUTION_ERRORS = (DependencyError, OSError, ValueError, RequestException)
# What a repository response of an unexpected shape raises inside an adapter.
SHAPE_ERRORS = (KeyError, TypeError, AttributeError)


@contextlib.contextmanager
def malformed_responses(source: DependencySource, name: str) -> Iterator[None]:
    """Report a response of an unexpected shape as a TransportError for `name`."""
    try:
        yield
    except SHAPE_ERRORS as e:
        msg = f"Malformed response from {source}: {e!r}"
        raise TransportError(msg, name) from e


def http_client(settings: Settings) -> HttpClient:
    return HttpClient(
        user_agent=settings.user_agent,
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        download_timeout=settings.download_timeout,
    )


class Resolver:
    """Drives every dependency of a batch from constraint to verified file on disk.

    Per dependency: pick the effective constraint, try the lockfile, list versions, select one,
    locate its artifact, reuse or download the file, verify it and record it in the lockfile. Errors
    are confined to the dependency that raised them and classified by its failure policy.
    """

    def __init__(  # noqa: PLR0913
        self,
        install_dir: Path | str,
        coordination_dir: Path | str | None = None,
        sources: Mapping[SourceKind, DependencySource] | None = None,
        http: HttpClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.install_dir = Path(install_dir)
        self.coordination_dir = (
            Path(coordination_dir)
            if coordination_dir is not None
            else self.settings.coordination_directory(self.install_dir)
        )
        self.http = http if http is not None else http_client(self.settings)
        self.sources: dict[SourceKind, DependencySource] = (
            dict(sources) if sources is not None else available_sources(self.http)
        )

    def resolve(
        self, caller: str, dependencies: Iterable[Dependency], *, blocking: bool | None = None
    ) -> DownloadResult:
        """Resolve `caller`'s dependencies under the coordination lock.

        Args:
            caller: the name the dependencies are registered under
            dependencies: the caller's complete dependency list
            blocking: wait for the coordination lock; defaults to the `blocking_lock` setting

        Returns:
            the outcome report, one entry per dependency

        Raises:
            CoordinationError: if the shared directories cannot be created, locked or written

        """
        blocking = self.settings.blocking_lock if blocking is None else blocking
        dependencies = [self._apply_defaults(d) for d in dependencies]
        result = DownloadResult()
        try:
            self.install_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Cannot create install directory {self.install_dir}: {e}"
            raise CoordinationError(msg) from e

        logger.debug("Resolving %d dependencies for %s", len(dependencies), caller)
        with Coordinator.open(self.coordination_dir, blocking=blocking) as coordinator:
            result.coordinated = coordinator.coordinated
            registry = coordinator.load_registry()
            registry.register(caller, dependencies)
            lockfile = coordinator.load_lockfile()

            for dependency in dependencies:
                conflicts = registry.conflicts(dependency.display_name)
                if conflicts:
                    result.conflicts[dependency.display_name] = conflicts
                try:
                    self._process(dependency, registry, lockfile, result)
                except CoordinationError:
                    raise
                except RESOLUTION_ERRORS as e:
                    self._handle_failure(dependency, e, result)

            if coordinator.coordinated:
                coordinator.save_registry(registry)
                coordinator.save_lockfile(lockfile)
            else:
                logger.warning("Not recording the resolution for %s: coordination lock unavailable", caller)
        return result

    def _apply_defaults(self, dependency: Dependency) -> Dependency:
        changes: dict[str, object] = {}
        if dependency.platform is Platform.AUTO and self.settings.platform is not Platform.AUTO:
            changes["platform"] = self.settings.platform
        if dependency.runtime_version is None and self.settings.runtime_version:
            changes["runtime_version"] = self.settings.runtime_version
        return dataclasses.replace(dependency, **changes) if changes else dependency

    def target_path(self, file_name: str) -> Path:
        """The path of an artifact inside the install directory.

        Raises:
            ValueError: for names that are empty or would escape the install directory

        """
        name = Path(file_name).name
        if not name or name in (".", "..") or name != file_name:
            msg = f"Refusing unsafe artifact file name {file_name!r}"
            raise ValueError(msg)
        return self.install_dir / name

    def effective_constraint(self, dependency: Dependency, registry: Registry) -> VersionConstraint:
        """The registry's merged constraint, else the caller's own, else latest."""
        merged = registry.merged_constraint(dependency.display_name)
        if merged is not None:
            return merged
        if dependency.constraint is not None:
            return dependency.constraint
        return VersionConstraint.latest()

    def _process(self, dependency: Dependency, registry: Registry, lockfile: Lockfile, result: DownloadResult) -> None:
        name = dependency.display_name
        constraint = self.effective_constraint(dependency, registry)
        logger.debug("%s: effective constraint %s", name, constraint)

        entry = lockfile.get(name)
        if entry is not None:
            locked = entry.version
            path = self.install_dir / Path(entry.file_name).name
            if locked is not None and constraint.is_satisfied_by(locked) and path.is_file():
                logger.debug("%s: using locked version %s", name, locked)
                result.add_existing(name, locked, path)
                return

        source = source_for(dependency.kind, self.sources, name)
        logger.debug("%s: fetching versions from %s", name, source)
        with malformed_responses(source, name):
            versions = source.fetch_versions(dependency)
        if not versions:
            msg = "No versions found"
            raise NotFoundError(msg, name)

        selected = constraint.select_best(versions)
        if selected is None:
            if dependency.failure_policy is not FailurePolicy.WARN_USE_LATEST:
                raise UnsatisfiedConstraintError(name, str(constraint), [str(v) for v in sorted(versions, reverse=True)])
            selected = max(versions)
            logger.warning("%s: no version satisfies %s, using latest %s", name, constraint, selected)
        logger.debug("%s: selected version %s", name, selected)

        with malformed_responses(source, name):
            resolved = source.resolve(dependency, selected)
        artifact = self._with_expected_checksum(dependency, resolved)
        target = self.target_path(artifact.file_name)

        if target.exists():
            if artifact.checksum is None or artifact.checksum_algorithm is None:
                logger.debug("%s: already downloaded", name)
                result.add_existing(name, selected, target)
                lockfile.update(name, artifact)
                return
            if verify(target, artifact.checksum, artifact.checksum_algorithm):
                logger.debug("%s: already downloaded with matching checksum", name)
                result.add_existing(name, selected, target)
                lockfile.update(name, artifact)
                return
            logger.info("%s: checksum mismatch on %s, downloading again", name, target.name)
            target.unlink()

        logger.info("Downloading %s %s", name, selected)
        logger.debug("%s: downloading from %s", name, artifact.download_url)
        self.http.download(artifact.download_url, target, name)

        if artifact.checksum is not None and artifact.checksum_algorithm is not None:
            actual = hash_file(target, artifact.checksum_algorithm)
            if actual.lower() != artifact.checksum.strip().lower():
                target.unlink(missing_ok=True)
                raise ChecksumMismatchError(name, artifact.checksum, actual)

        logger.debug("%s: downloaded %s", name, artifact.file_name)
        result.add_downloaded(name, selected, target)
        lockfile.update(name, artifact)

    @staticmethod
    def _with_expected_checksum(dependency: Dependency, artifact: ResolvedArtifact) -> ResolvedArtifact:
        """Fill in the caller's pinned checksum when the repository publishes none."""
        expected = dependency.expected_checksum
        if expected is None or artifact.checksum is not None:
            return artifact
        return dataclasses.replace(artifact, checksum=expected[0], checksum_algorithm=expected[1])

    @staticmethod
    def _handle_failure(dependency: Dependency, error: Exception, result: DownloadResult) -> None:
        name = dependency.display_name
        policy = dependency.failure_policy
        message = error.message if isinstance(error, DependencyError) else str(error) or type(error).__name__
        if policy is FailurePolicy.WARN_SKIP:
            result.add_skipped(name, message)
            logger.warning("%s SKIPPED: %s", name, message)
        elif policy is FailurePolicy.WARN_USE_LATEST:
            result.add_failed(name, message, policy)
            logger.warning("%s WARNING: %s", name, message)
        else:
            result.add_failed(name, message, policy)
            logger.error("%s FAILED: %s", name, message)
