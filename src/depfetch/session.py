"""The caller-facing entry point: register dependency lists, resolve them, ask whether a caller is ready."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from .config import Settings
from .resolution import Resolver, http_client
from .result import DownloadResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .http import HttpClient
    from .models import Dependency, HostPlugin, SourceKind
    from .source import DependencySource

logger = logging.getLogger(__name__)


class Session:
    """Registrations and readiness for every caller driven by one host.

    Callers that share an install directory still coordinate through the on-disk registry and lock;
    the session only remembers what each caller asked for and how its last resolution went.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        sources: Mapping[SourceKind, DependencySource] | None = None,
        http: HttpClient | None = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.sources = sources
        self.http = http if http is not None else http_client(self.settings)
        self._registrations: dict[str, list[Dependency]] = {}
        self._ready: dict[str, bool] = {}
        self._lock = threading.Lock()

    def register(self, caller: str, dependencies: Iterable[Dependency]) -> None:
        """Set `caller`'s dependency list, replacing any earlier one.

        A dependency listed twice (same source and identifier) keeps its last description.
        """
        unique: dict[tuple, Dependency] = {}
        for dependency in dependencies:
            unique.pop(dependency.key, None)
            unique[dependency.key] = dependency
        with self._lock:
            self._registrations[caller] = list(unique.values())
            self._ready.pop(caller, None)
        logger.debug("Registered %d dependencies for %s", len(unique), caller)

    def registered_callers(self) -> list[str]:
        with self._lock:
            return list(self._registrations)

    def dependencies(self, caller: str) -> list[Dependency]:
        with self._lock:
            return list(self._registrations.get(caller, []))

    def resolver(self, install_dir: Path | str | None = None) -> Resolver:
        return Resolver(
            install_dir if install_dir is not None else self.settings.install_dir,
            coordination_dir=self.settings.coordination_dir,
            sources=self.sources,
            http=self.http,
            settings=self.settings,
        )

    def resolve(
        self, caller: str, install_dir: Path | str | None = None, *, blocking: bool | None = None
    ) -> DownloadResult:
        """Resolve everything `caller` registered into `install_dir` (default: the configured one).

        An unregistered caller gets an empty report and a warning.

        Raises:
            CoordinationError: if the shared directories cannot be used

        """
        with self._lock:
            dependencies = self._registrations.get(caller)
            known = list(self._registrations)
        if dependencies is None:
            logger.warning("No dependencies registered for %s", caller)
            if known:
                logger.warning("Registered callers: %s", ", ".join(known))
            return DownloadResult()

        logger.debug("Processing %d dependencies for %s", len(dependencies), caller)
        try:
            result = self.resolver(install_dir).resolve(caller, dependencies, blocking=blocking)
        except BaseException:
            with self._lock:
                self._ready[caller] = False
            raise
        with self._lock:
            self._ready[caller] = result.is_success
        return result

    def is_ready(self, caller: str) -> bool:
        """Whether the last resolution for `caller` completed without failures."""
        with self._lock:
            return self._ready.get(caller, False)

    def resolve_plugin(self, plugin: HostPlugin, *, blocking: bool | None = None) -> DownloadResult:
        return self.resolve(plugin.name, Path(plugin.install_directory), blocking=blocking)

    def is_plugin_ready(self, plugin: HostPlugin) -> bool:
        return self.is_ready(plugin.name)
