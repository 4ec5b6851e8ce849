"""The `depfetch` APIs."""

from importlib import import_module
from pathlib import Path
from pkgutil import iter_modules

from .checksum import ChecksumAlgorithm
from .config import Settings
from .constraint import ConstraintConflict, VersionConstraint, merge_all
from .depfetch import APP_DIRS
from .depfetch import version as installed_version
from .errors import (
    ChecksumMismatchError,
    CoordinationError,
    DependencyError,
    NotFoundError,
    TransportError,
    UnknownSourceError,
    UnsatisfiedConstraintError,
)
from .models import Dependency, FailurePolicy, HostPlugin, Platform, ResolvedArtifact, SourceKind
from .resolution import Resolver
from .result import DownloadResult
from .session import Session
from .version import UpdatePolicy, Version, VersionParseError

__version__ = installed_version()

# Automatically load all modules in the `depfetch` package,
# so every DependencySource registers itself:
package_dir = Path(__file__).resolve().parent
for _, module_name, _ in iter_modules([str(package_dir)]):
    if module_name != "__main__":
        import_module(f"{__name__}.{module_name}")

__all__ = [
    "APP_DIRS",
    "ChecksumAlgorithm",
    "ChecksumMismatchError",
    "ConstraintConflict",
    "CoordinationError",
    "Dependency",
    "DependencyError",
    "DownloadResult",
    "FailurePolicy",
    "HostPlugin",
    "NotFoundError",
    "Platform",
    "ResolvedArtifact",
    "Resolver",
    "Session",
    "Settings",
    "SourceKind",
    "TransportError",
    "UnknownSourceError",
    "UnsatisfiedConstraintError",
    "UpdatePolicy",
    "Version",
    "VersionConstraint",
    "VersionParseError",
    "merge_all",
]
