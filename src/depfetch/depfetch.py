"""Version and directory utilities for depfetch."""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as meta_version

from platformdirs import PlatformDirs

DEVELOPMENT_VERSION = "0.0.0.dev0"


def version() -> str:
    """Get the installed version of depfetch."""
    try:
        return meta_version("depfetch")
    except PackageNotFoundError:
        return DEVELOPMENT_VERSION


APP_DIRS = PlatformDirs("depfetch", "depfetch")
