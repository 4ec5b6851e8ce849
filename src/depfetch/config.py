"""Configuration settings for depfetch."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    CliImplicitFlag,
    SettingsConfigDict,
)

from .depfetch import APP_DIRS
from .http import DEFAULT_CONNECT_TIMEOUT, DEFAULT_DOWNLOAD_TIMEOUT, DEFAULT_READ_TIMEOUT
from .models import Platform

DEFAULT_INSTALL_DIR = Path(APP_DIRS.user_data_dir) / "plugins"
COORDINATION_DIR_NAME = ".depfetch"


class Settings(BaseSettings):
    """Settings for depfetch, read from ``DEPFETCH_*`` environment variables."""

    install_dir: Path = Field(
        default=DEFAULT_INSTALL_DIR,
        description="""Directory the artifacts are downloaded into.""",
    )
    coordination_dir: Path | None = Field(
        default=None,
        description="""Directory holding the coordination lock, registry and
        lockfile. Defaults to a `.depfetch` directory inside the install
        directory. Every resolver sharing an install directory must use the
        same coordination directory.""",
    )
    log_level: str = Field(default="info", description="Log level")
    platform: Platform = Field(
        default=Platform.AUTO,
        description="""Host platform used to pick loaders and files for
        dependencies that do not name one.""",
    )
    runtime_version: str | None = Field(
        default=None,
        description="""Host runtime version used to filter listings, e.g. `1.21.4`,
        for dependencies that do not name one.""",
    )
    connect_timeout: float = Field(default=DEFAULT_CONNECT_TIMEOUT, description="Seconds to wait for a connection.")
    read_timeout: float = Field(default=DEFAULT_READ_TIMEOUT, description="Seconds to wait for an API response.")
    download_timeout: float = Field(
        default=DEFAULT_DOWNLOAD_TIMEOUT,
        description="""Seconds to wait for data while downloading an artifact.""",
    )
    blocking_lock: bool = Field(
        default=True,
        description="""Wait for other resolvers holding the coordination lock.
        When disabled and the lock is busy, resolution continues without
        writing the registry or lockfile.""",
    )
    user_agent: str | None = Field(default=None, description="Client identifier sent with every request.")

    model_config = SettingsConfigDict(env_prefix="DEPFETCH_")

    def coordination_directory(self, install_dir: Path | None = None) -> Path:
        if self.coordination_dir is not None:
            return self.coordination_dir
        return (install_dir or self.install_dir) / COORDINATION_DIR_NAME


class CliSettings(Settings):
    """Settings for the `depfetch` command."""

    caller: str = Field(
        default="depfetch",
        description="""Name the dependencies are registered under.""",
    )
    dependency: list[str] = Field(
        default_factory=list,
        description="""Dependency to resolve, in the form
            SOURCE:IDENTIFIER[@CONSTRAINT]. May be repeated.
            For example: `modrinth:luckperms@>=5.4`, `spiget:1997`,
            `github:dmulloy2/ProtocolLib@5.3.0` or `url:https://example.com/x.jar`.""",
    )
    non_blocking: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Do not wait for another resolver holding the coordination lock.""",
    )
    list_sources: CliImplicitFlag[bool] = Field(
        default=False,
        description="""List the available dependency sources.""",
    )
    version: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Show the version of depfetch and exit.""",
    )

    model_config = SettingsConfigDict(
        env_prefix="DEPFETCH_",
        cli_parse_args=True,
        cli_kebab_case=True,
        cli_prog_name="depfetch",
    )
