from __future__ import annotations

from pathlib import Path

import pytest

from depfetch.checksum import ChecksumAlgorithm, hash_bytes
from depfetch.config import Settings
from depfetch.models import Dependency, ResolvedArtifact, SourceKind
from depfetch.version import Version


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--runintegration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: mark test as an integration test")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--runintegration"):
        # --runintegration given in cli: do not skip integration tests
        return
    skip_integration = pytest.mark.skip(reason="need --runintegration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


class FakeSource:
    """An in-memory repository: identifier -> list of version strings."""

    def __init__(self, kind: SourceKind = SourceKind.MODRINTH) -> None:
        self.kind = kind
        self.versions: dict[str, list[str]] = {}
        self.checksums: dict[tuple[str, str], str] = {}
        self.file_names: dict[tuple[str, str], str] = {}
        self.fetch_calls: list[Dependency] = []
        self.resolve_calls: list[tuple[Dependency, Version]] = []

    def publish(self, identifier: str, *versions: str) -> None:
        self.versions.setdefault(identifier, []).extend(versions)

    @property
    def calls(self) -> int:
        return len(self.fetch_calls) + len(self.resolve_calls)

    def fetch_versions(self, dependency: Dependency) -> list[Version]:
        self.fetch_calls.append(dependency)
        return [Version.parse(v) for v in self.versions.get(dependency.identifier, [])]

    def resolve(self, dependency: Dependency, version: Version) -> ResolvedArtifact:
        self.resolve_calls.append((dependency, version))
        key = (dependency.identifier, version.raw)
        checksum = self.checksums.get(key)
        return ResolvedArtifact(
            name=dependency.display_name,
            version=version,
            download_url=f"https://repo.example/{dependency.identifier}/{version.raw}.jar",
            file_name=self.file_names.get(key, f"{dependency.identifier}-{version.raw}.jar"),
            checksum=checksum,
            checksum_algorithm=ChecksumAlgorithm.SHA256 if checksum else None,
        )

    def __str__(self) -> str:
        return f"fake {self.kind.value}"


class FakeHttp:
    """Stands in for HttpClient.download; serves `payloads` by URL."""

    def __init__(self) -> None:
        self.payloads: dict[str, bytes] = {}
        self.downloads: list[str] = []

    @staticmethod
    def payload_for(url: str) -> bytes:
        return f"artifact from {url}".encode()

    def download(self, url: str, target: Path | str, dependency: str | None = None) -> Path:  # noqa: ARG002
        self.downloads.append(url)
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.payloads.get(url, self.payload_for(url)))
        return target

    def sha256_of(self, url: str) -> str:
        return hash_bytes(self.payloads.get(url, self.payload_for(url)))

    def close(self) -> None:
        pass


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def fake_http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def install_dir(tmp_path: Path) -> Path:
    return tmp_path / "plugins"


@pytest.fixture
def settings(install_dir: Path) -> Settings:
    return Settings(install_dir=install_dir)
