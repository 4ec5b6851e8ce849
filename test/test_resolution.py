from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import Mock

import pytest

from depfetch.checksum import hash_bytes
from depfetch.config import Settings
from depfetch.constraint import VersionConstraint
from depfetch.coordination import CoordinationLock
from depfetch.errors import CoordinationError
from depfetch.hangar import HangarSource
from depfetch.http import HttpClient
from depfetch.models import Dependency, FailurePolicy, Platform, SourceKind
from depfetch.resolution import Resolver
from depfetch.version import Version


@pytest.fixture
def resolver(install_dir: Path, settings: Settings, fake_source, fake_http) -> Resolver:  # noqa: ANN001
    return Resolver(install_dir, sources={SourceKind.MODRINTH: fake_source}, http=fake_http, settings=settings)


def luckperms(constraint: str | None = None, **options: object) -> Dependency:
    dep = Dependency.modrinth("luckperms", name="LuckPerms", **options)
    return dep.with_range(constraint) if constraint else dep


def url_of(version: str) -> str:
    return f"https://repo.example/luckperms/{version}.jar"


def read_json(path: Path) -> dict:
    return json.loads(path.read_text())


class TestResolve:
    """Test a full batch against an in-memory repository."""

    def test_downloads_best_version(self, resolver: Resolver, install_dir: Path, fake_source, fake_http) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0", "5.5.0", "6.0.0")

        result = resolver.resolve("PluginA", [luckperms(">=5.0.0 <6.0.0")])

        assert result.is_success
        assert result.requires_restart
        assert [(d.name, d.version) for d in result.downloaded] == [("LuckPerms", Version.parse("5.5.0"))]
        target = install_dir / "luckperms-5.5.0.jar"
        assert result.downloaded[0].path == target
        assert target.read_bytes() == fake_http.payload_for(url_of("5.5.0"))

        lock = read_json(install_dir / ".depfetch" / "depfetch.lock")
        assert lock["dependencies"]["LuckPerms"]["resolvedVersion"] == "5.5.0"
        assert lock["dependencies"]["LuckPerms"]["fileName"] == "luckperms-5.5.0.jar"
        registry = read_json(install_dir / ".depfetch" / "registry.json")
        assert registry["registrations"]["LuckPerms"]["requestedBy"] == ["PluginA"]

    def test_second_run_needs_no_network(self, resolver: Resolver, fake_source, fake_http) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0", "5.5.0")
        resolver.resolve("PluginA", [luckperms(">=5.0.0")])
        calls, downloads = fake_source.calls, len(fake_http.downloads)

        result = resolver.resolve("PluginA", [luckperms(">=5.0.0")])

        assert fake_source.calls == calls
        assert len(fake_http.downloads) == downloads
        assert [(e.name, e.version) for e in result.existing] == [("LuckPerms", Version.parse("5.5.0"))]
        assert not result.requires_restart

    def test_lock_is_ignored_when_constraint_moves(self, resolver: Resolver, fake_source, fake_http) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0", "6.1.0")
        resolver.resolve("PluginA", [luckperms("<6.0.0")])
        result = resolver.resolve("PluginA", [luckperms(">=6.0.0")])
        assert [d.version for d in result.downloaded] == [Version.parse("6.1.0")]
        assert fake_http.downloads == [url_of("5.4.0"), url_of("6.1.0")]

    def test_lock_is_ignored_when_file_is_gone(self, resolver: Resolver, install_dir: Path, fake_source) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0")
        resolver.resolve("PluginA", [luckperms()])
        (install_dir / "luckperms-5.4.0.jar").unlink()
        result = resolver.resolve("PluginA", [luckperms()])
        assert [d.name for d in result.downloaded] == ["LuckPerms"]

    def test_existing_file_with_matching_checksum(
        self, resolver: Resolver, install_dir: Path, fake_source, fake_http  # noqa: ANN001
    ) -> None:
        fake_source.publish("luckperms", "5.4.0")
        install_dir.mkdir(parents=True)
        (install_dir / "luckperms-5.4.0.jar").write_bytes(b"already here")
        fake_source.checksums[("luckperms", "5.4.0")] = hash_bytes(b"already here")

        result = resolver.resolve("PluginA", [luckperms()])

        assert [e.name for e in result.existing] == ["LuckPerms"]
        assert fake_http.downloads == []

    def test_existing_file_without_checksum_is_trusted(
        self, resolver: Resolver, install_dir: Path, fake_source, fake_http  # noqa: ANN001
    ) -> None:
        fake_source.publish("luckperms", "5.4.0")
        install_dir.mkdir(parents=True)
        (install_dir / "luckperms-5.4.0.jar").write_bytes(b"whatever")

        result = resolver.resolve("PluginA", [luckperms()])

        assert [e.name for e in result.existing] == ["LuckPerms"]
        assert fake_http.downloads == []

    def test_existing_file_with_wrong_checksum_is_replaced(
        self, resolver: Resolver, install_dir: Path, fake_source, fake_http  # noqa: ANN001
    ) -> None:
        fake_source.publish("luckperms", "5.4.0")
        install_dir.mkdir(parents=True)
        target = install_dir / "luckperms-5.4.0.jar"
        target.write_bytes(b"tampered")
        fake_source.checksums[("luckperms", "5.4.0")] = fake_http.sha256_of(url_of("5.4.0"))

        result = resolver.resolve("PluginA", [luckperms()])

        assert [d.name for d in result.downloaded] == ["LuckPerms"]
        assert target.read_bytes() == fake_http.payload_for(url_of("5.4.0"))

    def test_download_with_wrong_checksum_fails(
        self, resolver: Resolver, install_dir: Path, fake_source  # noqa: ANN001
    ) -> None:
        fake_source.publish("luckperms", "5.4.0")
        fake_source.checksums[("luckperms", "5.4.0")] = "0" * 64

        result = resolver.resolve("PluginA", [luckperms()])

        assert not result.is_success
        assert result.failed[0].name == "LuckPerms"
        assert "Checksum mismatch" in result.failed[0].error
        assert result.failed[0].policy is FailurePolicy.FAIL
        assert not (install_dir / "luckperms-5.4.0.jar").exists()
        assert "LuckPerms" not in read_json(install_dir / ".depfetch" / "depfetch.lock")["dependencies"]

    def test_pinned_checksum_is_checked(self, resolver: Resolver, install_dir: Path, fake_source) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0")
        result = resolver.resolve("PluginA", [luckperms().with_sha256("1" * 64)])
        assert "Checksum mismatch" in result.failed[0].error
        assert not (install_dir / "luckperms-5.4.0.jar").exists()


class TestFailurePolicies:
    def test_fail(self, resolver: Resolver, fake_source, caplog: pytest.LogCaptureFixture) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0")
        with caplog.at_level(logging.ERROR, logger="depfetch.resolution"):
            result = resolver.resolve("PluginA", [luckperms(">=6.0.0")])
        assert result.failed[0].error.startswith("No version satisfies >=6.0.0")
        assert "LuckPerms FAILED" in caplog.text

    def test_skip(self, resolver: Resolver, fake_source, caplog: pytest.LogCaptureFixture) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0")
        dep = luckperms(">=6.0.0").on_failure(FailurePolicy.WARN_SKIP)
        with caplog.at_level(logging.WARNING, logger="depfetch.resolution"):
            result = resolver.resolve("PluginA", [dep])
        assert result.is_success
        assert result.failed == []
        assert [s.name for s in result.skipped] == ["LuckPerms"]
        assert "LuckPerms SKIPPED" in caplog.text

    def test_use_latest(self, resolver: Resolver, fake_source, caplog: pytest.LogCaptureFixture) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0", "5.5.0-SNAPSHOT", "5.3.0")
        dep = luckperms(">=6.0.0").on_failure(FailurePolicy.WARN_USE_LATEST)
        with caplog.at_level(logging.WARNING, logger="depfetch.resolution"):
            result = resolver.resolve("PluginA", [dep])
        assert [d.version for d in result.downloaded] == [Version.parse("5.5.0-SNAPSHOT")]
        assert "using latest" in caplog.text

    def test_use_latest_still_fails_on_other_errors(self, resolver: Resolver) -> None:
        dep = luckperms().on_failure(FailurePolicy.WARN_USE_LATEST)
        result = resolver.resolve("PluginA", [dep])
        assert result.failed[0].policy is FailurePolicy.WARN_USE_LATEST
        assert result.failed[0].error == "No versions found"

    def test_unknown_source(self, resolver: Resolver) -> None:
        result = resolver.resolve("PluginA", [Dependency.hangar("ViaVersion")])
        assert result.failed[0].error == "No source registered for hangar"

    def test_failure_is_isolated(self, resolver: Resolver, fake_source) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0")
        result = resolver.resolve("PluginA", [Dependency.hangar("ViaVersion"), luckperms()])
        assert [f.name for f in result.failed] == ["ViaVersion"]
        assert [d.name for d in result.downloaded] == ["LuckPerms"]
        assert len(result) == 2

    def test_unsafe_file_name(self, resolver: Resolver, install_dir: Path, fake_source) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0")
        fake_source.file_names[("luckperms", "5.4.0")] = "../escape.jar"
        result = resolver.resolve("PluginA", [luckperms()])
        assert "unsafe artifact file name" in result.failed[0].error
        assert not (install_dir.parent / "escape.jar").exists()

    def test_malformed_response_is_isolated(
        self, install_dir: Path, settings: Settings, fake_source, fake_http  # noqa: ANN001
    ) -> None:
        fake_source.publish("luckperms", "5.4.0")
        hangar_http = Mock(spec=HttpClient)
        hangar_http.get_json.side_effect = lambda url, **kwargs: (  # noqa: ARG005
            {"downloads": {"PAPER": "not-an-object"}} if url.endswith("/5.1.0") else {"result": [{"name": "5.1.0"}]}
        )
        resolver = Resolver(
            install_dir,
            sources={SourceKind.HANGAR: HangarSource(hangar_http), SourceKind.MODRINTH: fake_source},
            http=fake_http,
            settings=settings,
        )

        result = resolver.resolve("PluginA", [Dependency.hangar("ViaVersion"), luckperms()])

        assert [f.name for f in result.failed] == ["ViaVersion"]
        assert "Malformed response" in result.failed[0].error
        assert [d.name for d in result.downloaded] == ["LuckPerms"]
        lock = read_json(install_dir / ".depfetch" / "depfetch.lock")
        assert list(lock["dependencies"]) == ["LuckPerms"]

    @pytest.mark.parametrize("error", [AttributeError("'str' object has no attribute 'get'"), KeyError("files")])
    def test_unexpected_adapter_error_is_isolated(
        self, resolver: Resolver, fake_source, error: Exception  # noqa: ANN001
    ) -> None:
        fake_source.publish("luckperms", "5.4.0")
        fake_source.publish("vault", "1.7.3")
        real_resolve = fake_source.resolve

        def resolve(dependency: Dependency, version: Version) -> object:
            if dependency.identifier == "vault":
                raise error
            return real_resolve(dependency, version)

        fake_source.resolve = resolve
        result = resolver.resolve("PluginA", [Dependency.modrinth("vault"), luckperms()])

        assert [f.name for f in result.failed] == ["vault"]
        assert result.failed[0].error.startswith("Malformed response from")
        assert [d.name for d in result.downloaded] == ["LuckPerms"]


class TestSharedState:
    """Test several callers sharing one install directory."""

    def test_constraints_of_other_callers_apply(self, resolver: Resolver, install_dir: Path, fake_source) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.1.0", "5.2.0", "5.3.0", "6.0.0")
        resolver.resolve("PluginA", [luckperms("<5.3.0")])
        result = resolver.resolve("PluginB", [luckperms(">=5.2.0")])

        # The lock holds 5.2.0, which satisfies both callers.
        assert [(e.name, e.version) for e in result.existing] == [("LuckPerms", Version.parse("5.2.0"))]
        registry = read_json(install_dir / ".depfetch" / "registry.json")
        entry = registry["registrations"]["LuckPerms"]
        assert entry["requestedBy"] == ["PluginA", "PluginB"]
        assert entry["mergedConstraint"]["constraint"] == ">=5.2.0 <5.3.0"

    def test_conflicts_are_reported(self, resolver: Resolver, fake_source) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "4.0.0", "6.0.0", "6.2.0")
        resolver.resolve("PluginA", [luckperms(">=6.0.0")])
        result = resolver.resolve("PluginB", [luckperms("<5.0.0")])

        assert result.is_success
        assert [e.version for e in result.existing] == [Version.parse("6.2.0")]
        (conflict,) = result.conflicts["LuckPerms"]
        assert conflict.chosen == VersionConstraint.at_least("6.0.0")
        assert result.to_obj()["conflicts"]["LuckPerms"][0]["chosen"] == ">=6.0.0"

    def test_corrupt_lockfile_is_rebuilt(self, resolver: Resolver, install_dir: Path, fake_source) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0")
        (install_dir / ".depfetch").mkdir(parents=True)
        (install_dir / ".depfetch" / "depfetch.lock").write_text("{{{")
        result = resolver.resolve("PluginA", [luckperms()])
        assert result.is_success
        assert "LuckPerms" in read_json(install_dir / ".depfetch" / "depfetch.lock")["dependencies"]

    def test_non_blocking_while_busy(self, resolver: Resolver, install_dir: Path, fake_source) -> None:  # noqa: ANN001
        fake_source.publish("luckperms", "5.4.0")
        with CoordinationLock.acquire(install_dir / ".depfetch"):
            result = resolver.resolve("PluginA", [luckperms()], blocking=False)
        assert not result.coordinated
        assert [d.name for d in result.downloaded] == ["LuckPerms"]
        assert not (install_dir / ".depfetch" / "registry.json").exists()
        assert not (install_dir / ".depfetch" / "depfetch.lock").exists()

    def test_unusable_install_dir(self, tmp_path: Path, fake_source, fake_http) -> None:  # noqa: ANN001
        blocker = tmp_path / "file"
        blocker.write_text("")
        resolver = Resolver(blocker / "plugins", sources={SourceKind.MODRINTH: fake_source}, http=fake_http)
        with pytest.raises(CoordinationError):
            resolver.resolve("PluginA", [luckperms()])


class TestDefaults:
    def test_settings_fill_platform_and_runtime(self, install_dir: Path, fake_source, fake_http) -> None:  # noqa: ANN001
        settings = Settings(install_dir=install_dir, platform=Platform.PAPER, runtime_version="1.21.4")
        resolver = Resolver(install_dir, sources={SourceKind.MODRINTH: fake_source}, http=fake_http, settings=settings)
        fake_source.publish("luckperms", "5.4.0")

        resolver.resolve("PluginA", [luckperms(), luckperms().with_platform("velocity").with_name("Other")])

        first, second = fake_source.fetch_calls
        assert first.platform is Platform.PAPER
        assert first.runtime_version == "1.21.4"
        assert second.platform is Platform.VELOCITY

    def test_coordination_dir_setting(self, tmp_path: Path, fake_source, fake_http) -> None:  # noqa: ANN001
        settings = Settings(install_dir=tmp_path / "plugins", coordination_dir=tmp_path / "shared")
        resolver = Resolver(
            tmp_path / "plugins", sources={SourceKind.MODRINTH: fake_source}, http=fake_http, settings=settings
        )
        fake_source.publish("luckperms", "5.4.0")
        resolver.resolve("PluginA", [luckperms()])
        assert (tmp_path / "shared" / "depfetch.lock").is_file()
        assert not (tmp_path / "plugins" / ".depfetch").exists()

    def test_target_path(self, resolver: Resolver, install_dir: Path) -> None:
        assert resolver.target_path("a.jar") == install_dir / "a.jar"
        for name in ("", "..", "sub/a.jar", "/etc/passwd"):
            with pytest.raises(ValueError, match="unsafe"):
                resolver.target_path(name)
