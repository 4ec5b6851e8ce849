from __future__ import annotations

from pathlib import Path

from depfetch.checksum import ChecksumAlgorithm, hash_bytes, hash_file, verify

HELLO_SHA256 = "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
HELLO_MD5 = "5d41402abc4b2a76b9719d911017c592"


class TestChecksum:
    def test_hash_bytes(self) -> None:
        assert hash_bytes(b"hello") == HELLO_SHA256
        assert hash_bytes(b"hello", ChecksumAlgorithm.MD5) == HELLO_MD5

    def test_hash_file_matches_hash_bytes(self, tmp_path: Path) -> None:
        data = bytes(range(256)) * 100
        path = tmp_path / "artifact.jar"
        path.write_bytes(data)
        for algorithm in ChecksumAlgorithm:
            assert hash_file(path, algorithm) == hash_bytes(data, algorithm)

    def test_verify(self, tmp_path: Path) -> None:
        path = tmp_path / "hello.jar"
        path.write_bytes(b"hello")
        assert verify(path, HELLO_SHA256, ChecksumAlgorithm.SHA256)
        assert verify(path, HELLO_SHA256.upper(), ChecksumAlgorithm.SHA256)
        assert not verify(path, "0" * 64, ChecksumAlgorithm.SHA256)

    def test_nothing_to_verify(self, tmp_path: Path) -> None:
        path = tmp_path / "hello.jar"
        path.write_bytes(b"hello")
        assert verify(path, None, ChecksumAlgorithm.SHA256)
        assert verify(path, HELLO_SHA256, None)

    def test_missing_file(self, tmp_path: Path) -> None:
        assert not verify(tmp_path / "missing.jar", HELLO_SHA256, ChecksumAlgorithm.SHA256)

    def test_parse_algorithm(self) -> None:
        assert ChecksumAlgorithm.parse("SHA256") is ChecksumAlgorithm.SHA256
        assert ChecksumAlgorithm.parse("sha-512") is ChecksumAlgorithm.SHA512
        assert ChecksumAlgorithm.parse("crc32") is None
        assert ChecksumAlgorithm.parse(None) is None
