"""Artifact digests."""

from __future__ import annotations

import hashlib
import logging
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


class ChecksumAlgorithm(Enum):
    SHA256 = "sha256"
    SHA512 = "sha512"
    SHA1 = "sha1"
    MD5 = "md5"

    @property
    def hashlib_name(self) -> str:
        return self.value

    def new(self) -> hashlib._Hash:
        return hashlib.new(self.hashlib_name)

    @classmethod
    def parse(cls, value: str | None) -> ChecksumAlgorithm | None:
        """Read an algorithm name such as ``SHA256`` or ``sha-256``; unknown names give None."""
        if not value:
            return None
        normalized = value.strip().upper().replace("-", "")
        try:
            return cls[normalized]
        except KeyError:
            return None


def hash_bytes(data: bytes, algorithm: ChecksumAlgorithm = ChecksumAlgorithm.SHA256) -> str:
    digest = algorithm.new()
    digest.update(data)
    return digest.hexdigest()


def hash_file(path: Path | str, algorithm: ChecksumAlgorithm = ChecksumAlgorithm.SHA256) -> str:
    """Compute the hex digest of a file.

    Args:
        path: the file to hash
        algorithm: digest algorithm

    Returns:
        the lowercase hexadecimal digest

    Raises:
        OSError: if the file cannot be read

    """
    digest = algorithm.new()
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify(path: Path | str, expected: str | None, algorithm: ChecksumAlgorithm | None) -> bool:
    """Check a file against an expected digest.

    With nothing to compare against the file is trusted. A missing file never verifies.
    """
    if not expected or algorithm is None:
        return True
    path = Path(path)
    if not path.is_file():
        return False
    actual = hash_file(path, algorithm)
    if actual.lower() != expected.strip().lower():
        logger.debug("%s checksum mismatch for %s: expected %s, got %s", algorithm.name, path, expected, actual)
        return False
    return True
