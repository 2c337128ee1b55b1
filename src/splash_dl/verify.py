"""Whole-file SHA-1 checks.

Two uses:
  - on-disk validation before a download (a valid file skips its chunks)
  - advisory integrity verification after assembly (reports, never raises)
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from splash_dl.manifest import ManifestFile

CHUNK_SIZE_DEFAULT = 256 * 1024

logger = logging.getLogger("splash_dl.verify")


@dataclass(frozen=True)
class IntegrityMismatch:
    file_name: str
    expected: str
    actual: str | None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"file": self.file_name, "expected": self.expected, "actual": self.actual}
        if self.error is not None:
            d["error"] = self.error
        return d


def sha1_file(path: Path, *, chunk_size: int = CHUNK_SIZE_DEFAULT) -> bytes:
    h = hashlib.sha1()
    with Path(path).open("rb") as fp:
        while True:
            chunk = fp.read(chunk_size)
            if not chunk:
                break
            h.update(chunk)
    return h.digest()


def destination(install_dir: Path, f: ManifestFile) -> Path:
    return Path(install_dir) / f.file_name.replace("\\", "/")


def check_on_disk(path: Path, expected_sha1: bytes) -> bool:
    """True when a file exists at path and already has the expected content."""
    p = Path(path)
    if not p.is_file():
        return False
    try:
        return sha1_file(p) == expected_sha1
    except OSError as e:
        logger.debug("cannot hash %s: %s", p, e)
        return False


def verify_files(install_dir: Path, files: Iterable[ManifestFile]) -> list[IntegrityMismatch]:
    out: list[IntegrityMismatch] = []
    for f in files:
        p = destination(install_dir, f)
        expected = f.expected_sha1_hex
        try:
            actual = sha1_file(p).hex()
        except OSError as e:
            logger.error("Failed to hash %s: %s", f.file_name, e)
            out.append(IntegrityMismatch(f.file_name, expected, None, error=str(e)))
            continue
        if actual != expected:
            logger.error("File %s is corrupt - got hash %s but want %s", f.file_name, actual, expected)
            out.append(IntegrityMismatch(f.file_name, expected, actual))
    return out
