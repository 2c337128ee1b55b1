"""On-disk cache for raw catalog/manifest blobs.

Blobs are opaque to the core; they are stored zstd-compressed as
``<cache_dir>/<name>.zst`` and written through a temp file + rename so a
crashed run never leaves a half-written entry behind.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import zstandard as zstd

from splash_dl.core.codec_zstd import CodecZstd
from splash_dl.errors import ProviderError

logger = logging.getLogger("splash_dl.blob_cache")

SUFFIX = ".zst"


class BlobCache:
    def __init__(self, cache_dir: Path, *, codec: CodecZstd | None = None):
        self.cache_dir = Path(cache_dir)
        self.codec = codec or CodecZstd(level=19)

    def path(self, name: str) -> Path:
        nm = name.strip()
        if not nm or "/" in nm or "\\" in nm or nm in (".", ".."):
            raise ValueError(f"invalid cache entry name: {name!r}")
        return self.cache_dir / (nm + SUFFIX)

    def has(self, name: str) -> bool:
        return self.path(name).is_file()

    def read(self, name: str) -> bytes | None:
        p = self.path(name)
        if not p.is_file():
            return None
        try:
            return self.codec.decompress(p.read_bytes())
        except (OSError, zstd.ZstdError) as e:
            raise ProviderError(f"cache entry {p} unreadable: {e}") from e

    def write(self, name: str, data: bytes) -> Path:
        p = self.path(name)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        tmp = p.with_name(p.name + ".tmp")
        tmp.write_bytes(self.codec.compress(data))
        os.replace(tmp, p)
        logger.debug("cached %s (%d bytes)", p, len(data))
        return p

    def drop(self, name: str) -> None:
        self.path(name).unlink(missing_ok=True)
