from __future__ import annotations

from dataclasses import dataclass

import zstandard as zstd


@dataclass
class CodecZstd:
    """
    zstd byte codec, used for the on-disk catalog/manifest blob cache.

    Frames carry content size and a checksum so a damaged cache file is
    detected on read instead of producing a bad manifest.
    """

    level: int = 19
    codec_id: str = "zstd"

    def compress(self, data: bytes) -> bytes:
        c = zstd.ZstdCompressor(level=int(self.level), write_content_size=True, write_checksum=True)
        return c.compress(bytes(data))

    def decompress(self, data: bytes, out_size: int | None = None) -> bytes:
        d = zstd.ZstdDecompressor()
        if out_size is None:
            return d.decompress(data)
        return d.decompress(data, max_output_size=int(out_size))
