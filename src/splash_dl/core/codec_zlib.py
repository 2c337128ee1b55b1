from __future__ import annotations

import zlib


class CodecZlib:
    """zlib/DEFLATE byte codec for compressed chunk payloads (stored_as=1)."""

    codec_id: str = "zlib"
    stored_as: int = 1

    def __init__(self, level: int = 6):
        if not (0 <= level <= 9):
            raise ValueError(f"zlib level must be 0..9, got {level}")
        self.level = level

    def compress(self, data: bytes) -> bytes:
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("data must be bytes")
        return zlib.compress(bytes(data), self.level)

    def decompress(self, comp: bytes, out_size: int | None = None) -> bytes:
        if not isinstance(comp, (bytes, bytearray)):
            raise TypeError("comp must be bytes")
        d = zlib.decompressobj()
        out = d.decompress(bytes(comp))
        out += d.flush()
        if not d.eof:
            raise ValueError("zlib: truncated stream")
        if out_size is not None and len(out) != int(out_size):
            raise ValueError(f"zlib: out_size mismatch: got={len(out)} expected={out_size}")
        return out
