from __future__ import annotations


class CodecRaw:
    """
    Identity codec: chunk payload stored as-is after the header (stored_as=0).
    """

    codec_id: str = "raw"
    stored_as: int = 0

    def compress(self, data: bytes) -> bytes:
        return bytes(data)

    def decompress(self, data: bytes, out_size: int | None = None) -> bytes:
        b = bytes(data)
        if out_size is not None and len(b) != int(out_size):
            raise ValueError(f"raw: out_size mismatch: got={len(b)} expected={out_size}")
        return b
