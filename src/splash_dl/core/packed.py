"""Packed text encoding used by JSON manifests.

Each raw byte is written as a zero-padded 3-digit decimal group, and
multi-byte values are the concatenation of their groups with no separator:

    b"\\x01\\xff"      -> "001255"
    uint32 258       -> "000000001002"   (big-endian)

The encoding is lossless; anything that does not parse is a corrupt manifest.
"""

from __future__ import annotations

from typing import Final, Literal

from splash_dl.errors import ManifestCorrupt

GROUP_WIDTH: Final[int] = 3
DEFAULT_BYTEORDER: Final[Literal["big", "little"]] = "big"

_DIGITS = frozenset("0123456789")


def decode_bytes(s: str, *, length: int | None = None) -> bytes:
    if not isinstance(s, str):
        raise ManifestCorrupt(f"packed field must be a string, got {type(s).__name__}")
    if len(s) % GROUP_WIDTH:
        raise ManifestCorrupt(f"packed field length {len(s)} is not a multiple of {GROUP_WIDTH}: {s!r}")

    out = bytearray()
    for i in range(0, len(s), GROUP_WIDTH):
        group = s[i:i + GROUP_WIDTH]
        if not _DIGITS.issuperset(group):
            raise ManifestCorrupt(f"packed field has non-digit group {group!r} at {i}")
        v = int(group)
        if v > 0xFF:
            raise ManifestCorrupt(f"packed field group {group!r} at {i} out of byte range")
        out.append(v)

    if length is not None and len(out) != length:
        raise ManifestCorrupt(f"packed field decodes to {len(out)} bytes, expected {length}")
    return bytes(out)


def decode_int(s: str, *, length: int | None = None, byteorder: Literal["big", "little"] = DEFAULT_BYTEORDER) -> int:
    raw = decode_bytes(s, length=length)
    if not raw:
        raise ManifestCorrupt("packed integer is empty")
    return int.from_bytes(raw, byteorder)


def decode_uint32(s: str, *, byteorder: Literal["big", "little"] = DEFAULT_BYTEORDER) -> int:
    return decode_int(s, length=4, byteorder=byteorder)


def decode_uint64(s: str, *, byteorder: Literal["big", "little"] = DEFAULT_BYTEORDER) -> int:
    return decode_int(s, length=8, byteorder=byteorder)


def encode_bytes(data: bytes) -> str:
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError("data must be bytes")
    return "".join(f"{b:03d}" for b in data)


def encode_int(n: int, length: int, *, byteorder: Literal["big", "little"] = DEFAULT_BYTEORDER) -> str:
    if n < 0:
        raise ValueError("packed integers are unsigned")
    return encode_bytes(int(n).to_bytes(length, byteorder))


def encode_uint32(n: int, *, byteorder: Literal["big", "little"] = DEFAULT_BYTEORDER) -> str:
    return encode_int(n, 4, byteorder=byteorder)


def encode_uint64(n: int, *, byteorder: Literal["big", "little"] = DEFAULT_BYTEORDER) -> str:
    return encode_int(n, 8, byteorder=byteorder)
