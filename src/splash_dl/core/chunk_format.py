"""Chunk blob wire format.

A chunk blob is a fixed-layout header followed by the payload.

Header (little endian, grows with the format version):

  magic                 u32   0xB1FE3AA2
  version               u32
  header_size           u32   offset of the payload
  data_size_compressed  u32   payload bytes on the wire
  guid                  4*u32
  rolling_hash          u64
  stored_as             u8    0 = raw, 1 = deflate (zlib stream)
  --- v2+
  sha1                  20B   SHA-1 of the decompressed payload
  hash_type             u8    bit 0x01 rolling hash, bit 0x02 sha1
  --- v3+
  data_size_uncompressed u32

The payload always starts at the *declared* header_size, so headers written
by newer versions (with extra trailing fields) still parse.

Decoding is a small pure state machine:

  Fetched -> HeaderParsed -> Raw | Decompressed
"""

from __future__ import annotations

import enum
import hashlib
import io
import struct
import zlib
from dataclasses import dataclass
from typing import BinaryIO, Final

from splash_dl.core.codec_raw import CodecRaw
from splash_dl.core.codec_zlib import CodecZlib
from splash_dl.errors import ChunkCorrupt, ChunkHeaderTruncated, UnknownChunkEncoding

CHUNK_MAGIC: Final[int] = 0xB1FE3AA2

_PREFIX = struct.Struct("<III")
_V1 = struct.Struct("<I4IQB")
_V2 = struct.Struct("<20sB")
_V3 = struct.Struct("<I")

HEADER_SIZE_V1: Final[int] = _PREFIX.size + _V1.size
HEADER_SIZE_V2: Final[int] = HEADER_SIZE_V1 + _V2.size
HEADER_SIZE_V3: Final[int] = HEADER_SIZE_V2 + _V3.size

STORED_RAW: Final[int] = 0
STORED_DEFLATE: Final[int] = 1

HASH_TYPE_ROLLING: Final[int] = 0x01
HASH_TYPE_SHA1: Final[int] = 0x02

CODECS: dict[int, CodecRaw | CodecZlib] = {
    STORED_RAW: CodecRaw(),
    STORED_DEFLATE: CodecZlib(),
}


class ChunkStorage(enum.Enum):
    RAW = "raw"
    DECOMPRESSED = "decompressed"


@dataclass(frozen=True)
class ChunkHeader:
    version: int
    header_size: int
    data_size_compressed: int
    guid: str
    rolling_hash: int
    stored_as: int
    sha1: bytes | None = None
    hash_type: int = 0
    data_size_uncompressed: int | None = None

    @property
    def has_sha1(self) -> bool:
        return self.sha1 is not None and bool(self.hash_type & HASH_TYPE_SHA1)


@dataclass(frozen=True)
class DecodedChunk:
    header: ChunkHeader
    payload: bytes
    storage: ChunkStorage


def _min_header_size(version: int) -> int:
    if version >= 3:
        return HEADER_SIZE_V3
    if version == 2:
        return HEADER_SIZE_V2
    return HEADER_SIZE_V1


def guid_to_words(guid: str) -> tuple[int, int, int, int]:
    g = guid.strip()
    if len(g) != 32:
        raise ValueError(f"guid must be 32 hex chars, got {guid!r}")
    return tuple(int(g[i:i + 8], 16) for i in range(0, 32, 8))  # type: ignore[return-value]


def words_to_guid(words: tuple[int, ...]) -> str:
    return "".join(f"{w:08X}" for w in words)


def read_chunk_header(fp: BinaryIO) -> ChunkHeader:
    """Read one header from a binary stream, consuming exactly header_size bytes."""
    prefix = fp.read(_PREFIX.size)
    if len(prefix) < _PREFIX.size:
        raise ChunkHeaderTruncated(f"chunk header truncated: got {len(prefix)} bytes")

    magic, version, header_size = _PREFIX.unpack(prefix)
    if magic != CHUNK_MAGIC:
        raise ChunkCorrupt(f"bad chunk magic 0x{magic:08X}")
    if version < 1:
        raise ChunkCorrupt(f"bad chunk header version {version}")
    if header_size < _min_header_size(version):
        raise ChunkCorrupt(f"chunk header_size {header_size} too small for version {version}")

    rest = fp.read(header_size - _PREFIX.size)
    if len(rest) < header_size - _PREFIX.size:
        raise ChunkHeaderTruncated(
            f"chunk header truncated: got {_PREFIX.size + len(rest)} of {header_size} bytes"
        )

    idx = 0
    size_c, g0, g1, g2, g3, rolling, stored_as = _V1.unpack_from(rest, idx)
    idx += _V1.size

    sha1 = None
    hash_type = 0
    if version >= 2:
        sha1, hash_type = _V2.unpack_from(rest, idx)
        idx += _V2.size

    size_u = None
    if version >= 3:
        (size_u,) = _V3.unpack_from(rest, idx)
        idx += _V3.size

    return ChunkHeader(
        version=version,
        header_size=header_size,
        data_size_compressed=size_c,
        guid=words_to_guid((g0, g1, g2, g3)),
        rolling_hash=rolling,
        stored_as=stored_as,
        sha1=sha1,
        hash_type=hash_type,
        data_size_uncompressed=size_u,
    )


def parse_chunk_header(blob: bytes) -> ChunkHeader:
    return read_chunk_header(io.BytesIO(blob))


def decode_chunk(blob: bytes, *, expected_guid: str | None = None, verify_sha1: bool = True) -> DecodedChunk:
    """Turn a fetched chunk blob into its decompressed payload."""
    header = parse_chunk_header(blob)
    guid = expected_guid or header.guid

    if expected_guid is not None and header.guid.upper() != expected_guid.upper():
        raise ChunkCorrupt(f"chunk guid mismatch: header has {header.guid}", guid=guid)

    codec = CODECS.get(header.stored_as)
    if codec is None:
        raise UnknownChunkEncoding(header.stored_as, guid=guid)

    body = blob[header.header_size:]
    if len(body) < header.data_size_compressed:
        raise ChunkCorrupt(
            f"chunk payload truncated: got {len(body)} of {header.data_size_compressed} bytes",
            guid=guid,
        )
    body = body[:header.data_size_compressed]

    try:
        payload = codec.decompress(body, out_size=header.data_size_uncompressed)
    except (ValueError, TypeError, zlib.error) as e:
        raise ChunkCorrupt(f"chunk payload decode failed ({codec.codec_id}): {e}", guid=guid) from e

    if verify_sha1 and header.has_sha1:
        got = hashlib.sha1(payload).digest()
        if got != header.sha1:
            raise ChunkCorrupt(
                f"chunk sha1 mismatch: got {got.hex()} want {header.sha1.hex()}",  # type: ignore[union-attr]
                guid=guid,
            )

    storage = ChunkStorage.RAW if header.stored_as == STORED_RAW else ChunkStorage.DECOMPRESSED
    return DecodedChunk(header=header, payload=payload, storage=storage)


def pack_chunk(
    payload: bytes,
    guid: str,
    *,
    stored_as: int = STORED_DEFLATE,
    version: int = 3,
    rolling_hash: int = 0,
    with_sha1: bool = True,
) -> bytes:
    """Build a chunk blob (tooling and fixtures).

    stored_as values without a codec are written verbatim so that invalid
    blobs can be produced on purpose.
    """
    raw = bytes(payload)
    codec = CODECS.get(stored_as, CODECS[STORED_RAW])
    body = codec.compress(raw)

    header_size = _min_header_size(version)
    out = bytearray()
    out += _PREFIX.pack(CHUNK_MAGIC, version, header_size)
    out += _V1.pack(len(body), *guid_to_words(guid), rolling_hash, stored_as)
    if version >= 2:
        sha1 = hashlib.sha1(raw).digest() if with_sha1 else b"\x00" * 20
        out += _V2.pack(sha1, HASH_TYPE_SHA1 if with_sha1 else 0)
    if version >= 3:
        out += _V3.pack(len(raw))
    out += body
    return bytes(out)
