"""Manifest object model.

JSON manifest schema (only the keys we use; everything else is ignored):

  {
    "ManifestFileVersion": "<packed u32>",          # optional
    "AppNameString": "<str>",
    "BuildVersionString": "<str>",
    "FileManifestList": [
      {
        "Filename": "<relative path>",
        "FileHash": "<packed 20 bytes sha1>",
        "FileChunkParts": [{"Guid": "<32 hex>", "Offset": "<packed u32>", "Size": "<packed u32>"}, ...]
      }, ...
    ],
    "ChunkHashList":     {"<guid>": "<packed u64>"},
    "ChunkShaList":      {"<guid>": "<sha1 hex>"},
    "DataGroupList":     {"<guid>": "<packed int>"},
    "ChunkFilesizeList": {"<guid>": "<packed int>"}
  }

Packed fields are decoded once while building the model; the model is
read-only afterwards.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Final

from splash_dl.core.packed import decode_bytes, decode_int, decode_uint32, decode_uint64
from splash_dl.errors import ManifestCorrupt

SHA1_LEN: Final[int] = 20
DEFAULT_CHUNK_DIR: Final[str] = "ChunksV3"


@dataclass(frozen=True, slots=True)
class ChunkPart:
    guid: str
    offset: int
    size: int

    @staticmethod
    def from_dict(raw: Any, *, where: str) -> "ChunkPart":
        if not isinstance(raw, dict):
            raise ManifestCorrupt(f"{where}: chunk part is not an object")
        guid = raw.get("Guid")
        if not isinstance(guid, str) or not guid.strip():
            raise ManifestCorrupt(f"{where}: chunk part without Guid")
        try:
            offset = decode_uint32(raw.get("Offset"))
            size = decode_uint32(raw.get("Size"))
        except ManifestCorrupt as e:
            raise ManifestCorrupt(f"{where}: chunk part {guid}: {e}") from e
        return ChunkPart(guid=guid.strip(), offset=offset, size=size)


@dataclass(frozen=True, slots=True)
class ManifestFile:
    file_name: str
    expected_sha1: bytes
    chunk_parts: tuple[ChunkPart, ...]

    @property
    def size(self) -> int:
        return sum(p.size for p in self.chunk_parts)

    @property
    def expected_sha1_hex(self) -> str:
        return self.expected_sha1.hex()

    @staticmethod
    def from_dict(raw: Any) -> "ManifestFile":
        if not isinstance(raw, dict):
            raise ManifestCorrupt(f"file entry is not an object: {raw!r}")

        name = raw.get("Filename")
        if not isinstance(name, str) or not name:
            raise ManifestCorrupt(f"file entry without Filename: {raw!r}")
        _check_relative(name)

        try:
            sha1 = decode_bytes(raw.get("FileHash"), length=SHA1_LEN)
        except ManifestCorrupt as e:
            raise ManifestCorrupt(f"{name}: FileHash: {e}") from e

        parts_raw = raw.get("FileChunkParts", [])
        if not isinstance(parts_raw, list):
            raise ManifestCorrupt(f"{name}: FileChunkParts is not a list")
        parts = tuple(ChunkPart.from_dict(p, where=name) for p in parts_raw)

        return ManifestFile(file_name=name, expected_sha1=sha1, chunk_parts=parts)


@dataclass(frozen=True, slots=True)
class Chunk:
    """Chunk metadata; the payload only exists once fetched."""

    guid: str
    hash: int
    sha1: str
    data_group: int
    file_size: int

    def path(self, chunk_dir: str = DEFAULT_CHUNK_DIR) -> str:
        return f"{chunk_dir}/{self.data_group:02d}/{self.hash:016X}_{self.guid}.chunk"


def _check_relative(name: str) -> None:
    p = PurePosixPath(name.replace("\\", "/"))
    if p.is_absolute() or ".." in p.parts or (len(name) > 1 and name[1] == ":"):
        raise ManifestCorrupt(f"file name escapes install root: {name!r}")


def _str_map(raw: dict[str, Any], key: str) -> dict[str, str]:
    v = raw.get(key, {})
    if not isinstance(v, dict):
        raise ManifestCorrupt(f"manifest: '{key}' is not an object")
    out: dict[str, str] = {}
    for k, vv in v.items():
        if not isinstance(vv, str):
            raise ManifestCorrupt(f"manifest: {key}[{k!r}] is not a string")
        out[str(k)] = vv
    return out


@dataclass
class Manifest:
    app_name: str
    build_version: str
    files: list[ManifestFile]
    chunk_hash: dict[str, int]
    chunk_sha1: dict[str, str]
    chunk_data_group: dict[str, int]
    chunk_file_size: dict[str, int]
    manifest_version: int | None = None
    _by_name: dict[str, ManifestFile] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        for f in self.files:
            if f.file_name in self._by_name:
                raise ManifestCorrupt(f"manifest: duplicate file name {f.file_name!r}")
            self._by_name[f.file_name] = f

        tables = (
            ("ChunkHashList", self.chunk_hash),
            ("ChunkShaList", self.chunk_sha1),
            ("DataGroupList", self.chunk_data_group),
            ("ChunkFilesizeList", self.chunk_file_size),
        )
        for f in self.files:
            for part in f.chunk_parts:
                for table_name, table in tables:
                    if part.guid not in table:
                        raise ManifestCorrupt(
                            f"manifest: chunk {part.guid} used by {f.file_name} missing from {table_name}"
                        )

    # --- Lookup ---

    def get(self, file_name: str) -> ManifestFile | None:
        return self._by_name.get(file_name)

    def chunk(self, guid: str) -> Chunk:
        try:
            return Chunk(
                guid=guid,
                hash=self.chunk_hash[guid],
                sha1=self.chunk_sha1[guid],
                data_group=self.chunk_data_group[guid],
                file_size=self.chunk_file_size[guid],
            )
        except KeyError as e:
            raise ManifestCorrupt(f"manifest: no metadata for chunk {guid}") from e

    def chunks(self) -> Iterator[Chunk]:
        """Unique referenced chunks, in first-reference order."""
        seen: set[str] = set()
        for f in self.files:
            for part in f.chunk_parts:
                if part.guid not in seen:
                    seen.add(part.guid)
                    yield self.chunk(part.guid)

    def select(self, names: Iterable[str] | None) -> tuple[list[ManifestFile], list[str]]:
        """Apply a case-sensitive allow-list.

        Returns (selected files in manifest order, unknown names).
        """
        if names is None:
            return list(self.files), []
        wanted = list(dict.fromkeys(names))
        wanted_set = set(wanted)
        selected = [f for f in self.files if f.file_name in wanted_set]
        unknown = [n for n in wanted if n not in self._by_name]
        return selected, unknown

    # --- Serialization ---

    @classmethod
    def from_dict(cls, raw: Any) -> "Manifest":
        if not isinstance(raw, dict):
            raise ManifestCorrupt("manifest root is not an object")

        app_name = raw.get("AppNameString", "")
        build_version = raw.get("BuildVersionString", "")
        if not isinstance(app_name, str) or not isinstance(build_version, str):
            raise ManifestCorrupt("manifest: AppNameString/BuildVersionString must be strings")

        version = None
        if raw.get("ManifestFileVersion") is not None:
            version = decode_uint32(raw["ManifestFileVersion"])

        files_raw = raw.get("FileManifestList")
        if not isinstance(files_raw, list):
            raise ManifestCorrupt("manifest: FileManifestList missing or not a list")
        files = [ManifestFile.from_dict(x) for x in files_raw]

        try:
            chunk_hash = {k: decode_uint64(v) for k, v in _str_map(raw, "ChunkHashList").items()}
            chunk_sha1 = _str_map(raw, "ChunkShaList")
            data_group = {k: decode_int(v) for k, v in _str_map(raw, "DataGroupList").items()}
            file_size = {k: decode_int(v) for k, v in _str_map(raw, "ChunkFilesizeList").items()}
        except ManifestCorrupt as e:
            raise ManifestCorrupt(f"manifest chunk tables: {e}") from e

        return cls(
            app_name=app_name,
            build_version=build_version,
            files=files,
            chunk_hash=chunk_hash,
            chunk_sha1=chunk_sha1,
            chunk_data_group=data_group,
            chunk_file_size=file_size,
            manifest_version=version,
        )

    @classmethod
    def deserialize(cls, data: bytes) -> "Manifest":
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ManifestCorrupt(f"manifest JSON invalid: {e}") from e
        return cls.from_dict(raw)

    @classmethod
    def read(cls, path: Path) -> "Manifest":
        p = Path(path)
        if not p.is_file():
            raise ManifestCorrupt(f"manifest not found: {p}")
        return cls.deserialize(p.read_bytes())
