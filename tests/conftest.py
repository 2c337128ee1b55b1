from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

import pytest
import requests

from splash_dl.config import SplashConfig
from splash_dl.core.chunk_format import STORED_DEFLATE, pack_chunk
from splash_dl.core.packed import encode_bytes, encode_int, encode_uint32, encode_uint64
from splash_dl.manifest import Manifest

BASE_URL = "http://cdn.test"
CLOUD_DIR = "Builds/Fortnite/CloudDir"

G1 = "11111111222222223333333344444444"
G2 = "AAAAAAAABBBBBBBBCCCCCCCCDDDDDDDD"
G3 = "0123456789ABCDEF0123456789ABCDEF"


class FakeResponse:
    def __init__(self, url: str, status_code: int, content: bytes):
        self.url = url
        self.status_code = status_code
        self.content = content

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} for {self.url}", response=self)


class FakeSession:
    """In-memory stand-in for requests.Session (GET only)."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.errors: dict[str, Exception] = {}
        self.status: dict[str, int] = {}
        self.calls: list[str] = []

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.calls.append(url)
        if url in self.errors:
            raise self.errors[url]
        if url in self.status:
            return FakeResponse(url, self.status[url], b"")
        if url not in self.blobs:
            return FakeResponse(url, 404, b"")
        return FakeResponse(url, 200, self.blobs[url])

    def chunk_calls(self) -> list[str]:
        return [u for u in self.calls if u.endswith(".chunk")]


def chunk_hash_for(guid: str) -> int:
    return int(guid[:16], 16)


def chunk_url(guid: str, data_group: int = 0) -> str:
    return f"{BASE_URL}/{CLOUD_DIR}/ChunksV3/{data_group:02d}/{chunk_hash_for(guid):016X}_{guid}.chunk"


class ManifestBuilder:
    """Builds a JSON manifest and publishes its chunks on a FakeSession."""

    def __init__(self, session: FakeSession):
        self.session = session
        self.payloads: dict[str, bytes] = {}
        self.blobs: dict[str, bytes] = {}
        self.data_groups: dict[str, int] = {}
        self.files: list[dict[str, Any]] = []

    def add_chunk(
        self,
        guid: str,
        payload: bytes,
        *,
        stored_as: int = STORED_DEFLATE,
        data_group: int = 0,
        blob: bytes | None = None,
    ) -> str:
        self.payloads[guid] = payload
        self.data_groups[guid] = data_group
        b = blob if blob is not None else pack_chunk(payload, guid, stored_as=stored_as)
        self.blobs[guid] = b
        url = chunk_url(guid, data_group)
        self.session.blobs[url] = b
        return url

    def content_of(self, parts: list[tuple[str, int, int]]) -> bytes:
        return b"".join(self.payloads[g][o:o + n] for g, o, n in parts)

    def add_file(
        self,
        name: str,
        parts: list[tuple[str, int, int]],
        *,
        expected_sha1: bytes | None = None,
    ) -> bytes:
        content = self.content_of(parts)
        sha1 = expected_sha1 if expected_sha1 is not None else hashlib.sha1(content).digest()
        self.files.append(
            {
                "Filename": name,
                "FileHash": encode_bytes(sha1),
                "FileChunkParts": [
                    {"Guid": g, "Offset": encode_uint32(o), "Size": encode_uint32(n)} for g, o, n in parts
                ],
            }
        )
        return content

    def to_dict(self) -> dict[str, Any]:
        guids = list(self.payloads)
        return {
            "ManifestFileVersion": encode_uint32(13),
            "AppNameString": "TestApp",
            "BuildVersionString": "1.0-test",
            "FileManifestList": self.files,
            "ChunkHashList": {g: encode_uint64(chunk_hash_for(g)) for g in guids},
            "ChunkShaList": {g: hashlib.sha1(self.payloads[g]).hexdigest() for g in guids},
            "DataGroupList": {g: encode_int(self.data_groups[g], 1) for g in guids},
            "ChunkFilesizeList": {g: encode_uint64(len(self.blobs[g])) for g in guids},
        }

    def manifest(self) -> Manifest:
        return Manifest.from_dict(self.to_dict())


@pytest.fixture()
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def mb(session: FakeSession) -> ManifestBuilder:
    return ManifestBuilder(session)


@pytest.fixture()
def config(tmp_path: Path) -> SplashConfig:
    return SplashConfig(
        install_dir=tmp_path / "install",
        cache_dir=tmp_path / "cache",
        download_urls=(BASE_URL,),
        cloud_dir=CLOUD_DIR,
    )
