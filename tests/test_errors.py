from __future__ import annotations

from pathlib import Path

from splash_dl.errors import (
    EXIT_CODES,
    ChunkFetchError,
    ConfigError,
    HashMismatch,
    ManifestCorrupt,
    UnknownChunkEncoding,
    exit_code_by_name,
    exit_code_info,
    render_exit_codes_markdown,
)


def test_exit_codes_unique() -> None:
    codes = [e.code for e in EXIT_CODES]
    names = [e.name for e in EXIT_CODES]
    assert len(set(codes)) == len(codes)
    assert len(set(names)) == len(names)


def test_lookup() -> None:
    assert exit_code_by_name(" hash_mismatch ") == 13
    assert exit_code_info(11).name == "MANIFEST_CORRUPT"
    assert exit_code_info(99) is None


def test_error_exit_codes() -> None:
    assert ConfigError("x").exit_code == 2
    assert ManifestCorrupt("x").exit_code == 11
    assert UnknownChunkEncoding(7, guid="G").exit_code == 12
    assert ChunkFetchError("x", guid="G", status=404).status == 404
    assert HashMismatch("x").exit_code == 13


def test_docs_in_sync() -> None:
    doc = Path(__file__).resolve().parents[1] / "docs" / "exit_codes.md"
    assert doc.read_text(encoding="utf-8") == render_exit_codes_markdown()
