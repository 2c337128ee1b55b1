"""File assembly: stitch chunk byte ranges into destination files.

Per file:

  NOT_STARTED -> ON_DISK_VALID                 (sha1 already matches)
  NOT_STARTED -> DOWNLOADING -> DONE | FAILED

Chunk errors fail only the current file: its remaining parts are consumed
without fetching, so reference counts stay exact for later files, and the
partial destination is removed.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from splash_dl.chunk_cache import ChunkCache
from splash_dl.errors import ChunkError, ChunkRangeError
from splash_dl.fetcher import Fetcher
from splash_dl.manifest import ChunkPart, Manifest, ManifestFile
from splash_dl.verify import check_on_disk, destination

logger = logging.getLogger("splash_dl.assembler")


class FileState(enum.Enum):
    NOT_STARTED = "not_started"
    ON_DISK_VALID = "on_disk"
    DOWNLOADING = "downloading"
    DONE = "done"
    FAILED = "failed"


@dataclass
class FileOutcome:
    file_name: str
    state: FileState = FileState.NOT_STARTED
    error: str | None = None
    guid: str | None = None
    fetched_chunks: int = 0
    bytes_written: int = 0

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "file": self.file_name,
            "state": self.state.value,
            "fetched_chunks": self.fetched_chunks,
            "bytes_written": self.bytes_written,
        }
        if self.error is not None:
            d["error"] = self.error
        if self.guid is not None:
            d["guid"] = self.guid
        return d


class _Cancelled(Exception):
    pass


class FileAssembler:
    def __init__(self, manifest: Manifest, cache: ChunkCache, fetcher: Fetcher, install_dir: Path):
        self.manifest = manifest
        self.cache = cache
        self.fetcher = fetcher
        self.install_dir = Path(install_dir)

    def assemble(self, files: Iterable[ManifestFile], *, cancel: threading.Event | None = None) -> list[FileOutcome]:
        """Process files in order. The cache must already be seeded with them."""
        outcomes: list[FileOutcome] = []
        for f in files:
            if cancel is not None and cancel.is_set():
                outcomes.append(FileOutcome(f.file_name))
                continue
            outcomes.append(self.assemble_file(f, cancel=cancel))
        return outcomes

    def assemble_file(self, f: ManifestFile, *, cancel: threading.Event | None = None) -> FileOutcome:
        out = FileOutcome(f.file_name)
        dest = destination(self.install_dir, f)

        if check_on_disk(dest, f.expected_sha1):
            self.cache.consume_file(f)
            out.state = FileState.ON_DISK_VALID
            logger.info("File %s found on disk!", f.file_name)
            return out

        out.state = FileState.DOWNLOADING
        logger.info("Downloading %s from %d chunks...", f.file_name, len(f.chunk_parts))

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fp = dest.open("wb")
        except OSError as e:
            logger.error("Failed to create %s: %s", dest, e)
            self.cache.consume_file(f)
            out.state = FileState.FAILED
            out.error = f"create failed: {e}"
            return out

        parts = f.chunk_parts
        failed_at: int | None = None
        with fp:
            for i, part in enumerate(parts):
                try:
                    if cancel is not None and cancel.is_set():
                        raise _Cancelled()
                    out.bytes_written += self._write_part(fp, part, out)
                except _Cancelled:
                    logger.warning("Cancelled while writing %s", f.file_name)
                    out.error = "cancelled"
                    failed_at = i
                    break
                except ChunkError as e:
                    logger.error("Failed to use chunk %s for file %s: %s", part.guid, f.file_name, e)
                    out.error = str(e)
                    out.guid = part.guid
                    failed_at = i
                    break
                except OSError as e:
                    logger.error("Failed to write chunk %s to file %s: %s", part.guid, f.file_name, e)
                    out.error = f"write failed: {e}"
                    out.guid = part.guid
                    failed_at = i
                    break
                self.cache.consume(part.guid)

        if failed_at is None:
            out.state = FileState.DONE
            return out

        for part in parts[failed_at:]:
            self.cache.consume(part.guid)
        for part in parts[failed_at + 1 :]:
            logger.warning("Skipped chunk %s for file %s", part.guid, f.file_name)
        self._discard(dest)
        out.state = FileState.FAILED
        return out

    def _write_part(self, fp, part: ChunkPart, out: FileOutcome) -> int:
        payload = self.cache.get(part.guid)
        if payload is None:
            chunk = self.manifest.chunk(part.guid)
            payload = self.fetcher.fetch(chunk)
            out.fetched_chunks += 1
            self.cache.put(part.guid, payload)

        end = part.offset + part.size
        if end > len(payload):
            raise ChunkRangeError(
                f"range {part.offset}+{part.size} beyond chunk payload of {len(payload)} bytes",
                guid=part.guid,
            )
        fp.write(memoryview(payload)[part.offset:end])
        return part.size

    @staticmethod
    def _discard(dest: Path) -> None:
        try:
            dest.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to remove partial file %s: %s", dest, e)
