"""Reference-counted chunk cache.

The count for a GUID is the number of chunk parts, across the selected file
set, that have not been consumed yet. A payload is resident only while a
future reader exists, which is what bounds downloads to one per chunk when
files are processed in manifest order.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass

from splash_dl.manifest import ManifestFile

logger = logging.getLogger("splash_dl.chunk_cache")


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    stores: int = 0
    evictions: int = 0
    peak_bytes: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "stores": self.stores,
            "evictions": self.evictions,
            "peak_bytes": self.peak_bytes,
        }


class ChunkCache:
    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()
        self._data: dict[str, bytes] = {}
        self._resident = 0
        self.stats = CacheStats()

    def seed(self, files: Iterable[ManifestFile]) -> None:
        for f in files:
            for part in f.chunk_parts:
                self._counts[part.guid] += 1
        logger.debug("seeded %d chunk references over %d chunks", sum(self._counts.values()), len(self._counts))

    def remaining_uses(self, guid: str) -> int:
        return self._counts.get(guid, 0)

    def get(self, guid: str) -> bytes | None:
        data = self._data.get(guid)
        if data is None:
            self.stats.misses += 1
        else:
            self.stats.hits += 1
        return data

    def put(self, guid: str, payload: bytes) -> bool:
        """Keep payload only if another part will read it after the current one."""
        if self.remaining_uses(guid) <= 1:
            return False
        if guid not in self._data:
            self._resident += len(payload)
            self.stats.stores += 1
            self.stats.peak_bytes = max(self.stats.peak_bytes, self._resident)
        self._data[guid] = payload
        return True

    def consume(self, guid: str) -> int:
        left = self._counts.get(guid, 0) - 1
        if left < 1:
            self._counts.pop(guid, None)
            self._evict(guid)
            return 0
        self._counts[guid] = left
        return left

    def consume_file(self, f: ManifestFile) -> None:
        """Consume every part of a file without touching cached payloads."""
        for part in f.chunk_parts:
            self.consume(part.guid)

    def _evict(self, guid: str) -> None:
        data = self._data.pop(guid, None)
        if data is not None:
            self._resident -= len(data)
            self.stats.evictions += 1

    @property
    def resident_bytes(self) -> int:
        return self._resident

    def __contains__(self, guid: object) -> bool:
        return guid in self._data

    def __len__(self) -> int:
        return len(self._data)
