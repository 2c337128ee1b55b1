"""Run-level report.

Determinism note:
the serialized report MUST be stable across runs given the same manifest and
the same remote content. We DO NOT embed timestamps or absolute paths, and
lists keep manifest order.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from splash_dl.assembler import FileOutcome, FileState
from splash_dl.errors import EXIT_HASH_MISMATCH, EXIT_INCOMPLETE, EXIT_OK
from splash_dl.verify import IntegrityMismatch

SCHEMA_REPORT_V1 = "splash-dl.report.v1"


def _bytes_h(n: int) -> str:
    if n < 0:
        return str(n)
    units = ["B", "KiB", "MiB", "GiB"]
    f = float(n)
    u = 0
    while f >= 1024.0 and u < len(units) - 1:
        f /= 1024.0
        u += 1
    return f"{int(f)} {units[u]}" if u == 0 else f"{f:.2f} {units[u]}"


@dataclass
class RunReport:
    app_name: str
    build_version: str
    outcomes: list[FileOutcome]
    mismatches: list[IntegrityMismatch] = field(default_factory=list)
    unknown_files: list[str] = field(default_factory=list)
    chunks_fetched: int = 0
    cache: dict[str, int] = field(default_factory=dict)
    verified: bool = True

    def _states(self) -> Counter[FileState]:
        return Counter(o.state for o in self.outcomes)

    @property
    def on_disk(self) -> int:
        return self._states()[FileState.ON_DISK_VALID]

    @property
    def downloaded(self) -> int:
        return self._states()[FileState.DONE]

    @property
    def failed(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.state is FileState.FAILED]

    @property
    def not_started(self) -> int:
        return self._states()[FileState.NOT_STARTED]

    @property
    def bytes_written(self) -> int:
        # failed files are removed, so their partial bytes are not on disk
        return sum(o.bytes_written for o in self.outcomes if o.state is FileState.DONE)

    def exit_code(self) -> int:
        if self.failed or self.not_started:
            return EXIT_INCOMPLETE
        if self.mismatches:
            return EXIT_HASH_MISMATCH
        return EXIT_OK

    def to_dict(self) -> dict[str, Any]:
        # Keep key order stable (human-friendly diffs)
        return {
            "schema": SCHEMA_REPORT_V1,
            "app_name": self.app_name,
            "build_version": self.build_version,
            "files": {
                "selected": len(self.outcomes),
                "on_disk": self.on_disk,
                "downloaded": self.downloaded,
                "failed": len(self.failed),
                "not_started": self.not_started,
            },
            "bytes_written": self.bytes_written,
            "chunks_fetched": self.chunks_fetched,
            "cache": dict(self.cache),
            "failures": [o.to_dict() for o in self.failed],
            "verified": self.verified,
            "mismatches": [m.to_dict() for m in self.mismatches],
            "unknown_files": list(self.unknown_files),
            "exit_code": self.exit_code(),
        }

    def render_text(self) -> str:
        lines = [
            f"{self.app_name} {self.build_version}".strip(),
            f"files: {len(self.outcomes)} selected, {self.on_disk} found on disk, "
            f"{self.downloaded} downloaded, {len(self.failed)} failed"
            + (f", {self.not_started} not started" if self.not_started else ""),
            f"chunks fetched: {self.chunks_fetched}, written: {_bytes_h(self.bytes_written)}",
        ]
        for o in self.failed:
            guid = f" (chunk {o.guid})" if o.guid else ""
            lines.append(f"  FAILED {o.file_name}{guid}: {o.error}")
        for name in self.unknown_files:
            lines.append(f"  UNKNOWN {name}: not in manifest")
        if not self.verified:
            lines.append("integrity check: skipped")
        elif self.mismatches:
            lines.append(f"integrity check: {len(self.mismatches)} mismatches")
            for m in self.mismatches:
                got = m.actual if m.actual is not None else f"unreadable ({m.error})"
                lines.append(f"  CORRUPT {m.file_name}: got {got} want {m.expected}")
        else:
            lines.append("integrity check: OK")
        return "\n".join(lines) + "\n"
