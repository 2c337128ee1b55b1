"""Typed errors for splash-dl.

Single source of truth for exit codes lives here.

Policy:
- Errors are small and boring.
- Scope decides fatality: manifest/config errors abort the run,
  chunk errors only fail the file being assembled.
- The CLI maps errors to stable exit codes (see EXIT_* constants).
- docs/exit_codes.md is generated from this module (scripts/gen_exit_codes_md.py).
"""

from __future__ import annotations

from dataclasses import dataclass

# -------------------------
# Exit codes (single source)
# -------------------------

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_GENERIC = 10
EXIT_MANIFEST_CORRUPT = 11
EXIT_INCOMPLETE = 12
EXIT_HASH_MISMATCH = 13


@dataclass(frozen=True, slots=True)
class ExitCodeInfo:
    code: int
    name: str
    description: str


EXIT_CODES: tuple[ExitCodeInfo, ...] = (
    ExitCodeInfo(EXIT_OK, "OK", "Success"),
    ExitCodeInfo(EXIT_USAGE, "USAGE", "Usage/config error (invalid args, invalid config file, etc.)"),
    ExitCodeInfo(EXIT_GENERIC, "GENERIC", "Generic failure (unexpected error)"),
    ExitCodeInfo(
        EXIT_MANIFEST_CORRUPT,
        "MANIFEST_CORRUPT",
        "Manifest or catalog unparsable, inconsistent or unavailable",
    ),
    ExitCodeInfo(EXIT_INCOMPLETE, "INCOMPLETE", "Some files could not be reconstructed (chunk errors)"),
    ExitCodeInfo(EXIT_HASH_MISMATCH, "HASH_MISMATCH", "Integrity verification reported mismatches"),
)

# For convenience (fast lookup)
_EXIT_CODE_BY_NAME: dict[str, int] = {e.name: e.code for e in EXIT_CODES}
_EXIT_CODE_BY_CODE: dict[int, ExitCodeInfo] = {e.code: e for e in EXIT_CODES}


def exit_code_info(code: int) -> ExitCodeInfo | None:
    return _EXIT_CODE_BY_CODE.get(int(code))


def exit_code_by_name(name: str) -> int | None:
    return _EXIT_CODE_BY_NAME.get(name.strip().upper())


def render_exit_codes_markdown() -> str:
    """Render docs/exit_codes.md content."""
    lines: list[str] = []
    lines.append("# Exit codes\n")
    lines.append("> GENERATED FILE, do not edit manually.\n")
    lines.append("> Source of truth: `src/splash_dl/errors.py` (EXIT_CODES).\n")
    lines.append("> Regenerate: `python scripts/gen_exit_codes_md.py`.\n\n")
    lines.append("These are the CLI exit codes you can rely on.\n\n")
    lines.append("| Code | Name | Meaning |\n")
    lines.append("|---:|---|---|\n")
    for e in sorted(EXIT_CODES, key=lambda x: x.code):
        lines.append(f"| {e.code} | `{e.name}` | {e.description} |\n")
    lines.append("\n## Notes\n")
    lines.append("- Most internal errors extend `SplashError` and carry an `exit_code`.\n")
    lines.append("- Chunk errors never abort a run; they surface as `INCOMPLETE` at the end.\n")
    lines.append("- `--debug` re-raises errors to show full stack traces.\n")
    lines.append("- `--json` prints the run report as a JSON object to stdout.\n")
    return "".join(lines)


# ---------------
# Typed exceptions
# ---------------


class SplashError(Exception):
    """Base error for splash-dl."""

    exit_code: int = EXIT_GENERIC


class UsageError(SplashError):
    exit_code = EXIT_USAGE


class ConfigError(UsageError, ValueError):
    pass


class ManifestCorrupt(SplashError):
    """Manifest structure is unusable: nothing can be reconstructed from it."""

    exit_code = EXIT_MANIFEST_CORRUPT


class CatalogUnsupported(ManifestCorrupt):
    pass


class ProviderError(SplashError):
    """Catalog/manifest could not be obtained (transport or cache)."""

    exit_code = EXIT_MANIFEST_CORRUPT


class ChunkError(SplashError):
    """A single chunk is unusable. Scoped to the file being assembled."""

    exit_code = EXIT_INCOMPLETE

    def __init__(self, message: str, *, guid: str | None = None):
        super().__init__(message)
        self.guid = guid


class ChunkHeaderTruncated(ChunkError):
    pass


class UnknownChunkEncoding(ChunkError):
    def __init__(self, stored_as: int, *, guid: str | None = None):
        super().__init__(f"unknown chunk encoding (stored_as={stored_as})", guid=guid)
        self.stored_as = stored_as


class ChunkCorrupt(ChunkError):
    pass


class ChunkFetchError(ChunkError):
    def __init__(self, message: str, *, guid: str | None = None, status: int | None = None):
        super().__init__(message, guid=guid)
        self.status = status


class ChunkRangeError(ChunkError):
    pass


class HashMismatch(SplashError):
    exit_code = EXIT_HASH_MISMATCH
