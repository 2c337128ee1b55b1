"""splash-dl CLI.

This is the stable CLI entrypoint (console-script: ``splash``).

UX policy:
  - `download` reconstructs the selected files and always finishes the run;
    chunk errors only show up in the report and the exit code.
  - Config file values (``--config``) are overridden by explicit flags.
  - --json prints the machine-readable report on stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from splash_dl.config import SplashConfig, load_config, split_csv
from splash_dl.errors import (
    EXIT_HASH_MISMATCH,
    EXIT_OK,
    HashMismatch,
    SplashError,
    render_exit_codes_markdown,
)

LOG_FORMAT = "[splash] %(message)s"


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--debug", action="store_true", help="Show stack traces on errors")
    p.add_argument("--json", action="store_true", help="Print a JSON report on stdout")
    g = p.add_mutually_exclusive_group()
    g.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    g.add_argument("-q", "--quiet", action="store_true", help="Only warnings and errors")


def _add_selection_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", default=None, help="Config JSON (@file.json or inline JSON)")
    p.add_argument("--install-dir", type=Path, default=None, help="Install path (default: files)")
    p.add_argument("--files", default=None, help="Only process these files (comma-separated, exact names)")


def _setup_logging(ns: argparse.Namespace) -> None:
    level = logging.INFO
    if getattr(ns, "verbose", False):
        level = logging.DEBUG
    elif getattr(ns, "quiet", False) or getattr(ns, "json", False):
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def _config_from_args(ns: argparse.Namespace) -> SplashConfig:
    base = load_config(ns.config) if getattr(ns, "config", None) else SplashConfig()
    overrides: dict[str, Any] = {
        "install_dir": ns.install_dir,
        "files": tuple(split_csv(ns.files)) if ns.files else None,
    }
    if ns.cmd == "download":
        overrides.update(
            platform=ns.platform,
            manifest_id=ns.manifest,
            manifest_url=ns.manifest_url,
            manifest_file=ns.manifest_file,
            catalog_url=ns.catalog_url,
            cache_dir=ns.cache,
            download_urls=tuple(split_csv(ns.url)) if ns.url else None,
            skip_integrity_check=True if ns.skipcheck else None,
            retries=ns.retries,
            timeout=ns.timeout,
        )
    return base.merged(**overrides)


def _emit(obj: dict[str, Any]) -> None:
    print(json.dumps(obj, ensure_ascii=False, separators=(",", ":")))


def _cmd_download(ns: argparse.Namespace) -> int:
    from splash_dl.run import run

    cfg = _config_from_args(ns)
    report = run(cfg)
    if ns.json:
        _emit(report.to_dict())
    else:
        sys.stderr.write(report.render_text())
    return report.exit_code()


def _cmd_verify(ns: argparse.Namespace) -> int:
    from splash_dl.manifest import Manifest
    from splash_dl.run import verify_install

    cfg = _config_from_args(ns)
    manifest = Manifest.read(ns.manifest_file)
    mismatches, unknown = verify_install(manifest, cfg)
    if ns.json:
        _emit(
            {
                "schema": "splash-dl.verify.v1",
                "ok": not mismatches,
                "mismatches": [m.to_dict() for m in mismatches],
                "unknown_files": unknown,
            }
        )
        return EXIT_HASH_MISMATCH if mismatches else EXIT_OK
    if mismatches:
        raise HashMismatch(f"{len(mismatches)} of the checked files do not match the manifest")
    print("OK")
    return EXIT_OK


def _cmd_chunk_info(ns: argparse.Namespace) -> int:
    from splash_dl.core.chunk_format import decode_chunk

    blob = Path(ns.input).read_bytes()
    decoded = decode_chunk(blob, verify_sha1=not ns.no_sha1)
    h = decoded.header
    info = {
        "guid": h.guid,
        "version": h.version,
        "header_size": h.header_size,
        "stored_as": h.stored_as,
        "storage": decoded.storage.value,
        "data_size_compressed": h.data_size_compressed,
        "data_size_uncompressed": len(decoded.payload),
        "rolling_hash": f"{h.rolling_hash:016X}",
        "sha1": h.sha1.hex() if h.has_sha1 and h.sha1 is not None else None,
    }
    if ns.json:
        _emit(info)
    else:
        for k, v in info.items():
            print(f"{k}: {v}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="splash", description="Reconstruct files from a chunked manifest")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_dl = sub.add_parser("download", help="Download and assemble the manifest's files")
    _add_selection_args(p_dl)
    src = p_dl.add_mutually_exclusive_group()
    src.add_argument("--manifest", default=None, help="Download a specific manifest id")
    src.add_argument("--manifest-url", default=None, help="Download the manifest from this URL")
    src.add_argument("--manifest-file", type=Path, default=None, help="Use a local manifest JSON")
    p_dl.add_argument(
        "--catalog-url",
        default=None,
        help="Catalog URL used to find the latest manifest ({platform} is replaced by --platform)",
    )
    p_dl.add_argument("--platform", default=None, help="Platform whose catalog is fetched (default: Windows)")
    p_dl.add_argument("--cache", type=Path, default=None, help="Cache path (default: cache)")
    p_dl.add_argument("--url", default=None, help="Download URLs (comma-separated)")
    p_dl.add_argument("--skipcheck", action="store_true", help="Skip file integrity check")
    p_dl.add_argument("--retries", type=int, default=None, help="Retries per chunk on transport errors")
    p_dl.add_argument("--timeout", type=float, default=None, help="HTTP timeout in seconds")
    _add_common_args(p_dl)

    p_v = sub.add_parser("verify", help="Check installed files against a manifest")
    _add_selection_args(p_v)
    p_v.add_argument("--manifest-file", type=Path, required=True, help="Manifest JSON")
    _add_common_args(p_v)

    p_ci = sub.add_parser("chunk-info", help="Decode a local chunk blob and show its header")
    p_ci.add_argument("input", type=Path)
    p_ci.add_argument("--no-sha1", action="store_true", help="Do not verify the payload sha1")
    _add_common_args(p_ci)

    p_ec = sub.add_parser("exit-codes", help="Print the exit code table (markdown)")
    p_ec.add_argument("--debug", action="store_true", help=argparse.SUPPRESS)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    p = build_parser()
    ns = p.parse_args(argv)
    _setup_logging(ns)

    try:
        if ns.cmd == "download":
            return _cmd_download(ns)
        if ns.cmd == "verify":
            return _cmd_verify(ns)
        if ns.cmd == "chunk-info":
            return _cmd_chunk_info(ns)
        if ns.cmd == "exit-codes":
            sys.stdout.write(render_exit_codes_markdown())
            return EXIT_OK
        raise AssertionError("unreachable")

    except SystemExit:
        raise
    except SplashError as e:
        if getattr(ns, "debug", False):
            raise
        print(f"[splash] {e}", file=sys.stderr)
        return int(getattr(e, "exit_code", 10) or 10)
    except Exception as e:
        if getattr(ns, "debug", False):
            raise
        print(f"[splash] error: {e}", file=sys.stderr)
        return 10


if __name__ == "__main__":
    raise SystemExit(main())
