"""Run orchestration.

``reconstruct`` is the core entry point: manifest + explicit config in,
RunReport out. ``run`` adds manifest resolution (providers + blob cache).
"""

from __future__ import annotations

import logging
import threading

import requests

from splash_dl.assembler import FileAssembler
from splash_dl.blob_cache import BlobCache
from splash_dl.chunk_cache import ChunkCache
from splash_dl.config import SplashConfig
from splash_dl.fetcher import ChunkFetcher, Fetcher, RetryingFetcher, new_session
from splash_dl.manifest import Manifest
from splash_dl.providers import resolve_manifest
from splash_dl.report import RunReport
from splash_dl.verify import IntegrityMismatch, verify_files

logger = logging.getLogger("splash_dl.run")


def pkg_version() -> str:
    try:
        from importlib.metadata import PackageNotFoundError, version

        try:
            return version("splash-dl")
        except PackageNotFoundError:
            # editable install but script invoked from source, or metadata missing
            return "0+unknown"
    except Exception:
        return "0+unknown"


def build_fetcher(config: SplashConfig, session: requests.Session) -> Fetcher:
    fetcher: Fetcher = ChunkFetcher(
        config.chunk_base_urls(),
        session=session,
        chunk_dir=config.chunk_dir,
        timeout=config.timeout,
        verify_sha1=config.verify_chunk_sha1,
    )
    if config.retries > 0:
        fetcher = RetryingFetcher(fetcher, attempts=config.retries + 1, backoff=config.retry_backoff)
    return fetcher


def reconstruct(
    manifest: Manifest,
    config: SplashConfig,
    *,
    fetcher: Fetcher | None = None,
    session: requests.Session | None = None,
    cancel: threading.Event | None = None,
) -> RunReport:
    files, unknown = manifest.select(config.files)
    for name in unknown:
        logger.warning("File %s not found in manifest", name)

    cache = ChunkCache()
    cache.seed(files)
    logger.info(
        "Found %d files and %d chunks in manifest (%d selected).",
        len(manifest.files),
        sum(1 for _ in manifest.chunks()),
        len(files),
    )

    if fetcher is None:
        fetcher = build_fetcher(config, session if session is not None else new_session(pkg_version()))

    outcomes = FileAssembler(manifest, cache, fetcher, config.install_dir).assemble(files, cancel=cancel)

    mismatches: list[IntegrityMismatch] = []
    if not config.skip_integrity_check:
        logger.info("Verifying file integrity...")
        mismatches = verify_files(config.install_dir, files)

    logger.info("Done!")
    return RunReport(
        app_name=manifest.app_name,
        build_version=manifest.build_version,
        outcomes=outcomes,
        mismatches=mismatches,
        unknown_files=unknown,
        chunks_fetched=fetcher.fetch_count,
        cache=cache.stats.to_dict(),
        verified=not config.skip_integrity_check,
    )


def load_manifest(config: SplashConfig, session: requests.Session | None = None) -> Manifest:
    s = session if session is not None else new_session(pkg_version())
    manifest = resolve_manifest(config, s, cache=BlobCache(config.cache_dir))
    logger.info("Manifest %s %s loaded.", manifest.app_name, manifest.build_version)
    return manifest


def run(
    config: SplashConfig,
    *,
    session: requests.Session | None = None,
    cancel: threading.Event | None = None,
) -> RunReport:
    s = session if session is not None else new_session(pkg_version())
    manifest = load_manifest(config, s)
    return reconstruct(manifest, config, session=s, cancel=cancel)


def verify_install(manifest: Manifest, config: SplashConfig) -> tuple[list[IntegrityMismatch], list[str]]:
    files, unknown = manifest.select(config.files)
    return verify_files(config.install_dir, files), unknown
