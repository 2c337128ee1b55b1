"""Chunk fetcher: remote store GET + chunk decode.

Anything with ``fetch(chunk) -> bytes`` can stand in for ChunkFetcher
(the assembler only relies on that), so retry/backoff is a wrapper.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Sequence
from typing import Protocol

import requests

from splash_dl.core.chunk_format import decode_chunk
from splash_dl.errors import ChunkFetchError, UsageError
from splash_dl.manifest import DEFAULT_CHUNK_DIR, Chunk

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "splash-dl/{version}"

logger = logging.getLogger("splash_dl.fetcher")


class Fetcher(Protocol):
    fetch_count: int

    def fetch(self, chunk: Chunk) -> bytes: ...


def new_session(version: str = "0") -> requests.Session:
    s = requests.Session()
    s.headers.update({"User-Agent": USER_AGENT.format(version=version)})
    return s


class ChunkFetcher:
    def __init__(
        self,
        base_urls: Sequence[str],
        *,
        session: requests.Session | None = None,
        chunk_dir: str = DEFAULT_CHUNK_DIR,
        timeout: float = DEFAULT_TIMEOUT,
        verify_sha1: bool = True,
        choose: Callable[[Sequence[str]], str] = random.choice,
    ):
        urls = [u.rstrip("/") for u in base_urls if u and u.strip()]
        if not urls:
            raise UsageError("at least one chunk base URL is required")
        self.base_urls = urls
        self.session = session if session is not None else new_session()
        self.chunk_dir = chunk_dir
        self.timeout = timeout
        self.verify_sha1 = verify_sha1
        self._choose = choose
        self.fetch_count = 0

    def url_for(self, chunk: Chunk) -> str:
        return f"{self._choose(self.base_urls)}/{chunk.path(self.chunk_dir)}"

    def fetch(self, chunk: Chunk) -> bytes:
        url = self.url_for(chunk)
        self.fetch_count += 1
        logger.debug("GET %s", url)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise ChunkFetchError(f"HTTP {status} for {url}", guid=chunk.guid, status=status) from e
        except requests.RequestException as e:
            raise ChunkFetchError(f"transport error for {url}: {e}", guid=chunk.guid) from e

        blob = response.content
        if chunk.file_size and len(blob) != chunk.file_size:
            logger.warning(
                "chunk %s: size mismatch, expected %d got %d", chunk.guid, chunk.file_size, len(blob)
            )
        return decode_chunk(blob, expected_guid=chunk.guid, verify_sha1=self.verify_sha1).payload


class RetryingFetcher:
    """Retry transport failures with exponential backoff.

    Decode errors are deterministic for a given blob and are not retried.
    """

    def __init__(
        self,
        inner: Fetcher,
        *,
        attempts: int = 3,
        backoff: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if attempts < 1:
            raise UsageError(f"retry attempts must be >= 1, got {attempts}")
        self.inner = inner
        self.attempts = attempts
        self.backoff = backoff
        self._sleep = sleep

    @property
    def fetch_count(self) -> int:
        return self.inner.fetch_count

    def fetch(self, chunk: Chunk) -> bytes:
        for attempt in range(self.attempts):
            try:
                return self.inner.fetch(chunk)
            except ChunkFetchError as e:
                if attempt == self.attempts - 1:
                    raise
                delay = self.backoff * (2**attempt)
                logger.debug("retry %d/%d for chunk %s after error: %s", attempt + 1, self.attempts - 1, chunk.guid, e)
                self._sleep(delay)
        raise AssertionError("unreachable")
