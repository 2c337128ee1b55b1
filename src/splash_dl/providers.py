"""Catalog and manifest providers.

These sit outside the reconstruction core: the core only needs a decoded
Manifest. Providers fetch raw bytes over HTTP (or read a local file) and
optionally keep a copy in the blob cache.

Catalog schema (only what we read):

  {"elements": [{"appName", "labelName", "buildVersion",
                 "manifests": [{"uri": "...", "queryParams": [{"name", "value"}, ...]}]}]}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

import requests

from splash_dl.blob_cache import BlobCache
from splash_dl.config import SplashConfig
from splash_dl.errors import CatalogUnsupported, ManifestCorrupt, ProviderError, UsageError
from splash_dl.manifest import Manifest

CATALOG_CACHE_NAME = "catalog.json"
MANIFEST_CACHE_NAME = "manifest.json"
PLATFORM_PLACEHOLDER = "{platform}"

logger = logging.getLogger("splash_dl.providers")


def _get(session: requests.Session, url: str, *, timeout: float) -> bytes:
    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ProviderError(f"GET {url} failed: {e}") from e
    return response.content


@dataclass(frozen=True)
class CatalogManifestRef:
    uri: str
    query_params: tuple[tuple[str, str], ...] = ()

    def url(self) -> str:
        if not self.query_params:
            return self.uri
        sep = "&" if "?" in self.uri else "?"
        return f"{self.uri}{sep}{urlencode(list(self.query_params))}"


@dataclass(frozen=True)
class Catalog:
    app_name: str
    label_name: str
    build_version: str
    manifests: tuple[CatalogManifestRef, ...]

    def manifest_url(self) -> str:
        return self.manifests[0].url()

    @classmethod
    def from_dict(cls, raw: Any) -> "Catalog":
        if not isinstance(raw, dict):
            raise CatalogUnsupported("catalog root is not an object")
        elements = raw.get("elements")
        if not isinstance(elements, list) or len(elements) != 1:
            raise CatalogUnsupported("Unsupported catalog (expected exactly one element)")
        el = elements[0]
        if not isinstance(el, dict):
            raise CatalogUnsupported("Unsupported catalog (element is not an object)")

        refs: list[CatalogManifestRef] = []
        for m in el.get("manifests") or []:
            if not isinstance(m, dict) or not isinstance(m.get("uri"), str) or not m["uri"]:
                raise CatalogUnsupported(f"catalog manifest entry invalid: {m!r}")
            params = []
            for qp in m.get("queryParams") or []:
                if not isinstance(qp, dict) or "name" not in qp:
                    raise CatalogUnsupported(f"catalog query param invalid: {qp!r}")
                params.append((str(qp["name"]), str(qp.get("value", ""))))
            refs.append(CatalogManifestRef(uri=m["uri"], query_params=tuple(params)))
        if not refs:
            raise CatalogUnsupported("Unsupported catalog (no manifests)")

        return cls(
            app_name=str(el.get("appName", "")),
            label_name=str(el.get("labelName", "")),
            build_version=str(el.get("buildVersion", "")),
            manifests=tuple(refs),
        )

    @classmethod
    def deserialize(cls, data: bytes) -> "Catalog":
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ManifestCorrupt(f"catalog JSON invalid: {e}") from e
        return cls.from_dict(raw)


class CatalogProvider:
    def __init__(
        self,
        session: requests.Session,
        catalog_url: str | None,
        *,
        platform: str = "Windows",
        cache: BlobCache | None = None,
        timeout: float = 30.0,
    ):
        self.session = session
        self.catalog_url = catalog_url
        self.platform = platform
        self.cache = cache
        self.timeout = timeout

    def url(self) -> str:
        """Catalog URL for this platform (``{platform}`` placeholder in the configured URL)."""
        if not self.catalog_url:
            raise UsageError("no manifest source: set a manifest id/url/file or a catalog URL")
        return self.catalog_url.replace(PLATFORM_PLACEHOLDER, self.platform)

    def load(self) -> Catalog:
        if self.cache is not None:
            cached = self.cache.read(CATALOG_CACHE_NAME)
            if cached is not None:
                logger.info("Loading catalog from cache...")
                return Catalog.deserialize(cached)

        url = self.url()
        logger.info("Fetching latest %s catalog...", self.platform)
        data = _get(self.session, url, timeout=self.timeout)
        catalog = Catalog.deserialize(data)
        if self.cache is not None:
            self.cache.write(CATALOG_CACHE_NAME, data)
        return catalog


class ManifestProvider:
    """Manifest bytes by URL, by id (under ``base_url``) or from a local file."""

    def __init__(self, session: requests.Session, *, base_url: str | None = None, timeout: float = 30.0):
        self.session = session
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout

    def url_for_id(self, manifest_id: str) -> str:
        if not self.base_url:
            raise UsageError("a base URL is required to fetch a manifest by id")
        return f"{self.base_url}/{manifest_id}.manifest"

    def from_id(self, manifest_id: str) -> tuple[Manifest, bytes]:
        return self.from_url(self.url_for_id(manifest_id))

    def from_url(self, url: str) -> tuple[Manifest, bytes]:
        data = _get(self.session, url, timeout=self.timeout)
        return Manifest.deserialize(data), data

    def from_file(self, path: Path) -> tuple[Manifest, bytes]:
        p = Path(path)
        try:
            data = p.read_bytes()
        except OSError as e:
            raise ProviderError(f"cannot read manifest {p}: {e}") from e
        return Manifest.deserialize(data), data


def resolve_manifest(
    config: SplashConfig,
    session: requests.Session,
    *,
    cache: BlobCache | None = None,
) -> Manifest:
    """Pick the manifest source in priority order.

    explicit id > explicit URL > local file > cached manifest > catalog.
    Only catalog-derived manifests are cached.
    """
    provider = ManifestProvider(session, base_url=config.chunk_base_urls()[0], timeout=config.timeout)

    if config.manifest_id:
        logger.info("Fetching manifest %s...", config.manifest_id)
        return provider.from_id(config.manifest_id)[0]

    if config.manifest_url:
        logger.info("Fetching manifest from %s...", config.manifest_url)
        return provider.from_url(config.manifest_url)[0]

    if config.manifest_file:
        logger.info("Loading manifest from %s...", config.manifest_file)
        return provider.from_file(config.manifest_file)[0]

    if cache is not None:
        cached = cache.read(MANIFEST_CACHE_NAME)
        if cached is not None:
            logger.info("Loading manifest from cache...")
            return Manifest.deserialize(cached)

    catalog = CatalogProvider(
        session, config.catalog_url, platform=config.platform, cache=cache, timeout=config.timeout
    ).load()
    logger.info("Catalog %s (%s) %s loaded.", catalog.app_name, catalog.label_name, catalog.build_version)

    logger.info("Fetching latest manifest...")
    manifest, data = provider.from_url(catalog.manifest_url())
    if cache is not None:
        cache.write(MANIFEST_CACHE_NAME, data)
    return manifest
