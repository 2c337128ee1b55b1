from __future__ import annotations

import json
from pathlib import Path

import pytest

from splash_dl.blob_cache import BlobCache
from splash_dl.errors import CatalogUnsupported, ManifestCorrupt, ProviderError, UsageError
from splash_dl.providers import (
    CATALOG_CACHE_NAME,
    MANIFEST_CACHE_NAME,
    Catalog,
    CatalogProvider,
    ManifestProvider,
    resolve_manifest,
)

G1 = "11111111222222223333333344444444"
BASE = "http://cdn.test/Builds/Fortnite/CloudDir"


def _element(**kw) -> dict:
    el = {
        "appName": "TestApp",
        "labelName": "Live-Windows",
        "buildVersion": "1.0-test",
        "manifests": [{"uri": "http://cdn.test/a.manifest"}],
    }
    el.update(kw)
    return el


def test_catalog_manifest_url_with_query_params() -> None:
    c = Catalog.from_dict(
        {
            "elements": [
                _element(
                    manifests=[
                        {
                            "uri": "http://cdn.test/a.manifest",
                            "queryParams": [{"name": "f_token", "value": "a/b"}, {"name": "x", "value": "1"}],
                        },
                        {"uri": "http://mirror.test/a.manifest"},
                    ]
                )
            ]
        }
    )
    assert c.app_name == "TestApp"
    assert c.label_name == "Live-Windows"
    assert c.manifest_url() == "http://cdn.test/a.manifest?f_token=a%2Fb&x=1"
    assert len(c.manifests) == 2


@pytest.mark.parametrize(
    "raw",
    [
        [],
        {},
        {"elements": []},
        {"elements": [_element(), _element()]},
        {"elements": [_element(manifests=[])]},
        {"elements": [_element(manifests=[{"uri": ""}])]},
        {"elements": ["nope"]},
    ],
)
def test_unsupported_catalogs(raw) -> None:
    with pytest.raises(CatalogUnsupported):
        Catalog.from_dict(raw)


def test_catalog_bad_json_is_manifest_corrupt() -> None:
    with pytest.raises(ManifestCorrupt):
        Catalog.deserialize(b"\xff\xfe")


def test_catalog_provider_uses_cache_first(session, tmp_path: Path) -> None:
    cache = BlobCache(tmp_path)
    cache.write(CATALOG_CACHE_NAME, json.dumps({"elements": [_element()]}).encode("utf-8"))

    c = CatalogProvider(session, None, cache=cache).load()

    assert c.build_version == "1.0-test"
    assert session.calls == []


def test_catalog_provider_http_error(session) -> None:
    with pytest.raises(ProviderError):
        CatalogProvider(session, "http://catalog.test/missing").load()


def test_manifest_provider_sources(mb, session, tmp_path: Path) -> None:
    mb.add_chunk(G1, b"HelloWorld")
    mb.add_file("a.txt", [(G1, 0, 10)])
    data = json.dumps(mb.to_dict()).encode("utf-8")
    session.blobs[f"{BASE}/abc.manifest"] = data
    p = tmp_path / "m.manifest"
    p.write_bytes(data)

    provider = ManifestProvider(session, base_url=BASE + "/")
    assert provider.url_for_id("abc") == f"{BASE}/abc.manifest"

    m, raw = provider.from_id("abc")
    assert raw == data
    assert m.get("a.txt") is not None
    assert provider.from_file(p)[0].app_name == "TestApp"

    with pytest.raises(ProviderError):
        provider.from_url(f"{BASE}/other.manifest")
    with pytest.raises(ProviderError):
        provider.from_file(tmp_path / "missing.manifest")
    with pytest.raises(UsageError):
        ManifestProvider(session).from_id("abc")


def test_resolve_prefers_cached_manifest_over_catalog(mb, session, config) -> None:
    mb.add_chunk(G1, b"HelloWorld")
    mb.add_file("cached.txt", [(G1, 0, 10)])
    cache = BlobCache(config.cache_dir)
    cache.write(MANIFEST_CACHE_NAME, json.dumps(mb.to_dict()).encode("utf-8"))

    m = resolve_manifest(config.merged(catalog_url="http://catalog.test/c"), session, cache=cache)

    assert m.get("cached.txt") is not None
    assert session.calls == []


def test_resolve_explicit_file_beats_cache(mb, session, config, tmp_path: Path) -> None:
    mb.add_chunk(G1, b"HelloWorld")
    mb.add_file("explicit.txt", [(G1, 0, 10)])
    p = tmp_path / "m.manifest"
    p.write_text(json.dumps(mb.to_dict()), encoding="utf-8")
    cache = BlobCache(config.cache_dir)
    cache.write(MANIFEST_CACHE_NAME, b"{}")

    m = resolve_manifest(config.merged(manifest_file=p), session, cache=cache)
    assert m.get("explicit.txt") is not None


def test_catalog_provider_fetches_platform_catalog(session, tmp_path: Path) -> None:
    session.blobs["http://catalog.test/Mac/catalog"] = json.dumps({"elements": [_element()]}).encode("utf-8")
    cache = BlobCache(tmp_path)

    provider = CatalogProvider(session, "http://catalog.test/{platform}/catalog", platform="Mac", cache=cache)
    assert provider.url() == "http://catalog.test/Mac/catalog"
    assert provider.load().app_name == "TestApp"
    assert session.calls == ["http://catalog.test/Mac/catalog"]
    assert cache.has(CATALOG_CACHE_NAME)

    assert CatalogProvider(session, "http://catalog.test/{platform}/catalog").url() == (
        "http://catalog.test/Windows/catalog"
    )
    with pytest.raises(UsageError):
        CatalogProvider(session, None).url()


def test_resolve_passes_platform_to_catalog(mb, session, config) -> None:
    mb.add_chunk(G1, b"HelloWorld")
    mb.add_file("a.txt", [(G1, 0, 10)])
    el = _element(manifests=[{"uri": f"{BASE}/m.manifest"}])
    session.blobs["http://catalog.test/Android"] = json.dumps({"elements": [el]}).encode("utf-8")
    session.blobs[f"{BASE}/m.manifest"] = json.dumps(mb.to_dict()).encode("utf-8")

    cfg = config.merged(catalog_url="http://catalog.test/{platform}", platform="Android")
    m = resolve_manifest(cfg, session, cache=BlobCache(config.cache_dir))

    assert m.get("a.txt") is not None
    assert session.calls[0] == "http://catalog.test/Android"
