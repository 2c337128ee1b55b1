"""Run configuration (v1).

Everything the run needs is an explicit value passed into the entry point,
so the core can be invoked repeatedly (tests) with different settings.

Config files stay *small* and strict:
  - JSON only
  - explicit schema id
  - unknown keys are rejected
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from splash_dl.errors import ConfigError
from splash_dl.manifest import DEFAULT_CHUNK_DIR

SPEC_ID_V1 = "splash-dl.config.v1"

DEFAULT_DOWNLOAD_URL = "http://epicgames-download1.akamaized.net"
DEFAULT_CLOUD_DIR = "Builds/Fortnite/CloudDir"


@dataclass(frozen=True)
class SplashConfig:
    platform: str = "Windows"
    manifest_id: str | None = None
    manifest_url: str | None = None
    manifest_file: Path | None = None
    catalog_url: str | None = None
    install_dir: Path = Path("files")
    cache_dir: Path = Path("cache")
    download_urls: tuple[str, ...] = (DEFAULT_DOWNLOAD_URL,)
    cloud_dir: str = DEFAULT_CLOUD_DIR
    chunk_dir: str = DEFAULT_CHUNK_DIR
    files: tuple[str, ...] | None = None
    skip_integrity_check: bool = False
    timeout: float = 30.0
    retries: int = 0
    retry_backoff: float = 0.5
    verify_chunk_sha1: bool = True

    def __post_init__(self) -> None:
        if not self.download_urls:
            raise ConfigError("config: 'download_urls' must not be empty")
        if self.timeout <= 0:
            raise ConfigError("config: 'timeout' must be > 0")
        if self.retries < 0:
            raise ConfigError("config: 'retries' must be >= 0")
        if self.retry_backoff < 0:
            raise ConfigError("config: 'retry_backoff' must be >= 0")
        sources = [x for x in (self.manifest_id, self.manifest_url, self.manifest_file) if x]
        if len(sources) > 1:
            raise ConfigError("config: set only one of manifest_id, manifest_url, manifest_file")

    def chunk_base_urls(self) -> list[str]:
        return [f"{u.rstrip('/')}/{self.cloud_dir.strip('/')}" for u in self.download_urls]

    def merged(self, **overrides: Any) -> "SplashConfig":
        """Return a copy with the non-None overrides applied."""
        known = {f.name for f in dataclasses.fields(self)}
        extra = sorted(set(overrides) - known)
        if extra:
            raise ConfigError(f"config: unknown keys: {', '.join(extra)}")
        clean = {k: v for k, v in overrides.items() if v is not None}
        if any(k in clean for k in ("manifest_id", "manifest_url", "manifest_file")):
            # an explicit source on the command line replaces the file's one
            for k in ("manifest_id", "manifest_url", "manifest_file"):
                clean.setdefault(k, None)
        return dataclasses.replace(self, **clean)


def _load_json_arg(config_arg: str) -> dict[str, Any]:
    s = config_arg.strip()
    if not s:
        raise ConfigError("config: empty argument")

    if s.startswith("@"):
        p = Path(s[1:]).expanduser()
        if not p.is_file():
            raise ConfigError(f"config: file not found: {p}")
        try:
            obj = json.loads(p.read_text(encoding="utf-8"))
        except Exception as e:
            raise ConfigError(f"config: invalid JSON in {p}: {e}") from e
        if not isinstance(obj, dict):
            raise ConfigError(f"config: JSON in {p} must be an object")
        return obj

    try:
        obj = json.loads(s)
    except Exception as e:
        raise ConfigError(f"config: invalid inline JSON: {e}") from e
    if not isinstance(obj, dict):
        raise ConfigError("config: inline JSON must be an object")
    return obj


def _optional_str(obj: dict[str, Any], key: str) -> str | None:
    if obj.get(key) is None:
        return None
    v = obj[key]
    if not isinstance(v, str) or not v.strip():
        raise ConfigError(f"config: '{key}' must be a non-empty string")
    return v.strip()


def _optional_bool(obj: dict[str, Any], key: str) -> bool | None:
    if key not in obj:
        return None
    v = obj.get(key)
    if isinstance(v, bool):
        return v
    raise ConfigError(f"config: '{key}' must be a boolean")


def _optional_number(obj: dict[str, Any], key: str, *, integer: bool = False) -> float | int | None:
    if key not in obj:
        return None
    v = obj.get(key)
    if isinstance(v, bool) or not isinstance(v, (int, float)) or (integer and not isinstance(v, int)):
        raise ConfigError(f"config: '{key}' must be {'an integer' if integer else 'a number'}")
    return v


def _optional_str_list(obj: dict[str, Any], key: str) -> tuple[str, ...] | None:
    if obj.get(key) is None:
        return None
    v = obj[key]
    if isinstance(v, str):
        v = split_csv(v)
    if not isinstance(v, list) or not all(isinstance(x, str) and x for x in v):
        raise ConfigError(f"config: '{key}' must be a list of strings")
    return tuple(v)


def split_csv(s: str) -> list[str]:
    return [x.strip() for x in s.split(",") if x.strip()]


def load_config(config_arg: str) -> SplashConfig:
    """Load and validate a config document.

    config_arg:
      - '@file.json'
      - inline JSON object
    """
    obj = _load_json_arg(config_arg)

    allowed = {"spec"} | {f.name for f in dataclasses.fields(SplashConfig)}
    extra = sorted(set(obj.keys()) - allowed)
    if extra:
        raise ConfigError(f"config: unsupported keys: {', '.join(extra)}")

    spec_id = obj.get("spec")
    if spec_id != SPEC_ID_V1:
        raise ConfigError(f"config: unsupported spec: {spec_id!r} (expected {SPEC_ID_V1!r})")

    values: dict[str, Any] = {
        "platform": _optional_str(obj, "platform"),
        "manifest_id": _optional_str(obj, "manifest_id"),
        "manifest_url": _optional_str(obj, "manifest_url"),
        "catalog_url": _optional_str(obj, "catalog_url"),
        "cloud_dir": _optional_str(obj, "cloud_dir"),
        "chunk_dir": _optional_str(obj, "chunk_dir"),
        "download_urls": _optional_str_list(obj, "download_urls"),
        "files": _optional_str_list(obj, "files"),
        "skip_integrity_check": _optional_bool(obj, "skip_integrity_check"),
        "verify_chunk_sha1": _optional_bool(obj, "verify_chunk_sha1"),
        "timeout": _optional_number(obj, "timeout"),
        "retries": _optional_number(obj, "retries", integer=True),
        "retry_backoff": _optional_number(obj, "retry_backoff"),
    }
    for key in ("manifest_file", "install_dir", "cache_dir"):
        s = _optional_str(obj, key)
        values[key] = Path(s).expanduser() if s is not None else None

    return SplashConfig().merged(**values)
