from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlparse

import requests

from seri.errors import FetchError

logger = logging.getLogger(__name__)


def _md5(s: str) -> str:
    return hashlib.md5(s.encode("utf-8")).hexdigest()


def _kind_for(url: str) -> str:
    path = urlparse(url).path.lower()
    if path.endswith(".pdf"):
        return "pdf"
    if path.endswith(".txt"):
        return "txt"
    return "html"


class DocumentFetcher:
    """
    Interface: implement .fetch(url) -> bytes
    Raise FetchError when the document cannot be retrieved.
    """

    def fetch(self, url: str) -> bytes:
        raise NotImplementedError


def _local_path(url: str) -> Optional[Path]:
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    if parsed.scheme in ("http", "https"):
        return None
    return Path(url)


@dataclass
class HttpFetcher(DocumentFetcher):
    """
    requests-based fetcher. Plain paths and file:// URLs are read from disk.

    With enable_cache, downloads are kept under cache_dir as
    <md5(url)>.<kind> plus a <key>.meta.json sidecar and reused for cache_ttl_s.
    """

    timeout_s: float = 30.0
    enable_cache: bool = False
    cache_dir: Path = field(default_factory=lambda: Path(".cache/documents"))
    cache_ttl_s: float = 24 * 60 * 60
    user_agent: str = "seri-import/0.1"
    session: Optional[requests.Session] = None

    def __post_init__(self):
        if self.session is None:
            self.session = requests.Session()
            self.session.headers.update({"User-Agent": self.user_agent})

    # ---------- cache ----------

    def _cache_key(self, url: str) -> str:
        return f"{_md5(url)}.{_kind_for(url)}"

    def _cache_paths(self, key: str) -> Tuple[Path, Path]:
        return self.cache_dir / key, self.cache_dir / f"{key}.meta.json"

    def _read_cache(self, url: str) -> Optional[bytes]:
        blob, meta = self._cache_paths(self._cache_key(url))
        if not blob.exists() or not meta.exists():
            return None
        try:
            info = json.loads(meta.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        age = time.time() - float(info.get("timestamp", 0))
        if age >= self.cache_ttl_s:
            return None
        logger.debug("cache hit: %s", url)
        return blob.read_bytes()

    def _write_cache(self, url: str, data: bytes) -> None:
        key = self._cache_key(url)
        blob, meta = self._cache_paths(key)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        blob.write_bytes(data)
        meta.write_text(
            json.dumps(
                {
                    "url": url,
                    "type": _kind_for(url),
                    "timestamp": time.time(),
                    "size": len(data),
                },
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )
        logger.debug("cache saved: %s (%d bytes)", url, len(data))

    def cache_info(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        if not self.cache_dir.exists():
            return out
        now = time.time()
        for meta in sorted(self.cache_dir.glob("*.meta.json")):
            blob = meta.with_name(meta.name[: -len(".meta.json")])
            if not blob.exists():
                continue
            info = json.loads(meta.read_text(encoding="utf-8"))
            out.append(
                {
                    "url": info.get("url"),
                    "type": info.get("type"),
                    "size": blob.stat().st_size,
                    "age_s": now - float(info.get("timestamp", now)),
                }
            )
        return out

    def clear_cache(self) -> Tuple[int, int]:
        """Delete every cached file. Returns (files_removed, bytes_freed)."""
        cleared = 0
        freed = 0
        if not self.cache_dir.exists():
            return cleared, freed
        for p in self.cache_dir.iterdir():
            if p.is_file():
                freed += p.stat().st_size
                p.unlink()
                cleared += 1
        return cleared, freed

    # ---------- fetch ----------

    def fetch(self, url: str) -> bytes:
        local = _local_path(url)
        if local is not None:
            try:
                return local.read_bytes()
            except OSError as e:
                raise FetchError(url, str(e)) from e

        if self.enable_cache:
            cached = self._read_cache(url)
            if cached is not None:
                return cached

        logger.info("downloading %s", url)
        try:
            r = self.session.get(url, timeout=self.timeout_s)
            r.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise FetchError(url, f"HTTP {status}", status_code=status) from e
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e

        data = r.content
        if self.enable_cache:
            self._write_cache(url, data)
        return data
