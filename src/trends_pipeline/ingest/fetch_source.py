"""Resolve a source identifier to a readable local file.

Local paths are checked in place (relative paths resolve against the data
directory); http(s) URLs are downloaded once into a cache directory.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from urllib.parse import urlparse

from trends_pipeline.errors import SourceUnavailable

log = logging.getLogger(__name__)


def is_remote(location: str) -> bool:
    """Return True when `location` is an http(s) URL."""
    return urlparse(location).scheme in ("http", "https")


def cached_path_for(url: str, cache_dir: Path) -> Path:
    """Return the cache file path used for a remote URL.

    The file name keeps the URL's basename for readability and prefixes a
    short digest so two URLs with the same basename never collide.
    """
    basename = Path(urlparse(url).path).name or "source.csv"
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:10]
    return cache_dir / f"{digest}_{basename}"


def download_source(url: str, cache_dir: Path, timeout: float = 60.0) -> Path:
    """Download or return the cached copy of a remote source.

    Args:
        url: http(s) URL of the delimited file.
        cache_dir: Local directory to cache downloads.
        timeout: Request timeout in seconds.

    Returns:
        Path to the downloaded (or cached) file.

    Raises:
        SourceUnavailable: if the request fails or returns a non-2xx status.
    """
    cache_dir.mkdir(parents=True, exist_ok=True)
    out_path = cached_path_for(url, cache_dir)

    if out_path.exists() and out_path.stat().st_size > 0:
        log.info("Cache hit: %s", out_path)
        return out_path

    log.info("Downloading %s", url)
    import requests  # type: ignore[import-untyped]  # local import to avoid requiring type stubs at module import
    try:
        r = requests.get(url, timeout=timeout)
        r.raise_for_status()
    except requests.RequestException as e:
        raise SourceUnavailable(url, str(e)) from e

    out_path.write_bytes(r.content)
    log.info("Saved: %s (%d bytes)", out_path, out_path.stat().st_size)
    return out_path


def resolve_source(location: str, data_dir: Path, cache_dir: Path) -> Path:
    """Return a local, readable path for `location`.

    Args:
        location: Local path or http(s) URL.
        data_dir: Base directory for relative local paths.
        cache_dir: Cache directory for remote downloads.

    Raises:
        SourceUnavailable: if the file does not exist, is not a regular file,
            or cannot be downloaded.
    """
    if is_remote(location):
        return download_source(location, cache_dir)

    path = Path(location)
    if not path.is_absolute() and not path.exists():
        path = data_dir / path

    if not path.exists():
        raise SourceUnavailable(location, "file not found")
    if not path.is_file():
        raise SourceUnavailable(location, "not a regular file")
    return path
