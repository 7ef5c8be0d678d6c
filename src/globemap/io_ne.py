"""Natural Earth dataset download, caching and loading."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Iterable, Sequence

import requests

from .config import SourceConfig
from .errors import LoadError


_RETRYABLE_HTTP_STATUS = {408, 429, 500, 502, 503, 504}
_CHUNK_SIZE = 1024 * 1024

# Short dataset names accepted in config, as published on naturalearthdata.com.
_TYPE_ALIASES = {
    "countries": "admin_0_countries",
    "map_units": "admin_0_map_units",
    "sovereignty": "admin_0_sovereignty",
    "tiny_countries": "admin_0_tiny_countries",
}

_LOGGER = logging.getLogger("globemap.io_ne")


def find_column(columns: Iterable[Any], candidates: Sequence[str]) -> str | None:
    """Case-insensitive column lookup; returns the frame's own spelling."""
    existing = {str(col).lower(): str(col) for col in columns}
    for candidate in candidates:
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


class NaturalEarthRepository:
    """Fetch one Natural Earth layer into a local cache and read it."""

    def __init__(self, cfg: SourceConfig, cache_dir: Path) -> None:
        self.cfg = cfg
        self.cache_dir = cache_dir
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": cfg.user_agent})

    @property
    def layer_name(self) -> str:
        layer = _TYPE_ALIASES.get(self.cfg.type.casefold(), self.cfg.type)
        return f"ne_{self.cfg.scale}m_{layer}"

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / f"{self.layer_name}.zip"

    def dataset_url(self) -> str:
        return f"{self.cfg.base_url}/{self.cfg.scale}m/{self.cfg.category}/{self.layer_name}.zip"

    def fetch(self, *, refresh: bool = False) -> Path:
        """Return the local archive path, downloading it when not cached."""
        cached = self.cache_path.exists()
        if cached and not refresh:
            _LOGGER.debug("Using cached dataset %s", self.cache_path)
            return self.cache_path

        url = self.dataset_url()
        try:
            self._download(url, self.cache_path)
        except (requests.RequestException, OSError) as exc:
            if cached:
                _LOGGER.warning("Download of %s failed (%s); reusing cached copy", url, exc)
                return self.cache_path
            raise LoadError(f"Could not download {url} and no cached copy exists: {exc}") from exc
        _LOGGER.info("Downloaded %s to %s", url, self.cache_path)
        return self.cache_path

    def load(self, *, refresh: bool = False) -> Any:
        """Load the dataset with its full attribute set as a GeoDataFrame."""
        path = self.fetch(refresh=refresh)
        gpd = _require_geopandas()
        try:
            frame = gpd.read_file(path)
        except Exception as exc:
            raise LoadError(f"Could not read dataset archive {path}: {exc}") from exc
        _LOGGER.info("Loaded %d features from %s", len(frame), path.name)
        return frame

    def clear_cache(self) -> bool:
        if not self.cache_path.exists():
            return False
        self.cache_path.unlink()
        return True

    def _download(self, url: str, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        response = self._request_get(url)
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".part", dir=target.parent)
            try:
                with os.fdopen(fd, "wb") as fh:
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        if chunk:
                            fh.write(chunk)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        finally:
            response.close()

    def _request_get(self, url: str) -> requests.Response:
        attempts = self.cfg.max_retries + 1
        for attempt in range(attempts):
            response = self._session.get(url, stream=True, timeout=self.cfg.request_timeout_s)
            if response.status_code not in _RETRYABLE_HTTP_STATUS:
                _raise_for_status(response)
                return response
            if attempt >= self.cfg.max_retries:
                _raise_for_status(response)
            delay_s = min(self.cfg.retry_backoff_s * (2**attempt), 60.0)
            _LOGGER.warning(
                "Retryable response %s for %s; retrying in %.1fs (%d/%d)",
                response.status_code,
                url,
                delay_s,
                attempt + 1,
                self.cfg.max_retries,
            )
            response.close()
            time.sleep(delay_s)
        raise RuntimeError("Unreachable retry loop in Natural Earth download")


def _raise_for_status(response: requests.Response) -> None:
    try:
        response.raise_for_status()
    except requests.HTTPError:
        response.close()
        raise


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for Natural Earth data loading") from exc
    return gpd
