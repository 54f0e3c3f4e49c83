from __future__ import annotations

"""
Google Solar API GeoTIFF downloader.

Data-layer URLs returned by `dataLayers:get` point at solar.googleapis.com and
must carry the API key as a `key` query parameter; any other host (signed
storage URLs, local test servers) is requested exactly as given.

Usage:
    fetcher = RasterFetcher()  # GOOGLE_API_KEY from env, or api_key=...
    raster = fetcher.fetch(urls.annual_flux_url)
    raster.bounds   # WGS84 BoundingBox
    raster.bands    # (band_count, height, width) float64
"""

import os
import time
from typing import Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from common.config import DEFAULTS
from common.errors import NetworkError, SolarLayerError
from common.logging_setup import get_logger, redact_url
from common.types import Raster
from raster_io.decode import decode_geotiff


log = get_logger(__name__)


class RasterFetcher:
    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        *,
        provider_host: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_s: Optional[float] = None,
        api_key_env: Optional[str] = None,
    ):
        """
        Initialize the fetcher.

        Params:
            api_key: provider API key (falls back to the env var named by api_key_env)
            session: optional requests.Session for connection reuse
            provider_host: host that requires the API key (default solar.googleapis.com)
            timeout: per-request deadline in seconds
            max_retries: extra attempts for transient NetworkErrors
            backoff_s: linear backoff step between attempts
        """
        provider = DEFAULTS["provider"]
        fetch = DEFAULTS["fetch"]
        self.api_key = api_key or os.getenv(api_key_env or provider["api_key_env"])
        self.provider_host = (provider_host or provider["host"]).lower()
        self.timeout = float(timeout if timeout is not None else fetch["timeout_s"])
        self.max_retries = max(0, int(max_retries if max_retries is not None else fetch["max_retries"]))
        self.backoff_s = float(backoff_s if backoff_s is not None else fetch["backoff_s"])
        self._owns_session = session is None
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, P: Dict, *, api_key: Optional[str] = None, session: Optional[requests.Session] = None) -> "RasterFetcher":
        provider = P.get("provider", {})
        fetch = P.get("fetch", {})
        return cls(
            api_key=api_key,
            session=session,
            provider_host=provider.get("host"),
            timeout=fetch.get("timeout_s"),
            max_retries=fetch.get("max_retries"),
            backoff_s=fetch.get("backoff_s"),
            api_key_env=provider.get("api_key_env"),
        )

    # ----------------------------
    # Public API
    # ----------------------------
    def is_provider_url(self, url: str) -> bool:
        host = (urlsplit(url).hostname or "").lower()
        return host == self.provider_host

    def prepare_url(self, url: str) -> str:
        """
        Append the API key for provider URLs; return other URLs untouched.
        """
        if not self.is_provider_url(url):
            return url
        if not self.api_key:
            raise ValueError(
                "Solar API key is required for provider URLs. "
                "Set GOOGLE_API_KEY environment variable or pass api_key=..."
            )
        parts = urlsplit(url)
        query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "key"]
        query.append(("key", self.api_key))
        return urlunsplit(parts._replace(query=urlencode(query)))

    def download(self, url: str, deadline: Optional[float] = None) -> bytes:
        """
        GET the raster bytes with bounded retries for transient failures.

        `deadline` is an absolute time.monotonic() value: each request's
        timeout is capped to what is left of it, and no retry starts that
        would sleep past it.
        """
        request_url = self.prepare_url(url)
        attempt = 0
        while True:
            timeout = self.timeout
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise NetworkError("deadline exceeded before request", url=url)
                timeout = min(timeout, remaining)
            try:
                return self._get(request_url, url, timeout)
            except NetworkError as e:
                if not e.transient or attempt >= self.max_retries:
                    raise
                attempt += 1
                delay = self.backoff_s * attempt
                if deadline is not None and time.monotonic() + delay >= deadline:
                    raise
                log.warning(
                    "Retrying raster download",
                    extra={"extra": {"url": redact_url(request_url), "attempt": attempt, "status": e.status, "delay_s": delay}},
                )
                time.sleep(delay)

    def fetch(self, url: str, deadline: Optional[float] = None) -> Raster:
        """
        Download, decode and reproject one GeoTIFF.

        Raises:
            NetworkError: non-2xx status (body kept for diagnostics) or transport failure
            DecodeError: body is not a readable raster container
            ProjectionError: missing/unsupported coordinate-system keys
        """
        log.info("Downloading GeoTIFF", extra={"extra": {"url": redact_url(url)}})
        content = self.download(url, deadline)
        try:
            raster = decode_geotiff(content).to_raster()
        except SolarLayerError as e:
            raise e.with_context(url=url)
        log.debug("Decoded GeoTIFF", extra={"extra": {"url": redact_url(url), **raster.to_meta()}})
        return raster

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "RasterFetcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ----------------------------
    # Internals
    # ----------------------------
    def _get(self, request_url: str, url: str, timeout: float) -> bytes:
        try:
            r = self.session.get(request_url, timeout=timeout)
        except requests.RequestException as e:
            raise NetworkError(f"request failed: {e}", url=url) from e
        if not 200 <= r.status_code < 300:
            body = r.text
            log.error(
                "Raster download failed",
                extra={"extra": {"url": redact_url(request_url), "status": r.status_code, "body": body[:200]}},
            )
            raise NetworkError(f"HTTP {r.status_code}", status=r.status_code, body=body, url=url)
        return r.content
