"""Politeness-aware HTTP fetcher: fixed delay before every request, a
user-agent identity, timeouts, and exponential backoff between retries."""

import logging
import os
import time
from typing import Callable, Optional, Tuple
from urllib.parse import urljoin

import httpx

from .config import FetchConfig
from .errors import ConnectionFailed, DownloadFailed
from .models import FetchResult

logger = logging.getLogger("nap_scraper")


def _declared_length(value: Optional[str]) -> Optional[int]:
    """Content-Length as an int, or None when absent or garbled.

    A garbled header is ignored; the streamed byte count still enforces the
    size limit.
    """
    if not value:
        return None
    try:
        return int(value.strip())
    except ValueError:
        logger.debug(f"Ignoring malformed Content-Length: {value!r}")
        return None


class Fetcher:
    def __init__(self, config: FetchConfig,
                 transport: Optional[httpx.BaseTransport] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.Client] = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.config.timeout, connect=30),
                follow_redirects=True,
                headers={"User-Agent": self.config.user_agent},
                transport=self._transport,
            )
        return self._client

    def close(self):
        if self._client and not self._client.is_closed:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def rate_limit(self):
        if self.config.request_delay > 0:
            self._sleep(self.config.request_delay)

    def backoff(self, attempt: int):
        """Sleep before retry number `attempt` (2 is the first retry)."""
        wait = self.config.backoff_base * 2 ** (attempt - 1)
        logger.info(f"Waiting {wait:g}s before attempt {attempt}")
        self._sleep(wait)

    def resolve(self, url: str) -> str:
        """Absolute form of a link scraped from the site."""
        return urljoin(self.config.site_origin.rstrip("/") + "/", url.strip())

    def fetch_text(self, url: str) -> FetchResult:
        """One polite GET. Failures are returned, never raised."""
        self.rate_limit()
        try:
            resp = self.client.get(url)
        except httpx.HTTPError as e:
            return FetchResult(url, False, error=f"{type(e).__name__}: {e}")
        if resp.status_code != 200:
            return FetchResult(url, False, resp.status_code, error=f"HTTP {resp.status_code}")
        return FetchResult(url, True, resp.status_code, resp.text)

    def fetch_page(self, url: str) -> str:
        """Fetch an HTML page, retrying with backoff. Raises ConnectionFailed."""
        result = None
        for attempt in range(1, self.config.max_attempts + 1):
            if attempt > 1:
                self.backoff(attempt)
            result = self.fetch_text(url)
            if result.ok:
                return result.text
            logger.warning(
                f"Attempt {attempt}/{self.config.max_attempts} for {url} failed: {result.error}"
            )
        raise ConnectionFailed(
            f"Could not fetch {url} after {self.config.max_attempts} attempts: "
            f"{result.error if result else 'no attempts made'}"
        )

    def stream_to_file(self, url: str, local_path: str,
                       max_file_size: int) -> Tuple[int, int]:
        """Stream a GET response body to local_path.

        Returns (status_code, bytes_written). Nothing is written unless the
        status is 200. Raises httpx errors, OSError or DownloadFailed.
        """
        size = 0
        with self.client.stream("GET", url) as resp:
            if resp.status_code != 200:
                return resp.status_code, 0

            # Error pages sometimes come back as 200 text/html
            ct = resp.headers.get("content-type", "")
            if "text/html" in ct:
                raise DownloadFailed(f"Expected PDF but got HTML (content-type: {ct})")

            declared = _declared_length(resp.headers.get("content-length"))
            if declared is not None and declared > max_file_size:
                raise DownloadFailed(f"File too large: {declared} bytes")

            os.makedirs(os.path.dirname(os.path.abspath(local_path)), exist_ok=True)
            with open(local_path, "wb") as f:
                for chunk in resp.iter_bytes(chunk_size=65536):
                    f.write(chunk)
                    size += len(chunk)
                    if size > max_file_size:
                        raise DownloadFailed(f"File exceeded max size during download: {size} bytes")

            return resp.status_code, size
