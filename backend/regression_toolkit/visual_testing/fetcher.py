"""
Screenshot fetcher

Resolves screenshot references to raw bytes. HTTP(S) references go through
an httpx AsyncClient with bounded retries; file:// URLs and bare paths are
read from disk.
"""

import asyncio
import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from regression_toolkit.core.config import get_settings
from regression_toolkit.core.exceptions import FetchFailureError

logger = logging.getLogger(__name__)


class ScreenshotFetcher:
    """
    Async fetcher for screenshot blobs

    Connection errors, timeouts and 5xx responses are retried with
    exponential backoff (backoff * 2**attempt seconds). 4xx responses and
    missing files fail immediately.

    Example:
        async with ScreenshotFetcher() as fetcher:
            content = await fetcher.fetch("https://cdn.example.com/shot.png")
    """

    def __init__(
        self,
        timeout: float | None = None,
        retries: int | None = None,
        backoff: float | None = None,
        root: Path | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize fetcher

        Args:
            timeout: Request timeout in seconds (default from settings)
            retries: Extra attempts after the first failure (default from settings)
            backoff: Base backoff delay in seconds (default from settings)
            root: Directory that relative paths are resolved against
            client: Pre-built HTTP client (owned by the caller)
        """
        settings = get_settings()
        self.timeout = settings.fetch_timeout if timeout is None else timeout
        self.retries = settings.fetch_retries if retries is None else retries
        self.backoff = settings.fetch_backoff if backoff is None else backoff
        self.root = root

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it"""
        if self._owns_client:
            await self.client.aclose()

    async def fetch(self, reference: str) -> bytes:
        """
        Fetch screenshot bytes

        Args:
            reference: http(s) URL, file:// URL or filesystem path

        Returns:
            Raw image bytes

        Raises:
            FetchFailureError: If the screenshot cannot be retrieved
        """
        if not reference:
            raise FetchFailureError(str(reference), "Empty screenshot reference")

        scheme = urlparse(reference).scheme.lower()
        if scheme in ("http", "https"):
            return await self._fetch_http(reference)
        if scheme == "file":
            return await self._read_file(Path(unquote(urlparse(reference).path)), reference)
        if scheme and len(scheme) > 1:
            raise FetchFailureError(reference, f"Unsupported reference scheme: {scheme}")

        # Bare path (a one-letter "scheme" is a Windows drive)
        path = Path(reference)
        if self.root is not None and not path.is_absolute():
            path = self.root / path
        return await self._read_file(path, reference)

    async def _fetch_http(self, url: str) -> bytes:
        last_error = ""
        attempts = self.retries + 1

        for attempt in range(attempts):
            try:
                response = await self.client.get(url)
            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_error = f"{type(e).__name__}: {e}"
            except httpx.HTTPError as e:
                raise FetchFailureError(url, str(e), attempts=attempt + 1) from e
            else:
                if response.status_code < 400:
                    return response.content
                if response.status_code < 500:
                    raise FetchFailureError(
                        url, f"HTTP {response.status_code}", attempts=attempt + 1
                    )
                last_error = f"HTTP {response.status_code}"

            if attempt < attempts - 1:
                delay = self.backoff * (2**attempt)
                logger.warning(
                    f"Fetch of {url} failed ({last_error}), retrying in {delay:.2f}s "
                    f"[{attempt + 1}/{attempts}]"
                )
                await asyncio.sleep(delay)

        raise FetchFailureError(url, last_error, attempts=attempts)

    async def _read_file(self, path: Path, reference: str) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise FetchFailureError(reference, f"Cannot read {path}: {e.strerror or e}") from e
