from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from app.config import USER_AGENT

from .errors import FetchError, FetchHttpError, FetchTimeout

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "pl,en;q=0.8",
}


class PageFetcher:
    """GET with a bounded timeout and a per-instance body cache.

    The cache lives as long as the fetcher; one crawl invocation owns one
    fetcher, so list and detail pages are never downloaded twice in a chunk.
    No retries happen here.
    """

    def __init__(
        self,
        *,
        timeout: float = 20.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.timeout = float(timeout)
        self.headers = headers or dict(DEFAULT_HEADERS)
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._cache: Dict[str, str] = {}

    def fetch(self, url: str) -> str:
        if url in self._cache:
            return self._cache[url]
        client = self._get_client()
        try:
            resp = client.get(url)
        except httpx.TimeoutException as exc:
            raise FetchTimeout(f"Timed out after {self.timeout:g}s fetching {url}", url=url) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch {url}: {exc}", url=url) from exc
        if not resp.is_success:
            raise FetchHttpError(resp.status_code, url=url)
        body = resp.text
        self._cache[url] = body
        logger.debug("fetched %s (%d bytes)", url, len(body))
        return body

    @property
    def cached_urls(self) -> List[str]:
        return list(self._cache)

    def clear(self) -> None:
        self._cache.clear()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client
