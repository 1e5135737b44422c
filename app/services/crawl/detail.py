from __future__ import annotations

import logging
from typing import Callable, Dict

from .base import RawEntry
from .distances import merge_distances
from .errors import FetchError
from .fetcher import PageFetcher
from .spiders.calendar_spider import DetailInfo, parse_detail_page
from .text import sanitize_city

logger = logging.getLogger(__name__)


class DetailEnricher:
    """Fills a row's missing name/city/distances from its detail page.

    Parsed pages are memoized per URL for the lifetime of the instance and
    the politeness delay is applied before every uncached fetch.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        delay_s: float = 0.8,
        sleep: Callable[[float], None],
    ) -> None:
        self.fetcher = fetcher
        self.delay_s = delay_s
        self._sleep = sleep
        self._details: Dict[str, DetailInfo] = {}
        self.fetched = 0

    def lookup(self, url: str) -> DetailInfo:
        if url in self._details:
            return self._details[url]
        if self.delay_s > 0:
            self._sleep(self.delay_s)
        html = self.fetcher.fetch(url)
        self.fetched += 1
        info = parse_detail_page(html)
        self._details[url] = info
        return info

    def enrich(self, entry: RawEntry) -> RawEntry:
        """Complete ``entry`` in place; fields already on the row are never replaced."""
        if not entry.detail_url or not entry.needs_detail():
            return entry
        try:
            detail = self.lookup(entry.detail_url)
        except FetchError as exc:
            logger.warning("Failed to read detail page for %s: %s", entry.detail_url, exc)
            return entry

        if not entry.name and detail.name:
            entry.name = detail.name
        if not entry.distances and detail.distances:
            entry.distances = merge_distances(detail.distances)
        if not entry.city and detail.city:
            entry.city = detail.city
        if not entry.city and detail.name:
            # titles often read "Kraków - Bieg Niepodległości"
            inferred = sanitize_city(detail.name.split("-")[0])
            if inferred and inferred != detail.name:
                entry.city = inferred
        return entry
