"""Budgeted, resumable crawl of the race calendar.

One call to ``CalendarCrawler.run_chunk`` walks list pages starting at a
cursor until the calendar runs out, the date window is passed, or the
wall-clock budget is spent. In the last case the returned cursor points at
the page that was about to be fetched, so the next chunk picks up exactly
there.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, List, Optional, Sequence

from app.config import CrawlerSettings

from .base import ChunkResult, ChunkStats, ExtractionStrategy, RawEntry
from .detail import DetailEnricher
from .errors import FetchError, InvalidRangeError, PersistenceError
from .fetcher import DEFAULT_HEADERS, PageFetcher
from .pipeline import DateRange, SignatureDeduplicator, StopDetector
from .resolver import INSERTED, UPDATED, EntityResolver, EventStore
from .spiders.calendar_spider import DEFAULT_STRATEGIES, build_page_url, extract_entries

logger = logging.getLogger(__name__)


@dataclass
class CrawlState:
    """Dedup and stop bookkeeping for one logical crawl.

    A fresh state per chunk is the default; ``run_to_completion`` threads one
    state through all of its chunks.
    """

    window: DateRange
    dedup: SignatureDeduplicator = field(default_factory=SignatureDeduplicator)
    stop: Optional[StopDetector] = None

    def __post_init__(self) -> None:
        if self.stop is None:
            self.stop = StopDetector(self.window)


def make_window(start: date, end: date) -> DateRange:
    if start is None or end is None:
        raise InvalidRangeError("Both `from` and `to` are required.")
    if start > end:
        raise InvalidRangeError("`from` must not be later than `to`.")
    return DateRange(start, end)


def month_windows(start: date, end: date) -> List[DateRange]:
    """Split ``[start, end]`` into calendar-month windows."""
    make_window(start, end)
    windows: List[DateRange] = []
    cursor = start
    while cursor <= end:
        next_month = (cursor.replace(day=1) + timedelta(days=32)).replace(day=1)
        windows.append(DateRange(cursor, min(end, next_month - timedelta(days=1))))
        cursor = next_month
    return windows


class CalendarCrawler:
    def __init__(
        self,
        store: EventStore,
        *,
        settings: Optional[CrawlerSettings] = None,
        fetcher: Optional[PageFetcher] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.settings = settings or CrawlerSettings()
        self.fetcher = fetcher or PageFetcher(
            timeout=self.settings.timeout_s,
            headers={**DEFAULT_HEADERS, "User-Agent": self.settings.user_agent},
        )
        self.resolver = EntityResolver(store)
        self.enricher = DetailEnricher(self.fetcher, delay_s=self.settings.detail_delay_ms / 1000.0, sleep=sleep)
        self.strategies = strategies
        self._sleep = sleep
        self._clock = clock

    def close(self) -> None:
        self.fetcher.close()

    def run_chunk(
        self,
        start: date,
        end: date,
        *,
        cursor: int = 0,
        budget_ms: Optional[int] = None,
        state: Optional[CrawlState] = None,
    ) -> ChunkResult:
        """Crawl from ``cursor`` until done or until ``budget_ms`` is spent.

        ``budget_ms=None`` means no time limit. Fetch and persistence errors
        abort the chunk and propagate to the caller.
        """
        window = make_window(start, end)
        state = state or CrawlState(window)
        stats = ChunkStats()
        started = self._clock()
        offset = max(0, int(cursor or 0))
        seen = 0
        inserted = 0
        done = False
        pages = 0
        details_before = self.enricher.fetched

        while True:
            elapsed_ms = (self._clock() - started) * 1000.0
            if budget_ms is not None and elapsed_ms >= budget_ms:
                stats.time_exceeded = True
                logger.info("Time budget of %sms used up before offset %d", budget_ms, offset)
                break
            if pages >= self.settings.max_pages:
                logger.warning("Reached %d pages in one chunk, yielding at offset %d", pages, offset)
                break
            if pages > 0 and self.settings.page_delay_ms > 0:
                self._sleep(self.settings.page_delay_ms / 1000.0)

            url = build_page_url(self.settings.list_url, offset)
            try:
                html = self.fetcher.fetch(url)
            except FetchError:
                logger.error("Failed to fetch page at offset %d (%s)", offset, url)
                raise
            pages += 1
            stats.pages_fetched += 1

            entries = extract_entries(html, base_url=url, strategies=self.strategies)
            stats.items_found += len(entries)
            if not entries:
                stats.pages_without_results += 1
                logger.info("Page at offset %d returned no events. Stopping.", offset)
                done = True
                break

            fresh = state.dedup.filter(entries)
            verdict = state.stop.classify_page(fresh)
            stats.items_in_range += len(verdict.in_range)
            logger.info(
                "Page at offset %d: %d rows, %d new, %d within %s - %s",
                offset,
                len(entries),
                len(fresh),
                len(verdict.in_range),
                window.start.isoformat(),
                window.end.isoformat(),
            )

            for entry in verdict.in_range:
                seen += 1
                if self._process_entry(entry, stats):
                    inserted += 1

            offset += self._advance(len(entries))
            if state.stop.should_stop(len(fresh), verdict):
                logger.info("Stop condition reached after page ending at offset %d.", offset)
                done = True
                break

        stats.elapsed_ms = int((self._clock() - started) * 1000.0)
        stats.details_fetched = self.enricher.fetched - details_before
        result = ChunkResult(seen=seen, inserted=inserted, cursor=offset, done=done, stats=stats)
        logger.info(
            "Chunk summary: %s",
            json.dumps({"from": window.start.isoformat(), "to": window.end.isoformat(), **result.to_dict(), **stats.to_dict()}),
        )
        return result

    def run_to_completion(self, start: date, end: date, *, cursor: int = 0) -> ChunkResult:
        """Repeat unbudgeted chunks until the crawl is done; stats are summed."""
        state = CrawlState(make_window(start, end))
        total = ChunkStats()
        seen = inserted = 0
        while True:
            chunk = self.run_chunk(start, end, cursor=cursor, state=state)
            total.add(chunk.stats)
            seen += chunk.seen
            inserted += chunk.inserted
            if chunk.done:
                return ChunkResult(seen=seen, inserted=inserted, cursor=chunk.cursor, done=True, stats=total)
            if chunk.stats.pages_fetched == 0:
                logger.warning("Chunk at offset %d made no progress; giving up.", cursor)
                return ChunkResult(seen=seen, inserted=inserted, cursor=chunk.cursor, done=False, stats=total)
            cursor = chunk.cursor

    def _advance(self, rows_on_page: int) -> int:
        if self.settings.page_step:
            return self.settings.page_step
        return max(1, rows_on_page)

    def _process_entry(self, entry: RawEntry, stats: ChunkStats) -> bool:
        """Resolve one in-range entry. Returns True when a new edition was created."""
        self.enricher.enrich(entry)
        if not entry.name:
            stats.skipped_missing_name += 1
            logger.warning(
                "Skipping entry without name (date=%s, city=%s, detail=%s)",
                entry.date.isoformat(),
                entry.city,
                entry.detail_url,
            )
            return False

        try:
            event = self.resolver.ensure_event(entry.name, entry.city)
            edition = self.resolver.ensure_edition(event.id, entry.year, entry.date, entry.date, entry.distances)
        except Exception as exc:
            logger.error(
                "Failed to upsert entry (name=%s, city=%s, date=%s): %s",
                entry.name,
                entry.city,
                entry.date.isoformat(),
                exc,
            )
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError(f"Failed to upsert {entry.name!r} on {entry.date.isoformat()}") from exc

        if event.created:
            stats.events_created += 1
        else:
            stats.events_matched += 1
        if event.updated:
            stats.events_updated += 1

        if edition.action == INSERTED:
            stats.editions_inserted += 1
            return True
        if edition.action == UPDATED:
            stats.editions_updated += 1
        else:
            stats.editions_skipped += 1
        return False
