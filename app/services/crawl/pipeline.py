from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Set

from .base import RawEntry

BEFORE = "before"
IN_RANGE = "in_range"
AFTER = "after"


class SignatureDeduplicator:
    """Drops entries whose (date, name, city) signature was already seen.

    One instance spans a whole crawl invocation, so overlapping page windows
    on the site do not produce the same entry twice.
    """

    def __init__(self) -> None:
        self._seen: Set[str] = set()

    def __len__(self) -> int:
        return len(self._seen)

    def is_new(self, entry: RawEntry) -> bool:
        key = entry.signature()
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def filter(self, entries: Iterable[RawEntry]) -> List[RawEntry]:
        return [e for e in entries if self.is_new(e)]


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def classify(self, value: date) -> str:
        if value < self.start:
            return BEFORE
        if value > self.end:
            return AFTER
        return IN_RANGE

    def __contains__(self, value: date) -> bool:
        return self.classify(value) == IN_RANGE


@dataclass
class PageVerdict:
    in_range: List[RawEntry] = field(default_factory=list)
    before: int = 0
    after: int = 0

    @property
    def total(self) -> int:
        return len(self.in_range) + self.before + self.after

    @property
    def all_before(self) -> bool:
        return self.total > 0 and self.before == self.total


class StopDetector:
    """Decides when paging through a newest-first calendar can end.

    A page made only of entries older than the window ends the crawl only
    after an in-range entry was seen on an earlier page, so a page boundary
    that is slightly out of order does not stop the crawl too early.
    """

    def __init__(self, window: DateRange) -> None:
        self.window = window
        self.saw_in_range = False
        self.saw_before_range = False

    def classify_page(self, entries: Iterable[RawEntry]) -> PageVerdict:
        verdict = PageVerdict()
        for entry in entries:
            where = self.window.classify(entry.date)
            if where == IN_RANGE:
                verdict.in_range.append(entry)
            elif where == BEFORE:
                verdict.before += 1
            else:
                verdict.after += 1
        if verdict.before:
            self.saw_before_range = True
        return verdict

    def should_stop(self, new_entries: int, verdict: PageVerdict) -> bool:
        if new_entries == 0:
            return True
        if verdict.all_before and self.saw_in_range:
            return True
        if verdict.in_range:
            self.saw_in_range = True
        return False
