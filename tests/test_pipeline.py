from datetime import date

from app.services.crawl.base import RawEntry
from app.services.crawl.pipeline import (
    AFTER,
    BEFORE,
    IN_RANGE,
    DateRange,
    SignatureDeduplicator,
    StopDetector,
)


def _entry(day: date, name: str = "Bieg", city: str = "Kraków") -> RawEntry:
    return RawEntry(date=day, name=name, city=city)


def test_dedup_ignores_case_and_whitespace():
    dedup = SignatureDeduplicator()
    rows = [
        _entry(date(2025, 5, 3), "Bieg Wiosenny", "Kraków"),
        _entry(date(2025, 5, 3), "  bieg   WIOSENNY ", "KRAKÓW"),
        _entry(date(2025, 5, 4), "Bieg Wiosenny", "Kraków"),
    ]
    fresh = dedup.filter(rows)
    assert len(fresh) == 2
    assert len(dedup) == 2
    assert dedup.filter(rows) == []


def test_date_range_bounds_are_inclusive():
    window = DateRange(date(2025, 5, 1), date(2025, 5, 31))
    assert window.classify(date(2025, 5, 1)) == IN_RANGE
    assert window.classify(date(2025, 5, 31)) == IN_RANGE
    assert window.classify(date(2025, 4, 30)) == BEFORE
    assert window.classify(date(2025, 6, 1)) == AFTER
    assert date(2025, 5, 15) in window
    assert date(2025, 6, 1) not in window


def test_stop_on_page_without_new_entries():
    detector = StopDetector(DateRange(date(2025, 5, 1), date(2025, 5, 31)))
    verdict = detector.classify_page([])
    assert detector.should_stop(0, verdict) is True


def test_before_range_page_stops_only_after_in_range_page():
    detector = StopDetector(DateRange(date(2025, 5, 1), date(2025, 5, 31)))

    early = detector.classify_page([_entry(date(2025, 4, 1))])
    assert early.all_before
    assert detector.should_stop(1, early) is False
    assert detector.saw_before_range is True

    hit = detector.classify_page([_entry(date(2025, 5, 2)), _entry(date(2025, 6, 2), "Inny")])
    assert [e.date for e in hit.in_range] == [date(2025, 5, 2)]
    assert hit.after == 1
    assert detector.should_stop(2, hit) is False

    past = detector.classify_page([_entry(date(2025, 4, 20)), _entry(date(2025, 4, 10), "Inny")])
    assert detector.should_stop(2, past) is True


def test_mixed_page_does_not_stop():
    detector = StopDetector(DateRange(date(2025, 5, 1), date(2025, 5, 31)))
    detector.should_stop(1, detector.classify_page([_entry(date(2025, 5, 2))]))
    mixed = detector.classify_page([_entry(date(2025, 5, 1), "A"), _entry(date(2025, 4, 30), "B")])
    assert not mixed.all_before
    assert detector.should_stop(2, mixed) is False
