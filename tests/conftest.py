import itertools
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest

from app.config import CrawlerSettings
from app.services.crawl.errors import EditionConflictError, PersistenceError, SlugConflictError

LIST_URL = "https://calendar.test/mp_index.php?action=1&dzial=3"


def read_fixture(name: str) -> str:
    p = Path(__file__).parent / "fixtures" / name
    return p.read_text(encoding="utf-8")


def page_url(offset: int) -> str:
    return LIST_URL if offset <= 0 else f"{LIST_URL}&starty={offset}"


class FakeEventStore:
    """In-memory EventStore with the same matching and uniqueness rules as Neo4j."""

    def __init__(self) -> None:
        self.events: Dict[str, Dict[str, Any]] = {}
        self.editions: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def find_event(self, name: str, city: Optional[str]) -> Optional[Dict[str, Any]]:
        matches = []
        for ev in self.events.values():
            if ev["name"].lower() != name.lower():
                continue
            if city is None or ev["city"] is None or ev["city"].lower() == city.lower():
                matches.append(ev)
        # same-kind matches first: null city for a null lookup, exact city otherwise
        matches.sort(key=lambda e: ((city is None) != (e["city"] is None), e["slug"]))
        return dict(matches[0]) if matches else None

    def get_event_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        for ev in self.events.values():
            if ev["slug"] == slug:
                return dict(ev)
        return None

    def slug_exists(self, slug: str) -> bool:
        return self.get_event_by_slug(slug) is not None

    def insert_event(self, *, name, slug, city, country_code, sport_type) -> Dict[str, Any]:
        if any(ev["slug"] == slug for ev in self.events.values()):
            raise SlugConflictError(slug)
        ev = {
            "id": self._next_id("ev"),
            "name": name,
            "slug": slug,
            "city": city,
            "country_code": country_code,
            "sport_type": sport_type,
        }
        self.events[ev["id"]] = ev
        return dict(ev)

    def fill_event(self, event_id, *, city=None, country_code=None, sport_type=None) -> Dict[str, Any]:
        ev = self.events.get(event_id)
        if ev is None:
            raise PersistenceError(f"event {event_id} disappeared during update")
        for key, value in (("city", city), ("country_code", country_code), ("sport_type", sport_type)):
            if ev[key] is None:
                ev[key] = value
        return dict(ev)

    def find_edition(self, event_id: str, year: int) -> Optional[Dict[str, Any]]:
        for ed in self.editions.values():
            if ed["event_id"] == event_id and ed["year"] == int(year):
                return dict(ed, distances=list(ed["distances"]))
        return None

    def insert_edition(self, *, event_id, year, start_date, end_date, distances) -> Dict[str, Any]:
        if event_id not in self.events:
            raise PersistenceError(f"event {event_id} not found for edition {year}")
        if any(ed["event_id"] == event_id and ed["year"] == int(year) for ed in self.editions.values()):
            raise EditionConflictError(f"edition {event_id}/{year} already exists")
        ed = {
            "id": self._next_id("ed"),
            "event_id": event_id,
            "year": int(year),
            "start_date": start_date,
            "end_date": end_date,
            "distances": list(distances),
        }
        self.editions[ed["id"]] = ed
        return dict(ed, distances=list(ed["distances"]))

    def fill_edition(self, edition_id, *, start_date=None, end_date=None, distances=None) -> Dict[str, Any]:
        ed = self.editions.get(edition_id)
        if ed is None:
            raise PersistenceError(f"edition {edition_id} disappeared during update")
        if ed["start_date"] is None:
            ed["start_date"] = start_date
        if ed["end_date"] is None:
            ed["end_date"] = end_date
        ed["distances"] = ed["distances"] + [d for d in (distances or []) if d not in ed["distances"]]
        return dict(ed, distances=list(ed["distances"]))

    def counts(self) -> Dict[str, int]:
        return {"events": len(self.events), "editions": len(self.editions)}

    def snapshot(self):
        """Store contents without generated ids, for comparing two runs."""
        slugs = {ev["id"]: ev["slug"] for ev in self.events.values()}
        events = sorted(
            (ev["slug"], ev["name"], ev["city"], ev["country_code"], ev["sport_type"]) for ev in self.events.values()
        )
        editions = sorted(
            (slugs[ed["event_id"]], ed["year"], ed["start_date"], ed["end_date"], tuple(sorted(ed["distances"])))
            for ed in self.editions.values()
        )
        return events, editions


class FakeSite:
    """Serves fixture pages through httpx.MockTransport and records requests."""

    def __init__(self, pages: Dict[str, Any], *, on_request=None) -> None:
        self.pages = pages
        self.requests: List[httpx.Request] = []
        self._on_request = on_request

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._on_request is not None:
            self._on_request(request)
        body = self.pages.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        if isinstance(body, int):
            return httpx.Response(body, text="error")
        if isinstance(body, Exception):
            raise body
        return httpx.Response(200, text=body, headers={"Content-Type": "text/html; charset=utf-8"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]


@pytest.fixture
def store() -> FakeEventStore:
    return FakeEventStore()


@pytest.fixture
def settings() -> CrawlerSettings:
    return CrawlerSettings(list_url=LIST_URL, page_delay_ms=0, detail_delay_ms=0, secret="s3cret")


@pytest.fixture
def two_page_site() -> FakeSite:
    return FakeSite(
        {
            page_url(0): read_fixture("calendar_page_1.html"),
            page_url(3): read_fixture("calendar_page_2.html"),
            page_url(5): read_fixture("calendar_empty.html"),
        }
    )
