"""Idempotent Event / EventEdition upserts.

Both operations only fill nulls or union list fields, which is what lets
overlapping or repeated crawl chunks converge on the same store state.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .distances import merge_distances
from .errors import EditionConflictError, PersistenceError, SlugConflictError
from .text import clean_text, slugify

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_CODE = "PL"
DEFAULT_SPORT_TYPE = "running"
MAX_SLUG_ATTEMPTS = 50

INSERTED = "inserted"
UPDATED = "updated"
SKIPPED = "skipped"


class EventStore(Protocol):
    def find_event(self, name: str, city: Optional[str]) -> Optional[Dict[str, Any]]: ...

    def slug_exists(self, slug: str) -> bool: ...

    def insert_event(
        self, *, name: str, slug: str, city: Optional[str], country_code: str, sport_type: str
    ) -> Dict[str, Any]: ...

    def fill_event(
        self,
        event_id: str,
        *,
        city: Optional[str] = None,
        country_code: Optional[str] = None,
        sport_type: Optional[str] = None,
    ) -> Dict[str, Any]: ...

    def find_edition(self, event_id: str, year: int) -> Optional[Dict[str, Any]]: ...

    def insert_edition(
        self,
        *,
        event_id: str,
        year: int,
        start_date: Optional[str],
        end_date: Optional[str],
        distances: List[str],
    ) -> Dict[str, Any]: ...

    def fill_edition(
        self,
        edition_id: str,
        *,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        distances: Optional[List[str]] = None,
    ) -> Dict[str, Any]: ...


@dataclass(frozen=True)
class EnsureEventResult:
    id: str
    slug: str
    created: bool
    updated: bool = False


@dataclass(frozen=True)
class EnsureEditionResult:
    id: str
    action: str


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def slug_candidates(base: str):
    yield base
    for suffix in range(2, MAX_SLUG_ATTEMPTS + 1):
        yield f"{base}-{suffix}"


class EntityResolver:
    def __init__(
        self,
        store: EventStore,
        *,
        country_code: str = DEFAULT_COUNTRY_CODE,
        sport_type: str = DEFAULT_SPORT_TYPE,
    ) -> None:
        self.store = store
        self.country_code = country_code
        self.sport_type = sport_type
        # (lower name, lower city) -> (id, slug); private to one crawl invocation
        self._event_ids: Dict[Tuple[str, str], Tuple[str, str]] = {}

    def ensure_event(self, name: str, city: Optional[str]) -> EnsureEventResult:
        name = clean_text(name)
        city = clean_text(city) or None
        if not name:
            raise ValueError("event name is required")

        key = (name.lower(), (city or "").lower())
        cached = self._event_ids.get(key)
        if cached:
            return EnsureEventResult(id=cached[0], slug=cached[1], created=False)

        existing = self.store.find_event(name, city)
        if existing:
            result = self._merge_event(existing, city)
        else:
            result = self._create_event(name, city)
        self._event_ids[key] = (result.id, result.slug)
        return result

    def _merge_event(self, existing: Dict[str, Any], city: Optional[str]) -> EnsureEventResult:
        missing = {
            "city": city if not existing.get("city") else None,
            "country_code": self.country_code if not existing.get("country_code") else None,
            "sport_type": self.sport_type if not existing.get("sport_type") else None,
        }
        updates = {k: v for k, v in missing.items() if v}
        if updates:
            self.store.fill_event(existing["id"], **updates)
            logger.debug("filled %s on event %s", ", ".join(sorted(updates)), existing["slug"])
        return EnsureEventResult(id=existing["id"], slug=existing["slug"], created=False, updated=bool(updates))

    def _create_event(self, name: str, city: Optional[str]) -> EnsureEventResult:
        base = slugify(name, city)
        if not base:
            raise PersistenceError(f"cannot build a slug for {name!r}")
        previous = None
        for candidate in slug_candidates(base):
            if previous is not None:
                logger.info("slug collision for %s -> using %s", previous, candidate)
            previous = candidate
            if self.store.slug_exists(candidate):
                continue
            try:
                row = self.store.insert_event(
                    name=name,
                    slug=candidate,
                    city=city,
                    country_code=self.country_code,
                    sport_type=self.sport_type,
                )
            except SlugConflictError:
                # another writer took the slug between the check and the insert
                continue
            return EnsureEventResult(id=row["id"], slug=row["slug"], created=True)
        raise PersistenceError(f"no free slug for {name!r} after {MAX_SLUG_ATTEMPTS} attempts")

    def ensure_edition(
        self,
        event_id: str,
        year: int,
        start_date: Optional[date],
        end_date: Optional[date],
        distances: Optional[List[str]],
    ) -> EnsureEditionResult:
        labels = merge_distances(distances)
        existing = self.store.find_edition(event_id, year)
        if existing is None:
            try:
                row = self.store.insert_edition(
                    event_id=event_id,
                    year=year,
                    start_date=_iso(start_date),
                    end_date=_iso(end_date),
                    distances=labels,
                )
                return EnsureEditionResult(id=row["id"], action=INSERTED)
            except EditionConflictError:
                existing = self.store.find_edition(event_id, year)
                if existing is None:
                    raise
        return self._merge_edition(existing, start_date, end_date, labels)

    def _merge_edition(
        self,
        existing: Dict[str, Any],
        start_date: Optional[date],
        end_date: Optional[date],
        labels: List[str],
    ) -> EnsureEditionResult:
        current = list(existing.get("distances") or [])
        merged = merge_distances(current, labels)
        fill_start = _iso(start_date) if not existing.get("start_date") else None
        fill_end = _iso(end_date) if not existing.get("end_date") else None
        if not fill_start and not fill_end and merged == current:
            return EnsureEditionResult(id=existing["id"], action=SKIPPED)
        self.store.fill_edition(existing["id"], start_date=fill_start, end_date=fill_end, distances=merged)
        return EnsureEditionResult(id=existing["id"], action=UPDATED)
