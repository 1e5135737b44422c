from typing import Any, Callable, Dict, List, Optional

from neo4j.exceptions import ConstraintError

from app.db.neo4j_connector import run_cypher
from app.services.crawl.errors import EditionConflictError, PersistenceError, SlugConflictError

_EVENT_FIELDS = "e {.id, .name, .slug, .city, .country_code, .sport_type} AS event"
_EDITION_FIELDS = "ed {.id, .event_id, .year, .start_date, .end_date, .distances} AS edition"

CONSTRAINTS = (
    "CREATE CONSTRAINT event_id_unique IF NOT EXISTS FOR (e:Event) REQUIRE e.id IS UNIQUE",
    "CREATE CONSTRAINT event_slug_unique IF NOT EXISTS FOR (e:Event) REQUIRE e.slug IS UNIQUE",
    "CREATE CONSTRAINT edition_event_year_unique IF NOT EXISTS "
    "FOR (ed:EventEdition) REQUIRE (ed.event_id, ed.year) IS UNIQUE",
)


def ensure_constraints(run: Callable[..., List[Dict[str, Any]]] = run_cypher) -> int:
    """Create the uniqueness constraints the crawler relies on. Safe to call repeatedly."""
    for statement in CONSTRAINTS:
        run(statement)
    return len(CONSTRAINTS)


class Neo4jEventStore:
    """Event / EventEdition persistence on top of run_cypher.

    Updates are written with coalesce() so a concurrent writer can only fill
    nulls, never overwrite a value another invocation already set.
    """

    def __init__(self, run: Callable[..., List[Dict[str, Any]]] = run_cypher) -> None:
        self._run = run

    # --- Events ---
    def find_event(self, name: str, city: Optional[str]) -> Optional[Dict[str, Any]]:
        """Case-insensitive (name, city) lookup.

        With a city, an event of the same name still lacking a city also
        matches (so the city gets filled); exact city matches win. Without a
        city, any event of the same name matches; city-less ones win.
        """
        q = (
            "MATCH (e:Event) "
            "WHERE toLower(e.name) = toLower($name) "
            "  AND ($city IS NULL OR e.city IS NULL OR toLower(e.city) = toLower($city)) "
            f"RETURN {_EVENT_FIELDS} "
            "ORDER BY CASE WHEN ($city IS NULL) = (e.city IS NULL) THEN 0 ELSE 1 END, e.slug "
            "LIMIT 1"
        )
        rows = self._run(q, {"name": name, "city": city})
        return rows[0]["event"] if rows else None

    def get_event_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        rows = self._run(f"MATCH (e:Event {{slug: $slug}}) RETURN {_EVENT_FIELDS}", {"slug": slug})
        return rows[0]["event"] if rows else None

    def slug_exists(self, slug: str) -> bool:
        return self.get_event_by_slug(slug) is not None

    def insert_event(
        self, *, name: str, slug: str, city: Optional[str], country_code: str, sport_type: str
    ) -> Dict[str, Any]:
        q = (
            "CREATE (e:Event {id: randomUUID(), name: $name, slug: $slug, city: $city, "
            "country_code: $country_code, sport_type: $sport_type}) "
            f"RETURN {_EVENT_FIELDS}"
        )
        params = {"name": name, "slug": slug, "city": city, "country_code": country_code, "sport_type": sport_type}
        try:
            rows = self._run(q, params)
        except ConstraintError as exc:
            raise SlugConflictError(slug) from exc
        return rows[0]["event"]

    def fill_event(
        self,
        event_id: str,
        *,
        city: Optional[str] = None,
        country_code: Optional[str] = None,
        sport_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        q = (
            "MATCH (e:Event {id: $id}) "
            "SET e.city = coalesce(e.city, $city), "
            "    e.country_code = coalesce(e.country_code, $country_code), "
            "    e.sport_type = coalesce(e.sport_type, $sport_type) "
            f"RETURN {_EVENT_FIELDS}"
        )
        rows = self._run(q, {"id": event_id, "city": city, "country_code": country_code, "sport_type": sport_type})
        if not rows:
            raise PersistenceError(f"event {event_id} disappeared during update")
        return rows[0]["event"]

    # --- Editions ---
    def find_edition(self, event_id: str, year: int) -> Optional[Dict[str, Any]]:
        q = f"MATCH (ed:EventEdition {{event_id: $event_id, year: $year}}) RETURN {_EDITION_FIELDS}"
        rows = self._run(q, {"event_id": event_id, "year": int(year)})
        return rows[0]["edition"] if rows else None

    def insert_edition(
        self,
        *,
        event_id: str,
        year: int,
        start_date: Optional[str],
        end_date: Optional[str],
        distances: List[str],
    ) -> Dict[str, Any]:
        q = (
            "MATCH (e:Event {id: $event_id}) "
            "CREATE (e)-[:HAS_EDITION]->(ed:EventEdition {id: randomUUID(), event_id: $event_id, year: $year, "
            "start_date: $start_date, end_date: $end_date, distances: $distances}) "
            f"RETURN {_EDITION_FIELDS}"
        )
        params = {
            "event_id": event_id,
            "year": int(year),
            "start_date": start_date,
            "end_date": end_date,
            "distances": list(distances),
        }
        try:
            rows = self._run(q, params)
        except ConstraintError as exc:
            raise EditionConflictError(f"edition {event_id}/{year} already exists") from exc
        if not rows:
            raise PersistenceError(f"event {event_id} not found for edition {year}")
        return rows[0]["edition"]

    def fill_edition(
        self,
        edition_id: str,
        *,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        distances: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        q = (
            "MATCH (ed:EventEdition {id: $id}) "
            "SET ed.start_date = coalesce(ed.start_date, $start_date), "
            "    ed.end_date = coalesce(ed.end_date, $end_date), "
            "    ed.distances = coalesce(ed.distances, []) "
            "        + [d IN $distances WHERE NOT d IN coalesce(ed.distances, [])] "
            f"RETURN {_EDITION_FIELDS}"
        )
        params = {"id": edition_id, "start_date": start_date, "end_date": end_date, "distances": list(distances or [])}
        rows = self._run(q, params)
        if not rows:
            raise PersistenceError(f"edition {edition_id} disappeared during update")
        return rows[0]["edition"]

    # --- Diagnostics ---
    def counts(self) -> Dict[str, int]:
        rows = self._run(
            "OPTIONAL MATCH (e:Event) WITH count(e) AS events "
            "OPTIONAL MATCH (ed:EventEdition) RETURN events, count(ed) AS editions"
        )
        row = rows[0] if rows else {}
        return {"events": int(row.get("events") or 0), "editions": int(row.get("editions") or 0)}
