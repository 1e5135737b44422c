from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from .text import clean_text


@dataclass
class RawEntry:
    """One calendar row as read from a list page, before resolution."""

    date: date
    name: str = ""
    city: str = ""
    distances_text: str = ""
    detail_url: Optional[str] = None
    distances: List[str] = field(default_factory=list)
    raw_text: str = ""

    @property
    def year(self) -> int:
        return self.date.year

    def signature(self) -> str:
        return f"{self.date.isoformat()}|{clean_text(self.name).lower()}|{clean_text(self.city).lower()}"

    def needs_detail(self) -> bool:
        return not self.name or not self.city or not self.distances


@dataclass
class ChunkStats:
    pages_fetched: int = 0
    pages_without_results: int = 0
    items_found: int = 0
    items_in_range: int = 0
    events_created: int = 0
    events_matched: int = 0
    events_updated: int = 0
    editions_inserted: int = 0
    editions_updated: int = 0
    editions_skipped: int = 0
    skipped_missing_name: int = 0
    details_fetched: int = 0
    elapsed_ms: int = 0
    time_exceeded: bool = False

    def add(self, other: "ChunkStats") -> None:
        for key, value in asdict(other).items():
            if isinstance(value, bool):
                setattr(self, key, getattr(self, key) or value)
            else:
                setattr(self, key, getattr(self, key) + value)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChunkResult:
    seen: int
    inserted: int
    cursor: int
    done: bool
    stats: ChunkStats = field(default_factory=ChunkStats)

    def to_dict(self) -> Dict[str, Any]:
        return {"seen": self.seen, "inserted": self.inserted, "cursor": self.cursor, "done": self.done}


class ExtractionStrategy:
    """Contract for one way of reading calendar entries out of a list page.

    Subclasses implement extract() and return entries in document order;
    an empty list means "this strategy does not apply to the page".
    """

    name: str = "base"

    def extract(self, doc: Any, *, base_url: str) -> List[RawEntry]:
        raise NotImplementedError
