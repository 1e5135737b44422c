from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence
from urllib.parse import urljoin

from selectolax.lexbor import LexborHTMLParser, LexborNode

from ..base import ExtractionStrategy, RawEntry
from ..distances import normalize_distances
from ..text import clean_text, extract_date, has_date, sanitize_city

SITE_ORIGIN = "https://www.maratonypolskie.pl/"

CITY_CLASSES = {"kal_miasto", "miasto"}
NAME_CLASSES = {"kal_nazwa", "nazwa"}
DISTANCE_CLASSES = {"kal_dyst", "dystans"}

BLOCK_TAGS = {"div", "li", "p"}

_DISTANCE_HINT_RE = re.compile(r"km|maraton", re.IGNORECASE)
_ADMIN_HINT_RE = re.compile(r"miasto|woj\.|pow\.|polska", re.IGNORECASE)
_ADMIN_CODE_RE = re.compile(r"\bPL\b")
_SEGMENT_SPLIT_RE = re.compile(r"[|\n]")
# "5 km, 10 km" style cells that carry no name
_DISTANCE_ONLY_RE = re.compile(r"[\d\s.,/+;&-]*(?:km[\d\s.,/+;&-]*)+", re.IGNORECASE)


def build_page_url(base_url: str, offset: int) -> str:
    """List page URL for a row offset; the site pages with ``starty``."""
    if offset <= 0:
        return base_url
    joiner = "&" if "?" in base_url else "?"
    return f"{base_url}{joiner}starty={offset}"


def _classes(node: LexborNode) -> set:
    return set((node.attributes.get("class") or "").split())


def _node_text(node: Optional[LexborNode]) -> str:
    if node is None:
        return ""
    return clean_text(node.text(separator=" "))


def _resolve_href(node: LexborNode, base_url: str) -> Optional[str]:
    for anchor in node.css("a"):
        href = clean_text(anchor.attributes.get("href"))
        if not href or href.startswith("#") or href.lower().startswith("javascript:"):
            continue
        return urljoin(base_url, href)
    return None


def _first_anchor_text(node: LexborNode) -> str:
    for anchor in node.css("a"):
        text = _node_text(anchor)
        if text:
            return text
    return ""


def _inside_row(node: LexborNode) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.tag == "tr":
            return True
        parent = parent.parent
    return False


def _descendant_blocks(node: LexborNode) -> Iterator[LexborNode]:
    for child in node.iter():
        if child.tag in BLOCK_TAGS:
            yield child
        yield from _descendant_blocks(child)


def _with_distances(entry: RawEntry) -> RawEntry:
    entry.distances = normalize_distances(entry.distances_text)
    if not entry.distances:
        entry.distances = normalize_distances(entry.raw_text)
    return entry


class StructuredRowStrategy(ExtractionStrategy):
    """Calendar rendered as a table: one ``<tr>`` per race."""

    name = "table_rows"

    def extract(self, doc: LexborHTMLParser, *, base_url: str) -> List[RawEntry]:
        entries: List[RawEntry] = []
        for row in doc.css("tr"):
            if row.css_first("table") is not None:
                # layout row wrapping a nested calendar table
                continue
            entry = self.parse_row(row, base_url=base_url)
            if entry is not None:
                entries.append(entry)
        return entries

    def parse_row(self, row: LexborNode, *, base_url: str) -> Optional[RawEntry]:
        cells = [child for child in row.iter() if child.tag in ("td", "th")]
        if not cells:
            return None
        texts = [_node_text(cell) for cell in cells]
        joined = " | ".join(t for t in texts if t)
        event_date = extract_date(joined)
        if event_date is None:
            return None
        date_index = next((i for i, text in enumerate(texts) if has_date(text)), -1)

        city = self._pick_city(cells, texts, date_index)
        name = self._pick_name(row, cells, texts, date_index)
        distances_text = self._pick_distances_text(cells, texts, date_index)

        return _with_distances(
            RawEntry(
                date=event_date,
                name=name,
                city=city,
                distances_text=distances_text,
                detail_url=_resolve_href(row, base_url),
                raw_text=joined,
            )
        )

    @staticmethod
    def _hinted(cells: Sequence[LexborNode], texts: Sequence[str], hints: set) -> str:
        for cell, text in zip(cells, texts):
            if text and _classes(cell) & hints:
                return text
        return ""

    def _pick_city(self, cells, texts, date_index: int) -> str:
        hinted = self._hinted(cells, texts, CITY_CLASSES)
        if hinted:
            return sanitize_city(hinted) or ""
        if 0 <= date_index < len(texts) - 1:
            return sanitize_city(texts[date_index + 1]) or ""
        return ""

    def _pick_name(self, row: LexborNode, cells, texts, date_index: int) -> str:
        hinted = self._hinted(cells, texts, NAME_CLASSES)
        if hinted:
            return hinted
        if 0 <= date_index < len(texts) - 2:
            candidate = texts[date_index + 2]
            if candidate and not has_date(candidate) and not _DISTANCE_ONLY_RE.fullmatch(candidate):
                return candidate
        anchor_text = _first_anchor_text(row)
        if anchor_text and not has_date(anchor_text):
            return anchor_text
        for index, text in enumerate(texts):
            if not text or has_date(text) or index == date_index + 1:
                continue
            if _DISTANCE_ONLY_RE.fullmatch(text):
                continue
            return text
        return ""

    def _pick_distances_text(self, cells, texts, date_index: int) -> str:
        hinted = self._hinted(cells, texts, DISTANCE_CLASSES)
        if hinted:
            return hinted
        if date_index < 0:
            return ""
        return " ".join(t for t in texts[date_index + 2:] if t)


class LooseBlockStrategy(ExtractionStrategy):
    """Calendar rendered as list items, paragraphs or divs."""

    name = "loose_blocks"

    def extract(self, doc: LexborHTMLParser, *, base_url: str) -> List[RawEntry]:
        entries: List[RawEntry] = []
        for node in doc.css("li, p, div"):
            if _inside_row(node):
                continue
            text = _node_text(node)
            if not has_date(text):
                continue
            # innermost dated block only
            if any(has_date(_node_text(child)) for child in _descendant_blocks(node)):
                continue
            entry = self.parse_block(node, base_url=base_url)
            if entry is not None:
                entries.append(entry)
        return entries

    @staticmethod
    def _segments(node: LexborNode) -> List[str]:
        parts: List[str] = []
        for child in node.iter(include_text=True):
            raw = child.text(separator=" ") if child.tag != "br" else "\n"
            parts.extend(_SEGMENT_SPLIT_RE.split(raw or ""))
        return [clean_text(p) for p in parts if clean_text(p)]

    def parse_block(self, node: LexborNode, *, base_url: str) -> Optional[RawEntry]:
        text = _node_text(node)
        event_date = extract_date(text)
        if event_date is None:
            return None
        segments = self._segments(node)

        name = _first_anchor_text(node)
        if has_date(name):
            name = ""
        city = ""
        for segment in segments:
            if has_date(segment):
                continue
            if not name and not _DISTANCE_HINT_RE.search(segment):
                name = segment
                continue
            if not city and (_ADMIN_HINT_RE.search(segment) or _ADMIN_CODE_RE.search(segment)):
                city = sanitize_city(segment.split(":")[-1]) or ""

        return _with_distances(
            RawEntry(
                date=event_date,
                name=name,
                city=city,
                distances_text=text,
                detail_url=_resolve_href(node, base_url),
                raw_text=text,
            )
        )


DEFAULT_STRATEGIES: Sequence[ExtractionStrategy] = (StructuredRowStrategy(), LooseBlockStrategy())


def extract_entries(
    html: str,
    *,
    base_url: str = SITE_ORIGIN,
    strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES,
) -> List[RawEntry]:
    """Parse one list page; the first strategy returning entries wins.

    Entries come back sorted by date (stable for same-day entries).
    """
    if not html:
        return []
    doc = LexborHTMLParser(html)
    for strategy in strategies:
        entries = strategy.extract(doc, base_url=base_url)
        if entries:
            return sorted(entries, key=lambda e: e.date)
    return []


@dataclass
class DetailInfo:
    name: Optional[str] = None
    city: Optional[str] = None
    distances: List[str] = field(default_factory=list)


_NAME_SELECTORS = ("h1", "h2", ".tytul", ".tytul1", "title")
_CONTENT_SELECTORS = ("#tresc", ".content", ".opis", "main", "body")
_CITY_LABELS = ("Miejsce", "Miasto")
_CITY_LINE_RE = re.compile(r"(?:Miejsce|Miasto)\s*:?\s*([^\n]+)", re.IGNORECASE)


def _next_cell(node: LexborNode) -> Optional[LexborNode]:
    sibling = node.next
    while sibling is not None and sibling.tag != "td":
        sibling = sibling.next
    return sibling


def _city_candidates(doc: LexborHTMLParser) -> Iterator[str]:
    for selector in ('[class*="miejsce"]', '[class*="miasto"]'):
        yield _node_text(doc.css_first(selector))
    for label in _CITY_LABELS:
        for cell in doc.css("td"):
            if _node_text(cell).startswith(label):
                yield _node_text(_next_cell(cell))
                break
    for label in _CITY_LABELS:
        for para in doc.css("p"):
            text = _node_text(para)
            if label in text:
                yield text
                break


def parse_detail_page(html: str) -> DetailInfo:
    doc = LexborHTMLParser(html or "")

    name = None
    for selector in _NAME_SELECTORS:
        candidate = _node_text(doc.css_first(selector))
        if len(candidate) > 3:
            name = candidate
            break

    content_node = None
    for selector in _CONTENT_SELECTORS:
        content_node = doc.css_first(selector)
        if content_node is not None and _node_text(content_node):
            break
    content_text = _node_text(content_node)

    city = None
    for candidate in _city_candidates(doc):
        if not candidate:
            continue
        city = sanitize_city(candidate.split(":")[-1])
        if city:
            break
    if not city and content_node is not None:
        lines = "\n".join(clean_text(line) for line in content_node.text(separator="\n").splitlines())
        match = _CITY_LINE_RE.search(lines)
        if match:
            city = sanitize_city(match.group(1))

    return DetailInfo(name=name, city=city, distances=normalize_distances(content_text))
