from __future__ import annotations

import re
from datetime import date
from typing import Optional

from slugify import slugify as _slugify


_WS_RE = re.compile(r"\s+")

# YYYY.MM.DD (also - and /) or DD.MM.YYYY
DATE_PATTERN = re.compile(
    r"(?<!\d)(?:(?P<y1>\d{4})[./-](?P<m1>\d{1,2})[./-](?P<d1>\d{1,2})"
    r"|(?P<d2>\d{1,2})[./-](?P<m2>\d{1,2})[./-](?P<y2>\d{4}))(?!\d)"
)


def clean_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return _WS_RE.sub(" ", value.replace("\u00a0", " ")).strip()


def extract_date(text: Optional[str]) -> Optional[date]:
    """Return the first valid calendar date mentioned in ``text``."""
    if not text:
        return None
    for match in DATE_PATTERN.finditer(text):
        if match.group("y1"):
            y, m, d = match.group("y1"), match.group("m1"), match.group("d1")
        else:
            y, m, d = match.group("y2"), match.group("m2"), match.group("d2")
        try:
            return date(int(y), int(m), int(d))
        except ValueError:
            continue
    return None


def has_date(text: Optional[str]) -> bool:
    return extract_date(text) is not None


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse a caller-supplied date: ISO ``YYYY-MM-DD`` or any form ``extract_date`` accepts."""
    text = clean_text(value)
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    parsed = extract_date(text)
    if parsed is None or DATE_PATTERN.fullmatch(text) is None:
        return None
    return parsed


def sanitize_city(raw: Optional[str]) -> Optional[str]:
    """Reduce a location cell like ``"Kraków (woj. małopolskie), Polska"`` to ``"Kraków"``."""
    if not raw:
        return None
    city = clean_text(raw)
    city = re.sub(r"\(.*?\)", "", city)
    city = re.sub(r"woj\.[^,]*", "", city, flags=re.IGNORECASE)
    city = re.sub(r"pow\.[^,]*", "", city, flags=re.IGNORECASE)
    city = re.sub(r"gmina[^,]*", "", city, flags=re.IGNORECASE)
    city = re.sub(r",?\s*Polska$", "", city.strip(), flags=re.IGNORECASE)
    city = city.split(",")[0].strip()
    city = re.sub(r"\s+-\s+", "-", city)
    city = city.strip(" -.;:")
    if not city or re.search(r"\d", city):
        return None
    return city


def transliterate(text: str) -> str:
    """Fold diacritics to ASCII, e.g. ``"Łódź"`` -> ``"Lodz"``."""
    return _slugify(text or "", separator=" ", lowercase=False)


def slugify(*parts: Optional[str]) -> str:
    return _slugify(" ".join(p for p in parts if p))
