"""Map free-text distance mentions to canonical labels.

Labels are ``Maraton``, ``Półmaraton``, ``Ultramaraton`` or ``"<N> km"``.
Precedence:

1. an "ultra" token adds ``Ultramaraton``;
2. a half-marathon token adds ``Półmaraton``;
3. every ``<N> km`` mention maps to ``Maraton``/``Półmaraton`` inside the
   tolerance windows, otherwise to ``"<N> km"``. When rule 1 fired, mentions
   longer than a marathon belong to the ultra and are not emitted separately;
4. with no numeric mention at all, a bare ``maraton``/``marathon`` word adds
   ``Maraton``.
"""
from __future__ import annotations

import re
from typing import Iterable, List, Optional

from .text import clean_text

MARATHON = "Maraton"
HALF_MARATHON = "Półmaraton"
ULTRA_MARATHON = "Ultramaraton"

MARATHON_KM = 42.195
HALF_MARATHON_KM = 21.0975
MARATHON_TOLERANCE = 0.3
HALF_TOLERANCE = 0.2

_ULTRA_RE = re.compile(r"(?<![a-ząćęłńóśźż])ultra(?:[\s-]*(?:maraton|marathon))?", re.IGNORECASE)
_HALF_RE = re.compile(r"(?:p[oó][łl][\s-]*maraton|half[\s-]*marathon)\w*", re.IGNORECASE)
_MARATHON_WORD_RE = re.compile(r"(?<![a-ząćęłńóśźż])(?:maraton|marathon)", re.IGNORECASE)
_KM_RE = re.compile(r"(?<![\d.,])(\d{1,3}(?:[.,]\d+)?)\s*(?:km|kilometr\w*)\b", re.IGNORECASE)


def format_km(value: float) -> str:
    """``10.0`` -> ``"10"``, ``21.50`` -> ``"21.5"``."""
    text = f"{round(value, 3):.3f}".rstrip("0").rstrip(".")
    return text or "0"


def label_for_km(value: float) -> Optional[str]:
    if value <= 0:
        return None
    if abs(value - MARATHON_KM) <= MARATHON_TOLERANCE:
        return MARATHON
    if abs(value - HALF_MARATHON_KM) <= HALF_TOLERANCE:
        return HALF_MARATHON
    return f"{format_km(value)} km"


def _add(out: List[str], label: Optional[str]) -> None:
    if label and label not in out:
        out.append(label)


def normalize_distances(text: Optional[str]) -> List[str]:
    normalized = clean_text(text)
    if not normalized:
        return []

    labels: List[str] = []
    is_ultra = bool(_ULTRA_RE.search(normalized))
    if is_ultra:
        _add(labels, ULTRA_MARATHON)
    if _HALF_RE.search(normalized):
        _add(labels, HALF_MARATHON)

    numeric_seen = False
    for match in _KM_RE.finditer(normalized):
        try:
            value = float(match.group(1).replace(",", "."))
        except ValueError:
            continue
        numeric_seen = True
        if is_ultra and value > MARATHON_KM + MARATHON_TOLERANCE:
            continue
        _add(labels, label_for_km(value))

    if not numeric_seen:
        stripped = _HALF_RE.sub(" ", _ULTRA_RE.sub(" ", normalized))
        if _MARATHON_WORD_RE.search(stripped):
            _add(labels, MARATHON)

    return labels


def merge_distances(*groups: Optional[Iterable[str]]) -> List[str]:
    """Union label lists, keeping first-seen order."""
    merged: List[str] = []
    for group in groups:
        for label in group or []:
            _add(merged, label)
    return merged
