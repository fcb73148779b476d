"""
Media bias reference table.

Rows come from a CSV with the columns

    source, country, bias, factual_reporting, press_freedom,
    media_type, popularity, mbfc_credibility_rating

and are scored as 40% factual reporting, 35% credibility rating and 25%
press freedom. The loaded table is read-only.
"""

from __future__ import annotations
import csv
import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence

from ..models import Lane, SourceCredibility

logger = logging.getLogger(__name__)

FACTUAL_WEIGHT = 0.4
CREDIBILITY_WEIGHT = 0.35
PRESS_FREEDOM_WEIGHT = 0.25

DEFAULT_FACTUAL = 0.5
DEFAULT_CREDIBILITY = 0.5
DEFAULT_PRESS_FREEDOM = 0.7

FACTUAL_SCORES: Mapping[str, float] = MappingProxyType({
    "very high": 1.0,
    "high": 0.85,
    "high (industry specific)": 0.85,
    "mostly factual": 0.7,
    "mixed": 0.5,
    "mixed (opinion heavy)": 0.45,
    "low": 0.3,
    "low (clickbait/ai)": 0.15,
    "very low": 0.1,
    "n/a (blog)": 0.3,
    "n/a": 0.3,
})

CREDIBILITY_SCORES: Mapping[str, float] = MappingProxyType({
    "high credibility": 1.0,
    "medium credibility": 0.6,
    "mixed credibility": 0.5,
    "low credibility": 0.2,
    "not rated": 0.3,
})

PRESS_FREEDOM_SCORES: Mapping[str, float] = MappingProxyType({
    "excellent": 1.0,
    "mostly free": 0.9,
    "mostly freedom": 0.9,
    "mosty free": 0.9,  # spelling found in the data
    "moderate freedom": 0.7,
    "limited freedom": 0.5,
    "minimal freedom": 0.3,
    "total oppression": 0.1,
})

_LEFT = [
    "left", "left biased", "left-center", "left center", "left-center bias",
    "left-center – pro-science", "left-center pro-science", "pro-science/left-center",
    "pro-science (left-leaning)", "left leaning pro-science", "far left", "far-left",
    "far left bias", "extreme left", "left – pseudoscience", "left pseudoscience",
    "left-pseudoscience", "left conspiracy-pseudoscience", "left-conspiracy/pseudoscience",
    "left (progressive)",
]
_RIGHT = [
    "right", "right-center", "far right", "far-right", "far right-bias", "extreme right",
    "extreme-right", "alt-right conspiracy", "extreme right conspiracy",
    "extreme right conspiracy-pseudoscience", "far right conspiracy-pseusdoscience",
    "far-right conspiracy-pseudoscience", "right – conspiracy",
    "right – conspiracy and pseudoscience", "right conspiracy", "right conspiracy – pseudoscience",
    "right conspiracy pseudoscience", "right conspiracy- pseudoscience",
    "right conspiracy/pseudoscience", "right conspiracy=pseudoscience",
    "right conspiracy-pseudoscience", "right pseudoscience", "right-conspiracy",
    "right-conspiracy/pseudoscience", "right-conspiracy-pseudoscience", "right-pseudoscience",
    "right-psuedoscience", "pseudoscience right biased",
]
_CENTER = [
    "least biased", "least biased (data focused)", "pro-business (commercial)",
    "pro-business (market)", "pro-science", "pro- science", "least – pro science",
    "least pro-science", "pro-science / least biased", "pro-crypto", "pro-crypto (mainstream)",
    "commercial",
]

BIAS_TO_LANE: Mapping[str, Lane] = MappingProxyType({
    **{b: Lane.LEFT for b in _LEFT},
    **{b: Lane.RIGHT for b in _RIGHT},
    **{b: Lane.CENTER for b in _CENTER},
})

EXCLUDED_CATEGORIES = frozenset({
    "conspiracy",
    "conspiracy and pseudoscience",
    "conspiracy- pseudoscience",
    "conspiracy/pseudoscience",
    "conspiracy-pseudoscience",
    "pseudoscience",
    "quackery pseudoscience",
    "junk news",
    "not rated",
    "unrated",
    "n/a",
})

_RATIO = re.compile(r"(\d+)/(\d+)")
_RANK = re.compile(r"rank\s*~?\s*(\d+)", re.IGNORECASE)


def parse_press_freedom(value: str) -> Optional[float]:
    """
    Score free-text press freedom rankings.

    "usa 45/180" -> 1 - 45/180, "Problematic Situation (Rank ~55)" -> 1 - 55/180,
    other text mentioning "problematic" -> 0.65, anything else -> None.
    """
    m = _RATIO.search(value)
    if m:
        rank, total = int(m.group(1)), int(m.group(2))
        if total > 0:
            return max(0.0, 1 - rank / total)
    m = _RANK.search(value)
    if m:
        return max(0.0, 1 - int(m.group(1)) / 180)
    if "problematic" in value.lower():
        return 0.65
    return None


def overall_score(factual: float, credibility: float, press_freedom: float) -> float:
    return factual * FACTUAL_WEIGHT + credibility * CREDIBILITY_WEIGHT + press_freedom * PRESS_FREEDOM_WEIGHT


def score_row(fields: Sequence[str]) -> Optional[SourceCredibility]:
    """Score one CSV row, or None when the row is dropped."""
    if len(fields) < 8:
        return None
    source = fields[0].strip().lower()
    bias = fields[2].strip().lower()
    factual = fields[3].strip().lower()
    press = fields[4].strip().lower()
    cred = fields[7].strip().lower()

    if not source or not bias:
        return None
    if "do not use" in factual:
        return None
    if bias in EXCLUDED_CATEGORIES:
        return None
    lane = BIAS_TO_LANE.get(bias)
    if lane is None:
        return None

    f = FACTUAL_SCORES.get(factual, DEFAULT_FACTUAL)
    c = CREDIBILITY_SCORES.get(cred, DEFAULT_CREDIBILITY)
    p = PRESS_FREEDOM_SCORES.get(press)
    if p is None:
        p = parse_press_freedom(press)
        if p is None:
            p = DEFAULT_PRESS_FREEDOM

    return SourceCredibility(
        lane=lane,
        factual_reporting=f,
        credibility_rating=c,
        press_freedom=p,
        overall_score=min(1.0, overall_score(f, c, p)),
    )


class CredibilityTable:
    """Immutable domain -> SourceCredibility mapping."""

    def __init__(self, entries: Optional[Mapping[str, SourceCredibility]] = None):
        self._entries: Mapping[str, SourceCredibility] = MappingProxyType(dict(entries or {}))

    def get(self, domain: str) -> Optional[SourceCredibility]:
        return self._entries.get(domain)

    def __contains__(self, domain: str) -> bool:
        return domain in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Mapping[str, SourceCredibility]:
        return self._entries

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence[str]]) -> "CredibilityTable":
        """Build from CSV rows; the first row is treated as data, not a header."""
        entries: Dict[str, SourceCredibility] = {}
        for fields in rows:
            scored = score_row(fields)
            if scored is not None:
                entries[fields[0].strip().lower()] = scored
        return cls(entries)


def load_table(path) -> CredibilityTable:
    """
    Load the bias CSV at ``path``.

    A missing or unreadable file yields an empty table and a warning; the
    scorer then relies on heuristics and defaults.
    """
    p = Path(path)
    try:
        with p.open(newline="", encoding="utf-8") as fh:
            reader = csv.reader(fh, skipinitialspace=True)
            next(reader, None)  # header
            table = CredibilityTable.from_rows(row for row in reader if row)
    except OSError as e:
        logger.warning(f"Could not read media bias table at {p}: {e}; using empty table")
        return CredibilityTable()
    except csv.Error as e:
        logger.warning(f"Malformed media bias table at {p}: {e}; using empty table")
        return CredibilityTable()
    logger.info(f"Loaded {len(table)} domains with credibility scores from {p}")
    return table
