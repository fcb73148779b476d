"""Domain credibility scoring with table lookup, heuristics and defaults."""

from __future__ import annotations
import logging
import threading
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple

from ..models import Lane, SourceCredibility
from ..tools.domain_norm import normalize_domain, registrable_suffix
from .table import CredibilityTable, load_table

logger = logging.getLogger(__name__)

DEFAULT_CREDIBILITY = SourceCredibility(
    lane=Lane.UNKNOWN,
    factual_reporting=0.5,
    credibility_rating=0.5,
    press_freedom=0.7,
    overall_score=0.55,
)

GOV_EDU_CREDIBILITY = SourceCredibility(
    lane=Lane.CENTER,
    factual_reporting=0.9,
    credibility_rating=0.85,
    press_freedom=0.9,
    overall_score=0.88,
)

INSTITUTIONAL_SUFFIXES = (".gov", ".gov.au", ".gov.uk", ".edu", ".edu.au", ".ac.uk", ".edu.sg")
INSTITUTIONS = ("unicef.org", "amnesty.org", "who.int", "un.org")


def is_institutional(domain: str) -> bool:
    if domain.endswith(INSTITUTIONAL_SUFFIXES):
        return True
    return any(domain == inst or domain.endswith("." + inst) for inst in INSTITUTIONS)


def credibility_label(score: float) -> str:
    if score >= 0.75:
        return "high"
    if score >= 0.5:
        return "medium"
    return "low"


class UnknownDomainLog:
    """Append-only log of domains that fell through to the default score.

    Each domain is written at most once per process as ``YYYY-MM-DD<TAB>domain``.
    Write failures are logged at debug level and otherwise ignored.
    """

    def __init__(self, path, today: Callable[[], date] = date.today):
        self.path = Path(path)
        self._today = today
        self._seen: Set[str] = set()
        self._lock = threading.Lock()

    def record(self, domain: str) -> bool:
        """Returns True the first time a domain is seen."""
        if not domain:
            return False
        with self._lock:
            if domain in self._seen:
                return False
            self._seen.add(domain)
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as fh:
                    fh.write(f"{self._today().isoformat()}\t{domain}\n")
            except OSError as e:
                logger.debug(f"Could not append unknown domain {domain} to {self.path}: {e}")
        return True

    def session_domains(self) -> List[str]:
        with self._lock:
            return sorted(self._seen)

    def read_entries(self) -> List[Tuple[str, str]]:
        """All (date, domain) pairs in the log file, oldest first."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError:
            return []
        entries = []
        for line in content.splitlines():
            if not line.strip():
                continue
            day, _, domain = line.partition("\t")
            entries.append((day, domain.strip()))
        return entries


@lru_cache(maxsize=None)
def unknown_domain_log(path: str) -> UnknownDomainLog:
    """Process-wide log instance for a path, so each domain is logged once."""
    return UnknownDomainLog(path)


class CredibilityScorer:
    """
    Total lookup of SourceCredibility for a domain.

    Order: exact table match, match on the last two labels, government and
    education heuristics, then the UNKNOWN default (which is logged).
    """

    def __init__(
        self,
        table: Optional[CredibilityTable] = None,
        table_path: Optional[str] = None,
        unknown_log: Optional[UnknownDomainLog] = None,
    ):
        self._table = table
        self._table_path = table_path
        self._load_lock = threading.Lock()
        self.unknown_log = unknown_log

    @property
    def table(self) -> CredibilityTable:
        if self._table is None:
            with self._load_lock:
                if self._table is None:
                    self._table = load_table(self._table_path) if self._table_path else CredibilityTable()
        return self._table

    def lookup(self, domain: str) -> Optional[SourceCredibility]:
        """Table entry for the domain or its last two labels."""
        clean = normalize_domain(domain or "")
        if not clean:
            return None
        table = self.table
        hit = table.get(clean)
        if hit is not None:
            return hit
        if clean.count(".") >= 2:
            return table.get(registrable_suffix(clean))
        return None

    def score_domain(self, domain: str) -> SourceCredibility:
        clean = normalize_domain(domain or "")
        found = self.lookup(clean)
        if found is not None:
            return found
        if clean and is_institutional(clean):
            return GOV_EDU_CREDIBILITY
        if self.unknown_log is not None and self.unknown_log.record(clean):
            logger.debug(f"Unknown domain for credibility lookup: {clean}")
        return DEFAULT_CREDIBILITY

    def lane_for(self, domain: str) -> Lane:
        return self.score_domain(domain).lane

    def credibility_score_for(self, domain: str) -> float:
        return self.score_domain(domain).overall_score

    def is_known(self, domain: str) -> bool:
        return self.lookup(domain) is not None


@lru_cache(maxsize=1)
def default_scorer() -> CredibilityScorer:
    """Scorer over the configured table and unknown-domains log."""
    from ..config import get_settings
    s = get_settings()
    return CredibilityScorer(table_path=s.BIAS_TABLE_PATH, unknown_log=unknown_domain_log(s.UNKNOWN_DOMAINS_LOG))
