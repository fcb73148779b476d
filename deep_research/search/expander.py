"""Fan search out over subquestions with per-domain diversity capping."""

from __future__ import annotations
import logging
import re
from collections import Counter
from typing import Dict, List, Optional, Set

from ..capabilities import SearchBackend
from ..config import Settings, get_settings
from ..models import SearchCandidate, SearchHit
from ..tools.domain_norm import domain_of
from ..utils.cancel import CancelToken, is_cancelled

logger = logging.getLogger(__name__)

DIVERSITY_STEP = 0.1


def query_terms(subquestion: str) -> List[str]:
    """Lowercased word terms of at least 3 characters."""
    return [t for t in re.findall(r"\w+", subquestion.lower()) if len(t) >= 3]


def term_score(terms: List[str], hit: SearchHit) -> int:
    """Count whole-word occurrences of each term in title and snippet."""
    text = f"{hit.title or ''} {hit.snippet or ''}".lower()
    score = 0
    for t in terms:
        score += len(re.findall(rf"\b{re.escape(t)}\b", text))
    return score


class SearchExpander:
    """Issue one search per subquestion and merge the ranked results."""

    def __init__(self, backend: SearchBackend, settings: Optional[Settings] = None):
        self.backend = backend
        self.settings = settings or get_settings()

    def _rank(self, sq: str, hits: List[SearchHit], committed: Dict[str, int],
              max_per_domain: int) -> List[SearchCandidate]:
        terms = query_terms(sq)
        local: Counter = Counter()
        scored: List[SearchCandidate] = []
        for hit in hits:
            if not hit.url:
                continue
            host = domain_of(hit.url)
            bonus = 0.0
            if host:
                local[host] += 1
                saturation = committed.get(host, 0) + local[host]
                bonus = max(0, max_per_domain - saturation) * DIVERSITY_STEP
            scored.append(SearchCandidate(
                title=hit.title or hit.url,
                url=hit.url,
                snippet=hit.snippet or "",
                score=round(term_score(terms, hit) + bonus, 4),
            ))
        # sort() is stable, so equal scores keep backend order
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored

    async def expand(
        self,
        subquestions: List[str],
        max_per_subq: Optional[int] = None,
        max_total: Optional[int] = None,
        max_per_domain: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
        prior: Optional[List[SearchCandidate]] = None,
    ) -> List[SearchCandidate]:
        """
        Search each subquestion and merge the results.

        Args:
            subquestions: Subquestions in processing order
            max_per_subq: Cap on candidates accepted per subquestion
            max_total: Cap on candidates overall
            max_per_domain: Cap on candidates per host across the run
            cancel: Optional token; no new search starts once it is set
            prior: Candidates accepted by earlier calls in the same run; their
                URLs are skipped and their hosts count toward the domain cap

        Returns:
            Candidates grouped by subquestion order, each URL at most once
        """
        max_per_subq = max_per_subq or self.settings.MAX_PER_SUBQ
        max_total = max_total or self.settings.MAX_TOTAL_CANDIDATES
        max_per_domain = max_per_domain or self.settings.MAX_PER_DOMAIN

        out: List[SearchCandidate] = []
        seen: Set[str] = set()
        per_domain: Dict[str, int] = {}
        for c in prior or []:
            seen.add(c.url)
            host = domain_of(c.url)
            if host:
                per_domain[host] = per_domain.get(host, 0) + 1

        for sq in subquestions:
            if len(out) >= max_total:
                break
            if is_cancelled(cancel):
                logger.info("Search expansion cancelled")
                break
            try:
                hits = await self.backend.query(sq)
            except Exception as e:
                logger.warning(f"Search failed for subquestion '{sq}': {e}")
                continue

            taken = 0
            for cand in self._rank(sq, hits, per_domain, max_per_domain):
                if taken >= max_per_subq or len(out) >= max_total:
                    break
                if cand.url in seen:
                    continue
                host = domain_of(cand.url)
                if host and per_domain.get(host, 0) >= max_per_domain:
                    continue
                seen.add(cand.url)
                if host:
                    per_domain[host] = per_domain.get(host, 0) + 1
                out.append(cand)
                taken += 1
            logger.debug(f"Subquestion '{sq}': {len(hits)} hits, {taken} accepted")

        logger.info(f"Search expansion produced {len(out)} candidates from {len(subquestions)} subquestions")
        return out
