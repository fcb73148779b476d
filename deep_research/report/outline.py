"""
Outline synthesis - cited, confidence-annotated sections from clusters and evidence.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..config import Settings, get_settings
from ..exceptions import MalformedURLError
from ..models import Cluster, EvidenceItem, Outline, OutlineSection
from ..tools.domain_norm import domain_of, host_of

logger = logging.getLogger(__name__)

EXECUTIVE_SUMMARY = "Executive Summary"
LIMITATIONS = "Limitations & Open Questions"
NO_CONSENSUS = "No strong consensus; results limited by available sources."
NO_GAPS = "No major coverage gaps detected."
RECENCY_CAVEAT = "Some sources may be outdated or secondary; verify critical claims in primary sources where possible."
MAX_MARKERS = 3


def cite(url: str, title: Optional[str] = None) -> str:
    """Inline citation marker ``[title/host]``; the title defaults to the host."""
    try:
        host = host_of(url)
    except MalformedURLError:
        return f"[{title}]" if title else "[source]"
    return f"[{title or host}/{host}]"


def multi_cite(urls: Sequence[str], titles: Optional[Sequence[Optional[str]]] = None) -> str:
    """Markers for up to three distinct URLs, space separated."""
    titles = titles or [None] * len(urls)
    seen = set()
    markers = []
    for url, title in zip(urls, titles):
        if not url or url in seen:
            continue
        seen.add(url)
        markers.append(cite(url, title))
    return " ".join(markers[:MAX_MARKERS])


def unique_domains(urls: Iterable[str]) -> int:
    return len({domain_of(u) for u in urls} - {""})


class OutlineSynthesizer:
    """Build the fixed-shape outline: summary, one section per subquestion, limitations."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def _executive_summary(self, clusters: List[Cluster], conf: Dict[str, float]) -> OutlineSection:
        w = self.settings.EXEC_NOVELTY_WEIGHT
        ranked = sorted(clusters, key=lambda c: c.coverage_score + c.novelty_score * w, reverse=True)[:2]

        bullets = []
        cited: List[str] = []
        for c in ranked:
            urls = c.doc_urls[:2]
            cited.extend(urls)
            bullets.append(f"{c.summary or 'Key theme identified'} {multi_cite(urls)}".strip())
        if not bullets:
            bullets.append(NO_CONSENSUS)

        score = min(1.0, 0.4 + min(1.0, unique_domains(cited) / 6) * 0.6)
        conf[EXECUTIVE_SUMMARY] = round(score, 2)
        return OutlineSection(title=EXECUTIVE_SUMMARY, bullets=bullets)

    def _subquestion_section(self, sq: str, clusters: List[Cluster], evidence: List[EvidenceItem],
                             evidence_diversity: int, conf: Dict[str, float]) -> OutlineSection:
        cov_w = self.settings.SECTION_COVERAGE_WEIGHT
        nov_w = self.settings.SECTION_NOVELTY_WEIGHT
        ranked = sorted(
            clusters,
            key=lambda c: c.subquestion_scores.get(sq, 0.0) + c.coverage_score * cov_w + c.novelty_score * nov_w,
            reverse=True,
        )[:2]
        pool = [u for c in ranked for u in c.doc_urls[:2]]
        pool_set = set(pool)

        bullets = []
        matching = [e for e in evidence if any(s.url in pool_set for s in e.sources)][:4]
        for e in matching:
            srcs = [s for s in e.sources if s.url in pool_set]
            markers = multi_cite([s.url for s in srcs], [s.title for s in srcs])
            bullets.append(f"{e.claim} {markers}".strip())
        if not bullets and pool:
            bullets.append(f"Evidence gathered from {cite(pool[0])}")

        # coverage of the cluster that scores highest for this subquestion
        best, best_score = None, float("-inf")
        for c in clusters:
            s = c.subquestion_scores.get(sq, 0.0)
            if s > best_score:
                best, best_score = c, s
        cov = best.coverage_by_subquestion.get(sq, 0.0) if best else 0.0

        score = max(0.15, min(1.0, 0.5 * cov + 0.5 * min(1.0, evidence_diversity / 8)))
        conf[sq] = round(score, 2)
        overview = f"Overview (selected {len(ranked)} clusters, {len(pool)} docs)"
        return OutlineSection(title=sq, bullets=[overview, *bullets])

    def _limitations(self, subquestions: List[str], clusters: List[Cluster]) -> OutlineSection:
        low = []
        for sq in subquestions:
            best = max((c.coverage_by_subquestion.get(sq, 0.0) for c in clusters), default=0.0)
            if best < self.settings.LOW_COVERAGE_THRESHOLD:
                low.append(f"{sq} (coverage ~{best * 100:.0f}%)")
        first = f"Areas with limited evidence: {'; '.join(low[:5])}" if low else NO_GAPS
        return OutlineSection(title=LIMITATIONS, bullets=[first, RECENCY_CAVEAT])

    def synthesize(
        self,
        query: str,
        subquestions: List[str],
        clusters: List[Cluster],
        evidence: Optional[List[EvidenceItem]] = None,
    ) -> Outline:
        """
        Synthesize the outline.

        Args:
            query: The (standalone) user query
            subquestions: Subquestions in section order
            clusters: Document clusters, possibly empty
            evidence: Aggregated evidence items

        Returns:
            Outline with Executive Summary, one section per subquestion and Limitations
        """
        evidence = evidence or []
        conf: Dict[str, float] = {}
        diversity = unique_domains(s.url for e in evidence for s in e.sources)

        sections = [self._executive_summary(clusters, conf)]
        for sq in subquestions:
            sections.append(self._subquestion_section(sq, clusters, evidence, diversity, conf))
        sections.append(self._limitations(subquestions, clusters))

        logger.info(f"Synthesized outline for '{query}': {len(sections)} sections, {len(clusters)} clusters, {len(evidence)} evidence items")
        return Outline(sections=sections, confidence_by_section=conf)


def synthesize(query: str, subquestions: List[str], clusters: List[Cluster],
               evidence: Optional[List[EvidenceItem]] = None) -> Outline:
    return OutlineSynthesizer().synthesize(query, subquestions, clusters, evidence)
