"""
News triangulation - compare how outlets across the political spectrum report
the same story.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from ..capabilities import ChatModel, EmbeddingModel, SearchBackend
from ..config import Settings, get_settings
from ..credibility.scorer import CredibilityScorer, credibility_label, default_scorer
from ..exceptions import Cancelled
from ..models import ChatMessage, ClaimCluster, Lane, LaneCount, NewsSource, TriangulationResult
from ..search.query_planner import QueryPlanner
from ..utils.cancel import CancelToken, is_cancelled
from .claim_clusters import build_claim_clusters, categorize_clusters, extract_claims
from .sources import fetch_news_sources, lane_counts, select_balanced_sources

logger = logging.getLogger(__name__)

SUMMARY_FALLBACK = "Unable to generate summary. Please review the sources below for details."
DOMINANT_LANE_SHARE = 0.8


def insufficient_sources_message(n: int, minimum: int = 3) -> str:
    if n == 0:
        return "No news sources found for this query. Try a more specific or recent news topic."
    return (f"Only {n} source(s) found. At least {minimum} sources are needed for triangulation. "
            "Try a broader news topic.")


def nonzero_lanes(counts: Dict[Lane, int]) -> List[LaneCount]:
    return [LaneCount(lane=lane, count=n) for lane, n in counts.items() if n > 0]


def spectrum_note(counts: Dict[Lane, int]) -> str:
    """Caveat on lane imbalance, empty when the spread is healthy."""
    total = sum(counts.values())
    if not total:
        return ""
    for lane in (Lane.LEFT, Lane.RIGHT, Lane.CENTER):
        if counts[lane] / total >= DOMINANT_LANE_SHARE:
            return f"Note: Coverage is dominated by {lane.value.lower()}-leaning sources."
    if not (counts[Lane.LEFT] and counts[Lane.RIGHT] and counts[Lane.CENTER]):
        return "Note: Limited spectrum - not all political lanes are represented."
    return ""


def summary_prompt(query: str, shared: Sequence[ClaimCluster], conflicts: Sequence[ClaimCluster],
                   unique: Sequence[ClaimCluster], counts: Dict[Lane, int], avg_credibility: float) -> str:
    def block(items: Sequence[ClaimCluster]) -> str:
        if not items:
            return "(none)"
        return "\n".join(
            f"- {c.representative_text} [lanes: {', '.join(l.value for l in c.lanes_covered)}; agreement: {c.agreement_level}]"
            for c in items
        )

    breakdown = ", ".join(f"{lane.value}: {n}" for lane, n in counts.items() if n)
    note = spectrum_note(counts)
    return f"""Write a neutral 3-5 sentence summary of how news outlets across the political spectrum cover this story.

Topic: {query}
Source breakdown: {breakdown}
Average source credibility: {credibility_label(avg_credibility)} ({avg_credibility:.2f})
{note}

Facts reported across lanes:
{block(shared[:5])}

Points of disagreement:
{block(conflicts[:3])}

Angles reported by only one lane:
{block(unique[:3])}

Lead with what is agreed, then note disagreements and single-lane angles. Do not take sides."""


class NewsTriangulator:
    """
    Runs the news triangulation pipeline for one query.

    Args:
        chat: Chat model used for the query rewrite, claim extraction and summary
        embed: Embedding model used for claim clustering
        search: News search backend (SearXNG news categories in production)
        scorer: Credibility scorer; defaults to the configured bias table
        settings: Settings instance
    """

    def __init__(self, chat: ChatModel, embed: EmbeddingModel, search: SearchBackend,
                 scorer: Optional[CredibilityScorer] = None, settings: Optional[Settings] = None):
        self.chat = chat
        self.embed = embed
        self.search = search
        self.settings = settings or get_settings()
        self.scorer = scorer or default_scorer()
        self.planner = QueryPlanner(chat, self.settings.MAX_SUBQUESTIONS)

    async def run(self, query: str, history: Sequence[ChatMessage] = (),
                  cancel: Optional[CancelToken] = None) -> TriangulationResult:
        """
        Triangulate news coverage of a query.

        Never raises for backend failures: a failed claim or clustering step
        yields empty cluster lists, and a cancelled run returns the sources
        collected so far with the fallback summary.
        """
        s = self.settings
        standalone = await self.planner.standalone_query(query, history, signal=cancel)
        if is_cancelled(cancel):
            return self._partial([])

        found = await fetch_news_sources(self.search, standalone, self.scorer)
        balanced = select_balanced_sources(found, per_lane=s.NEWS_PER_LANE, max_unknown=s.NEWS_MAX_UNKNOWN)
        counts = lane_counts(balanced)
        logger.info(f"News triangulation for {standalone!r}: {len(found)} found, {len(balanced)} selected")

        if len(balanced) < s.NEWS_MIN_SOURCES:
            return TriangulationResult(
                summary=insufficient_sources_message(len(balanced), s.NEWS_MIN_SOURCES),
                lanes=nonzero_lanes(counts),
                sources=balanced,
            )
        if is_cancelled(cancel):
            return self._partial(balanced)

        clusters: List[ClaimCluster] = []
        try:
            per_source = await asyncio.gather(*(extract_claims(src, self.chat, signal=cancel) for src in balanced))
            claims = [c for batch in per_source for c in batch]
            logger.info(f"Extracted {len(claims)} claims from {len(balanced)} sources")
            if is_cancelled(cancel):
                return self._partial(balanced)
            clusters = await build_claim_clusters(claims, self.embed, s.CLAIM_SIMILARITY_THRESHOLD)
        except Cancelled:
            return self._partial(balanced)
        except Exception as e:
            logger.warning(f"Claim clustering failed, continuing without clusters: {e}")
        shared, conflicts, unique = categorize_clusters(clusters)

        summary = await self._summarize(standalone, shared, conflicts, unique, counts, balanced, cancel)
        return TriangulationResult(
            summary=summary,
            shared_facts=shared[:10],
            conflicts=conflicts[:5],
            unique_angles=unique[:5],
            lanes=nonzero_lanes(counts),
            sources=balanced,
        )

    def _partial(self, sources: List[NewsSource]) -> TriangulationResult:
        return TriangulationResult(
            summary=SUMMARY_FALLBACK,
            lanes=nonzero_lanes(lane_counts(sources)),
            sources=sources,
        )

    async def _summarize(self, query: str, shared, conflicts, unique, counts: Dict[Lane, int],
                         sources: List[NewsSource], cancel: Optional[CancelToken]) -> str:
        scores = [src.credibility_score if src.credibility_score is not None else 0.5 for src in sources]
        avg = sum(scores) / len(scores) if scores else 0.5
        prompt = summary_prompt(query, shared, conflicts, unique, counts, avg)
        try:
            reply = await self.chat.invoke([ChatMessage(role="user", content=prompt)], signal=cancel)
        except Exception as e:
            logger.warning(f"Triangulation summary failed: {e}")
            return SUMMARY_FALLBACK
        return reply.strip() or SUMMARY_FALLBACK
