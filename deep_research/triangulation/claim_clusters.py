"""Claim extraction from news sources and cross-source claim clustering."""

from __future__ import annotations
import logging
import uuid
from typing import List, Tuple

from ..capabilities import ChatModel, EmbeddingModel
from ..exceptions import Cancelled, ResearchSystemError
from ..llm.json_output import parse_json_reply
from ..models import ChatMessage, ClaimCluster, Lane, NewsClaim, NewsSource, SupportingClaim
from ..tools.embed_cluster import greedy_threshold_groups

logger = logging.getLogger(__name__)

CLAIM_TYPES = ("fact", "opinion", "quote", "other")
CONFIDENCES = ("low", "medium", "high")
LEVEL_ORDER = {"high": 0, "medium": 1, "low": 2}


def claim_prompt(source: NewsSource) -> str:
    return f"""You are a claim extraction system. Extract factual claims and key context from this news article.

Title: {source.title}
Content: {source.snippet or 'No content available'}

Return a JSON array of claims. Each claim should have:
- "text": the claim as a complete sentence, keeping numbers, dates and quotes
- "who": who is making or involved in the claim (if mentioned)
- "when": when it happened (if mentioned)
- "where": location (if mentioned)
- "type": one of "fact", "opinion", "quote", "other"
- "confidence": "high" if directly stated, "medium" if implied, "low" if uncertain

Return ONLY a JSON array. If no clear claims can be extracted, return []"""


def _opt_str(v):
    return v.strip() or None if isinstance(v, str) else None


async def extract_claims(source: NewsSource, chat: ChatModel, signal=None) -> List[NewsClaim]:
    """Claims stated by one source; an empty list when the reply is unusable."""
    try:
        reply = await chat.invoke([ChatMessage(role="user", content=claim_prompt(source))], signal=signal)
    except Cancelled:
        return []
    except ResearchSystemError as e:
        logger.warning(f"Claim extraction failed for {source.url}: {e}")
        return []

    parsed = parse_json_reply(reply, expect="array")
    if parsed is None:
        logger.debug(f"No JSON claim array for {source.url}")
        return []

    claims = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        text = _opt_str(item.get("text"))
        if not text:
            continue
        ctype = item.get("type")
        conf = item.get("confidence")
        claims.append(NewsClaim(
            id=str(uuid.uuid4()),
            source_id=source.id,
            lane=source.lane,
            text=text,
            who=_opt_str(item.get("who")),
            when=_opt_str(item.get("when")),
            where=_opt_str(item.get("where")),
            claim_type=ctype if ctype in CLAIM_TYPES else "other",
            confidence=conf if conf in CONFIDENCES else "medium",
        ))
    return claims


def agreement_level(n_sources: int, n_lanes: int) -> str:
    if n_sources >= 3 and n_lanes >= 2:
        return "high"
    if n_sources >= 2:
        return "medium"
    return "low"


async def build_claim_clusters(claims: List[NewsClaim], embed: EmbeddingModel,
                               threshold: float = 0.75) -> List[ClaimCluster]:
    """
    Group claims whose embeddings are at least ``threshold`` similar.

    Single greedy pass in claim order; the longest claim text represents
    the cluster.
    """
    if not claims:
        return []
    vectors = await embed.embed_batch([c.text for c in claims])

    clusters = []
    for group in greedy_threshold_groups(vectors, threshold):
        members = [claims[i] for i in group]
        lanes: List[Lane] = []
        for c in members:
            if c.lane is not None and c.lane not in lanes:
                lanes.append(c.lane)
        n_sources = len({c.source_id for c in members})
        representative = members[0]
        for c in members[1:]:
            if len(c.text) > len(representative.text):
                representative = c
        clusters.append(ClaimCluster(
            cluster_id=str(uuid.uuid4()),
            representative_text=representative.text,
            lanes_covered=lanes or [Lane.UNKNOWN],
            supporting_claims=[SupportingClaim(claim_id=c.id, source_id=c.source_id, lane=c.lane) for c in members],
            agreement_level=agreement_level(n_sources, len(lanes)),
        ))
    return clusters


def categorize_clusters(clusters: List[ClaimCluster]) -> Tuple[List[ClaimCluster], List[ClaimCluster], List[ClaimCluster]]:
    """
    Split clusters into (shared facts, conflicts, unique angles).

    Shared: at least two claims across at least two lanes. Unique: a single
    claim or a single lane. Everything else is a conflict; clusters from
    build_claim_clusters always cover at least one lane, so that bucket stays
    empty until contradiction detection exists.
    """
    shared, conflicts, unique = [], [], []
    for c in clusters:
        n_claims = len(c.supporting_claims)
        n_lanes = len(c.lanes_covered)
        if n_claims >= 2 and n_lanes >= 2:
            shared.append(c)
        elif n_claims == 1 or n_lanes == 1:
            unique.append(c)
        else:
            conflicts.append(c)

    def relevance(c: ClaimCluster):
        return (LEVEL_ORDER[c.agreement_level], -len(c.supporting_claims))

    shared.sort(key=relevance)
    unique.sort(key=relevance)
    return shared, conflicts, unique
