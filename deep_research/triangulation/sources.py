"""News source normalization, lane tagging and lane-balanced selection."""

from __future__ import annotations
import logging
import uuid
from datetime import datetime
from email.utils import parsedate_to_datetime
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional

from ..capabilities import SearchBackend
from ..credibility.scorer import CredibilityScorer
from ..models import Lane, NewsSource, SearchHit
from ..tools.domain_norm import domain_of

logger = logging.getLogger(__name__)

KNOWN_LANES = (Lane.LEFT, Lane.RIGHT, Lane.CENTER)
CREDIBILITY_TIE = 0.1


def normalize_news_results(hits: Iterable[SearchHit], limit: int = 40, per_domain_cap: int = 2) -> List[NewsSource]:
    """
    Turn raw hits into news sources.

    Hits without url, title or a parsable host are dropped; URLs are
    deduplicated and each host contributes at most ``per_domain_cap`` sources.
    """
    out: List[NewsSource] = []
    seen = set()
    per_domain: Dict[str, int] = {}
    for hit in hits:
        if not hit.url or not hit.title or hit.url in seen:
            continue
        seen.add(hit.url)
        domain = domain_of(hit.url)
        if not domain:
            continue
        if per_domain.get(domain, 0) >= per_domain_cap:
            continue
        per_domain[domain] = per_domain.get(domain, 0) + 1
        out.append(NewsSource(
            id=str(uuid.uuid4()),
            url=hit.url,
            title=hit.title,
            snippet=hit.snippet or "",
            domain=domain,
            source_name=domain,
            timestamp=hit.published_date,
            image_url=hit.thumbnail,
        ))
        if len(out) >= limit:
            break
    return out


def tag_sources(sources: List[NewsSource], scorer: CredibilityScorer) -> List[NewsSource]:
    """Fill in lane and credibility score where missing."""
    tagged = []
    for s in sources:
        update = {}
        if s.lane is None or s.credibility_score is None:
            cred = scorer.score_domain(s.domain)
            if s.lane is None:
                update["lane"] = cred.lane
            if s.credibility_score is None:
                update["credibility_score"] = cred.overall_score
        tagged.append(s.model_copy(update=update) if update else s)
    return tagged


def parse_timestamp(ts: Optional[str]) -> float:
    """Epoch seconds for ISO 8601 or RFC 2822 timestamps; 0.0 when unparseable."""
    if not ts:
        return 0.0
    try:
        return datetime.fromisoformat(ts.replace("Z", "+00:00")).timestamp()
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(ts).timestamp()
    except (TypeError, ValueError):
        return 0.0


def _by_credibility_then_recency(a: NewsSource, b: NewsSource) -> int:
    diff = (b.credibility_score if b.credibility_score is not None else 0.5) - \
           (a.credibility_score if a.credibility_score is not None else 0.5)
    if abs(diff) > CREDIBILITY_TIE:
        return 1 if diff > 0 else -1
    ta, tb = parse_timestamp(a.timestamp), parse_timestamp(b.timestamp)
    if ta != tb:
        return 1 if tb > ta else -1
    return (a.title > b.title) - (a.title < b.title)


def select_balanced_sources(sources: List[NewsSource], per_lane: int = 3, max_unknown: int = 2) -> List[NewsSource]:
    """
    Pick a lane-balanced subset.

    Within each lane sources are ordered by credibility (differences of 0.1
    or less fall through to recency, then title). One source per known lane
    is taken first, known lanes are then filled up to ``per_lane``, and
    UNKNOWN sources only fill the remaining gap up to ``max_unknown``.
    """
    grouped: Dict[Lane, List[NewsSource]] = {lane: [] for lane in Lane}
    for s in sources:
        grouped[s.lane or Lane.UNKNOWN].append(s)
    for lane in grouped:
        grouped[lane].sort(key=cmp_to_key(_by_credibility_then_recency))

    balanced: List[NewsSource] = []
    for lane in KNOWN_LANES:
        if grouped[lane]:
            balanced.append(grouped[lane][0])

    for lane in KNOWN_LANES:
        added = sum(1 for s in balanced if s.lane == lane)
        remaining = per_lane - added
        if remaining > 0:
            balanced.extend(grouped[lane][added:added + remaining])

    unknown_slots = min(max_unknown, max(0, per_lane * 3 - len(balanced)), len(grouped[Lane.UNKNOWN]))
    if unknown_slots > 0:
        balanced.extend(grouped[Lane.UNKNOWN][:unknown_slots])
    return balanced


def lane_counts(sources: Iterable[NewsSource]) -> Dict[Lane, int]:
    counts = {lane: 0 for lane in Lane}
    for s in sources:
        counts[s.lane or Lane.UNKNOWN] += 1
    return counts


async def fetch_news_sources(backend: SearchBackend, query: str, scorer: CredibilityScorer,
                             limit: int = 40, per_domain_cap: int = 2) -> List[NewsSource]:
    """
    Search news, normalize and tag the results.

    When page one lacks a LEFT or RIGHT source, page two is fetched with a
    looser cap and unseen URLs are merged in.
    """
    try:
        hits = await backend.query(query, page=1)
    except Exception as e:
        logger.warning(f"News search failed for {query!r}: {e}")
        return []
    sources = tag_sources(normalize_news_results(hits, limit, per_domain_cap), scorer)

    lanes = {s.lane for s in sources}
    if Lane.LEFT in lanes and Lane.RIGHT in lanes:
        return sources

    logger.info(f"Lane coverage incomplete ({sorted(l.value for l in lanes)}), fetching page 2")
    try:
        more = await backend.query(query, page=2)
    except Exception as e:
        logger.warning(f"News search page 2 failed for {query!r}: {e}")
        return sources
    seen = {s.url for s in sources}
    extra = [s for s in normalize_news_results(more, limit * 2, per_domain_cap + 1) if s.url not in seen]
    return sources + tag_sources(extra, scorer)
