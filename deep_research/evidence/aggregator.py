"""Claim-level merging of extracted facts across documents."""

import logging
import re
from typing import Dict, List

from ..models import EvidenceItem, EvidenceSource, ExtractedDocument

logger = logging.getLogger(__name__)

MAX_EXAMPLES = 3

_PUNCT = re.compile(r"[`~!@#$%^&*()_+={}\[\]|\\:;\"'<>,.?/\-]")
_WS = re.compile(r"\s+")


def normalize_claim(text: str) -> str:
    """Merge key for a fact: lowercase, punctuation to spaces, whitespace collapsed."""
    t = _PUNCT.sub(" ", (text or "").lower())
    return _WS.sub(" ", t).strip()


def aggregate(docs: List[ExtractedDocument]) -> List[EvidenceItem]:
    """
    Merge facts that normalize to the same key into evidence items.

    The first fact seen for a key becomes the claim text. Each further fact
    with the same key adds its document as a source (once per URL) and
    raises support_count. A document's first quote is attached to the item
    of its last fact.

    Args:
        docs: Extracted documents in retrieval order

    Returns:
        Items by descending support_count, ties in first-seen order
    """
    by_key: Dict[str, EvidenceItem] = {}
    order: List[str] = []

    for doc in docs:
        for fact in doc.facts:
            key = normalize_claim(fact)
            if not key:
                continue
            item = by_key.get(key)
            if item is None:
                item = EvidenceItem(
                    claim=fact.strip(),
                    sources=[EvidenceSource(url=doc.url, title=doc.title)],
                    support_count=1,
                )
                by_key[key] = item
                order.append(key)
            else:
                if doc.url not in item.source_urls():
                    item.sources.append(EvidenceSource(url=doc.url, title=doc.title))
                item.support_count += 1

        # quote goes to the literal last fact; nothing when that fact was skipped
        item = by_key.get(normalize_claim(doc.facts[-1])) if doc.facts and doc.quotes else None
        if item is not None and len(item.examples) < MAX_EXAMPLES:
            item.examples.append(doc.quotes[0])

    items = [by_key[k] for k in order]
    items.sort(key=lambda e: e.support_count, reverse=True)
    logger.debug(f"Aggregated {sum(len(d.facts) for d in docs)} facts into {len(items)} evidence items")
    return items
