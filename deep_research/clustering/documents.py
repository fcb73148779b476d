"""Thematic clustering of extracted documents with subquestion coverage."""

import logging
import math
from typing import Dict, List, Optional

from ..capabilities import EmbeddingModel
from ..config import Settings, get_settings
from ..models import Cluster, ExtractedDocument
from ..tools.domain_norm import domain_of
from ..tools.embed_cluster import partition
from ..tools.embeddings import cosine, mean_vector

logger = logging.getLogger(__name__)

SUMMARY_SEPARATOR = " • "


def cluster_text(doc: ExtractedDocument, max_chars: int = 2000) -> str:
    return f"{doc.title or ''}\n{' '.join(doc.facts)}\n{' '.join(doc.quotes)}"[:max_chars]


def cluster_summary(docs: List[ExtractedDocument]) -> str:
    """Up to two facts per document, four in total."""
    facts = [f for d in docs for f in d.facts[:2]][:4]
    return SUMMARY_SEPARATOR.join(facts)


def novelty(docs: List[ExtractedDocument]) -> float:
    domains = {domain_of(d.url) for d in docs} - {""}
    return round(min(1.0, len(domains) / max(1, len(docs))), 2)


def default_target(n_docs: int, requested: Optional[int], default: int = 3) -> int:
    return min(requested or default, max(1, math.ceil(n_docs / 4)))


class DocumentClusterer:
    """Partition documents into themes and score them against subquestions"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def cluster(
        self,
        docs: List[ExtractedDocument],
        embed: EmbeddingModel,
        subquestions: List[str],
        target_clusters: Optional[int] = None,
    ) -> List[Cluster]:
        """
        Cluster documents by embedding similarity.

        Args:
            docs: Extracted documents; order determines seeding
            embed: Embedding capability
            subquestions: Subquestions to score coverage against
            target_clusters: Requested cluster count, bounded by ceil(n/4)

        Returns:
            Clusters labelled Cluster-1..k whose doc_urls partition the input
        """
        if not docs:
            return []

        target = default_target(len(docs), target_clusters, self.settings.DEFAULT_TARGET_CLUSTERS)
        texts = [cluster_text(d, self.settings.CLUSTER_TEXT_MAX_CHARS) for d in docs]
        vecs = await embed.embed_batch(texts)
        sq_vecs = await embed.embed_batch(subquestions) if subquestions else []

        groups = partition(vecs, target)
        threshold = self.settings.COVERAGE_THRESHOLD

        clusters: List[Cluster] = []
        for idx, members in enumerate(groups):
            member_docs = [docs[i] for i in members]
            member_vecs = [vecs[i] for i in members]

            scores: Dict[str, float] = {}
            coverage: Dict[str, float] = {}
            if subquestions:
                centroid = mean_vector(member_vecs)
                for sq, qv in zip(subquestions, sq_vecs):
                    scores[sq] = round(cosine(centroid, qv), 3)
                    covered = sum(1 for v in member_vecs if cosine(v, qv) >= threshold)
                    coverage[sq] = round(covered / len(members), 2)
            coverage_score = round(sum(coverage.values()) / len(coverage), 2) if coverage else 0.0

            clusters.append(Cluster(
                label=f"Cluster-{idx + 1}",
                doc_urls=[d.url for d in member_docs],
                summary=cluster_summary(member_docs),
                novelty_score=novelty(member_docs),
                subquestion_scores=scores,
                coverage_by_subquestion=coverage,
                coverage_score=coverage_score,
            ))

        logger.info(f"Clustered {len(docs)} documents into {len(clusters)} clusters (target {target})")
        return clusters
