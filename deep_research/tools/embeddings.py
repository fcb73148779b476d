"""Embedding model adapter and vector helpers.

The SentenceTransformer model is loaded once per process and encoding runs
in a worker thread so the event loop stays responsive.
"""

import asyncio
from functools import lru_cache
import logging
from typing import List, Optional, Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as _sk_cosine

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def get_model(name: str):
    """Get or initialize the cached embedding model.

    Returns:
        SentenceTransformer model instance
    """
    from sentence_transformers import SentenceTransformer
    model = SentenceTransformer(name)
    logger.info(f"Loaded cached embedding model: {name}")
    return model


def reset_cache():
    """Reset the model cache (mainly for testing)."""
    get_model.cache_clear()
    logger.info("Embedding model cache reset")


class SentenceTransformerEmbeddings:
    """EmbeddingModel backed by sentence-transformers."""

    def __init__(self, model_name: Optional[str] = None):
        if model_name is None:
            from ..config import get_settings
            model_name = get_settings().EMBEDDING_MODEL
        self.model_name = model_name

    def _encode(self, texts: List[str]) -> List[List[float]]:
        vectors = get_model(self.model_name).encode(texts, normalize_embeddings=True)
        return np.asarray(vectors, dtype=float).tolist()

    async def embed(self, text: str) -> List[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return await asyncio.to_thread(self._encode, list(texts))


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero norm."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.size == 0 or vb.size == 0:
        return 0.0
    na = np.linalg.norm(va)
    nb = np.linalg.norm(vb)
    if na == 0 or nb == 0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


def similarity_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Pairwise cosine similarity of the given vectors."""
    if len(vectors) == 0:
        return np.zeros((0, 0))
    return _sk_cosine(np.asarray(vectors, dtype=float))


def mean_vector(vectors: Sequence[Sequence[float]]) -> List[float]:
    if len(vectors) == 0:
        return []
    return np.asarray(vectors, dtype=float).mean(axis=0).tolist()
