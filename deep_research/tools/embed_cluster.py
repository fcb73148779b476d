from __future__ import annotations
from typing import List, Sequence

import numpy as np

from .embeddings import cosine, similarity_matrix


def farthest_point_centers(sim: np.ndarray, target: int) -> List[int]:
    """Greedy farthest-point seeding over a similarity matrix.

    Starts from index 0 and repeatedly adds the non-center whose similarity
    to its nearest center is lowest. Ties go to the lowest index.
    """
    n = sim.shape[0]
    if n == 0 or target <= 0:
        return []
    centers = [0]
    while len(centers) < min(target, n):
        best_idx, best_score = -1, -np.inf
        for i in range(n):
            if i in centers:
                continue
            score = -max(sim[i, c] for c in centers)
            if score > best_score:
                best_idx, best_score = i, score
        if best_idx < 0:
            break
        centers.append(best_idx)
    return centers


def assign_to_centers(sim: np.ndarray, centers: Sequence[int]) -> List[int]:
    """Position (in ``centers``) of the most similar center for each row; ties go to the earlier center."""
    out = []
    for i in range(sim.shape[0]):
        best, best_sim = 0, -np.inf
        for pos, c in enumerate(centers):
            if sim[i, c] > best_sim:
                best, best_sim = pos, sim[i, c]
        out.append(best)
    return out


def partition(vectors: Sequence[Sequence[float]], target: int) -> List[List[int]]:
    """Hard partition of vector indices into at most ``target`` groups, in center order."""
    sim = similarity_matrix(vectors)
    centers = farthest_point_centers(sim, target)
    buckets: List[List[int]] = [[] for _ in centers]
    for i, pos in enumerate(assign_to_centers(sim, centers)):
        buckets[pos].append(i)
    return [b for b in buckets if b]


def greedy_threshold_groups(vectors: Sequence[Sequence[float]], threshold: float) -> List[List[int]]:
    """Single pass grouping: each vector joins every later vector above threshold to its group.

    Index i opens a group unless already grouped; unassigned j > i with
    cosine(i, j) >= threshold join it.
    """
    n = len(vectors)
    used = [False] * n
    groups: List[List[int]] = []
    for i in range(n):
        if used[i]:
            continue
        used[i] = True
        group = [i]
        for j in range(i + 1, n):
            if used[j]:
                continue
            if cosine(vectors[i], vectors[j]) >= threshold:
                used[j] = True
                group.append(j)
        groups.append(group)
    return groups
