"""Cosine similarity helpers shared by the retrieval strategies.

``similarity = dot(a, b) / (|a| * |b|)`` and ``distance = 1 - similarity``.
A zero-norm vector, an empty vector or mismatched dimensions yield a
similarity of ``0.0``.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity between two vectors."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``1 - cosine_similarity(a, b)``."""
    return 1.0 - cosine_similarity(a, b)


def cosine_similarities(query: Sequence[float], matrix: Sequence[Sequence[float]]) -> list[float]:
    """Score every row of *matrix* against *query* in one vectorised pass.

    Rows whose dimension differs from the query, and zero-norm rows, score
    ``0.0``.
    """
    if not matrix:
        return []
    q = np.asarray(query, dtype=np.float64)
    q_norm = float(np.linalg.norm(q))
    scores: list[float] = [0.0] * len(matrix)
    if q.size == 0 or q_norm == 0.0:
        return scores

    same_dim = [i for i, row in enumerate(matrix) if len(row) == q.size]
    if not same_dim:
        return scores

    m = np.asarray([matrix[i] for i in same_dim], dtype=np.float64)
    row_norms = np.linalg.norm(m, axis=1)
    dots = m @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(row_norms == 0.0, 0.0, dots / (row_norms * q_norm))
    for idx, sim in zip(same_dim, sims.tolist()):
        scores[idx] = float(sim)
    return scores
