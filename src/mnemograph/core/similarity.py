"""
Similarity Search Engine
========================
Vector comparison and ranking primitives over knowledge nodes.

Cosine similarity is a total function: mismatched lengths or a zero-norm
operand score exactly 0.0 instead of raising.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence, Union

import numpy as np

from .models import KnowledgeNode, ScoredNode

VectorLike = Union[np.ndarray, Sequence[float]]


class SimilaritySearchEngine:

    @staticmethod
    def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
        va = np.asarray(a, dtype=np.float64).ravel()
        vb = np.asarray(b, dtype=np.float64).ravel()
        if va.shape[0] != vb.shape[0]:
            return 0.0
        norm_a = float(np.linalg.norm(va))
        norm_b = float(np.linalg.norm(vb))
        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0
        sim = float(np.dot(va, vb) / (norm_a * norm_b))
        # Rounding can push |sim| a hair past 1.0 for parallel vectors.
        return max(-1.0, min(1.0, sim))

    def rank(self, nodes: Iterable[KnowledgeNode], query_embedding: VectorLike) -> List[ScoredNode]:
        """Score every node against the query. Order follows the input; callers sort."""
        return [
            ScoredNode(node=node, score=self.cosine_similarity(query_embedding, node.embedding))
            for node in nodes
        ]

    @staticmethod
    def top_k(scored: Iterable[ScoredNode], k: int) -> List[ScoredNode]:
        """Stable sort descending by score and keep the first ``k``."""
        ordered = sorted(scored, key=lambda s: s.score, reverse=True)
        return ordered[: max(k, 0)]
