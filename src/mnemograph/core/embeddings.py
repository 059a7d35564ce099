"""
Embedding Provider
==================
Turns text into a fixed-dimension float64 vector.

If an embedding predictor is registered and ready it is used; otherwise, or
when it fails, times out, or returns a vector of the wrong length, a
deterministic fallback is used:

    seed  = SHAKE-256(content)
    v     = N(0, 1)^D * 0.1        (numpy PCG64 generator seeded with seed)
    embed = v / ||v||

The fallback is bit-identical for identical content, across calls and
processes, so similarity behaviour is testable without a live model.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ._utils import stable_seed
from .exceptions import PredictorError
from .predictors import Capability, EmbeddingRequest, EmbeddingResult, PredictorRegistry


def fallback_embedding(content: str, dimension: int) -> np.ndarray:
    """Deterministic pseudo-random unit vector for ``content``."""
    rng = np.random.default_rng(stable_seed(content))
    vec = rng.standard_normal(dimension) * 0.1
    norm = np.linalg.norm(vec)
    if norm > 0:
        vec = vec / norm
    return vec.astype(np.float64)


class EmbeddingProvider:
    """Embeds text through the registry's embedding predictor or the fallback."""

    def __init__(self, dimension: int, registry: Optional[PredictorRegistry] = None):
        self.dimension = dimension
        self.registry = registry or PredictorRegistry()
        self.fallback_count = 0

    def _coerce(self, result: EmbeddingResult) -> np.ndarray:
        vec = np.asarray(result.embedding, dtype=np.float64).ravel()
        if vec.shape[0] != self.dimension:
            raise PredictorError(
                Capability.EMBEDDING.value,
                f"returned {vec.shape[0]} dims (expected {self.dimension})",
            )
        if not np.all(np.isfinite(vec)):
            raise PredictorError(Capability.EMBEDDING.value, "returned non-finite values")
        return vec

    async def embed(self, content: str) -> np.ndarray:
        vec = await self.registry.invoke(
            Capability.EMBEDDING, EmbeddingRequest(text=content), EmbeddingResult, self._coerce
        )
        if vec is not None:
            return vec
        self.fallback_count += 1
        return fallback_embedding(content, self.dimension)

    def fallback(self, content: str) -> np.ndarray:
        return fallback_embedding(content, self.dimension)
