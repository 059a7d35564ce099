"""
MnemoGraph - Semantic Knowledge Graph & Working Memory
======================================================

An in-process knowledge/memory subsystem for agents:

Key Features:
    - Knowledge nodes with vector embeddings and SIMILAR_TO linking
    - Cosine-similarity retrieval with optional predictor re-ranking
    - Online concept clustering with mean centroids
    - Per-user working / short-term memory with activation decay,
      capacity-bounded eviction and consolidation into the graph
    - Pluggable predictors (embedding, importance, tags, ranking, reasoning)
      with deterministic fallbacks

Quick Start:
    from mnemograph import MnemoGraph

    async with MnemoGraph() as mg:
        await mg.store_knowledge("Important fact to remember")
        results = await mg.retrieve_knowledge("fact")

Version: 1.0.0
"""

__version__ = "1.0.0"

from .core import (
    Capability,
    KnowledgeNode,
    KnowledgeType,
    MnemoGraph,
    MnemoGraphConfig,
    PredictorRegistry,
)

__all__ = [
    "__version__",
    "MnemoGraph",
    "MnemoGraphConfig",
    "KnowledgeNode",
    "KnowledgeType",
    "Capability",
    "PredictorRegistry",
]
