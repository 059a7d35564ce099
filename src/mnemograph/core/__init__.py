"""
MnemoGraph core: knowledge graph, similarity search, concept clustering and
per-user memory sessions.
"""

from .clustering import ConceptClusterer
from .config import MnemoGraphConfig, get_config, load_config, reset_config
from .consolidation import ConsolidationWorker
from .container import Container, build_container
from .embeddings import EmbeddingProvider, fallback_embedding
from .engine import MnemoGraph
from .exceptions import (
    BackpressureError,
    DimensionMismatchError,
    InvalidInputError,
    MnemoGraphError,
    NodeNotFoundError,
    NotFoundError,
    SessionNotFoundError,
)
from .knowledge_graph import KnowledgeGraphStore
from .models import (
    ConceptCategory,
    ConceptCluster,
    KnowledgeNode,
    KnowledgeRelation,
    KnowledgeType,
    MemoryItem,
    MemorySession,
    ReasoningResult,
    RelationType,
    ScoredNode,
    ValidationStatus,
)
from .predictors import Capability, Predictor, PredictorRegistry
from .similarity import SimilaritySearchEngine
from .worker_pool import WorkerPool
from .working_memory import MemorySessionManager

__all__ = [
    "MnemoGraph",
    "MnemoGraphConfig",
    "get_config",
    "load_config",
    "reset_config",
    "Container",
    "build_container",
    "EmbeddingProvider",
    "fallback_embedding",
    "SimilaritySearchEngine",
    "KnowledgeGraphStore",
    "ConceptClusterer",
    "MemorySessionManager",
    "ConsolidationWorker",
    "WorkerPool",
    "Capability",
    "Predictor",
    "PredictorRegistry",
    "KnowledgeNode",
    "KnowledgeRelation",
    "KnowledgeType",
    "RelationType",
    "ValidationStatus",
    "ConceptCategory",
    "ConceptCluster",
    "MemoryItem",
    "MemorySession",
    "ScoredNode",
    "ReasoningResult",
    "MnemoGraphError",
    "InvalidInputError",
    "NotFoundError",
    "NodeNotFoundError",
    "SessionNotFoundError",
    "DimensionMismatchError",
    "BackpressureError",
]
