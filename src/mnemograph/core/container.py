"""
Dependency Injection Container
==============================
Builds and wires every component of one knowledge system instance.
Nothing is process-global: two containers never share nodes, clusters,
sessions or predictors.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .config import MnemoGraphConfig
from .consolidation import ConsolidationWorker
from .embeddings import EmbeddingProvider
from .knowledge_graph import KnowledgeGraphStore
from .predictors import PredictorRegistry
from .similarity import SimilaritySearchEngine
from .worker_pool import WorkerPool
from .working_memory import MemorySessionManager


@dataclass
class Container:
    """
    Container holding all wired dependencies.
    """
    config: MnemoGraphConfig
    registry: PredictorRegistry
    similarity: SimilaritySearchEngine
    embeddings: EmbeddingProvider
    knowledge_graph: KnowledgeGraphStore
    memory_sessions: MemorySessionManager
    consolidation_worker: ConsolidationWorker
    worker_pool: WorkerPool


def build_container(
    config: MnemoGraphConfig,
    registry: Optional[PredictorRegistry] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> Container:
    """
    Build and wire all dependencies.

    Args:
        config: Validated MnemoGraphConfig instance.
        registry: Predictor registry to use; a fresh empty one by default,
            which means every capability runs on its fallback.
        clock: Time source for memory sessions (tests pass a fake clock).
    """
    if registry is None:
        registry = PredictorRegistry(timeout_seconds=config.predictors.timeout_seconds)

    similarity = SimilaritySearchEngine()
    embeddings = EmbeddingProvider(config.dimensionality, registry)
    knowledge_graph = KnowledgeGraphStore(
        embeddings,
        registry=registry,
        config=config.knowledge,
        similarity=similarity,
    )
    memory_sessions = MemorySessionManager(
        embeddings,
        knowledge_graph,
        config=config.memory,
        clock=clock,
        similarity=similarity,
    )
    consolidation_worker = ConsolidationWorker(
        memory_sessions,
        interval_seconds=config.consolidation.interval_seconds,
        enabled=config.consolidation.enabled,
    )
    worker_pool = WorkerPool(
        max_concurrency=config.workers.max_concurrency,
        max_pending=config.workers.max_pending,
    )

    return Container(
        config=config,
        registry=registry,
        similarity=similarity,
        embeddings=embeddings,
        knowledge_graph=knowledge_graph,
        memory_sessions=memory_sessions,
        consolidation_worker=consolidation_worker,
        worker_pool=worker_pool,
    )
