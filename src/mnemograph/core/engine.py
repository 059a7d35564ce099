"""
MnemoGraph Engine
=================
Facade over one wired container. Every operation runs as a task of the
bounded worker pool, so callers get backpressure instead of unbounded
fan-out.

Usage:
    async with MnemoGraph() as mg:
        node = await mg.store_knowledge("Water boils at 100 degrees Celsius")
        hits = await mg.retrieve_knowledge("boiling point of water", max_results=3)

        session = mg.start_session("user-1")
        await mg.add_to_working_memory(session.id, "user prefers metric units")
        promoted = await mg.consolidate_memory(session.id)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger

from .config import MnemoGraphConfig, get_config
from .container import Container, build_container
from .logging_config import configure_logging
from .models import (
    KnowledgeNode,
    KnowledgeType,
    MemoryItem,
    MemorySession,
    ReasoningResult,
)
from .predictors import Capability, Predictor, PredictorRegistry


class MnemoGraph:

    def __init__(
        self,
        config: Optional[MnemoGraphConfig] = None,
        registry: Optional[PredictorRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
        configure_logs: bool = False,
    ):
        self.config = config or get_config()
        if configure_logs:
            configure_logging(self.config.observability)
        self.container: Container = build_container(self.config, registry=registry, clock=clock)
        self._started = False

    # ---- Convenience accessors ----------------------------------- #

    @property
    def graph(self):
        return self.container.knowledge_graph

    @property
    def sessions(self):
        return self.container.memory_sessions

    @property
    def clusterer(self):
        return self.container.knowledge_graph.clusterer

    def register_predictor(self, capability: Capability, predictor: Predictor) -> None:
        self.container.registry.register(capability, predictor)

    # ---- Lifecycle ----------------------------------------------- #

    async def start(self) -> None:
        if self._started:
            return
        await self.container.consolidation_worker.start()
        self._started = True
        logger.info(f"MnemoGraph started (dim={self.config.dimensionality})")

    async def close(self) -> None:
        await self.container.consolidation_worker.stop()
        await self.container.worker_pool.shutdown()
        self._started = False
        logger.info("MnemoGraph closed")

    async def __aenter__(self) -> "MnemoGraph":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---- Knowledge ----------------------------------------------- #

    async def store_knowledge(
        self,
        content: str,
        type: KnowledgeType = KnowledgeType.FACTUAL,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> KnowledgeNode:
        return await self.container.worker_pool.run(
            self.graph.store_knowledge(content, type, metadata), name="store_knowledge"
        )

    async def retrieve_knowledge(
        self,
        query: str,
        max_results: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> List[KnowledgeNode]:
        return await self.container.worker_pool.run(
            self.graph.retrieve_knowledge(query, max_results, context), name="retrieve_knowledge"
        )

    async def reason_about_knowledge(self, question: str, context_node_ids: Iterable[str]) -> ReasoningResult:
        return await self.container.worker_pool.run(
            self.graph.reason_about_knowledge(question, list(context_node_ids)),
            name="reason_about_knowledge",
        )

    def get_node(self, node_id: str) -> KnowledgeNode:
        return self.graph.get_node(node_id)

    # ---- Memory -------------------------------------------------- #

    def start_session(self, user_id: str, **kwargs) -> MemorySession:
        return self.sessions.start_session(user_id, **kwargs)

    async def add_to_working_memory(
        self, session_id: str, content: str, context: Optional[Dict[str, Any]] = None
    ) -> MemoryItem:
        return await self.container.worker_pool.run(
            self.sessions.add_to_working_memory(session_id, content, context),
            name="add_to_working_memory",
        )

    async def recall(self, session_id: str, query: str, top_k: int = 5) -> List[MemoryItem]:
        return await self.container.worker_pool.run(
            self.sessions.recall(session_id, query, top_k), name="recall"
        )

    async def consolidate_memory(self, session_id: str) -> int:
        return await self.container.worker_pool.run(
            self.sessions.consolidate_memory(session_id), name="consolidate_memory"
        )

    async def end_session(self, session_id: str) -> MemorySession:
        return await self.sessions.end_session(session_id)

    # ---- Stats --------------------------------------------------- #

    def get_system_stats(self) -> Dict[str, Any]:
        graph_stats = self.graph.get_stats()
        memory_stats = self.sessions.get_stats()
        return {
            "knowledge_nodes": graph_stats["knowledge_nodes"],
            "memory_sessions": memory_stats["memory_sessions"],
            "concept_clusters": graph_stats["concept_clusters"],
            "average_importance": graph_stats["average_importance"],
            "graph": graph_stats,
            "memory": memory_stats,
            "clusters": self.clusterer.stats(),
            "predictors": self.container.registry.stats(),
            "embedding_fallbacks": self.container.embeddings.fallback_count,
            "worker_pool": self.container.worker_pool.stats(),
            "consolidation": dict(self.container.consolidation_worker.stats),
        }
