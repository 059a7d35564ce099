"""
Memory Session Manager
======================
Per-user working / short-term memory with capacity-bounded eviction,
activation decay and consolidation into the knowledge graph.

Activation
    activation₀ = clamp01(1.0 × (context_boost if context else 1.0) × attention_focus)
    activation(t) = activation₀ · exp(−decay_rate_per_hour · elapsed_minutes / 60)

    Decay is recomputed from the item timestamp before every
    activation-dependent decision (eviction order, eviction routing,
    consolidation eligibility, pruning).

Eviction (working memory size > capacity)
    Stable sort ascending by activation (ties: oldest first), evict
    ``size − capacity`` items from the front of that view. Survivors keep
    their insertion order. Evicted items above the retention threshold move
    to short-term memory; the rest are discarded.

Consolidation
    Short-term items with activation > 0.7, retrieval_count > 2 and age > 1h
    become EXPERIENTIAL knowledge nodes and leave short-term memory. Running
    it again without new qualifying items promotes nothing.

Every operation on one session holds that session's lock; different
sessions never block each other.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from ._utils import KeyedLocks
from .config import MemoryConfig
from .embeddings import EmbeddingProvider
from .exceptions import InvalidInputError, SessionNotFoundError
from .knowledge_graph import KnowledgeGraphStore
from .models import KnowledgeNode, KnowledgeType, MemoryItem, MemorySession
from .similarity import SimilaritySearchEngine

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def decayed_activation(item: MemoryItem, now: datetime, decay_rate_per_hour: float) -> float:
    """activation₀ · exp(−rate · elapsed_minutes / 60); no growth for future timestamps."""
    elapsed_minutes = max(0.0, (now - item.timestamp).total_seconds() / 60.0)
    return item.initial_activation * math.exp(-decay_rate_per_hour * elapsed_minutes / 60.0)


class MemorySessionManager:

    def __init__(
        self,
        embeddings: EmbeddingProvider,
        graph: KnowledgeGraphStore,
        config: Optional[MemoryConfig] = None,
        clock: Optional[Clock] = None,
        similarity: Optional[SimilaritySearchEngine] = None,
    ):
        self.embeddings = embeddings
        self.graph = graph
        self.config = config or MemoryConfig()
        self._clock = clock or _utcnow
        self._similarity = similarity or SimilaritySearchEngine()
        self._sessions: Dict[str, MemorySession] = {}
        self._locks = KeyedLocks()
        self._evicted_count = 0
        self._discarded_count = 0
        self._consolidated_count = 0

    # ---- Session lifecycle --------------------------------------- #

    def start_session(
        self,
        user_id: str,
        capacity: Optional[int] = None,
        attention_focus: Optional[float] = None,
    ) -> MemorySession:
        if capacity is not None and capacity < 1:
            raise InvalidInputError("capacity", "must be at least 1", capacity)
        now = self._clock()
        session = MemorySession(
            user_id=user_id,
            capacity=capacity if capacity is not None else self.config.capacity,
            attention_focus=_clamp01(
                attention_focus if attention_focus is not None else self.config.attention_focus
            ),
            started_at=now,
            last_activity=now,
        )
        self._sessions[session.id] = session
        logger.info(f"Started memory session {session.id} for user {user_id}")
        return session

    def get_session(self, session_id: str) -> MemorySession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def sessions(self) -> List[MemorySession]:
        return list(self._sessions.values())

    async def end_session(self, session_id: str) -> MemorySession:
        """Drop a session; called by the external idle-timeout policy."""
        self.get_session(session_id)
        async with self._locks.get(session_id):
            session = self._sessions.pop(session_id)
        self._locks.discard(session_id)
        logger.info(
            f"Ended memory session {session_id}: {len(session.working_memory)} working, "
            f"{len(session.short_term_memory)} short-term item(s) dropped"
        )
        return session

    def set_attention_focus(self, session_id: str, focus: float) -> MemorySession:
        session = self.get_session(session_id)
        session.attention_focus = _clamp01(focus)
        return session

    # ---- Working memory ------------------------------------------ #

    async def add_to_working_memory(
        self,
        session_id: str,
        content: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> MemoryItem:
        self.get_session(session_id)
        if not isinstance(content, str):
            raise InvalidInputError("content", "content must be a string", content)

        async with self._locks.get(session_id):
            # The session may have ended while this call waited for the lock.
            session = self.get_session(session_id)
            embedding = await self.embeddings.embed(content)
            now = self._clock()

            activation = 1.0
            if context:
                activation *= self.config.context_boost
            activation = _clamp01(activation * session.attention_focus)

            item = MemoryItem(
                content=content,
                embedding=embedding,
                initial_activation=activation,
                activation=activation,
                timestamp=now,
                context=dict(context or {}),
            )
            session.working_memory.append(item)
            session.last_activity = now
            self._manage_capacity(session, now)

        logger.debug(f"Added item {item.id} to working memory of {session_id} (activation: {activation:.3f})")
        return item

    def _refresh(self, items: List[MemoryItem], now: datetime) -> None:
        rate = self.config.decay_rate_per_hour
        for item in items:
            item.activation = decayed_activation(item, now, rate)

    def _manage_capacity(self, session: MemorySession, now: datetime) -> List[MemoryItem]:
        working = session.working_memory
        excess = len(working) - session.capacity
        if excess <= 0:
            return []

        self._refresh(working, now)
        order = sorted(range(len(working)), key=lambda i: working[i].activation)
        evict_idx = order[:excess]
        evicted = [working[i] for i in evict_idx]
        evict_set = set(evict_idx)
        session.working_memory = [item for i, item in enumerate(working) if i not in evict_set]

        for item in evicted:
            self._evicted_count += 1
            if item.activation > self.config.retention_threshold:
                session.short_term_memory.append(item)
                logger.debug(f"Evicted {item.id} to short-term memory (activation {item.activation:.3f})")
            else:
                self._discarded_count += 1
                logger.debug(f"Discarded {item.id} (activation {item.activation:.3f})")
        return evicted

    # ---- Recall -------------------------------------------------- #

    async def recall(self, session_id: str, query: str, top_k: int = 5) -> List[MemoryItem]:
        """
        Return the session items most similar to ``query``.

        Searches working and short-term memory; every returned item's
        retrieval_count is incremented.
        """
        self.get_session(session_id)
        if top_k < 1:
            raise InvalidInputError("top_k", "must be at least 1", top_k)
        if not isinstance(query, str):
            raise InvalidInputError("query", "query must be a string", query)

        async with self._locks.get(session_id):
            session = self.get_session(session_id)
            query_embedding = await self.embeddings.embed(query)
            candidates = session.working_memory + session.short_term_memory
            scored = [
                (self._similarity.cosine_similarity(query_embedding, item.embedding), item)
                for item in candidates
            ]
            scored.sort(key=lambda pair: pair[0], reverse=True)
            recalled = [item for _, item in scored[:top_k]]
            for item in recalled:
                item.retrieval_count += 1
            session.last_activity = self._clock()
        return recalled

    # ---- Consolidation ------------------------------------------- #

    def _should_consolidate(self, item: MemoryItem, now: datetime) -> bool:
        cfg = self.config
        age_seconds = (now - item.timestamp).total_seconds()
        return (
            item.activation > cfg.consolidation_activation
            and item.retrieval_count > cfg.consolidation_min_retrievals
            and age_seconds > cfg.consolidation_min_age_seconds
        )

    async def consolidate_memory(self, session_id: str) -> int:
        """Promote qualifying short-term items to the knowledge graph; returns the count."""
        self.get_session(session_id)
        async with self._locks.get(session_id):
            session = self.get_session(session_id)
            now = self._clock()
            self._refresh(session.short_term_memory, now)
            candidates = [i for i in session.short_term_memory if self._should_consolidate(i, now)]

            consolidated = 0
            for item in candidates:
                node = KnowledgeNode(
                    content=item.content,
                    type=KnowledgeType.EXPERIENTIAL,
                    embedding=item.embedding.copy(),
                    importance=item.activation,
                    source_id=item.id,
                    metadata={
                        "session_id": session.id,
                        "user_id": session.user_id,
                        "retrieval_count": item.retrieval_count,
                    },
                )
                self.graph.insert_node(node)
                session.short_term_memory.remove(item)
                consolidated += 1

            self._consolidated_count += consolidated

        logger.info(f"Consolidated {consolidated} memory item(s) from session {session_id} to long-term storage")
        return consolidated

    async def prune_decayed(self, session_id: str) -> int:
        """Drop short-term items whose activation has decayed to the retention threshold."""
        self.get_session(session_id)
        async with self._locks.get(session_id):
            session = self.get_session(session_id)
            self._refresh(session.short_term_memory, self._clock())
            threshold = self.config.retention_threshold
            kept = [i for i in session.short_term_memory if i.activation > threshold]
            pruned = len(session.short_term_memory) - len(kept)
            session.short_term_memory = kept
        if pruned:
            logger.debug(f"Pruned {pruned} decayed short-term item(s) from session {session_id}")
        return pruned

    def get_stats(self) -> Dict[str, Any]:
        sessions = list(self._sessions.values())
        return {
            "memory_sessions": len(sessions),
            "working_items": sum(len(s.working_memory) for s in sessions),
            "short_term_items": sum(len(s.short_term_memory) for s in sessions),
            "evicted": self._evicted_count,
            "discarded": self._discarded_count,
            "consolidated": self._consolidated_count,
        }
