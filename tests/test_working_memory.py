"""
Tests for MemorySessionManager: activation, capacity-bounded eviction,
decay, recall, consolidation into the knowledge graph and per-session
locking.
"""

import asyncio
import math
from datetime import timedelta

import numpy as np
import pytest

from mnemograph.core.config import MemoryConfig
from mnemograph.core.exceptions import InvalidInputError, SessionNotFoundError
from mnemograph.core.models import KnowledgeType, MemoryItem
from mnemograph.core.predictors import Capability, EmbeddingResult
from mnemograph.core.working_memory import MemorySessionManager, decayed_activation

from mocks import unit


class InFlightEmbedder:
    """Async embedder that records how many calls overlap."""

    def __init__(self, delay: float = 0.05):
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    def ready(self):
        return True

    async def predict(self, request):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return EmbeddingResult(embedding=unit(1.0))


# =============================================================================
# Sessions
# =============================================================================

class TestSessions:

    def test_start_session_defaults(self, sessions):
        session = sessions.start_session("user-1")
        assert session.capacity == 3
        assert session.attention_focus == 0.5
        assert session.working_memory == []
        assert sessions.get_session(session.id) is session

    def test_start_session_overrides(self, sessions):
        session = sessions.start_session("user-1", capacity=10, attention_focus=1.5)
        assert session.capacity == 10
        assert session.attention_focus == 1.0

    def test_invalid_capacity(self, sessions):
        with pytest.raises(InvalidInputError):
            sessions.start_session("user-1", capacity=0)

    def test_unknown_session(self, sessions):
        with pytest.raises(SessionNotFoundError):
            sessions.get_session("missing")

    @pytest.mark.asyncio
    async def test_add_to_unknown_session(self, sessions):
        with pytest.raises(SessionNotFoundError):
            await sessions.add_to_working_memory("missing", "content")

    @pytest.mark.asyncio
    async def test_end_session(self, sessions):
        session = sessions.start_session("user-1")
        await sessions.add_to_working_memory(session.id, "something")
        ended = await sessions.end_session(session.id)
        assert ended is session
        with pytest.raises(SessionNotFoundError):
            sessions.get_session(session.id)
        with pytest.raises(SessionNotFoundError):
            await sessions.end_session(session.id)

    @pytest.mark.asyncio
    async def test_add_waiting_on_lock_fails_once_session_ends(self, sessions):
        session = sessions.start_session("user-1")
        lock = sessions._locks.get(session.id)
        await lock.acquire()

        ending = asyncio.ensure_future(sessions.end_session(session.id))
        adding = asyncio.ensure_future(sessions.add_to_working_memory(session.id, "late item"))
        await asyncio.sleep(0)
        lock.release()

        assert await ending is session
        with pytest.raises(SessionNotFoundError):
            await adding
        assert session.working_memory == []

    def test_set_attention_focus(self, sessions):
        session = sessions.start_session("user-1")
        sessions.set_attention_focus(session.id, -2.0)
        assert session.attention_focus == 0.0


# =============================================================================
# Activation and eviction
# =============================================================================

class TestWorkingMemory:

    @pytest.mark.asyncio
    async def test_rejects_none_content(self, sessions):
        session = sessions.start_session("user-1")
        with pytest.raises(InvalidInputError):
            await sessions.add_to_working_memory(session.id, None)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [5, 1.5, b"bytes", ["list"]])
    async def test_rejects_non_string_content(self, sessions, content):
        session = sessions.start_session("user-1")
        with pytest.raises(InvalidInputError):
            await sessions.add_to_working_memory(session.id, content)
        assert session.working_memory == []

    @pytest.mark.asyncio
    async def test_activation_from_focus_and_context(self, sessions):
        session = sessions.start_session("user-1")
        plain = await sessions.add_to_working_memory(session.id, "plain")
        boosted = await sessions.add_to_working_memory(session.id, "boosted", {"topic": "x"})
        assert plain.activation == pytest.approx(0.5)
        assert boosted.activation == pytest.approx(0.6)
        assert boosted.context == {"topic": "x"}

    @pytest.mark.asyncio
    async def test_activation_clamped(self, sessions):
        session = sessions.start_session("user-1", attention_focus=1.0)
        item = await sessions.add_to_working_memory(session.id, "boosted", {"topic": "x"})
        assert item.activation == 1.0

    @pytest.mark.asyncio
    async def test_capacity_plus_one_evicts_oldest_on_tie(self, sessions):
        session = sessions.start_session("user-1")
        items = [await sessions.add_to_working_memory(session.id, f"item {i}") for i in range(4)]

        assert session.working_memory == items[1:]
        assert session.short_term_memory == [items[0]]
        assert sessions.get_stats()["evicted"] == 1

    @pytest.mark.asyncio
    async def test_lowest_activation_evicted_survivors_keep_order(self, sessions):
        session = sessions.start_session("user-1")
        a = await sessions.add_to_working_memory(session.id, "a", {"k": 1})
        b = await sessions.add_to_working_memory(session.id, "b")
        c = await sessions.add_to_working_memory(session.id, "c", {"k": 1})
        d = await sessions.add_to_working_memory(session.id, "d", {"k": 1})

        assert session.working_memory == [a, c, d]
        assert session.short_term_memory == [b]

    @pytest.mark.asyncio
    async def test_low_activation_discarded(self, sessions):
        session = sessions.start_session("user-1", attention_focus=0.25)
        for i in range(4):
            await sessions.add_to_working_memory(session.id, f"item {i}")

        assert len(session.working_memory) == 3
        assert session.short_term_memory == []
        assert sessions.get_stats()["discarded"] == 1

    @pytest.mark.asyncio
    async def test_activation_at_threshold_discarded(self, embeddings, graph, clock):
        config = MemoryConfig(capacity=1, attention_focus=0.3, decay_rate_per_hour=0.0)
        manager = MemorySessionManager(embeddings, graph, config=config, clock=clock)
        session = manager.start_session("user-1")
        await manager.add_to_working_memory(session.id, "first")
        await manager.add_to_working_memory(session.id, "second")
        assert session.short_term_memory == []

    @pytest.mark.asyncio
    async def test_decay_drives_eviction(self, sessions, clock):
        session = sessions.start_session("user-1")
        old = await sessions.add_to_working_memory(session.id, "old", {"k": 1})
        clock.advance(hours=10)
        fresh = [await sessions.add_to_working_memory(session.id, f"fresh {i}") for i in range(3)]

        # 0.6 * exp(-1.0) ~= 0.22: lowest, and below the retention threshold
        assert session.working_memory == fresh
        assert session.short_term_memory == []
        assert old.activation == pytest.approx(0.6 * math.exp(-1.0))


class TestDecay:

    def _item(self, clock, activation=1.0):
        return MemoryItem(
            content="x",
            embedding=np.zeros(4),
            initial_activation=activation,
            activation=activation,
            timestamp=clock(),
        )

    def test_one_hour(self, clock):
        item = self._item(clock)
        assert decayed_activation(item, clock.now + timedelta(hours=1), 0.1) == pytest.approx(math.exp(-0.1))

    def test_no_elapsed_time(self, clock):
        item = self._item(clock, 0.4)
        assert decayed_activation(item, clock.now, 0.1) == pytest.approx(0.4)

    def test_future_timestamp_does_not_grow(self, clock):
        item = self._item(clock, 0.4)
        assert decayed_activation(item, clock.now - timedelta(hours=5), 0.1) == pytest.approx(0.4)

    def test_zero_rate(self, clock):
        item = self._item(clock, 0.4)
        assert decayed_activation(item, clock.now + timedelta(days=30), 0.0) == pytest.approx(0.4)


# =============================================================================
# Recall
# =============================================================================

class TestRecall:

    @pytest.mark.asyncio
    async def test_recall_ranks_and_counts(self, sessions):
        session = sessions.start_session("user-1", capacity=10)
        target = await sessions.add_to_working_memory(session.id, "the user prefers metric units")
        other = await sessions.add_to_working_memory(session.id, "completely unrelated note")

        recalled = await sessions.recall(session.id, "the user prefers metric units", top_k=1)
        assert recalled == [target]
        assert target.retrieval_count == 1
        assert other.retrieval_count == 0

    @pytest.mark.asyncio
    async def test_recall_searches_short_term(self, sessions):
        session = sessions.start_session("user-1")
        first = await sessions.add_to_working_memory(session.id, "evicted note")
        for i in range(3):
            await sessions.add_to_working_memory(session.id, f"filler {i}")
        assert session.short_term_memory == [first]

        recalled = await sessions.recall(session.id, "evicted note", top_k=1)
        assert recalled == [first]

    @pytest.mark.asyncio
    async def test_invalid_top_k(self, sessions):
        session = sessions.start_session("user-1")
        with pytest.raises(InvalidInputError):
            await sessions.recall(session.id, "x", top_k=0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", [5, None, ["note"]])
    async def test_rejects_non_string_query(self, sessions, query):
        session = sessions.start_session("user-1")
        await sessions.add_to_working_memory(session.id, "note")
        with pytest.raises(InvalidInputError):
            await sessions.recall(session.id, query)


# =============================================================================
# Consolidation
# =============================================================================

async def _short_term_item(sessions, content="remember this"):
    """One item with activation 1.0 in short-term memory, recalled three times."""
    session = sessions.start_session("user-1", capacity=1, attention_focus=1.0)
    item = await sessions.add_to_working_memory(session.id, content, {"k": 1})
    await sessions.add_to_working_memory(session.id, "pushes the first one out", {"k": 1})
    assert session.short_term_memory == [item]
    for _ in range(3):
        await sessions.recall(session.id, content, top_k=2)
    return session, item


class TestConsolidation:

    @pytest.mark.asyncio
    async def test_consolidates_qualifying_item(self, sessions, graph, clock):
        session, item = await _short_term_item(sessions)
        clock.advance(hours=2)

        assert await sessions.consolidate_memory(session.id) == 1
        assert session.short_term_memory == []

        node = graph.nodes()[0]
        assert node.type is KnowledgeType.EXPERIENTIAL
        assert node.content == item.content
        assert node.source_id == item.id
        assert node.importance == pytest.approx(math.exp(-0.2))
        assert node.metadata["session_id"] == session.id
        assert node.metadata["retrieval_count"] == 3
        assert np.array_equal(node.embedding, item.embedding)
        assert node.embedding is not item.embedding

    @pytest.mark.asyncio
    async def test_consolidation_is_idempotent(self, sessions, graph, clock):
        session, _ = await _short_term_item(sessions)
        clock.advance(hours=2)

        assert await sessions.consolidate_memory(session.id) == 1
        assert await sessions.consolidate_memory(session.id) == 0
        assert len(graph) == 1

    @pytest.mark.asyncio
    async def test_too_young(self, sessions, clock):
        session, _ = await _short_term_item(sessions)
        clock.advance(minutes=30)
        assert await sessions.consolidate_memory(session.id) == 0
        assert len(session.short_term_memory) == 1

    @pytest.mark.asyncio
    async def test_decayed_below_activation_threshold(self, sessions, clock):
        session, _ = await _short_term_item(sessions)
        # exp(-0.4) ~= 0.67
        clock.advance(hours=4)
        assert await sessions.consolidate_memory(session.id) == 0

    @pytest.mark.asyncio
    async def test_not_recalled_enough(self, sessions, clock):
        session, item = await _short_term_item(sessions)
        item.retrieval_count = 2
        clock.advance(hours=2)
        assert await sessions.consolidate_memory(session.id) == 0

    @pytest.mark.asyncio
    async def test_unknown_session(self, sessions):
        with pytest.raises(SessionNotFoundError):
            await sessions.consolidate_memory("missing")

    @pytest.mark.asyncio
    async def test_prune_decayed(self, sessions, clock):
        session = sessions.start_session("user-1")
        for i in range(4):
            await sessions.add_to_working_memory(session.id, f"item {i}")
        assert len(session.short_term_memory) == 1

        assert await sessions.prune_decayed(session.id) == 0
        clock.advance(hours=10)
        assert await sessions.prune_decayed(session.id) == 1
        assert session.short_term_memory == []


# =============================================================================
# Locking
# =============================================================================

class TestLocking:

    @pytest.mark.asyncio
    async def test_same_session_is_serialized(self, registry, sessions):
        embedder = InFlightEmbedder()
        registry.register(Capability.EMBEDDING, embedder)
        session = sessions.start_session("user-1")

        await asyncio.gather(*[
            sessions.add_to_working_memory(session.id, f"item {i}") for i in range(5)
        ])
        assert embedder.max_in_flight == 1
        assert len(session.working_memory) == 3
        assert len(session.short_term_memory) == 2

    @pytest.mark.asyncio
    async def test_different_sessions_run_concurrently(self, registry, sessions):
        embedder = InFlightEmbedder()
        registry.register(Capability.EMBEDDING, embedder)
        first = sessions.start_session("user-1")
        second = sessions.start_session("user-2")

        await asyncio.gather(
            sessions.add_to_working_memory(first.id, "a"),
            sessions.add_to_working_memory(second.id, "b"),
        )
        assert embedder.max_in_flight == 2

    def test_stats(self, sessions):
        sessions.start_session("user-1")
        stats = sessions.get_stats()
        assert stats["memory_sessions"] == 1
        assert stats["working_items"] == 0
