"""
Knowledge Graph Store
=====================
Owns knowledge nodes and their relations.

Storing content:
    embed → estimate importance → extract tags → link SIMILAR_TO existing
    nodes above the relation threshold → update concept clusters → insert.

Retrieving:
    embed query → cosine-rank every node → optional predictor re-rank
    (multiplicative, clamped at 0) → stable sort descending → top-K →
    record access on the returned nodes.

All awaited work (embedding and predictor calls) happens before the first
mutation, and the commit phase never awaits. A cancelled or failed call
therefore leaves nodes, relations and clusters untouched.

Relations are directional: the new node points at the older nodes it
resembles. ``KnowledgeConfig.bidirectional_relations`` adds the reverse edge
as well.
"""

from __future__ import annotations

import math
import re
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set

import numpy as np
from loguru import logger

from .clustering import ConceptClusterer
from .config import KnowledgeConfig
from .embeddings import EmbeddingProvider
from .exceptions import DimensionMismatchError, InvalidInputError, NodeNotFoundError
from .models import (
    KnowledgeNode,
    KnowledgeRelation,
    KnowledgeType,
    ReasoningResult,
    RelationType,
    ScoredNode,
    ValidationStatus,
)
from .predictors import (
    Capability,
    ImportanceRequest,
    ImportanceResult,
    PredictorRegistry,
    RankingRequest,
    RankingResult,
    ReasoningAnswer,
    ReasoningRequest,
    TagExtractionRequest,
    TagExtractionResult,
)
from .similarity import SimilaritySearchEngine

MAX_TAGS = 5
MIN_TAG_LENGTH = 4
FALLBACK_REASONING_CONFIDENCE = 0.6

_WORD_SPLIT = re.compile(r"\W+")


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _finite(value: Any) -> float:
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite value {value!r}")
    return number


# Predictor payload coercions. They run inside PredictorRegistry.invoke, so a
# payload that fails here is recorded as a predictor failure and falls back.

def _coerce_importance(result: ImportanceResult) -> float:
    return _clamp01(_finite(result.importance))


def _coerce_tags(result: TagExtractionResult) -> List[str]:
    if isinstance(result.tags, (str, bytes)):
        raise TypeError("tags must be a sequence of strings")
    tags: List[str] = []
    for tag in result.tags:
        if not isinstance(tag, str):
            raise TypeError(f"tag {tag!r} is not a string")
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _coerce_adjustments(result: RankingResult) -> List[float]:
    return [_finite(factor) for factor in result.adjustments]


def _coerce_answer(result: ReasoningAnswer) -> ReasoningAnswer:
    if not isinstance(result.answer, str):
        raise TypeError(f"answer must be a string, got {type(result.answer).__name__}")
    return ReasoningAnswer(
        answer=result.answer,
        confidence=_clamp01(_finite(result.confidence)),
        reasoning_steps=[str(step) for step in result.reasoning_steps],
    )


def fallback_importance(content: str, metadata: Optional[Dict[str, Any]] = None) -> float:
    """0.5 base, up to +0.3 for length, +0.05 per metadata entry, capped at 1.0."""
    importance = 0.5
    importance += min(0.3, len(content) / 1000.0)
    importance += len(metadata or {}) * 0.05
    return min(1.0, importance)


def fallback_tags(content: str) -> List[str]:
    """Lowercased words longer than three characters, first occurrences, at most five."""
    tags: List[str] = []
    for word in _WORD_SPLIT.split(content.lower()):
        if len(word) >= MIN_TAG_LENGTH and word not in tags:
            tags.append(word)
            if len(tags) == MAX_TAGS:
                break
    return tags


class KnowledgeGraphStore:

    def __init__(
        self,
        embeddings: EmbeddingProvider,
        registry: Optional[PredictorRegistry] = None,
        config: Optional[KnowledgeConfig] = None,
        similarity: Optional[SimilaritySearchEngine] = None,
        clusterer: Optional[ConceptClusterer] = None,
    ):
        self.embeddings = embeddings
        self.dimension = embeddings.dimension
        self.registry = registry or embeddings.registry
        self.config = config or KnowledgeConfig()
        self.similarity = similarity or SimilaritySearchEngine()
        self._nodes: Dict[str, KnowledgeNode] = {}
        self._incoming: Dict[str, List[KnowledgeRelation]] = defaultdict(list)
        self._tag_index: Dict[str, Set[str]] = defaultdict(set)
        self.clusterer = clusterer or ConceptClusterer(
            self._embedding_of,
            threshold=self.config.cluster_threshold,
            similarity=self.similarity,
        )

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def _embedding_of(self, node_id: str) -> Optional[np.ndarray]:
        node = self._nodes.get(node_id)
        return node.embedding if node is not None else None

    # ---- Store --------------------------------------------------- #

    async def store_knowledge(
        self,
        content: str,
        type: KnowledgeType = KnowledgeType.FACTUAL,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> KnowledgeNode:
        if not isinstance(content, str) or not content.strip():
            raise InvalidInputError("content", "content must be a non-empty string", content)
        metadata = dict(metadata or {})

        embedding = await self.embeddings.embed(content)
        importance = await self._estimate_importance(content, type, metadata)
        tags = await self._extract_tags(content)

        node = KnowledgeNode(
            content=content,
            type=type,
            embedding=embedding,
            importance=importance,
            tags=tags,
            metadata=metadata,
        )
        self._commit(node)
        logger.info(f"Stored knowledge node {node.id} ({type.value}) importance={importance:.3f} tags={tags}")
        return node

    def insert_node(self, node: KnowledgeNode) -> KnowledgeNode:
        """
        Insert a fully formed node (e.g. a consolidated memory item).

        The node is linked and clustered exactly like stored content.
        Re-inserting an id that is already present is a no-op.
        """
        embedding = np.asarray(node.embedding, dtype=np.float64).ravel()
        if embedding.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, int(embedding.shape[0]), "insert_node")
        if node.id in self._nodes:
            logger.debug(f"Node {node.id} already present; insert skipped")
            return self._nodes[node.id]
        node.embedding = embedding
        node.importance = _clamp01(node.importance)
        self._commit(node)
        logger.info(f"Inserted knowledge node {node.id} ({node.type.value}) importance={node.importance:.3f}")
        return node

    def _commit(self, node: KnowledgeNode) -> None:
        """Link, cluster and insert. Runs without awaiting."""
        reverse: List[KnowledgeRelation] = []
        for existing in self._nodes.values():
            sim = self.similarity.cosine_similarity(node.embedding, existing.embedding)
            if sim > self.config.relation_threshold:
                strength = _clamp01(sim)
                node.relations.append(KnowledgeRelation(
                    source_id=node.id,
                    target_id=existing.id,
                    relation_type=RelationType.SIMILAR_TO,
                    strength=strength,
                    confidence=strength,
                ))
                if self.config.bidirectional_relations:
                    reverse.append(KnowledgeRelation(
                        source_id=existing.id,
                        target_id=node.id,
                        relation_type=RelationType.SIMILAR_TO,
                        strength=strength,
                        confidence=strength,
                    ))

        self.clusterer.assign(node, extra={node.id: node.embedding})

        self._nodes[node.id] = node
        for rel in node.relations:
            self._incoming[rel.target_id].append(rel)
        for rel in reverse:
            self._nodes[rel.source_id].relations.append(rel)
            self._incoming[rel.target_id].append(rel)
        for tag in node.tags:
            self._tag_index[tag].add(node.id)

        if node.relations:
            logger.debug(f"Node {node.id[:8]} linked SIMILAR_TO {len(node.relations)} existing node(s)")

    async def _estimate_importance(
        self, content: str, type: KnowledgeType, metadata: Dict[str, Any]
    ) -> float:
        importance = await self.registry.invoke(
            Capability.IMPORTANCE,
            ImportanceRequest(content=content, knowledge_type=type.value, metadata_count=len(metadata)),
            ImportanceResult,
            _coerce_importance,
        )
        if importance is not None:
            return importance
        return fallback_importance(content, metadata)

    async def _extract_tags(self, content: str) -> List[str]:
        tags = await self.registry.invoke(
            Capability.TAG_EXTRACTION, TagExtractionRequest(text=content), TagExtractionResult, _coerce_tags
        )
        if tags is not None:
            return tags
        return fallback_tags(content)

    # ---- Retrieve ------------------------------------------------ #

    async def retrieve_scored(
        self,
        query: str,
        max_results: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> List[ScoredNode]:
        if not isinstance(query, str) or not query.strip():
            raise InvalidInputError("query", "query must be a non-empty string", query)
        if max_results is None:
            max_results = self.config.default_max_results
        if max_results < 1:
            raise InvalidInputError("max_results", "must be at least 1", max_results)

        query_embedding = await self.embeddings.embed(query)
        live = [n for n in self._nodes.values() if not n.is_archived]
        scored = self.similarity.rank(live, query_embedding)
        scored = await self._rerank(scored, query, context or {})
        results = self.similarity.top_k(scored, max_results)

        for item in results:
            item.node.access()
        logger.debug(f"Retrieved {len(results)} knowledge nodes for query: {query[:60]}")
        return results

    async def retrieve_knowledge(
        self,
        query: str,
        max_results: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> List[KnowledgeNode]:
        return [s.node for s in await self.retrieve_scored(query, max_results, context)]

    async def _rerank(
        self, scored: List[ScoredNode], query: str, context: Dict[str, Any]
    ) -> List[ScoredNode]:
        if not scored:
            return scored
        adjustments = await self.registry.invoke(
            Capability.RANKING,
            RankingRequest(
                query=query,
                candidate_contents=[s.node.content for s in scored],
                scores=[s.score for s in scored],
                context=dict(context),
            ),
            RankingResult,
            _coerce_adjustments,
        )
        if adjustments is None:
            return scored
        adjusted = []
        for i, item in enumerate(scored):
            factor = adjustments[i] if i < len(adjustments) else 1.0
            adjusted.append(ScoredNode(node=item.node, score=max(0.0, item.score * factor)))
        return adjusted

    # ---- Reasoning ----------------------------------------------- #

    async def reason_about_knowledge(self, question: str, context_node_ids: Iterable[str]) -> ReasoningResult:
        """Answer ``question`` from the given nodes; unknown ids are skipped."""
        nodes = [self._nodes[nid] for nid in context_node_ids if nid in self._nodes]
        supporting = [n.id for n in nodes]

        answer = await self.registry.invoke(
            Capability.REASONING,
            ReasoningRequest(
                question=question,
                context_content=" ".join(n.content for n in nodes).strip(),
                context_node_count=len(nodes),
            ),
            ReasoningAnswer,
            _coerce_answer,
        )
        if answer is not None:
            return ReasoningResult(
                question=question,
                answer=answer.answer,
                confidence=answer.confidence,
                supporting_node_ids=supporting,
                reasoning_steps=answer.reasoning_steps,
            )

        return ReasoningResult(
            question=question,
            answer="Based on available knowledge: " + "; ".join(n.content for n in nodes),
            confidence=FALLBACK_REASONING_CONFIDENCE,
            supporting_node_ids=supporting,
            reasoning_steps=[f"Collected {len(nodes)} context node(s)"],
        )

    # ---- Lookups ------------------------------------------------- #

    def get_node(self, node_id: str) -> KnowledgeNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def find_node(self, node_id: str) -> Optional[KnowledgeNode]:
        return self._nodes.get(node_id)

    def nodes(self) -> List[KnowledgeNode]:
        return list(self._nodes.values())

    def get_relations(self, node_id: str) -> List[KnowledgeRelation]:
        return list(self.get_node(node_id).relations)

    def get_incoming_relations(self, node_id: str) -> List[KnowledgeRelation]:
        self.get_node(node_id)
        return list(self._incoming.get(node_id, []))

    def find_by_tag(self, tag: str) -> List[KnowledgeNode]:
        return [self._nodes[nid] for nid in sorted(self._tag_index.get(tag, ())) if nid in self._nodes]

    def set_validation_status(self, node_id: str, status: ValidationStatus) -> KnowledgeNode:
        node = self.get_node(node_id)
        node.validation_status = status
        logger.info(f"Node {node_id} validation status → {status.value}")
        return node

    def archive_node(self, node_id: str) -> KnowledgeNode:
        return self.set_validation_status(node_id, ValidationStatus.ARCHIVED)

    def get_stats(self) -> Dict[str, Any]:
        nodes = list(self._nodes.values())
        return {
            "knowledge_nodes": len(nodes),
            "relations": sum(len(n.relations) for n in nodes),
            "concept_clusters": len(self.clusterer),
            "average_importance": float(np.mean([n.importance for n in nodes])) if nodes else 0.0,
            "archived_nodes": sum(1 for n in nodes if n.is_archived),
        }
