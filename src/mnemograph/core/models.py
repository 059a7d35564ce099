"""
Knowledge & Memory Models
=========================
Data classes for the long-term knowledge graph (nodes, relations, concept
clusters) and the per-user memory tiers (working / short-term).

Embeddings are float64 numpy arrays of the configured dimensionality.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _empty_vector() -> np.ndarray:
    return np.zeros(0, dtype=np.float64)


class KnowledgeType(Enum):
    FACTUAL = "FACTUAL"
    PROCEDURAL = "PROCEDURAL"
    CONCEPTUAL = "CONCEPTUAL"
    METACOGNITIVE = "METACOGNITIVE"
    EXPERIENTIAL = "EXPERIENTIAL"
    CONTEXTUAL = "CONTEXTUAL"
    TEMPORAL = "TEMPORAL"
    CAUSAL = "CAUSAL"


class RelationType(Enum):
    IS_A = "IS_A"
    PART_OF = "PART_OF"
    CAUSES = "CAUSES"
    ENABLES = "ENABLES"
    SIMILAR_TO = "SIMILAR_TO"
    OPPOSITE_OF = "OPPOSITE_OF"
    DEPENDS_ON = "DEPENDS_ON"
    PRECEDES = "PRECEDES"
    FOLLOWS = "FOLLOWS"
    CONTAINS = "CONTAINS"


class ValidationStatus(Enum):
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    DISPUTED = "DISPUTED"
    DEPRECATED = "DEPRECATED"
    ARCHIVED = "ARCHIVED"


class ConceptCategory(Enum):
    ABSTRACT = "ABSTRACT"
    CONCRETE = "CONCRETE"
    TEMPORAL = "TEMPORAL"
    SPATIAL = "SPATIAL"
    CAUSAL = "CAUSAL"
    FUNCTIONAL = "FUNCTIONAL"
    TAXONOMIC = "TAXONOMIC"
    THEMATIC = "THEMATIC"


# --- Knowledge Graph ---

@dataclass(frozen=True)
class KnowledgeRelation:
    """
    A directed, typed edge between two knowledge nodes.

    Relations are immutable once established. The graph may contain cycles.
    """
    source_id: str
    target_id: str
    relation_type: RelationType
    strength: float = 0.5
    confidence: float = 0.0
    id: str = field(default_factory=_new_id)
    established_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "relation_type": self.relation_type.value,
            "strength": self.strength,
            "confidence": self.confidence,
            "established_at": self.established_at.isoformat(),
        }


@dataclass
class KnowledgeNode:
    """
    A unit of long-term knowledge.

    Fields:
        id: Unique identifier.
        content: Full text content.
        type: KnowledgeType of the content.
        tags: Ordered, de-duplicated keywords.
        relations: Outgoing relations (this node is always the source).
        embedding: Vector of the configured dimensionality.
        confidence: 0.0-1.0 belief in the content.
        importance: 0.0-1.0 estimated importance.
        access_count: Number of times returned by retrieval.
        validation_status: Lifecycle status; ARCHIVED ends the node's life.
        source_id: Provenance, e.g. the memory item a consolidated node came from.
    """
    content: str
    type: KnowledgeType = KnowledgeType.FACTUAL
    id: str = field(default_factory=_new_id)
    tags: List[str] = field(default_factory=list)
    relations: List[KnowledgeRelation] = field(default_factory=list)
    embedding: np.ndarray = field(default_factory=_empty_vector)
    confidence: float = 0.0
    importance: float = 0.0
    created_at: datetime = field(default_factory=_utcnow)
    last_accessed: datetime = field(default_factory=_utcnow)
    access_count: int = 0
    validation_status: ValidationStatus = ValidationStatus.PENDING
    metadata: Dict[str, Any] = field(default_factory=dict)
    source_id: Optional[str] = None

    def access(self) -> None:
        """Record a retrieval."""
        self.access_count += 1
        self.last_accessed = _utcnow()

    @property
    def is_archived(self) -> bool:
        return self.validation_status is ValidationStatus.ARCHIVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "type": self.type.value,
            "tags": list(self.tags),
            "relations": [r.to_dict() for r in self.relations],
            "embedding_dim": int(self.embedding.shape[0]),
            "confidence": self.confidence,
            "importance": self.importance,
            "created_at": self.created_at.isoformat(),
            "last_accessed": self.last_accessed.isoformat(),
            "access_count": self.access_count,
            "validation_status": self.validation_status.value,
            "metadata": dict(self.metadata),
            "source_id": self.source_id,
        }


@dataclass
class ConceptCluster:
    """A group of nodes whose centroid is the mean of the members' embeddings."""
    name: str
    centroid: np.ndarray
    category: ConceptCategory = ConceptCategory.ABSTRACT
    id: str = field(default_factory=_new_id)
    node_ids: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    last_updated: datetime = field(default_factory=_utcnow)

    @property
    def size(self) -> int:
        return len(self.node_ids)


@dataclass
class ScoredNode:
    node: KnowledgeNode
    score: float


@dataclass
class ReasoningResult:
    question: str
    answer: str
    confidence: float
    supporting_node_ids: List[str] = field(default_factory=list)
    reasoning_steps: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_utcnow)


# --- Working / Short-Term Memory ---

@dataclass
class MemoryItem:
    """
    A single entry in a session's working or short-term memory.

    ``initial_activation`` is the activation at ``timestamp``; ``activation``
    holds the most recently computed decayed value.
    """
    content: str
    embedding: np.ndarray
    initial_activation: float
    activation: float
    id: str = field(default_factory=_new_id)
    retrieval_count: int = 0
    timestamp: datetime = field(default_factory=_utcnow)
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MemorySession:
    user_id: str
    capacity: int = 100
    attention_focus: float = 0.5
    id: str = field(default_factory=_new_id)
    working_memory: List[MemoryItem] = field(default_factory=list)
    short_term_memory: List[MemoryItem] = field(default_factory=list)
    context_state: Dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)
