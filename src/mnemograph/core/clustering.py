"""
Online Concept Clustering
=========================
Single-pass clustering of node embeddings as nodes are stored.

For each new node:
  1. Cosine similarity between the node embedding and every cluster centroid.
  2. Best match above ``threshold`` → join it and recompute the centroid as
     the arithmetic mean of all member embeddings.
  3. Otherwise → new singleton cluster whose centroid is a copy of the
     node embedding.

Cost is O(#clusters) per insertion plus O(|cluster| × D) for the centroid
update. For large corpora the centroid scan in ``_best_match`` is the step to
swap for an approximate nearest-neighbour index; ``assign`` keeps the same
interface.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from .exceptions import ClusterNotFoundError
from .models import ConceptCategory, ConceptCluster, KnowledgeNode
from .similarity import SimilaritySearchEngine

EmbeddingLookup = Callable[[str], Optional[np.ndarray]]


class ConceptClusterer:
    """
    Args:
        embedding_lookup: Resolves a member node id to its embedding; used to
            recompute centroids from the members themselves.
        threshold: Minimum centroid similarity (exclusive) to join a cluster.
    """

    def __init__(
        self,
        embedding_lookup: EmbeddingLookup,
        threshold: float = 0.6,
        similarity: Optional[SimilaritySearchEngine] = None,
    ):
        self._lookup = embedding_lookup
        self.threshold = threshold
        self._similarity = similarity or SimilaritySearchEngine()
        self._clusters: Dict[str, ConceptCluster] = {}
        self._membership: Dict[str, str] = {}
        self._seq = 0

    def __len__(self) -> int:
        return len(self._clusters)

    def clusters(self) -> List[ConceptCluster]:
        return list(self._clusters.values())

    def get_cluster(self, cluster_id: str) -> ConceptCluster:
        cluster = self._clusters.get(cluster_id)
        if cluster is None:
            raise ClusterNotFoundError(cluster_id)
        return cluster

    def cluster_of(self, node_id: str) -> Optional[ConceptCluster]:
        cluster_id = self._membership.get(node_id)
        return self._clusters.get(cluster_id) if cluster_id else None

    def assign(self, node: KnowledgeNode, extra: Optional[Dict[str, np.ndarray]] = None) -> ConceptCluster:
        """
        Place ``node`` into its best cluster or a new one.

        ``extra`` maps node ids to embeddings not yet visible through the
        lookup (the node being stored is committed after clustering).
        """
        if node.id in self._membership:
            return self._clusters[self._membership[node.id]]

        best, best_sim = self._best_match(node.embedding)
        if best is not None:
            best.node_ids.append(node.id)
            self._membership[node.id] = best.id
            pending = dict(extra or {})
            pending[node.id] = node.embedding
            self._recompute_centroid(best, pending)
            logger.debug(f"Node {node.id[:8]} joined cluster {best.name} (sim={best_sim:.3f}, size={best.size})")
            return best

        self._seq += 1
        cluster = ConceptCluster(
            name=f"Cluster_{self._seq}",
            centroid=np.array(node.embedding, dtype=np.float64, copy=True),
            category=ConceptCategory.ABSTRACT,
            node_ids=[node.id],
        )
        self._clusters[cluster.id] = cluster
        self._membership[node.id] = cluster.id
        logger.debug(f"Node {node.id[:8]} started cluster {cluster.name}")
        return cluster

    def _best_match(self, embedding: np.ndarray) -> Tuple[Optional[ConceptCluster], float]:
        best: Optional[ConceptCluster] = None
        best_sim = self.threshold
        for cluster in self._clusters.values():
            sim = self._similarity.cosine_similarity(embedding, cluster.centroid)
            if sim > best_sim:
                best, best_sim = cluster, sim
        return best, best_sim

    def _recompute_centroid(self, cluster: ConceptCluster, pending: Dict[str, np.ndarray]) -> None:
        vectors = []
        for node_id in cluster.node_ids:
            vec = pending.get(node_id)
            if vec is None:
                vec = self._lookup(node_id)
            if vec is not None:
                vectors.append(vec)
        if vectors:
            cluster.centroid = np.mean(np.vstack(vectors), axis=0)
        cluster.last_updated = datetime.now(timezone.utc)

    def stats(self) -> Dict[str, float]:
        sizes = [c.size for c in self._clusters.values()]
        return {
            "cluster_count": len(sizes),
            "largest_cluster": max(sizes) if sizes else 0,
            "mean_cluster_size": float(np.mean(sizes)) if sizes else 0.0,
        }
