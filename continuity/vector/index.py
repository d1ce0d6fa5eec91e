"""
Similarity index: brute-force cosine search over stored vector entries with
an injectable metadata predicate, a result limit and a minimum score.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .embeddings import IEmbeddingProvider, LetterFrequencyEmbedding
from .types import SearchHit, VectorEntry
from ..core.errors import DimensionMismatchError
from ..util.logging import logger

MetadataPredicate = Callable[[Dict[str, Any]], bool]

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SEARCH_THRESHOLD = 0.5


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm and raises
    DimensionMismatchError when the lengths differ.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape != b.shape:
        raise DimensionMismatchError(len(a), len(b))

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(a, b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


class IVectorIndex(ABC):
    """Abstract interface for vector index operations."""

    @abstractmethod
    def add_vector(self, text: str, vector: Sequence[float],
                   metadata: Optional[Dict[str, Any]] = None) -> VectorEntry:
        """Store a precomputed vector."""
        pass

    @abstractmethod
    def search_vector(self, query_vector: Sequence[float], limit: int = DEFAULT_SEARCH_LIMIT,
                      threshold: float = DEFAULT_SEARCH_THRESHOLD,
                      predicate: Optional[MetadataPredicate] = None) -> List[SearchHit]:
        """Rank stored vectors against query_vector."""
        pass

    @abstractmethod
    def remove(self, entry_id: str) -> bool:
        """Delete an entry by id. Returns True if it existed."""
        pass

    @abstractmethod
    def get(self, entry_id: str) -> Optional[VectorEntry]:
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all entries from the index."""
        pass

    @abstractmethod
    def size(self) -> int:
        pass


class SimpleInMemoryVectorIndex(IVectorIndex):
    """In-memory index that embeds text through a pluggable provider."""

    def __init__(self, embedding_provider: Optional[IEmbeddingProvider] = None):
        self.embedding_provider = embedding_provider or LetterFrequencyEmbedding()
        self._entries: Dict[str, VectorEntry] = {}
        self._dimension: Optional[int] = None
        self._lock = threading.RLock()

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def check_dimension(self, vector: Sequence[float]) -> None:
        """Raise DimensionMismatchError if vector cannot be stored in this index."""
        with self._lock:
            if self._dimension is not None and len(vector) != self._dimension:
                raise DimensionMismatchError(len(vector), self._dimension)

    # Text-level operations

    async def add(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> VectorEntry:
        """Embed text and store the resulting entry."""
        vector = await self.embedding_provider.embed_text(text)
        return self.add_vector(text, vector, metadata)

    async def search(self, query_text: str, limit: int = DEFAULT_SEARCH_LIMIT,
                     threshold: float = DEFAULT_SEARCH_THRESHOLD) -> List[SearchHit]:
        query_vector = await self.embedding_provider.embed_text(query_text)
        return self.search_vector(query_vector, limit, threshold)

    async def search_with_filter(self, query_text: str, predicate: MetadataPredicate,
                                 limit: int = DEFAULT_SEARCH_LIMIT,
                                 threshold: float = DEFAULT_SEARCH_THRESHOLD) -> List[SearchHit]:
        """Like search, but only entries whose metadata satisfies predicate are scored."""
        query_vector = await self.embedding_provider.embed_text(query_text)
        return self.search_vector(query_vector, limit, threshold, predicate)

    # Vector-level operations

    def add_vector(self, text: str, vector: Sequence[float],
                   metadata: Optional[Dict[str, Any]] = None) -> VectorEntry:
        values = [float(x) for x in vector]
        with self._lock:
            if self._dimension is None:
                self._dimension = len(values)
            elif len(values) != self._dimension:
                raise DimensionMismatchError(len(values), self._dimension)

            entry = VectorEntry(
                id=str(uuid.uuid4()),
                source_text=text,
                vector=values,
                metadata=dict(metadata or {})
            )
            self._entries[entry.id] = entry

        logger.log_vector_operation("added", entry.id, {
            "record_id": entry.record_id,
            "dimension": len(values)
        })
        return entry

    def search_vector(self, query_vector: Sequence[float], limit: int = DEFAULT_SEARCH_LIMIT,
                      threshold: float = DEFAULT_SEARCH_THRESHOLD,
                      predicate: Optional[MetadataPredicate] = None) -> List[SearchHit]:
        if limit <= 0:
            return []

        with self._lock:
            candidates = list(self._entries.values())

        if predicate is not None:
            candidates = [entry for entry in candidates if predicate(entry.metadata)]

        hits: List[SearchHit] = []
        for entry in candidates:
            try:
                score = cosine_similarity(query_vector, entry.vector)
            except DimensionMismatchError as e:
                logger.log_vector_operation("scored", entry.id, {"error": str(e)}, status="skipped")
                continue
            if score >= threshold:
                hits.append(SearchHit(entry=entry, score=score))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    def remove(self, entry_id: str) -> bool:
        with self._lock:
            removed = self._entries.pop(entry_id, None) is not None
        if removed:
            logger.log_vector_operation("removed", entry_id)
        return removed

    def remove_by_record(self, record_id: str) -> int:
        """Remove every entry that points at record_id. Returns how many were removed."""
        with self._lock:
            doomed = [e.id for e in self._entries.values() if e.record_id == record_id]
            for entry_id in doomed:
                del self._entries[entry_id]
        return len(doomed)

    def get(self, entry_id: str) -> Optional[VectorEntry]:
        with self._lock:
            return self._entries.get(entry_id)

    def entries(self) -> List[VectorEntry]:
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._dimension = None

    def size(self) -> int:
        with self._lock:
            return len(self._entries)
