"""
Retrieval over the record store and the similarity index.

Key lookups are direct store queries. Semantic lookups embed the query,
search the index restricted by metadata, then join every hit back to the
canonical record store; hits whose record no longer exists are dropped.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .errors import EmbeddingProviderError
from .schema import KnowledgeRecord, USER_DATA_PREFIX, user_data_category
from .store import RecordStore
from ..util.logging import logger
from ..vector.index import MetadataPredicate, SimpleInMemoryVectorIndex
from ..vector.types import VectorEntry

DEFAULT_RETRIEVAL_LIMIT = 5
DEFAULT_RETRIEVAL_THRESHOLD = 0.5


@dataclass
class RetrievalHit:
    """A knowledge record paired with its similarity to the query."""
    record: KnowledgeRecord
    score: float
    entry_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record": self.record.to_dict(),
            "score": self.score,
            "entry_id": self.entry_id,
        }


@dataclass
class KeyedFact:
    """Result of an exact key lookup; value is None when the key is unknown."""
    key: str
    value: Optional[str]
    record: Optional[KnowledgeRecord] = None

    @property
    def found(self) -> bool:
        return self.record is not None


def record_metadata(record: KnowledgeRecord) -> Dict[str, Any]:
    """Metadata stored with a record's vector entry; enough to map a hit back."""
    return {
        "record_id": record.id,
        "scope": record.scope,
        "category": record.category,
        "priority": record.priority.value if record.priority else None,
        "created_at": record.created_at.isoformat(),
        "modified_at": record.modified_at.isoformat(),
    }


class RetrievalEngine:
    """Exact-key and semantic lookups scoped to a conversation."""

    def __init__(self, store: RecordStore, index: SimpleInMemoryVectorIndex,
                 default_limit: int = DEFAULT_RETRIEVAL_LIMIT,
                 default_threshold: float = DEFAULT_RETRIEVAL_THRESHOLD):
        self.store = store
        self.index = index
        self.default_limit = default_limit
        self.default_threshold = default_threshold

    async def embed(self, text: str) -> List[float]:
        """Embed text, surfacing any provider failure as EmbeddingProviderError."""
        try:
            return await self.index.embedding_provider.embed_text(text)
        except EmbeddingProviderError:
            raise
        except Exception as e:
            raise EmbeddingProviderError(f"Embedding provider failed: {e}") from e

    async def embed_for_index(self, text: str) -> List[float]:
        """
        Embed text and check the vector fits the index.

        Callers that create a record and then index it use this first, so
        neither a provider failure nor a dimension mismatch can leave a
        stored record without its entry.
        """
        vector = await self.embed(text)
        self.index.check_dimension(vector)
        return vector

    # Indexing

    async def index_record(self, record: KnowledgeRecord, text: Optional[str] = None,
                           vector: Optional[List[float]] = None) -> VectorEntry:
        """
        Embed a record and add it to the similarity index.

        text overrides the indexed text (defaults to the record content);
        vector skips embedding when the caller computed it already. The
        embedding is computed before the index is touched, so a provider
        failure leaves the index unchanged.
        """
        source_text = record.content if text is None else text
        if vector is None:
            vector = await self.embed(source_text)
        return self.index.add_vector(source_text, vector, record_metadata(record))

    async def reindex_record(self, record: KnowledgeRecord, text: Optional[str] = None) -> VectorEntry:
        """Replace a record's vector entries with a fresh one, after an edit."""
        source_text = record.content if text is None else text
        vector = await self.embed(source_text)
        removed = self.index.remove_by_record(record.id)
        entry = self.index.add_vector(source_text, vector, record_metadata(record))
        logger.log_vector_operation("reindexed", entry.id, {"record_id": record.id, "replaced": removed})
        return entry

    async def index_scope(self, scope: str) -> int:
        """Index every record of a scope. Returns the number indexed."""
        records = self.store.list_by_scope(scope)
        for record in records:
            await self.index_record(record)
        return len(records)

    # Keyed facts

    def retrieve_by_key(self, scope: str, key: str) -> KeyedFact:
        """Most recently created keyed fact for key, or a fact with value None."""
        matches = self.store.query(
            scope,
            category=user_data_category(key),
            sort_by="created_at",
            sort_direction="desc",
            limit=1
        )
        if not matches:
            return KeyedFact(key=key, value=None)
        return KeyedFact(key=key, value=matches[0].content, record=matches[0])

    async def retrieve_by_query(self, scope: str, query_text: str, limit: Optional[int] = None,
                                threshold: Optional[float] = None) -> List[RetrievalHit]:
        """Semantic lookup restricted to keyed facts of a scope."""
        def is_keyed_fact(metadata: Dict[str, Any]) -> bool:
            category = metadata.get("category") or ""
            return metadata.get("scope") == scope and category.startswith(USER_DATA_PREFIX)

        return await self._search(query_text, is_keyed_fact, limit, threshold)

    # General semantic search

    async def search_records(self, scope: str, query_text: str, limit: Optional[int] = None,
                             threshold: Optional[float] = None, category: Optional[str] = None,
                             priority: Optional[str] = None,
                             predicate: Optional[MetadataPredicate] = None,
                             record_filter: Optional[Callable[[KnowledgeRecord], bool]] = None) -> List[RetrievalHit]:
        """
        Semantic lookup over a scope.

        category and priority match the indexed metadata exactly; predicate
        is an arbitrary extra metadata test. record_filter runs on the
        resolved records after the join, before the limit is applied.
        """
        def matches(metadata: Dict[str, Any]) -> bool:
            if metadata.get("scope") != scope:
                return False
            if category is not None and metadata.get("category") != category:
                return False
            if priority is not None and metadata.get("priority") != priority:
                return False
            return predicate is None or predicate(metadata)

        return await self._search(query_text, matches, limit, threshold, record_filter)

    async def _search(self, query_text: str, predicate: MetadataPredicate,
                      limit: Optional[int], threshold: Optional[float],
                      record_filter: Optional[Callable[[KnowledgeRecord], bool]] = None) -> List[RetrievalHit]:
        limit = self.default_limit if limit is None else limit
        threshold = self.default_threshold if threshold is None else threshold

        if limit <= 0:
            return []

        query_vector = await self.embed(query_text)
        # Rank every candidate so orphaned entries cannot crowd out live records
        search_hits = self.index.search_vector(query_vector, max(limit, self.index.size()), threshold, predicate)

        # Join back to the canonical store and skip orphaned entries
        results: List[RetrievalHit] = []
        for hit in search_hits:
            record = self.store.get(hit.entry.record_id) if hit.entry.record_id else None
            if record is None:
                logger.log_vector_operation("orphan_skipped", hit.entry.id,
                                            {"record_id": hit.entry.record_id}, status="skipped")
                continue
            if record_filter is not None and not record_filter(record):
                continue
            results.append(RetrievalHit(record=record, score=hit.score, entry_id=hit.entry.id))
            if len(results) == limit:
                break

        return results

    @staticmethod
    def generate_context(hits: List[RetrievalHit], template: str = "{content}") -> str:
        """Render hits into a prompt-ready block, one entry per paragraph."""
        parts = []
        for hit in hits:
            record = hit.record
            parts.append(
                template
                .replace("{content}", record.content)
                .replace("{category}", record.category or "")
                .replace("{priority}", record.priority.value if record.priority else "")
                .replace("{score}", f"{hit.score:.2f}")
            )
        return "\n\n".join(parts).strip()
