"""
ContinuityEngine: the host-facing facade.

Wires one record store, one similarity index, the retrieval engine, the
context manager and the directive dispatcher together from an EngineConfig.
"""

import uuid
from typing import Any, Callable, Dict, List, Optional

from .dispatcher import DirectiveDispatcher, EventListener, ProcessResult
from .parser import DirectiveParser
from ..core.config import EngineConfig, get_embedding_provider, validate_config
from ..core.context import ContextManager
from ..core.errors import RecordNotFoundError
from ..core.retrieval import RetrievalEngine, RetrievalHit
from ..core.schema import KnowledgeRecord, QueryFilter
from ..core.storage import IStorageBackend
from ..core.store import RecordStore
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider
from ..vector.index import SimpleInMemoryVectorIndex


class ContinuityEngine:
    """Preserves knowledge records across conversation turns."""

    def __init__(self, config: Optional[EngineConfig] = None,
                 embedding_provider: Optional[IEmbeddingProvider] = None,
                 storage_backend: Optional[IStorageBackend] = None):
        self.config = config or EngineConfig()

        for issue in validate_config(self.config):
            logger.warning(f"Config: {issue}")

        self.store = RecordStore(
            backend=storage_backend,
            max_records_per_scope=self.config.max_records_per_scope,
            auto_cleanup_enabled=self.config.auto_cleanup_enabled
        )
        self.index = SimpleInMemoryVectorIndex(embedding_provider or get_embedding_provider(self.config))
        self.retrieval = RetrievalEngine(
            self.store,
            self.index,
            default_limit=self.config.retrieval_limit,
            default_threshold=self.config.similarity_threshold
        )
        self.context = ContextManager(
            self.store,
            conflict_resolution_enabled=self.config.conflict_resolution_enabled,
            max_hierarchy_depth=self.config.max_hierarchy_depth,
            related_overlap_threshold=self.config.related_overlap_threshold
        )
        self.dispatcher = DirectiveDispatcher(
            self.store,
            self.retrieval,
            parser=DirectiveParser(),
            index_on_create=self.config.index_on_create
        )

        logger.log_operation("engine.initialized", "success", {
            "embed_provider": type(self.index.embedding_provider).__name__,
            "max_records_per_scope": self.config.max_records_per_scope
        })

    def _scope(self, scope: Optional[str]) -> str:
        return scope or self.config.default_scope

    # Directive processing

    async def process_response(self, text: str, scope: Optional[str] = None) -> ProcessResult:
        """Execute every directive in text and return the stripped text with per-directive results."""
        return await self.dispatcher.process_response(text, self._scope(scope))

    def add_listener(self, listener: EventListener) -> None:
        self.dispatcher.add_listener(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self.dispatcher.remove_listener(listener)

    # Records

    def get_records(self, scope: Optional[str] = None) -> List[KnowledgeRecord]:
        return self.store.list_by_scope(self._scope(scope))

    def get_record(self, record_id: str) -> Optional[KnowledgeRecord]:
        return self.store.get(record_id)

    def query_records(self, scope: Optional[str] = None, query_filter: Optional[QueryFilter] = None,
                      **criteria: Any) -> List[KnowledgeRecord]:
        return self.store.query(self._scope(scope), query_filter, **criteria)

    # Similarity

    async def search_similar_records(self, query_text: str, scope: Optional[str] = None,
                                     limit: Optional[int] = None, threshold: Optional[float] = None,
                                     category: Optional[str] = None,
                                     priority: Optional[str] = None) -> List[RetrievalHit]:
        """Semantic search over every record of a scope, keyed facts included."""
        return await self.retrieval.search_records(
            self._scope(scope),
            query_text,
            limit=self.config.search_limit if limit is None else limit,
            threshold=threshold,
            category=category,
            priority=priority
        )

    async def import_similar_records(self, query_text: str, source_scope: str,
                                     target_scope: Optional[str] = None, limit: Optional[int] = None,
                                     threshold: Optional[float] = None) -> List[KnowledgeRecord]:
        """Copy the records of source_scope most similar to query_text into target_scope."""
        hits = await self.search_similar_records(query_text, source_scope, limit=limit, threshold=threshold)
        target = self._scope(target_scope)

        imported = await self._copy_indexed([hit.record for hit in hits], target)

        logger.log_operation("records.imported_similar", "success", {
            "source_scope": source_scope,
            "target_scope": target,
            "count": len(imported)
        })
        return imported

    # Context management

    def find_related_records(self, record_id: str) -> List[KnowledgeRecord]:
        record = self.store.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return self.context.find_related(record)

    async def import_records(self, source_scope: str, target_scope: Optional[str] = None,
                             predicate: Optional[Callable[[KnowledgeRecord], bool]] = None) -> List[KnowledgeRecord]:
        """Copy records from another scope; the copies are indexed like new records."""
        sources = self.context.select_records(source_scope, predicate)
        return await self._copy_indexed(sources, self._scope(target_scope))

    def get_organized_records(self, scope: Optional[str] = None) -> Dict[str, Any]:
        """Conflict-resolved records of a scope nested by category."""
        records = self.context.resolve_conflicts(self.get_records(scope))
        return self.context.organize_hierarchy(records)

    async def _copy_indexed(self, sources: List[KnowledgeRecord], target: str) -> List[KnowledgeRecord]:
        # Every copy is embedded before any is created, so a failure copies nothing
        vectors = []
        if self.config.index_on_create:
            for source in sources:
                vectors.append(await self.retrieval.embed_for_index(source.content))

        imported = self.context.copy_records(sources, target)
        for record, vector in zip(imported, vectors):
            await self.retrieval.index_record(record, vector=vector)
        return imported

    # Lifecycle

    @staticmethod
    def new_scope_id() -> str:
        return str(uuid.uuid4())

    def clear(self) -> None:
        """Drop every record and every vector entry."""
        self.store.clear()
        self.index.clear()
        logger.log_operation("engine.cleared", "success")
