"""
Storage contract for knowledge records.

The engine only talks to IStorageBackend; InMemoryStorageBackend is the
reference implementation. File or database backends implement the same
interface without the engine knowing which one is in use.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .schema import KnowledgeRecord, QueryFilter, PRIORITY_RANK


def _sort_key(sort_by: str):
    if sort_by == "priority":
        return lambda record: PRIORITY_RANK[record.priority]
    return lambda record: getattr(record, sort_by)


def apply_query_filter(records: List[KnowledgeRecord],
                       query_filter: Optional[QueryFilter] = None) -> List[KnowledgeRecord]:
    """
    Filter, sort and cap records according to query_filter.

    Without sort_by the input order is preserved. Sorting is stable, so
    records that compare equal keep their input order.
    """
    if query_filter is None:
        return list(records)

    results = list(records)

    if query_filter.category is not None:
        results = [r for r in results if r.category == query_filter.category]

    if query_filter.priority is not None:
        results = [r for r in results if r.priority == query_filter.priority]

    if query_filter.created_between is not None:
        start, end = query_filter.created_between
        results = [r for r in results if start <= r.created_at <= end]

    if query_filter.sort_by:
        results.sort(
            key=_sort_key(query_filter.sort_by),
            reverse=query_filter.sort_direction == "desc"
        )

    if query_filter.limit:
        results = results[:query_filter.limit]

    return results


class IStorageBackend(ABC):
    """Abstract interface for record persistence."""

    @abstractmethod
    def save(self, record: KnowledgeRecord) -> KnowledgeRecord:
        """Insert or replace a record by id."""
        pass

    @abstractmethod
    def get_by_id(self, record_id: str) -> Optional[KnowledgeRecord]:
        """Fetch a record by id."""
        pass

    @abstractmethod
    def get_by_scope(self, scope: str) -> List[KnowledgeRecord]:
        """All records of a scope, in insertion order."""
        pass

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns True if it existed."""
        pass

    @abstractmethod
    def query(self, scope: str, query_filter: Optional[QueryFilter] = None) -> List[KnowledgeRecord]:
        """Records of a scope matching query_filter."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every record from every scope."""
        pass

    def count(self, scope: str) -> int:
        return len(self.get_by_scope(scope))


class InMemoryStorageBackend(IStorageBackend):
    """Dictionary-backed storage; insertion order is preserved per id."""

    def __init__(self):
        self._records: Dict[str, KnowledgeRecord] = {}

    def save(self, record: KnowledgeRecord) -> KnowledgeRecord:
        self._records[record.id] = record
        return record

    def get_by_id(self, record_id: str) -> Optional[KnowledgeRecord]:
        return self._records.get(record_id)

    def get_by_scope(self, scope: str) -> List[KnowledgeRecord]:
        return [r for r in self._records.values() if r.scope == scope]

    def delete(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None

    def query(self, scope: str, query_filter: Optional[QueryFilter] = None) -> List[KnowledgeRecord]:
        return apply_query_filter(self.get_by_scope(scope), query_filter)

    def clear(self) -> None:
        self._records.clear()

    def count(self, scope: str) -> int:
        return sum(1 for r in self._records.values() if r.scope == scope)
