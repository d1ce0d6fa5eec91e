"""
Versioned record store with per-scope capacity eviction.

Records are created at version 1 and every successful update bumps the
version and modified_at. When a scope grows past max_records_per_scope the
least recently modified records are evicted, never the record whose
creation triggered the eviction.
"""

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from .errors import RecordNotFoundError, StorageError
from .schema import KnowledgeRecord, Priority, QueryFilter
from .storage import IStorageBackend, InMemoryStorageBackend
from ..util.logging import logger

DEFAULT_MAX_RECORDS_PER_SCOPE = 1000

UPDATABLE_FIELDS = frozenset({"content", "category", "priority"})


class RecordStore:
    """Create, update, delete and query knowledge records per scope."""

    def __init__(self, backend: Optional[IStorageBackend] = None,
                 max_records_per_scope: int = DEFAULT_MAX_RECORDS_PER_SCOPE,
                 auto_cleanup_enabled: bool = True,
                 clock: Optional[Callable[[], datetime]] = None):
        if max_records_per_scope < 1:
            raise StorageError("max_records_per_scope must be >= 1")

        self.backend = backend or InMemoryStorageBackend()
        self.max_records_per_scope = max_records_per_scope
        self.auto_cleanup_enabled = auto_cleanup_enabled
        self._clock = clock or datetime.now
        self._last_timestamp: Optional[datetime] = None
        self._lock = threading.RLock()

    def _now(self) -> datetime:
        """Strictly increasing timestamp, even when the clock ticks coarsely."""
        now = self._clock()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def create(self, scope: str, content: str, category: Optional[str] = None,
               priority: Optional[Any] = None, origin_reference: Optional[str] = None) -> KnowledgeRecord:
        """Create a new record at version 1, then enforce the scope capacity."""
        with self._lock:
            now = self._now()
            record = KnowledgeRecord(
                id=str(uuid.uuid4()),
                scope=scope,
                content=content,
                category=category,
                priority=Priority.parse(priority),
                origin_reference=origin_reference,
                created_at=now,
                modified_at=now,
                version=1
            )
            saved = self.backend.save(record)
            logger.log_record_operation("created", saved.id, scope, content)

            if self.auto_cleanup_enabled:
                self._enforce_capacity(scope, keep_id=saved.id)

            return saved

    def update(self, record_id: str, **fields: Any) -> KnowledgeRecord:
        """
        Merge the given fields into an existing record.

        Only content, category and priority may change. Raises
        RecordNotFoundError when record_id is unknown.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise StorageError(f"Fields cannot be updated: {sorted(unknown)}")

        with self._lock:
            existing = self.backend.get_by_id(record_id)
            if existing is None:
                raise RecordNotFoundError(record_id)

            if "priority" in fields:
                fields["priority"] = Priority.parse(fields["priority"])

            updated = replace(
                existing,
                **fields,
                modified_at=self._now(),
                version=existing.version + 1
            )
            saved = self.backend.save(updated)
            logger.log_record_operation("updated", saved.id, saved.scope, saved.content)
            return saved

    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns True if it existed."""
        with self._lock:
            existing = self.backend.get_by_id(record_id)
            if existing is None:
                return False
            removed = self.backend.delete(record_id)
            if removed:
                logger.log_record_operation("deleted", record_id, existing.scope)
            return removed

    def get(self, record_id: str) -> Optional[KnowledgeRecord]:
        with self._lock:
            return self.backend.get_by_id(record_id)

    def list_by_scope(self, scope: str) -> List[KnowledgeRecord]:
        with self._lock:
            return self.backend.get_by_scope(scope)

    def query(self, scope: str, query_filter: Optional[QueryFilter] = None,
              **criteria: Any) -> List[KnowledgeRecord]:
        """
        Query a scope. Accepts a QueryFilter or its fields as keyword
        arguments (category, priority, created_between, limit, sort_by,
        sort_direction).
        """
        if query_filter is None:
            query_filter = QueryFilter(**criteria)
        elif criteria:
            raise StorageError("Pass either a QueryFilter or keyword criteria, not both")

        with self._lock:
            return self.backend.query(scope, query_filter)

    def count(self, scope: str) -> int:
        with self._lock:
            return self.backend.count(scope)

    def clear(self) -> None:
        with self._lock:
            self.backend.clear()

    def _enforce_capacity(self, scope: str, keep_id: str) -> List[str]:
        records = self.backend.get_by_scope(scope)
        overflow = len(records) - self.max_records_per_scope
        if overflow <= 0:
            return []

        candidates = sorted(
            (r for r in records if r.id != keep_id),
            key=lambda r: r.modified_at
        )
        evicted: List[str] = []
        for record in candidates[:overflow]:
            if self.backend.delete(record.id):
                evicted.append(record.id)

        logger.log_eviction(scope, evicted, self.max_records_per_scope)
        return evicted

