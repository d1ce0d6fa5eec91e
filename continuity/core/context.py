"""
Context manager: relates, deduplicates and organizes records of a scope.
"""

import re
from typing import Any, Callable, Dict, List, Optional

from .schema import KnowledgeRecord, PRIORITY_RANK
from .store import RecordStore

UNCATEGORIZED = "uncategorized"

_WORD_SPLIT_RE = re.compile(r"\s+")


def _words(text: str) -> set:
    return {w for w in _WORD_SPLIT_RE.split(text.lower()) if w}


class ContextManager:
    """Hierarchical organization and cross-scope sharing of records."""

    def __init__(self, store: RecordStore, conflict_resolution_enabled: bool = True,
                 max_hierarchy_depth: int = 3, related_overlap_threshold: float = 0.3):
        self.store = store
        self.conflict_resolution_enabled = conflict_resolution_enabled
        self.max_hierarchy_depth = max_hierarchy_depth
        self.related_overlap_threshold = related_overlap_threshold

    def find_related(self, record: KnowledgeRecord) -> List[KnowledgeRecord]:
        """
        Records of the same scope that share the category, or whose content
        overlaps enough. Only words longer than 3 characters count towards
        the overlap, measured against the smaller word set.
        """
        record_words = _words(record.content)
        related = []

        for other in self.store.list_by_scope(record.scope):
            if other.id == record.id:
                continue
            if record.category and other.category == record.category:
                related.append(other)
                continue

            other_words = _words(other.content)
            smaller = min(len(record_words), len(other_words))
            if smaller == 0:
                continue
            common = sum(1 for w in record_words & other_words if len(w) > 3)
            if common / smaller >= self.related_overlap_threshold:
                related.append(other)

        return related

    def resolve_conflicts(self, records: List[KnowledgeRecord]) -> List[KnowledgeRecord]:
        """Keep only the highest-version record per category."""
        if not self.conflict_resolution_enabled or len(records) <= 1:
            return list(records)

        newest: Dict[str, KnowledgeRecord] = {}
        for record in records:
            category = record.category or UNCATEGORIZED
            current = newest.get(category)
            if current is None or record.version > current.version:
                newest[category] = record

        return list(newest.values())

    def organize_hierarchy(self, records: List[KnowledgeRecord]) -> Dict[str, Any]:
        """
        Nest records by dotted category segments.

        Each node is {"records": [...], "subcategories": {...}}; records are
        sorted by priority, high first. Segments beyond max_hierarchy_depth
        stay joined in the deepest node name.
        """
        hierarchy: Dict[str, Any] = {}

        for record in records:
            segments = (record.category or UNCATEGORIZED).split(".")
            if len(segments) > self.max_hierarchy_depth:
                head = segments[:self.max_hierarchy_depth - 1]
                segments = head + [".".join(segments[self.max_hierarchy_depth - 1:])]

            level = hierarchy
            node = None
            for segment in segments:
                node = level.setdefault(segment, {"records": [], "subcategories": {}})
                level = node["subcategories"]
            node["records"].append(record)

        self._sort_nodes(hierarchy)
        return hierarchy

    def _sort_nodes(self, level: Dict[str, Any]) -> None:
        for node in level.values():
            node["records"].sort(key=lambda r: PRIORITY_RANK[r.priority], reverse=True)
            self._sort_nodes(node["subcategories"])

    def import_records(self, source_scope: str, target_scope: str,
                       predicate: Optional[Callable[[KnowledgeRecord], bool]] = None) -> List[KnowledgeRecord]:
        """Copy records of source_scope into target_scope as new records."""
        return self.copy_records(self.select_records(source_scope, predicate), target_scope)

    def select_records(self, scope: str,
                       predicate: Optional[Callable[[KnowledgeRecord], bool]] = None) -> List[KnowledgeRecord]:
        return [r for r in self.store.list_by_scope(scope) if predicate is None or predicate(r)]

    def copy_records(self, records: List[KnowledgeRecord], target_scope: str) -> List[KnowledgeRecord]:
        """Create a new record in target_scope for each record, in order."""
        return [
            self.store.create(
                target_scope,
                record.content,
                category=record.category,
                priority=record.priority,
                origin_reference=record.origin_reference
            )
            for record in records
        ]
