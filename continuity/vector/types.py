"""
Vector index types. Vector entries are advisory: they point back at
knowledge records by id and never own record state.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class VectorEntry:
    """Represents a stored embedding with metadata."""

    id: str
    """Unique identifier, independent of the originating record id"""

    source_text: str
    """Text the vector was derived from"""

    vector: List[float]
    """The vector representation of source_text"""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """record_id, scope, category, priority and timestamps at minimum for indexed records"""

    @property
    def record_id(self):
        return self.metadata.get("record_id")


@dataclass
class SearchHit:
    """Represents a search result from the vector index."""

    entry: VectorEntry
    """The matching entry"""

    score: float
    """Cosine similarity between the query and the entry"""
