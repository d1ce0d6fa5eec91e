"""
Continuity: knowledge records preserved across conversation turns.

Directive blocks embedded in model output are parsed, validated and
executed against a versioned record store and an advisory similarity index.
"""

from .api import ContinuityEngine, DirectiveParser, EventType, ProcessResult
from .core.config import EngineConfig
from .core.errors import (
    ContinuityError,
    DirectiveValidationError,
    DimensionMismatchError,
    EmbeddingProviderError,
    RecordNotFoundError,
    StorageError,
)
from .core.schema import KnowledgeRecord, Priority, QueryFilter

__version__ = "0.1.0"

__all__ = [
    'ContinuityEngine',
    'DirectiveParser',
    'EventType',
    'ProcessResult',
    'EngineConfig',
    'ContinuityError',
    'DirectiveValidationError',
    'DimensionMismatchError',
    'EmbeddingProviderError',
    'RecordNotFoundError',
    'StorageError',
    'KnowledgeRecord',
    'Priority',
    'QueryFilter'
]
