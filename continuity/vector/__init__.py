"""
Vector similarity layer - advisory index over the canonical record store.
"""

from .index import IVectorIndex, SimpleInMemoryVectorIndex, cosine_similarity
from .types import VectorEntry, SearchHit
from .embeddings import (
    IEmbeddingProvider,
    LetterFrequencyEmbedding,
    SentenceTransformerEmbedding,
    TimeoutEmbeddingProvider,
)

__all__ = [
    'IVectorIndex',
    'SimpleInMemoryVectorIndex',
    'cosine_similarity',
    'VectorEntry',
    'SearchHit',
    'IEmbeddingProvider',
    'LetterFrequencyEmbedding',
    'SentenceTransformerEmbedding',
    'TimeoutEmbeddingProvider'
]
