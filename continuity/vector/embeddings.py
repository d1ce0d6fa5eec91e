"""
Embedding providers. The engine only depends on IEmbeddingProvider, so a
real model can replace the letter-frequency baseline without touching the
index or the retrieval engine.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ..core.errors import EmbeddingProviderError

LETTER_DIMENSION = 26


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    async def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embedding vectors for several texts, in order."""
        return [await self.embed_text(text) for text in texts]

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class LetterFrequencyEmbedding(IEmbeddingProvider):
    """Normalized a-z letter frequencies.

    A deterministic placeholder baseline: case-insensitive, non-letters are
    ignored, the vector sums to 1 when the text has at least one letter and
    is all zeros otherwise.
    """

    def vectorize(self, text: str) -> List[float]:
        codes = np.frombuffer(text.lower().encode("ascii", "ignore"), dtype=np.uint8)
        letters = codes[(codes >= ord("a")) & (codes <= ord("z"))] - ord("a")
        counts = np.bincount(letters, minlength=LETTER_DIMENSION).astype(float)

        total = counts.sum()
        if total > 0:
            counts /= total
        return counts.tolist()

    async def embed_text(self, text: str) -> List[float]:
        return self.vectorize(text)

    def get_dimension(self) -> int:
        return LETTER_DIMENSION


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    The model is loaded on first use and encoding runs in a worker thread so
    the event loop is not blocked.
    """

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    async def embed_text(self, text: str) -> List[float]:
        embedding = await asyncio.to_thread(self.model.encode, text, convert_to_tensor=False)
        return embedding.tolist()

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        embeddings = await asyncio.to_thread(self.model.encode, texts, convert_to_tensor=False)
        return [embedding.tolist() for embedding in embeddings]

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


class TimeoutEmbeddingProvider(IEmbeddingProvider):
    """Bounds every call of an inner provider with asyncio.wait_for."""

    def __init__(self, inner: IEmbeddingProvider, timeout: float):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.inner = inner
        self.timeout = timeout

    async def embed_text(self, text: str) -> List[float]:
        try:
            return await asyncio.wait_for(self.inner.embed_text(text), self.timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingProviderError(
                f"Embedding timed out after {self.timeout}s"
            ) from e

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        try:
            return await asyncio.wait_for(self.inner.embed_batch(texts), self.timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingProviderError(
                f"Batch embedding timed out after {self.timeout}s"
            ) from e

    def get_dimension(self) -> int:
        return self.inner.get_dimension()
