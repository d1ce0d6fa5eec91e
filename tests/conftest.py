"""
Shared fixtures for the knowledge engine tests.
"""

from datetime import datetime, timedelta
from typing import List

import pytest

from continuity.api.engine import ContinuityEngine
from continuity.core.config import EngineConfig
from continuity.core.retrieval import RetrievalEngine
from continuity.core.store import RecordStore
from continuity.vector.embeddings import IEmbeddingProvider, LetterFrequencyEmbedding
from continuity.vector.index import SimpleInMemoryVectorIndex


class StepClock:
    """Clock that advances one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current += timedelta(seconds=1)
        return now


class FailingEmbedding(IEmbeddingProvider):
    """Provider that always raises, for failure-path tests."""

    def __init__(self):
        self.calls = 0

    async def embed_text(self, text: str) -> List[float]:
        self.calls += 1
        raise RuntimeError("model offline")

    def get_dimension(self) -> int:
        return 26


class ShrinkingEmbedding(LetterFrequencyEmbedding):
    """Letter frequencies for the first call, a 3-dimensional vector after."""

    def __init__(self):
        self.calls = 0

    async def embed_text(self, text: str) -> List[float]:
        self.calls += 1
        if self.calls == 1:
            return self.vectorize(text)
        return [1.0, 0.0, 0.0]


class FlakyEmbedding(LetterFrequencyEmbedding):
    """Letter frequencies for the first `succeed` calls, then raises."""

    def __init__(self, succeed: int):
        self.succeed = succeed
        self.calls = 0

    async def embed_text(self, text: str) -> List[float]:
        self.calls += 1
        if self.calls > self.succeed:
            raise RuntimeError("model offline")
        return self.vectorize(text)


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store(clock):
    """Fresh record store with a deterministic clock."""
    return RecordStore(clock=clock)


@pytest.fixture
def index():
    """Fresh in-memory index using letter-frequency embeddings."""
    return SimpleInMemoryVectorIndex()


@pytest.fixture
def retrieval(store, index):
    return RetrievalEngine(store, index)


@pytest.fixture
def engine():
    """Engine with default configuration."""
    return ContinuityEngine(EngineConfig())


@pytest.fixture
def failing_provider():
    return FailingEmbedding()


@pytest.fixture
def shrinking_provider():
    return ShrinkingEmbedding()


@pytest.fixture
def flaky_provider():
    """Succeeds three times, then fails every call."""
    return FlakyEmbedding(succeed=3)
