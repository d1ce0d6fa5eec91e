"""
Engine configuration.

Defaults can be overridden per engine instance or through CONTINUITY_*
environment variables read by EngineConfig.from_env().
"""

import os
from typing import List

from pydantic import BaseModel, field_validator

from ..util.logging import logger


class EngineConfig(BaseModel):
    """Settings for one ContinuityEngine instance."""

    default_scope: str = "default"

    # Record store
    max_records_per_scope: int = 1000
    auto_cleanup_enabled: bool = True
    index_on_create: bool = True

    # Retrieval
    retrieval_limit: int = 5
    search_limit: int = 10
    similarity_threshold: float = 0.5

    # Embeddings
    embed_provider: str = "letters"  # letters|sentence_transformers
    embed_model_name: str = "all-mpnet-base-v2"
    embed_timeout_sec: float = 0.0   # 0 disables the timeout

    # Context manager
    conflict_resolution_enabled: bool = True
    max_hierarchy_depth: int = 3
    related_overlap_threshold: float = 0.3

    @field_validator('default_scope')
    @classmethod
    def scope_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('default_scope cannot be empty')
        return v

    @field_validator('max_records_per_scope', 'retrieval_limit', 'search_limit', 'max_hierarchy_depth')
    @classmethod
    def must_be_positive(cls, v):
        if v < 1:
            raise ValueError('must be >= 1')
        return v

    @field_validator('similarity_threshold')
    @classmethod
    def threshold_must_be_cosine_range(cls, v):
        if not -1.0 <= v <= 1.0:
            raise ValueError('similarity_threshold must be between -1 and 1')
        return v

    @field_validator('embed_timeout_sec')
    @classmethod
    def timeout_must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError('embed_timeout_sec cannot be negative')
        return v

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from CONTINUITY_* environment variables."""
        defaults = cls()
        return cls(
            default_scope=os.getenv("CONTINUITY_DEFAULT_SCOPE", defaults.default_scope),
            max_records_per_scope=int(os.getenv("CONTINUITY_MAX_RECORDS_PER_SCOPE", defaults.max_records_per_scope)),
            auto_cleanup_enabled=os.getenv("CONTINUITY_AUTO_CLEANUP", "true").lower() == "true",
            index_on_create=os.getenv("CONTINUITY_INDEX_ON_CREATE", "true").lower() == "true",
            retrieval_limit=int(os.getenv("CONTINUITY_RETRIEVAL_LIMIT", defaults.retrieval_limit)),
            search_limit=int(os.getenv("CONTINUITY_SEARCH_LIMIT", defaults.search_limit)),
            similarity_threshold=float(os.getenv("CONTINUITY_SIMILARITY_THRESHOLD", defaults.similarity_threshold)),
            embed_provider=os.getenv("CONTINUITY_EMBED_PROVIDER", defaults.embed_provider),
            embed_model_name=os.getenv("CONTINUITY_EMBED_MODEL_NAME", defaults.embed_model_name),
            embed_timeout_sec=float(os.getenv("CONTINUITY_EMBED_TIMEOUT_SEC", defaults.embed_timeout_sec)),
            conflict_resolution_enabled=os.getenv("CONTINUITY_CONFLICT_RESOLUTION", "true").lower() == "true",
            max_hierarchy_depth=int(os.getenv("CONTINUITY_MAX_HIERARCHY_DEPTH", defaults.max_hierarchy_depth)),
            related_overlap_threshold=float(os.getenv("CONTINUITY_RELATED_OVERLAP", defaults.related_overlap_threshold)),
        )


def get_embedding_provider(config: EngineConfig):
    """Get configured embedding provider implementation."""
    from ..vector.embeddings import (
        LetterFrequencyEmbedding,
        SentenceTransformerEmbedding,
        TimeoutEmbeddingProvider,
    )

    if config.embed_provider == "sentence_transformers":
        provider = SentenceTransformerEmbedding(config.embed_model_name)
    else:
        if config.embed_provider != "letters":
            logger.warning(f"Unknown embed provider '{config.embed_provider}', using letter frequencies")
        provider = LetterFrequencyEmbedding()

    if config.embed_timeout_sec > 0:
        provider = TimeoutEmbeddingProvider(provider, config.embed_timeout_sec)
    return provider


def validate_config(config: EngineConfig) -> List[str]:
    """Return configuration combinations that are legal but likely mistakes."""
    issues = []

    if config.retrieval_limit > config.search_limit:
        issues.append("retrieval_limit is larger than search_limit")

    if not config.index_on_create and config.embed_provider != "letters":
        issues.append("embed_provider is configured but index_on_create is disabled")

    if not config.auto_cleanup_enabled:
        issues.append("auto cleanup disabled: scopes may grow without bound")

    return issues
