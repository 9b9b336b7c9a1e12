"""Configuration for ragpack.

Loads settings from environment variables with sensible defaults. CLI flags
are applied on top of these.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from ragpack.errors import ConfigurationError

BACKENDS = ("auto", "sqlite-vec", "brute-force")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ChunkerConfig:
    """Chunking options."""

    max_chunk_size: int = 1000
    chunk_overlap: int = 200
    separator: str = "\n\n"
    preserve_structure: bool = False

    def __post_init__(self) -> None:
        if self.max_chunk_size <= 0:
            raise ConfigurationError(
                f"max_chunk_size must be positive, got {self.max_chunk_size}"
            )
        if self.chunk_overlap < 0:
            raise ConfigurationError(
                f"chunk_overlap must not be negative, got {self.chunk_overlap}"
            )
        if self.chunk_overlap >= self.max_chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"max_chunk_size ({self.max_chunk_size})"
            )
        if not self.separator:
            raise ConfigurationError("separator must not be empty")

    @classmethod
    def from_env(cls) -> "ChunkerConfig":
        return cls(
            max_chunk_size=int(os.getenv("RAGPACK_MAX_CHUNK_SIZE", "1000")),
            chunk_overlap=int(os.getenv("RAGPACK_CHUNK_OVERLAP", "200")),
            preserve_structure=_env_bool("RAGPACK_PRESERVE_STRUCTURE", False),
        )


@dataclass(frozen=True)
class RetrievalOptions:
    """Per-query retrieval options."""

    max_results: int = 3
    min_similarity: float = 0.0
    document_id: Optional[str] = None
    show_scores: bool = True

    def __post_init__(self) -> None:
        if self.max_results < 1:
            raise ConfigurationError(
                f"max_results must be at least 1, got {self.max_results}"
            )
        if not -1.0 <= self.min_similarity <= 1.0:
            raise ConfigurationError(
                f"min_similarity must be within [-1, 1], got {self.min_similarity}"
            )

    @property
    def candidate_count(self) -> int:
        """Number of candidates fetched before thresholding."""
        return self.max_results * 2


@dataclass(frozen=True)
class StoreConfig:
    """Vector store location and backend selection."""

    path: str = "ragpack.db"
    backend: str = "auto"
    enable_wal: bool = True

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend {self.backend!r}. Supported: {', '.join(BACKENDS)}"
            )

    @classmethod
    def from_env(cls) -> "StoreConfig":
        return cls(
            path=os.getenv("RAGPACK_DB_PATH", "ragpack.db"),
            backend=os.getenv("RAGPACK_BACKEND", "auto"),
            enable_wal=_env_bool("RAGPACK_ENABLE_WAL", True),
        )


@dataclass(frozen=True)
class Settings:
    """Top-level configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    chunker: ChunkerConfig = field(default_factory=ChunkerConfig)
    embedding_model: str = "all-MiniLM-L6-v2"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            store=StoreConfig.from_env(),
            chunker=ChunkerConfig.from_env(),
            embedding_model=os.getenv("RAGPACK_EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
            log_level=os.getenv("RAGPACK_LOG_LEVEL", "INFO"),
        )
