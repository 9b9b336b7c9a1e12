"""Data models for ragpack."""

from ragpack.models.chunk import Chunk, DocumentStats, RetrievalResult, SearchResult, make_chunk_id
from ragpack.models.metadata import (
    Metadata,
    MetadataValue,
    dump_metadata,
    load_metadata,
    validate_metadata,
)

__all__ = [
    "Chunk",
    "SearchResult",
    "DocumentStats",
    "RetrievalResult",
    "make_chunk_id",
    "Metadata",
    "MetadataValue",
    "validate_metadata",
    "dump_metadata",
    "load_metadata",
]
