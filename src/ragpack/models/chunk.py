"""Core data models for chunks and search results."""

from dataclasses import dataclass, field

from ragpack.models.metadata import Metadata


def make_chunk_id(document_id: str, index: int) -> str:
    """Derive the stable chunk id for a document position."""
    return f"{document_id}-{index}"


@dataclass
class Chunk:
    """A trimmed slice of a document, the unit of embedding and retrieval."""

    id: str
    document_id: str
    content: str
    index: int
    metadata: Metadata = field(default_factory=dict)


@dataclass
class SearchResult:
    """A chunk returned from the index together with its similarity."""

    chunk_id: str
    document_id: str
    content: str
    similarity: float
    metadata: Metadata = field(default_factory=dict)

    @property
    def heading(self) -> str | None:
        value = self.metadata.get("heading")
        return value if isinstance(value, str) and value else None


@dataclass(frozen=True)
class DocumentStats:
    """Aggregate size of one document in the index."""

    chunk_count: int = 0
    total_chars: int = 0


@dataclass
class RetrievalResult:
    """Formatted context block plus the results it was built from."""

    context: str
    chunk_count: int
    results: list[SearchResult] = field(default_factory=list)
