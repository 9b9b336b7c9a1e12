"""Protocol for text chunking strategies."""

from typing import Optional, Protocol, runtime_checkable

from ragpack.models import Chunk, Metadata


@runtime_checkable
class ChunkingStrategy(Protocol):
    """Protocol for text chunking strategies.

    Implementations must be pure: the same input always yields the same
    chunks, with ids derived from (document_id, index).
    """

    def chunk(
        self, document_id: str, text: str, metadata: Optional[Metadata] = None
    ) -> list[Chunk]:
        """Split text into ordered chunks."""
        ...
