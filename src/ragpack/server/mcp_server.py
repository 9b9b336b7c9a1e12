"""FastMCP server implementation for ragpack."""

from typing import Optional

from mcp.server.fastmcp import FastMCP

from ragpack.config import RetrievalOptions
from ragpack.errors import RagError
from ragpack.models import DocumentStats, RetrievalResult
from ragpack.service import RetrievalService


def render_retrieval(query: str, result: RetrievalResult) -> str:
    """Tool output for a retrieve call."""
    if not result.chunk_count:
        return f"No results found for: {query}"
    return result.context


def render_documents(documents: list[str], stats: dict[str, DocumentStats]) -> str:
    """Tool output listing indexed documents with their sizes."""
    if not documents:
        return "No documents indexed"

    lines = []
    for document_id in documents:
        doc_stats = stats[document_id]
        lines.append(
            f"{document_id:<50} {doc_stats.chunk_count:>6} chunks {doc_stats.total_chars:>10} chars"
        )
    return "\n".join(lines)


def create_mcp_server(service: RetrievalService) -> FastMCP:
    """Create an MCP server backed by one retrieval service.

    Design: 1 process = 1 store. The service (and its SQLite connection)
    is shared by every tool call.

    Args:
        service: Retrieval service to expose

    Returns:
        Configured FastMCP server instance
    """
    mcp = FastMCP(
        name="ragpack",
    )

    @mcp.tool()
    async def index_document(document_id: str, content: str, source: Optional[str] = None) -> str:
        """Index (or re-index) a document for retrieval.

        Args:
            document_id: Stable identifier; re-using it replaces the old content
            content: Full document text
            source: Optional source label (e.g. file name) stored with each chunk

        Returns:
            Confirmation with the number of chunks stored
        """
        metadata = {"source": source} if source else None
        try:
            count = await service.index_document(document_id, content, metadata)
        except RagError as exc:
            return f"Error: Indexing {document_id} failed: {exc}"
        return f"Indexed {document_id}: {count} chunks"

    @mcp.tool()
    async def retrieve(
        query: str,
        max_results: int = 3,
        min_similarity: float = 0.0,
        document_id: Optional[str] = None,
    ) -> str:
        """Semantic search across indexed documents.

        Use this to find relevant passages by concept, not just keyword.

        Args:
            query: Natural language description of what you're looking for
            max_results: Maximum number of passages to return (default: 3)
            min_similarity: Drop passages scoring below this (default: 0.0)
            document_id: Restrict the search to one document

        Returns:
            Numbered source passages with similarity scores
        """
        try:
            options = RetrievalOptions(
                max_results=max_results,
                min_similarity=min_similarity,
                document_id=document_id,
            )
            result = await service.retrieve(query, options)
        except RagError as exc:
            return f"Error: {exc}"
        return render_retrieval(query, result)

    @mcp.tool()
    def delete_document(document_id: str) -> str:
        """Remove a document and all its chunks from the index."""
        try:
            service.delete_document(document_id)
        except RagError as exc:
            return f"Error: {exc}"
        return f"Deleted {document_id}"

    @mcp.tool()
    def list_documents() -> str:
        """List indexed documents with chunk and character counts."""
        try:
            documents = service.list_documents()
            stats = {doc: service.get_document_stats(doc) for doc in documents}
        except RagError as exc:
            return f"Error: {exc}"
        return render_documents(documents, stats)

    @mcp.tool()
    def document_stats(document_id: str) -> str:
        """Show how many chunks and characters a document has in the index."""
        try:
            stats = service.get_document_stats(document_id)
        except RagError as exc:
            return f"Error: {exc}"
        return f"{document_id}: {stats.chunk_count} chunks, {stats.total_chars} chars"

    @mcp.tool()
    def get_chunk(chunk_id: str) -> str:
        """Read one stored chunk by id ("<document_id>-<index>")."""
        try:
            chunk = service.get_chunk(chunk_id)
        except RagError as exc:
            return f"Error: {exc}"
        if chunk is None:
            return f"Error: Chunk not found: {chunk_id}"
        return chunk.content

    return mcp
