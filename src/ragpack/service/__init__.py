"""Document indexing and query-time retrieval."""

from ragpack.service.retrieval import RetrievalService, format_context

__all__ = ["RetrievalService", "format_context"]
