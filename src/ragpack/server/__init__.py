"""MCP server exposing the retrieval service as agent tools."""

from ragpack.server.mcp_server import create_mcp_server, render_documents, render_retrieval

__all__ = ["create_mcp_server", "render_documents", "render_retrieval"]
