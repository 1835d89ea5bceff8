"""
Tools Module
============

Clients for external services that supplement the knowledge base.
"""

from campus_rag.tools.search_tool import WebSearchClient

__all__ = ["WebSearchClient"]
