"""
API Module
==========

FastAPI routes and endpoint definitions.
"""

from campus_rag.api.routes import router

__all__ = ["router"]
