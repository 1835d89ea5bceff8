"""
Campus Assistant
================

Retrieval-augmented multi-agent answer pipeline for campus questions.

Architecture:
- Query Router: heuristic routing, optionally refined by a planner agent
- Retrieval: in-memory vector store with hybrid (vector + keyword) search
- Specialist Agent: drafts the answer in the routed mode's persona
- Verifier Agent: checks the draft against the knowledge base
- Finalizer Agent: produces the cited final answer
"""

__version__ = "1.0.0"
__author__ = "AI Engineer"
