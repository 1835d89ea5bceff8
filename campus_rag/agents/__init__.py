"""
Agents Module
=============

Role-specialised agents of the answer pipeline. Every role is a prompt
contract against the same chat backend.

ARCHITECTURE:
                    ┌──────────────┐
                    │   Message    │
                    └──────┬───────┘
                           │
                    ┌──────▼───────┐
                    │ Query Router │ ◄─── heuristic + PlannerAgent
                    └──────┬───────┘
                           │
                    ┌──────▼───────┐
                    │  Specialist  │ ◄─── persona per mode, cites [KBn]
                    └──────┬───────┘
                           │
                    ┌──────▼───────┐
                    │   Verifier   │ ◄─── JSON verdict
                    └──────┬───────┘
                           │
                    ┌──────▼───────┐
                    │  Finalizer   │ ◄─── final answer + references
                    └──────────────┘
"""

from campus_rag.agents.base_agent import BaseAgent
from campus_rag.agents.router_agent import HeuristicRouter, PlannerAgent, QueryRouter
from campus_rag.agents.specialist_agent import SpecialistAgent
from campus_rag.agents.verifier_agent import VerifierAgent
from campus_rag.agents.finalizer_agent import FinalizerAgent

__all__ = [
    "BaseAgent",
    "HeuristicRouter",
    "PlannerAgent",
    "QueryRouter",
    "SpecialistAgent",
    "VerifierAgent",
    "FinalizerAgent",
]
