"""
Base Agent
==========

Abstract base class for the role-specialised agents of the pipeline.

All roles (planner, specialist, verifier, finalizer) share one chat backend
through the LLMGateway; what distinguishes them is the prompt contract and
the sampling parameters each one asks for.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

from campus_rag.config import Settings, get_settings
from campus_rag.schemas.models import AgentRole, ConversationMessage
from campus_rag.services.llm_gateway import LLMGateway

logger = logging.getLogger(__name__)

HistoryItem = Union[ConversationMessage, dict]


def normalize_history(
    history: Optional[Sequence[HistoryItem]],
    window: int = 10,
    max_chars: int = 4000,
) -> list[dict]:
    """
    Keep the last ``window`` user/assistant turns, each clipped to ``max_chars``.

    Entries with another role or no content are dropped.
    """
    if not history:
        return []

    turns = []
    for item in history:
        if isinstance(item, ConversationMessage):
            role, content = item.role, item.content
        elif isinstance(item, dict):
            role, content = item.get("role"), item.get("content")
        else:
            continue

        if role in ("user", "assistant") and content:
            turns.append({"role": role, "content": str(content)[:max_chars]})

    if window <= 0:
        return []
    return turns[-window:]


def format_history(turns: list[dict]) -> str:
    """Render normalized turns as ``ROLE: text`` lines."""
    return "\n".join(f"{turn['role'].upper()}: {turn['content']}" for turn in turns) or "(none)"


class BaseAgent(ABC):
    """
    Abstract base class for all agents.

    Each agent must implement:
    - role: Which pipeline role this is

    Provides:
    - Shared gateway access with per-role sampling parameters
    - History normalization using the configured window
    - Logging infrastructure
    """

    temperature: float = 0.2
    max_tokens: int = 1200

    def __init__(
        self,
        gateway: Optional[LLMGateway] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the base agent.

        Args:
            gateway: Shared LLM gateway (created from settings if not provided)
            settings: Override settings
        """
        self._settings = settings or get_settings()
        self._gateway = gateway or LLMGateway(settings=self._settings)

        logger.debug(f"Initialized {self.role.value} agent")

    @property
    @abstractmethod
    def role(self) -> AgentRole:
        """Return the pipeline role of this agent."""
        pass

    def _history(self, history: Optional[Sequence[HistoryItem]]) -> list[dict]:
        return normalize_history(
            history,
            window=self._settings.history_window,
            max_chars=self._settings.history_message_max_chars,
        )

    async def _complete(self, messages: list[dict]) -> str:
        """
        Call the backend with this role's sampling parameters.

        Returns the content, or "" when the call produced nothing usable.
        """
        result = await self._gateway.chat_complete(
            messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        if not result.ok:
            logger.warning(f"{self.role.value} got no usable content from the backend")
            return ""
        return result.content

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"{self.__class__.__name__}(role={self.role.value})"
