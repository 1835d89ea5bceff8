"""
LLM Call Gateway
================

Every outbound chat completion goes through LLMGateway.chat_complete.

WHY ONE CHOKEPOINT?
- One place checks whether a credential exists at all
- One place enforces the per-call timeout
- Agents never see provider exceptions: a failed call is ChatResult(ok=False)

SUPPORTED PROVIDERS:
1. zhipu  - GLM-4 via the OpenAI-compatible endpoint
2. openai - OpenAI
3. groq   - Groq Cloud
4. google - Google Gemini
5. ollama - Local LLMs
"""

import asyncio
import logging
from typing import Callable, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from campus_rag.config import Settings, ZHIPU_BASE_URL, get_settings, is_usable_key
from campus_rag.exceptions import BackendUnavailable, UpstreamCallFailure
from campus_rag.schemas.models import ChatResult

logger = logging.getLogger(__name__)

LLMFactory = Callable[..., BaseChatModel]

SIMULATION_NOTICE = (
    "【模拟模式】未配置 {provider} 的 API Key，无法进行多 Agent 编排调用。"
    "请在 .env 中配置真实 Key 后重试。"
)


def create_llm(
    provider: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> BaseChatModel:
    """
    Create a chat model instance based on the configured provider.

    Args:
        provider: Override the default provider from settings
        temperature: Sampling temperature
        max_tokens: Completion length cap
        settings: Settings to read models and keys from

    Returns:
        A LangChain chat model instance

    Raises:
        BackendUnavailable: If the provider needs a key and none is configured
        ValueError: If provider is not supported
    """
    settings = settings or get_settings()
    provider = provider or settings.llm_provider
    temp = temperature if temperature is not None else 0.2

    if provider != "ollama" and not is_usable_key(settings.get_llm_api_key(provider)):
        raise BackendUnavailable(f"No API key configured for {provider}")

    logger.debug(f"Creating LLM with provider: {provider}")

    if provider == "zhipu":
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=settings.zhipu_model,
            api_key=settings.glm_api_key,
            base_url=ZHIPU_BASE_URL,
            temperature=temp,
            max_tokens=max_tokens,
        )

    elif provider == "openai":
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            temperature=temp,
            max_tokens=max_tokens,
        )

    elif provider == "groq":
        from langchain_groq import ChatGroq
        return ChatGroq(
            model=settings.groq_model,
            api_key=settings.groq_api_key,
            temperature=temp,
            max_tokens=max_tokens,
        )

    elif provider == "google":
        from langchain_google_genai import ChatGoogleGenerativeAI
        return ChatGoogleGenerativeAI(
            model=settings.google_model,
            google_api_key=settings.google_api_key,
            temperature=temp,
            max_output_tokens=max_tokens,
        )

    elif provider == "ollama":
        from langchain_community.chat_models import ChatOllama
        return ChatOllama(
            model=settings.ollama_model,
            base_url=settings.ollama_base_url,
            temperature=temp,
            num_predict=max_tokens,
        )

    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")


def to_langchain_messages(messages: list[dict]) -> list[BaseMessage]:
    """Convert ``{"role", "content"}`` dicts to LangChain messages."""
    converted: list[BaseMessage] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content", "")
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        else:
            converted.append(HumanMessage(content=content))
    return converted


def _text_of(response) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return ""


class LLMGateway:
    """
    Single entry point for chat completions.

    Usage:
        gateway = LLMGateway()
        result = await gateway.chat_complete(
            [{"role": "user", "content": "你好"}],
            temperature=0.2,
            max_tokens=500,
        )
        if result.ok:
            print(result.content)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_factory: Optional[LLMFactory] = None,
    ):
        """
        Args:
            settings: Override settings
            llm_factory: Builds a chat model from (temperature, max_tokens);
                tests pass a factory returning a fake model
        """
        self._settings = settings or get_settings()
        self._llm_factory = llm_factory

    @property
    def has_credential(self) -> bool:
        """Whether a chat backend is configured. Checked once per request."""
        return self._settings.has_llm_credential

    def _build_llm(self, temperature: float, max_tokens: int) -> BaseChatModel:
        if self._llm_factory is not None:
            return self._llm_factory(temperature=temperature, max_tokens=max_tokens)
        return create_llm(
            temperature=temperature,
            max_tokens=max_tokens,
            settings=self._settings,
        )

    async def chat_complete(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 1200,
    ) -> ChatResult:
        """
        Run one chat completion.

        Never raises for backend problems: a missing credential returns the
        simulation notice, and timeouts, errors or empty replies return
        ok=False with empty content.
        """
        try:
            if not self.has_credential:
                raise BackendUnavailable(f"No API key configured for {self._settings.llm_provider}")
            llm = self._build_llm(temperature, max_tokens)
        except BackendUnavailable as e:
            logger.warning(f"Chat backend unavailable: {e}")
            return ChatResult(
                ok=False,
                content=SIMULATION_NOTICE.format(provider=self._settings.llm_provider),
            )
        except Exception as e:
            logger.error(f"Could not create chat model for {self._settings.llm_provider}: {e}")
            return ChatResult(ok=False, content="")

        try:
            content = await self._invoke(llm, to_langchain_messages(messages))
        except UpstreamCallFailure as e:
            logger.error(f"Chat completion failed: {e}")
            return ChatResult(ok=False, content="")

        if not content:
            logger.warning("Chat completion returned no content")
            return ChatResult(ok=False, content="")

        return ChatResult(ok=True, content=content)

    async def _invoke(self, llm: BaseChatModel, messages: list[BaseMessage]) -> str:
        timeout = self._settings.llm_timeout_seconds
        try:
            response = await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamCallFailure(f"chat call timed out after {timeout}s") from e
        except Exception as e:
            raise UpstreamCallFailure(f"{type(e).__name__}: {e}") from e
        return _text_of(response)
