"""
Embedding Provider
==================

This module handles the conversion of text to vector embeddings.

BACKENDS (LangChain ``Embeddings``):
- zhipu: ``embedding-2`` through Zhipu's OpenAI-compatible endpoint (1024 dims)
- openai: OpenAI embeddings
- huggingface: local sentence-transformers model, no key needed

CACHING:
Results are memoized under the trimmed text cut to 500 characters, so two
inputs that only differ after character 500 share one vector. For the short
question/answer facts of the campus knowledge base that collision is
accepted; longer inputs should not rely on the cache being exact.

FALLBACK:
If the backend is unreachable, times out or has no credential, a
deterministic character-position vectorizer is used instead. It keeps the
system answering but carries no semantic meaning.
"""

import asyncio
import logging
import math
from typing import Optional

from langchain_core.embeddings import Embeddings

from campus_rag.config import Settings, ZHIPU_BASE_URL, get_settings, is_usable_key
from campus_rag.exceptions import (
    BackendUnavailable,
    InvalidEmbeddingInput,
    UpstreamCallFailure,
)

logger = logging.getLogger(__name__)


def create_embeddings(
    provider: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Embeddings:
    """
    Create embeddings instance based on provider.

    Args:
        provider: Override provider from settings
        settings: Settings to read models and keys from

    Returns:
        LangChain Embeddings instance

    Raises:
        BackendUnavailable: If the provider needs a key and none is configured
        ValueError: If the provider is not supported
    """
    settings = settings or get_settings()
    provider = provider or settings.embedding_provider

    if provider in ("zhipu", "openai") and not is_usable_key(settings.get_embedding_api_key(provider)):
        raise BackendUnavailable(f"No API key configured for {provider} embeddings")

    logger.info(f"Creating embeddings with provider: {provider}")

    if provider == "zhipu":
        from langchain_openai import OpenAIEmbeddings
        return OpenAIEmbeddings(
            model=settings.zhipu_embedding_model,
            api_key=settings.glm_api_key,
            base_url=ZHIPU_BASE_URL,
            # Zhipu does not accept pre-tokenized input
            check_embedding_ctx_length=False,
        )

    elif provider == "openai":
        from langchain_openai import OpenAIEmbeddings
        return OpenAIEmbeddings(
            model=settings.openai_embedding_model,
            api_key=settings.openai_api_key,
            dimensions=settings.embedding_dimension,
        )

    elif provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings
        return HuggingFaceEmbeddings(
            model_name=settings.huggingface_embedding_model,
            model_kwargs={"device": "cpu"},
            encode_kwargs={"normalize_embeddings": True},
        )

    else:
        raise ValueError(f"Unsupported embedding provider: {provider}")


def fallback_embedding(text: str, dimension: int) -> list[float]:
    """
    Deterministic, non-semantic vector for when no backend is available.

    Character ``c`` at position ``i`` adds ``1/(i+1)`` to dimension
    ``(ord(c) + i) % dimension``; the result is L2-normalised. An all-zero
    vector (empty text) is returned unchanged.
    """
    vector = [0.0] * dimension
    for i, char in enumerate(text):
        vector[(ord(char) + i) % dimension] += 1 / (i + 1)

    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return vector
    return [value / norm for value in vector]


class EmbeddingProvider:
    """
    Turns text into vectors with caching and graceful degradation.

    Usage:
        provider = EmbeddingProvider()
        vector = await provider.embed("图书馆几点开门")
        vectors = await provider.embed_batch(["...", "..."])

    The cache is process-wide state for the provider instance. Entries are
    only added, never evicted, except by clear_cache().
    """

    def __init__(
        self,
        backend: Optional[Embeddings] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize the embedding provider.

        Args:
            backend: Pre-configured LangChain embeddings (for testing/customization)
            settings: Override settings
        """
        self._settings = settings or get_settings()
        self._cache: dict[str, list[float]] = {}

        if backend is not None:
            self._backend: Optional[Embeddings] = backend
        else:
            self._backend = self._create_backend()

    def _create_backend(self) -> Optional[Embeddings]:
        try:
            return create_embeddings(settings=self._settings)
        except BackendUnavailable as e:
            logger.warning(f"{e}, using fallback embedding")
            return None

    @property
    def dimension(self) -> int:
        return self._settings.embedding_dimension

    @property
    def has_backend(self) -> bool:
        return self._backend is not None

    def _cache_key(self, text: str) -> str:
        return text.strip()[: self._settings.embedding_cache_key_chars]

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text string.

        Args:
            text: Non-empty text to embed

        Returns:
            Embedding vector

        Raises:
            InvalidEmbeddingInput: If text is empty or not a string
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidEmbeddingInput("text must be a non-empty string")

        key = self._cache_key(text)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if self._backend is None:
            return fallback_embedding(text, self.dimension)

        try:
            vector = await self._call_backend(text)
        except UpstreamCallFailure as e:
            logger.error(f"Embedding API error: {e}")
            return fallback_embedding(text, self.dimension)

        self._cache[key] = vector
        return vector

    async def _call_backend(self, text: str) -> list[float]:
        payload = text.strip()[: self._settings.embedding_max_input_chars]
        try:
            vector = await asyncio.wait_for(
                self._backend.aembed_query(payload),
                timeout=self._settings.embedding_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamCallFailure(
                f"embedding call timed out after {self._settings.embedding_timeout_seconds}s"
            ) from e
        except Exception as e:
            raise UpstreamCallFailure(f"{type(e).__name__}: {e}") from e

        if not vector:
            raise UpstreamCallFailure("Invalid response from embedding API")
        return list(vector)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed multiple texts, a few at a time.

        Each sub-batch runs concurrently; sub-batches are separated by a
        short pause to stay under backend rate limits. Output order matches
        input order.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors
        """
        if not texts:
            return []

        batch_size = self._settings.embedding_batch_size
        results: list[list[float]] = []

        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            results.extend(await asyncio.gather(*(self.embed(text) for text in batch)))

            if start + batch_size < len(texts):
                await asyncio.sleep(self._settings.embedding_batch_delay_seconds)

        return results

    def clear_cache(self) -> None:
        """Drop every cached vector."""
        self._cache.clear()

    def cache_stats(self) -> dict:
        """Cache size and abbreviated keys."""
        return {
            "size": len(self._cache),
            "keys": [f"{key[:50]}..." for key in self._cache],
        }
