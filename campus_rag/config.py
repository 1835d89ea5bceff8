"""
Configuration Management
========================

This module centralizes all configuration using pydantic-settings.
It loads environment variables and provides type-safe access to config values.

SUPPORTED LLM PROVIDERS:
1. zhipu   - Zhipu GLM-4 through its OpenAI-compatible endpoint (default)
2. openai  - OpenAI
3. groq    - Groq Cloud
4. google  - Google Gemini
5. ollama  - Local LLMs, no key needed

A key that is empty or still contains the ".env.example" placeholder
("your_...") counts as missing. With no usable key the pipeline answers
from canned offline responses and embeddings use the fallback vectorizer.
"""

from pathlib import Path
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings
from pydantic import Field


ZHIPU_BASE_URL = "https://open.bigmodel.cn/api/paas/v4/"
PLACEHOLDER_MARKER = "your_"


def is_usable_key(value: str) -> bool:
    """True when a credential is present and not a template placeholder."""
    return bool(value) and PLACEHOLDER_MARKER not in value


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development.
    In production, override via environment variables or .env file.
    """

    # =========================================================================
    # LLM Provider Selection
    # =========================================================================
    llm_provider: Literal["zhipu", "openai", "groq", "google", "ollama"] = Field(
        default="zhipu",
        description="Which chat model provider backs the agents"
    )

    # =========================================================================
    # API Keys
    # =========================================================================
    glm_api_key: str = Field(
        default="",
        description="Zhipu API key (GLM_API_KEY)"
    )

    openai_api_key: str = Field(
        default="",
        description="OpenAI API key (only if using openai provider)"
    )

    groq_api_key: str = Field(
        default="",
        description="Groq API key"
    )

    google_api_key: str = Field(
        default="",
        description="Google API key"
    )

    firecrawl_api_key: str = Field(
        default="",
        description="Firecrawl key for supplementary web search (optional)"
    )

    # =========================================================================
    # Model Configuration
    # =========================================================================
    zhipu_model: str = Field(default="glm-4", description="Zhipu chat model")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI chat model")
    groq_model: str = Field(default="llama-3.1-8b-instant", description="Groq chat model")
    google_model: str = Field(default="gemini-1.5-flash", description="Google Gemini model")
    ollama_model: str = Field(default="qwen2.5", description="Ollama model")

    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL"
    )

    llm_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Ceiling for a single chat completion call"
    )

    # =========================================================================
    # Embedding Configuration
    # =========================================================================
    embedding_provider: Literal["zhipu", "openai", "huggingface"] = Field(
        default="zhipu",
        description="Embedding backend"
    )

    zhipu_embedding_model: str = Field(default="embedding-2")
    openai_embedding_model: str = Field(default="text-embedding-3-small")
    huggingface_embedding_model: str = Field(
        default="BAAI/bge-large-zh-v1.5",
        description="Local embedding model (1024 dimensions)"
    )

    embedding_dimension: int = Field(
        default=1024,
        gt=0,
        description="Vector dimension shared by the whole store and the fallback vectorizer"
    )

    embedding_batch_size: int = Field(default=5, gt=0)
    embedding_batch_delay_seconds: float = Field(default=0.1, ge=0.0)
    embedding_max_input_chars: int = Field(default=2000, gt=0)

    # Inputs sharing their first N characters share a cache slot.
    embedding_cache_key_chars: int = Field(default=500, gt=0)

    embedding_timeout_seconds: float = Field(default=30.0, gt=0)

    # =========================================================================
    # Knowledge Base / Retrieval
    # =========================================================================
    knowledge_path: Path = Field(
        default=Path("./data/campus_knowledge.json"),
        description="JSON knowledge source loaded once at startup"
    )

    retrieval_top_k: int = Field(default=3, gt=0)

    search_threshold: float = Field(
        default=0.5,
        description="Minimum cosine score for a plain vector search"
    )

    hybrid_vector_threshold: float = Field(
        default=0.4,
        description="Minimum cosine score for the vector half of hybrid search"
    )

    # Fusion weights favour semantic over literal matches; tune per corpus.
    hybrid_vector_weight: float = Field(default=0.7, ge=0.0)
    hybrid_keyword_weight: float = Field(default=0.3, ge=0.0)

    # =========================================================================
    # Pipeline
    # =========================================================================
    history_window: int = Field(
        default=10,
        ge=0,
        description="How many recent user/assistant turns reach the prompts"
    )

    history_message_max_chars: int = Field(default=4000, gt=0)

    web_search_timeout_seconds: float = Field(default=10.0, gt=0)

    web_search_limit: int = Field(default=3, gt=0)

    # =========================================================================
    # API Configuration
    # =========================================================================
    api_host: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server"
    )

    api_port: int = Field(
        default=3000,
        description="Port for the API server"
    )

    debug_mode: bool = Field(
        default=False,
        description="Enable reload for development"
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    class Config:
        """Pydantic configuration for settings."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def get_model_name(self) -> str:
        """Get the chat model name for the selected provider."""
        model_map = {
            "zhipu": self.zhipu_model,
            "openai": self.openai_model,
            "groq": self.groq_model,
            "google": self.google_model,
            "ollama": self.ollama_model,
        }
        return model_map.get(self.llm_provider, self.zhipu_model)

    def get_llm_api_key(self, provider: Optional[str] = None) -> str:
        """Get the API key for a chat provider ("" for ollama)."""
        key_map = {
            "zhipu": self.glm_api_key,
            "openai": self.openai_api_key,
            "groq": self.groq_api_key,
            "google": self.google_api_key,
        }
        return key_map.get(provider or self.llm_provider, "")

    @property
    def has_llm_credential(self) -> bool:
        """Whether the chat backend can be called at all."""
        if self.llm_provider == "ollama":
            return True
        return is_usable_key(self.get_llm_api_key())

    def get_embedding_api_key(self, provider: Optional[str] = None) -> str:
        """Get the API key for an embedding provider ("" for huggingface)."""
        key_map = {
            "zhipu": self.glm_api_key,
            "openai": self.openai_api_key,
        }
        return key_map.get(provider or self.embedding_provider, "")

    @property
    def has_embedding_credential(self) -> bool:
        """Whether the embedding backend can be called at all."""
        if self.embedding_provider == "huggingface":
            return True
        return is_usable_key(self.get_embedding_api_key())

    @property
    def has_web_search(self) -> bool:
        return is_usable_key(self.firecrawl_api_key)

    def missing_credentials(self) -> list[str]:
        """Names of required-but-missing keys, for the startup warning."""
        missing = []
        if not self.has_llm_credential:
            missing.append(f"{self.llm_provider.upper()} chat key")
        if not self.has_embedding_credential:
            missing.append(f"{self.embedding_provider.upper()} embedding key")
        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
