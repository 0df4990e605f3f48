"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env file.
"""

from functools import lru_cache
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -----------------
    # API Keys
    # -----------------
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key for Claude models",
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key (embeddings, optional completions)",
    )

    # -----------------
    # Weaviate
    # -----------------
    weaviate_host: str = Field(
        default="localhost",
        description="Weaviate host",
    )
    weaviate_port: int = Field(
        default=8080,
        description="Weaviate port",
    )
    weaviate_api_key: str | None = Field(
        default=None,
        description="Weaviate API key (empty for local anonymous access)",
    )

    # -----------------
    # Application
    # -----------------
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    # -----------------
    # Models
    # -----------------
    llm_provider: str = Field(
        default="anthropic",
        description="Completion provider: anthropic or openai",
    )
    llm_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Main generation model",
    )
    llm_model_fast: str = Field(
        default="claude-3-haiku-20240307",
        description="Fast model for chat titles",
    )
    openai_llm_model: str = Field(
        default="gpt-4-turbo",
        description="Generation model when llm_provider is openai",
    )
    llm_temperature: float = Field(
        default=0.3,
        description="Sampling temperature for answers",
    )
    llm_max_tokens: int = Field(
        default=2000,
        description="Maximum tokens per answer",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model name",
    )
    embedding_dimension: int = Field(
        default=1536,
        description="Expected embedding vector length",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for embedding and LLM API calls",
    )
    max_retries: int = Field(
        default=2,
        description="SDK-level retries for embedding and LLM API calls",
    )

    # -----------------
    # Retrieval
    # -----------------
    default_threshold: float = Field(
        default=0.7,
        description="Similarity threshold for single-query retrieval",
    )
    default_limit: int = Field(
        default=5,
        description="Result limit for single-query retrieval",
    )
    message_threshold: float = Field(
        default=0.65,
        description="Threshold for the full-message leg of dual retrieval",
    )
    term_threshold: float = Field(
        default=0.70,
        description="Threshold for the extracted-terms leg of dual retrieval",
    )
    dual_query_limit: int = Field(
        default=3,
        description="Result limit for each leg of dual retrieval",
    )

    # -----------------
    # Prompting
    # -----------------
    max_query_length: int = Field(
        default=4000,
        description="User messages are truncated beyond this many characters",
    )
    max_context_chars: int = Field(
        default=6000,
        description="Character budget for the retrieved-context block",
    )
    default_specialty_name: str = Field(
        default="General Medicine",
        description="Specialty named in the system prompt when none is given",
    )

    @property
    def weaviate_url(self) -> str:
        """Construct Weaviate URL."""
        return f"http://{self.weaviate_host}:{self.weaviate_port}"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
