"""Configuration management using pydantic-settings."""

import warnings
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rag_core.utils.errors import ConfigurationError

# The embedding model the vector index was built with. Pinecone indexes have a
# fixed dimension, so switching models means re-embedding every document.
SUPPORTED_EMBEDDING_MODEL = "text-embedding-3-large"
MAX_EMBEDDING_DIMENSION = 3072


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration (OpenAI)."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key for embeddings. Env var: OPENAI_API_KEY",
    )
    # Optional alternate env var name some users use
    open_ai_api_key: Optional[str] = Field(
        default=None,
        description="Alternate OpenAI API key env var name. Env var: OPEN_AI_API_KEY",
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Optional OpenAI base URL (advanced). Env var: OPENAI_BASE_URL",
    )

    embedding_model: str = Field(
        default=SUPPORTED_EMBEDDING_MODEL,
        description="Embedding model name. Env var: EMBEDDING_MODEL",
    )
    embedding_dimension: int = Field(
        default=MAX_EMBEDDING_DIMENSION,
        ge=1,
        le=MAX_EMBEDDING_DIMENSION,
        description="Embedding dimension (must match the Pinecone index). Env var: EMBEDDING_DIMENSION",
    )
    embedding_batch_size: int = Field(
        default=20,
        ge=1,
        le=2048,
        description="Max texts per provider request. Env var: EMBEDDING_BATCH_SIZE",
    )
    embedding_timeout: float = Field(
        default=30.0,
        description="Embedding request timeout in seconds. Env var: EMBEDDING_TIMEOUT",
    )
    embedding_max_retries: int = Field(
        default=3,
        ge=1,
        description="Max attempts for a retryable embedding request. Env var: EMBEDDING_MAX_RETRIES",
    )
    embedding_max_text_length: int = Field(
        default=8000,
        ge=1,
        description="Input is truncated to this many characters. Env var: EMBEDDING_MAX_TEXT_LENGTH",
    )
    embedding_min_text_length: int = Field(
        default=1,
        ge=1,
        description="Shorter (trimmed) input is rejected. Env var: EMBEDDING_MIN_TEXT_LENGTH",
    )
    embedding_retry_initial_delay: float = Field(
        default=1.0,
        ge=0,
        description="First backoff delay in seconds. Env var: EMBEDDING_RETRY_INITIAL_DELAY",
    )
    embedding_retry_max_delay: float = Field(
        default=10.0,
        ge=0,
        description="Upper bound for backoff delays in seconds. Env var: EMBEDDING_RETRY_MAX_DELAY",
    )
    embedding_retry_jitter: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Max random increase applied to each delay (fraction). Env var: EMBEDDING_RETRY_JITTER",
    )
    embedding_batch_delay: float = Field(
        default=0.2,
        ge=0,
        description="Pause between sub-batches in seconds. Env var: EMBEDDING_BATCH_DELAY",
    )

    @model_validator(mode="after")
    def normalize_openai_env_vars(self) -> "EmbeddingSettings":
        """Accept OPEN_AI_API_KEY as an alias for OPENAI_API_KEY."""
        if not self.openai_api_key and self.open_ai_api_key:
            self.openai_api_key = self.open_ai_api_key
        return self

    @field_validator("embedding_model")
    @classmethod
    def validate_embedding_model(cls, v: str) -> str:
        """Only the model the index was built with is accepted."""
        if v != SUPPORTED_EMBEDDING_MODEL:
            raise ValueError(
                f"Unsupported embedding model '{v}'. Only '{SUPPORTED_EMBEDDING_MODEL}' is supported"
            )
        return v

    @model_validator(mode="after")
    def validate_retry_delays(self) -> "EmbeddingSettings":
        if self.embedding_retry_initial_delay > self.embedding_retry_max_delay:
            raise ValueError("EMBEDDING_RETRY_INITIAL_DELAY must not exceed EMBEDDING_RETRY_MAX_DELAY")
        return self

    @property
    def is_configured(self) -> bool:
        """Check if the embedding provider is configured."""
        return bool(self.openai_api_key)

    @property
    def model(self) -> str:
        return self.embedding_model

    @property
    def dimension(self) -> int:
        return self.embedding_dimension

    @property
    def batch_size(self) -> int:
        return self.embedding_batch_size

    @property
    def timeout(self) -> float:
        return self.embedding_timeout

    @property
    def max_retries(self) -> int:
        return self.embedding_max_retries


class CacheSettings(BaseSettings):
    """In-process embedding cache configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_CACHE_", case_sensitive=False)

    enabled: bool = Field(default=True, description="Enable the embedding cache. Env var: EMBEDDING_CACHE_ENABLED")
    ttl_seconds: float = Field(
        default=24 * 60 * 60,
        gt=0,
        description="Entry time-to-live in seconds. Env var: EMBEDDING_CACHE_TTL_SECONDS",
    )
    max_entries: int = Field(
        default=1000,
        ge=1,
        description="Hard cap on cached entries. Env var: EMBEDDING_CACHE_MAX_ENTRIES",
    )
    prune_fraction: float = Field(
        default=0.2,
        gt=0,
        le=1,
        description="Share of oldest entries removed when the cap is exceeded. Env var: EMBEDDING_CACHE_PRUNE_FRACTION",
    )


class PineconeSettings(BaseSettings):
    """Pinecone vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="PINECONE_", case_sensitive=False)

    api_key: Optional[str] = Field(default=None, description="Pinecone API key. Env var: PINECONE_API_KEY")
    index_name: Optional[str] = Field(default=None, description="Pinecone index name. Env var: PINECONE_INDEX_NAME")
    environment: Optional[str] = Field(
        default=None,
        description="Pinecone environment, used to build the index host. Env var: PINECONE_ENVIRONMENT",
    )
    host: Optional[str] = Field(
        default=None,
        description="Explicit index host URL (takes precedence). Env var: PINECONE_HOST",
    )
    timeout: float = Field(default=30.0, description="Request timeout in seconds. Env var: PINECONE_TIMEOUT")
    upsert_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Vectors per upsert request. Env var: PINECONE_UPSERT_BATCH_SIZE",
    )
    api_version: Optional[str] = Field(
        default=None,
        description="Value for the X-Pinecone-API-Version header. Env var: PINECONE_API_VERSION",
    )

    @property
    def index_host(self) -> Optional[str]:
        """Resolve the index base URL."""
        if self.host:
            host = self.host.rstrip("/")
            if not host.startswith(("http://", "https://")):
                host = f"https://{host}"
            return host
        if self.index_name and self.environment:
            return f"https://{self.index_name}.svc.{self.environment}.pinecone.io"
        return None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.index_host)


class ServerSettings(BaseSettings):
    """Server configuration."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    host: str = Field(default="0.0.0.0", description="Server host. Env var: HOST")
    port: int = Field(default=8004, description="HTTP server port. Env var: PORT")
    reload: bool = Field(
        default=False, description="Enable auto-reload (development only). Env var: RELOAD"
    )


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="rag-core", description="Application name. Env var: APP_NAME")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment. Env var: ENVIRONMENT",
    )
    debug: bool = Field(default=False, description="Enable debug mode. Env var: DEBUG")
    log_level: str = Field(default="INFO", description="Logging level. Env var: LOG_LEVEL")

    # Sub-settings
    embedding: Optional[EmbeddingSettings] = None
    cache: Optional[CacheSettings] = None
    pinecone: Optional[PineconeSettings] = None
    server: Optional[ServerSettings] = None

    @model_validator(mode="after")
    def initialize_nested_settings(self) -> "Settings":
        """Initialize nested settings to ensure they read from environment."""
        if self.embedding is None:
            self.embedding = EmbeddingSettings()
        if self.cache is None:
            self.cache = CacheSettings()
        if self.pinecone is None:
            self.pinecone = PineconeSettings()
        if self.server is None:
            self.server = ServerSettings()
        return self

    @field_validator("environment", mode="before")
    @classmethod
    def parse_environment(cls, v):
        """Parse environment from string."""
        if isinstance(v, str):
            try:
                return Environment(v.lower())
            except ValueError:
                return Environment.DEVELOPMENT
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    def missing_configuration(self) -> List[str]:
        """List the required environment variables that are not set."""
        missing: List[str] = []
        if not self.embedding.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if not self.pinecone.api_key:
            missing.append("PINECONE_API_KEY")
        if not self.pinecone.index_host:
            missing.append("PINECONE_HOST (or PINECONE_INDEX_NAME and PINECONE_ENVIRONMENT)")
        return missing

    def validate_configuration(self) -> None:
        """Fail fast when required services are not configured."""
        missing = self.missing_configuration()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                details={"missing": missing},
            )
        if self.is_production and self.debug:
            raise ConfigurationError("DEBUG must be False in production")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
        try:
            _settings.validate_configuration()
        except ConfigurationError as e:
            if _settings.is_production:
                _settings = None
                raise  # Fail fast in production
            warnings.warn(e.message, UserWarning)
    return _settings


def reset_settings() -> None:
    """Drop the cached settings instance (tests, config reloads)."""
    global _settings
    _settings = None
