"""
Application Configuration

Pydantic-based settings management using environment variables.
Each concern (LLM, cloud environment, agents, classifier, storage, docs,
logging) gets its own nested settings class with an env prefix.

Usage:
    from nldb.config import get_settings

    settings = get_settings()
    print(settings.llm.openai_model)
    print(settings.tcb.env_id)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["openai", "local"]


class LLMSettings(BaseSettings):
    """LLM provider configuration."""

    default_provider: ProviderName = Field(default="openai", description="Default LLM provider")
    classifier_provider: ProviderName | None = Field(
        None, description="Provider for the intent classifier (defaults to default_provider)"
    )
    agent_provider: ProviderName | None = Field(
        None, description="Provider for ReAct tool agents (defaults to default_provider)"
    )

    # OpenAI-compatible configuration (OpenAI, DashScope, ...)
    openai_api_key: str | None = Field(
        None,
        description="API key for the OpenAI-compatible endpoint",
        min_length=20,
    )
    openai_base_url: str | None = Field(
        None,
        description="Base URL of an OpenAI-compatible endpoint (None = api.openai.com)",
    )
    openai_model: str = Field(default="qwen-plus", description="Chat model for agents")
    openai_model_mini: str = Field(default="qwen-turbo", description="Lightweight chat model")
    embedding_model: str = Field(
        default="text-embedding-v3", description="Embedding model for documentation search"
    )

    # Local model configuration
    local_base_url: str = Field(
        default="http://localhost:11434",
        description="Base URL for local model server (Ollama, vLLM, etc.)",
    )
    local_model: str = Field(default="qwen2.5:7b", description="Local model name")

    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Default temperature for LLM responses",
    )
    max_tokens: int = Field(default=2000, gt=0, le=16000, description="Maximum tokens per response")
    timeout: int = Field(default=60, gt=0, description="Request timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("openai_api_key", "openai_base_url", mode="before")
    @classmethod
    def normalize_blank(cls, v: str | None) -> str | None:
        """Treat empty strings as missing."""
        if v == "":
            return None
        return v

    @model_validator(mode="after")
    def validate_provider_keys(self) -> "LLMSettings":
        """Ensure an API key is set when the OpenAI-compatible provider is selected."""
        selected = {self.default_provider, self.classifier_provider, self.agent_provider}
        if "openai" in selected and not self.openai_api_key:
            raise ValueError("API key required for openai provider. Set LLM_OPENAI_API_KEY")
        return self


class CloudBaseSettings(BaseSettings):
    """Cloud environment and CAPI gateway configuration."""

    env_id: str | None = Field(None, description="Default cloud environment ID")
    capi_base_url: str = Field(
        default="https://weda-api.cloud.tencent.com",
        description="Base URL of the CAPI gateway",
    )
    region: str = Field(default="ap-shanghai", description="Cloud region")
    cookie: str | None = Field(
        None, description="Console session cookie used when nobody has logged in"
    )
    source: str = Field(default="nldb-chat", description="Value sent as X-Tcb-Source")
    timeout: int = Field(default=30, gt=0, description="Gateway request timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="TCB_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("env_id", "cookie", mode="before")
    @classmethod
    def normalize_blank(cls, v: str | None) -> str | None:
        if v == "":
            return None
        return v


class AgentSettings(BaseSettings):
    """Routing flags and ReAct loop limits."""

    use_tool_agent: bool = Field(
        default=True, description="Route database intents to the ReAct tool agent"
    )
    use_mysql_agent: bool = Field(
        default=True, description="Route MySQL database intents to the MySQL tool agent"
    )
    max_iterations: int = Field(default=5, ge=1, le=20, description="ReAct iteration ceiling")
    fallback_top_k: int = Field(
        default=5, ge=1, le=20, description="Documentation chunks given to the fallback agent"
    )
    preview_rows: int = Field(
        default=3, ge=1, description="Rows of a SELECT result shown to the model"
    )
    default_limit: int = Field(default=100, gt=0, description="Default query row limit")

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file=".env",
        extra="ignore",
    )


class ClassifierSettings(BaseSettings):
    """Intent classifier pipeline selection."""

    mode: Literal["llm", "rules"] = Field(
        default="llm",
        description="'llm' chains the LLM classifier with keyword rules, 'rules' uses rules only",
    )
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)

    model_config = SettingsConfigDict(
        env_prefix="CLASSIFIER_",
        env_file=".env",
        extra="ignore",
    )


class StorageSettings(BaseSettings):
    """Conversation history and preference storage."""

    type: Literal["memory", "file", "redis"] = Field(
        default="memory", description="Storage backend"
    )
    file_path: Path = Field(
        default=Path("./data/storage.json"), description="JSON file for the file backend"
    )
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    ttl_seconds: int | None = Field(
        default=None, gt=0, description="Optional expiry for Redis keys"
    )
    history_size: int = Field(default=10, gt=0, description="Entries kept per session")
    context_window: int = Field(
        default=5, gt=0, description="Entries exposed to classification"
    )

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        extra="ignore",
    )


class DocsSettings(BaseSettings):
    """Documentation index configuration."""

    path: Path = Field(default=Path("./docs"), description="Markdown documentation root")
    cache_dir: Path = Field(
        default=Path("./.vector_cache"), description="Directory for cached embeddings"
    )
    collection_name: str = Field(default="nldb_docs", description="Vector collection name")
    chunk_size: int = Field(default=500, gt=0, le=8192, description="Chunk size in characters")
    chunk_overlap: int = Field(default=50, ge=0, description="Overlap between chunks")
    top_k: int = Field(default=5, gt=0, le=20, description="Chunks used to answer")
    embedding_batch_size: int = Field(default=10, gt=0, description="Texts per embedding call")

    model_config = SettingsConfigDict(
        env_prefix="DOCS_",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_chunk_overlap(self) -> "DocsSettings":
        """Ensure chunk overlap is less than chunk size."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be less than "
                f"chunk_size ({self.chunk_size})"
            )
        return self


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stdout only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=getattr(logging, self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,
        )


class Settings(BaseSettings):
    """
    Main application settings.

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, staging, production)
        APP_NAME: Application name for logging
        API_HOST / API_PORT: API server bind address
        CORS_ORIGINS: Comma separated list of allowed origins
        LLM_*: LLM provider configuration (see LLMSettings)
        TCB_*: Cloud environment configuration (see CloudBaseSettings)
        AGENT_*: Routing flags (see AgentSettings)
        CLASSIFIER_*: Classifier pipeline (see ClassifierSettings)
        STORAGE_*: History and preference storage (see StorageSettings)
        DOCS_*: Documentation index (see DocsSettings)
        LOG_*: Logging configuration (see LoggingSettings)
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(default="NLDB Chat", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=3001, gt=0, le=65535, description="API server port")
    cors_origins: str = Field(default="*", description="Comma separated allowed origins")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    tcb: CloudBaseSettings = Field(default_factory=CloudBaseSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    docs: DocsSettings = Field(default_factory=DocsSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def allowed_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        """Configure logging when settings are loaded."""
        self.logging.configure()
        return self

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "llm_provider": self.llm.default_provider,
                "classifier_mode": self.classifier.mode,
                "storage_type": self.storage.type,
                "use_tool_agent": self.agent.use_tool_agent,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("NLDB_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Singleton settings instance
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
