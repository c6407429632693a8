"""
Unit tests for configuration module.

Tests settings loading, validation, nested configuration, and caching.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from nldb.config import (
    AgentSettings,
    ClassifierSettings,
    CloudBaseSettings,
    DocsSettings,
    LLMSettings,
    Settings,
    StorageSettings,
    clear_settings_cache,
    get_settings,
)


class TestLLMSettings:
    """Test LLM configuration."""

    def test_defaults(self):
        settings = LLMSettings()

        assert settings.default_provider == "openai"
        assert settings.openai_model == "qwen-plus"
        assert settings.openai_model_mini == "qwen-turbo"
        assert settings.classifier_provider is None
        assert settings.temperature == 0.0

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("LLM_OPENAI_MODEL", "gpt-4o")
        monkeypatch.setenv("LLM_OPENAI_BASE_URL", "https://dashscope.aliyuncs.com/compatible-mode/v1")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.7")

        settings = LLMSettings()

        assert settings.openai_model == "gpt-4o"
        assert settings.openai_base_url.startswith("https://dashscope")
        assert settings.temperature == 0.7

    def test_api_key_required_for_openai(self, monkeypatch):
        monkeypatch.delenv("LLM_OPENAI_API_KEY")

        with pytest.raises(ValidationError, match="API key required"):
            LLMSettings()

    def test_api_key_required_for_override(self, monkeypatch):
        monkeypatch.delenv("LLM_OPENAI_API_KEY")

        with pytest.raises(ValidationError):
            LLMSettings(default_provider="local", classifier_provider="openai")

    def test_local_only_needs_no_key(self, monkeypatch):
        monkeypatch.delenv("LLM_OPENAI_API_KEY")
        monkeypatch.setenv("LLM_DEFAULT_PROVIDER", "local")

        assert LLMSettings().openai_api_key is None

    def test_blank_key_is_missing(self, monkeypatch):
        monkeypatch.setenv("LLM_OPENAI_API_KEY", "")
        monkeypatch.setenv("LLM_DEFAULT_PROVIDER", "local")

        assert LLMSettings().openai_api_key is None

    def test_short_key_rejected(self, monkeypatch):
        monkeypatch.setenv("LLM_OPENAI_API_KEY", "sk-short")

        with pytest.raises(ValidationError):
            LLMSettings()

    def test_unknown_provider_rejected(self, monkeypatch):
        monkeypatch.setenv("LLM_DEFAULT_PROVIDER", "anthropic")

        with pytest.raises(ValidationError):
            LLMSettings()


class TestCloudBaseSettings:
    def test_defaults(self):
        settings = CloudBaseSettings()
        assert settings.env_id is None
        assert settings.region == "ap-shanghai"
        assert settings.capi_base_url == "https://weda-api.cloud.tencent.com"

    def test_blank_env_id(self, monkeypatch):
        monkeypatch.setenv("TCB_ENV_ID", "")
        assert CloudBaseSettings().env_id is None

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TCB_ENV_ID", "env-123")
        monkeypatch.setenv("TCB_COOKIE", "uin=o1; skey=a")
        settings = CloudBaseSettings()
        assert settings.env_id == "env-123"
        assert settings.cookie == "uin=o1; skey=a"


class TestAgentAndClassifierSettings:
    def test_agent_defaults(self):
        settings = AgentSettings()
        assert settings.use_tool_agent is True
        assert settings.use_mysql_agent is True
        assert settings.max_iterations == 5
        assert settings.preview_rows == 3

    def test_agent_flags_from_env(self, monkeypatch):
        monkeypatch.setenv("AGENT_USE_TOOL_AGENT", "false")
        monkeypatch.setenv("AGENT_MAX_ITERATIONS", "3")
        settings = AgentSettings()
        assert settings.use_tool_agent is False
        assert settings.max_iterations == 3

    def test_iteration_ceiling(self):
        with pytest.raises(ValidationError):
            AgentSettings(max_iterations=0)

    def test_classifier_mode(self, monkeypatch):
        assert ClassifierSettings().mode == "llm"
        monkeypatch.setenv("CLASSIFIER_MODE", "rules")
        assert ClassifierSettings().mode == "rules"
        monkeypatch.setenv("CLASSIFIER_MODE", "keywords")
        with pytest.raises(ValidationError):
            ClassifierSettings()


class TestStorageAndDocsSettings:
    def test_storage_defaults(self):
        settings = StorageSettings()
        assert settings.type == "memory"
        assert settings.history_size == 10
        assert settings.context_window == 5
        assert settings.ttl_seconds is None

    def test_storage_type_from_env(self, monkeypatch):
        monkeypatch.setenv("STORAGE_TYPE", "file")
        monkeypatch.setenv("STORAGE_FILE_PATH", "/tmp/nldb.json")
        settings = StorageSettings()
        assert settings.type == "file"
        assert settings.file_path == Path("/tmp/nldb.json")

    def test_docs_paths_from_environment(self, tmp_path):
        settings = DocsSettings()
        assert settings.path == tmp_path / "docs"
        assert settings.cache_dir == tmp_path / "vector_cache"

    def test_chunk_overlap_must_be_smaller(self):
        with pytest.raises(ValidationError, match="chunk_overlap"):
            DocsSettings(chunk_size=100, chunk_overlap=100)


class TestSettings:
    """Test main Settings class."""

    def test_nested_settings(self):
        settings = Settings()
        assert isinstance(settings.llm, LLMSettings)
        assert isinstance(settings.tcb, CloudBaseSettings)
        assert isinstance(settings.storage, StorageSettings)
        assert settings.api_port == 3001
        assert settings.is_production is False

    def test_allowed_origins(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173, https://console.example.com,")
        settings = Settings()
        assert settings.allowed_origins == [
            "http://localhost:5173",
            "https://console.example.com",
        ]

    def test_production_flag(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        assert Settings().is_production is True


class TestSettingsCache:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_settings_cache(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("API_PORT", "8000")

        clear_settings_cache()
        second = get_settings()

        assert first is not second
        assert second.api_port == 8000
