"""
LLM Provider Factory

Creates provider instances from LLMSettings, with per-agent overrides
(``classifier_provider``, ``agent_provider``).
"""

import logging
from typing import Literal

from nldb.config import LLMSettings
from nldb.llm.base import BaseLLMProvider
from nldb.llm.local import LocalProvider
from nldb.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)


class LLMProviderFactory:
    """Factory for creating LLM provider instances."""

    PROVIDERS = {
        "openai": OpenAIProvider,
        "local": LocalProvider,
    }

    @staticmethod
    def create_provider(
        provider_type: Literal["openai", "local"],
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """
        Create an LLM provider instance.

        Args:
            provider_type: Type of provider to create
            config: LLM configuration settings
            model_type: Use main model or mini model (default: main)

        Raises:
            ValueError: If provider type is unknown or required config is missing
        """
        if provider_type not in LLMProviderFactory.PROVIDERS:
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {list(LLMProviderFactory.PROVIDERS.keys())}"
            )

        logger.info(
            f"Creating {provider_type} provider with {model_type} model",
            extra={"provider": provider_type, "model_type": model_type},
        )

        if provider_type == "openai":
            return LLMProviderFactory._create_openai(config, model_type)
        return LLMProviderFactory._create_local(config)

    @staticmethod
    def create_default_provider(
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """Create provider using default_provider from config."""
        return LLMProviderFactory.create_provider(config.default_provider, config, model_type)

    @staticmethod
    def create_agent_provider(
        agent_name: str,
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """
        Create provider for a specific component with override support.

        Checks for ``{agent_name}_provider`` on the config and falls back to
        default_provider if it is not set.
        """
        override = getattr(config, f"{agent_name}_provider", None)
        provider_type = override or config.default_provider

        logger.info(
            f"Creating provider for {agent_name}",
            extra={"agent": agent_name, "provider": provider_type, "has_override": bool(override)},
        )

        return LLMProviderFactory.create_provider(provider_type, config, model_type)

    @staticmethod
    def _create_openai(
        config: LLMSettings,
        model_type: Literal["main", "mini"],
    ) -> OpenAIProvider:
        if not config.openai_api_key:
            raise ValueError("OpenAI API key is required but not configured")

        model = config.openai_model if model_type == "main" else config.openai_model_mini

        return OpenAIProvider(
            api_key=config.openai_api_key,
            model=model,
            base_url=config.openai_base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )

    @staticmethod
    def _create_local(config: LLMSettings) -> LocalProvider:
        # Local servers expose a single model, so main and mini are the same
        return LocalProvider(
            base_url=config.local_base_url,
            model=config.local_model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )
