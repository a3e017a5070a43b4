"""Provider factory to keep provider selection isolated from CLI logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from purrclaw.providers.base import LLMProvider
from purrclaw.providers.fallback import FallbackProvider
from purrclaw.providers.litellm_provider import LiteLLMProvider
from purrclaw.providers.openai_compat import OpenAICompatProvider

if TYPE_CHECKING:
    from purrclaw.config.schema import Config, ProviderConfig

DEFAULT_API_BASES = {
    "deepseek": "https://api.deepseek.com/v1",
    "openai": "https://api.openai.com/v1",
}

DEFAULT_MODELS = {
    "deepseek": "deepseek-chat",
    "openai": "gpt-4o-mini",
    "openai_compat": "gpt-4o-mini",
    "openrouter": "openrouter/deepseek/deepseek-chat",
    "anthropic": "anthropic/claude-3-5-haiku-latest",
}

DISPLAY_NAMES = {
    "deepseek": "DeepSeek",
    "openai": "OpenAI",
    "openai_compat": "OpenAI-Compatible",
}


def build_provider(name: str, p: "ProviderConfig", model: str | None = None) -> LLMProvider:
    """Create one provider by name from its config section."""
    if not p.api_key:
        raise RuntimeError(
            f"No API key configured for provider '{name}'. "
            "Set one in ~/.purrclaw/config.json under providers section"
        )
    model = model or p.model or DEFAULT_MODELS.get(name, "")

    if name in DISPLAY_NAMES:
        api_base = p.api_base or DEFAULT_API_BASES.get(name)
        if not api_base:
            raise RuntimeError(f"Provider '{name}' requires apiBase")
        return OpenAICompatProvider(
            api_key=p.api_key,
            api_base=api_base,
            default_model=model,
            name=DISPLAY_NAMES[name],
            extra_headers=p.extra_headers,
        )

    if name in ("openrouter", "anthropic"):
        if not model.startswith(f"{name}/"):
            model = f"{name}/{model}"
        return LiteLLMProvider(
            api_key=p.api_key,
            api_base=p.api_base,
            default_model=model,
            extra_headers=p.extra_headers,
            provider_name=name,
        )

    raise RuntimeError(f"Unsupported provider '{name}'. Supported: {', '.join(DEFAULT_MODELS)}")


def create_provider(config: "Config") -> LLMProvider:
    """Create the configured provider, wrapped with a fallback when one is set."""
    providers = config.providers
    primary_name = providers.primary
    primary_cfg = providers.get(primary_name)
    if primary_cfg is None:
        raise RuntimeError(f"Unsupported provider '{primary_name}'")
    primary = build_provider(primary_name, primary_cfg, primary_cfg.model or config.agents.defaults.model)

    fallback_name = providers.fallback
    if not fallback_name or fallback_name == primary_name:
        return primary

    fallback_cfg = providers.get(fallback_name)
    if fallback_cfg is None or not fallback_cfg.api_key:
        logger.warning(f"Fallback provider '{fallback_name}' has no API key; running without fallback")
        return primary

    fallback = build_provider(fallback_name, fallback_cfg)
    logger.info(f"Provider {primary_name} with fallback {fallback_name}")
    return FallbackProvider(primary, fallback, fallback_model=fallback.get_default_model())
