"""Response generation provider registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from signalroute.errors import ConfigError

if TYPE_CHECKING:
    from signalroute.generate.base import BaseLLMProvider

PROVIDERS: dict[str, type[BaseLLMProvider]] = {}


def register_provider(name: str):
    """Decorator to register a generation provider type."""

    def decorator(cls):
        PROVIDERS[name] = cls
        return cls

    return decorator


def build_provider(config: dict, name: str) -> BaseLLMProvider:
    """Instantiate the configured provider called ``name``."""
    from signalroute.config import get_llm_provider_config

    provider_cfg = get_llm_provider_config(config, name)
    provider_type = provider_cfg["provider_type"]
    if provider_type not in PROVIDERS:
        raise ConfigError(f"Unknown generation provider type: {provider_type}")

    return PROVIDERS[provider_type](
        api_key=provider_cfg["api_key"],
        base_url=provider_cfg["base_url"],
        default_model=provider_cfg["model"],
        max_retries=provider_cfg["max_retries"],
        timeout=provider_cfg["timeout"],
    )


# Import implementations to trigger registration
from signalroute.generate.anthropic_provider import AnthropicProvider  # noqa: E402, F401
from signalroute.generate.endpoint import EndpointProvider  # noqa: E402, F401
from signalroute.generate.openai_compat import OpenAICompatibleProvider  # noqa: E402, F401
