"""Abstract base class for response generation providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from signalroute.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
    """What to write, and how the brand wants it to sound."""

    prompt: str
    system: str = ""
    max_length: int = 280
    temperature: float = 0.7
    tone: str = "friendly"
    do_use: tuple[str, ...] = ()
    dont_use: tuple[str, ...] = ()
    metadata: dict = field(default_factory=dict, compare=False)


@dataclass
class LLMResponse:
    """Text returned by a provider."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""


class BaseLLMProvider(ABC):
    """Base class for generation providers.

    Subclasses list the settings they cannot work without in
    ``required_settings``; a missing one raises ``ConfigError`` here.
    """

    required_settings: tuple[str, ...] = ()

    def __init__(
        self,
        api_key: str,
        base_url: str,
        default_model: str,
        max_retries: int = 0,
        timeout: float = 10,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.default_model = default_model
        self.max_retries = max_retries
        self.timeout = timeout

        missing = [name for name in self.required_settings if not getattr(self, name)]
        if missing:
            raise ConfigError(
                f"{self.provider_name} provider needs: {', '.join(missing)}"
            )

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> LLMResponse:
        """Produce a reply for ``request``."""
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name."""
        ...
