"""Posting generated replies back to the originating platform."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from signalroute.errors import ConfigError, IntegrationError
from signalroute.integrations import register_poster
from signalroute.integrations.http import post_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostResult:
    success: bool
    post_id: str | None = None
    error: str | None = None


class BasePlatformPoster(ABC):
    """Base class for platform publishing backends."""

    def __init__(self, config: dict):
        self.config = config

    @abstractmethod
    async def post(self, platform: str, target_id: str, content: str) -> PostResult:
        """Publish ``content`` as a reply to ``target_id``. Never raises for remote errors."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Poster name."""
        ...


@register_poster("http")
class HttpPlatformPoster(BasePlatformPoster):
    """Publish through a posting gateway that fronts the platform APIs."""

    def __init__(self, config: dict):
        super().__init__(config)
        self.base_url = config.get("base_url", "")
        if not self.base_url:
            raise ConfigError("execution.platform.base_url is required for the http poster")
        self.api_key = config.get("api_key", "")
        self.timeout = float(config.get("timeout", 10))

    @property
    def name(self) -> str:
        return "http"

    async def post(self, platform: str, target_id: str, content: str) -> PostResult:
        url = f"{self.base_url.rstrip('/')}/posts"
        payload = {"platform": platform, "target_id": target_id, "content": content}
        try:
            data = await post_json(
                "platform", url, payload, api_key=self.api_key, timeout=self.timeout,
            )
        except (IntegrationError, httpx.HTTPError) as exc:
            logger.warning("Posting to %s failed for %s: %s", platform, target_id, exc)
            return PostResult(success=False, error=str(exc) or type(exc).__name__)

        post_id = data.get("post_id")
        if not post_id:
            return PostResult(success=False, error=data.get("error") or "response has no post_id")
        return PostResult(success=True, post_id=str(post_id))


@register_poster("dry_run")
class DryRunPoster(BasePlatformPoster):
    """Log the reply instead of publishing it."""

    @property
    def name(self) -> str:
        return "dry_run"

    async def post(self, platform: str, target_id: str, content: str) -> PostResult:
        logger.info("[dry-run] %s reply to %s: %s", platform, target_id, content)
        return PostResult(success=True, post_id=f"dryrun-{platform}-{target_id}")
