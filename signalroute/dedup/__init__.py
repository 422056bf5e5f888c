"""Platform-specific duplicate rule registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from signalroute.dedup.base import BasePlatformRule

PLATFORM_RULES: dict[str, type[BasePlatformRule]] = {}


def register_platform_rule(platform: str):
    """Decorator to register the duplicate rule for a platform."""

    def decorator(cls):
        PLATFORM_RULES[platform] = cls
        return cls

    return decorator


from signalroute.dedup.rules import RedditCrosspostRule, RssArticleRule  # noqa: E402, F401
