"""Platform poster registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from signalroute.errors import ConfigError

if TYPE_CHECKING:
    from signalroute.integrations.platform import BasePlatformPoster

POSTERS: dict[str, type[BasePlatformPoster]] = {}


def register_poster(name: str):
    """Decorator to register a platform poster."""

    def decorator(cls):
        POSTERS[name] = cls
        return cls

    return decorator


def build_poster(config: dict) -> BasePlatformPoster:
    """Instantiate the poster named by ``execution.platform.type``."""
    from signalroute.config import get_execution_config

    platform_cfg = get_execution_config(config)["platform"]
    poster_type = platform_cfg.get("type", "dry_run")
    if poster_type not in POSTERS:
        raise ConfigError(f"Unknown platform poster type: {poster_type}")
    return POSTERS[poster_type](platform_cfg)


from signalroute.integrations.platform import DryRunPoster, HttpPlatformPoster  # noqa: E402, F401
