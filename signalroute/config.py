"""Load configuration from YAML with env var substitution, plus per-stage defaults."""

from __future__ import annotations

import copy
import os
import re
from pathlib import Path
from typing import Any

import yaml

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _load_dotenv(path: str | Path = ".env") -> None:
    """Populate os.environ from a .env file, keeping variables already set."""
    env_path = Path(path)
    if not env_path.is_file():
        return
    with open(env_path) as f:
        for raw_line in f:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            if key:
                os.environ.setdefault(key, value.strip().strip("'\""))


def _resolve_env_vars(value: Any) -> Any:
    """Recursively substitute ${ENV_VAR} references in config values."""
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value
    whole = _ENV_PATTERN.fullmatch(value)
    if whole:
        return os.environ.get(whole.group(1), "")
    return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)


def load_config(path: str | Path = "config.yaml") -> dict[str, Any]:
    """Read the YAML config at ``path`` and resolve environment variables."""
    _load_dotenv()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return _resolve_env_vars(raw)


def _merged(defaults: dict, overrides: dict | None) -> dict:
    """Deep-merge ``overrides`` onto a copy of ``defaults``."""
    result = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merged(result[key], value)
        else:
            result[key] = value
    return result


DEDUP_DEFAULTS: dict[str, Any] = {
    "time_window_seconds": 3600,
    "max_cache_size": 10000,
    "sweep_interval_seconds": 60,
    "similarity_threshold": 0.8,
    # Equal weights: differing content hashes cap similarity at 0.75.
    "similarity_weights": {
        "content_hash": 0.25,
        "text_length": 0.25,
        "media_count": 0.25,
        "author": 0.25,
    },
    "platform_rules": {
        "reddit": {"enabled": True},
        "rss": {"enabled": True},
    },
}

PRIORITY_DEFAULTS: dict[str, Any] = {
    "weights": {
        "urgency": 0.3,
        "impact": 0.25,
        "sentiment": 0.2,
        "reach": 0.15,
        "brand_risk": 0.1,
    },
    "auto_escalation_threshold": 80,
    "urgency": {
        "critical": 1.0,
        "high": 0.8,
        "medium": 0.6,
        "low": 0.4,
        "minimal": 0.2,
    },
    "impact": {
        "intent_multipliers": {
            "complaint": 1.0,
            "support_request": 0.8,
            "purchase_inquiry": 0.8,
            "comparison_shopping": 0.6,
            "feature_request": 0.5,
            "information_seeking": 0.4,
            "praise": 0.3,
        },
        "platform_multipliers": {
            "tiktok": 1.2,
            "instagram": 1.1,
            "facebook": 1.0,
            "twitter": 1.0,
            "linkedin": 0.9,
            "youtube": 0.9,
            "reddit": 0.8,
            "rss": 0.7,
        },
        "verified_bonus": 0.1,
        "high_engagement_threshold": 0.05,
        "high_engagement_bonus": 0.15,
        "entity_weight": 0.1,
    },
    "sentiment": {
        "neutral_base": 0.5,
        "positive_bonus": 0.2,
        "negative_multiplier": 1.6,
        "confidence_threshold": 0.7,
    },
    "reach": {
        "follower_weight": 0.6,
        "engagement_weight": 0.4,
        "virality_threshold": 0.1,
        "virality_bonus": 0.2,
        "platform_modifiers": {
            "tiktok": 1.3,
            "instagram": 1.2,
            "facebook": 1.0,
            "twitter": 1.1,
            "linkedin": 0.9,
            "youtube": 1.1,
            "reddit": 0.9,
            "rss": 0.8,
        },
    },
    "brand_risk": {
        "crisis_keywords": ["lawsuit", "recall", "dangerous", "toxic", "scam"],
        "crisis_weight": 0.5,
        "compliance_violation_multiplier": 1.5,
        "compliance_weight": 0.2,
        "competitor_weight": 0.2,
        "negative_virality_weight": 0.3,
        "negative_virality_threshold": 0.1,
        "critical_complaint_weight": 0.3,
    },
    "time_decay": {
        "enabled": True,
        "factor": 0.95,
        "period_hours": 24,
    },
}

ROUTING_DEFAULTS: dict[str, Any] = {
    "thresholds": {
        "auto_response": 0.9,
        "suggestion": 0.7,
    },
    "confidence_weights": {
        "sentiment": 0.3,
        "intent": 0.4,
        "priority": 0.3,
    },
    "always_human_review": {
        "intents": ["complaint"],
        "urgency_levels": ["critical"],
        "priority_threshold": 90,
    },
    "never_auto_respond": {
        "intents": ["complaint"],
        "platforms": [],
        "keywords": ["legal", "lawsuit", "attorney"],
    },
    "confidence_overrides": [
        {
            "name": "high-profile-verified",
            "when": [
                {"field": "verified", "op": "==", "value": True},
                {"field": "follower_count", "op": ">", "value": 100000},
            ],
            "confidence": 0.95,
            "reason": "High-profile verified account",
        },
    ],
    "human_review": {
        "queue": "human-review",
        "base_wait_seconds": 3600,
        "timeout_seconds": 14400,
    },
}

EXECUTION_DEFAULTS: dict[str, Any] = {
    "response_generation": {
        "ai_enabled": False,
        "llm_provider": "generation",
        "fallback_to_template": True,
        "max_length": 280,
        "temperature": 0.7,
        "templates": {},
    },
    "llm": {
        "providers": {},
    },
    "platform": {
        "type": "dry_run",
        "base_url": "",
        "api_key": "",
    },
    "support_tickets": {
        "enabled": False,
        "base_url": "",
        "api_key": "",
        "default_assignee": "",
    },
    "crm": {
        "enabled": False,
        "base_url": "",
        "api_key": "",
        "opportunity_min_score": 70,
        "create_opportunities": True,
    },
    "webhooks": {
        "endpoints": [],
    },
    "limits": {
        "respond": {"max_per_hour": 100, "max_per_day": 1000},
        "escalate": {"max_per_hour": 50, "max_per_day": 200},
        "create": {"max_per_hour": 30, "max_per_day": 100},
        "monitor": {"max_per_hour": 200, "max_per_day": 2000},
        "engage": {"max_per_hour": 150, "max_per_day": 1500},
        "suppress": {"max_per_hour": 10, "max_per_day": 50},
    },
    "timeouts": {
        "response_generation": 10,
        "support_ticket": 15,
        "crm_update": 20,
        "webhook": 5,
        "platform_post": 10,
        "action": 30,
    },
}

PIPELINE_DEFAULTS: dict[str, Any] = {
    "max_concurrency": 10,
    "input_path": "data/events.jsonl",
}


def get_dedup_config(config: dict) -> dict:
    return _merged(DEDUP_DEFAULTS, config.get("dedup"))


def get_priority_config(config: dict) -> dict:
    return _merged(PRIORITY_DEFAULTS, config.get("priority"))


def get_routing_config(config: dict) -> dict:
    """Routing settings. A configured ``confidence_overrides`` list replaces the default one."""
    return _merged(ROUTING_DEFAULTS, config.get("routing"))


def get_execution_config(config: dict) -> dict:
    return _merged(EXECUTION_DEFAULTS, config.get("execution"))


def get_pipeline_config(config: dict) -> dict:
    return _merged(PIPELINE_DEFAULTS, config.get("pipeline"))


def get_llm_provider_config(config: dict, name: str) -> dict:
    """Get connection settings for a named generation provider."""
    providers = get_execution_config(config)["llm"]["providers"]
    provider_cfg = providers.get(name, {})

    return {
        "provider_name": name,
        "provider_type": provider_cfg.get("type", "endpoint"),
        "api_key": provider_cfg.get("api_key", ""),
        "base_url": provider_cfg.get("base_url", ""),
        "model": provider_cfg.get("default_model", ""),
        "max_retries": provider_cfg.get("max_retries", 0),
        "timeout": provider_cfg.get("timeout", 10),
    }


def get_db_path(config: dict) -> str:
    """Get database path from config."""
    return config.get("database", {}).get("path", "data/signalroute.db")


def get_audit_sink(config: dict) -> str:
    """Which audit sink to use: ``sqlite`` or ``log``."""
    return config.get("audit", {}).get("sink", "sqlite")
