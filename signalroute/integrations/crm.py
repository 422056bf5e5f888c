"""CRM backends for CREATE actions."""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod

from signalroute.errors import ConfigError
from signalroute.integrations.http import post_json, require_id

logger = logging.getLogger(__name__)


class CRMClient(ABC):
    """Base class for lead and opportunity stores."""

    def __init__(self, config: dict):
        self.config = config

    @abstractmethod
    async def create_lead(self, lead: dict) -> str:
        ...

    @abstractmethod
    async def create_opportunity(self, lead_id: str, opportunity: dict) -> str:
        ...


class HttpCRMClient(CRMClient):
    """CRM reached over a JSON REST API (``/leads`` and ``/opportunities``)."""

    def __init__(self, config: dict, timeout: float = 20.0):
        super().__init__(config)
        self.base_url = config.get("base_url", "")
        if not self.base_url:
            raise ConfigError("execution.crm.base_url is required when enabled")
        self.api_key = config.get("api_key", "")
        self.timeout = timeout

    async def _post(self, path: str, payload: dict) -> str:
        data = await post_json(
            "crm",
            f"{self.base_url.rstrip('/')}/{path}",
            payload,
            api_key=self.api_key,
            timeout=self.timeout,
        )
        return require_id("crm", data)

    async def create_lead(self, lead: dict) -> str:
        return await self._post("leads", lead)

    async def create_opportunity(self, lead_id: str, opportunity: dict) -> str:
        return await self._post("opportunities", {"lead_id": lead_id, **opportunity})


class LocalCRMClient(CRMClient):
    """In-memory CRM used when no remote CRM is configured."""

    def __init__(self, config: dict | None = None):
        super().__init__(config or {})
        self._ids = itertools.count(1)
        self.leads: dict[str, dict] = {}
        self.opportunities: dict[str, dict] = {}

    async def create_lead(self, lead: dict) -> str:
        lead_id = f"local-lead-{next(self._ids)}"
        self.leads[lead_id] = dict(lead)
        logger.info("Created %s (score %s)", lead_id, lead.get("score"))
        return lead_id

    async def create_opportunity(self, lead_id: str, opportunity: dict) -> str:
        opp_id = f"local-opp-{next(self._ids)}"
        self.opportunities[opp_id] = {"lead_id": lead_id, **opportunity}
        logger.info("Created %s for %s", opp_id, lead_id)
        return opp_id


def build_crm_client(exec_cfg: dict) -> CRMClient:
    cfg = exec_cfg["crm"]
    if cfg.get("enabled"):
        return HttpCRMClient(cfg, timeout=float(exec_cfg["timeouts"]["crm_update"]))
    return LocalCRMClient(cfg)
