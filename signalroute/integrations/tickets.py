"""Support ticket backends for ESCALATE actions."""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod

from signalroute.errors import ConfigError
from signalroute.integrations.http import post_json, require_id

logger = logging.getLogger(__name__)


class TicketClient(ABC):
    """Base class for support ticket systems."""

    def __init__(self, config: dict):
        self.config = config
        self.default_assignee = config.get("default_assignee", "")

    @abstractmethod
    async def create_ticket(self, ticket: dict) -> str:
        """Create a ticket and return its id. Remote failures raise."""
        ...


class HttpTicketClient(TicketClient):
    """Support desk reached over a JSON REST API (``POST {base_url}/tickets``)."""

    def __init__(self, config: dict, timeout: float = 15.0):
        super().__init__(config)
        self.base_url = config.get("base_url", "")
        if not self.base_url:
            raise ConfigError("execution.support_tickets.base_url is required when enabled")
        self.api_key = config.get("api_key", "")
        self.timeout = timeout

    async def create_ticket(self, ticket: dict) -> str:
        payload = dict(ticket)
        if self.default_assignee and not payload.get("assignee"):
            payload["assignee"] = self.default_assignee
        data = await post_json(
            "support_tickets",
            f"{self.base_url.rstrip('/')}/tickets",
            payload,
            api_key=self.api_key,
            timeout=self.timeout,
        )
        return require_id("support_tickets", data)


class LocalTicketClient(TicketClient):
    """Keep tickets in memory; ids are recorded in the audit trail."""

    def __init__(self, config: dict | None = None):
        super().__init__(config or {})
        self._ids = itertools.count(1)
        self.tickets: dict[str, dict] = {}

    async def create_ticket(self, ticket: dict) -> str:
        ticket_id = f"local-ticket-{next(self._ids)}"
        self.tickets[ticket_id] = dict(ticket)
        logger.info("Opened %s (%s priority): %s", ticket_id, ticket.get("priority"), ticket.get("subject"))
        return ticket_id


def build_ticket_client(exec_cfg: dict) -> TicketClient:
    cfg = exec_cfg["support_tickets"]
    if cfg.get("enabled"):
        return HttpTicketClient(cfg, timeout=float(exec_cfg["timeouts"]["support_ticket"]))
    return LocalTicketClient(cfg)
