"""Handler base class and the services handlers share."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from signalroute.config import get_execution_config
from signalroute.generate.responder import ResponseGenerator
from signalroute.integrations import build_poster
from signalroute.integrations.crm import CRMClient, build_crm_client
from signalroute.integrations.platform import BasePlatformPoster
from signalroute.integrations.tickets import TicketClient, build_ticket_client
from signalroute.integrations.webhooks import WebhookDispatcher
from signalroute.metrics import ExecutionMetrics
from signalroute.models import (
    Action,
    BrandContext,
    CRMOutcome,
    ExecutionStatus,
    IntentResult,
    ResponseOutcome,
    RoutingDecision,
    SentimentResult,
    SocialEvent,
    TicketOutcome,
)


@dataclass
class ActionContext:
    """Everything a handler may look at for one action."""

    action: Action
    decision: RoutingDecision
    event: SocialEvent
    sentiment: SentimentResult
    intent: IntentResult
    brand: BrandContext


@dataclass
class HandlerOutcome:
    status: ExecutionStatus
    payload: ResponseOutcome | TicketOutcome | CRMOutcome | None = None
    error: str | None = None


@dataclass
class ExecutionServices:
    """Collaborators injected into every handler."""

    generator: ResponseGenerator
    poster: BasePlatformPoster
    tickets: TicketClient
    crm: CRMClient
    webhooks: WebhookDispatcher | None = None
    metrics: ExecutionMetrics | None = None
    timeouts: dict[str, float] = field(default_factory=dict)
    crm_settings: dict = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: dict, metrics: ExecutionMetrics | None = None,
                    **overrides) -> ExecutionServices:
        """Build services from config; keyword overrides replace single collaborators."""
        exec_cfg = get_execution_config(config)
        return cls(
            generator=overrides.get("generator") or ResponseGenerator(config),
            poster=overrides.get("poster") or build_poster(config),
            tickets=overrides.get("tickets") or build_ticket_client(exec_cfg),
            crm=overrides.get("crm") or build_crm_client(exec_cfg),
            webhooks=overrides.get("webhooks") or WebhookDispatcher(config, metrics),
            metrics=metrics,
            timeouts={k: float(v) for k, v in exec_cfg["timeouts"].items()},
            crm_settings=exec_cfg["crm"],
        )

    def timeout(self, name: str, default: float = 10.0) -> float:
        return self.timeouts.get(name, default)


class BaseActionHandler(ABC):
    """Base class for action handlers."""

    def __init__(self, services: ExecutionServices):
        self.services = services

    @property
    def metrics(self) -> ExecutionMetrics | None:
        return self.services.metrics

    @abstractmethod
    async def handle(self, ctx: ActionContext) -> HandlerOutcome:
        """Carry out the action. Raising marks the result as failed."""
        ...
