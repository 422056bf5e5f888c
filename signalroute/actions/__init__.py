"""Action handler registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from signalroute.models import ActionType

if TYPE_CHECKING:
    from signalroute.actions.base import BaseActionHandler

HANDLERS: dict[ActionType, type[BaseActionHandler]] = {}


def register_handler(action_type: ActionType):
    """Decorator to register the handler for an action type."""

    def decorator(cls):
        HANDLERS[action_type] = cls
        return cls

    return decorator


from signalroute.actions.create import CreateHandler  # noqa: E402, F401
from signalroute.actions.escalate import EscalateHandler  # noqa: E402, F401
from signalroute.actions.passthrough import EngageHandler, MonitorHandler, SuppressHandler  # noqa: E402, F401
from signalroute.actions.respond import RespondHandler  # noqa: E402, F401
