"""Exception types raised by the decision pipeline."""

from __future__ import annotations


class SignalRouteError(Exception):
    """Base class for pipeline errors."""


class ConfigError(SignalRouteError):
    """Invalid or incomplete configuration, raised at construction time."""


class ValidationError(SignalRouteError):
    """Malformed input record. ``field`` is the dotted path of the offending value."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class IntegrationError(SignalRouteError):
    """An external service returned an error or an unusable payload."""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        self.service = service
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{service}{detail}: {message}")
