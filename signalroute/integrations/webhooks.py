"""Webhook notifications for executed actions."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass

import httpx

from signalroute.config import get_execution_config
from signalroute.errors import ConfigError
from signalroute.metrics import ExecutionMetrics
from signalroute.models import WebhookDelivery, utcnow
from signalroute.retry import retry_async

logger = logging.getLogger(__name__)

AUTH_TYPES = ("none", "bearer", "api-key", "hmac")
SIGNATURE_HEADER = "X-Signature-256"


@dataclass(frozen=True)
class WebhookEndpoint:
    name: str
    url: str
    events: tuple[str, ...] = ("*",)
    auth: str = "none"
    token: str = ""
    secret: str = ""
    header: str = "X-API-Key"
    max_retries: int = 3
    backoff_seconds: float = 1.0
    timeout_seconds: float = 5.0

    @classmethod
    def from_config(cls, entry: dict, default_timeout: float) -> WebhookEndpoint:
        name = entry.get("name") or entry.get("url", "")
        url = entry.get("url", "")
        if not url:
            raise ConfigError(f"Webhook '{name}' has no url")
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise ConfigError(f"Webhook '{name}' has an invalid url: {exc}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ConfigError(f"Webhook '{name}' has an invalid url: {url}")
        auth = entry.get("auth", "none")
        if auth not in AUTH_TYPES:
            raise ConfigError(f"Webhook '{name}' has unknown auth type: {auth}")
        if auth in ("bearer", "api-key") and not entry.get("token"):
            raise ConfigError(f"Webhook '{name}' needs a token for {auth} auth")
        if auth == "hmac" and not entry.get("secret"):
            raise ConfigError(f"Webhook '{name}' needs a secret for hmac auth")

        events = entry.get("events", "*")
        if isinstance(events, str):
            events = [events]
        return cls(
            name=name,
            url=url,
            events=tuple(str(e).lower() for e in events),
            auth=auth,
            token=entry.get("token", ""),
            secret=entry.get("secret", ""),
            header=entry.get("header", "X-API-Key"),
            max_retries=int(entry.get("max_retries", 3)),
            backoff_seconds=float(entry.get("backoff_seconds", 1.0)),
            timeout_seconds=float(entry.get("timeout_seconds", default_timeout)),
        )

    def subscribes_to(self, event_name: str) -> bool:
        return "*" in self.events or event_name.lower() in self.events


def sign(secret: str, body: bytes) -> str:
    """``sha256=<hex>`` HMAC of the request body."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class WebhookDispatcher:
    """Deliver JSON notifications to subscribed endpoints.

    Each endpoint has its own retry policy. Delivery failures are reported
    as unsuccessful ``WebhookDelivery`` records and never raised.
    """

    def __init__(self, config: dict, metrics: ExecutionMetrics | None = None):
        exec_cfg = get_execution_config(config)
        default_timeout = float(exec_cfg["timeouts"]["webhook"])
        self.endpoints = [
            WebhookEndpoint.from_config(entry, default_timeout)
            for entry in exec_cfg["webhooks"].get("endpoints") or []
        ]
        self.metrics = metrics

    def subscribers(self, event_name: str) -> list[WebhookEndpoint]:
        return [ep for ep in self.endpoints if ep.subscribes_to(event_name)]

    def _headers(self, endpoint: WebhookEndpoint, body: bytes) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if endpoint.auth == "bearer":
            headers["Authorization"] = f"Bearer {endpoint.token}"
        elif endpoint.auth == "api-key":
            headers[endpoint.header] = endpoint.token
        elif endpoint.auth == "hmac":
            headers[SIGNATURE_HEADER] = sign(endpoint.secret, body)
        return headers

    async def _post(self, endpoint: WebhookEndpoint, body: bytes, headers: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=endpoint.timeout_seconds) as client:
            resp = await client.post(endpoint.url, content=body, headers=headers)
            resp.raise_for_status()
            return resp

    async def deliver(self, endpoint: WebhookEndpoint, event_name: str, payload: dict) -> WebhookDelivery:
        body = json.dumps(
            {"event": event_name, "sent_at": utcnow().isoformat(), "data": payload},
            default=str,
        ).encode()
        headers = self._headers(endpoint, body)
        retries = 0

        def on_retry(attempt: int, exc: BaseException) -> None:
            nonlocal retries
            retries = attempt

        try:
            resp = await retry_async(
                self._post, endpoint, body, headers,
                max_retries=endpoint.max_retries,
                base_delay=endpoint.backoff_seconds,
                on_retry=on_retry,
            )
            delivery = WebhookDelivery(
                endpoint=endpoint.name, success=True,
                attempts=retries + 1, status_code=resp.status_code,
            )
        except (httpx.HTTPError, OSError) as exc:
            status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            logger.warning("Webhook %s failed after %d attempt(s): %s", endpoint.name, retries + 1, exc)
            delivery = WebhookDelivery(
                endpoint=endpoint.name, success=False, attempts=retries + 1,
                status_code=status, error=str(exc) or type(exc).__name__,
            )

        if self.metrics is not None:
            self.metrics.record_webhook(delivery.success, retries)
        return delivery

    async def dispatch(self, event_name: str, payload: dict) -> list[WebhookDelivery]:
        endpoints = self.subscribers(event_name)
        if not endpoints:
            return []
        outcomes = await asyncio.gather(
            *(self.deliver(ep, event_name, payload) for ep in endpoints),
            return_exceptions=True,
        )
        deliveries = []
        for endpoint, outcome in zip(endpoints, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("Webhook %s raised %s: %s", endpoint.name, type(outcome).__name__, outcome)
                if self.metrics is not None:
                    self.metrics.record_webhook(False, 0)
                outcome = WebhookDelivery(
                    endpoint=endpoint.name, success=False, attempts=1,
                    error=f"{type(outcome).__name__}: {outcome}",
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            deliveries.append(outcome)
        return deliveries

    async def send_test(self) -> list[WebhookDelivery]:
        """Send a test notification to every configured endpoint."""
        payload = {"message": "signalroute webhook test"}
        return list(await asyncio.gather(
            *(self.deliver(ep, "test", payload) for ep in self.endpoints)
        ))
