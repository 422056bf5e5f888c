"""Shared JSON-over-HTTP helper for ticket, CRM and platform integrations."""

from __future__ import annotations

import httpx

from signalroute.errors import IntegrationError


def auth_headers(api_key: str) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


async def post_json(
    service: str,
    url: str,
    payload: dict,
    *,
    api_key: str = "",
    timeout: float = 10.0,
) -> dict:
    """POST ``payload`` and return the decoded JSON object.

    Non-2xx statuses and non-object bodies raise ``IntegrationError``.
    Transport errors (timeouts, refused connections) propagate as httpx
    exceptions.
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(url, json=payload, headers=auth_headers(api_key))

    if resp.status_code >= 400:
        raise IntegrationError(service, resp.text[:200] or resp.reason_phrase, resp.status_code)
    try:
        data = resp.json()
    except ValueError:
        raise IntegrationError(service, "response is not JSON") from None
    if not isinstance(data, dict):
        raise IntegrationError(service, "response is not a JSON object")
    return data


def require_id(service: str, data: dict, key: str = "id") -> str:
    value = data.get(key)
    if value in (None, ""):
        raise IntegrationError(service, f"response has no '{key}'")
    return str(value)
