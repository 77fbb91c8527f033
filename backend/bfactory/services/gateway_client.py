# Overview: Shared outbound HTTP client for payment and LLM gateways.

from __future__ import annotations

import httpx
from flask import current_app

from ..validation import GatewayError


def http_client(**kwargs) -> httpx.Client:
    """
    Build an httpx client honoring GATEWAY_TIMEOUT and an optional
    HTTP_TRANSPORT override from app config.
    """
    transport = current_app.config.get("HTTP_TRANSPORT")
    if transport is not None:
        kwargs.setdefault("transport", transport)
    kwargs.setdefault("timeout", current_app.config.get("GATEWAY_TIMEOUT", 15.0))
    return httpx.Client(**kwargs)


def get_json(url: str, *, headers: dict | None = None, gateway: str) -> tuple[int, dict]:
    """
    GET a JSON document. Transport errors and non-JSON bodies raise
    GatewayError; HTTP error statuses are returned to the caller.
    """
    try:
        with http_client() as client:
            response = client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        current_app.logger.warning("%s request failed: %s", gateway, exc)
        raise GatewayError(f"Could not reach {gateway}")

    try:
        body = response.json()
    except ValueError:
        body = {}
    return response.status_code, body


def post_json(url: str, payload: dict, *, headers: dict | None = None, gateway: str) -> dict:
    """POST JSON and return the decoded body; any non-2xx is a GatewayError."""
    try:
        with http_client() as client:
            response = client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        current_app.logger.warning("%s request failed: %s", gateway, exc)
        raise GatewayError(f"Could not reach {gateway}")

    if response.is_error:
        current_app.logger.warning("%s answered HTTP %s", gateway, response.status_code)
        raise GatewayError(f"{gateway} returned HTTP {response.status_code}")

    try:
        return response.json()
    except ValueError:
        raise GatewayError(f"{gateway} returned an invalid response")
