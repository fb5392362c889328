"""Fabconnect identity API — register and enroll client identities."""

from __future__ import annotations

import logging
from typing import Any

from ledgerstack.core.errors import ContractError
from ledgerstack.core.reliability.http_client import JsonHttpClient

logger = logging.getLogger(__name__)


def create_identity(http: JsonHttpClient, base_url: str, name: str) -> str:
    """Register a client identity; returns its enrollment secret."""
    result = http.post(f"{base_url}/identities", {"name": name, "type": "client"}, retry=True)
    secret = (result or {}).get("secret")
    if not secret:
        raise ContractError(f"registering identity '{name}' at {base_url} returned no secret")
    return secret


def enroll_identity(http: JsonHttpClient, base_url: str, name: str, secret: str) -> dict[str, Any]:
    result = http.post(f"{base_url}/identities/{name}/enroll", {"secret": secret}, retry=True)
    logger.info("Enrolled fabric identity %s", name)
    return result or {}
