"""
Identity registration and admin finalisation over the node HTTP APIs.

Every call that can hit a node that is still starting goes through the
client's retry.  Registration of an organisation is asynchronous on the
node side, so the node identity is only registered once the
organisation shows up in the network listing.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ledgerstack.core.errors import StackError
from ledgerstack.core.models.stack import Member
from ledgerstack.core.reliability.http_client import JsonHttpClient

logger = logging.getLogger(__name__)


class RegistrationTimeoutError(StackError):
    """The organisation never appeared in the network listing."""


def api_url(member: Member) -> str:
    return f"http://127.0.0.1:{member.ports.firefly}/api/v1"


def admin_url(member: Member) -> str:
    return f"http://127.0.0.1:{member.ports.admin}/admin/api/v1"


def org_registered(http: JsonHttpClient, member: Member) -> bool:
    orgs = http.get(f"{api_url(member)}/network/organizations", retry=True) or []
    return any(org.get("name") == member.org_name for org in orgs)


def register_identity(
    http: JsonHttpClient,
    member: Member,
    *,
    retries: int = 60,
    period: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Register the member's organisation, wait for it, then the node."""
    base = api_url(member)
    http.post(f"{base}/network/register/node/organization", {}, retry=True)

    remaining = retries
    while not org_registered(http, member):
        if remaining <= 0:
            raise RegistrationTimeoutError(
                f"timeout error waiting to register {member.org_name} and {member.node_name}"
            )
        remaining -= 1
        sleep(period)

    http.post(f"{base}/network/register/node", {}, retry=True)
    logger.info("Registered %s and %s", member.org_name, member.node_name)


def finalize_admin_config(http: JsonHttpClient, member: Member) -> None:
    """Take an external node out of pre-init mode and reload its config."""
    base = admin_url(member)
    http.put(f"{base}/config/records/admin", {"preInit": False}, retry=True)
    http.post(f"{base}/config/reset", {}, retry=True)
    logger.info("Finalized admin config for member %s", member.id)
