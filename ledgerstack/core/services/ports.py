"""
Port allocation and pre-flight availability checks.

Each member owns a 100-port block starting at
``services_base_port + index * 100``:

    +0   shared blockchain node (member 0's block only)
    +1   admin API
    +2   blockchain connector
    +3   UI
    +4   database
    +5   data exchange
    +6   IPFS API
    +7   IPFS gateway
    +8…  metrics (if enabled), then one per token provider

The primary API port comes from a separate base: ``firefly_base_port + index``.
"""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from ledgerstack.core.errors import PortUnavailableError
from ledgerstack.core.models.stack import PortSet

if TYPE_CHECKING:
    from ledgerstack.core.models.stack import Stack

logger = logging.getLogger(__name__)

BLOCK_SIZE = 100
PROBE_TIMEOUT = 0.5
PROBE_HOST = "127.0.0.1"

PortProbe = Callable[[int], bool]


def allocate_ports(
    services_base_port: int,
    firefly_base_port: int,
    member_index: int,
    *,
    metrics: bool = False,
    token_providers: int = 0,
) -> PortSet:
    """Compute the port block for one member.  Pure."""
    base = services_base_port + member_index * BLOCK_SIZE
    next_offset = 8

    metrics_port = None
    if metrics:
        metrics_port = base + next_offset
        next_offset += 1

    tokens = [base + next_offset + i for i in range(token_providers)]

    return PortSet(
        firefly=firefly_base_port + member_index,
        admin=base + 1,
        connector=base + 2,
        ui=base + 3,
        database=base + 4,
        dataexchange=base + 5,
        ipfs_api=base + 6,
        ipfs_gateway=base + 7,
        metrics=metrics_port,
        tokens=tokens,
    )


def stack_ports(stack: Stack) -> list[int]:
    """Every host port the stack will bind, in check order."""
    ports = [stack.exposed_blockchain_port]
    for member in stack.members:
        p = member.ports
        ports += [p.dataexchange, p.connector]
        if not member.external:
            ports += [p.admin, p.firefly]
            if p.metrics is not None:
                ports.append(p.metrics)
        ports += [p.ipfs_api, p.ipfs_gateway, p.database, p.ui]
        ports += p.tokens
    if stack.prometheus_enabled:
        ports.append(stack.exposed_prometheus_port)
    return ports


def check_port_available(port: int) -> bool:
    """True if nothing accepts a TCP connection on the port.

    A refused connect or a connect timeout both mean the port is free.
    """
    try:
        with socket.create_connection((PROBE_HOST, port), timeout=PROBE_TIMEOUT):
            return False
    except OSError as e:
        logger.debug("Port %d probe: %s", port, e)
        return True


def check_ports_available(
    ports: Iterable[int],
    probe: PortProbe = check_port_available,
) -> None:
    """Raise PortUnavailableError for the first port already in use."""
    for port in ports:
        if not probe(port):
            raise PortUnavailableError(port)
