"""
Ethconnect — the REST connector in front of an Ethereum JSON-RPC node.

One ``ethconnect_<id>`` service per member.  Contract deployment goes
through its ``/abis`` API: publish the ABI + bytecode, deploy from a
member's address, then register the deployed address on every other
member's connector under the same name.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from ledgerstack.core.errors import ContractError
from ledgerstack.core.models.compose import (
    SERVICE_HEALTHY,
    SERVICE_STARTED,
    STANDARD_LOGGING,
    ComposeService,
    ServiceDefinition,
)
from ledgerstack.core.models.stack import Member, Stack
from ledgerstack.core.reliability.http_client import JsonHttpClient

logger = logging.getLogger(__name__)

ETHCONNECT_PORT = 8080


def service_url(member: Member) -> str:
    """Connector URL as seen by the member's node."""
    if member.external:
        return f"http://127.0.0.1:{member.ports.connector}"
    return f"http://ethconnect_{member.id}:{ETHCONNECT_PORT}"


def host_url(member: Member) -> str:
    """Connector URL as seen from the host running ledgerstack."""
    return f"http://127.0.0.1:{member.ports.connector}"


def config_filename(member: Member) -> str:
    return f"ethconnect_{member.id}.yaml"


def write_config(path: Path, rpc_url: str) -> None:
    """Write one connector config file."""
    config = {
        "rest": {
            "rest-gateway": {
                "maxTXWaitTime": 60,
                "maxInFlight": 10,
                "rpc": {"url": rpc_url},
                "openapi": {
                    "eventPollingIntervalSec": 1,
                    "storagePath": "./abis",
                    "eventsDB": "./events",
                    "catchupModeBlockGap": 50,
                    "catchupModePageSize": 50,
                },
                "http": {"port": ETHCONNECT_PORT},
            },
        },
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")


def service_definitions(
    stack: Stack,
    image: str,
    depends_on: str,
    depends_on_healthy: bool = False,
) -> list[ServiceDefinition]:
    """One connector per member, each depending on the JSON-RPC endpoint service."""
    condition = SERVICE_HEALTHY if depends_on_healthy else SERVICE_STARTED
    definitions = []
    for member in stack.members:
        config_volume = f"ethconnect_config_{member.id}"
        abis_volume = f"ethconnect_abis_{member.id}"
        events_volume = f"ethconnect_events_{member.id}"
        definitions.append(ServiceDefinition(
            service_name=f"ethconnect_{member.id}",
            service=ComposeService(
                image=image,
                container_name=f"{stack.name}_ethconnect_{member.id}",
                command="server -f ./config/config.yaml -d 2",
                depends_on={depends_on: {"condition": condition}},
                ports=[f"{member.ports.connector}:{ETHCONNECT_PORT}"],
                volumes=[
                    f"{config_volume}:/ethconnect/config",
                    f"{abis_volume}:/ethconnect/abis",
                    f"{events_volume}:/ethconnect/events",
                ],
                logging=STANDARD_LOGGING,
            ),
            volume_names=[config_volume, abis_volume, events_volume],
        ))
    return definitions


class EthconnectClient:
    """Calls against a connector's ``/abis`` API."""

    def __init__(self, http: JsonHttpClient):
        self.http = http

    def publish_abi(self, base_url: str, abi: list[dict[str, Any]], bytecode: str) -> str:
        """Upload ABI + bytecode; returns the ABI id."""
        result = self.http.post(
            f"{base_url}/abis",
            files={"abi": (None, json.dumps(abi)), "bytecode": (None, bytecode)},
            retry=True,
        )
        abi_id = (result or {}).get("id")
        if not abi_id:
            raise ContractError(f"publishing ABI to {base_url} returned no id: {result}")
        return abi_id

    def deploy(
        self,
        base_url: str,
        abi_id: str,
        from_address: str,
        register_as: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> str:
        """Deploy a published ABI; returns the contract address."""
        headers = {"x-firefly-from": from_address, "x-firefly-sync": "true"}
        if register_as:
            headers["x-firefly-register"] = register_as
        result = self.http.post(f"{base_url}/abis/{abi_id}", params or {}, headers=headers)
        address = (result or {}).get("contractAddress")
        if not address:
            raise ContractError(f"deploying ABI {abi_id} via {base_url} returned no address: {result}")
        logger.info("Deployed contract at %s", address)
        return address

    def register(self, base_url: str, abi_id: str, address: str, name: str) -> None:
        """Register an already-deployed contract under ``name``."""
        self.http.post(
            f"{base_url}/abis/{abi_id}/{address}",
            {},
            headers={"x-firefly-sync": "true", "x-firefly-register": name},
        )
