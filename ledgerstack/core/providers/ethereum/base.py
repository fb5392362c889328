"""
Shared behaviour of every Ethereum-family provider.

Subclasses only contribute the JSON-RPC endpoint (a geth or besu node,
or a signer in front of one) and its bootstrap.  Connector services,
node config, and contract deployment through ethconnect live here.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from pathlib import Path

from ledgerstack.core.errors import StackError
from ledgerstack.core.models.compose import ServiceDefinition
from ledgerstack.core.models.stack import Member
from ledgerstack.core.models.state import DeployedContract
from ledgerstack.core.providers.base import BlockchainProvider, ContractDeploymentResult
from ledgerstack.core.providers.ethereum import ethconnect
from ledgerstack.core.providers.ethereum.contracts import (
    CompiledContract,
    contract_names,
    load_contract,
)

logger = logging.getLogger(__name__)

FIREFLY_CONTRACT_PATH = "/firefly/contracts/Firefly.json"
FIREFLY_CONTRACT_NAME = "Firefly"
FIREFLY_REGISTERED_NAME = "firefly"
RPC_PORT = 8545


class EthereumProvider(BlockchainProvider):
    """Base for geth, besu and remote-rpc."""

    #: compose service the connectors send JSON-RPC to
    rpc_service: str = ""
    rpc_service_healthy: bool = False

    @abstractmethod
    def node_service_definitions(self) -> list[ServiceDefinition]:
        """Services providing the JSON-RPC endpoint."""

    # ── Services / config ───────────────────────────────────────

    def get_docker_service_definitions(self) -> list[ServiceDefinition]:
        image = self.stack.version_manifest.require("ethconnect").image_ref()
        return self.node_service_definitions() + ethconnect.service_definitions(
            self.stack,
            image,
            self.rpc_service,
            depends_on_healthy=self.rpc_service_healthy,
        )

    def get_firefly_config(self, member: Member) -> tuple[dict, dict]:
        if self.stack.contract_address:
            instance = f"/instances/{self.stack.contract_address}"
        else:
            instance = f"/contracts/{FIREFLY_REGISTERED_NAME}"
        blockchain = {
            "type": "ethereum",
            "ethereum": {
                "ethconnect": {
                    "url": ethconnect.service_url(member),
                    "instance": instance,
                    "topic": member.id,
                },
            },
        }
        org = {"name": member.org_name, "key": member.address}
        return blockchain, org

    def write_ethconnect_configs(self) -> None:
        config_dir = self.ctx.layout.config_dir(self.ctx.layout.init_dir)
        for member in self.stack.members:
            ethconnect.write_config(
                config_dir / ethconnect.config_filename(member),
                f"http://{self.rpc_service}:{RPC_PORT}",
            )

    def copy_ethconnect_configs(self) -> None:
        config_dir = self.ctx.layout.config_dir(self.ctx.layout.runtime_dir)
        for member in self.stack.members:
            self.ctx.runtime.copy_to_volume(
                self.ctx.volume(f"ethconnect_config_{member.id}"),
                config_dir / ethconnect.config_filename(member),
                "config.yaml",
            )

    def pre_start(self) -> None:
        pass

    def reset(self) -> None:
        pass

    # ── Contracts ───────────────────────────────────────────────

    def deploy_firefly_contract(self) -> ContractDeploymentResult:
        """Extract the FireFly contract from a node image and deploy it."""
        core = next((m for m in self.stack.members if not m.external), None)
        if core is None:
            raise StackError(
                "unable to extract contracts from container - "
                "no valid firefly core containers found in stack"
            )
        contracts_dir = self.ctx.layout.runtime_dir / "contracts"
        contracts_dir.mkdir(parents=True, exist_ok=True)
        dest = contracts_dir / "Firefly.json"

        self.ctx.progress("extracting smart contracts")
        self.ctx.runtime.copy_from_container(
            self.ctx.container(f"firefly_core_{core.id}"), FIREFLY_CONTRACT_PATH, dest
        )

        self.ctx.progress("publishing FireFly contract")
        contract = load_contract(dest, FIREFLY_CONTRACT_NAME)
        address = self.deploy_and_register(contract, FIREFLY_REGISTERED_NAME)
        return ContractDeploymentResult(
            deployed_contract=DeployedContract(name="FireFly", location={"address": address}),
            message=f"FireFly contract deployed at {address}",
            config_patch={
                "blockchain": {"ethereum": {"ethconnect": {"instance": f"/instances/{address}"}}},
            },
        )

    def deploy_and_register(
        self,
        contract: CompiledContract,
        register_as: str | None,
        deployer: Member | None = None,
        params: dict | None = None,
    ) -> str:
        """Deploy through one member's connector, register on the rest."""
        deployer = deployer or self.stack.members[0]
        client = ethconnect.EthconnectClient(self.ctx.http)

        base_url = ethconnect.host_url(deployer)
        abi_id = client.publish_abi(base_url, contract.abi, contract.bytecode)
        address = client.deploy(base_url, abi_id, deployer.address, register_as, params)

        if register_as:
            for member in self.stack.members:
                if member.id == deployer.id:
                    continue
                other_url = ethconnect.host_url(member)
                other_abi = client.publish_abi(other_url, contract.abi, contract.bytecode)
                client.register(other_url, other_abi, address, register_as)
        return address

    def get_contracts(self, filename: str) -> list[str]:
        return contract_names(Path(filename))

    def deploy_contract(
        self,
        filename: str,
        contract_name: str,
        member: Member,
        extra_args: list[str],
    ) -> ContractDeploymentResult:
        """Deploy a contract from a combined-json file.

        ``extra_args`` are constructor parameters as ``name=value``.
        """
        params = {}
        for arg in extra_args:
            key, sep, value = arg.partition("=")
            if not sep:
                raise StackError(f"invalid constructor argument '{arg}' (expected name=value)")
            params[key] = value

        contract = load_contract(Path(filename), contract_name)
        address = self.deploy_and_register(contract, None, deployer=member, params=params)
        return ContractDeploymentResult(
            deployed_contract=DeployedContract(
                name=contract_name, location={"address": address}
            ),
            message=f"{contract_name} deployed at {address}",
        )
