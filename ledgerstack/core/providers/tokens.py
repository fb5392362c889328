"""
Token connector providers (ERC-1155, ERC-20/ERC-721).

Both run one ``tokens_<id>_<index>`` container per member, wired to the
member's ethconnect.  The token contract ships inside the connector
image; first start extracts it, deploys it through the blockchain
provider and registers it under a fixed name on every connector.
"""

from __future__ import annotations

import logging
from typing import Any

from ledgerstack.core.errors import InvalidSelectionError, StackError
from ledgerstack.core.models.compose import (
    SERVICE_STARTED,
    STANDARD_LOGGING,
    ComposeService,
    ServiceDefinition,
)
from ledgerstack.core.models.stack import Member
from ledgerstack.core.models.state import DeployedContract
from ledgerstack.core.providers.base import (
    BlockchainProvider,
    ContractDeploymentResult,
    ProviderContext,
    TokenProvider,
)
from ledgerstack.core.providers.ethereum import ethconnect
from ledgerstack.core.providers.ethereum.base import EthereumProvider
from ledgerstack.core.providers.ethereum.contracts import load_contract

logger = logging.getLogger(__name__)

TOKENS_PORT = 3000


class ConnectorTokenProvider(TokenProvider):
    """Shared behaviour of the ethconnect-backed token connectors."""

    #: version manifest entry holding the connector image
    manifest_entry: str = ""
    #: contract file inside the connector image, and the contract in it
    contract_file: str = ""
    contract_name: str = ""
    #: name the contract is registered under on every ethconnect
    registered_name: str = ""

    blockchain: EthereumProvider

    def __init__(self, ctx: ProviderContext, blockchain: BlockchainProvider):
        if not isinstance(blockchain, EthereumProvider):
            raise InvalidSelectionError(
                f"token provider '{self.kind}' requires an ethereum blockchain provider, "
                f"not '{blockchain.kind}'"
            )
        super().__init__(ctx, blockchain)

    def service_name(self, member: Member, index: int) -> str:
        return f"tokens_{member.id}_{index}"

    def host_url(self, member: Member, index: int) -> str:
        return f"http://127.0.0.1:{member.ports.tokens[index]}"

    # ── Services / config ───────────────────────────────────────

    def get_docker_service_definitions(self, index: int) -> list[ServiceDefinition]:
        image = self.stack.version_manifest.require(self.manifest_entry).image_ref()
        definitions = []
        for member in self.stack.members:
            name = self.service_name(member, index)
            definitions.append(ServiceDefinition(
                service_name=name,
                service=ComposeService(
                    image=image,
                    container_name=f"{self.stack.name}_{name}",
                    ports=[f"{member.ports.tokens[index]}:{TOKENS_PORT}"],
                    environment={
                        "ETHCONNECT_URL": f"http://ethconnect_{member.id}:{ethconnect.ETHCONNECT_PORT}",
                        "ETHCONNECT_INSTANCE": f"/contracts/{self.registered_name}",
                        "ETHCONNECT_TOPIC": name,
                        "AUTO_INIT": "false",
                    },
                    depends_on={f"ethconnect_{member.id}": {"condition": SERVICE_STARTED}},
                    logging=STANDARD_LOGGING,
                ),
            ))
        return definitions

    def get_firefly_config(self, member: Member, index: int) -> dict[str, Any]:
        if member.external:
            url = self.host_url(member, index)
        else:
            url = f"http://{self.service_name(member, index)}:{TOKENS_PORT}"
        return {"type": "fftokens", "name": self.kind, "url": url}

    # ── First start ─────────────────────────────────────────────

    def deploy_smart_contracts(self, index: int) -> list[ContractDeploymentResult]:
        first = self.stack.members[0]
        contracts_dir = self.ctx.layout.runtime_dir / "contracts"
        contracts_dir.mkdir(parents=True, exist_ok=True)
        dest = contracts_dir / self.contract_file

        self.ctx.progress(f"extracting {self.kind} token contract")
        self.ctx.runtime.copy_from_container(
            self.ctx.container(self.service_name(first, index)),
            f"/root/contracts/{self.contract_file}",
            dest,
        )

        self.ctx.progress(f"deploying {self.kind} token contract")
        contract = load_contract(dest, self.contract_name)
        address = self.blockchain.deploy_and_register(contract, self.registered_name)
        return [ContractDeploymentResult(
            deployed_contract=DeployedContract(
                name=self.contract_name, location={"address": address}
            ),
            message=f"{self.contract_name} deployed at {address}",
        )]

    def first_time_setup(self, index: int) -> None:
        """Tell every member's connector to initialise against the deployed contract."""
        for member in self.stack.members:
            if index >= len(member.ports.tokens):
                raise StackError(f"member {member.id} has no port for token provider {index}")
            self.ctx.http.post(f"{self.host_url(member, index)}/api/v1/init", {}, retry=True)
            logger.info("Initialised %s connector for member %s", self.kind, member.id)


class ERC1155Provider(ConnectorTokenProvider):
    kind = "erc1155"
    manifest_entry = "tokens_erc1155"
    contract_file = "ERC1155MixedFungible.json"
    contract_name = "ERC1155MixedFungible"
    registered_name = "erc1155"


class ERC20ERC721Provider(ConnectorTokenProvider):
    kind = "erc20_erc721"
    manifest_entry = "tokens_erc20_erc721"
    contract_file = "TokenFactory.json"
    contract_name = "TokenFactory"
    registered_name = "erc20erc721"
