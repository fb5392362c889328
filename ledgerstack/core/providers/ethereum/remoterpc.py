"""
Remote RPC provider — connect to an existing Ethereum node.

Only a signer (holding member keys) and the connectors run locally.
The FireFly contract must already be deployed on the remote chain.
"""

from __future__ import annotations

from ledgerstack.core.errors import InvalidSelectionError, StackError
from ledgerstack.core.models.compose import ServiceDefinition
from ledgerstack.core.models.options import InitOptions
from ledgerstack.core.providers.base import ContractDeploymentResult, ProviderContext
from ledgerstack.core.providers.ethereum import ethsigner
from ledgerstack.core.providers.ethereum.base import EthereumProvider
from ledgerstack.core.services.keys import keypair_from_private_key


class RemoteRPCProvider(EthereumProvider):
    kind = "remote-rpc"
    rpc_service = ethsigner.SERVICE_NAME
    rpc_service_healthy = True

    def __init__(self, ctx: ProviderContext):
        if not ctx.stack.remote_node_url:
            raise InvalidSelectionError("a remote node URL is required for the remote-rpc provider")
        super().__init__(ctx)

    def write_config(self, options: InitOptions) -> None:
        layout = self.ctx.layout
        keystore_dir = layout.blockchain_dir(layout.init_dir) / ethsigner.KEYSTORE_DIR
        for member in self.stack.members:
            if not member.private_key:
                raise StackError(f"member {member.id} has no private key to write")
            ethsigner.write_keystore(keystore_dir, keypair_from_private_key(member.private_key))

        ethsigner.write_config(
            layout.config_dir(layout.init_dir),
            self.stack.remote_node_url,
            self.stack.chain_id,
        )
        self.write_ethconnect_configs()

    def first_time_setup(self) -> None:
        self.copy_ethconnect_configs()
        ethsigner.first_time_setup(self.ctx)

    def post_start(self, first_time_setup: bool) -> None:
        pass

    def deploy_firefly_contract(self) -> ContractDeploymentResult:
        raise StackError(
            "you must pre-deploy your FireFly contract when using a remote RPC endpoint"
        )

    def node_service_definitions(self) -> list[ServiceDefinition]:
        signer_image = self.stack.version_manifest.require("signer").image_ref()
        return [ethsigner.service_definition(self.stack, signer_image)]
