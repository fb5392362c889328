"""
Besu provider — a clique besu node behind a signer.

The node seals blocks with its own node key; member accounts live in
the signer's keystore.  Connectors talk to the signer.
"""

from __future__ import annotations

import json
import logging

from ledgerstack.core.errors import StackError
from ledgerstack.core.models.compose import STANDARD_LOGGING, ComposeService, ServiceDefinition
from ledgerstack.core.models.options import InitOptions
from ledgerstack.core.providers.ethereum import ethsigner
from ledgerstack.core.providers.ethereum.base import RPC_PORT, EthereumProvider
from ledgerstack.core.providers.ethereum.genesis import create_genesis
from ledgerstack.core.services.keys import keypair_from_private_key, new_keypair

logger = logging.getLogger(__name__)

BESU_IMAGE = "hyperledger/besu:22.4"
NODE_KEY_FILE = "nodekey"


class BesuProvider(EthereumProvider):
    kind = "besu"
    rpc_service = ethsigner.SERVICE_NAME
    rpc_service_healthy = True

    def write_config(self, options: InitOptions) -> None:
        layout = self.ctx.layout
        blockchain_dir = layout.blockchain_dir(layout.init_dir)
        blockchain_dir.mkdir(parents=True, exist_ok=True)

        node_key = new_keypair()
        node_key_file = blockchain_dir / NODE_KEY_FILE
        node_key_file.write_text(node_key.private_key, encoding="utf-8")
        node_key_file.chmod(0o600)

        keystore_dir = blockchain_dir / ethsigner.KEYSTORE_DIR
        for member in self.stack.members:
            if not member.private_key:
                raise StackError(f"member {member.id} has no private key to write")
            ethsigner.write_keystore(keystore_dir, keypair_from_private_key(member.private_key))

        genesis = create_genesis(
            [node_key.address],
            [m.address for m in self.stack.members],
            self.stack.chain_id,
            flavour="besu",
        )
        (blockchain_dir / "genesis.json").write_text(
            json.dumps(genesis, indent=2) + "\n", encoding="utf-8"
        )

        ethsigner.write_config(
            layout.config_dir(layout.init_dir),
            f"http://besu:{RPC_PORT}",
            self.stack.chain_id,
        )
        self.write_ethconnect_configs()

    def first_time_setup(self) -> None:
        layout = self.ctx.layout
        blockchain_dir = layout.blockchain_dir(layout.runtime_dir)
        volume = self.ctx.volume("besu")

        self.copy_ethconnect_configs()
        self.ctx.runtime.copy_to_volume(volume, blockchain_dir / "genesis.json", "genesis.json")
        self.ctx.runtime.copy_to_volume(volume, blockchain_dir / NODE_KEY_FILE, NODE_KEY_FILE)
        ethsigner.first_time_setup(self.ctx)

    def post_start(self, first_time_setup: bool) -> None:
        pass

    def node_service_definitions(self) -> list[ServiceDefinition]:
        command = (
            "--genesis-file=/data/genesis.json "
            f"--node-private-key-file=/data/{NODE_KEY_FILE} "
            "--data-path=/data/db "
            f"--rpc-http-enabled --rpc-http-host=0.0.0.0 --rpc-http-port={RPC_PORT} "
            "--rpc-http-api=ETH,NET,WEB3,CLIQUE,ADMIN,TXPOOL "
            "--host-allowlist=* --rpc-http-cors-origins=all "
            "--min-gas-price=0"
        )
        besu = ServiceDefinition(
            service_name="besu",
            service=ComposeService(
                image=BESU_IMAGE,
                container_name=f"{self.stack.name}_besu",
                user="root",
                command=command,
                volumes=["besu:/data"],
                logging=STANDARD_LOGGING,
            ),
            volume_names=["besu"],
        )
        signer_image = self.stack.version_manifest.require("signer").image_ref()
        return [besu, ethsigner.service_definition(self.stack, signer_image, depends_on="besu")]
