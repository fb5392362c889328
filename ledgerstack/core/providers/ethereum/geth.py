"""
Geth provider — a single clique-mining geth node shared by all members.

Member keys are imported into the node's keystore at first start and
unlocked over JSON-RPC after every start.
"""

from __future__ import annotations

import json
import logging

from ledgerstack.core.errors import StackError
from ledgerstack.core.models.compose import STANDARD_LOGGING, ComposeService, ServiceDefinition
from ledgerstack.core.models.options import InitOptions
from ledgerstack.core.providers.ethereum.base import RPC_PORT, EthereumProvider
from ledgerstack.core.providers.ethereum.genesis import create_genesis
from ledgerstack.core.reliability.retry import retry

logger = logging.getLogger(__name__)

GETH_IMAGE = "ethereum/client-go:release-1.10"
GETH_PASSWORD = "correcthorsebatterystaple"


class GethRPCError(StackError):
    """A JSON-RPC call answered with an error object."""


class GethProvider(EthereumProvider):
    kind = "geth"
    rpc_service = "geth"

    # ── Init ────────────────────────────────────────────────────

    def write_config(self, options: InitOptions) -> None:
        layout = self.ctx.layout
        blockchain_dir = layout.blockchain_dir(layout.init_dir)
        blockchain_dir.mkdir(parents=True, exist_ok=True)

        for member in self.stack.members:
            if not member.private_key:
                raise StackError(f"member {member.id} has no private key to write")
            keyfile = blockchain_dir / member.id / "keyfile"
            keyfile.parent.mkdir(parents=True, exist_ok=True)
            keyfile.write_text(member.private_key.removeprefix("0x"), encoding="utf-8")
            keyfile.chmod(0o600)

        (blockchain_dir / "password").write_text(GETH_PASSWORD, encoding="utf-8")

        addresses = [m.address for m in self.stack.members]
        genesis = create_genesis(addresses, addresses, self.stack.chain_id)
        (blockchain_dir / "genesis.json").write_text(
            json.dumps(genesis, indent=2) + "\n", encoding="utf-8"
        )

        self.write_ethconnect_configs()

    # ── First start ─────────────────────────────────────────────

    def first_time_setup(self) -> None:
        layout = self.ctx.layout
        blockchain_dir = layout.blockchain_dir(layout.runtime_dir)
        volume = self.ctx.volume("geth")

        self.copy_ethconnect_configs()

        self.ctx.progress("importing account keys")
        for member in self.stack.members:
            self.ctx.runtime.run(
                GETH_IMAGE,
                [
                    "account", "import",
                    "--password", "/geth/password",
                    "--keystore", "/data/keystore",
                    f"/geth/{member.id}/keyfile",
                ],
                volumes=[f"{blockchain_dir.resolve()}:/geth", f"{volume}:/data"],
            )

        self.ctx.runtime.copy_to_volume(volume, blockchain_dir / "genesis.json", "genesis.json")
        self.ctx.runtime.copy_to_volume(volume, blockchain_dir / "password", "password")

        self.ctx.progress("initializing genesis block")
        self.ctx.runtime.run(
            GETH_IMAGE,
            ["--datadir", "/data", "init", "/data/genesis.json"],
            volumes=[f"{volume}:/data"],
        )

    def post_start(self, first_time_setup: bool) -> None:
        """Unlock every member account (unlocks don't survive a restart)."""
        self.ctx.progress("unlocking accounts")
        for member in self.stack.members:
            self.unlock_account(member.address)

    def unlock_account(self, address: str) -> None:
        url = f"http://127.0.0.1:{self.stack.exposed_blockchain_port}"
        body = {
            "jsonrpc": "2.0",
            "id": 0,
            "method": "personal_unlockAccount",
            "params": [address, GETH_PASSWORD, 0],
        }

        def call() -> None:
            result = self.ctx.http.post(url, body) or {}
            if result.get("error"):
                raise GethRPCError(f"unlocking account {address}: {result['error']}")

        retry(
            call,
            self.ctx.settings.unlock_retries,
            self.ctx.settings.http_retry_period,
            description=f"unlock {address}",
        )
        logger.info("Unlocked account %s", address)

    # ── Services ────────────────────────────────────────────────

    def node_service_definitions(self) -> list[ServiceDefinition]:
        command = (
            "--datadir /data --syncmode 'full' --port 30311 "
            f"--http --http.addr 0.0.0.0 --http.port {RPC_PORT} --http.vhosts * "
            "--http.api admin,personal,eth,net,web3,txpool,miner,clique "
            f"--networkid {self.stack.chain_id} --miner.gasprice 0 "
            "--password /data/password --mine --allow-insecure-unlock --nodiscover"
        )
        return [
            ServiceDefinition(
                service_name="geth",
                service=ComposeService(
                    image=GETH_IMAGE,
                    container_name=f"{self.stack.name}_geth",
                    command=command,
                    volumes=["geth:/data"],
                    ports=[f"{self.stack.exposed_blockchain_port}:{RPC_PORT}"],
                    logging=STANDARD_LOGGING,
                ),
                volume_names=["geth"],
            ),
        ]
