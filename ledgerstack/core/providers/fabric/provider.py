"""
Fabric provider — one CA, one orderer and one peer shared by all
members, plus a fabconnect per member.

Bootstrap runs the Fabric CLI tools in one-shot containers attached to
the stack's compose network; all crypto material lives in the
``firefly_fabric`` volume.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from ledgerstack.core.errors import StackError
from ledgerstack.core.models.compose import (
    SERVICE_STARTED,
    STANDARD_LOGGING,
    ComposeService,
    HealthCheck,
    ServiceDefinition,
)
from ledgerstack.core.models.options import InitOptions
from ledgerstack.core.models.stack import Member
from ledgerstack.core.models.state import DeployedContract
from ledgerstack.core.providers.base import BlockchainProvider, ContractDeploymentResult
from ledgerstack.core.providers.fabric import fabconnect
from ledgerstack.core.providers.fabric import network_config as net

logger = logging.getLogger(__name__)

FABRIC_CA_IMAGE = "hyperledger/fabric-ca:1.5"
FABRIC_ORDERER_IMAGE = "hyperledger/fabric-orderer:2.4"
FABRIC_PEER_IMAGE = "hyperledger/fabric-peer:2.4"
FABRIC_TOOLS_IMAGE = "hyperledger/fabric-tools:2.4"

# Fabric 2.4 only publishes amd64 images
PLATFORM = "linux/amd64"

FABRIC_VOLUME = "firefly_fabric"
CHAINCODE_PACKAGE = "firefly_fabric.tar.gz"
CHAINCODE_VERSION = "1.0"

_PEER_ENV = {
    "CORE_PEER_ADDRESS": "fabric_peer:7051",
    "CORE_PEER_TLS_ENABLED": "true",
    "CORE_PEER_TLS_ROOTCERT_FILE": f"{net.PEER_NODE}/tls/ca.crt",
    "CORE_PEER_LOCALMSPID": net.MSP_ID,
    "CORE_PEER_MSPCONFIGPATH": f"{net.PEER_ADMIN}/msp",
}


class FabricProvider(BlockchainProvider):
    kind = "fabric"

    # ── Init ────────────────────────────────────────────────────

    def write_config(self, options: InitOptions) -> None:
        layout = self.ctx.layout
        blockchain_dir = layout.blockchain_dir(layout.init_dir)
        blockchain_dir.mkdir(parents=True, exist_ok=True)

        net.write_cryptogen_config(blockchain_dir / "cryptogen.yaml", len(self.stack.members))
        net.write_connection_profile(blockchain_dir / "ccp.yaml")
        net.write_fabconnect_config(blockchain_dir / "fabconnect.yaml")
        net.write_configtx(blockchain_dir / "configtx.yaml")

    # ── First start ─────────────────────────────────────────────

    def first_time_setup(self) -> None:
        layout = self.ctx.layout
        blockchain_dir = layout.blockchain_dir(layout.runtime_dir).resolve()
        volume = self.ctx.volume(FABRIC_VOLUME)

        self.ctx.runtime.create_volume(volume)

        self.ctx.progress("generating fabric crypto material")
        self.ctx.runtime.run(
            FABRIC_TOOLS_IMAGE,
            [
                "cryptogen", "generate",
                "--config", "/etc/template.yml",
                "--output", "/etc/firefly/organizations",
            ],
            volumes=[f"{blockchain_dir / 'cryptogen.yaml'}:/etc/template.yml", f"{volume}:/etc/firefly"],
            platform=PLATFORM,
        )

        self.ctx.progress("generating channel genesis block")
        self.ctx.runtime.run(
            FABRIC_TOOLS_IMAGE,
            [
                "configtxgen",
                "-outputBlock", "/etc/firefly/firefly.block",
                "-profile", "SingleOrgApplicationGenesis",
                "-channelID", net.CHANNEL,
            ],
            volumes=[
                f"{volume}:/etc/firefly",
                f"{blockchain_dir / 'configtx.yaml'}:/etc/hyperledger/fabric/configtx.yaml",
            ],
            platform=PLATFORM,
        )

    def pre_start(self) -> None:
        pass

    def post_start(self, first_time_setup: bool) -> None:
        pass

    def reset(self) -> None:
        pass

    # ── Contracts ───────────────────────────────────────────────

    def deploy_firefly_contract(self) -> ContractDeploymentResult:
        """Install the FireFly chaincode and register member identities.

        No config patch: the chaincode name is fixed.
        """
        package = self._extract_chaincode()
        self._create_channel()
        self._join_channel()
        self._install_chaincode(package)

        installed = self._query_installed()
        if not installed:
            raise StackError("failed to find installed chaincode")
        self._approve_chaincode(net.CHANNEL, net.CHAINCODE, CHAINCODE_VERSION, installed[0]["package_id"])
        self._commit_chaincode(net.CHANNEL, net.CHAINCODE, CHAINCODE_VERSION)

        self.ctx.progress("registering identities")
        for member in self.stack.members:
            self.register_identity(member, member.org_name)

        return ContractDeploymentResult(
            deployed_contract=DeployedContract(
                name="FireFly",
                location={"channel": net.CHANNEL, "chaincode": net.CHAINCODE},
            ),
            message=f"FireFly chaincode committed to channel '{net.CHANNEL}'",
        )

    def get_contracts(self, filename: str) -> list[str]:
        return [filename]

    def deploy_contract(
        self,
        filename: str,
        contract_name: str,
        member: Member,
        extra_args: list[str],
    ) -> ContractDeploymentResult:
        """Install and commit a chaincode package.

        ``extra_args`` = [channel, chaincode, version].
        """
        usage = "usage: ledgerstack deploy contract <stack> <filename> <channel> <chaincode> <version>"
        for position, what in enumerate(("channel", "chaincode", "version")):
            if len(extra_args) <= position:
                raise StackError(f"{what} not set. {usage}")
        channel, chaincode, version = extra_args[:3]

        self._install_chaincode(Path(filename).resolve())
        package_id = next(
            (c["package_id"] for c in self._query_installed() if c.get("label") == chaincode),
            None,
        )
        if package_id is None:
            raise StackError("failed to find installed chaincode")

        self._approve_chaincode(channel, chaincode, version, package_id)
        self._commit_chaincode(channel, chaincode, version)
        return ContractDeploymentResult(
            deployed_contract=DeployedContract(
                name=contract_name or chaincode,
                location={"channel": channel, "chaincode": chaincode},
            ),
            message=f"chaincode '{chaincode}' committed to channel '{channel}'",
        )

    def register_identity(self, member: Member, name: str) -> dict[str, Any]:
        base_url = f"http://127.0.0.1:{member.ports.connector}"
        secret = fabconnect.create_identity(self.ctx.http, base_url, name)
        fabconnect.enroll_identity(self.ctx.http, base_url, name, secret)
        return {"name": name, "orgName": member.org_name}

    # ── Fabric CLI steps ────────────────────────────────────────

    def _tools(self, command: list[str], *, env: dict[str, str] | None = None,
               extra_volumes: list[str] | None = None) -> str:
        """Run a fabric-tools command on the stack network."""
        volumes = [f"{self.ctx.volume(FABRIC_VOLUME)}:/etc/firefly", *(extra_volumes or [])]
        return self.ctx.runtime.run(
            FABRIC_TOOLS_IMAGE,
            command,
            volumes=volumes,
            env=env,
            platform=PLATFORM,
            network=self.ctx.compose_network,
        )

    def _extract_chaincode(self) -> Path:
        core = next((m for m in self.stack.members if not m.external), None)
        if core is None:
            raise StackError(
                "unable to extract contracts from container - "
                "no valid firefly core containers found in stack"
            )
        contracts_dir = self.ctx.layout.runtime_dir / "contracts"
        contracts_dir.mkdir(parents=True, exist_ok=True)
        dest = contracts_dir / CHAINCODE_PACKAGE
        self.ctx.progress("extracting smart contracts")
        self.ctx.runtime.copy_from_container(
            self.ctx.container(f"firefly_core_{core.id}"),
            f"/firefly/contracts/{CHAINCODE_PACKAGE}",
            dest,
        )
        return dest.resolve()

    def _create_channel(self) -> None:
        self.ctx.progress("creating channel")
        self._tools([
            "osnadmin", "channel", "join",
            "--channelID", net.CHANNEL,
            "--config-block", "/etc/firefly/firefly.block",
            "-o", "fabric_orderer:7053",
            "--ca-file", f"{net.ORDERER_ADMIN}/tls/ca.crt",
            "--client-cert", f"{net.ORDERER_ADMIN}/tls/client.crt",
            "--client-key", f"{net.ORDERER_ADMIN}/tls/client.key",
        ])

    def _join_channel(self) -> None:
        self.ctx.progress("joining channel")
        self._tools(
            ["peer", "channel", "join", "-b", "/etc/firefly/firefly.block"],
            env=_PEER_ENV,
        )

    def _install_chaincode(self, package: Path) -> None:
        self.ctx.progress("installing chaincode")
        self._tools(
            ["peer", "lifecycle", "chaincode", "install", "/package.tar.gz"],
            env=_PEER_ENV,
            extra_volumes=[f"{package}:/package.tar.gz"],
        )

    def _query_installed(self) -> list[dict[str, Any]]:
        """Installed chaincodes as [{"package_id": ..., "label": ...}]."""
        output = self._tools(
            ["peer", "lifecycle", "chaincode", "queryinstalled", "--output", "json"],
            env=_PEER_ENV,
        )
        try:
            data = json.loads(output or "{}")
        except json.JSONDecodeError as e:
            raise StackError(f"unexpected queryinstalled output: {e}") from e
        return data.get("installed_chaincodes") or []

    def _approve_chaincode(self, channel: str, chaincode: str, version: str, package_id: str) -> None:
        self.ctx.progress("approving chaincode")
        self._tools(
            [
                "peer", "lifecycle", "chaincode", "approveformyorg",
                *self._orderer_args(channel, chaincode, version),
                "--package-id", package_id,
            ],
            env=_PEER_ENV,
        )

    def _commit_chaincode(self, channel: str, chaincode: str, version: str) -> None:
        self.ctx.progress("committing chaincode")
        self._tools(
            [
                "peer", "lifecycle", "chaincode", "commit",
                *self._orderer_args(channel, chaincode, version),
            ],
            env=_PEER_ENV,
        )

    @staticmethod
    def _orderer_args(channel: str, chaincode: str, version: str) -> list[str]:
        return [
            "-o", "fabric_orderer:7050",
            "--ordererTLSHostnameOverride", "fabric_orderer",
            "--channelID", channel,
            "--name", chaincode,
            "--version", version,
            "--sequence", "1",
            "--tls",
            "--cafile", net.ORDERER_TLS_CA,
        ]

    # ── Services / config ───────────────────────────────────────

    def get_firefly_config(self, member: Member) -> tuple[dict, dict]:
        if member.external:
            url = f"http://127.0.0.1:{member.ports.connector}"
        else:
            url = f"http://fabconnect_{member.id}:3000"
        blockchain = {
            "type": "fabric",
            "fabric": {
                "fabconnect": {
                    "url": url,
                    "chaincode": net.CHAINCODE,
                    "channel": net.CHANNEL,
                    "signer": member.org_name,
                    "topic": member.id,
                },
            },
        }
        org = {"name": member.org_name, "key": member.org_name}
        return blockchain, org

    def get_docker_service_definitions(self) -> list[ServiceDefinition]:
        return self._network_definitions() + self._fabconnect_definitions()

    def _network_definitions(self) -> list[ServiceDefinition]:
        name = self.stack.name
        ca = ServiceDefinition(
            service_name="fabric_ca",
            service=ComposeService(
                image=FABRIC_CA_IMAGE,
                container_name=f"{name}_fabric_ca",
                platform=PLATFORM,
                command="sh -c 'fabric-ca-server start -b admin:adminpw'",
                environment={
                    "FABRIC_CA_HOME": "/etc/hyperledger/fabric-ca-server",
                    "FABRIC_CA_SERVER_CA_NAME": "fabric_ca",
                    "FABRIC_CA_SERVER_PORT": "7054",
                    "FABRIC_CA_SERVER_OPERATIONS_LISTENADDRESS": "0.0.0.0:17054",
                    "FABRIC_CA_SERVER_CA_CERTFILE": f"{net.PEER_ORG}/ca/fabric_ca.{net.ORG_DOMAIN}-cert.pem",
                    "FABRIC_CA_SERVER_CA_KEYFILE": f"{net.PEER_ORG}/ca/priv_sk",
                },
                ports=["7054:7054"],
                volumes=[f"{FABRIC_VOLUME}:/etc/firefly"],
                logging=STANDARD_LOGGING,
            ),
            volume_names=[FABRIC_VOLUME],
        )
        orderer_tls = f"{net.ORDERER_NODE}/tls"
        orderer = ServiceDefinition(
            service_name="fabric_orderer",
            service=ComposeService(
                image=FABRIC_ORDERER_IMAGE,
                container_name=f"{name}_fabric_orderer",
                platform=PLATFORM,
                command="orderer",
                working_dir="/opt/gopath/src/github.com/hyperledger/fabric",
                environment={
                    "FABRIC_LOGGING_SPEC": "INFO",
                    "ORDERER_GENERAL_LISTENADDRESS": "0.0.0.0",
                    "ORDERER_GENERAL_LISTENPORT": "7050",
                    "ORDERER_GENERAL_LOCALMSPID": "OrdererMSP",
                    "ORDERER_GENERAL_LOCALMSPDIR": f"{net.ORDERER_NODE}/msp",
                    "ORDERER_GENERAL_TLS_ENABLED": "true",
                    "ORDERER_GENERAL_TLS_PRIVATEKEY": f"{orderer_tls}/server.key",
                    "ORDERER_GENERAL_TLS_CERTIFICATE": f"{orderer_tls}/server.crt",
                    "ORDERER_GENERAL_TLS_ROOTCAS": f"[{orderer_tls}/ca.crt]",
                    "ORDERER_GENERAL_CLUSTER_CLIENTCERTIFICATE": f"{orderer_tls}/server.crt",
                    "ORDERER_GENERAL_CLUSTER_CLIENTPRIVATEKEY": f"{orderer_tls}/server.key",
                    "ORDERER_GENERAL_CLUSTER_ROOTCAS": f"[{orderer_tls}/ca.crt]",
                    "ORDERER_GENERAL_BOOTSTRAPMETHOD": "none",
                    "ORDERER_CHANNELPARTICIPATION_ENABLED": "true",
                    "ORDERER_ADMIN_TLS_ENABLED": "true",
                    "ORDERER_ADMIN_TLS_CERTIFICATE": f"{orderer_tls}/server.crt",
                    "ORDERER_ADMIN_TLS_PRIVATEKEY": f"{orderer_tls}/server.key",
                    "ORDERER_ADMIN_TLS_ROOTCAS": f"[{orderer_tls}/ca.crt]",
                    "ORDERER_ADMIN_TLS_CLIENTROOTCAS": f"[{orderer_tls}/ca.crt]",
                    "ORDERER_ADMIN_LISTENADDRESS": "0.0.0.0:7053",
                    "ORDERER_OPERATIONS_LISTENADDRESS": "0.0.0.0:17050",
                },
                ports=["7050:7050", "7053:7053"],
                volumes=[
                    f"{FABRIC_VOLUME}:/etc/firefly",
                    "fabric_orderer:/var/hyperledger/production/orderer",
                ],
                logging=STANDARD_LOGGING,
            ),
            volume_names=[FABRIC_VOLUME, "fabric_orderer"],
        )
        peer_tls = f"{net.PEER_NODE}/tls"
        peer = ServiceDefinition(
            service_name="fabric_peer",
            service=ComposeService(
                image=FABRIC_PEER_IMAGE,
                container_name=f"{name}_fabric_peer",
                platform=PLATFORM,
                command="peer node start",
                working_dir="/opt/gopath/src/github.com/hyperledger/fabric/peer",
                environment={
                    "CORE_VM_ENDPOINT": "unix:///host/var/run/docker.sock",
                    "CORE_VM_DOCKER_HOSTCONFIG_NETWORKMODE": self.ctx.compose_network,
                    "FABRIC_LOGGING_SPEC": "INFO",
                    "CORE_PEER_TLS_ENABLED": "true",
                    "CORE_PEER_PROFILE_ENABLED": "false",
                    "CORE_PEER_MSPCONFIGPATH": f"{net.PEER_NODE}/msp",
                    "CORE_PEER_TLS_CERT_FILE": f"{peer_tls}/server.crt",
                    "CORE_PEER_TLS_KEY_FILE": f"{peer_tls}/server.key",
                    "CORE_PEER_TLS_ROOTCERT_FILE": f"{peer_tls}/ca.crt",
                    "CORE_PEER_ID": "fabric_peer",
                    "CORE_PEER_ADDRESS": "fabric_peer:7051",
                    "CORE_PEER_LISTENADDRESS": "0.0.0.0:7051",
                    "CORE_PEER_CHAINCODEADDRESS": "fabric_peer:7052",
                    "CORE_PEER_CHAINCODELISTENADDRESS": "0.0.0.0:7052",
                    "CORE_PEER_GOSSIP_BOOTSTRAP": "fabric_peer:7051",
                    "CORE_PEER_GOSSIP_EXTERNALENDPOINT": "fabric_peer:7051",
                    "CORE_PEER_LOCALMSPID": net.MSP_ID,
                    "CORE_OPERATIONS_LISTENADDRESS": "0.0.0.0:17051",
                },
                ports=["7051:7051"],
                volumes=[
                    f"{FABRIC_VOLUME}:/etc/firefly",
                    "fabric_peer:/var/hyperledger/production",
                    "/var/run/docker.sock:/host/var/run/docker.sock",
                ],
                logging=STANDARD_LOGGING,
            ),
            volume_names=[FABRIC_VOLUME, "fabric_peer"],
        )
        return [ca, orderer, peer]

    def _fabconnect_definitions(self) -> list[ServiceDefinition]:
        blockchain_dir = self.ctx.layout.blockchain_dir(self.ctx.layout.runtime_dir).resolve()
        image = self.stack.version_manifest.require("fabconnect").image_ref()
        definitions = []
        for member in self.stack.members:
            receipts = f"fabconnect_receipts_{member.id}"
            events = f"fabconnect_events_{member.id}"
            definitions.append(ServiceDefinition(
                service_name=f"fabconnect_{member.id}",
                service=ComposeService(
                    image=image,
                    container_name=f"{self.stack.name}_fabconnect_{member.id}",
                    command="-f /fabconnect/fabconnect.yaml",
                    depends_on={
                        "fabric_ca": {"condition": SERVICE_STARTED},
                        "fabric_peer": {"condition": SERVICE_STARTED},
                        "fabric_orderer": {"condition": SERVICE_STARTED},
                    },
                    ports=[f"{member.ports.connector}:3000"],
                    volumes=[
                        f"{receipts}:/fabconnect/receipts",
                        f"{events}:/fabconnect/events",
                        f"{blockchain_dir / 'fabconnect.yaml'}:/fabconnect/fabconnect.yaml",
                        f"{blockchain_dir / 'ccp.yaml'}:/fabconnect/ccp.yaml",
                        f"{FABRIC_VOLUME}:/etc/firefly",
                    ],
                    healthcheck=HealthCheck(
                        test=["CMD", "wget", "-O", "-", "http://localhost:3000/status"],
                    ),
                    logging=STANDARD_LOGGING,
                ),
                volume_names=[receipts, events, FABRIC_VOLUME],
            ))
        return definitions
