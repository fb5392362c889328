"""
Compose manifest generation.

``create_compose`` lays down the per-member infrastructure (node,
database, IPFS, data exchange) and the optional prometheus sidecar.
``build_manifest`` folds in every provider service and wires each
node to depend on them.  Both are pure: the same stack and providers
always give the same document.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ledgerstack.core.models.compose import (
    SERVICE_HEALTHY,
    SERVICE_STARTED,
    STANDARD_LOGGING,
    ComposeDocument,
    ComposeService,
    HealthCheck,
    ServiceDefinition,
)
from ledgerstack.core.models.stack import Member, Stack
from ledgerstack.core.providers.base import BlockchainProvider, TokenProvider

logger = logging.getLogger(__name__)

IPFS_IMAGE = "ipfs/go-ipfs:v0.10.0"
POSTGRES_IMAGE = "postgres"
PROMETHEUS_IMAGE = "prom/prometheus"

POSTGRES_PASSWORD = "f1refly"

DISABLED_ENTRYPOINT = ["/bin/sh", "-c", "exit", "0"]
DEFAULT_ENTRYPOINT = ["firefly"]


def core_service_name(member: Member) -> str:
    return f"firefly_core_{member.id}"


def _core_service(stack: Stack, member: Member) -> ComposeService:
    p = member.ports
    ports = [f"{p.firefly}:{p.firefly}", f"{p.admin}:{p.admin}"]
    if p.metrics is not None:
        ports.append(f"{p.metrics}:{p.metrics}")

    depends_on = {}
    if stack.database == "postgres":
        depends_on[f"postgres_{member.id}"] = {"condition": SERVICE_HEALTHY}
    depends_on[f"dataexchange_{member.id}"] = {"condition": SERVICE_STARTED}
    depends_on[f"ipfs_{member.id}"] = {"condition": SERVICE_HEALTHY}

    return ComposeService(
        image=stack.version_manifest.require("firefly").image_ref(),
        container_name=f"{stack.name}_{core_service_name(member)}",
        ports=ports,
        volumes=[f"firefly_core_{member.id}:/etc/firefly"],
        depends_on=depends_on,
        logging=STANDARD_LOGGING,
    )


def _postgres_service(stack: Stack, member: Member) -> ComposeService:
    return ComposeService(
        image=POSTGRES_IMAGE,
        container_name=f"{stack.name}_postgres_{member.id}",
        ports=[f"{member.ports.database}:5432"],
        environment={
            "POSTGRES_PASSWORD": POSTGRES_PASSWORD,
            "PGDATA": "/var/lib/postgresql/data/pgdata",
        },
        volumes=[f"postgres_{member.id}:/var/lib/postgresql/data"],
        healthcheck=HealthCheck(
            test=["CMD-SHELL", "pg_isready -U postgres"],
            interval="5s",
            timeout="3s",
            retries=12,
        ),
        logging=STANDARD_LOGGING,
    )


def _ipfs_service(stack: Stack, member: Member) -> ComposeService:
    return ComposeService(
        image=IPFS_IMAGE,
        container_name=f"{stack.name}_ipfs_{member.id}",
        ports=[f"{member.ports.ipfs_api}:5001", f"{member.ports.ipfs_gateway}:8080"],
        environment={
            "IPFS_SWARM_KEY": stack.swarm_key,
            "LIBP2P_FORCE_PNET": "1",
        },
        volumes=[
            f"ipfs_staging_{member.id}:/export",
            f"ipfs_data_{member.id}:/data/ipfs",
        ],
        healthcheck=HealthCheck(
            test=["CMD-SHELL", "wget --post-data= http://127.0.0.1:5001/api/v0/id -O - -q"],
            interval="5s",
            timeout="3s",
            retries=12,
        ),
        logging=STANDARD_LOGGING,
    )


def _dataexchange_service(stack: Stack, member: Member) -> ComposeService:
    return ComposeService(
        image=stack.version_manifest.require("dataexchange_https").image_ref(),
        container_name=f"{stack.name}_dataexchange_{member.id}",
        ports=[f"{member.ports.dataexchange}:3000"],
        volumes=[f"dataexchange_{member.id}:/data"],
        logging=STANDARD_LOGGING,
    )


def create_compose(stack: Stack) -> ComposeDocument:
    """Infrastructure services for every member (no provider services)."""
    doc = ComposeDocument()
    for member in stack.members:
        if not member.external:
            doc.add(ServiceDefinition(
                service_name=core_service_name(member),
                service=_core_service(stack, member),
                volume_names=[f"firefly_core_{member.id}"],
            ))
        if stack.database == "postgres":
            doc.add(ServiceDefinition(
                service_name=f"postgres_{member.id}",
                service=_postgres_service(stack, member),
                volume_names=[f"postgres_{member.id}"],
            ))
        doc.add(ServiceDefinition(
            service_name=f"ipfs_{member.id}",
            service=_ipfs_service(stack, member),
            volume_names=[f"ipfs_staging_{member.id}", f"ipfs_data_{member.id}"],
        ))
        doc.add(ServiceDefinition(
            service_name=f"dataexchange_{member.id}",
            service=_dataexchange_service(stack, member),
            volume_names=[f"dataexchange_{member.id}"],
        ))

    if stack.prometheus_enabled:
        doc.add(ServiceDefinition(
            service_name="prometheus",
            service=ComposeService(
                image=PROMETHEUS_IMAGE,
                container_name=f"{stack.name}_prometheus",
                ports=[f"{stack.exposed_prometheus_port}:9090"],
                volumes=["prometheus_data:/prometheus", "prometheus_config:/etc/prometheus"],
                logging=STANDARD_LOGGING,
            ),
            volume_names=["prometheus_data", "prometheus_config"],
        ))
    return doc


def provider_definitions(
    blockchain: BlockchainProvider,
    tokens: list[TokenProvider],
) -> list[ServiceDefinition]:
    """Every provider service, blockchain first then tokens in order."""
    definitions = list(blockchain.get_docker_service_definitions())
    for index, provider in enumerate(tokens):
        definitions += provider.get_docker_service_definitions(index)
    return definitions


def build_manifest(
    stack: Stack,
    blockchain: BlockchainProvider,
    tokens: list[TokenProvider],
) -> ComposeDocument:
    """The full compose manifest for a stack.

    Each node container depends on every provider service: healthy
    when the service has a healthcheck, started otherwise.
    """
    doc = create_compose(stack)
    for definition in provider_definitions(blockchain, tokens):
        doc.add(definition)
        condition = SERVICE_HEALTHY if definition.service.healthcheck else SERVICE_STARTED
        for member in stack.internal_members():
            core = doc.services[core_service_name(member)]
            core.depends_on[definition.service_name] = {"condition": condition}
    logger.debug("Built manifest for '%s' with %d services", stack.name, len(doc.services))
    return doc


def compose_volume_names(
    stack: Stack,
    blockchain: BlockchainProvider,
    tokens: list[TokenProvider],
) -> list[str]:
    """Unqualified names of every volume the stack creates."""
    return list(build_manifest(stack, blockchain, tokens).volumes)


# ── Entrypoint toggling ─────────────────────────────────────────


def disable_entrypoints(doc: ComposeDocument, stack: Stack) -> dict[str, list[str] | None]:
    """Replace node entrypoints with a no-op.

    Returns the entrypoints that were set before, keyed by service name.
    """
    cached = {}
    for member in stack.internal_members():
        service = doc.services[core_service_name(member)]
        cached[core_service_name(member)] = service.entrypoint
        service.entrypoint = list(DISABLED_ENTRYPOINT)
    return cached


def enable_entrypoints(
    doc: ComposeDocument,
    stack: Stack,
    cached: dict[str, list[str] | None] | None = None,
) -> None:
    """Restore cached node entrypoints, defaulting to ``firefly``."""
    cached = cached or {}
    for member in stack.internal_members():
        name = core_service_name(member)
        doc.services[name].entrypoint = list(cached.get(name) or DEFAULT_ENTRYPOINT)


def read_compose(path: Path) -> ComposeDocument:
    return ComposeDocument.from_yaml(path.read_text(encoding="utf-8"))


def write_compose(doc: ComposeDocument, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(doc.to_yaml(), encoding="utf-8")
    return path
