"""
Domain models — Pydantic types for stacks and their manifests.

All models are re-exported here for convenient access:

    from ledgerstack.core.models import Stack, Member, ComposeDocument
"""

from ledgerstack.core.models.compose import (
    SERVICE_HEALTHY,
    SERVICE_STARTED,
    ComposeDocument,
    ComposeService,
    HealthCheck,
    ServiceDefinition,
)
from ledgerstack.core.models.options import InitOptions, StartOptions
from ledgerstack.core.models.stack import (
    ManifestEntry,
    Member,
    PortSet,
    Stack,
    VersionManifest,
)
from ledgerstack.core.models.state import DeployedContract, StackState

__all__ = [
    # compose.py
    "ComposeDocument",
    "ComposeService",
    "HealthCheck",
    "SERVICE_HEALTHY",
    "SERVICE_STARTED",
    "ServiceDefinition",
    # options.py
    "InitOptions",
    "StartOptions",
    # stack.py
    "ManifestEntry",
    "Member",
    "PortSet",
    "Stack",
    "VersionManifest",
    # state.py
    "DeployedContract",
    "StackState",
]
