"""
Provider contracts — the capability set every backend implements.

The orchestrator holds one BlockchainProvider and a list of
TokenProviders per stack and only ever calls them through these
interfaces.  A provider's kind string is the only part of it that is
persisted; everything else is re-derived from the Stack and the files
the provider wrote at init time.

To add a backend:
    1. Subclass BlockchainProvider or TokenProvider
    2. Implement every abstract method
    3. Register it in ``registry.py``
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ledgerstack.adapters.base import ContainerRuntime
from ledgerstack.core.config.loader import Settings
from ledgerstack.core.models.compose import ServiceDefinition
from ledgerstack.core.models.options import InitOptions
from ledgerstack.core.models.stack import Member, Stack
from ledgerstack.core.models.state import DeployedContract
from ledgerstack.core.persistence.stack_store import StackLayout
from ledgerstack.core.reliability.http_client import JsonHttpClient


def _silent(message: str) -> None:
    pass


@dataclass
class ProviderContext:
    """Everything a provider may touch."""

    stack: Stack
    layout: StackLayout
    runtime: ContainerRuntime
    http: JsonHttpClient
    settings: Settings
    progress: Callable[[str], None] = _silent

    def volume(self, name: str) -> str:
        """Compose-project-qualified volume name."""
        return f"{self.stack.name}_{name}"

    def container(self, name: str) -> str:
        return f"{self.stack.name}_{name}"

    @property
    def compose_network(self) -> str:
        return f"{self.stack.name}_default"


@dataclass
class ContractDeploymentResult:
    """Outcome of a contract deployment.

    ``config_patch`` is a fragment deep-merged into every member's node
    config (None when the provider needs no config change).
    """

    deployed_contract: DeployedContract
    message: str = ""
    config_patch: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "deployed_contract": self.deployed_contract.model_dump(mode="json"),
            "config_patch": self.config_patch,
        }


class BlockchainProvider(ABC):
    """Lifecycle contract for a blockchain network backend."""

    kind: str = ""

    def __init__(self, ctx: ProviderContext):
        self.ctx = ctx

    @property
    def stack(self) -> Stack:
        return self.ctx.stack

    @abstractmethod
    def write_config(self, options: InitOptions) -> None:
        """Write provider artefacts into the init tree."""

    @abstractmethod
    def first_time_setup(self) -> None:
        """One-time bootstrap (genesis, key import, MSP...) on the runtime tree."""

    @abstractmethod
    def pre_start(self) -> None: ...

    @abstractmethod
    def post_start(self, first_time_setup: bool) -> None:
        """Runs right after the containers came up."""

    @abstractmethod
    def deploy_firefly_contract(self) -> ContractDeploymentResult: ...

    @abstractmethod
    def get_docker_service_definitions(self) -> list[ServiceDefinition]: ...

    @abstractmethod
    def get_firefly_config(self, member: Member) -> tuple[dict[str, Any], dict[str, Any]]:
        """(blockchain section, org section) of the member's node config."""

    @abstractmethod
    def reset(self) -> None:
        """Forget anything the provider created outside the runtime tree."""

    @abstractmethod
    def get_contracts(self, filename: str) -> list[str]:
        """Names of the contracts a deployable file contains."""

    @abstractmethod
    def deploy_contract(
        self,
        filename: str,
        contract_name: str,
        member: Member,
        extra_args: list[str],
    ) -> ContractDeploymentResult: ...

    def volume_names(self) -> list[str]:
        """Named volumes this provider's services use."""
        names: list[str] = []
        for definition in self.get_docker_service_definitions():
            for volume in definition.volume_names:
                if volume not in names:
                    names.append(volume)
        return names

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind!r} stack={self.stack.name!r}>"


class TokenProvider(ABC):
    """Lifecycle contract for a token connector backend.

    Token connectors sit on top of the stack's blockchain provider,
    which they get at construction.
    """

    kind: str = ""

    def __init__(self, ctx: ProviderContext, blockchain: BlockchainProvider):
        self.ctx = ctx
        self.blockchain = blockchain

    @property
    def stack(self) -> Stack:
        return self.ctx.stack

    @abstractmethod
    def get_docker_service_definitions(self, index: int) -> list[ServiceDefinition]: ...

    @abstractmethod
    def get_firefly_config(self, member: Member, index: int) -> dict[str, Any]: ...

    @abstractmethod
    def deploy_smart_contracts(self, index: int) -> list[ContractDeploymentResult]: ...

    @abstractmethod
    def first_time_setup(self, index: int) -> None: ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind!r} stack={self.stack.name!r}>"
