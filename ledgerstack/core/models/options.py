"""Options accepted by ``init`` and ``start``."""

from __future__ import annotations

from pydantic import BaseModel, Field


class InitOptions(BaseModel):
    """Everything ``init`` needs beyond the stack name and member count."""

    firefly_base_port: int = 5000
    services_base_port: int = 5100
    database: str = "sqlite3"
    blockchain_provider: str = "geth"
    token_providers: list[str] = Field(default_factory=lambda: ["erc1155"])
    external_processes: int = 0  # the first N members run outside docker
    org_names: list[str] = Field(default_factory=list)
    node_names: list[str] = Field(default_factory=list)
    contract_address: str = ""
    remote_node_url: str = ""
    chain_id: int = 2021
    prometheus_enabled: bool = False
    prometheus_port: int = 9090
    release: str = "latest"
    manifest_path: str | None = None
    extra_core_config: str | None = None


class StartOptions(BaseModel):
    no_rollback: bool = False
