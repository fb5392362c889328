"""
Stack and Member — the durable record of a development stack.

A Stack is loaded by name for every command, transformed with
``model_copy(update=...)`` and saved back whole.  Models are frozen so
nothing mutates a loaded snapshot in place.

Private keys live on Member only between key generation and the
provider's ``write_config``; they are never serialized.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

STACK_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

DATABASES = ("postgres", "sqlite3")


class ManifestEntry(BaseModel):
    """One image in the version manifest."""

    model_config = ConfigDict(frozen=True)

    image: str
    tag: str = ""
    sha: str = ""
    local: bool = False  # built locally, never pulled

    def image_ref(self) -> str:
        """Image reference for compose: digest-pinned when a sha is known."""
        if self.sha:
            return f"{self.image}@sha256:{self.sha}"
        if self.tag:
            return f"{self.image}:{self.tag}"
        return self.image


class VersionManifest(BaseModel):
    """Image + tag per subsystem, resolved at init time."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    firefly: ManifestEntry | None = None
    ethconnect: ManifestEntry | None = None
    fabconnect: ManifestEntry | None = None
    dataexchange_https: ManifestEntry | None = Field(default=None, alias="dataexchange-https")
    tokens_erc1155: ManifestEntry | None = Field(default=None, alias="tokens-erc1155")
    tokens_erc20_erc721: ManifestEntry | None = Field(default=None, alias="tokens-erc20-erc721")
    signer: ManifestEntry | None = None

    def entries(self) -> list[ManifestEntry]:
        """All populated entries, in declaration order."""
        entries = []
        for name in type(self).model_fields:
            entry = getattr(self, name)
            if entry is not None:
                entries.append(entry)
        return entries

    def require(self, name: str) -> ManifestEntry:
        entry = getattr(self, name, None)
        if entry is None:
            raise ValueError(f"version manifest has no entry for '{name}'")
        return entry


class PortSet(BaseModel):
    """Exposed host ports for one member."""

    model_config = ConfigDict(frozen=True)

    firefly: int
    admin: int
    connector: int
    ui: int
    database: int
    dataexchange: int
    ipfs_api: int
    ipfs_gateway: int
    metrics: int | None = None
    tokens: list[int] = Field(default_factory=list)


class Member(BaseModel):
    """One participant node in a stack."""

    model_config = ConfigDict(frozen=True)

    id: str
    index: int
    address: str
    private_key: str = Field(default="", exclude=True, repr=False)
    org_name: str = ""
    node_name: str = ""
    external: bool = False
    ports: PortSet

    @model_validator(mode="before")
    @classmethod
    def _default_names(cls, data: Any) -> Any:
        if isinstance(data, dict) and "id" in data:
            data = dict(data)
            data["org_name"] = data.get("org_name") or f"org_{data['id']}"
            data["node_name"] = data.get("node_name") or f"node_{data['id']}"
        return data


class Stack(BaseModel):
    """The unit of management — one named multi-node environment."""

    model_config = ConfigDict(frozen=True)

    name: str
    members: list[Member]
    blockchain_provider: str = "geth"
    token_providers: list[str] = Field(default_factory=list)
    database: str = "sqlite3"

    services_base_port: int = 5100
    firefly_base_port: int = 5000
    exposed_blockchain_port: int = 5100
    prometheus_enabled: bool = False
    exposed_prometheus_port: int = 9090

    chain_id: int = 2021
    contract_address: str = ""
    remote_node_url: str = ""
    swarm_key: str = ""
    extra_core_config: str = ""

    version_manifest: VersionManifest = Field(default_factory=VersionManifest)

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        if not STACK_NAME_PATTERN.match(v):
            raise ValueError(
                f"invalid stack name '{v}' (letters, digits, '-' and '_' only)"
            )
        return v

    @field_validator("database")
    @classmethod
    def _valid_database(cls, v: str) -> str:
        if v not in DATABASES:
            raise ValueError(f"invalid database '{v}' (expected one of: {', '.join(DATABASES)})")
        return v

    @model_validator(mode="after")
    def _valid_members(self) -> Stack:
        if not self.members:
            raise ValueError("a stack needs at least one member")
        for expected, member in enumerate(self.members):
            if member.index != expected:
                raise ValueError(
                    f"member '{member.id}' has index {member.index}, expected {expected}"
                )
        ids = [m.id for m in self.members]
        if len(set(ids)) != len(ids):
            raise ValueError("member ids must be unique")
        return self

    # ── Convenience ─────────────────────────────────────────────

    def internal_members(self) -> list[Member]:
        return [m for m in self.members if not m.external]

    def external_members(self) -> list[Member]:
        return [m for m in self.members if m.external]

    def member(self, index: int) -> Member:
        """Member by index (raises IndexError when out of range)."""
        if index < 0 or index >= len(self.members):
            raise IndexError(f"stack '{self.name}' has no member {index}")
        return self.members[index]
