"""
Compose document models.

A ServiceDefinition only exists while a manifest is being generated;
afterwards it is folded into the ComposeDocument and re-read from the
YAML file when a later step needs to patch it.
"""

from __future__ import annotations

from typing import Any

import yaml
from pydantic import BaseModel, Field

SERVICE_STARTED = "service_started"
SERVICE_HEALTHY = "service_healthy"

STANDARD_LOGGING: dict[str, Any] = {
    "driver": "json-file",
    "options": {"max-size": "10m", "max-file": "1"},
}


class HealthCheck(BaseModel):
    test: list[str]
    interval: str | None = None
    timeout: str | None = None
    retries: int | None = None


class ComposeService(BaseModel):
    """One service entry of a docker-compose file."""

    image: str
    container_name: str | None = None
    command: str | None = None
    entrypoint: list[str] | None = None
    user: str | None = None
    platform: str | None = None
    working_dir: str | None = None
    ports: list[str] = Field(default_factory=list)
    volumes: list[str] = Field(default_factory=list)
    environment: dict[str, str] = Field(default_factory=dict)
    depends_on: dict[str, dict[str, str]] = Field(default_factory=dict)
    healthcheck: HealthCheck | None = None
    logging: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Compose mapping with empty keys dropped."""
        data = self.model_dump(exclude_none=True)
        for key in ("ports", "volumes", "environment", "depends_on"):
            if not data.get(key):
                data.pop(key, None)
        return data


class ServiceDefinition(BaseModel):
    """A provider-contributed service plus the named volumes it mounts."""

    service_name: str
    service: ComposeService
    volume_names: list[str] = Field(default_factory=list)


class ComposeDocument(BaseModel):
    """A whole docker-compose file."""

    version: str = "2.1"
    services: dict[str, ComposeService] = Field(default_factory=dict)
    volumes: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def add(self, definition: ServiceDefinition) -> None:
        self.services[definition.service_name] = definition.service
        for volume in definition.volume_names:
            self.volumes.setdefault(volume, {})

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "services": {name: svc.to_dict() for name, svc in self.services.items()},
        }
        if self.volumes:
            data["volumes"] = {name: dict(opts) for name, opts in self.volumes.items()}
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)

    @classmethod
    def from_yaml(cls, text: str) -> ComposeDocument:
        data = yaml.safe_load(text) or {}
        volumes = {name: (opts or {}) for name, opts in (data.get("volumes") or {}).items()}
        return cls(
            version=str(data.get("version", "2.1")),
            services=data.get("services") or {},
            volumes=volumes,
        )
