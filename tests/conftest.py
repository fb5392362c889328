"""
Shared test fixtures and configuration.

Nothing here touches docker or the network: the container runtime is
the recording MockRuntime, HTTP goes to FakeHttp, and port probes are
plain functions over a set of "busy" ports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from ledgerstack.adapters.mock import MockRuntime
from ledgerstack.core.config.loader import Settings
from ledgerstack.core.engine.stack_manager import StackManager
from tests.fakes import FakeHttp, KeyFactory, combined_json, offline_manifest


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Return a fresh ledgerstack home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def settings(home: Path) -> Settings:
    return Settings(
        home=home,
        readiness_retries=3,
        readiness_period=0.0,
        http_retries=0,
        http_retry_period=0.0,
        registration_retries=3,
        unlock_retries=0,
        pull_retries=1,
    )


@pytest.fixture
def runtime() -> MockRuntime:
    """MockRuntime that serves the contract files baked into images."""
    rt = MockRuntime()
    rt.set_container_file("/firefly/contracts/Firefly.json", combined_json("Firefly"))
    rt.set_container_file(
        "/root/contracts/ERC1155MixedFungible.json", combined_json("ERC1155MixedFungible")
    )
    rt.set_container_file("/root/contracts/TokenFactory.json", combined_json("TokenFactory"))
    rt.set_container_file("/firefly/contracts/firefly_fabric.tar.gz", b"chaincode")
    return rt


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def busy_ports() -> set[int]:
    """Ports the fake probe reports as taken."""
    return set()


@pytest.fixture
def make_manager(settings, runtime, http, busy_ports):
    """Factory for StackManagers wired to the fakes."""

    def factory(**overrides: Any) -> StackManager:
        kwargs: dict[str, Any] = {
            "http": http,
            "port_probe": lambda port: port not in busy_ports,
            "readiness_probe": lambda port: True,
            "manifest_resolver": offline_manifest,
            "keygen": KeyFactory(),
            "sleep": lambda seconds: None,
        }
        kwargs.update(overrides)
        return StackManager(settings, runtime, **kwargs)

    return factory
