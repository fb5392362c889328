"""
Signer — a JSON-RPC proxy that signs transactions with member keys.

Used by providers whose node does not hold the member accounts (besu,
remote RPC).  Keys are written as keystore v3 files at init time and
copied into the ``ethsigner`` volume on first start.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml

from ledgerstack.core.models.compose import (
    SERVICE_STARTED,
    STANDARD_LOGGING,
    ComposeService,
    HealthCheck,
    ServiceDefinition,
)
from ledgerstack.core.models.stack import Stack
from ledgerstack.core.providers.base import ProviderContext
from ledgerstack.core.providers.ethereum.base import RPC_PORT
from ledgerstack.core.services.keys import KeyPair, keystore_v3

logger = logging.getLogger(__name__)

SERVICE_NAME = "ethsigner"
KEYSTORE_PASSWORD = "correcthorsebatterystaple"
CONFIG_FILE = "ethsigner.yaml"
KEYSTORE_DIR = "keystore"

_TOML_TEMPLATE = """\
[metadata]
description = "File based configuration"

[signing]
type = "file-based-signer"
key-file = "/data/keystore/{name}.key.json"
password-file = "/data/keystore/{name}.password"
"""


def write_config(config_dir: Path, backend_url: str, chain_id: int) -> Path:
    config = {
        "fileWallet": {
            "path": f"/data/{KEYSTORE_DIR}",
            "filenames": {"primaryExt": ".toml"},
            "metadata": {
                "format": "toml",
                "keyFileProperty": '{{ index .signing "key-file" }}',
                "passwordFileProperty": '{{ index .signing "password-file" }}',
            },
        },
        "server": {"address": "0.0.0.0", "port": RPC_PORT},
        "backend": {"url": backend_url, "chainId": chain_id},
    }
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / CONFIG_FILE
    path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
    return path


def write_keystore(keystore_dir: Path, keypair: KeyPair) -> Path:
    """Encrypted key + password + toml descriptor for one account."""
    keystore_dir.mkdir(parents=True, exist_ok=True)
    name = keypair.address.removeprefix("0x")
    key_file = keystore_dir / f"{name}.key.json"
    key_file.write_text(json.dumps(keystore_v3(keypair, KEYSTORE_PASSWORD)), encoding="utf-8")
    key_file.chmod(0o600)
    (keystore_dir / f"{name}.password").write_text(KEYSTORE_PASSWORD, encoding="utf-8")
    (keystore_dir / f"{name}.toml").write_text(_TOML_TEMPLATE.format(name=name), encoding="utf-8")
    return key_file


def first_time_setup(ctx: ProviderContext) -> None:
    """Copy signer config and keystore into the signer volume."""
    layout = ctx.layout
    volume = ctx.volume(SERVICE_NAME)
    ctx.runtime.copy_to_volume(
        volume, layout.config_dir(layout.runtime_dir) / CONFIG_FILE, "config.yaml"
    )
    ctx.runtime.copy_to_volume(
        volume, layout.blockchain_dir(layout.runtime_dir) / KEYSTORE_DIR, KEYSTORE_DIR
    )


def service_definition(stack: Stack, image: str, depends_on: str | None = None) -> ServiceDefinition:
    rpc_probe = json.dumps({"jsonrpc": "2.0", "method": "net_version", "params": [], "id": 1})
    service = ComposeService(
        image=image,
        container_name=f"{stack.name}_{SERVICE_NAME}",
        user="root",
        command="-f /data/config.yaml",
        volumes=[f"{SERVICE_NAME}:/data"],
        ports=[f"{stack.exposed_blockchain_port}:{RPC_PORT}"],
        healthcheck=HealthCheck(
            test=[
                "CMD", "curl",
                "--fail",
                "-X", "POST",
                "-H", "Content-Type: application/json",
                "--data", rpc_probe,
                f"http://localhost:{RPC_PORT}",
            ],
            interval="15s",
            retries=60,
        ),
        logging=STANDARD_LOGGING,
    )
    if depends_on:
        service.depends_on[depends_on] = {"condition": SERVICE_STARTED}
    return ServiceDefinition(service_name=SERVICE_NAME, service=service, volume_names=[SERVICE_NAME])
