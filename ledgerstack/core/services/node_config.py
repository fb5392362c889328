"""
Per-member node configuration (``firefly_core_<id>.yml``).

Internal members reach their peer services by container DNS name;
external members run outside the compose network and use the exposed
host ports instead.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

from ledgerstack.core.errors import StackError
from ledgerstack.core.models.stack import Member, Stack
from ledgerstack.core.services.compose_generate import POSTGRES_PASSWORD

logger = logging.getLogger(__name__)

DEBUG_PORT = 6060
SQLITE_CONTAINER_PATH = "/etc/firefly/db?_busy_timeout=5000"


def _host(port: int) -> str:
    return f"http://127.0.0.1:{port}"


def ipfs_urls(member: Member) -> tuple[str, str]:
    """(api, gateway) URLs."""
    if member.external:
        return _host(member.ports.ipfs_api), _host(member.ports.ipfs_gateway)
    return f"http://ipfs_{member.id}:5001", f"http://ipfs_{member.id}:8080"


def dataexchange_url(member: Member) -> str:
    if member.external:
        return _host(member.ports.dataexchange)
    return f"http://dataexchange_{member.id}:3000"


def postgres_url(member: Member) -> str:
    host = f"127.0.0.1:{member.ports.database}" if member.external else f"postgres_{member.id}:5432"
    return f"postgres://postgres:{POSTGRES_PASSWORD}@{host}?sslmode=disable"


def sqlite_path(member: Member, runtime_dir: Path) -> str:
    if member.external:
        return str(runtime_dir / "data" / "sqlite" / f"{member.id}.db")
    return SQLITE_CONTAINER_PATH


def database_config(stack: Stack, member: Member, runtime_dir: Path) -> dict[str, Any]:
    if stack.database == "postgres":
        url = postgres_url(member)
    else:
        url = sqlite_path(member, runtime_dir)
    return {
        "type": stack.database,
        stack.database: {"url": url, "migrations": {"auto": True}},
    }


def new_node_config(
    stack: Stack,
    member: Member,
    blockchain_config: dict[str, Any],
    org_config: dict[str, Any],
    tokens: list[dict[str, Any]],
    *,
    runtime_dir: Path,
) -> dict[str, Any]:
    """Build one member's node config.

    External members start with the admin API in pre-init mode; first
    start takes them out of it once their config is final.
    """
    p = member.ports
    ipfs_api, ipfs_gateway = ipfs_urls(member)
    config: dict[str, Any] = {
        "log": {"level": "debug"},
        "debug": {"port": DEBUG_PORT},
        "http": {
            "port": p.firefly,
            "address": "0.0.0.0",
            "publicURL": _host(p.firefly),
        },
        "admin": {
            "enabled": True,
            "port": p.admin,
            "address": "0.0.0.0",
            "preinit": member.external,
            "publicURL": _host(p.admin),
        },
        "ui": {"path": "./frontend"},
        "node": {"name": member.node_name},
        "org": dict(org_config),
        "blockchain": copy.deepcopy(blockchain_config),
        "database": database_config(stack, member, runtime_dir),
        "publicstorage": {
            "type": "ipfs",
            "ipfs": {"api": {"url": ipfs_api}, "gateway": {"url": ipfs_gateway}},
        },
        "dataexchange": {"type": "https", "https": {"url": dataexchange_url(member)}},
    }
    if tokens:
        config["tokens"] = [dict(t) for t in tokens]
    if p.metrics is not None:
        config["metrics"] = {
            "enabled": True,
            "address": "0.0.0.0",
            "port": p.metrics,
            "path": "/metrics",
        }
    return config


def merge_config(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Recursive override merge.  Neither argument is modified.

    Mappings merge key by key; any other value in ``patch`` replaces
    the one in ``base``.
    """
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def read_node_config(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise StackError(f"node config {path} is not a YAML mapping")
    return data


def load_extra_config(path: str | Path) -> dict[str, Any]:
    """Read an operator-supplied override file."""
    extra_path = Path(path).expanduser()
    try:
        data = yaml.safe_load(extra_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise StackError(f"unable to read extra core config {extra_path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise StackError(f"extra core config {extra_path} is not a YAML mapping")
    return data


def write_node_config(
    config: dict[str, Any],
    path: Path,
    extra: str | Path | None = None,
) -> Path:
    """Write a node config, merging the optional override file on top."""
    if extra:
        config = merge_config(config, load_extra_config(extra))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
    logger.debug("Wrote node config %s", path)
    return path


def patch_node_config(path: Path, patch: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``patch`` into the config file at ``path`` and rewrite it."""
    merged = merge_config(read_node_config(path), patch)
    write_node_config(merged, path)
    return merged
