"""
Compiled Solidity contract files (solc ``--combined-json`` output).

    {"contracts": {"Firefly.sol:Firefly": {"abi": [...], "bin": "60..."}}}

``abi`` may be a JSON string (older solc) or an already-decoded list.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ledgerstack.core.errors import ContractError


@dataclass
class CompiledContract:
    name: str
    abi: list[dict[str, Any]]
    bytecode: str


def read_combined_json(path: Path) -> dict[str, Any]:
    """Load a combined-json file.

    Raises:
        ContractError: If the file is unreadable or has no ``contracts`` mapping.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ContractError(f"unable to read contract file {path}: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("contracts"), dict):
        raise ContractError(f"{path} is not a compiled contract file (no 'contracts' key)")
    return data


def contract_names(path: Path) -> list[str]:
    return list(read_combined_json(path)["contracts"])


def load_contract(path: Path, name: str) -> CompiledContract:
    """Find a contract by exact key or by its ``File.sol:Name`` suffix."""
    contracts = read_combined_json(path)["contracts"]
    key = name if name in contracts else None
    if key is None:
        for candidate in contracts:
            if candidate.endswith(f":{name}"):
                key = candidate
                break
    if key is None:
        raise ContractError(f"contract '{name}' not found in {path}")

    entry = contracts[key]
    abi = entry.get("abi", [])
    if isinstance(abi, str):
        abi = json.loads(abi)
    bytecode = entry.get("bin") or entry.get("bytecode") or ""
    if not bytecode:
        raise ContractError(f"contract '{key}' in {path} has no bytecode")
    return CompiledContract(name=key, abi=abi, bytecode=bytecode)
